from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import Field

from fintrack.schemas.common import CamelModel


class CategoryAmount(CamelModel):
    category: str
    amount: float


class IncomeStability(CamelModel):
    is_stable: bool
    variance_percent: str


class AnalysisStats(CamelModel):
    income: float
    expense: float
    balance: float
    savings_rate: str


class AnalysisResponse(CamelModel):
    summary: str
    stats: AnalysisStats
    top_expense_categories: list[CategoryAmount] = Field(default_factory=list)
    income_stability: Optional[IncomeStability] = None
    period: str
    analysis_mode: Literal["weekly", "monthly"]


class ChatRequest(CamelModel):
    message: str = ""


class ChatResponse(CamelModel):
    response: str
    usage: Optional[dict[str, Any]] = None
