from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from fintrack.schemas.common import CamelModel


class BudgetUpsert(CamelModel):
    category: str = Field(..., min_length=1, max_length=128)
    limit: float = Field(..., gt=0)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1970, le=9999)


class BudgetRead(BudgetUpsert):
    id: UUID
    created_at: Optional[datetime] = None


class BudgetWithSpent(BudgetRead):
    spent: float
    percentage: float


class BudgetListResponse(CamelModel):
    budgets: list[BudgetWithSpent]


class BudgetUpsertResponse(CamelModel):
    message: str
    budget: BudgetRead
