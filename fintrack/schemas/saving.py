from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import Field

from fintrack.schemas.common import CamelModel


class SavingCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=256)
    target_amount: float = Field(..., gt=0)
    target_date: date
    description: str = ""
    color: str = Field("#3B82F6", max_length=16)
    saving_type: Literal["accumulative", "long-term"] = "accumulative"


class SavingRead(CamelModel):
    id: UUID
    name: str
    target_amount: float
    current_amount: float
    target_date: date
    description: str
    color: str
    saving_type: str
    has_deposited: bool
    created_at: Optional[datetime] = None


class SavingAmountChange(CamelModel):
    amount: float = Field(..., gt=0)
    type: Literal["deposit", "withdraw"]


class SavingResponse(CamelModel):
    message: str
    saving: SavingRead


class SavingListResponse(CamelModel):
    savings: list[SavingRead]
