from __future__ import annotations

from datetime import date as date_type, datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from fintrack.schemas.common import CamelModel
from fintrack.schemas.statement import TransactionType


class TransactionCreate(CamelModel):
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=128)
    amount: float = Field(..., gt=0)
    description: str = ""
    date: Optional[date_type] = None


class TransactionRead(CamelModel):
    id: UUID
    type: str
    category: str
    amount: float
    description: str
    date: date_type
    created_at: Optional[datetime] = None


class TransactionListResponse(CamelModel):
    transactions: list[TransactionRead]
