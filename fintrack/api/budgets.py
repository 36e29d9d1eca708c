from __future__ import annotations

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fintrack.core.auth import SessionUser, get_current_user
from fintrack.core.errors import NotFoundError
from fintrack.db.session import get_db
from fintrack.models.budget import Budget
from fintrack.models.transaction import Transaction
from fintrack.schemas.budget import (
    BudgetListResponse,
    BudgetRead,
    BudgetUpsert,
    BudgetUpsertResponse,
    BudgetWithSpent,
)
from fintrack.schemas.common import MessageResponse

router = APIRouter(prefix="/budgets", tags=["budgets"])


def month_bounds(month: int, year: int) -> tuple[date, date]:
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def spent_by_category(db: Session, owner_id: UUID, month: int, year: int) -> dict[str, float]:
    start, end = month_bounds(month, year)
    rows = db.execute(
        select(Transaction.category, func.sum(Transaction.amount))
        .where(
            Transaction.user_id == owner_id,
            Transaction.type == "expense",
            Transaction.date >= start,
            Transaction.date < end,
        )
        .group_by(Transaction.category)
    ).all()
    return {category: float(total or 0) for category, total in rows}


@router.get("", response_model=BudgetListResponse)
def list_budgets(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970, le=9999),
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> BudgetListResponse:
    today = date.today()
    month = month or today.month
    year = year or today.year
    budgets = db.execute(
        select(Budget)
        .where(Budget.user_id == current.id, Budget.month == month, Budget.year == year)
        .order_by(Budget.category)
    ).scalars().all()
    spent = spent_by_category(db, current.id, month, year)
    out: list[BudgetWithSpent] = []
    for b in budgets:
        used = spent.get(b.category, 0.0)
        limit = float(b.limit)
        out.append(
            BudgetWithSpent(
                id=b.id,
                category=b.category,
                limit=limit,
                month=b.month,
                year=b.year,
                created_at=b.created_at,
                spent=used,
                percentage=round(used / limit * 100, 2) if limit > 0 else 0.0,
            )
        )
    return BudgetListResponse(budgets=out)


@router.post("", response_model=BudgetUpsertResponse)
def upsert_budget(
    payload: BudgetUpsert,
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> BudgetUpsertResponse:
    category = payload.category.strip()
    row = db.execute(
        select(Budget).where(
            Budget.user_id == current.id,
            Budget.category == category,
            Budget.month == payload.month,
            Budget.year == payload.year,
        )
    ).scalars().first()
    if row:
        row.limit = payload.limit
        message = "Budget updated"
    else:
        row = Budget(user_id=current.id, category=category, limit=payload.limit, month=payload.month, year=payload.year)
        db.add(row)
        message = "Budget created"
    db.commit()
    db.refresh(row)
    return BudgetUpsertResponse(message=message, budget=BudgetRead.model_validate(row))


@router.delete("/{budget_id}", response_model=MessageResponse)
def delete_budget(
    budget_id: UUID,
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> MessageResponse:
    row = db.get(Budget, budget_id)
    if not row or row.user_id != current.id:
        raise NotFoundError("Budget not found")
    db.delete(row)
    db.commit()
    return MessageResponse(message="Budget deleted")
