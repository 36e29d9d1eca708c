from __future__ import annotations

from datetime import date
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from fintrack.core.auth import SessionUser, get_current_user
from fintrack.core.errors import NotFoundError
from fintrack.db.session import get_db
from fintrack.models.transaction import Transaction
from fintrack.schemas.common import MessageResponse
from fintrack.schemas.statement import BulkImportRequest, BulkImportResponse
from fintrack.schemas.transaction import TransactionCreate, TransactionListResponse, TransactionRead
from fintrack.services.importer import bulk_import

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("", response_model=TransactionListResponse)
def list_transactions(
    type: Optional[Literal["income", "expense"]] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> TransactionListResponse:
    q = select(Transaction).where(Transaction.user_id == current.id)
    if type:
        q = q.where(Transaction.type == type)
    if category:
        q = q.where(Transaction.category == category)
    if start_date:
        q = q.where(Transaction.date >= start_date)
    if end_date:
        q = q.where(Transaction.date <= end_date)
    rows = db.execute(q.order_by(Transaction.date.desc(), Transaction.created_at.desc())).scalars().all()
    return TransactionListResponse(transactions=[TransactionRead.model_validate(r) for r in rows])


@router.post("", response_model=TransactionRead, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> TransactionRead:
    row = Transaction(
        user_id=current.id,
        type=payload.type,
        category=payload.category.strip(),
        amount=payload.amount,
        description=payload.description.strip(),
        date=payload.date or date.today(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return TransactionRead.model_validate(row)


@router.post("/bulk-import", response_model=BulkImportResponse)
def bulk_import_transactions(
    payload: BulkImportRequest,
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> BulkImportResponse:
    imported = bulk_import(db, current.id, payload.transactions)
    return BulkImportResponse(imported=imported, message=f"Imported {imported} transactions")


@router.delete("/{transaction_id}", response_model=MessageResponse)
def delete_transaction(
    transaction_id: UUID,
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> MessageResponse:
    row = db.get(Transaction, transaction_id)
    if not row or row.user_id != current.id:
        raise NotFoundError("Transaction not found")
    db.delete(row)
    db.commit()
    return MessageResponse(message="Transaction deleted")
