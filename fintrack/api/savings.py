from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from fintrack.core.auth import SessionUser, get_current_user
from fintrack.core.errors import NotFoundError, ValidationError
from fintrack.db.session import get_db
from fintrack.models.saving import Saving, SavingType
from fintrack.schemas.common import MessageResponse
from fintrack.schemas.saving import SavingAmountChange, SavingCreate, SavingListResponse, SavingRead, SavingResponse

router = APIRouter(prefix="/savings", tags=["savings"])


def apply_amount_change(saving: Saving, change: SavingAmountChange) -> None:
    """Deposit into or withdraw from a goal, enforcing the rules of its saving type."""
    amount = Decimal(str(change.amount))
    current = Decimal(str(saving.current_amount or 0))
    long_term = saving.saving_type == SavingType.LONG_TERM.value
    if change.type == "deposit":
        if long_term and saving.has_deposited:
            raise ValidationError("Long-term savings accept a single deposit")
        saving.current_amount = current + amount
        saving.has_deposited = True
        return
    if long_term:
        raise ValidationError("Withdrawals are not allowed from long-term savings")
    if amount > current:
        raise ValidationError("Withdrawal exceeds the current amount")
    saving.current_amount = current - amount


def _owned(db: Session, saving_id: UUID, owner_id: UUID) -> Saving:
    row = db.get(Saving, saving_id)
    if not row or row.user_id != owner_id:
        raise NotFoundError("Saving not found")
    return row


@router.get("", response_model=SavingListResponse)
def list_savings(
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> SavingListResponse:
    rows = db.execute(
        select(Saving).where(Saving.user_id == current.id).order_by(Saving.created_at.desc())
    ).scalars().all()
    return SavingListResponse(savings=[SavingRead.model_validate(r) for r in rows])


@router.post("", response_model=SavingResponse, status_code=201)
def create_saving(
    payload: SavingCreate,
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> SavingResponse:
    row = Saving(
        user_id=current.id,
        name=payload.name.strip(),
        target_amount=payload.target_amount,
        current_amount=0,
        target_date=payload.target_date,
        description=payload.description.strip(),
        color=payload.color,
        saving_type=payload.saving_type,
        has_deposited=False,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return SavingResponse(message="Saving created", saving=SavingRead.model_validate(row))


@router.patch("/{saving_id}", response_model=SavingResponse)
def change_saving_amount(
    saving_id: UUID,
    payload: SavingAmountChange,
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> SavingResponse:
    row = _owned(db, saving_id, current.id)
    apply_amount_change(row, payload)
    db.commit()
    db.refresh(row)
    verb = "Deposited" if payload.type == "deposit" else "Withdrew"
    return SavingResponse(message=f"{verb} {payload.amount:,.0f}", saving=SavingRead.model_validate(row))


@router.delete("/{saving_id}", response_model=MessageResponse)
def delete_saving(
    saving_id: UUID,
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> MessageResponse:
    row = _owned(db, saving_id, current.id)
    db.delete(row)
    db.commit()
    return MessageResponse(message="Saving deleted")
