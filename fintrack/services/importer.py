"""Persist a confirmed, classified statement as the caller's transactions."""
from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fintrack.core.errors import PersistenceError, ValidationError
from fintrack.models.transaction import Transaction
from fintrack.schemas.statement import ImportTransaction
from fintrack.services.categories import coerce_category

logger = logging.getLogger("fintrack.import")


def imported_description(item: ImportTransaction) -> str:
    sender = (item.sender or "").strip()
    description = (item.description or "").strip()
    return f"{sender} - {description}" if sender else description


def bulk_import(db: Session, owner_id: UUID, items: list[ImportTransaction]) -> int:
    """Insert every item in one batch and return the number of rows written."""
    if not items:
        raise ValidationError("No transactions provided")
    rows = [
        Transaction(
            user_id=owner_id,
            type=item.type,
            category=coerce_category(item.type, item.category),
            amount=item.amount,
            description=imported_description(item),
            date=item.date,
        )
        for item in items
    ]
    try:
        db.add_all(rows)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("bulk_import_failed user=%s count=%s", owner_id, len(rows))
        raise PersistenceError(str(e), error="Failed to import transactions") from e
    logger.info("bulk_import_done user=%s imported=%s", owner_id, len(rows))
    return len(rows)
