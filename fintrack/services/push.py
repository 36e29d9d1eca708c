"""Daily summary push notifications over Web Push (VAPID)."""
from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from pywebpush import WebPushException, webpush
from sqlalchemy import select
from sqlalchemy.orm import Session

from fintrack.core.config import settings
from fintrack.models.push_subscription import PushSubscription
from fintrack.models.transaction import Transaction

logger = logging.getLogger("fintrack.notifications")

INSIGHT_SAMPLE = 30
DAILY_TITLE = "Today's financial summary"


class PushGoneError(Exception):
    """The push service answered 410 Gone: the subscription no longer exists."""


@dataclass
class DeliveryReport:
    sent: int = 0
    failed: int = 0
    removed: int = 0

    @property
    def message(self) -> str:
        return f"Sent {self.sent} notifications, {self.failed} failed, {self.removed} subscriptions removed"


def build_daily_insight(transactions: list[Transaction]) -> str:
    if not transactions:
        return "No transactions yet. Add some transactions to get your daily insight!"
    income = sum(float(t.amount) for t in transactions if t.type == "income")
    expense = sum(float(t.amount) for t in transactions if t.type == "expense")
    balance = income - expense
    if balance > 0:
        insight = f"Looking good! You saved {balance:,.0f} recently. "
    else:
        insight = f"Spending exceeds income by {abs(balance):,.0f}. Consider cutting back. "
    insight += f"Average spending {expense / INSIGHT_SAMPLE:,.0f}/day. "
    rate = f"{balance / income * 100:.0f}" if income > 0 else "0"
    return insight + f"Savings rate: {rate}%."


def daily_payload(body: str) -> str:
    return json.dumps(
        {
            "title": DAILY_TITLE,
            "body": body,
            "icon": "/image.png",
            "badge": "/image.png",
            "data": {"url": "/dashboard", "timestamp": int(time.time() * 1000)},
        },
        ensure_ascii=False,
    )


def deliver_push(subscription: PushSubscription, payload: str) -> None:
    """Send one encrypted push message. Raises PushGoneError on 410."""
    if not settings.vapid_private_key:
        raise RuntimeError("VAPID_PRIVATE_KEY is not configured")
    try:
        webpush(
            subscription_info={
                "endpoint": subscription.endpoint,
                "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
            },
            data=payload,
            vapid_private_key=settings.vapid_private_key,
            vapid_claims={"sub": settings.vapid_subject},
        )
    except WebPushException as e:
        status = getattr(e.response, "status_code", None)
        if status == 410:
            raise PushGoneError(subscription.endpoint) from e
        raise


def _recent_transactions(db: Session, user_id: UUID) -> list[Transaction]:
    return list(
        db.execute(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.date.desc())
            .limit(INSIGHT_SAMPLE)
        )
        .scalars()
        .all()
    )


def send_daily_notifications(
    db: Session,
    user_id: UUID | None = None,
    sender: Callable[[PushSubscription, str], None] | None = None,
) -> DeliveryReport:
    """Push the daily insight to every subscription (or only `user_id`'s). Failures are per subscription."""
    sender = sender or deliver_push
    q = select(PushSubscription)
    if user_id is not None:
        q = q.where(PushSubscription.user_id == user_id)
    subscriptions = db.execute(q).scalars().all()
    report = DeliveryReport()
    insights: dict[UUID, str] = {}
    for sub in subscriptions:
        if sub.user_id not in insights:
            insights[sub.user_id] = build_daily_insight(_recent_transactions(db, sub.user_id))
        try:
            sender(sub, daily_payload(insights[sub.user_id]))
            report.sent += 1
        except PushGoneError:
            db.delete(sub)
            db.commit()
            report.failed += 1
            report.removed += 1
            logger.info("push_subscription_removed user=%s reason=gone", sub.user_id)
        except Exception:
            report.failed += 1
            logger.exception("push_send_failed user=%s", sub.user_id)
    logger.info("push_daily_done sent=%s failed=%s removed=%s", report.sent, report.failed, report.removed)
    return report
