from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from fintrack.core.auth import SessionUser, get_current_user, require_cron_secret
from fintrack.core.config import settings
from fintrack.core.errors import ValidationError
from fintrack.db.session import db_manager, get_db
from fintrack.models.push_subscription import PushSubscription
from fintrack.schemas.common import MessageResponse
from fintrack.schemas.notification import (
    ScheduleRequest,
    ScheduleState,
    SendResult,
    SubscribeRequest,
    UnsubscribeRequest,
)
from fintrack.services.push import DeliveryReport, send_daily_notifications
from fintrack.services.scheduler import daily_scheduler

router = APIRouter(prefix="/notifications", tags=["notifications"])


def run_daily_job() -> None:
    """Scheduler callback: push the daily insight to every subscription."""
    db = db_manager.session()
    try:
        send_daily_notifications(db)
    finally:
        db.close()


def _result(report: DeliveryReport) -> SendResult:
    return SendResult(sent=report.sent, failed=report.failed, removed=report.removed, message=report.message)


@router.get("/vapid-public-key")
def vapid_public_key() -> dict:
    return {"publicKey": settings.vapid_public_key}


@router.post("/subscribe", response_model=MessageResponse)
def subscribe(
    payload: SubscribeRequest,
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> MessageResponse:
    sub = payload.subscription
    if sub is None:
        raise ValidationError("Subscription is required")
    row = db.execute(select(PushSubscription).where(PushSubscription.endpoint == sub.endpoint)).scalars().first()
    if row:
        row.user_id = current.id
        row.p256dh = sub.keys.p256dh
        row.auth = sub.keys.auth
    else:
        db.add(PushSubscription(user_id=current.id, endpoint=sub.endpoint, p256dh=sub.keys.p256dh, auth=sub.keys.auth))
    db.commit()
    return MessageResponse(message="Subscribed")


@router.post("/unsubscribe", response_model=MessageResponse)
def unsubscribe(
    payload: UnsubscribeRequest,
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> MessageResponse:
    if not payload.endpoint:
        raise ValidationError("Endpoint is required")
    row = db.execute(
        select(PushSubscription).where(
            PushSubscription.endpoint == payload.endpoint, PushSubscription.user_id == current.id
        )
    ).scalars().first()
    if row:
        db.delete(row)
        db.commit()
    return MessageResponse(message="Unsubscribed")


@router.post("/send-daily", response_model=SendResult, dependencies=[Depends(require_cron_secret)])
def send_daily(db: Session = Depends(get_db)) -> SendResult:
    return _result(send_daily_notifications(db))


@router.post("/send-now", response_model=SendResult)
def send_now(
    db: Session = Depends(get_db),
    current: SessionUser = Depends(get_current_user),
) -> SendResult:
    return _result(send_daily_notifications(db, user_id=current.id))


@router.get("/schedule", response_model=ScheduleState)
def get_schedule(_: SessionUser = Depends(get_current_user)) -> ScheduleState:
    return ScheduleState(**daily_scheduler.state())


@router.put("/schedule", response_model=ScheduleState, dependencies=[Depends(require_cron_secret)])
def set_schedule(payload: ScheduleRequest) -> ScheduleState:
    # The scheduler thread only runs when daily notifications are enabled.
    if not settings.daily_notifications_enabled:
        raise ValidationError("Daily notifications are disabled")
    daily_scheduler.schedule_daily(payload.hour, payload.minute, run_daily_job)
    return ScheduleState(**daily_scheduler.state())


@router.delete("/schedule", response_model=ScheduleState, dependencies=[Depends(require_cron_secret)])
def cancel_schedule() -> ScheduleState:
    daily_scheduler.cancel_daily()
    return ScheduleState(**daily_scheduler.state())
