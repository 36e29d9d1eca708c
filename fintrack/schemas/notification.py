from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from fintrack.schemas.common import CamelModel


class SubscriptionKeys(CamelModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscriptionPayload(CamelModel):
    endpoint: str = Field(..., min_length=1)
    keys: SubscriptionKeys


class SubscribeRequest(CamelModel):
    subscription: Optional[PushSubscriptionPayload] = None


class UnsubscribeRequest(CamelModel):
    endpoint: str = ""


class SendResult(CamelModel):
    success: bool = True
    sent: int
    failed: int
    removed: int
    message: str


class ScheduleRequest(CamelModel):
    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(..., ge=0, le=59)


class ScheduleState(CamelModel):
    scheduled: bool
    hour: Optional[int] = None
    minute: Optional[int] = None
    scheduled_time: Optional[datetime] = None
    set_at: Optional[datetime] = None
