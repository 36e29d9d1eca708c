"""
Daily notification scheduler.

Single slot ("daily") holding a cron job for hour:minute in the configured
zone, so the wall-clock time stays right across DST changes. When the job
fires the callback runs and the recorded next fire time moves to the next day.
The schedule is written to a small JSON state file and restored at startup.
"""
from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from datetime import datetime, time, timedelta
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from fintrack.core.config import settings

logger = logging.getLogger("fintrack.scheduler")

SLOT = "daily"


def next_fire_time(now: datetime, hour: int, minute: int) -> datetime:
    """Next hour:minute strictly after `now` (today if not yet passed, else tomorrow)."""
    candidate = datetime.combine(now.date(), time(hour, minute), tzinfo=now.tzinfo)
    if now >= candidate:
        candidate = datetime.combine(now.date() + timedelta(days=1), time(hour, minute), tzinfo=now.tzinfo)
    return candidate


class DailyNotificationScheduler:
    def __init__(
        self,
        state_path: str | Path,
        timezone: str,
        scheduler: BackgroundScheduler | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.state_path = Path(state_path)
        self.timezone = timezone
        self.tz = ZoneInfo(timezone)
        self._scheduler = scheduler or BackgroundScheduler(timezone=timezone)
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._callback: Callable[[], None] | None = None
        self._hour: int | None = None
        self._minute: int | None = None
        self._next_fire: datetime | None = None
        self._set_at: datetime | None = None
        # Bumped on every schedule or cancel so an in-flight fire can tell it was superseded.
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def scheduled(self) -> bool:
        return self._next_fire is not None

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def schedule_daily(
        self,
        hour: int,
        minute: int,
        callback: Callable[[], None],
    ) -> datetime:
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError(f"Invalid time {hour}:{minute}")
        with self._lock:
            self._generation += 1
            self._remove_job()
            now = self._clock()
            fire_at = next_fire_time(now, hour, minute)
            self._scheduler.add_job(
                self._fire,
                trigger=CronTrigger(hour=hour, minute=minute, timezone=self.timezone),
                id=SLOT,
                replace_existing=True,
                coalesce=True,
                misfire_grace_time=3600,
            )
            self._callback = callback
            self._hour, self._minute = hour, minute
            self._next_fire = fire_at
            self._set_at = now
            self._write_state()
        logger.info("daily_scheduled at=%s delay_min=%s", fire_at.isoformat(), round((fire_at - now).total_seconds() / 60))
        return fire_at

    def cancel_daily(self) -> None:
        with self._lock:
            self._generation += 1
            self._remove_job()
            self._callback = None
            self._hour = self._minute = None
            self._next_fire = self._set_at = None
            self.state_path.unlink(missing_ok=True)
        logger.info("daily_cancelled")

    def restore(self, callback: Callable[[], None]) -> datetime | None:
        """Re-arm the schedule recorded in the state file, if any."""
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
            hour, minute = int(data["hour"]), int(data["minute"])
        except FileNotFoundError:
            return None
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("daily_state_invalid path=%s error=%s", self.state_path, e)
            return None
        return self.schedule_daily(hour, minute, callback)

    def state(self) -> dict[str, Any]:
        with self._lock:
            return {
                "scheduled": self.scheduled,
                "hour": self._hour,
                "minute": self._minute,
                "scheduled_time": self._next_fire,
                "set_at": self._set_at,
            }

    def _fire(self) -> None:
        with self._lock:
            generation = self._generation
            callback, hour, minute, fired_for = self._callback, self._hour, self._minute, self._next_fire
        if callback is None or hour is None or minute is None:
            return
        # The callback runs unlocked; it may itself reschedule or cancel.
        try:
            callback()
        except Exception:
            logger.exception("daily_callback_failed")
        with self._lock:
            if generation != self._generation:
                logger.info("daily_fire_superseded")
                return
            now = self._clock()
            # A fire landing just before hh:mm still belongs to today's slot.
            self._next_fire = next_fire_time(max(now, fired_for) if fired_for else now, hour, minute)
            self._write_state()
            next_fire = self._next_fire
        logger.info("daily_fired next=%s", next_fire.isoformat())

    def _remove_job(self) -> None:
        try:
            self._scheduler.remove_job(SLOT)
        except JobLookupError:
            pass

    def _write_state(self) -> None:
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "hour": self._hour,
            "minute": self._minute,
            "scheduledTime": self._next_fire.isoformat() if self._next_fire else None,
            "setAt": self._set_at.isoformat() if self._set_at else None,
        }
        self.state_path.write_text(json.dumps(payload), encoding="utf-8")


daily_scheduler = DailyNotificationScheduler(settings.notification_schedule_path, settings.scheduler_timezone)
