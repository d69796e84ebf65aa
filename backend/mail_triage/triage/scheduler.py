"""Periodic triggers: registry, self re-arming and the dispatcher thread."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from mail_triage.database import session_scope
from mail_triage.models import Trigger

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class ScheduledTrigger:
    id: int
    handler_name: str
    interval_minutes: int
    next_fire_at: datetime


class TriggerRegistry(Protocol):
    """Storage half of the timer service."""

    def list_triggers(self) -> List[ScheduledTrigger]: ...

    def delete_trigger(self, trigger: ScheduledTrigger) -> None: ...

    def create_periodic_trigger(self, handler_name: str, interval_minutes: int) -> ScheduledTrigger: ...

    def mark_fired(self, trigger: ScheduledTrigger, fired_at: datetime) -> bool: ...


def _to_scheduled(row: Trigger) -> ScheduledTrigger:
    return ScheduledTrigger(
        id=row.id,
        handler_name=row.handler_name,
        interval_minutes=row.interval_minutes,
        next_fire_at=_as_utc(row.next_fire_at),
    )


class SqlTriggerRegistry:
    """``TriggerRegistry`` persisted in the ``triggers`` table."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def list_triggers(self) -> List[ScheduledTrigger]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(select(Trigger).order_by(Trigger.id)).all()
            return [_to_scheduled(row) for row in rows]

    def delete_trigger(self, trigger: ScheduledTrigger) -> None:
        with session_scope(self._session_factory) as session:
            row = session.get(Trigger, trigger.id)
            if row is not None:
                session.delete(row)

    def create_periodic_trigger(self, handler_name: str, interval_minutes: int) -> ScheduledTrigger:
        if interval_minutes < 1:
            raise ValueError(f"interval_minutes must be >= 1, got {interval_minutes}")
        with session_scope(self._session_factory) as session:
            row = Trigger(
                handler_name=handler_name,
                interval_minutes=interval_minutes,
                next_fire_at=self._clock() + timedelta(minutes=interval_minutes),
            )
            session.add(row)
            session.flush()
            return _to_scheduled(row)

    def mark_fired(self, trigger: ScheduledTrigger, fired_at: datetime) -> bool:
        """Advance the trigger's next fire time; False if it no longer exists."""
        with session_scope(self._session_factory) as session:
            row = session.get(Trigger, trigger.id)
            if row is None:
                return False
            row.next_fire_at = fired_at + timedelta(minutes=row.interval_minutes)
            return True


def rearm(registry: TriggerRegistry, handler_name: str, interval_minutes: int) -> ScheduledTrigger:
    """Replace every trigger bound to *handler_name* with one fresh periodic trigger."""
    removed = 0
    for trigger in registry.list_triggers():
        if trigger.handler_name == handler_name:
            registry.delete_trigger(trigger)
            removed += 1
    created = registry.create_periodic_trigger(handler_name, interval_minutes)
    logger.info(
        "trigger_rearmed",
        handler=handler_name,
        interval_minutes=interval_minutes,
        removed=removed,
        next_fire_at=created.next_fire_at.isoformat(),
    )
    return created


class TriggerDispatcher:
    """Fires due triggers by calling the handler registered under their name.

    Runs on a daemon thread between ``start()`` and ``stop()``; tests drive
    ``run_pending()`` directly.
    """

    def __init__(
        self,
        registry: TriggerRegistry,
        poll_interval_sec: float = 30,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._poll_interval_sec = poll_interval_sec
        self._clock = clock
        self._handlers: Dict[str, Callable[[], Any]] = {}
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def register(self, handler_name: str, handler: Callable[[], Any]) -> None:
        self._handlers[handler_name] = handler

    def run_pending(self, now: Optional[datetime] = None) -> int:
        """Fire every due trigger once and return how many fired."""
        now = now or self._clock()
        fired = 0
        for trigger in self._registry.list_triggers():
            if trigger.next_fire_at > now:
                continue
            handler = self._handlers.get(trigger.handler_name)
            if handler is None:
                logger.warning("trigger_handler_unknown", handler=trigger.handler_name, trigger_id=trigger.id)
                continue
            # A handler that re-arms may have deleted triggers later in this list.
            if not self._registry.mark_fired(trigger, now):
                continue
            fired += 1
            logger.info("trigger_fired", handler=trigger.handler_name, trigger_id=trigger.id)
            try:
                handler()
            except Exception as exc:
                logger.error("trigger_handler_failed", handler=trigger.handler_name, error=str(exc))
        return fired

    def _loop(self) -> None:
        logger.info("dispatcher_started", poll_interval_sec=self._poll_interval_sec)
        while not self._stop_event.is_set():
            try:
                self.run_pending()
            except Exception as exc:
                logger.error("dispatcher_poll_failed", error=str(exc))
            self._stop_event.wait(self._poll_interval_sec)
        logger.info("dispatcher_stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="trigger-dispatcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
