"""Tests for trigger persistence, re-arming and dispatching."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mail_triage.models import Base
from mail_triage.triage.scheduler import SqlTriggerRegistry, TriggerDispatcher, rearm

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def registry():
    """Trigger registry over an in-memory SQLite database with a frozen clock."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    yield SqlTriggerRegistry(sessionmaker(bind=engine), clock=lambda: NOW)
    engine.dispose()


class TestSqlTriggerRegistry:
    def test_create_and_list(self, registry):
        created = registry.create_periodic_trigger("main", 10)
        listed = registry.list_triggers()
        assert listed == [created]
        assert created.handler_name == "main"
        assert created.interval_minutes == 10
        assert created.next_fire_at == NOW + timedelta(minutes=10)

    def test_delete(self, registry):
        trigger = registry.create_periodic_trigger("main", 10)
        registry.delete_trigger(trigger)
        assert registry.list_triggers() == []

    def test_delete_twice_is_harmless(self, registry):
        trigger = registry.create_periodic_trigger("main", 10)
        registry.delete_trigger(trigger)
        registry.delete_trigger(trigger)
        assert registry.list_triggers() == []

    def test_mark_fired_advances_next_fire(self, registry):
        trigger = registry.create_periodic_trigger("main", 10)
        fired_at = NOW + timedelta(minutes=11)
        assert registry.mark_fired(trigger, fired_at) is True
        assert registry.list_triggers()[0].next_fire_at == fired_at + timedelta(minutes=10)

    def test_mark_fired_on_deleted_trigger(self, registry):
        trigger = registry.create_periodic_trigger("main", 10)
        registry.delete_trigger(trigger)
        assert registry.mark_fired(trigger, NOW) is False

    def test_rejects_non_positive_interval(self, registry):
        with pytest.raises(ValueError):
            registry.create_periodic_trigger("main", 0)


class TestRearm:
    def test_installs_when_none_exist(self, registry):
        rearm(registry, "main", 10)
        triggers = registry.list_triggers()
        assert [(t.handler_name, t.interval_minutes) for t in triggers] == [("main", 10)]

    def test_replaces_duplicates_and_keeps_other_handlers(self, registry):
        registry.create_periodic_trigger("main", 5)
        registry.create_periodic_trigger("other", 30)
        registry.create_periodic_trigger("main", 5)

        created = rearm(registry, "main", 15)

        triggers = registry.list_triggers()
        mine = [t for t in triggers if t.handler_name == "main"]
        assert mine == [created]
        assert created.interval_minutes == 15
        assert [t.handler_name for t in triggers if t.handler_name != "main"] == ["other"]

    def test_repeated_rearm_keeps_exactly_one(self, registry):
        for _ in range(3):
            rearm(registry, "main", 10)
        assert len(registry.list_triggers()) == 1


class TestTriggerDispatcher:
    def test_fires_only_due_triggers(self, registry):
        registry.create_periodic_trigger("main", 10)
        calls = []
        dispatcher = TriggerDispatcher(registry)
        dispatcher.register("main", lambda: calls.append("main"))

        assert dispatcher.run_pending(NOW + timedelta(minutes=5)) == 0
        assert dispatcher.run_pending(NOW + timedelta(minutes=10)) == 1
        assert calls == ["main"]
        assert registry.list_triggers()[0].next_fire_at == NOW + timedelta(minutes=20)

    def test_unknown_handler_not_fired(self, registry):
        registry.create_periodic_trigger("ghost", 1)
        dispatcher = TriggerDispatcher(registry)
        assert dispatcher.run_pending(NOW + timedelta(hours=1)) == 0

    def test_handler_failure_does_not_stop_dispatch(self, registry):
        registry.create_periodic_trigger("broken", 1)
        registry.create_periodic_trigger("healthy", 1)
        calls = []

        def _broken():
            raise RuntimeError("imap down")

        dispatcher = TriggerDispatcher(registry)
        dispatcher.register("broken", _broken)
        dispatcher.register("healthy", lambda: calls.append("healthy"))

        assert dispatcher.run_pending(NOW + timedelta(minutes=1)) == 2
        assert calls == ["healthy"]

    def test_duplicate_triggers_removed_by_rearming_handler_fire_once(self, registry):
        registry.create_periodic_trigger("main", 1)
        registry.create_periodic_trigger("main", 1)
        calls = []

        def _cycle():
            calls.append("main")
            rearm(registry, "main", 10)

        dispatcher = TriggerDispatcher(registry)
        dispatcher.register("main", _cycle)

        assert dispatcher.run_pending(NOW + timedelta(minutes=1)) == 1
        assert calls == ["main"]
        assert len(registry.list_triggers()) == 1
