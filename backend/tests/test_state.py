"""Tests for the SQL property store and the watermark wrapper."""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mail_triage.models import Base
from mail_triage.state import SqlPropertyStore, WatermarkStore


@pytest.fixture
def session_factory():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


class _DictStore:
    def __init__(self, data=None):
        self.data = dict(data or {})

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value


class TestSqlPropertyStore:
    def test_missing_key_is_none(self, session_factory):
        assert SqlPropertyStore(session_factory).get("prev") is None

    def test_set_then_get(self, session_factory):
        store = SqlPropertyStore(session_factory)
        store.set("prev", "1700000000000")
        assert store.get("prev") == "1700000000000"

    def test_overwrite(self, session_factory):
        store = SqlPropertyStore(session_factory)
        store.set("prev", "1")
        store.set("prev", "2")
        assert store.get("prev") == "2"

    def test_persists_across_store_instances(self, session_factory):
        SqlPropertyStore(session_factory).set("prev", "42")
        assert SqlPropertyStore(session_factory).get("prev") == "42"


class TestWatermarkStore:
    def test_absent(self):
        assert WatermarkStore(_DictStore()).read() is None

    def test_written_as_string(self):
        backing = _DictStore()
        WatermarkStore(backing).write(1760875200000)
        assert backing.data == {"prev": "1760875200000"}

    def test_round_trip_through_sql(self, session_factory):
        watermark = WatermarkStore(SqlPropertyStore(session_factory))
        watermark.write(1760875200000)
        assert watermark.read() == 1760875200000

    def test_numeric_coercion(self):
        assert WatermarkStore(_DictStore({"prev": "1760875200000.0"})).read() == 1760875200000

    @pytest.mark.parametrize("raw", ["", "not-a-number", "nan"])
    def test_unparsable_reads_as_absent(self, raw):
        assert WatermarkStore(_DictStore({"prev": raw})).read() is None
