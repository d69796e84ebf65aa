"""The triage watermark: newest activity time already handed to the classifier."""

from __future__ import annotations

from typing import Optional

import structlog

from mail_triage.state.properties import KeyValueStore

logger = structlog.get_logger(__name__)

WATERMARK_KEY = "prev"


class WatermarkStore:
    """Reads and writes an epoch-millisecond timestamp stored as a string."""

    def __init__(self, store: KeyValueStore, key: str = WATERMARK_KEY) -> None:
        self._store = store
        self._key = key

    def read(self) -> Optional[int]:
        raw = self._store.get(self._key)
        if raw is None or not str(raw).strip():
            return None
        try:
            return int(float(raw))
        except (ValueError, OverflowError):
            logger.warning("watermark_unparsable", key=self._key, raw=raw)
            return None

    def write(self, timestamp_ms: int) -> None:
        self._store.set(self._key, str(int(timestamp_ms)))
        logger.debug("watermark_written", key=self._key, timestamp_ms=int(timestamp_ms))
