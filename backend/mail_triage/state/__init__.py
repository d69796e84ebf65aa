"""Persisted scalar state: key/value properties and the triage watermark."""

from mail_triage.state.properties import KeyValueStore, SqlPropertyStore
from mail_triage.state.watermark import WatermarkStore

__all__ = [
    "KeyValueStore",
    "SqlPropertyStore",
    "WatermarkStore",
]
