"""Key/value property store backed by the ``script_properties`` table."""

from __future__ import annotations

from typing import Optional, Protocol

import structlog
from sqlalchemy.orm import Session, sessionmaker

from mail_triage.database import session_scope
from mail_triage.models import ScriptProperty

logger = structlog.get_logger(__name__)


class KeyValueStore(Protocol):
    """Durable string-to-string mapping."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class SqlPropertyStore:
    """``KeyValueStore`` that commits every write in its own session."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        with session_scope(self._session_factory) as session:
            prop = session.get(ScriptProperty, key)
            return prop.value if prop is not None else None

    def set(self, key: str, value: str) -> None:
        with session_scope(self._session_factory) as session:
            prop = session.get(ScriptProperty, key)
            if prop is None:
                session.add(ScriptProperty(key=key, value=value))
            else:
                prop.value = value
        logger.debug("property_set", key=key, value=value)
