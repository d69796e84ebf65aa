"""Acceptance check for classifier output."""

from __future__ import annotations

from typing import Any

import structlog

logger = structlog.get_logger(__name__)


def accept_response(result: Any, batch_size: int) -> bool:
    """Accept any JSON array; element shape and length are not checked."""
    if result is not None and isinstance(result, list):
        return True
    logger.warning(
        "classifier_response_rejected",
        reason="missing" if result is None else f"not an array ({type(result).__name__})",
        batch_size=batch_size,
        note="these mails will be processed again next cycle",
    )
    return False
