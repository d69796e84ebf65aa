"""Apply accepted classification results to the mailbox."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Sequence

import structlog

from mail_triage.email.mailbox import Mailbox
from mail_triage.schemas import DEFAULT_LABEL

logger = structlog.get_logger(__name__)


class LabelApplier:
    """Archives and labels each classified thread, leaving ``INBOX`` picks alone."""

    def __init__(self, mailbox: Mailbox) -> None:
        self._mailbox = mailbox

    def apply(self, results: Sequence[Any], total_tokens: int = 0) -> int:
        """Apply *results* and return the number of threads relabelled."""
        applied = 0
        for entry in results:
            if not isinstance(entry, Mapping):
                continue
            label = entry.get("label")
            thread_id = entry.get("threadId")
            if not label or label == DEFAULT_LABEL:
                continue
            if not thread_id:
                logger.warning("classification_without_thread_id", label=label)
                continue
            if self._relabel(str(thread_id), str(label), total_tokens):
                applied += 1
        return applied

    def _relabel(self, thread_id: str, label: str, total_tokens: int) -> bool:
        mailbox = self._mailbox
        messages = mailbox.get_messages(thread_id)
        subject = messages[0].subject if messages else ""
        logger.info(
            "thread_labeled",
            thread_id=thread_id,
            subject=subject,
            label=label,
            total_tokens=total_tokens,
        )
        label_name = mailbox.get_or_create_label(label)
        archived = mailbox.archive_thread(thread_id)
        attached = mailbox.attach_label(thread_id, label_name)
        mailbox.refresh(thread_id)
        return archived and attached
