"""Collect inbox threads with activity after the watermark."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import structlog

from mail_triage.email.mailbox import Mailbox, MailMessage

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FetchedThread:
    """A thread ready for classification: its id and newest message body."""

    thread_id: str
    message: str

    def as_prompt_item(self) -> dict[str, str]:
        return {"threadId": self.thread_id, "message": self.message}


def _latest_message(messages: List[MailMessage], last_activity_ms: int) -> Optional[MailMessage]:
    # First match wins when several messages share the activity timestamp.
    for message in messages:
        if message.date_ms == last_activity_ms:
            return message
    return None


class ThreadFetcher:
    """Reads threads from a ``Mailbox``; never mutates it."""

    def __init__(self, mailbox: Mailbox) -> None:
        self._mailbox = mailbox

    def fetch(self, since_ms: int) -> List[FetchedThread]:
        threads = self._mailbox.list_inbox_threads_since(since_ms)
        fetched: List[FetchedThread] = []
        for thread in threads:
            if thread.last_activity_ms <= since_ms:
                continue
            messages = self._mailbox.get_messages(thread.thread_id)
            latest = _latest_message(messages, thread.last_activity_ms)
            if latest is None:
                if not messages:
                    logger.warning("thread_without_messages", thread_id=thread.thread_id)
                    continue
                latest = max(messages, key=lambda m: m.date_ms)
                logger.warning(
                    "thread_latest_message_mismatch",
                    thread_id=thread.thread_id,
                    last_activity_ms=thread.last_activity_ms,
                    used_date_ms=latest.date_ms,
                )
            fetched.append(FetchedThread(thread_id=thread.thread_id, message=latest.plain_body))
        logger.info("threads_fetched", since_ms=since_ms, count=len(fetched))
        return fetched
