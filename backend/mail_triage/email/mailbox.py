"""Mailbox collaborator contract used by the triage cycle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol


@dataclass(frozen=True)
class MailThread:
    """A conversation as seen in the inbox at listing time."""

    thread_id: str
    last_activity_ms: int


@dataclass(frozen=True)
class MailMessage:
    """One message of a thread, reduced to what triage needs."""

    subject: str
    date_ms: int
    plain_body: str


class Mailbox(Protocol):
    """Operations the triage cycle performs against a mail store."""

    def list_inbox_threads_since(self, since_ms: int) -> List[MailThread]: ...

    def get_messages(self, thread_id: str) -> List[MailMessage]: ...

    def get_or_create_label(self, name: str) -> str: ...

    def archive_thread(self, thread_id: str) -> bool: ...

    def attach_label(self, thread_id: str, label: str) -> bool: ...

    def refresh(self, thread_id: str) -> None: ...
