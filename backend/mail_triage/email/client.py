"""Gmail IMAP mailbox with retry logic and proper resource management.

Gmail exposes labels as IMAP mailboxes and adds the ``X-GM-THRID`` and
``X-GM-LABELS`` extensions, which is all the triage cycle needs: threads
are grouped by ``X-GM-THRID``, archiving removes the ``\\Inbox`` label and
labelling adds one.
"""

from __future__ import annotations

import email as email_lib
import imaplib
import re
import socket
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from imapclient import imap_utf7
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mail_triage.config import AppConfig
from mail_triage.email.mailbox import MailMessage, MailThread
from mail_triage.email.parser import parse_mail_message

logger = structlog.get_logger(__name__)

# Transient errors worth retrying
_RETRYABLE = (
    imaplib.IMAP4.abort,
    socket.timeout,
    ConnectionResetError,
    ConnectionRefusedError,
    OSError,
)

_THRID_RE = re.compile(rb"X-GM-THRID\s+(\d+)")
_FETCH_CHUNK = 200


def quote_mailbox_name(name: str) -> str:
    """Quote *name* as an IMAP mailbox, encoded in modified UTF-7."""
    encoded = imap_utf7.encode(name).decode("ascii")
    escaped = encoded.replace("\\", "\\\\").replace('"', r"\"")
    return f'"{escaped}"'


def _internaldate_ms(header: bytes) -> Optional[int]:
    # INTERNALDATE has whole-second precision.
    parsed = imaplib.Internaldate2tuple(header)
    if parsed is None:
        return None
    return int(time.mktime(parsed)) * 1000


def _chunks(uids: List[bytes], size: int = _FETCH_CHUNK) -> Iterable[List[bytes]]:
    for start in range(0, len(uids), size):
        yield uids[start:start + size]


class GmailIMAPClient:
    """Gmail IMAP connection implementing the ``Mailbox`` protocol.

    Usage::

        with GmailIMAPClient(config) as mailbox:
            threads = mailbox.list_inbox_threads_since(since_ms)
    """

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._mail: imaplib.IMAP4_SSL | None = None
        self._selected: Tuple[str, bool] | None = None

    # ── Context manager ───────────────────────────────────
    def __enter__(self) -> "GmailIMAPClient":
        self.connect()
        return self

    def __exit__(self, *exc: object) -> None:
        self.disconnect()

    # ── Connection ────────────────────────────────────────
    @retry(
        retry=retry_if_exception_type(_RETRYABLE),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=15),
        reraise=True,
    )
    def connect(self) -> None:
        """Establish the IMAP connection and log in."""
        cfg = self._config
        socket.setdefaulttimeout(cfg.imap_timeout_sec)

        logger.info("imap_connecting", host=cfg.imap_host, port=cfg.imap_port)
        self._mail = imaplib.IMAP4_SSL(cfg.imap_host, cfg.imap_port)

        logger.info("imap_logging_in", username=cfg.email_username)
        self._mail.login(cfg.email_username, cfg.email_password.get_secret_value())
        self._selected = None

    def disconnect(self) -> None:
        """Safely close the IMAP connection."""
        if self._mail is not None:
            try:
                self._mail.logout()
                logger.debug("imap_disconnected")
            except (imaplib.IMAP4.error, OSError) as exc:
                logger.debug("imap_logout_failed", error=str(exc))
            finally:
                self._mail = None
                self._selected = None

    def _ensure_connected(self) -> imaplib.IMAP4_SSL:
        if self._mail is None:
            raise RuntimeError("IMAP client not connected — call connect() first")
        return self._mail

    def _select(self, folder: str, readonly: bool) -> imaplib.IMAP4_SSL:
        mail = self._ensure_connected()
        if self._selected == (folder, readonly):
            return mail
        status, _ = mail.select(quote_mailbox_name(folder), readonly=readonly)
        if status != "OK":
            raise RuntimeError(f"Cannot select folder: {folder}")
        self._selected = (folder, readonly)
        return mail

    def _search(self, mail: imaplib.IMAP4_SSL, *criteria: str) -> List[bytes]:
        status, data = mail.uid("SEARCH", None, *criteria)
        if status != "OK":
            raise RuntimeError(f"IMAP UID SEARCH failed: {' '.join(criteria)}")
        return (data[0] or b"").split()

    def _thread_uids(self, thread_id: str, readonly: bool) -> Tuple[imaplib.IMAP4_SSL, List[bytes]]:
        mail = self._select(self._config.all_mail_folder, readonly=readonly)
        return mail, self._search(mail, "X-GM-THRID", thread_id)

    # ── Reading ───────────────────────────────────────────
    def list_inbox_threads_since(self, since_ms: int) -> List[MailThread]:
        """Return inbox threads whose newest inbox message arrived after *since_ms*.

        INTERNALDATE has one-second precision, so threads stamped in the
        watermark's own second are included. Ordered newest activity first, like the Gmail inbox view.
        """
        mail = self._select(self._config.inbox_folder, readonly=True)

        # SINCE has day granularity in the server's timezone; search a day
        # early and filter on INTERNALDATE below.
        since_day = datetime.fromtimestamp(since_ms / 1000, tz=timezone.utc) - timedelta(days=1)
        uids = self._search(mail, "SINCE", since_day.strftime("%d-%b-%Y"))

        last_activity: Dict[str, int] = {}
        for chunk in _chunks(uids):
            status, fetched = mail.uid("FETCH", b",".join(chunk).decode(), "(X-GM-THRID INTERNALDATE)")
            if status != "OK":
                raise RuntimeError("IMAP FETCH (X-GM-THRID INTERNALDATE) failed")
            for item in fetched:
                header = item[0] if isinstance(item, tuple) else item
                if not isinstance(header, bytes):
                    continue
                match = _THRID_RE.search(header)
                date_ms = _internaldate_ms(header)
                if match is None or date_ms is None:
                    logger.warning("imap_fetch_unparsed", response=header[:120])
                    continue
                thread_id = match.group(1).decode()
                last_activity[thread_id] = max(date_ms, last_activity.get(thread_id, 0))

        # The watermark carries milliseconds; a message stamped in the
        # watermark's own second may still have arrived after it.
        boundary_ms = since_ms - since_ms % 1000
        threads = [
            MailThread(thread_id=tid, last_activity_ms=ms)
            for tid, ms in last_activity.items()
            if ms >= boundary_ms
        ]
        threads.sort(key=lambda t: t.last_activity_ms, reverse=True)
        logger.info("imap_inbox_threads_found", since_ms=since_ms, uids=len(uids), threads=len(threads))
        return threads

    @retry(
        retry=retry_if_exception_type(_RETRYABLE),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    def get_messages(self, thread_id: str) -> List[MailMessage]:
        """Return the thread's messages in mailbox order without marking them read."""
        mail, uids = self._thread_uids(thread_id, readonly=True)
        messages: List[MailMessage] = []
        for chunk in _chunks(uids):
            status, fetched = mail.uid("FETCH", b",".join(chunk).decode(), "(INTERNALDATE BODY.PEEK[])")
            if status != "OK":
                raise RuntimeError(f"IMAP FETCH failed for thread {thread_id}")
            for item in fetched:
                if not isinstance(item, tuple) or len(item) < 2:
                    continue
                header, raw = item[0], item[1]
                date_ms = _internaldate_ms(header)
                if date_ms is None or not isinstance(raw, bytes):
                    logger.warning("imap_message_unparsed", thread_id=thread_id)
                    continue
                messages.append(parse_mail_message(email_lib.message_from_bytes(raw), date_ms))
        return messages

    # ── Mutations ─────────────────────────────────────────
    def get_or_create_label(self, name: str) -> str:
        """Return *name*, creating the Gmail label first if it does not exist."""
        mail = self._ensure_connected()
        status, data = mail.list('""', quote_mailbox_name(name))
        if status == "OK" and any(entry for entry in data):
            return name
        status, data = mail.create(quote_mailbox_name(name))
        if status != "OK":
            raise RuntimeError(f"Could not create label {name}: {data!r}")
        logger.info("imap_label_created", label=name)
        return name

    def _store_labels(self, thread_id: str, op: str, labels: str) -> bool:
        mail, uids = self._thread_uids(thread_id, readonly=False)
        if not uids:
            logger.warning("imap_thread_not_found", thread_id=thread_id)
            return False
        status, data = mail.uid("STORE", b",".join(uids).decode(), op, labels)
        if status != "OK":
            raise RuntimeError(f"IMAP STORE {op} failed for thread {thread_id}: {data!r}")
        return True

    def archive_thread(self, thread_id: str) -> bool:
        return self._store_labels(thread_id, "-X-GM-LABELS", r"(\Inbox)")

    def attach_label(self, thread_id: str, label: str) -> bool:
        return self._store_labels(thread_id, "+X-GM-LABELS", f"({quote_mailbox_name(label)})")

    def refresh(self, thread_id: str) -> None:
        self._ensure_connected().noop()
