"""Email MIME parsing — subject decoding and body extraction."""

from __future__ import annotations

from email.header import decode_header, make_header
from email.message import Message
from typing import List, Optional

from bs4 import BeautifulSoup

from mail_triage.email.mailbox import MailMessage

# ── Noise detection tokens ────────────────────────────────
_NOISE_TOKENS = [
    "color:",
    "font-",
    "px",
    "{",
    "}",
    "margin",
    "padding",
    "mso-",
]


def is_noise_text(text: str, threshold: int = 2) -> bool:
    """Return True if *text* looks like CSS / HTML junk rather than real content."""
    lowered = text.lower()
    hits = sum(1 for tok in _NOISE_TOKENS if tok in lowered)
    return hits >= threshold


def decode_mime_text(value: Optional[str]) -> str:
    """Decode a MIME-encoded header value to a plain string."""
    if not value:
        return ""
    try:
        return str(make_header(decode_header(value))).strip()
    except Exception:
        return value.strip()


def _html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text("\n", strip=True)


def _decode_payload(part: Message) -> str:
    payload = part.get_payload(decode=True) or b""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode(errors="replace")


def extract_body_text(msg: Message) -> str:
    """Extract the best plain-text representation of the email body."""
    plain_parts: List[str] = []
    html_parts: List[str] = []

    parts = msg.walk() if msg.is_multipart() else [msg]
    for part in parts:
        ctype = part.get_content_type()
        if ctype not in ("text/plain", "text/html"):
            continue
        if "attachment" in str(part.get("Content-Disposition", "")).lower():
            continue
        text = _decode_payload(part)
        if ctype == "text/html":
            html_parts.append(_html_to_text(text))
        else:
            plain_parts.append(text)

    plain_text = "\n".join(plain_parts)
    html_text = "\n".join(html_parts)

    # Prefer plain-text unless it's mostly noise (CSS leftovers)
    if plain_text and not is_noise_text(plain_text):
        return plain_text
    return html_text if html_text else plain_text


def parse_mail_message(msg: Message, date_ms: int) -> MailMessage:
    """Reduce a stdlib ``email.Message`` to a ``MailMessage``.

    *date_ms* is the server-side arrival time (IMAP INTERNALDATE), which is
    what thread activity is measured in, not the sender's Date header.
    """
    return MailMessage(
        subject=decode_mime_text(msg.get("Subject", "")),
        date_ms=date_ms,
        plain_body=extract_body_text(msg),
    )
