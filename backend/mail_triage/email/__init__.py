"""Mailbox access: protocol, Gmail IMAP implementation and MIME parsing."""

from mail_triage.email.mailbox import Mailbox, MailMessage, MailThread

__all__ = [
    "Mailbox",
    "MailMessage",
    "MailThread",
]
