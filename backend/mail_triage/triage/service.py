"""Wire the triage cycle to the configured IMAP, LLM and SQL collaborators."""

from __future__ import annotations

import threading

import structlog

from mail_triage.config import AppConfig
from mail_triage.database import get_session_factory
from mail_triage.email.client import GmailIMAPClient
from mail_triage.schemas import TriageSettings
from mail_triage.state.properties import SqlPropertyStore
from mail_triage.triage.cycle import CycleSummary, TriageCycle
from mail_triage.triage.llm import create_classifier
from mail_triage.triage.scheduler import SqlTriggerRegistry, TriggerDispatcher

logger = structlog.get_logger(__name__)

# Single-flight lease: at most one cycle per process at a time.
_cycle_lease = threading.Lock()


class CycleAlreadyRunningError(RuntimeError):
    """Another cycle holds the lease."""


def run_configured_cycle(config: AppConfig) -> CycleSummary:
    """Run one cycle with production collaborators. Requires ``init_db()``."""
    if not _cycle_lease.acquire(blocking=False):
        raise CycleAlreadyRunningError("A triage cycle is already in progress")
    try:
        settings = TriageSettings.load(config.triage_settings())
        factory = get_session_factory()
        classifier = create_classifier(config, settings.api_key.get_secret_value())
        with GmailIMAPClient(config) as mailbox:
            cycle = TriageCycle(
                settings,
                mailbox=mailbox,
                classifier=classifier,
                properties=SqlPropertyStore(factory),
                triggers=SqlTriggerRegistry(factory),
            )
            return cycle.execute()
    finally:
        _cycle_lease.release()


def build_dispatcher(config: AppConfig) -> TriggerDispatcher:
    """Dispatcher that fires the configured handler name into a full cycle."""
    dispatcher = TriggerDispatcher(
        SqlTriggerRegistry(get_session_factory()),
        poll_interval_sec=config.dispatcher_poll_sec,
    )

    def _handler() -> None:
        try:
            summary = run_configured_cycle(config)
        except CycleAlreadyRunningError:
            logger.info("cycle_skipped_busy", handler=config.handler_name)
            return
        logger.info("cycle_result", message=summary.message)

    dispatcher.register(config.handler_name, _handler)
    return dispatcher
