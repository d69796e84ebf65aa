"""One triage cycle: fetch, classify in batches, label, re-arm.

Watermark handling is cycle-wide. The watermark advances to the cycle start
time before any classification, and any rejected batch resets it to the
cycle's effective starting point, so the whole window is scanned again next
cycle. Accepted batches never write it. Threads relabelled by accepted
batches have left the inbox and are not picked up twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Union

import structlog

from mail_triage.email.mailbox import Mailbox
from mail_triage.schemas import TriageSettings
from mail_triage.state.properties import KeyValueStore
from mail_triage.state.watermark import WatermarkStore
from mail_triage.triage.batching import chunk
from mail_triage.triage.fetcher import ThreadFetcher
from mail_triage.triage.labeler import LabelApplier
from mail_triage.triage.llm import ClassifierProvider
from mail_triage.triage.prompt import render_prompt
from mail_triage.triage.scheduler import TriggerRegistry, rearm
from mail_triage.triage.validation import accept_response

logger = structlog.get_logger(__name__)

DEFAULT_LOOKBACK_MS = 60 * 60 * 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """UTC ISO-8601 with milliseconds and a ``Z`` suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


@dataclass
class CycleSummary:
    """Result summary after a triage cycle."""

    started_at: datetime
    threads_fetched: int = 0
    batches: int = 0
    failed_batches: int = 0
    threads_labeled: int = 0
    total_tokens: int = 0
    failed_batch_indexes: list[int] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"{iso_timestamp(self.started_at)}: {self.threads_fetched} mails were processed."


class TriageCycle:
    """Runs a single triage cycle against injected collaborators."""

    def __init__(
        self,
        settings: Union[TriageSettings, Mapping[str, Any]],
        *,
        mailbox: Mailbox,
        classifier: ClassifierProvider,
        properties: KeyValueStore,
        triggers: TriggerRegistry,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._raw_settings = settings
        self._mailbox = mailbox
        self._classifier = classifier
        self._watermark = WatermarkStore(properties)
        self._triggers = triggers
        self._clock = clock

    def run(self) -> str:
        """Run the cycle and return the one-line summary."""
        return self.execute().message

    def execute(self) -> CycleSummary:
        settings = TriageSettings.load(self._raw_settings)

        now = self._clock()
        now_ms = epoch_ms(now)
        previous = self._watermark.read()
        since_ms = previous if previous is not None else now_ms - DEFAULT_LOOKBACK_MS

        with structlog.contextvars.bound_contextvars(handler=settings.handler_name):
            logger.info(
                "cycle_starting",
                since_ms=since_ms,
                watermark_present=previous is not None,
                labels=settings.label_names,
            )

            threads = ThreadFetcher(self._mailbox).fetch(since_ms)
            self._watermark.write(now_ms)

            summary = CycleSummary(started_at=now, threads_fetched=len(threads))
            applier = LabelApplier(self._mailbox)
            batches = chunk(threads, settings.batch_size)
            for index, batch in enumerate(batches, start=1):
                summary.batches += 1
                logger.info("batch_classifying", batch=index, of=len(batches), size=len(batch))
                response = self._classifier.classify(render_prompt(settings.label_descriptors, batch))
                summary.total_tokens += response.total_tokens

                if not accept_response(response.result, len(batch)):
                    summary.failed_batches += 1
                    summary.failed_batch_indexes.append(index)
                    self._watermark.write(since_ms)
                    continue
                summary.threads_labeled += applier.apply(response.result, response.total_tokens)

            rearm(self._triggers, settings.handler_name, settings.trigger_interval_minutes)

            logger.info(
                "cycle_complete",
                fetched=summary.threads_fetched,
                batches=summary.batches,
                failed_batches=summary.failed_batches,
                failed_batch_indexes=summary.failed_batch_indexes,
                labeled=summary.threads_labeled,
                total_tokens=summary.total_tokens,
            )
        return summary
