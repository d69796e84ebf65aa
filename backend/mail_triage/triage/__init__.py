"""Triage cycle: fetching, batching, prompting, classification, labelling, scheduling."""

from mail_triage.triage.cycle import CycleSummary, TriageCycle

__all__ = [
    "CycleSummary",
    "TriageCycle",
]
