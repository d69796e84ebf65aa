"""Structured-output prompt for batch label selection.

The prompt carries three JSON schemas inline: the email batch, the label
set, and the expected answer. The one-label-per-email and equal-length rules
are stated to the model; nothing here enforces them.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

from mail_triage.schemas import LabelDescriptor
from mail_triage.triage.fetcher import FetchedThread

EMAILS_SCHEMA: Dict[str, Any] = {
    "description": "Emails including threadId and message.",
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "threadId": {"description": "Thread ID of the email.", "type": "string"},
            "message": {"description": "Email body.", "type": "string"},
        },
    },
}

LABELS_SCHEMA: Dict[str, Any] = {
    "description": "List of labels including descriptions of the labels.",
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "label": {"description": "Label name.", "type": "string"},
            "description": {"description": "Description of the label.", "type": "string"},
        },
    },
}

RESULT_SCHEMA: Dict[str, Any] = {
    "description": 'One entry per element of "Emails", with a label name chosen from "Labels".',
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "label": {"description": "Selected label name.", "type": "string"},
            "threadId": {"description": "Thread ID of the email.", "type": "string"},
        },
    },
}


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def render_prompt(labels: Sequence[LabelDescriptor], batch: Sequence[FetchedThread]) -> str:
    """Render the classification instruction for one batch."""
    emails: List[Dict[str, str]] = [item.as_prompt_item() for item in batch]
    label_set = [d.model_dump() for d in labels]
    lines = [
        "Run the following steps in order.",
        '1. Read and understand every email in the JSON array "Emails".',
        f"<Emails>{_dump(emails)}</Emails>",
        '"Emails" follows the JSON schema "EmailsSchema".',
        f"<EmailsSchema>{_dump(EMAILS_SCHEMA)}</EmailsSchema>",
        '2. Read and understand the JSON array "Labels".',
        f"<Labels>{_dump(label_set)}</Labels>",
        '"Labels" follows the JSON schema "LabelsSchema".',
        f"<LabelsSchema>{_dump(LABELS_SCHEMA)}</LabelsSchema>",
        '3. For each element of "Emails", output one element holding the name of the label '
        'from "Labels" that is most strongly related to its message.',
        'Return a JSON array following the JSON schema "ResultSchema".',
        f"<ResultSchema>{_dump(RESULT_SCHEMA)}</ResultSchema>",
        "<IMPORTANT>",
        '- Each element of "Emails" must receive exactly one label name.',
        '- The output array must have the same length as "Emails".',
        "</IMPORTANT>",
    ]
    return "\n".join(lines)
