"""Tests for the OpenAI classifier adapter."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from mail_triage.config import AppConfig
from mail_triage.triage.llm import ClassifierResponse, OpenAIClassifier, create_classifier


class _FakeCompletions:
    def __init__(self, content, usage=None):
        self._content = content
        self._usage = usage
        self.requests: list[dict] = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        message = SimpleNamespace(content=self._content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=self._usage)


def _client(content, usage=None):
    completions = _FakeCompletions(content, usage)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def _config(**overrides) -> AppConfig:
    return AppConfig(email_username="me@example.com", email_password="secret", **overrides)


def test_unwraps_results_envelope_and_counts_tokens():
    client, completions = _client(
        '{"results": [{"threadId": "A", "label": "academic"}]}',
        SimpleNamespace(prompt_tokens=100, completion_tokens=20, total_tokens=120),
    )
    response = OpenAIClassifier(_config(), "sk-test", client=client).classify("prompt text")

    assert response == ClassifierResponse(
        result=[{"threadId": "A", "label": "academic"}],
        prompt_tokens=100,
        completion_tokens=20,
        total_tokens=120,
    )
    request = completions.requests[0]
    assert request["response_format"] == {"type": "json_object"}
    assert request["messages"][-1] == {"role": "user", "content": "prompt text"}


def test_bare_array_passed_through():
    client, _ = _client('[{"threadId": "A", "label": "INBOX"}]')
    response = OpenAIClassifier(_config(), "sk-test", client=client).classify("p")
    assert response.result == [{"threadId": "A", "label": "INBOX"}]
    assert response.total_tokens == 0


def test_object_without_envelope_returned_as_is():
    client, _ = _client('{"label": "academic"}')
    assert OpenAIClassifier(_config(), "k", client=client).classify("p").result == {"label": "academic"}


def test_empty_content_is_none():
    client, _ = _client("")
    assert OpenAIClassifier(_config(), "k", client=client).classify("p").result is None


def test_undecodable_content_returned_raw():
    client, _ = _client("Sorry, I cannot help with that.")
    result = OpenAIClassifier(_config(), "k", client=client).classify("p").result
    assert result == "Sorry, I cannot help with that."


def test_total_tokens_derived_when_missing():
    client, _ = _client("[]", SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=None))
    assert OpenAIClassifier(_config(), "k", client=client).classify("p").total_tokens == 10


def test_transport_errors_propagate():
    class _Boom:
        def create(self, **kwargs):
            raise ConnectionError("network down")

    client = SimpleNamespace(chat=SimpleNamespace(completions=_Boom()))
    with pytest.raises(ConnectionError):
        OpenAIClassifier(_config(), "k", client=client).classify("p")


def test_unknown_provider_rejected():
    with pytest.raises(ValueError, match="Unknown LLM provider"):
        create_classifier(_config(llm_provider="nope"), "k")
