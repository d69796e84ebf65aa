"""Tests for cycle settings validation and normalization."""

from __future__ import annotations

import pytest

from mail_triage.config import AppConfig
from mail_triage.schemas import ConfigurationError, LabelDescriptor, TriageSettings


def _raw(**overrides):
    raw = {
        "handlerName": "triage_cycle",
        "apiKey": "sk-test",
        "labelDescriptors": [
            {"label": "academic", "description": "University and research"},
            {"label": "advertisement", "description": "Ads and promotions"},
        ],
    }
    raw.update(overrides)
    return raw


class TestDefaults:
    def test_batch_size_and_interval_default(self):
        settings = TriageSettings.load(_raw())
        assert settings.batch_size == 5
        assert settings.trigger_interval_minutes == 10

    @pytest.mark.parametrize("falsy", [None, 0, ""])
    def test_falsy_values_fall_back_to_defaults(self, falsy):
        settings = TriageSettings.load(_raw(batchSize=falsy, triggerIntervalMinutes=falsy))
        assert settings.batch_size == 5
        assert settings.trigger_interval_minutes == 10

    def test_explicit_values_kept(self):
        settings = TriageSettings.load(_raw(batchSize=3, triggerIntervalMinutes=15))
        assert settings.batch_size == 3
        assert settings.trigger_interval_minutes == 15

    def test_snake_case_keys_accepted(self):
        settings = TriageSettings.load(
            {
                "handler_name": "main",
                "api_key": "sk-test",
                "label_descriptors": [{"label": "academic", "description": ""}],
                "batch_size": 2,
            }
        )
        assert settings.handler_name == "main"
        assert settings.batch_size == 2


class TestInboxLabel:
    def test_inbox_appended_when_missing(self):
        settings = TriageSettings.load(_raw())
        inbox = [d for d in settings.label_descriptors if d.label == "INBOX"]
        assert inbox == [LabelDescriptor(label="INBOX", description="Others")]
        assert settings.label_names == ["academic", "advertisement", "INBOX"]

    def test_inbox_not_duplicated(self):
        labels = [
            {"label": "academic", "description": "University"},
            {"label": "INBOX", "description": "Everything else"},
        ]
        settings = TriageSettings.load(_raw(labelDescriptors=labels))
        assert settings.label_names == ["academic", "INBOX"]
        assert settings.label_descriptors[1].description == "Everything else"

    def test_caller_list_not_mutated(self):
        labels = [{"label": "academic", "description": "University"}]
        TriageSettings.load(_raw(labelDescriptors=labels))
        assert labels == [{"label": "academic", "description": "University"}]


class TestConfigurationErrors:
    @pytest.mark.parametrize("key", ["handlerName", "apiKey", "labelDescriptors"])
    def test_missing_required_field(self, key):
        raw = _raw()
        del raw[key]
        with pytest.raises(ConfigurationError) as excinfo:
            TriageSettings.load(raw)
        assert excinfo.value.problems

    def test_blank_handler_name(self):
        with pytest.raises(ConfigurationError, match="handlerName"):
            TriageSettings.load(_raw(handlerName="  "))

    def test_blank_api_key(self):
        with pytest.raises(ConfigurationError, match="apiKey"):
            TriageSettings.load(_raw(apiKey=""))

    def test_label_set_must_be_a_list(self):
        with pytest.raises(ConfigurationError):
            TriageSettings.load(_raw(labelDescriptors="academic"))

    def test_label_entries_need_a_name(self):
        with pytest.raises(ConfigurationError):
            TriageSettings.load(_raw(labelDescriptors=[{"description": "nameless"}]))

    def test_negative_batch_size_rejected(self):
        with pytest.raises(ConfigurationError):
            TriageSettings.load(_raw(batchSize=-1))

    def test_non_mapping_rejected(self):
        with pytest.raises(ConfigurationError):
            TriageSettings.load(None)

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)


def test_app_config_projects_triage_settings():
    config = AppConfig(
        email_username="me@example.com",
        email_password="secret",
        llm_api_key="",
        openai_api_key="sk-fallback",
        batch_size=0,
    )
    settings = TriageSettings.load(config.triage_settings())
    assert settings.api_key.get_secret_value() == "sk-fallback"
    assert settings.batch_size == 5
    assert "INBOX" in settings.label_names
