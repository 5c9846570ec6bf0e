"""Tests for Settings → PipelineConfig and the confidence band validator."""

import pytest
from pydantic import ValidationError

from publisher_intake.config import PipelineConfig, Settings


def test_defaults():
    config = PipelineConfig()
    assert (config.auto_approve, config.medium_review, config.low_review) == (0.85, 0.7, 0.5)
    assert config.offering_update == 0.6
    assert config.offering_field_write == 0.7
    assert config.sender_update == 0.7
    assert config.auto_approval_delay_hours == 24
    assert config.match_policy == "strict"


def test_bands_must_be_ordered():
    with pytest.raises(ValidationError, match="confidence bands"):
        PipelineConfig(auto_approve=0.6, medium_review=0.7)


def test_thresholds_are_bounded():
    with pytest.raises(ValidationError):
        PipelineConfig(offering_update=1.5)


def test_unknown_match_policy_rejected():
    with pytest.raises(ValidationError):
        PipelineConfig(match_policy="fuzzy")


def test_from_settings(monkeypatch):
    monkeypatch.setenv("AUTO_APPROVE_THRESHOLD", "0.9")
    monkeypatch.setenv("MEDIUM_REVIEW_THRESHOLD", "0.8")
    monkeypatch.setenv("PUBLISHER_MATCH_POLICY", "best_candidate")
    monkeypatch.setenv("AUTO_APPROVAL_DELAY_HOURS", "6")

    config = PipelineConfig.from_settings(Settings(_env_file=None))

    assert config.auto_approve == 0.9
    assert config.medium_review == 0.8
    assert config.low_review == 0.5
    assert config.match_policy == "best_candidate"
    assert config.auto_approval_delay_hours == 6


def test_invalid_extraction_strategy_rejected(monkeypatch):
    monkeypatch.setenv("EXTRACTION_STRATEGY", "regex")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
