"""
Smoke tests for config / settings loading.
Run: python -m pytest tests/ -v
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from admission.config import AssessmentPolicy, get_settings, _is_placeholder
from admission.models import Tier


class TestIsPlaceholder:
    def test_empty_string_is_placeholder(self):
        assert _is_placeholder("")

    def test_angle_bracket_is_placeholder(self):
        assert _is_placeholder("<your-key-here>")

    def test_your_prefix_is_placeholder(self):
        assert _is_placeholder("your-endpoint")

    def test_literal_PLACEHOLDER_is_placeholder(self):
        assert _is_placeholder("PLACEHOLDER")

    def test_real_value_not_placeholder(self):
        assert not _is_placeholder("https://my-resource.openai.azure.com")


class TestSettingsLoading:
    def test_get_settings_returns_object(self):
        s = get_settings()
        assert s is not None
        assert hasattr(s, "openai")
        assert hasattr(s, "policy")

    def test_force_mock_mode_read_from_env(self, monkeypatch):
        monkeypatch.setenv("FORCE_MOCK_MODE", "true")
        assert get_settings().app.force_mock_mode

    def test_force_mock_defaults_false(self, monkeypatch):
        monkeypatch.delenv("FORCE_MOCK_MODE", raising=False)
        assert not get_settings().app.force_mock_mode

    def test_live_mode_false_without_credentials(self, monkeypatch):
        monkeypatch.delenv("AZURE_OPENAI_ENDPOINT", raising=False)
        monkeypatch.delenv("AZURE_OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("FORCE_MOCK_MODE", raising=False)
        assert not get_settings().live_mode

    def test_live_mode_true_with_real_credentials(self, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://res.openai.azure.com/")
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "abc123defgh456ijkl789mnop")
        monkeypatch.setenv("FORCE_MOCK_MODE", "false")
        s = get_settings()
        assert s.live_mode
        assert s.openai.endpoint == "https://res.openai.azure.com"

    def test_force_mock_overrides_real_credentials(self, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://res.openai.azure.com")
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "abc123defgh456ijkl789mnop")
        monkeypatch.setenv("FORCE_MOCK_MODE", "true")
        assert not get_settings().live_mode

    def test_policy_overrides_from_env(self, monkeypatch):
        monkeypatch.setenv("PASS_THRESHOLD", "6.5")
        monkeypatch.setenv("SECONDS_PER_LEVEL", "60")
        monkeypatch.setenv("HARD_RETAKES", "3")
        policy = get_settings().policy
        assert policy.pass_threshold == 6.5
        assert policy.seconds_per_level == 60
        assert policy.retake_limits()["hard"] == 3

    def test_smtp_not_configured_by_default(self, monkeypatch):
        monkeypatch.delenv("SMTP_USER", raising=False)
        monkeypatch.delenv("SMTP_PASS", raising=False)
        assert not get_settings().smtp.is_configured

    def test_status_summary_keys(self):
        summary = get_settings().status_summary()
        assert any("OpenAI" in k for k in summary)
        assert any("SMTP" in k for k in summary)


class TestAssessmentPolicy:
    @pytest.mark.parametrize("tier,expected", [
        (Tier.EASY, 5), (Tier.MEDIUM, 3), (Tier.HARD, 2), ("medium", 3),
    ])
    def test_question_counts(self, tier, expected):
        assert AssessmentPolicy().question_count(tier) == expected

    def test_default_retake_limits(self):
        assert AssessmentPolicy().retake_limits() == {"medium": 1, "hard": 1}

    def test_default_threshold_is_scale_midpoint(self):
        assert AssessmentPolicy().pass_threshold == 5.0
