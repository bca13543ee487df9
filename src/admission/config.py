"""
config.py — Central settings for the Admission Assessment Engine
================================================================
All configuration is loaded from environment variables / .env file.
Copy .env.example → .env and fill in your values.

Live mode activates automatically when AZURE_OPENAI_ENDPOINT and
AZURE_OPENAI_API_KEY contain real (non-placeholder) values.  Without them
every level runs on the static question bank and the length-based scorer.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Load .env into os.environ (no-op if already set, safe to call multiple times)
load_dotenv(override=False)


# ─── Helpers ────────────────────────────────────────────────────────────────

def _is_placeholder(value: str) -> bool:
    """Return True if the value looks like an unfilled template placeholder."""
    return not value or "<" in value or value.startswith("your-") or value == "PLACEHOLDER"


# ─── Azure OpenAI ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AzureOpenAIConfig:
    endpoint:        str
    api_key:         str
    deployment:      str
    api_version:     str
    timeout_seconds: float = 30.0

    @property
    def is_configured(self) -> bool:
        """True when both endpoint and key are real (non-placeholder) values."""
        return (
            bool(self.endpoint)
            and bool(self.api_key)
            and not _is_placeholder(self.endpoint)
            and not _is_placeholder(self.api_key)
        )


# ─── SMTP (result e-mails) ───────────────────────────────────────────────────

@dataclass(frozen=True)
class SmtpConfig:
    host:      str
    port:      int
    user:      str
    password:  str
    sender:    str

    @property
    def is_configured(self) -> bool:
        return (
            bool(self.user)
            and bool(self.password)
            and not _is_placeholder(self.user)
            and not _is_placeholder(self.password)
        )


# ─── Assessment policy ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class AssessmentPolicy:
    pass_threshold:        float = 5.0      # midpoint of the 1–10 evaluation scale
    seconds_per_level:     int   = 15 * 60  # budget = level × this
    time_warning_fraction: float = 1 / 3    # 300 s on level 1
    medium_retakes:        int   = 1
    hard_retakes:          int   = 1
    questions_easy:        int   = 5
    questions_medium:      int   = 3
    questions_hard:        int   = 2
    subject:               str   = "Physics (Thermodynamics, 2D motion, 3D motion)"

    def question_count(self, tier) -> int:
        """Number of questions drawn for *tier* (a Tier or its string value)."""
        key = getattr(tier, "value", tier)
        return {
            "easy":   self.questions_easy,
            "medium": self.questions_medium,
            "hard":   self.questions_hard,
        }[key]

    def retake_limits(self) -> dict[str, int]:
        """Extra attempts allowed after the first; easy is unlimited."""
        return {"medium": self.medium_retakes, "hard": self.hard_retakes}


# ─── App-level settings ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class AppConfig:
    force_mock_mode:  bool
    db_path:          str
    institution_name: str


# ─── Master settings object ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    openai:  AzureOpenAIConfig
    smtp:    SmtpConfig
    app:     AppConfig
    policy:  AssessmentPolicy = field(default_factory=AssessmentPolicy)

    @property
    def live_mode(self) -> bool:
        """Automatically True when Azure OpenAI creds are real and FORCE_MOCK_MODE is false."""
        return self.openai.is_configured and not self.app.force_mock_mode

    def status_summary(self) -> dict[str, str]:
        """Return a dict of service → status badge for the CLI banner."""
        def badge(ok: bool) -> str:
            return "🟢 Live" if ok else "⚪ Not configured"

        return {
            "Azure OpenAI (questions + scoring)": badge(self.live_mode),
            "SMTP e-mail":                        badge(self.smtp.is_configured),
        }


def get_settings() -> Settings:
    """Load all configuration from environment variables."""
    _str   = lambda k, d="": os.getenv(k, d).strip()
    _int   = lambda k, d=0: int(os.getenv(k, str(d)) or d)
    _float = lambda k, d=0.0: float(os.getenv(k, str(d)) or d)
    _bool  = lambda k, d=False: os.getenv(k, str(d)).lower() in ("1", "true", "yes")

    smtp_user = _str("SMTP_USER")

    return Settings(
        openai=AzureOpenAIConfig(
            endpoint        = _str("AZURE_OPENAI_ENDPOINT").rstrip("/"),
            api_key         = _str("AZURE_OPENAI_API_KEY"),
            deployment      = _str("AZURE_OPENAI_DEPLOYMENT", "gpt-4o"),
            api_version     = _str("AZURE_OPENAI_API_VERSION", "2024-12-01-preview"),
            timeout_seconds = _float("LLM_TIMEOUT_SECONDS", 30.0),
        ),
        smtp=SmtpConfig(
            host     = _str("SMTP_HOST", "smtp.sendgrid.net"),
            port     = _int("SMTP_PORT", 587),
            user     = smtp_user,
            password = _str("SMTP_PASS"),
            sender   = _str("SMTP_FROM", smtp_user),
        ),
        app=AppConfig(
            force_mock_mode  = _bool("FORCE_MOCK_MODE", False),
            db_path          = _str("ADMISSION_DB_PATH", "admission_data.db"),
            institution_name = _str("INSTITUTION_NAME", "Academic Excellence Institute"),
        ),
        policy=AssessmentPolicy(
            pass_threshold        = _float("PASS_THRESHOLD", 5.0),
            seconds_per_level     = _int("SECONDS_PER_LEVEL", 15 * 60),
            time_warning_fraction = _float("TIME_WARNING_FRACTION", 1 / 3),
            medium_retakes        = _int("MEDIUM_RETAKES", 1),
            hard_retakes          = _int("HARD_RETAKES", 1),
            questions_easy        = _int("QUESTIONS_EASY", 5),
            questions_medium      = _int("QUESTIONS_MEDIUM", 3),
            questions_hard        = _int("QUESTIONS_HARD", 2),
            subject               = _str("SUBJECT", "Physics (Thermodynamics, 2D motion, 3D motion)"),
        ),
    )
