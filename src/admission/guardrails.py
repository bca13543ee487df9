"""
guardrails.py – Input validation for registration and answers
=============================================================
Checks that run before a candidate enters the flow and before an answer is
sent to the evaluator.

Guardrail levels
----------------
BLOCK   – Hard-stop: registration is rejected.
WARN    – Soft-stop: the flow proceeds with a visible warning.
INFO    – Advisory: informational note.

Guards implemented
------------------
Registration guards (before a Candidate is created):
  R-01  Non-empty required fields (first name, last name, email, dob)
  R-02  E-mail address format
  R-03  Phone number format (optional field)
  R-04  Date of birth parses, is not in the future, age within 10–100
  R-05  PII notice (contact details are stored locally and used only for
        the result e-mail)

Answer guards (before evaluation):
  A-01  Answer longer than MAX_ANSWER_CHARS is truncated
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from datetime import date
from enum import Enum
from typing import Any, Mapping, Optional

from admission.exceptions import RegistrationRejected
from admission.models import Candidate


# ─── Enums & data models ─────────────────────────────────────────────────────

class GuardrailLevel(str, Enum):
    BLOCK = "BLOCK"
    WARN  = "WARN"
    INFO  = "INFO"


@dataclass
class GuardrailViolation:
    code:    str
    level:   GuardrailLevel
    message: str
    field:   str = ""   # which field triggered the violation


@dataclass
class GuardrailResult:
    passed:     bool
    violations: list[GuardrailViolation] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return any(v.level == GuardrailLevel.BLOCK for v in self.violations)

    @property
    def warnings(self) -> list[GuardrailViolation]:
        return [v for v in self.violations if v.level == GuardrailLevel.WARN]

    @property
    def infos(self) -> list[GuardrailViolation]:
        return [v for v in self.violations if v.level == GuardrailLevel.INFO]

    def summary(self) -> str:
        if not self.violations:
            return "✅ All guardrails passed."
        icon = {GuardrailLevel.BLOCK: "🚫", GuardrailLevel.WARN: "⚠️", GuardrailLevel.INFO: "ℹ️"}
        return "\n".join(f"{icon[v.level]} [{v.code}] {v.message}" for v in self.violations)


# ─── Registration form ───────────────────────────────────────────────────────

@dataclass
class RegistrationForm:
    """Raw registration input as typed by the candidate."""
    first_name: str
    last_name:  str
    email:      str
    dob:        "str | date"
    gender:     str = ""
    phone:      str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RegistrationForm":
        """
        Build a form from a request payload.  Unknown keys (e.g. a client-side
        ``age``) are ignored; missing fields are left empty so that R-01 reports
        them instead of a TypeError.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                continue
            if value is None:
                value = ""
            values[key] = value if isinstance(value, date) else str(value)
        for name in ("first_name", "last_name", "email", "dob"):
            values.setdefault(name, "")
        return cls(**values)

    def parsed_dob(self) -> Optional[date]:
        if isinstance(self.dob, date):
            return self.dob
        try:
            return date.fromisoformat(str(self.dob).strip())
        except ValueError:
            return None

    def to_candidate(self) -> Candidate:
        return Candidate(
            first_name=self.first_name.strip(),
            last_name=self.last_name.strip(),
            gender=self.gender.strip(),
            dob=self.parsed_dob(),
            email=self.email.strip(),
            phone=self.phone.strip(),
        )


MIN_AGE = 10
MAX_AGE = 100
MAX_ANSWER_CHARS = 5000

_EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}$")
# Digits with optional leading +, spaces, dashes, dots and parentheses; 7–15 digits.
_PHONE_RE = re.compile(r"^\+?[\d\s().\-]{7,20}$")


# ─── Guardrail checks ─────────────────────────────────────────────────────────

class RegistrationGuardrails:
    """R-01 – R-05: Validates a RegistrationForm before a Candidate is created."""

    def check(self, form: RegistrationForm, today: Optional[date] = None) -> GuardrailResult:
        violations: list[GuardrailViolation] = []
        today = today or date.today()

        # R-01 Required fields
        for name, label in (("first_name", "First name"), ("last_name", "Last name"),
                            ("email", "E-mail")):
            if not str(getattr(form, name) or "").strip():
                violations.append(GuardrailViolation(
                    code="R-01", level=GuardrailLevel.BLOCK, field=name,
                    message=f"{label} must not be empty.",
                ))
        if not str(form.dob or "").strip():
            violations.append(GuardrailViolation(
                code="R-01", level=GuardrailLevel.BLOCK, field="dob",
                message="Date of birth must not be empty.",
            ))

        # R-02 E-mail format
        email = (form.email or "").strip()
        if email and not _EMAIL_RE.match(email):
            violations.append(GuardrailViolation(
                code="R-02", level=GuardrailLevel.BLOCK, field="email",
                message=f"'{email}' is not a valid e-mail address.",
            ))

        # R-03 Phone format (optional)
        phone = (form.phone or "").strip()
        if phone:
            digits = sum(c.isdigit() for c in phone)
            if not _PHONE_RE.match(phone) or not 7 <= digits <= 15:
                violations.append(GuardrailViolation(
                    code="R-03", level=GuardrailLevel.WARN, field="phone",
                    message=f"Phone number '{phone}' looks malformed.",
                ))

        # R-04 Date of birth
        if str(form.dob or "").strip():
            dob = form.parsed_dob()
            if dob is None:
                violations.append(GuardrailViolation(
                    code="R-04", level=GuardrailLevel.BLOCK, field="dob",
                    message=f"Date of birth '{form.dob}' is not a valid YYYY-MM-DD date.",
                ))
            elif dob > today:
                violations.append(GuardrailViolation(
                    code="R-04", level=GuardrailLevel.BLOCK, field="dob",
                    message="Date of birth is in the future.",
                ))
            else:
                had_birthday = (today.month, today.day) >= (dob.month, dob.day)
                age = today.year - dob.year - (0 if had_birthday else 1)
                if not MIN_AGE <= age <= MAX_AGE:
                    violations.append(GuardrailViolation(
                        code="R-04", level=GuardrailLevel.BLOCK, field="dob",
                        message=f"Age {age} is outside the accepted range {MIN_AGE}–{MAX_AGE}.",
                    ))

        # R-05 PII notice (info only)
        violations.append(GuardrailViolation(
            code="R-05", level=GuardrailLevel.INFO, field="email",
            message=(
                "Contact details are stored locally and used only to send "
                "the admission result e-mail."
            ),
        ))

        return GuardrailResult(
            passed=not any(v.level == GuardrailLevel.BLOCK for v in violations),
            violations=violations,
        )

    def validate(self, form: RegistrationForm, today: Optional[date] = None) -> Candidate:
        """Run check() and build the Candidate; raises RegistrationRejected on BLOCK."""
        result = self.check(form, today)
        if result.blocked:
            blocking = [v for v in result.violations if v.level == GuardrailLevel.BLOCK]
            raise RegistrationRejected(
                "; ".join(v.message for v in blocking), violations=blocking,
            )
        return form.to_candidate()


class AnswerGuardrails:
    """A-01: Keeps oversized answers away from the evaluator."""

    def __init__(self, max_chars: int = MAX_ANSWER_CHARS) -> None:
        self.max_chars = max_chars

    def check(self, text: str) -> GuardrailResult:
        violations: list[GuardrailViolation] = []
        if len(text or "") > self.max_chars:
            violations.append(GuardrailViolation(
                code="A-01", level=GuardrailLevel.WARN, field="answer",
                message=f"Answer is {len(text)} characters; only the first "
                        f"{self.max_chars} will be evaluated.",
            ))
        return GuardrailResult(passed=True, violations=violations)

    def sanitise(self, text: str) -> str:
        return (text or "")[: self.max_chars]
