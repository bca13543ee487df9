"""
Data models for the Admission Assessment Engine.

Candidate and EvaluationScores are Pydantic models because they are built
from untrusted input (the registration form and LLM JSON).  Everything the
engine produces itself is a plain dataclass.
"""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ─── Enumerations ────────────────────────────────────────────────────────────

class Tier(str, Enum):
    """Ordered difficulty stages; each maps to a numeric level 1–3."""
    EASY   = "easy"
    MEDIUM = "medium"
    HARD   = "hard"

    @property
    def level(self) -> int:
        return _TIER_ORDER.index(self) + 1

    @classmethod
    def from_level(cls, level: int) -> "Tier":
        if not 1 <= level <= len(_TIER_ORDER):
            raise ValueError(f"Level must be 1–{len(_TIER_ORDER)}, got {level}")
        return _TIER_ORDER[level - 1]

    @classmethod
    def ordered(cls) -> list["Tier"]:
        return list(_TIER_ORDER)

    def next(self) -> Optional["Tier"]:
        """The tier unlocked by passing this one (None at the top)."""
        idx = _TIER_ORDER.index(self)
        return _TIER_ORDER[idx + 1] if idx + 1 < len(_TIER_ORDER) else None

    def previous(self) -> Optional["Tier"]:
        idx = _TIER_ORDER.index(self)
        return _TIER_ORDER[idx - 1] if idx > 0 else None


_TIER_ORDER = [Tier.EASY, Tier.MEDIUM, Tier.HARD]
HIGHEST_TIER = Tier.HARD

LEVEL_TITLES: dict[Tier, str] = {
    Tier.EASY:   "Foundation Level",
    Tier.MEDIUM: "Intermediate Level",
    Tier.HARD:   "Expert Level",
}


class EvaluationSource(str, Enum):
    """Where a per-question evaluation came from."""
    LLM      = "llm"       # Azure OpenAI judged the answer
    FALLBACK = "fallback"  # evaluator failed; length-based score
    BLANK    = "blank"     # no answer given; scored zero without a call


class SessionState(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTING  = "submitting"
    COMPLETE    = "complete"


# ─── Candidate ───────────────────────────────────────────────────────────────

class Candidate(BaseModel):
    """Identity and contact data captured at registration; immutable."""
    model_config = ConfigDict(frozen=True)

    candidate_id: str  = Field(default_factory=lambda: uuid.uuid4().hex)
    first_name:   str
    last_name:    str
    gender:       str  = ""
    dob:          date
    email:        str
    phone:        str  = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def age(self) -> int:
        return self.age_on(date.today())

    def age_on(self, when: date) -> int:
        """Completed years between dob and *when*."""
        had_birthday = (when.month, when.day) >= (self.dob.month, self.dob.day)
        return when.year - self.dob.year - (0 if had_birthday else 1)


# ─── Questions & evaluations ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Question:
    """One open-ended question; reference_answer is never shown to the candidate."""
    question:         str
    reference_answer: str

    def to_dict(self) -> dict[str, str]:
        return {"question": self.question, "answer": self.reference_answer}

    @classmethod
    def from_dict(cls, d: dict) -> "Question":
        return cls(
            question=str(d.get("question", "")).strip(),
            reference_answer=str(d.get("answer", d.get("reference_answer", ""))).strip(),
        )


CRITERIA = (
    "relevance",
    "clarity",
    "subject_understanding",
    "accuracy",
    "completeness",
    "critical_thinking",
)


class EvaluationScores(BaseModel):
    """The six named sub-scores of one answer (0 only for blank answers)."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    relevance:             float = Field(ge=0.0, le=10.0, alias="Relevance")
    clarity:               float = Field(ge=0.0, le=10.0, alias="Clarity")
    subject_understanding: float = Field(ge=0.0, le=10.0, alias="SubjectUnderstanding")
    accuracy:              float = Field(ge=0.0, le=10.0, alias="Accuracy")
    completeness:          float = Field(ge=0.0, le=10.0, alias="Completeness")
    critical_thinking:     float = Field(ge=0.0, le=10.0, alias="CriticalThinking")

    @property
    def values(self) -> list[float]:
        return [getattr(self, c) for c in CRITERIA]

    @property
    def mean(self) -> float:
        return sum(self.values) / len(CRITERIA)

    @classmethod
    def uniform(cls, value: float) -> "EvaluationScores":
        return cls(**{c: value for c in CRITERIA})

    @classmethod
    def zero(cls) -> "EvaluationScores":
        return cls.uniform(0.0)


@dataclass(frozen=True)
class QuestionEvaluation:
    """Outcome for one question: computed once at submission, never recomputed."""
    index:  int
    scores: EvaluationScores
    source: EvaluationSource

    @property
    def mean(self) -> float:
        return 0.0 if self.source == EvaluationSource.BLANK else self.scores.mean

    def to_dict(self) -> dict[str, Any]:
        return {
            "index":  self.index,
            "source": self.source.value,
            "scores": self.scores.model_dump(),
            "avg":    self.mean,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "QuestionEvaluation":
        return cls(
            index=int(d["index"]),
            scores=EvaluationScores.model_validate(d.get("scores") or {c: 0.0 for c in CRITERIA}),
            source=EvaluationSource(d.get("source", EvaluationSource.FALLBACK.value)),
        )


# ─── Test session ────────────────────────────────────────────────────────────

@dataclass
class TestSession:
    """One in-progress attempt at a tier.  Discarded once scored."""
    __test__ = False  # not a pytest class

    tier:              Tier
    questions:         list[Question]
    time_budget:       int
    remaining_seconds: int = -1
    answers:           dict[int, str] = field(default_factory=dict)
    state:             SessionState = SessionState.IN_PROGRESS
    session_id:        str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at:        str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def __post_init__(self) -> None:
        if self.remaining_seconds < 0:
            self.remaining_seconds = self.time_budget

    def answer(self, index: int, text: str) -> None:
        """Record (or overwrite) the free-text answer for question *index*."""
        if self.state != SessionState.IN_PROGRESS:
            raise ValueError(f"Session is {self.state.value}; answers are closed.")
        if not 0 <= index < len(self.questions):
            raise IndexError(f"Question index {index} out of range 0–{len(self.questions) - 1}")
        self.answers[index] = text

    def answer_for(self, index: int) -> str:
        return self.answers.get(index, "") or ""

    def is_blank(self, index: int) -> bool:
        return not self.answer_for(index).strip()

    @property
    def answered_count(self) -> int:
        return sum(1 for i in range(len(self.questions)) if not self.is_blank(i))

    @property
    def time_spent(self) -> int:
        return max(0, self.time_budget - max(0, self.remaining_seconds))


# ─── Test result ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TestResult:
    """Immutable outcome of one completed session; appended to history once."""
    __test__ = False

    tier:            Tier
    score:           float
    passed:          bool
    questions:       list[Question]
    student_answers: list[str]
    evaluations:     list[QuestionEvaluation] = field(default_factory=list)
    time_spent:      int = 0
    session_id:      str = ""
    completed_at:    str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def verdict(self) -> str:
        return "pass" if self.passed else "fail"

    @property
    def level(self) -> int:
        return self.tier.level

    def to_dict(self) -> dict[str, Any]:
        return {
            "level":          self.tier.value,
            "score":          self.score,
            "result":         self.verdict,
            "questions":      [q.to_dict() for q in self.questions],
            "studentAnswers": list(self.student_answers),
            "evaluations":    [e.to_dict() for e in self.evaluations],
            "time_spent":     self.time_spent,
            "session_id":     self.session_id,
            "completed_at":   self.completed_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "TestResult":
        """Rebuild from stored JSON; unknown keys from newer writers are ignored."""
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs: dict[str, Any] = {k: v for k, v in d.items() if k in known}
        kwargs["tier"] = Tier(d.get("level", d.get("tier")))
        kwargs["score"] = float(d.get("score", 0.0))
        kwargs["passed"] = d.get("result") == "pass" if "result" in d else bool(d.get("passed"))
        kwargs["questions"] = [Question.from_dict(q) for q in d.get("questions", [])]
        kwargs["student_answers"] = list(d.get("studentAnswers", d.get("student_answers", [])))
        kwargs["evaluations"] = [QuestionEvaluation.from_dict(e) for e in d.get("evaluations", [])]
        return cls(**kwargs)
