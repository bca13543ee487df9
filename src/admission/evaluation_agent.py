"""
evaluation_agent.py — Answer Evaluation Agent
=============================================
Scores one free-text answer against its reference answer on six criteria
(1–10 each): Relevance, Clarity, SubjectUnderstanding, Accuracy,
Completeness, CriticalThinking.

Failure policy
--------------
  AnswerEvaluationAgent.evaluate() raises EvaluatorUnavailable on any
  failure (mock mode, timeout, transport error, unparseable or out-of-range
  scores).  The scoring engine then applies fallback_evaluation(), which
  derives one base score from the trimmed answer length and applies it to
  all six criteria:

    length < 20   → 3
    20 ≤ len ≤ 50 → 5
    length > 50   → 7
"""

from __future__ import annotations

import logging
import textwrap
from typing import Optional, Protocol

from pydantic import ValidationError

from admission.config import Settings, get_settings
from admission.exceptions import EvaluatorUnavailable
from admission.llm_client import JsonChatClient, extract_json
from admission.models import EvaluationScores

logger = logging.getLogger(__name__)

FALLBACK_LOW    = 3.0
FALLBACK_MEDIUM = 5.0
FALLBACK_HIGH   = 7.0

MIN_LLM_SCORE = 1.0


class AnswerEvaluator(Protocol):
    def evaluate(self, question: str, reference_answer: str,
                 candidate_answer: str) -> EvaluationScores: ...


def fallback_base_score(candidate_answer: str) -> float:
    length = len((candidate_answer or "").strip())
    if length > 50:
        return FALLBACK_HIGH
    if length >= 20:
        return FALLBACK_MEDIUM
    return FALLBACK_LOW


def fallback_evaluation(candidate_answer: str) -> EvaluationScores:
    """Deterministic stand-in used whenever the evaluator fails."""
    return EvaluationScores.uniform(fallback_base_score(candidate_answer))


_SYSTEM_PROMPT = textwrap.dedent("""
    You are a strict but fair admissions examiner.  Compare the student's
    answer with the reference answer and score it from 1 to 10 on each
    criterion.

    Respond with ONLY a JSON object with exactly these keys:
    {"Relevance": X, "Clarity": X, "SubjectUnderstanding": X,
     "Accuracy": X, "Completeness": X, "CriticalThinking": X}

    Do NOT include any explanation outside the JSON.
""").strip()


class AnswerEvaluationAgent:
    """
    LLM-as-judge for open-ended answers.

    Usage::

        agent  = AnswerEvaluationAgent()
        scores = agent.evaluate(question, reference, answer)   # may raise
    """

    def __init__(self, settings: Optional[Settings] = None,
                 client: Optional[JsonChatClient] = None) -> None:
        self._settings = settings or get_settings()
        self._client = client
        if self._client is None and self._settings.live_mode:
            self._client = JsonChatClient(self._settings.openai)

    @property
    def is_live(self) -> bool:
        return self._client is not None

    @staticmethod
    def _build_user_message(question: str, reference_answer: str,
                            candidate_answer: str) -> str:
        return textwrap.dedent(f"""
            Question: {question}
            Correct Answer: {reference_answer}
            Student Answer: {candidate_answer}
        """).strip()

    def evaluate(self, question: str, reference_answer: str,
                 candidate_answer: str) -> EvaluationScores:
        """
        Raises:
            EvaluatorUnavailable – mock mode, transport failure, or bad scores.
        """
        if self._client is None:
            raise EvaluatorUnavailable("Answer evaluator not configured (mock mode).")
        try:
            text = self._client.complete(
                _SYSTEM_PROMPT,
                self._build_user_message(question, reference_answer, candidate_answer),
                temperature=0.0,
                max_tokens=300,
            )
            scores = EvaluationScores.model_validate(extract_json(text, expect="object"))
        except ValidationError as exc:
            raise EvaluatorUnavailable(f"Evaluator returned invalid scores: {exc}") from exc
        except Exception as exc:  # noqa: BLE001 — SDK raises many types
            raise EvaluatorUnavailable(f"Answer evaluation failed: {exc}") from exc

        if min(scores.values) < MIN_LLM_SCORE:
            raise EvaluatorUnavailable(f"Evaluator score below {MIN_LLM_SCORE}: {scores.values}")
        logger.debug("LLM evaluation mean %.2f", scores.mean)
        return scores
