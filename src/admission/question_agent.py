"""
question_agent.py — Question Generation Agent
=============================================
Supplies the open-ended questions for one level.

---------------------------------------------------------------------------
Agent: QuestionGenerationAgent
---------------------------------------------------------------------------
  Input:   Tier, question count
  Output:  list[Question]   (question text + hidden reference answer)

  Live mode:   Azure OpenAI JSON-mode call (temperature 0.7 for variety).
  Mock mode:   raises SourceUnavailable immediately.

  Any failure — not configured, timeout, HTTP error, malformed JSON, an
  empty list — surfaces as SourceUnavailable.  load_questions() catches it
  and serves the static FALLBACK_QUESTION_BANK for the tier instead, so a
  level can always start with zero external services reachable.

  Question counts per level (reference policy): easy 5, medium 3, hard 2.
"""

from __future__ import annotations

import concurrent.futures
import logging
import textwrap
from typing import Optional, Protocol

from admission.config import Settings, get_settings
from admission.exceptions import SourceUnavailable
from admission.llm_client import JsonChatClient, extract_json
from admission.models import Question, Tier

logger = logging.getLogger(__name__)


class QuestionSource(Protocol):
    def fetch_questions(self, tier: Tier, count: int) -> list[Question]: ...


# ─── Static fallback bank ────────────────────────────────────────────────────
# Format: (question, reference_answer)

_BANK: dict[Tier, list[tuple[str, str]]] = {
    Tier.EASY: [
        (
            "What is Newton's First Law of Motion?",
            "An object at rest stays at rest and an object in motion stays in motion "
            "with the same speed and direction unless acted upon by an external force.",
        ),
        (
            "Define temperature in terms of thermodynamics.",
            "Temperature is a measure of the average kinetic energy of particles in a substance.",
        ),
        (
            "What is the difference between distance and displacement?",
            "Distance is the total path length traveled, while displacement is the "
            "straight-line distance from start to end point with direction.",
        ),
        (
            "State the law of conservation of energy.",
            "Energy cannot be created or destroyed, only converted from one form to another.",
        ),
        (
            "What is acceleration?",
            "Acceleration is the rate of change of velocity with respect to time.",
        ),
    ],
    Tier.MEDIUM: [
        (
            "Derive the equation for projectile motion range on level ground.",
            "Range R = (v0^2 sin(2θ))/g, where v0 is initial velocity, θ is launch angle, "
            "and g is gravitational acceleration.",
        ),
        (
            "Explain the first law of thermodynamics and provide an example.",
            "The first law states that ΔU = Q - W: the change in internal energy equals heat "
            "added minus work done. Example: a gas expanding in a piston absorbs heat and does work.",
        ),
        (
            "How does circular motion relate to projectile motion?",
            "Circular motion involves centripetal acceleration, while projectile motion combines "
            "constant horizontal velocity with vertical acceleration due to gravity. Both involve "
            "2D motion vectors.",
        ),
    ],
    Tier.HARD: [
        (
            "Analyze the motion of a particle in 3D space under the influence of a central force. "
            "Derive the equations of motion.",
            "For central force F = -kr: r'' = -kr/m. In spherical coordinates: "
            "d²r/dt² - r(dθ/dt)² = -k/m, and conservation of angular momentum gives "
            "r²(dθ/dt) = constant.",
        ),
        (
            "Discuss the thermodynamic efficiency of a Carnot engine and explain why no real "
            "engine can achieve this efficiency.",
            "Carnot efficiency η = 1 - Tc/Th. Real engines can't achieve this due to irreversible "
            "processes like friction, heat loss, and non-quasi-static processes that increase entropy.",
        ),
    ],
}

FALLBACK_QUESTION_BANK: dict[Tier, list[Question]] = {
    tier: [Question(question=q, reference_answer=a) for q, a in items]
    for tier, items in _BANK.items()
}


def fallback_questions(tier: Tier, count: int) -> list[Question]:
    """First *count* bank questions for *tier* (fewer if the bank is smaller)."""
    return list(FALLBACK_QUESTION_BANK.get(tier, FALLBACK_QUESTION_BANK[Tier.EASY])[:count])


# ─── Prompt ──────────────────────────────────────────────────────────────────

_SYSTEM_PROMPT = textwrap.dedent("""
    You are an admissions examiner writing open-ended written questions.

    Respond with ONLY a valid JSON object of the form:
    {"questions": [{"question": "...", "answer": "..."}]}

    "answer" is a concise model answer used for marking; it is never shown
    to the candidate.  Do NOT include any text outside the JSON.
""").strip()


class QuestionGenerationAgent:
    """
    Generates fresh questions per level via Azure OpenAI.

    Usage::

        agent     = QuestionGenerationAgent()
        questions = load_questions(Tier.EASY, 5, agent)
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

    def _build_user_message(self, tier: Tier, count: int) -> str:
        return (
            f"Generate {count} questions at {tier.value} difficulty level "
            f"in {self._settings.policy.subject}."
        )

    def fetch_questions(self, tier: Tier, count: int) -> list[Question]:
        """
        Return exactly *count* questions (or as many as the model produced).

        Raises:
            SourceUnavailable – mock mode, transport failure, or unusable reply.
        """
        if self._client is None:
            raise SourceUnavailable("Question generator not configured (mock mode).")
        try:
            text = self._client.complete(
                _SYSTEM_PROMPT, self._build_user_message(tier, count), temperature=0.7,
            )
            data = extract_json(text, expect="array")
        except SourceUnavailable:
            raise
        except Exception as exc:  # noqa: BLE001 — SDK raises many types
            raise SourceUnavailable(f"Question generation failed: {exc}") from exc

        items = data.get("questions", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise SourceUnavailable("Question generator returned no question list.")
        questions = [
            Question.from_dict(item) for item in items
            if isinstance(item, dict) and str(item.get("question", "")).strip()
        ][:count]
        if not questions:
            raise SourceUnavailable("Question generator returned zero usable questions.")
        return questions


def _fetch_with_deadline(source: QuestionSource, tier: Tier, count: int,
                         timeout: Optional[float]) -> list[Question]:
    if timeout is None:
        return source.fetch_questions(tier, count)
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="questions")
    try:
        future = executor.submit(source.fetch_questions, tier, count)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as exc:
            raise SourceUnavailable(
                f"Question source did not respond within {timeout:g}s."
            ) from exc
    finally:
        # A hung source is abandoned, not awaited.
        executor.shutdown(wait=False, cancel_futures=True)


def load_questions(tier: Tier, count: int,
                   source: Optional[QuestionSource] = None,
                   timeout: Optional[float] = None) -> list[Question]:
    """
    Questions from *source*, or the static bank when it is unavailable.  Never raises.

    A source that takes longer than *timeout* seconds counts as unavailable.
    """
    if source is not None:
        try:
            questions = _fetch_with_deadline(source, tier, count, timeout)
            if not questions:
                raise SourceUnavailable("Question source returned an empty list.")
            logger.info("Loaded %d generated questions for %s", len(questions), tier.value)
            return list(questions)
        except Exception as exc:  # noqa: BLE001 — any source failure means fallback
            logger.warning("Question source unavailable for %s, using fallback bank: %s",
                           tier.value, exc)
    return fallback_questions(tier, count)
