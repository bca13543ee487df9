"""
flow.py — Admission flow orchestrator
=====================================
Wires the collaborators together for one candidate:

  register → start_level → answer … → submit (or timer expiry)
           → ledger.record_completion → ProgressionController.complete
           → optional send_result_email

Guarantees
----------
  • submit() is idempotent per session.  A second call, or a timer expiry
    racing an explicit submit, returns the same SubmissionOutcome and never
    records a second attempt.
  • If persisting the result fails, PersistenceUnavailable propagates and
    the scored result is kept; the next submit() retries the write without
    re-scoring.  Nothing is half-written (the ledger uses one transaction).
  • abandon() tears the timer down and records nothing.
  • A failed e-mail raises DispatchFailure (retryable) and never changes
    progression state.

Only the store, question source, evaluator and dispatcher touch the outside
world, and all four are injected.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from admission.config import Settings, get_settings
from admission.database import KeyValueStore, open_store
from admission.evaluation_agent import AnswerEvaluationAgent, AnswerEvaluator
from admission.exceptions import DispatchFailure, IllegalTransition
from admission.guardrails import (
    AnswerGuardrails,
    GuardrailResult,
    RegistrationForm,
    RegistrationGuardrails,
)
from admission.ledger import AttemptLedger
from admission.models import Candidate, SessionState, TestResult, TestSession, Tier
from admission.notifications import NotificationDispatcher
from admission.progression import (
    NextAction,
    OutcomeKind,
    ProgressionController,
    TierStatus,
    level_map,
    select_outcome,
)
from admission.question_agent import QuestionGenerationAgent, QuestionSource, load_questions
from admission.scoring import score_session
from admission.session_timer import SessionTimer, time_budget_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionOutcome:
    result:      TestResult
    next_action: NextAction


class AdmissionFlow:
    """
    One candidate's path through the three levels.

    Usage::

        flow = AdmissionFlow(store=InMemoryStore())
        flow.register({"first_name": "Ada", ...})
        session = flow.start_level(Tier.EASY)
        flow.answer(0, "An object at rest stays at rest ...")
        outcome = flow.submit()
        if outcome.next_action.advances:
            flow.start_level(outcome.next_action.tier)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[KeyValueStore] = None,
        question_source: Optional[QuestionSource] = None,
        evaluator: Optional[AnswerEvaluator] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        *,
        enforce_retake_limits: bool = False,
        on_warning: Optional[Callable[[int], None]] = None,
        on_tick: Optional[Callable[[int], None]] = None,
        on_time_up: Optional[Callable[[SubmissionOutcome], None]] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store if store is not None else open_store(self.settings.app.db_path)
        self.question_source = question_source or QuestionGenerationAgent(self.settings)
        self.evaluator = evaluator or AnswerEvaluationAgent(self.settings)
        self.dispatcher = dispatcher or NotificationDispatcher(self.settings)
        self.enforce_retake_limits = enforce_retake_limits

        self._on_warning = on_warning
        self._on_tick = on_tick
        self._on_time_up = on_time_up

        self._registration_guard = RegistrationGuardrails()
        self._answer_guard = AnswerGuardrails()

        self.candidate: Optional[Candidate] = None
        self.ledger: Optional[AttemptLedger] = None
        self.controller: Optional[ProgressionController] = None

        self._session: Optional[TestSession] = None
        self._timer: Optional[SessionTimer] = None
        self._pending: Optional[TestResult] = None
        self._outcome: Optional[SubmissionOutcome] = None
        self._submit_lock = threading.Lock()
        self.last_error: Optional[Exception] = None

    # ── Registration ─────────────────────────────────────────────────────────

    def register(self, form: Union[RegistrationForm, Mapping[str, Any]]) -> Candidate:
        """
        Validate and persist a new candidate.

        Raises:
            RegistrationRejected – a BLOCK guardrail fired.
            PersistenceUnavailable – the candidate record could not be stored.
        """
        if not isinstance(form, RegistrationForm):
            form = RegistrationForm.from_mapping(form)
        candidate = self._registration_guard.validate(form)
        self._bind(candidate)
        self.ledger.save_candidate(candidate)
        logger.info("Registered candidate %s (%s)", candidate.candidate_id, candidate.full_name)
        return candidate

    def resume(self, candidate_id: str) -> Candidate:
        """Re-attach to a previously registered candidate."""
        ledger = AttemptLedger(self.store, candidate_id, self.settings.policy.retake_limits())
        candidate = ledger.load_candidate()
        if candidate is None:
            raise KeyError(f"No candidate registered with id {candidate_id!r}")
        self._bind(candidate)
        return candidate

    def _bind(self, candidate: Candidate) -> None:
        self.abandon()
        self.candidate = candidate
        self.ledger = AttemptLedger(
            self.store, candidate.candidate_id, self.settings.policy.retake_limits(),
        )
        self.controller = ProgressionController(self.ledger)

    def _require_candidate(self) -> None:
        if self.candidate is None:
            raise IllegalTransition("No candidate registered.")

    # ── Session lifecycle ────────────────────────────────────────────────────

    @property
    def session(self) -> Optional[TestSession]:
        return self._session

    @property
    def timer(self) -> Optional[SessionTimer]:
        return self._timer

    def start_level(self, tier: Tier, *, start_timer: bool = True) -> TestSession:
        """
        Open a timed session for *tier*.

        Raises:
            TierLocked        – the level below has not been passed.
            IllegalTransition – a failed level must be retaken first, a
                                session is still open, or (when enforcing)
                                the retake limit is used up.
        """
        self._require_candidate()
        policy = self.settings.policy
        if self.enforce_retake_limits and self.ledger.limit_exceeded(tier):
            raise IllegalTransition(f"No attempts remaining for level {tier.level}.")

        self.controller.begin(tier)
        try:
            questions = load_questions(tier, policy.question_count(tier), self.question_source,
                                       timeout=self.settings.openai.timeout_seconds)
            budget = time_budget_for(tier, policy.seconds_per_level)
            session = TestSession(tier=tier, questions=questions, time_budget=budget)
            timer = SessionTimer(
                budget,
                on_expire=self._handle_expiry,
                on_warning=self._on_warning,
                on_tick=self._handle_tick,
                warning_fraction=policy.time_warning_fraction,
            )
        except Exception:
            self.controller.abandon()
            raise

        with self._submit_lock:
            self._session, self._timer = session, timer
            self._pending, self._outcome = None, None
        if start_timer:
            timer.start()
        logger.info("Level %d session %s: %d questions, %ds budget",
                    tier.level, session.session_id, len(questions), budget)
        return session

    def answer(self, index: int, text: str) -> GuardrailResult:
        """Record an answer; over-long text is truncated (see the returned warnings)."""
        session = self._require_session()
        check = self._answer_guard.check(text)
        session.answer(index, self._answer_guard.sanitise(text))
        return check

    def _require_session(self) -> TestSession:
        if self._session is None:
            raise IllegalTransition("No level in progress.")
        return self._session

    def _handle_tick(self, remaining: int) -> None:
        session = self._session
        if session is not None and session.state == SessionState.IN_PROGRESS:
            session.remaining_seconds = remaining
        if self._on_tick is not None:
            self._on_tick(remaining)

    def _handle_expiry(self) -> None:
        logger.info("Time up; submitting current answers.")
        session = self._session
        if session is not None and session.state == SessionState.IN_PROGRESS:
            session.remaining_seconds = 0
        try:
            outcome = self.submit()
        except Exception as exc:  # noqa: BLE001 — runs on the timer thread
            self.last_error = exc
            logger.exception("Automatic submission failed")
            return
        if self._on_time_up is not None:
            self._on_time_up(outcome)

    def _stop_timer(self) -> None:
        timer = self._timer
        if timer is not None:
            timer.cancel()

    def submit(self) -> SubmissionOutcome:
        """
        Score, persist and close the current session.

        Raises:
            IllegalTransition      – no session has been started.
            PersistenceUnavailable – result kept; call submit() again to retry.
        """
        self._stop_timer()
        with self._submit_lock:
            session = self._require_session()
            if self._outcome is not None:
                return self._outcome

            if self._pending is None:
                session.state = SessionState.SUBMITTING
                self._pending = score_session(
                    session,
                    self.evaluator,
                    pass_threshold=self.settings.policy.pass_threshold,
                    timeout=self.settings.openai.timeout_seconds * 2,
                )
            result = self._pending

            self.ledger.record_completion(result)
            session.state = SessionState.COMPLETE
            self._pending = None
            self._outcome = SubmissionOutcome(result, self.controller.complete(result))
            return self._outcome

    def abandon(self) -> None:
        """Leave the current level without recording an attempt."""
        self._stop_timer()
        with self._submit_lock:
            if self._session is not None and self._outcome is None:
                logger.info("Session %s abandoned", self._session.session_id)
            self._session, self._timer = None, None
            self._pending, self._outcome = None, None
        if self.controller is not None:
            self.controller.abandon()

    # ── Read models ──────────────────────────────────────────────────────────

    @property
    def history(self) -> list[TestResult]:
        self._require_candidate()
        return self.ledger.get_history()

    def level_map(self) -> list[TierStatus]:
        self._require_candidate()
        rows = level_map(self.history, self.controller.active_tier)
        return rows

    def attempts_remaining(self, tier: Optional[Tier] = None) -> int:
        """Attempts left for *tier* (default: the current or most recent level)."""
        self._require_candidate()
        if tier is None:
            if self._session is not None:
                tier = self._session.tier
            else:
                history = self.history
                tier = history[-1].tier if history else Tier.EASY
        return self.ledger.attempts_remaining(tier)

    def next_tier(self) -> Tier:
        self._require_candidate()
        return self.controller.next_tier()

    # ── Notification ─────────────────────────────────────────────────────────

    def send_result_email(self, kind: Optional[OutcomeKind] = None,
                          *, attach_pdf: bool = True) -> OutcomeKind:
        """
        E-mail the candidate their current outcome.

        Raises:
            DispatchFailure – delivery failed; safe to call again.
        """
        self._require_candidate()
        history = self.history
        latest = history[-1] if history else None
        if kind is None:
            kind = select_outcome(history)

        context: dict[str, Any] = {}
        if latest is not None:
            context.update(level=latest.tier, score=latest.score)
        if attach_pdf and history:
            try:
                from admission.reports import generate_result_pdf
                context["pdf_bytes"] = generate_result_pdf(
                    self.candidate, history, self.settings.app.institution_name,
                    pass_threshold=self.settings.policy.pass_threshold,
                )
            except Exception as exc:  # noqa: BLE001 — the e-mail goes out without it
                logger.warning("Result PDF could not be generated: %s", exc)

        if not self.dispatcher.send(self.candidate, kind, context):
            raise DispatchFailure(self.dispatcher.last_message or "E-mail delivery failed.")
        return kind
