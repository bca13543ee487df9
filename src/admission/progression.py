"""
progression.py — Level Progression Controller
=============================================
Decides which tiers are open, what happens after each completed test, and
when the whole admission flow is finished.

Rules
-----
  • Tier 1 (easy) is always available.
  • Tier k > 1 is available iff history holds a *passing* result for k − 1.
    Later failures never re-lock a tier that an earlier pass opened.
  • After a completed test exactly one NextAction is chosen:
        passed and below HARD → ADVANCE_AND_SHOW_TRANSITION(next tier)
        anything else         → SHOW_SCORE_SCREEN(result tier)
  • From a failed score screen the only forward move is the same tier again.
  • Terminal once every tier has at least one passing result.
  • Result e-mail outcome:
        all tiers passed       → ACCEPT
        latest result passed   → RETRY (more levels to take)
        latest failed, or none → REJECT

Everything is derived from the ledger history; there is no separately
stored progression state.  The pure functions below are what interface
layers (CLI, tests, any future web shell) call; ProgressionController adds
the in-progress bookkeeping on top.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence

from admission.exceptions import IllegalTransition, TierLocked
from admission.ledger import AttemptLedger
from admission.models import HIGHEST_TIER, LEVEL_TITLES, TestResult, Tier

logger = logging.getLogger(__name__)


# ─── Value types ─────────────────────────────────────────────────────────────

class NextActionKind(str, Enum):
    ADVANCE_AND_SHOW_TRANSITION = "advance_and_show_transition"
    SHOW_SCORE_SCREEN           = "show_score_screen"


@dataclass(frozen=True)
class NextAction:
    """What the interface should do after a completed test."""
    kind: NextActionKind
    tier: Tier

    @property
    def advances(self) -> bool:
        return self.kind == NextActionKind.ADVANCE_AND_SHOW_TRANSITION


class OutcomeKind(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    RETRY  = "retry"


class FlowPhase(str, Enum):
    LOCKED      = "locked"
    UNLOCKED    = "unlocked"
    IN_PROGRESS = "in_progress"
    COMPLETED   = "completed"
    TERMINAL    = "terminal"


@dataclass(frozen=True)
class FlowState:
    phase:  FlowPhase
    tier:   Optional[Tier] = None
    passed: Optional[bool] = None


@dataclass(frozen=True)
class TierStatus:
    """One row of the level map shown by interface layers."""
    tier:        Tier
    phase:       FlowPhase
    best_score:  Optional[float]
    attempts:    int

    @property
    def title(self) -> str:
        return LEVEL_TITLES[self.tier]


# ─── Pure rules ──────────────────────────────────────────────────────────────

def passed_tiers(history: Iterable[TestResult]) -> set[Tier]:
    return {r.tier for r in history if r.passed}


def available_tiers(history: Iterable[TestResult]) -> set[Tier]:
    """Tier 1 always; tier k iff some result for tier k−1 passed."""
    passed = passed_tiers(history)
    available = {Tier.EASY}
    for tier in Tier.ordered()[1:]:
        if tier.previous() in passed:
            available.add(tier)
    return available


def is_terminal(history: Iterable[TestResult]) -> bool:
    return passed_tiers(history) >= set(Tier.ordered())


def on_test_complete(result: TestResult,
                     history: Sequence[TestResult] = ()) -> NextAction:
    """
    Select the single next action for a completed result.

    *history* is accepted for interface symmetry; the decision depends on
    the result alone.
    """
    if result.passed and result.tier != HIGHEST_TIER:
        return NextAction(NextActionKind.ADVANCE_AND_SHOW_TRANSITION, result.tier.next())
    return NextAction(NextActionKind.SHOW_SCORE_SCREEN, result.tier)


def retake_tier(history: Sequence[TestResult]) -> Optional[Tier]:
    """Tier the candidate must retake, or None when the latest result passed."""
    if not history or history[-1].passed:
        return None
    return history[-1].tier


def select_outcome(history: Sequence[TestResult]) -> OutcomeKind:
    """Pick the e-mail outcome for the candidate's current standing."""
    if is_terminal(history):
        return OutcomeKind.ACCEPT
    if history and history[-1].passed:
        return OutcomeKind.RETRY
    return OutcomeKind.REJECT


def level_map(history: Sequence[TestResult],
              active: Optional[Tier] = None) -> list[TierStatus]:
    """Per-tier status rows (lowest tier first)."""
    open_tiers = available_tiers(history)
    passed = passed_tiers(history)
    rows: list[TierStatus] = []
    for tier in Tier.ordered():
        scores = [r.score for r in history if r.tier == tier]
        if tier == active:
            phase = FlowPhase.IN_PROGRESS
        elif tier in passed:
            phase = FlowPhase.COMPLETED
        elif tier in open_tiers:
            phase = FlowPhase.UNLOCKED
        else:
            phase = FlowPhase.LOCKED
        rows.append(TierStatus(
            tier=tier,
            phase=phase,
            best_score=max(scores) if scores else None,
            attempts=len(scores),
        ))
    return rows


# ─── Stateful controller ─────────────────────────────────────────────────────

class ProgressionController:
    """
    State machine over one candidate's ledger.

    Usage::

        ctl = ProgressionController(ledger)
        ctl.begin(Tier.EASY)            # raises TierLocked / IllegalTransition
        action = ctl.complete(result)   # NextAction
    """

    def __init__(self, ledger: AttemptLedger) -> None:
        self.ledger = ledger
        self._active: Optional[Tier] = None
        self._lock = threading.Lock()

    @property
    def active_tier(self) -> Optional[Tier]:
        return self._active

    def history(self) -> list[TestResult]:
        return self.ledger.get_history()

    def can_start(self, tier: Tier) -> bool:
        try:
            self._check_start(tier, self.history())
        except (TierLocked, IllegalTransition):
            return False
        return True

    def _check_start(self, tier: Tier, history: list[TestResult]) -> None:
        if self._active is not None:
            raise IllegalTransition(f"Level {self._active.level} is already in progress.")
        if tier not in available_tiers(history):
            raise TierLocked(f"Level {tier.level} is locked; pass level {tier.level - 1} first.")
        must_retake = retake_tier(history)
        if must_retake is not None and tier != must_retake:
            raise IllegalTransition(
                f"Level {must_retake.level} was failed; it must be retaken before level {tier.level}."
            )

    def begin(self, tier: Tier) -> FlowState:
        """Move *tier* to IN_PROGRESS."""
        with self._lock:
            self._check_start(tier, self.history())
            self._active = tier
        logger.info("Level %d started for %s", tier.level, self.ledger.candidate_id)
        return self.state

    def complete(self, result: TestResult) -> NextAction:
        """Close the active session; the result must already be in the ledger."""
        with self._lock:
            if self._active is not None and self._active != result.tier:
                raise IllegalTransition(
                    f"Result for level {result.level} does not match active level "
                    f"{self._active.level}."
                )
            self._active = None
        action = on_test_complete(result, self.history())
        logger.info("Level %d %s → %s", result.level, result.verdict, action.kind.value)
        return action

    def abandon(self) -> None:
        """Drop the active session without recording anything."""
        with self._lock:
            if self._active is not None:
                logger.info("Level %d abandoned for %s", self._active.level,
                            self.ledger.candidate_id)
            self._active = None

    @property
    def state(self) -> FlowState:
        history = self.history()
        if self._active is not None:
            return FlowState(FlowPhase.IN_PROGRESS, self._active)
        if is_terminal(history):
            return FlowState(FlowPhase.TERMINAL, HIGHEST_TIER, True)
        if history:
            last = history[-1]
            return FlowState(FlowPhase.COMPLETED, last.tier, last.passed)
        return FlowState(FlowPhase.UNLOCKED, Tier.EASY)

    def next_tier(self) -> Tier:
        """The tier an interface should offer next."""
        history = self.history()
        must_retake = retake_tier(history)
        if must_retake is not None:
            return must_retake
        return max(available_tiers(history), key=lambda t: t.level)
