"""
ledger.py — Attempt & Result Ledger
===================================
Persisted per-candidate counters and history, stored through an injected
KeyValueStore.

  attempts:<candidate_id>    {"easy": n, "medium": n, "hard": n}
  results:<candidate_id>     [TestResult.to_dict(), ...]   (append-only)
  candidate:<candidate_id>   Candidate.model_dump(mode="json")
  level:<candidate_id>       bookmark of the highest unlocked tier

Invariants
----------
  • An attempt counter moves only via record_attempt (+1) or reset().
  • History entries are never overwritten or removed except by reset().
  • record_completion() writes counter and history in one transaction.

Retake policy: medium and hard allow `retake_limits[tier]` extra attempts
after the first (1 in the reference policy); easy is unlimited.
attempts_remaining() reports the allowance; enforcing it is up to the
caller.
"""

from __future__ import annotations

import logging
import sys
from typing import Mapping, Optional

from admission.database import KeyValueStore
from admission.exceptions import PersistenceUnavailable
from admission.models import Candidate, TestResult, Tier

logger = logging.getLogger(__name__)

UNLIMITED_ATTEMPTS = sys.maxsize

DEFAULT_RETAKE_LIMITS: dict[Tier, int] = {Tier.MEDIUM: 1, Tier.HARD: 1}


def _empty_counts() -> dict[str, int]:
    return {t.value: 0 for t in Tier.ordered()}


class AttemptLedger:
    """Attempt counters and append-only result history for one candidate."""

    def __init__(
        self,
        store: KeyValueStore,
        candidate_id: str,
        retake_limits: Optional[Mapping["Tier | str", int]] = None,
    ) -> None:
        self._store = store
        self.candidate_id = candidate_id
        limits = DEFAULT_RETAKE_LIMITS if retake_limits is None else retake_limits
        self.retake_limits: dict[Tier, int] = {Tier(k): int(v) for k, v in limits.items()}

    # ── Keys ─────────────────────────────────────────────────────────────────

    @property
    def _attempts_key(self) -> str:
        return f"attempts:{self.candidate_id}"

    @property
    def _results_key(self) -> str:
        return f"results:{self.candidate_id}"

    @property
    def _candidate_key(self) -> str:
        return f"candidate:{self.candidate_id}"

    @property
    def _level_key(self) -> str:
        return f"level:{self.candidate_id}"

    # ── Candidate ────────────────────────────────────────────────────────────

    def save_candidate(self, candidate: Candidate) -> None:
        self._store.set(self._candidate_key, candidate.model_dump(mode="json"))

    def load_candidate(self) -> Optional[Candidate]:
        data = self._store.get(self._candidate_key)
        return Candidate.model_validate(data) if data else None

    # ── Attempts ─────────────────────────────────────────────────────────────

    def get_attempts(self) -> dict[Tier, int]:
        raw = {**_empty_counts(), **(self._store.get(self._attempts_key) or {})}
        return {Tier(k): int(v) for k, v in raw.items() if k in Tier._value2member_map_}

    def attempt_count(self, tier: Tier) -> int:
        return self.get_attempts()[tier]

    def record_attempt(self, tier: Tier) -> int:
        """Increment *tier*'s counter by exactly one and return the new count."""
        with self._store.transaction():
            counts = {**_empty_counts(), **(self._store.get(self._attempts_key) or {})}
            counts[tier.value] = int(counts.get(tier.value, 0)) + 1
            self._store.set(self._attempts_key, counts)
        logger.debug("Attempt %d recorded for %s/%s", counts[tier.value],
                     self.candidate_id, tier.value)
        return counts[tier.value]

    def attempts_allowed(self, tier: Tier) -> int:
        if tier not in self.retake_limits:
            return UNLIMITED_ATTEMPTS
        return 1 + self.retake_limits[tier]

    def attempts_remaining(self, tier: Tier) -> int:
        """Attempts left for *tier* (≥ 0); UNLIMITED_ATTEMPTS when uncapped."""
        allowed = self.attempts_allowed(tier)
        if allowed == UNLIMITED_ATTEMPTS:
            return UNLIMITED_ATTEMPTS
        return max(0, allowed - self.attempt_count(tier))

    def limit_exceeded(self, tier: Tier) -> bool:
        return self.attempts_remaining(tier) == 0

    # ── History ──────────────────────────────────────────────────────────────

    def append_result(self, result: TestResult) -> None:
        self._store.append(self._results_key, result.to_dict())

    def get_history(self) -> list[TestResult]:
        """Every recorded result, oldest first."""
        return [TestResult.from_dict(d) for d in self._store.get(self._results_key, [])]

    def record_completion(self, result: TestResult) -> None:
        """
        Record one completed session: attempt +1 and history append, atomically.

        Raises:
            PersistenceUnavailable – nothing was written.
        """
        try:
            with self._store.transaction():
                self.record_attempt(result.tier)
                self.append_result(result)
                next_tier = result.tier.next() if result.passed else None
                if next_tier is not None:
                    self._store.set(self._level_key, next_tier.value)
        except PersistenceUnavailable:
            logger.error("Could not record %s result for %s", result.tier.value, self.candidate_id)
            raise
        logger.info("Recorded %s %s (%.2f) for %s", result.tier.value, result.verdict,
                    result.score, self.candidate_id)

    def current_tier(self) -> Tier:
        """Bookmark of the highest tier unlocked so far."""
        return Tier(self._store.get(self._level_key, Tier.EASY.value))

    def reset(self) -> None:
        """Explicit reset: clears counters, history and the level bookmark."""
        with self._store.transaction():
            self._store.delete(self._attempts_key)
            self._store.delete(self._results_key)
            self._store.delete(self._level_key)
        logger.info("Ledger reset for %s", self.candidate_id)
