"""
session_timer.py — Per-session countdown
========================================
Budget  = tier level × seconds_per_level (15 min per level by default).
Warning = fires once when remaining ≤ budget × warning_fraction.
Expiry  = fires on_expire exactly once when remaining reaches zero.

The background thread only ever calls tick(); tests drive tick() directly
for deterministic behaviour.  cancel() is final: once it returns, neither
callback will be invoked again.  A decision to fire is taken under the lock
and the callback itself runs outside it, so a callback may safely call
cancel() on its own timer.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from admission.models import Tier

logger = logging.getLogger(__name__)

DEFAULT_SECONDS_PER_LEVEL = 15 * 60
DEFAULT_WARNING_FRACTION = 1 / 3


def time_budget_for(tier: Tier, seconds_per_level: int = DEFAULT_SECONDS_PER_LEVEL) -> int:
    return tier.level * seconds_per_level


class SessionTimer:
    """Cancelable one-second countdown with a one-shot warning and expiry."""

    def __init__(
        self,
        budget: int,
        *,
        on_expire: Callable[[], None],
        on_warning: Optional[Callable[[int], None]] = None,
        on_tick: Optional[Callable[[int], None]] = None,
        warning_fraction: float = DEFAULT_WARNING_FRACTION,
        interval: float = 1.0,
    ) -> None:
        if budget < 0:
            raise ValueError("budget must be ≥ 0")
        self.budget = budget
        self.warning_threshold = budget * warning_fraction
        self.interval = interval
        self._on_expire = on_expire
        self._on_warning = on_warning
        self._on_tick = on_tick

        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._remaining = budget
        self._warned = False
        self._expired = False
        self._cancelled = False

    # ── State ────────────────────────────────────────────────────────────────

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def warned(self) -> bool:
        return self._warned

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ── Control ──────────────────────────────────────────────────────────────

    def start(self) -> "SessionTimer":
        """Begin ticking on a daemon thread.  Starting twice is a no-op."""
        with self._lock:
            if self._thread is not None or self._cancelled or self._expired:
                return self
            self._thread = threading.Thread(target=self._run, name="session-timer", daemon=True)
        self._thread.start()
        return self

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            if not self.tick():
                break

    def tick(self) -> bool:
        """Advance one second.  Returns False once the timer is finished."""
        fire_warning = fire_expire = False
        with self._lock:
            if self._cancelled or self._expired:
                return False
            self._remaining = max(0, self._remaining - 1)
            remaining = self._remaining
            if not self._warned and remaining <= self.warning_threshold:
                self._warned = fire_warning = True
            if remaining <= 0:
                self._expired = fire_expire = True

        if self._on_tick is not None:
            self._on_tick(remaining)
        if fire_warning and self._on_warning is not None:
            logger.info("Time warning: %ds remaining", remaining)
            self._on_warning(remaining)
        if fire_expire:
            self._fire_expire()
            return False
        return True

    def expire(self) -> None:
        """Force expiry now.  Idempotent; a no-op after cancel()."""
        with self._lock:
            if self._cancelled or self._expired:
                return
            self._expired = True
            self._remaining = 0
        self._fire_expire()

    def _fire_expire(self) -> None:
        self._stop.set()
        logger.info("Session timer expired after %ds", self.budget)
        self._on_expire()

    def cancel(self) -> None:
        """Tear down the timer; no callback fires afterwards."""
        with self._lock:
            self._cancelled = True
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(self.interval * 2, 1.0))
