"""
Tests for the persistence layer (database.py) and AttemptLedger (ledger.py).
Ledger tests run against both the in-memory and the SQLite store.
"""
import pytest

from factories import FlakyStore, make_candidate, make_result

from admission.database import InMemoryStore, SqliteStore, open_store
from admission.exceptions import PersistenceUnavailable
from admission.ledger import UNLIMITED_ATTEMPTS, AttemptLedger
from admission.models import Tier


# ─── KeyValueStore ────────────────────────────────────────────────────────────

class TestStores:
    def test_get_default(self, store):
        assert store.get("missing") is None
        assert store.get("missing", []) == []

    def test_set_get_roundtrip(self, store):
        store.set("k", {"a": [1, 2]})
        assert store.get("k") == {"a": [1, 2]}

    def test_append_creates_and_extends(self, store):
        store.append("log", {"n": 1})
        store.append("log", {"n": 2})
        assert store.get("log") == [{"n": 1}, {"n": 2}]

    def test_append_to_non_list_fails(self, store):
        store.set("scalar", 3)
        with pytest.raises(PersistenceUnavailable):
            store.append("scalar", 4)

    def test_keys_by_prefix(self, store):
        store.set("results:a", [])
        store.set("results:b", [])
        store.set("attempts:a", {})
        assert store.keys("results:") == ["results:a", "results:b"]
        assert len(store.keys()) == 3

    def test_delete(self, store):
        store.set("k", 1)
        store.delete("k")
        assert store.get("k") is None

    def test_transaction_rolls_back_on_error(self, store):
        store.set("a", 1)
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.set("a", 2)
                store.set("b", 3)
                raise RuntimeError("abort")
        assert store.get("a") == 1
        assert store.get("b") is None

    def test_nested_transaction_commits_with_outer(self, store):
        with store.transaction():
            with store.transaction():
                store.set("x", 1)
            store.set("y", 2)
        assert store.get("x") == 1 and store.get("y") == 2

    def test_memory_store_returns_copies(self):
        s = InMemoryStore()
        s.set("k", [1])
        s.get("k").append(2)
        assert s.get("k") == [1]

    def test_sqlite_persists_across_connections(self, tmp_path):
        path = tmp_path / "kv.db"
        first = SqliteStore(path)
        first.set("candidate:x", {"first_name": "Ada"})
        first.close()
        second = SqliteStore(path)
        assert second.get("candidate:x") == {"first_name": "Ada"}
        second.close()

    def test_open_store_memory(self):
        assert isinstance(open_store(":memory:"), InMemoryStore)
        assert isinstance(open_store(None), InMemoryStore)


# ─── AttemptLedger ────────────────────────────────────────────────────────────

class TestAttempts:
    def test_counters_start_at_zero(self, ledger):
        assert ledger.get_attempts() == {Tier.EASY: 0, Tier.MEDIUM: 0, Tier.HARD: 0}

    @pytest.mark.parametrize("n", [1, 2, 7])
    def test_record_attempt_n_times(self, ledger, n):
        for _ in range(n):
            ledger.record_attempt(Tier.MEDIUM)
        assert ledger.attempt_count(Tier.MEDIUM) == n
        assert ledger.attempt_count(Tier.EASY) == 0

    def test_completion_counts_pass_and_fail(self, ledger):
        ledger.record_completion(make_result(Tier.EASY, passed=False))
        ledger.record_completion(make_result(Tier.EASY, passed=True))
        ledger.record_completion(make_result(Tier.EASY, passed=False))
        assert ledger.attempt_count(Tier.EASY) == 3

    def test_easy_is_unlimited(self, ledger):
        for _ in range(10):
            ledger.record_attempt(Tier.EASY)
        assert ledger.attempts_remaining(Tier.EASY) == UNLIMITED_ATTEMPTS
        assert not ledger.limit_exceeded(Tier.EASY)

    @pytest.mark.parametrize("tier", [Tier.MEDIUM, Tier.HARD])
    def test_one_retake_after_first_attempt(self, ledger, tier):
        assert ledger.attempts_remaining(tier) == 2
        ledger.record_attempt(tier)
        assert ledger.attempts_remaining(tier) == 1
        ledger.record_attempt(tier)
        assert ledger.attempts_remaining(tier) == 0
        assert ledger.limit_exceeded(tier)

    def test_remaining_never_negative(self, ledger):
        for _ in range(5):
            ledger.record_attempt(Tier.HARD)
        assert ledger.attempts_remaining(Tier.HARD) == 0
        assert ledger.attempt_count(Tier.HARD) == 5

    def test_custom_limits(self, store):
        ledger = AttemptLedger(store, "c", {"medium": 3})
        assert ledger.attempts_remaining(Tier.MEDIUM) == 4
        assert ledger.attempts_remaining(Tier.HARD) == UNLIMITED_ATTEMPTS


class TestHistory:
    def test_insertion_order(self, ledger):
        results = [make_result(Tier.EASY, False), make_result(Tier.EASY, True),
                   make_result(Tier.MEDIUM, True)]
        for r in results:
            ledger.record_completion(r)
        history = ledger.get_history()
        assert [(r.tier, r.passed) for r in history] == [(r.tier, r.passed) for r in results]

    def test_histories_are_per_candidate(self, store):
        a, b = AttemptLedger(store, "a"), AttemptLedger(store, "b")
        a.record_completion(make_result())
        assert len(a.get_history()) == 1
        assert b.get_history() == []
        assert b.attempt_count(Tier.EASY) == 0

    def test_reset_clears_everything(self, ledger):
        ledger.record_completion(make_result(Tier.EASY, True))
        ledger.reset()
        assert ledger.get_history() == []
        assert ledger.attempt_count(Tier.EASY) == 0
        assert ledger.current_tier() is Tier.EASY

    def test_current_tier_bookmark(self, ledger):
        ledger.record_completion(make_result(Tier.EASY, True))
        assert ledger.current_tier() is Tier.MEDIUM
        ledger.record_completion(make_result(Tier.MEDIUM, False))
        assert ledger.current_tier() is Tier.MEDIUM

    def test_candidate_roundtrip(self, ledger):
        candidate = make_candidate()
        ledger.save_candidate(candidate)
        assert ledger.load_candidate() == candidate


class TestAtomicity:
    def test_failed_completion_writes_nothing(self):
        store = FlakyStore()
        ledger = AttemptLedger(store, "c")
        ledger.record_completion(make_result(Tier.EASY, True))
        store.failing = True
        with pytest.raises(PersistenceUnavailable):
            ledger.record_completion(make_result(Tier.MEDIUM, False))
        store.failing = False
        assert ledger.attempt_count(Tier.MEDIUM) == 0
        assert len(ledger.get_history()) == 1

    def test_sqlite_failure_mid_transaction_rolls_back(self, tmp_path):
        store = SqliteStore(tmp_path / "atomic.db")
        ledger = AttemptLedger(store, "c")
        original_append = store.append

        def broken_append(key, item):
            raise PersistenceUnavailable("write failed")

        store.append = broken_append
        with pytest.raises(PersistenceUnavailable):
            ledger.record_completion(make_result(Tier.EASY, True))
        store.append = original_append
        assert ledger.attempt_count(Tier.EASY) == 0
        assert ledger.get_history() == []
        store.close()
