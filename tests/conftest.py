"""
Shared pytest fixtures for the admission test suite.
All fixtures use mock mode — no Azure or SMTP credentials required.
Factory helpers live in tests/factories.py so they can be imported
directly by test modules as well as being used here.
"""
import sys
import os

_tests_dir = os.path.dirname(__file__)
_src_dir   = os.path.join(_tests_dir, "..", "src")
for _p in (_tests_dir, _src_dir):
    if _p not in sys.path:
        sys.path.insert(0, _p)

# Force mock mode — never call Azure during tests
os.environ["FORCE_MOCK_MODE"] = "true"
os.environ.setdefault("AZURE_OPENAI_ENDPOINT", "<placeholder>")
os.environ.setdefault("AZURE_OPENAI_API_KEY",  "<placeholder>")


import pytest

from factories import (
    FixedEvaluator,
    RecordingDispatcher,
    StaticQuestionSource,
    make_candidate,
    make_settings,
)

from admission.database import InMemoryStore, SqliteStore
from admission.flow import AdmissionFlow
from admission.ledger import AttemptLedger


# ─── pytest fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def candidate():
    return make_candidate()


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def sqlite_store(tmp_path):
    store = SqliteStore(tmp_path / "admission.db")
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Every ledger test runs against both store implementations."""
    if request.param == "memory":
        yield InMemoryStore()
    else:
        s = SqliteStore(tmp_path / "ledger.db")
        yield s
        s.close()


@pytest.fixture
def ledger(store, candidate):
    return AttemptLedger(store, candidate.candidate_id)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def flow(settings, memory_store, dispatcher):
    """Flow with a high-scoring evaluator; the timer is driven manually."""
    return AdmissionFlow(
        settings,
        memory_store,
        question_source=StaticQuestionSource(),
        evaluator=FixedEvaluator(8.0),
        dispatcher=dispatcher,
    )
