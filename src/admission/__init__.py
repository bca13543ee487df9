"""
admission — Admission Assessment Engine
=======================================
A candidate registers, works through three timed levels of open-ended
questions, has each answer scored by an LLM examiner, and is e-mailed the
outcome.

Module map
----------
  models.py            Tier, Candidate, Question, EvaluationScores,
                       TestSession, TestResult.
  config.py            Settings loaded from .env; live vs. mock detection.
  exceptions.py        SourceUnavailable / EvaluatorUnavailable /
                       PersistenceUnavailable / DispatchFailure and friends.
  llm_client.py        Azure OpenAI JSON-mode wrapper.
  question_agent.py    Question generation + static fallback bank.
  evaluation_agent.py  Six-criterion answer evaluation + length fallback.
  scoring.py           Session score, pass/fail (concurrent evaluation).
  session_timer.py     Cancelable countdown with warning and expiry.
  database.py          KeyValueStore port; in-memory and SQLite stores.
  ledger.py            Attempt counters and append-only result history.
  progression.py       Level unlocking, outcome selection, ProgressionController.
  guardrails.py        Registration and answer validation.
  notifications.py     E-mail templates and SMTP dispatch.
  reports.py           reportlab result PDF, certificate grade.
  flow.py              AdmissionFlow orchestrator.
  cli.py               `admission` console script (rich).

Flow order
----------
  RegistrationGuardrails [R-01..R-05] → Candidate
  → start_level (ProgressionController gate, questions, SessionTimer)
  → answer … → submit / timer expiry
  → score_session (parallel via ThreadPoolExecutor)
  → AttemptLedger.record_completion → NextAction
  → NotificationDispatcher (accept / retry / reject)
"""
__version__ = "0.1.0"
