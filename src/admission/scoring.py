"""
scoring.py — Session Scoring Engine
===================================
Turns a submitted TestSession into an immutable TestResult.

  per-question mean = mean of the six sub-scores      (0 for a blank answer)
  session score     = mean of the per-question means  (0 for zero questions)
  passed            = session score ≥ PASS_THRESHOLD  (inclusive)

Non-blank answers are evaluated concurrently on a ThreadPoolExecutor.  An
evaluator exception, or running past the shared deadline, is recorded as
the length-based fallback for that question only; the remaining questions
are unaffected.  Every question ends up with exactly one evaluation.

The engine has no side effects: recording attempts and history is the
ledger's job.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from typing import Optional

from admission.evaluation_agent import AnswerEvaluator, fallback_evaluation
from admission.models import (
    EvaluationScores,
    EvaluationSource,
    QuestionEvaluation,
    TestResult,
    TestSession,
)

logger = logging.getLogger(__name__)

EVALUATION_SCALE_MAX = 10.0
PASS_THRESHOLD: float = EVALUATION_SCALE_MAX / 2


def is_passing(score: float, threshold: float = PASS_THRESHOLD) -> bool:
    return score >= threshold


def session_score(evaluations: list[QuestionEvaluation]) -> float:
    if not evaluations:
        return 0.0
    return sum(e.mean for e in evaluations) / len(evaluations)


def _evaluate_one(evaluator: AnswerEvaluator, session: TestSession,
                  index: int) -> EvaluationScores:
    q = session.questions[index]
    return evaluator.evaluate(q.question, q.reference_answer, session.answer_for(index))


def score_session(
    session: TestSession,
    evaluator: AnswerEvaluator,
    *,
    pass_threshold: float = PASS_THRESHOLD,
    max_workers: int = 4,
    timeout: Optional[float] = None,
) -> TestResult:
    """
    Evaluate every question of *session* and aggregate into a TestResult.

    Parameters
    ----------
    session        : TestSession — answers are read, nothing is mutated
    evaluator      : AnswerEvaluator — may raise; failures fall back per question
    pass_threshold : float — inclusive pass mark on the 10-point scale
    max_workers    : int   — concurrent evaluator calls
    timeout        : float | None — wall-clock budget shared by all calls

    Returns
    -------
    TestResult
    """
    n = len(session.questions)
    evaluations: dict[int, QuestionEvaluation] = {}

    pending = [i for i in range(n) if not session.is_blank(i)]
    for i in range(n):
        if session.is_blank(i):
            evaluations[i] = QuestionEvaluation(i, EvaluationScores.zero(), EvaluationSource.BLANK)

    if pending:
        deadline = None if timeout is None else time.monotonic() + timeout
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, min(max_workers, len(pending))),
            thread_name_prefix="evaluate",
        )
        try:
            futures = {i: executor.submit(_evaluate_one, evaluator, session, i) for i in pending}
            for i, future in futures.items():
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                try:
                    scores = future.result(timeout=remaining)
                    evaluations[i] = QuestionEvaluation(i, scores, EvaluationSource.LLM)
                except Exception as exc:  # noqa: BLE001 — includes TimeoutError
                    logger.warning("Evaluation of question %d failed, using fallback: %s",
                                   i + 1, exc or type(exc).__name__)
                    evaluations[i] = QuestionEvaluation(
                        i, fallback_evaluation(session.answer_for(i)), EvaluationSource.FALLBACK,
                    )
        finally:
            # Late evaluator calls are abandoned, not awaited.
            executor.shutdown(wait=False, cancel_futures=True)

    ordered = [evaluations[i] for i in range(n)]
    score = session_score(ordered)
    passed = is_passing(score, pass_threshold)
    logger.info("Scored %s session %s: %.2f (%s)", session.tier.value,
                session.session_id, score, "pass" if passed else "fail")

    return TestResult(
        tier=session.tier,
        score=score,
        passed=passed,
        questions=list(session.questions),
        student_answers=[session.answer_for(i) for i in range(n)],
        evaluations=ordered,
        time_spent=session.time_spent,
        session_id=session.session_id,
    )
