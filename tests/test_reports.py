"""
Tests for the result PDF and certificate grading (reports.py).
"""
import pytest

from factories import make_candidate, make_result

from admission.models import Tier
from admission.reports import certificate_level, generate_result_pdf, overall_score

E, M, H = Tier.EASY, Tier.MEDIUM, Tier.HARD


def _all_passed(score):
    return [make_result(t, True, score=score) for t in (E, M, H)]


class TestCertificateLevel:
    @pytest.mark.parametrize("score,grade", [
        (9.5, "Distinction"), (9.0, "Distinction"), (8.0, "Merit"), (7.9, "Pass"), (5.0, "Pass"),
    ])
    def test_grades(self, score, grade):
        assert certificate_level(_all_passed(score)) == grade

    def test_no_certificate_until_all_passed(self):
        assert certificate_level([make_result(E, True, score=10.0)]) is None

    def test_failed_attempts_pull_overall_down(self):
        history = [make_result(E, False, score=2.0)] + _all_passed(9.0)
        assert overall_score(history) == pytest.approx(7.25)
        assert certificate_level(history) == "Pass"

    def test_overall_of_empty_history(self):
        assert overall_score([]) == 0.0


class TestGenerateResultPdf:
    def test_pdf_header_signature(self):
        data = generate_result_pdf(make_candidate(), _all_passed(8.5))
        assert isinstance(data, bytes)
        assert data[:4] == b"%PDF", "Output must start with %PDF header"

    def test_empty_history_no_error(self):
        data = generate_result_pdf(make_candidate(), [])
        assert data[:4] == b"%PDF"

    def test_mixed_history_no_error(self):
        history = [make_result(E, False), make_result(E, True), make_result(M, False, n=3)]
        data = generate_result_pdf(make_candidate(), history, institution="Test College")
        assert len(data) > 1000

    def test_custom_pass_mark_no_error(self):
        data = generate_result_pdf(make_candidate(), _all_passed(7.0), pass_threshold=6.5)
        assert data[:4] == b"%PDF"
