"""
Tests for registration and answer guardrails (guardrails.py).
"""
from datetime import date

import pytest

from factories import make_form

from admission.exceptions import RegistrationRejected
from admission.guardrails import (
    MAX_ANSWER_CHARS,
    AnswerGuardrails,
    GuardrailLevel,
    RegistrationForm,
    RegistrationGuardrails,
)

TODAY = date(2026, 1, 10)


def _codes(result, level=None):
    return [v.code for v in result.violations if level is None or v.level == level]


class TestRegistrationGuardrails:
    def setup_method(self):
        self.guard = RegistrationGuardrails()

    def test_valid_form_passes_with_info_only(self):
        result = self.guard.check(make_form(), TODAY)
        assert result.passed
        assert not result.blocked
        assert _codes(result) == ["R-05"]
        assert result.infos[0].level == GuardrailLevel.INFO

    @pytest.mark.parametrize("field", ["first_name", "last_name", "email", "dob"])
    def test_required_fields_block(self, field):
        result = self.guard.check(make_form(**{field: "  "}), TODAY)
        assert result.blocked
        assert "R-01" in _codes(result, GuardrailLevel.BLOCK)

    @pytest.mark.parametrize("email", ["ada", "ada@", "ada@example", "a b@example.com"])
    def test_bad_email_blocks(self, email):
        result = self.guard.check(make_form(email=email), TODAY)
        assert "R-02" in _codes(result, GuardrailLevel.BLOCK)

    @pytest.mark.parametrize("phone", ["12", "call me maybe", "+1 " + "9" * 20])
    def test_bad_phone_warns(self, phone):
        result = self.guard.check(make_form(phone=phone), TODAY)
        assert result.passed
        assert "R-03" in _codes(result, GuardrailLevel.WARN)

    def test_phone_is_optional(self):
        result = self.guard.check(make_form(phone=""), TODAY)
        assert "R-03" not in _codes(result)

    @pytest.mark.parametrize("dob", ["15/06/2005", "2027-01-01", "2020-01-01", "1900-01-01"])
    def test_dob_problems_block(self, dob):
        result = self.guard.check(make_form(dob=dob), TODAY)
        assert "R-04" in _codes(result, GuardrailLevel.BLOCK)

    def test_dob_accepts_date_object(self):
        assert self.guard.check(make_form(dob=date(2000, 2, 29)), TODAY).passed

    def test_validate_builds_candidate(self):
        candidate = self.guard.validate(make_form(first_name="  Ada "), TODAY)
        assert candidate.first_name == "Ada"
        assert candidate.dob == date(2005, 6, 15)

    def test_validate_raises_with_violations(self):
        with pytest.raises(RegistrationRejected) as info:
            self.guard.validate(make_form(email="nope", dob="2099-01-01"), TODAY)
        assert {v.code for v in info.value.violations} == {"R-02", "R-04"}

    def test_summary_lists_codes(self):
        summary = self.guard.check(make_form(email="bad"), TODAY).summary()
        assert "[R-02]" in summary and "[R-05]" in summary


class TestRegistrationForm:
    def test_from_mapping_drops_unknown_keys(self):
        form = RegistrationForm.from_mapping(dict(make_form().__dict__, age=20))
        assert form == make_form()

    def test_from_mapping_fills_missing_fields(self):
        form = RegistrationForm.from_mapping({"email": "ada@example.com", "phone": None})
        assert (form.first_name, form.dob, form.phone) == ("", "", "")
        result = RegistrationGuardrails().check(form, TODAY)
        assert result.blocked
        assert "R-01" in _codes(result, GuardrailLevel.BLOCK)

    def test_from_mapping_keeps_date_and_stringifies_rest(self):
        form = RegistrationForm.from_mapping({
            "first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com",
            "dob": date(2005, 6, 15), "phone": 447911123456,
        })
        assert form.dob == date(2005, 6, 15)
        assert form.phone == "447911123456"


class TestAnswerGuardrails:
    def test_normal_answer_has_no_violations(self):
        assert AnswerGuardrails().check("short answer").violations == []

    def test_long_answer_warns_and_truncates(self):
        guard = AnswerGuardrails()
        text = "x" * (MAX_ANSWER_CHARS + 10)
        result = guard.check(text)
        assert result.passed
        assert _codes(result, GuardrailLevel.WARN) == ["A-01"]
        assert len(guard.sanitise(text)) == MAX_ANSWER_CHARS

    def test_sanitise_handles_none(self):
        assert AnswerGuardrails().sanitise(None) == ""
