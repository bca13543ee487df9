"""
Tests for e-mail templates and SMTP dispatch (notifications.py).  smtplib is always mocked.
"""
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from factories import make_candidate, make_settings

from admission.models import Tier
from admission.notifications import NotificationDispatcher, build_email, send_simple_email
from admission.progression import OutcomeKind

E, M, H = Tier.EASY, Tier.MEDIUM, Tier.HARD


class TestBuildEmail:
    @pytest.mark.parametrize("kind,subject", [
        (OutcomeKind.ACCEPT, "Congratulations! - Admission Confirmed"),
        (OutcomeKind.REJECT, "Admission Test Result"),
        (OutcomeKind.RETRY,  "Test Retry Available"),
    ])
    def test_subjects(self, kind, subject):
        assert build_email(make_candidate(), kind)[0] == subject

    def test_retry_body_has_level_and_score(self):
        _, body = build_email(make_candidate(), OutcomeKind.RETRY, {"level": M, "score": 4.25})
        assert "Dear Ada Lovelace" in body
        assert "MEDIUM level" in body
        assert "4.2/10" in body or "4.3/10" in body

    def test_reject_body_without_score(self):
        _, body = build_email(make_candidate(), OutcomeKind.REJECT, {})
        assert "N/A/10" in body

    def test_signed_by_institution(self):
        _, body = build_email(make_candidate(), OutcomeKind.ACCEPT, institution="Test College")
        assert body.rstrip().endswith("Admissions Team\nTest College")
        assert not body.startswith(" ")


class TestSendSimpleEmail:
    def test_missing_credentials(self):
        ok, msg = send_simple_email("h", 587, "a@b.co", "s", "body", "", "")
        assert not ok
        assert "required" in msg

    def test_starttls_path(self):
        server = MagicMock()
        with patch("admission.notifications.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value = server
            ok, msg = send_simple_email("smtp.example.com", 587, "to@example.com",
                                        "Subject", "Body", "from@example.com", "pw",
                                        login_user="apikey")
        assert ok
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("apikey", "pw")
        args = server.sendmail.call_args[0]
        assert args[0] == "from@example.com"
        assert args[1] == ["to@example.com"]

    def test_ssl_path_with_attachment(self):
        server = MagicMock()
        with patch("admission.notifications.smtplib.SMTP_SSL") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value = server
            ok, msg = send_simple_email("smtp.example.com", 465, ["a@x.co", "b@x.co"],
                                        "S", "<p>hi</p>", "from@x.co", "pw",
                                        pdf_bytes=b"%PDF-1.4 test")
        assert ok
        assert "PDF attached" in msg
        assert "admission_result.pdf" in server.sendmail.call_args[0][2]

    def test_auth_error_reported(self):
        with patch("admission.notifications.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value.login.side_effect = \
                smtplib.SMTPAuthenticationError(535, b"bad creds")
            ok, msg = send_simple_email("h", 587, "a@b.co", "s", "b", "f@b.co", "pw")
        assert not ok
        assert "Authentication failed" in msg

    def test_connection_error_reported(self):
        with patch("admission.notifications.smtplib.SMTP", side_effect=OSError("refused")):
            ok, msg = send_simple_email("h", 587, "a@b.co", "s", "b", "f@b.co", "pw")
        assert not ok
        assert "refused" in msg


class TestNotificationDispatcher:
    def test_simulated_delivery_without_smtp(self):
        d = NotificationDispatcher(make_settings())
        assert not d.is_live
        assert d.send(make_candidate(), OutcomeKind.RETRY, {"level": E, "score": 3.0})
        assert "simulated" in d.last_message.lower()
        assert d.sent == [("ada@example.com", "Test Retry Available")]

    def test_live_success(self):
        d = NotificationDispatcher(make_settings(smtp_user="apikey", smtp_pass="secret"))
        with patch("admission.notifications.send_simple_email",
                   return_value=(True, "Email sent successfully")) as send:
            assert d.send(make_candidate(), OutcomeKind.ACCEPT)
        kwargs = send.call_args.kwargs
        assert kwargs["to_emails"] == "ada@example.com"
        assert kwargs["subject"] == "Congratulations! - Admission Confirmed"

    def test_live_failure_returns_false(self):
        d = NotificationDispatcher(make_settings(smtp_user="apikey", smtp_pass="secret"))
        with patch("admission.notifications.send_simple_email",
                   return_value=(False, "Failed to send email: timeout")):
            assert not d.send(make_candidate(), OutcomeKind.REJECT)
        assert "timeout" in d.last_message
        assert d.sent == []
