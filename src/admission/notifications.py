"""
notifications.py — Result e-mail dispatcher
===========================================
Builds and sends the templated outcome e-mail after a level.

The outcome kind is chosen by progression.select_outcome().

Transport
---------
  send_simple_email() is a plain smtplib helper (STARTTLS, or SSL on 465)
  that never raises; it returns (ok, message).  NotificationDispatcher
  wraps it with SMTP settings from config.  When SMTP is not configured the
  message is logged and counted as delivered (simulated delivery), which
  keeps mock-mode runs and tests free of network access.
"""

from __future__ import annotations

import logging
import smtplib
import textwrap
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Mapping, Optional

from admission.config import Settings, get_settings
from admission.models import Candidate
from admission.progression import OutcomeKind

logger = logging.getLogger(__name__)


# ─── Templates ────────────────────────────────────────────────────────────────

_SUBJECTS: dict[OutcomeKind, str] = {
    OutcomeKind.ACCEPT: "Congratulations! - Admission Confirmed",
    OutcomeKind.REJECT: "Admission Test Result",
    OutcomeKind.RETRY:  "Test Retry Available",
}


def _level_label(context: Mapping[str, Any]) -> str:
    level = context.get("level")
    return str(getattr(level, "value", level) or "").upper()


def _score_label(context: Mapping[str, Any]) -> str:
    score = context.get("score")
    return f"{score:.1f}" if isinstance(score, (int, float)) else "N/A"


def build_email(
    candidate: Candidate,
    kind: OutcomeKind,
    context: Optional[Mapping[str, Any]] = None,
    institution: str = "Academic Excellence Institute",
) -> tuple[str, str]:
    """
    Return (subject, plain-text body) for *kind*.

    context keys used: ``level`` (Tier or str) and ``score`` (float, 0–10).
    """
    ctx = context or {}
    level, score = _level_label(ctx), _score_label(ctx)
    signature = f"Best regards,\nAdmissions Team\n{institution}"

    if kind == OutcomeKind.ACCEPT:
        body = textwrap.dedent(f"""\
            Dear {candidate.full_name},

            Congratulations! We are delighted to inform you that you have successfully passed all levels of our admission assessment.

            Your performance demonstrates a strong understanding of Physics and solid problem-solving ability. We look forward to welcoming you to our institution.

            Next Steps:
            1. You will receive further enrollment instructions within 3-5 business days
            2. Please check your email regularly for updates
            3. Contact our admissions office if you have any questions

            Once again, congratulations on this achievement!

            """)
    elif kind == OutcomeKind.RETRY:
        body = textwrap.dedent(f"""\
            Dear {candidate.full_name},

            This is to inform you about your recent test attempt at the {level} level.

            Your score: {score}/10

            You have additional attempts available. We encourage you to review the material and try again.

            Tips for success:
            - Take your time to understand each question
            - Provide detailed, well-structured answers
            - Review fundamental concepts before retrying

            """)
    else:
        body = textwrap.dedent(f"""\
            Dear {candidate.full_name},

            Thank you for taking the time to complete our admission assessment.

            After careful evaluation of your test performance at the {level} level (Score: {score}/10), we regret to inform you that you did not meet the minimum requirements for admission at this time.

            We encourage you to:
            - Review the study materials provided on our website
            - Strengthen your understanding of Physics fundamentals
            - Reapply in the next admission cycle

            """)
    return _SUBJECTS[kind], body + signature


# ─── SMTP transport ───────────────────────────────────────────────────────────

def send_simple_email(
    smtp_host: str,
    smtp_port: int,
    to_emails: "str | list[str]",
    subject: str,
    body_text: str,
    sender_email: str,
    sender_pass: str,
    login_user: Optional[str] = None,
    pdf_bytes: Optional[bytes] = None,
    pdf_filename: str = "admission_result.pdf",
) -> tuple[bool, str]:
    """
    Send one e-mail; never raises.

    Parameters
    ----------
    smtp_host    : e.g. "smtp.sendgrid.net"
    smtp_port    : 587 (STARTTLS) or 465 (SSL)
    to_emails    : single address or list of addresses
    body_text    : plain text or HTML (auto-detected by a leading "<")
    sender_email : From address
    sender_pass  : SMTP password / API key
    login_user   : SMTP username when it differs from sender_email
    pdf_bytes    : optional PDF attachment

    Returns
    -------
    (True,  "Email sent successfully")
    (False, "<error description>")
    """
    if not sender_email or not sender_pass:
        return False, "sender_email and sender_pass are required."

    recipients = [to_emails] if isinstance(to_emails, str) else list(to_emails)
    mime_subtype = "html" if body_text.strip().startswith("<") else "plain"

    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    msg["From"]    = sender_email
    msg["To"]      = ", ".join(recipients)
    msg.attach(MIMEText(body_text, mime_subtype, "utf-8"))

    if pdf_bytes:
        pdf_part = MIMEApplication(pdf_bytes, _subtype="pdf")
        pdf_part.add_header("Content-Disposition", "attachment", filename=pdf_filename)
        msg.attach(pdf_part)

    user = login_user or sender_email
    try:
        if smtp_port == 465:
            import ssl
            ctx = ssl.create_default_context()
            with smtplib.SMTP_SSL(smtp_host, smtp_port, context=ctx, timeout=15) as server:
                server.login(user, sender_pass)
                server.sendmail(sender_email, recipients, msg.as_string())
        else:
            with smtplib.SMTP(smtp_host, smtp_port, timeout=15) as server:
                server.ehlo()
                server.starttls()
                server.login(user, sender_pass)
                server.sendmail(sender_email, recipients, msg.as_string())
        attach_note = " (PDF attached)" if pdf_bytes else ""
        return True, f"Email sent successfully{attach_note}"
    except smtplib.SMTPAuthenticationError:
        return False, "Authentication failed. Check SMTP_USER and SMTP_PASS."
    except Exception as exc:  # noqa: BLE001 — any transport error is reported, not raised
        return False, f"Failed to send email: {exc}"


class NotificationDispatcher:
    """
    Sends outcome e-mails for the admission flow.

    ``send()`` returns a bool and never raises; the flow turns a False into
    a retryable DispatchFailure.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self.last_message: str = ""
        self.sent: list[tuple[str, str]] = []   # (recipient, subject) of delivered mail

    @property
    def is_live(self) -> bool:
        return self._settings.smtp.is_configured

    def send(
        self,
        candidate: Candidate,
        kind: OutcomeKind,
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        ctx = context or {}
        subject, body = build_email(candidate, kind, ctx, self._settings.app.institution_name)

        if not self.is_live:
            logger.info("SMTP not configured; simulated %s e-mail to %s: %s",
                        kind.value, candidate.email, subject)
            self.last_message = "Email simulated (SMTP not configured)"
            self.sent.append((candidate.email, subject))
            return True

        smtp = self._settings.smtp
        ok, message = send_simple_email(
            smtp_host=smtp.host,
            smtp_port=smtp.port,
            to_emails=candidate.email,
            subject=subject,
            body_text=body,
            sender_email=smtp.sender or smtp.user,
            sender_pass=smtp.password,
            login_user=smtp.user,
            pdf_bytes=ctx.get("pdf_bytes"),
        )
        self.last_message = message
        if ok:
            self.sent.append((candidate.email, subject))
            logger.info("Sent %s e-mail to %s", kind.value, candidate.email)
        else:
            logger.warning("E-mail to %s failed: %s", candidate.email, message)
        return ok
