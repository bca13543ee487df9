"""
reports.py — Result summary PDF
===============================
One-page (or more) reportlab summary of a candidate's attempts, attached to
the result e-mail.

Certificate grade (10-point scale, computed over every recorded attempt):
  Distinction  all levels passed and overall ≥ 9.0
  Merit        all levels passed and overall ≥ 8.0
  Pass         all levels passed
  None         otherwise
"""

from __future__ import annotations

import io
import logging
from datetime import date
from xml.sax.saxutils import escape
from typing import Optional, Sequence

from admission.models import LEVEL_TITLES, Candidate, TestResult
from admission.progression import is_terminal
from admission.scoring import PASS_THRESHOLD

logger = logging.getLogger(__name__)

DISTINCTION_SCORE = 9.0
MERIT_SCORE       = 8.0


def overall_score(history: Sequence[TestResult]) -> float:
    if not history:
        return 0.0
    return sum(r.score for r in history) / len(history)


def certificate_level(history: Sequence[TestResult]) -> Optional[str]:
    if not is_terminal(history):
        return None
    overall = overall_score(history)
    if overall >= DISTINCTION_SCORE:
        return "Distinction"
    if overall >= MERIT_SCORE:
        return "Merit"
    return "Pass"


def _rl_colour(hex_str: str):
    """Convert a CSS hex colour string to a reportlab Color."""
    from reportlab.lib import colors as rl_colors
    h = hex_str.lstrip("#")
    if len(h) == 3:
        h = "".join(c * 2 for c in h)
    r, g, b = int(h[0:2], 16) / 255, int(h[2:4], 16) / 255, int(h[4:6], 16) / 255
    return rl_colors.Color(r, g, b)


def _fmt_duration(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes}m {secs:02d}s"


def generate_result_pdf(
    candidate: Candidate,
    history: Sequence[TestResult],
    institution: str = "Academic Excellence Institute",
    pass_threshold: float = PASS_THRESHOLD,
) -> bytes:
    """
    Build the admission result summary.
    Returns raw PDF bytes.
    """
    from reportlab.lib.pagesizes import A4
    from reportlab.lib import colors as rl_colors
    from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
    from reportlab.lib.units import cm
    from reportlab.lib.enums import TA_CENTER
    from reportlab.platypus import (
        SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, HRFlowable,
    )

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=A4,
        leftMargin=1.8 * cm, rightMargin=1.8 * cm,
        topMargin=1.8 * cm, bottomMargin=1.8 * cm,
        title="Admission Test Result",
    )

    styles = getSampleStyleSheet()
    NAVY   = _rl_colour("#1e3a8a")
    DARK   = _rl_colour("#1f2937")
    MUTED  = _rl_colour("#6b7280")
    GREEN  = _rl_colour("#107c10")
    RED    = _rl_colour("#d13438")
    WHITE  = rl_colors.white
    LIGHT  = _rl_colour("#eef2ff")

    h1 = ParagraphStyle("H1", parent=styles["Heading1"],
                        textColor=WHITE, fontSize=16, leading=20, spaceAfter=4)
    h2 = ParagraphStyle("H2", parent=styles["Heading2"],
                        textColor=NAVY, fontSize=12, leading=15, spaceBefore=12, spaceAfter=4)
    body = ParagraphStyle("Body", parent=styles["Normal"],
                          textColor=DARK, fontSize=9, leading=13)
    small = ParagraphStyle("Small", parent=styles["Normal"],
                           textColor=MUTED, fontSize=8, leading=11)
    centre = ParagraphStyle("Centre", parent=styles["Normal"],
                            textColor=DARK, alignment=TA_CENTER, fontSize=9)

    story = []
    today = date.today().strftime("%B %d, %Y")

    # ── Header banner ─────────────────────────────────────────────────────────
    banner = Table([[Paragraph(
        f"<b>Admission Test Result</b><br/>"
        f"<font size='10'>{escape(candidate.full_name)} · {escape(institution)} · {today}</font>",
        h1,
    )]], colWidths=[doc.width])
    banner.setStyle(TableStyle([
        ("BACKGROUND",    (0, 0), (-1, -1), NAVY),
        ("TOPPADDING",    (0, 0), (-1, -1), 12),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 12),
        ("LEFTPADDING",   (0, 0), (-1, -1), 10),
    ]))
    story.append(banner)
    story.append(Spacer(1, 0.4 * cm))

    # ── KPI row ───────────────────────────────────────────────────────────────
    grade = certificate_level(history)
    levels_passed = len({r.tier for r in history if r.passed})
    kpi = Table([
        ["Overall Score", "Levels Passed", "Attempts", "Certificate"],
        [
            Paragraph(f"<b>{overall_score(history):.1f}/10</b>", centre),
            Paragraph(f"<b>{levels_passed}/3</b>", centre),
            Paragraph(f"<b>{len(history)}</b>", centre),
            Paragraph(f"<b>{grade or '—'}</b>", centre),
        ],
    ], colWidths=[doc.width / 4] * 4)
    kpi.setStyle(TableStyle([
        ("BACKGROUND",     (0, 0), (-1, 0), NAVY),
        ("TEXTCOLOR",      (0, 0), (-1, 0), WHITE),
        ("FONTNAME",       (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE",       (0, 0), (-1, 0), 8),
        ("ALIGN",          (0, 0), (-1, -1), "CENTER"),
        ("VALIGN",         (0, 0), (-1, -1), "MIDDLE"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [LIGHT]),
        ("GRID",           (0, 0), (-1, -1), 0.5, rl_colors.lightgrey),
    ]))
    story.append(kpi)

    # ── Attempt table ─────────────────────────────────────────────────────────
    story.append(Spacer(1, 0.3 * cm))
    story.append(Paragraph("Attempts", h2))
    story.append(HRFlowable(width="100%", thickness=1, color=NAVY))
    story.append(Spacer(1, 0.15 * cm))

    rows = [["#", "Level", "Score", "Result", "Time spent"]]
    for n, result in enumerate(history, start=1):
        verdict = Paragraph(
            result.verdict.upper(),
            ParagraphStyle("V", parent=body, textColor=GREEN if result.passed else RED),
        )
        rows.append([
            str(n),
            f"{result.level} · {LEVEL_TITLES[result.tier]}",
            f"{result.score:.1f}/10",
            verdict,
            _fmt_duration(result.time_spent),
        ])
    attempts = Table(rows, colWidths=[doc.width * f for f in (0.08, 0.38, 0.16, 0.16, 0.22)])
    attempts.setStyle(TableStyle([
        ("BACKGROUND",     (0, 0), (-1, 0), NAVY),
        ("TEXTCOLOR",      (0, 0), (-1, 0), WHITE),
        ("FONTNAME",       (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE",       (0, 0), (-1, -1), 8),
        ("VALIGN",         (0, 0), (-1, -1), "MIDDLE"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [WHITE, LIGHT]),
        ("GRID",           (0, 0), (-1, -1), 0.5, rl_colors.lightgrey),
    ]))
    story.append(attempts)

    # ── Per-question breakdown ────────────────────────────────────────────────
    for n, result in enumerate(history, start=1):
        if not result.evaluations:
            continue
        story.append(Paragraph(f"Attempt {n}: Level {result.level} question scores", h2))
        q_rows = [["Q", "Question", "Avg", "Source"]]
        for ev in result.evaluations:
            question = result.questions[ev.index].question if ev.index < len(result.questions) else ""
            q_rows.append([
                str(ev.index + 1),
                Paragraph(escape(question[:220]), body),
                f"{ev.mean:.1f}",
                ev.source.value,
            ])
        q_table = Table(q_rows, colWidths=[doc.width * f for f in (0.06, 0.68, 0.1, 0.16)])
        q_table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), LIGHT),
            ("FONTNAME",   (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE",   (0, 0), (-1, -1), 8),
            ("VALIGN",     (0, 0), (-1, -1), "TOP"),
            ("GRID",       (0, 0), (-1, -1), 0.5, rl_colors.lightgrey),
        ]))
        story.append(q_table)

    story.append(Spacer(1, 0.5 * cm))
    story.append(Paragraph(
        f"Pass mark: {pass_threshold:.1f}/10 per level. Candidate e-mail: {escape(candidate.email)}", small,
    ))

    doc.build(story)
    pdf = buf.getvalue()
    logger.debug("Result PDF for %s: %d bytes", candidate.candidate_id, len(pdf))
    return pdf
