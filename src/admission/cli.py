"""
cli.py – Interactive terminal front-end
=======================================
Run:
    admission run                       # register and take the levels
    admission history --candidate ID    # print recorded attempts
    admission reset --candidate ID      # clear counters and history
    admission status                    # which services are live

Global flags: --db PATH (SQLite file, ':memory:' for a throwaway run),
--verbose (DEBUG logging).
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from admission.config import get_settings
from admission.database import open_store
from admission.exceptions import (
    DispatchFailure,
    IllegalTransition,
    PersistenceUnavailable,
    RegistrationRejected,
    TierLocked,
)
from admission.flow import AdmissionFlow, SubmissionOutcome
from admission.guardrails import GuardrailResult, RegistrationForm
from admission.ledger import UNLIMITED_ATTEMPTS, AttemptLedger
from admission.models import LEVEL_TITLES, SessionState, TestResult
from admission.progression import FlowPhase, is_terminal
from admission.reports import certificate_level, overall_score

console = Console()
logger = logging.getLogger(__name__)

PHASE_STYLE = {
    FlowPhase.LOCKED:      "[dim]🔒 Locked[/dim]",
    FlowPhase.UNLOCKED:    "[cyan]▶ Available[/cyan]",
    FlowPhase.IN_PROGRESS: "[yellow]… In progress[/yellow]",
    FlowPhase.COMPLETED:   "[green]✓ Passed[/green]",
    FlowPhase.TERMINAL:    "[green]★ Complete[/green]",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
    )


def _fmt_clock(seconds: int) -> str:
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


# ─── Display helpers ─────────────────────────────────────────────────────────

def show_history(history: list[TestResult]) -> None:
    if not history:
        console.print("[dim]No attempts recorded yet.[/dim]")
        return
    table = Table(title="Attempt history", box=box.ROUNDED)
    table.add_column("#", justify="right")
    table.add_column("Level")
    table.add_column("Score", justify="right")
    table.add_column("Result")
    table.add_column("Time", justify="right")
    table.add_column("Completed")
    for n, r in enumerate(history, start=1):
        verdict = "[green]PASS[/green]" if r.passed else "[red]FAIL[/red]"
        table.add_row(str(n), f"{r.level} · {LEVEL_TITLES[r.tier]}", f"{r.score:.1f}/10",
                      verdict, _fmt_clock(r.time_spent), r.completed_at[:19].replace("T", " "))
    console.print(table)


def show_level_map(flow: AdmissionFlow) -> None:
    table = Table(title="Levels", box=box.SIMPLE_HEAVY)
    table.add_column("Level")
    table.add_column("Status")
    table.add_column("Best", justify="right")
    table.add_column("Attempts left", justify="right")
    for row in flow.level_map():
        left = flow.attempts_remaining(row.tier)
        table.add_row(
            f"{row.tier.level} · {row.title}",
            PHASE_STYLE[row.phase],
            "—" if row.best_score is None else f"{row.best_score:.1f}",
            "∞" if left == UNLIMITED_ATTEMPTS else str(left),
        )
    console.print(table)


def show_score_screen(outcome: SubmissionOutcome) -> None:
    r = outcome.result
    colour = "green" if r.passed else "red"
    table = Table(box=box.SIMPLE, show_header=True)
    table.add_column("Q", justify="right")
    table.add_column("Avg", justify="right")
    table.add_column("Source")
    for ev in r.evaluations:
        table.add_row(str(ev.index + 1), f"{ev.mean:.1f}", ev.source.value)
    console.print(Panel(
        table,
        title=f"[bold {colour}]Level {r.level}: {r.score:.1f}/10 — {r.verdict.upper()}[/bold {colour}]",
        border_style=colour,
        expand=False,
    ))


# ─── Interactive run ─────────────────────────────────────────────────────────

def _prompt_registration() -> RegistrationForm:
    console.print(Panel("[bold]Admission Assessment[/bold]\nPlease register to begin.", expand=False))
    return RegistrationForm(
        first_name=Prompt.ask("First name"),
        last_name=Prompt.ask("Last name"),
        gender=Prompt.ask("Gender", default=""),
        dob=Prompt.ask("Date of birth (YYYY-MM-DD)"),
        email=Prompt.ask("E-mail"),
        phone=Prompt.ask("Phone", default=""),
    )


def _take_level(flow: AdmissionFlow) -> Optional[SubmissionOutcome]:
    tier = flow.next_tier()
    try:
        session = flow.start_level(tier)
    except (TierLocked, IllegalTransition) as exc:
        console.print(f"[red]{exc}[/red]")
        return None

    console.rule(f"[bold]Level {tier.level} · {LEVEL_TITLES[tier]}[/bold]")
    console.print(f"[dim]{len(session.questions)} questions · "
                  f"{_fmt_clock(session.time_budget)} on the clock[/dim]")
    for i, q in enumerate(session.questions):
        if session.state != SessionState.IN_PROGRESS:
            break
        console.print(f"\n[cyan]{i + 1}.[/cyan] {q.question}")
        text = Prompt.ask("   >", default="")
        if session.state != SessionState.IN_PROGRESS:
            console.print("[yellow]Time was up; that answer was not recorded.[/yellow]")
            break
        check = flow.answer(i, text)
        if check.violations:
            console.print(f"[yellow]{escape(check.summary())}[/yellow]")

    while True:
        try:
            with console.status("[bold blue]Evaluating your answers…"):
                return flow.submit()
        except PersistenceUnavailable as exc:
            console.print(f"[red]Could not save your result: {exc}[/red]")
            if not Confirm.ask("Retry saving?", default=True):
                flow.abandon()
                return None


def _offer_email(flow: AdmissionFlow) -> None:
    if not Confirm.ask("Send the result e-mail now?", default=True):
        return
    while True:
        try:
            kind = flow.send_result_email()
            console.print(f"[green]✓ {kind.value.title()} e-mail sent.[/green] "
                          f"[dim]{flow.dispatcher.last_message}[/dim]")
            return
        except DispatchFailure as exc:
            console.print(f"[red]E-mail failed: {exc}[/red]")
            if not Confirm.ask("Resend?", default=True):
                return


def run_interactive(flow: AdmissionFlow) -> int:
    try:
        candidate = flow.register(_prompt_registration())
    except RegistrationRejected as exc:
        console.print(f"[red]{escape(GuardrailResult(False, exc.violations).summary())}[/red]")
        return 2
    console.print(f"[bold green]✓ Registered.[/bold green] Candidate ID: [bold]{candidate.candidate_id}[/bold]")

    while not is_terminal(flow.history):
        show_level_map(flow)
        outcome = _take_level(flow)
        if outcome is None:
            return 1
        show_score_screen(outcome)
        if outcome.next_action.advances:
            console.print(f"[bold green]Level {outcome.next_action.tier.level} unlocked![/bold green]")
            continue
        if is_terminal(flow.history):
            break
        if flow.ledger.limit_exceeded(outcome.result.tier):
            console.print("[red]No attempts remaining for this level.[/red]")
            _offer_email(flow)
            return 0
        if not Confirm.ask(f"Retake level {outcome.result.level}?", default=True):
            _offer_email(flow)
            return 0

    history = flow.history
    grade = certificate_level(history)
    console.print(Panel(
        f"All levels passed. Overall {overall_score(history):.1f}/10 · Certificate: [bold]{grade}[/bold]",
        border_style="green", expand=False,
    ))
    _offer_email(flow)
    return 0


# ─── Entry point ─────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="admission", description="Admission assessment engine")
    parser.add_argument("--db", default=None, help="SQLite path (':memory:' for no persistence)")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="register and take the levels interactively")
    hist = sub.add_parser("history", help="show recorded attempts for a candidate")
    hist.add_argument("--candidate", required=True)
    reset = sub.add_parser("reset", help="clear attempts and history for a candidate")
    reset.add_argument("--candidate", required=True)
    sub.add_parser("status", help="show which external services are configured")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    settings = get_settings()
    command = args.command or "run"

    if command == "status":
        table = Table(box=box.ROUNDED, show_header=False)
        for service, badge in settings.status_summary().items():
            table.add_row(service, badge)
        console.print(table)
        return 0

    try:
        store = open_store(args.db or settings.app.db_path)
    except PersistenceUnavailable as exc:
        console.print(f"[red]{exc}[/red]")
        return 1

    if command == "history":
        ledger = AttemptLedger(store, args.candidate, settings.policy.retake_limits())
        candidate = ledger.load_candidate()
        if candidate is not None:
            console.print(f"[bold]{candidate.full_name}[/bold] <{candidate.email}>")
        show_history(ledger.get_history())
        return 0

    if command == "reset":
        ledger = AttemptLedger(store, args.candidate, settings.policy.retake_limits())
        if Confirm.ask(f"Clear every attempt for {args.candidate}?", default=False):
            ledger.reset()
            console.print("[green]✓ Reset.[/green]")
        return 0

    flow = AdmissionFlow(
        settings,
        store,
        enforce_retake_limits=True,
        on_warning=lambda s: console.print(
            f"\n[bold yellow]⏰ {_fmt_clock(s)} remaining.[/bold yellow]"),
        on_time_up=lambda o: console.print(
            "\n[bold red]⏰ Time is up — your answers were submitted.[/bold red] "
            "[dim](press Enter)[/dim]"),
    )
    try:
        return run_interactive(flow)
    except KeyboardInterrupt:
        flow.abandon()
        console.print("\n[dim]Session abandoned; nothing was recorded.[/dim]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
