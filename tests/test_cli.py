"""
Smoke tests for the `admission` console script (cli.py).
"""
from unittest.mock import patch

from factories import make_candidate, make_result

from admission.cli import build_parser, main, run_interactive
from admission.database import SqliteStore
from admission.ledger import AttemptLedger
from admission.models import Tier


class TestParser:
    def test_default_command_is_empty(self):
        args = build_parser().parse_args([])
        assert args.command is None

    def test_history_requires_candidate(self):
        args = build_parser().parse_args(["--db", "x.db", "history", "--candidate", "abc"])
        assert (args.command, args.candidate, args.db) == ("history", "abc", "x.db")


class TestCommands:
    def test_status(self, capsys):
        assert main(["status"]) == 0
        assert "OpenAI" in capsys.readouterr().out

    def test_history_prints_attempts(self, tmp_path, capsys):
        db = tmp_path / "cli.db"
        store = SqliteStore(db)
        ledger = AttemptLedger(store, "cand-001")
        ledger.save_candidate(make_candidate())
        ledger.record_completion(make_result(Tier.EASY, passed=True, score=7.5))
        store.close()

        assert main(["--db", str(db), "history", "--candidate", "cand-001"]) == 0
        out = capsys.readouterr().out
        assert "Ada Lovelace" in out
        assert "7.5/10" in out

    def test_reset_after_confirmation(self, tmp_path):
        db = tmp_path / "cli.db"
        store = SqliteStore(db)
        AttemptLedger(store, "c").record_completion(make_result())
        store.close()

        with patch("admission.cli.Confirm.ask", return_value=True):
            assert main(["--db", str(db), "reset", "--candidate", "c"]) == 0
        store = SqliteStore(db)
        assert AttemptLedger(store, "c").get_history() == []
        store.close()


class TestInteractive:
    def test_rejected_registration_prints_guardrail_summary(self, flow, capsys):
        answers = ["Ada", "Lovelace", "", "2005-06-15", "not-an-email", ""]
        with patch("admission.cli.Prompt.ask", side_effect=answers):
            assert run_interactive(flow) == 2
        out = capsys.readouterr().out
        assert "[R-02]" in out
        assert "not a valid e-mail" in out
        assert flow.candidate is None
