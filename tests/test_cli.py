"""
Unit tests for CLI module (quest_board/cli.py).

Tests cover:
- Command parsing
- init-db and add-session against a temporary database
- drain-outbox and remind wiring
- Error exits
"""

from unittest.mock import patch

import pytest

from quest_board import cli
from quest_board.db import sessions_repo
from quest_board.db.connection import connection_scope

# ============================================================================
# PARSER TESTS
# ============================================================================


@pytest.mark.unit
def test_parser_add_session_options():
    args = cli.build_parser().parse_args(
        [
            "add-session",
            "--capacity",
            "5",
            "--tier",
            "tier2",
            "--title",
            "Night Market",
            "--no-requires-approval",
        ]
    )

    assert args.capacity == 5
    assert args.tier == "tier2"
    assert args.title == "Night Market"
    assert args.requires_approval is False
    assert args.func is cli.cmd_add_session


@pytest.mark.unit
def test_parser_rejects_unknown_tier():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["add-session", "--capacity", "5", "--tier", "epic"])


@pytest.mark.unit
def test_main_without_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "quest-board" in capsys.readouterr().out


# ============================================================================
# COMMAND TESTS
# ============================================================================


@pytest.mark.unit
@pytest.mark.db
def test_init_db_command(temp_db_path, capsys):
    with patch.object(cli, "configure_logging"):
        assert cli.main(["init-db"]) == 0

    assert temp_db_path.exists()
    assert "initialized" in capsys.readouterr().out


@pytest.mark.unit
def test_init_db_command_reports_failure(capsys):
    with patch("quest_board.db.schema.init_database", side_effect=RuntimeError("disk full")):
        assert cli.cmd_init_db(cli.build_parser().parse_args(["init-db"])) == 1

    assert "disk full" in capsys.readouterr().err


@pytest.mark.unit
@pytest.mark.db
def test_add_session_command(temp_db_path, capsys):
    with patch.object(cli, "configure_logging"):
        code = cli.main(
            [
                "add-session",
                "--capacity",
                "4",
                "--tier",
                "tier1",
                "--id",
                "crypt",
                "--date",
                "2026-11-01",
                "--deadline",
                "2026-10-31T18:00:00",
                "--requires-approval",
            ]
        )

    assert code == 0
    assert "Session crypt added (4 seats, tier1)." in capsys.readouterr().out
    with connection_scope() as conn:
        session = sessions_repo.get_session(conn, "crypt")
    assert session.requires_approval is True
    assert session.signup_deadline.isoformat() == "2026-10-31T18:00:00+00:00"


@pytest.mark.unit
def test_add_session_rejects_zero_capacity(capsys):
    args = cli.build_parser().parse_args(["add-session", "--capacity", "0"])

    assert cli.cmd_add_session(args) == 1
    assert "at least 1" in capsys.readouterr().err


@pytest.mark.unit
@pytest.mark.db
def test_drain_outbox_command(test_db, capsys):
    with patch.object(cli, "configure_logging"):
        assert cli.main(["drain-outbox", "--limit", "10"]) == 0

    assert "Sent 0, failed 0, skipped 0." in capsys.readouterr().out


@pytest.mark.unit
@pytest.mark.db
def test_remind_unknown_session_fails(test_db, capsys):
    with patch.object(cli, "configure_logging"):
        assert cli.main(["remind", "missing"]) == 1

    assert "Session not found." in capsys.readouterr().err


@pytest.mark.unit
@pytest.mark.db
def test_remind_command(make_session, capsys):
    session = make_session()

    with patch.object(cli, "configure_logging"):
        assert cli.main(["remind", session.id, "--actor", "dm"]) == 0

    assert "Queued 0 reminders" in capsys.readouterr().out


@pytest.mark.unit
def test_run_command_starts_server():
    with (
        patch("quest_board.api.server.start_server") as mock_start,
        patch("quest_board.config.print_config_summary"),
        patch.object(cli, "configure_logging"),
    ):
        assert cli.main(["run", "--port", "9100", "--host", "127.0.0.1"]) == 0

    mock_start.assert_called_once_with(host="127.0.0.1", port=9100)
