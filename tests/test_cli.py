"""Tests for the db-migrate CLI: argument parsing, dispatch, exit codes."""

import inspect
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import FakeDestination, FakeSource, make_rows
from db_migrate import cli
from db_migrate.progress import ProgressStore


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point progress and log output at ``tmp_path``."""
    for var in ("DUPLICATE_STRATEGY", "BATCH_SIZE", "DESTINATION_PROVIDER"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("PROGRESS_DIR", str(tmp_path / "progress"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("RETRY_DELAY", "0")
    return tmp_path


# ============================================================================
# Test: argument parsing
# ============================================================================


class TestArguments:
    """Parser wiring."""

    def test_dispatches_to_command(self) -> None:
        with patch("db_migrate.cli.cmd_status", return_value=0) as mock_status:
            assert cli.main(["status"]) == 0
            mock_status.assert_called_once()

    def test_env_file_global_option(self) -> None:
        with patch("db_migrate.cli.cmd_tables", return_value=0) as mock_tables:
            cli.main(["--env-file", ".env.staging", "tables"])
            args = mock_tables.call_args.args[0]
            assert args.env_file == ".env.staging"

    def test_migrate_options(self) -> None:
        with patch("db_migrate.cli.cmd_migrate", return_value=0) as mock_migrate:
            cli.main(["migrate", "--strategy", "skip", "--batch-size", "50", "--tables", "a,b", "--resume"])
            args = mock_migrate.call_args.args[0]
            assert (args.strategy, args.batch_size, args.tables, args.resume) == ("skip", 50, "a,b", True)

    def test_resume_and_restart_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            cli.main(["migrate", "--resume", "--restart"])

    def test_unknown_strategy_rejected(self) -> None:
        with pytest.raises(SystemExit):
            cli.main(["migrate", "--strategy", "merge"])

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.main([])

    def test_parse_tables(self) -> None:
        assert cli._parse_tables("users, orders,") == ["users", "orders"]
        assert cli._parse_tables("") is None
        assert cli._parse_tables(" , ") is None

    def test_async_wrapping(self) -> None:
        assert inspect.iscoroutinefunction(cli._async_migrate)
        assert inspect.iscoroutinefunction(cli._async_tables)
        assert not inspect.iscoroutinefunction(cli.cmd_status)
        assert not inspect.iscoroutinefunction(cli.cmd_reset)


# ============================================================================
# Test: local commands
# ============================================================================


class TestStatusAndReset:
    """Checkpoint commands never touch a database."""

    def test_status_without_checkpoints(self, cli_env: Path) -> None:
        assert cli.main(["status"]) == 0

    def test_status_lists_checkpoints(self, cli_env: Path) -> None:
        ProgressStore(cli_env / "progress").save("users", 2000, 2500)

        with patch.object(cli.console, "print") as mock_print:
            assert cli.main(["status"]) == 0
        assert mock_print.called

    def test_reset_selected_tables(self, cli_env: Path) -> None:
        store = ProgressStore(cli_env / "progress")
        store.save("users", 1, 2)
        store.save("orders", 1, 2)

        assert cli.main(["reset", "--tables", "users"]) == 0

        assert store.load("users") is None
        assert store.load("orders") is not None

    def test_reset_all(self, cli_env: Path) -> None:
        store = ProgressStore(cli_env / "progress")
        store.save("users", 1, 2)
        store.save("orders", 1, 2)

        assert cli.main(["reset"]) == 0
        assert store.list_checkpoints() == []

    def test_reset_rejects_names_outside_progress_dir(self, cli_env: Path) -> None:
        store = ProgressStore(cli_env / "progress")
        store.save("users", 1, 2)
        outside = cli_env / "x_progress.json"
        outside.write_text("{}")

        assert cli.main(["reset", "--tables", "users,../x"]) == 1

        assert outside.exists()
        assert store.load("users") is not None

    def test_invalid_configuration_exits_1(self, cli_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BATCH_SIZE", "zero")
        assert cli.main(["status"]) == 1


# ============================================================================
# Test: migrate / tables
# ============================================================================


class TestMigrateCommand:
    """End-to-end through the CLI with in-memory stores."""

    def test_success_exit_0(self, cli_env: Path) -> None:
        source = FakeSource({"users": make_rows(25)})
        dest = FakeDestination({"users": []})

        with patch("db_migrate.cli.create_source", return_value=source), \
                patch("db_migrate.cli.create_destination", return_value=dest):
            code = cli.main(["migrate", "--batch-size", "10", "--restart"])

        assert code == 0
        assert dest.ids("users") == list(range(1, 26))
        assert source.closed and dest.closed
        assert (cli_env / "logs" / "combined.log").exists()

    def test_duplicate_failure_exit_1(self, cli_env: Path) -> None:
        source = FakeSource({"users": make_rows(10)})
        dest = FakeDestination({"users": [{"id": 7, "name": "existing"}]})

        with patch("db_migrate.cli.create_source", return_value=source), \
                patch("db_migrate.cli.create_destination", return_value=dest):
            code = cli.main(["migrate", "--strategy", "error", "--resume"])

        assert code == 1
        assert source.closed and dest.closed
        assert "Duplicate data found" in (cli_env / "logs" / "error.log").read_text()

    def test_unknown_table_exit_1(self, cli_env: Path) -> None:
        with patch("db_migrate.cli.create_source", return_value=FakeSource({"users": []})), \
                patch("db_migrate.cli.create_destination", return_value=FakeDestination()):
            assert cli.main(["migrate", "--tables", "ghosts"]) == 1

    def test_missing_credentials_exit_1(self, cli_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        for var in ("SOURCE_DATABASE_URL", "SOURCE_DB_NAME"):
            monkeypatch.delenv(var, raising=False)
        assert cli.main(["migrate"]) == 1

    def test_tables_lists_counts(self, cli_env: Path) -> None:
        source = FakeSource({"users": make_rows(3), "orders": make_rows(2)})

        with patch("db_migrate.cli.create_source", return_value=source):
            assert cli.main(["tables"]) == 0
        assert source.closed

    def test_source_connection_drop_exit_1(self, cli_env: Path) -> None:
        """A driver error while paging the source ends in the failure summary."""
        source = FakeSource({"users": make_rows(25)})
        source.fetch_failures[10] = ConnectionResetError("connection reset by peer")
        dest = FakeDestination({"users": []})

        with patch("db_migrate.cli.create_source", return_value=source), \
                patch("db_migrate.cli.create_destination", return_value=dest):
            code = cli.main(["migrate", "--batch-size", "10", "--restart"])

        assert code == 1
        assert source.closed and dest.closed
        assert dest.ids("users") == list(range(1, 11))
        assert ProgressStore(cli_env / "progress").load("users").cursor == 10
        assert "connection reset by peer" in (cli_env / "logs" / "error.log").read_text()
