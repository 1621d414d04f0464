"""
Tests for logging setup and the command line interface.
"""

import logging
from unittest.mock import patch

import pytest

from database_ops import DatabaseManager
from main import build_parser, main, parse_assignment, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the CLI at a temporary database and a missing config file."""
    db_path = tmp_path / "tree.db"
    connection = f"sqlite:///{db_path.as_posix()}"
    monkeypatch.setenv("DB_CONNECTION_STRING", connection)
    return {"config": str(tmp_path / "config.yaml"), "connection": connection}


def run(cli_env, *args):
    return main(["--config", cli_env["config"], *args])


def load_nodes(cli_env):
    manager = DatabaseManager(cli_env["connection"])
    try:
        return {node.name: node for node in manager.load_tree()}
    finally:
        manager.close()


class TestSetupLogging:
    """Test setup_logging function."""

    def test_basic_logging_config(self):
        setup_logging({"logging": {"level": "DEBUG"}})

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert any(isinstance(h, logging.StreamHandler) for h in root.handlers)

    def test_file_logging_enabled(self, tmp_path):
        log_file = tmp_path / "logs" / "budget.log"
        setup_logging({"logging": {"level": "INFO", "file": str(log_file)}})

        assert any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)
        assert log_file.exists()

    def test_invalid_log_level_defaults_to_info(self):
        with patch("main.logger") as mock_logger:
            setup_logging({"logging": {"level": "INVALID_LEVEL"}})

        assert logging.getLogger().level == logging.INFO
        mock_logger.warning.assert_called_once()


class TestArgumentParsing:
    """Tests for the parser and NAME=AMOUNT values."""

    def test_parse_assignment(self):
        assert parse_assignment("Wallet=1,200.50") == ("Wallet", 1200.5)
        assert parse_assignment("Joint=Account=10") == ("Joint=Account", 10.0)

    def test_bad_assignment_exits(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["init", "--bank", "Wallet"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out


class TestCommands:
    """End-to-end CLI runs against a temporary SQLite database."""

    def test_commands_require_a_tree(self, cli_env, capsys):
        assert run(cli_env, "show") == 1
        assert "Run 'init' first" in capsys.readouterr().err

    def test_init_and_show(self, cli_env, capsys):
        assert run(cli_env, "init", "--bank", "Wallet=1200", "--bank", "Savings=148.17",
                   "--category", "Rent=1000") == 0
        assert run(cli_env, "show") == 0

        out = capsys.readouterr().out
        assert "Current Budget" in out
        assert "Rent" in out
        assert "$348.17" in out

    def test_add_over_budget_reports_available(self, cli_env, capsys):
        run(cli_env, "init", "--bank", "Wallet=1200", "--bank", "Savings=148.17", "--category", "Rent=1000")

        assert run(cli_env, "add", "Travel", "500") == 1
        assert "Only $348.17 available from parent budget" in capsys.readouterr().err

        assert run(cli_env, "add", "Travel", "300") == 0
        assert load_nodes(cli_env)["Travel"].allocated_amount == 300

    def test_post_unpost_and_summary(self, cli_env, capsys):
        run(cli_env, "init", "--bank", "Wallet=500", "--category", "Food=200")
        food = load_nodes(cli_env)["Food"]

        assert run(cli_env, "post", food.id, "45", "--description", "Market") == 0
        food = load_nodes(cli_env)["Food"]
        assert food.spent_amount == 45
        transaction_id = food.transactions[0].id

        assert run(cli_env, "transactions", food.id) == 0
        assert run(cli_env, "summary") == 0
        assert "$455.00" in capsys.readouterr().out

        assert run(cli_env, "unpost", food.id, transaction_id) == 0
        assert load_nodes(cli_env)["Food"].spent_amount == 0

    def test_delete_and_protected_root(self, cli_env, capsys):
        run(cli_env, "init", "--bank", "Wallet=500", "--category", "Food=200")
        food = load_nodes(cli_env)["Food"]

        assert run(cli_env, "delete", "total") == 1
        assert "cannot be deleted" in capsys.readouterr().err

        assert run(cli_env, "delete", food.id) == 0
        assert "Food" not in load_nodes(cli_env)

    def test_move_and_edges(self, cli_env, capsys):
        run(cli_env, "init", "--bank", "Wallet=500", "--category", "Food=200")
        food = load_nodes(cli_env)["Food"]

        assert run(cli_env, "move", food.id, "10", "20") == 0
        moved = load_nodes(cli_env)["Food"]
        assert (moved.position.x, moved.position.y) == (10, 20)

        assert run(cli_env, "edges", "--focus", "total") == 0
        assert "CONNECTIONS (focus: total)" in capsys.readouterr().out

    def test_unknown_node(self, cli_env, capsys):
        run(cli_env, "init", "--bank", "Wallet=500")
        assert run(cli_env, "delete", "missing") == 1
        assert "does not exist" in capsys.readouterr().err
