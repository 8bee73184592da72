"""
tests.test_cli

Operator commands against a throwaway SQLite file.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from click.testing import CliRunner

from invoice_hub.cli import main
from invoice_hub.settings import get_settings


@pytest.fixture
def runner(tmp_path, monkeypatch) -> Iterator[CliRunner]:
    monkeypatch.setenv("INVH_ENV", "test")
    monkeypatch.setenv("INVH_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    get_settings.cache_clear()
    yield CliRunner()
    get_settings.cache_clear()


def test_reminder_commands_on_empty_database(runner: CliRunner) -> None:
    result = runner.invoke(main, ["init-db"])
    assert result.exit_code == 0, result.output
    assert "Tables created: " in result.output
    assert "invoices" in result.output

    result = runner.invoke(main, ["init-db", "--reset"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(main, ["invoices", "send-payment-reminders", "--days", "7"])
    assert result.exit_code == 0, result.output
    assert "Checking for invoices due in 7 days..." in result.output
    assert "No invoices found due in 7 days." in result.output

    result = runner.invoke(main, ["invoices", "send-overdue-reminders"])
    assert result.exit_code == 0, result.output
    assert "No overdue invoices found." in result.output

    result = runner.invoke(main, ["invoices", "archive"])
    assert result.exit_code == 0, result.output
    assert "Archived 0 invoices." in result.output


def test_negative_days_are_rejected(runner: CliRunner) -> None:
    result = runner.invoke(main, ["invoices", "send-payment-reminders", "--days", "-1"])
    assert result.exit_code == 2


def test_init_db_refuses_prod(runner: CliRunner, monkeypatch) -> None:
    monkeypatch.setenv("INVH_ENV", "prod")
    get_settings.cache_clear()
    result = runner.invoke(main, ["init-db"])
    assert result.exit_code == 1
    assert "disabled in prod" in result.output
