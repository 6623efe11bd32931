"""Tests for the command-line interface."""

from decimal import Decimal

import pytest
import typer
from typer.testing import CliRunner

from house_split.cli import app, format_money, parse_shares, parse_window

runner = CliRunner()


@pytest.fixture
def household(tmp_path, monkeypatch):
    """A CLI database with Alice (1) and Bob (2) sharing group 1 / environment 1."""
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "cli.db"))
    monkeypatch.delenv("WEBHOOK_URL", raising=False)

    for args in (
        ["user", "add", "Alice", "alice@example.com"],
        ["user", "add", "Bob", "bob@example.com"],
        ["group", "create", "Flat", "--as", "1"],
        ["group", "add-member", "1", "--as", "1", "--email", "bob@example.com"],
    ):
        result = runner.invoke(app, args)
        assert result.exit_code == 0, result.output


def create_rent() -> None:
    result = runner.invoke(
        app,
        [
            "bill", "create",
            "--as", "1",
            "--group", "1",
            "--env", "1",
            "--title", "Rent",
            "--due", "2024-01-31",
            "--amount", "300",
            "--share", "1:50",
            "--share", "2:50",
            "--receiver", "1",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Created bill 1" in result.output


class TestBillCommands:
    """Tests for bill commands."""

    def test_create_and_list(self, household):
        create_rent()

        result = runner.invoke(app, ["bill", "list", "1", "--month", "1", "--year", "2024"])

        assert result.exit_code == 0
        assert "Rent" in result.output
        assert "300.00" in result.output

    def test_pay_moves_bill_forward(self, household):
        create_rent()

        result = runner.invoke(app, ["bill", "pay", "1", "150", "--as", "2"])

        assert result.exit_code == 0, result.output
        assert "PARTIALLY_PAID" in result.output

    def test_domain_error_exits_with_1(self, household):
        """Bob cannot archive Alice's bill."""
        create_rent()

        result = runner.invoke(app, ["bill", "archive", "1", "--as", "2"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_malformed_share_is_usage_error(self, household):
        result = runner.invoke(
            app,
            [
                "bill", "create",
                "--as", "1", "--group", "1", "--env", "1",
                "--title", "Rent", "--due", "2024-01-31", "--amount", "300",
                "--share", "half",
                "--receiver", "1",
            ],
        )

        assert result.exit_code == 2

    def test_update_only_touches_given_options(self, household):
        create_rent()

        result = runner.invoke(
            app, ["bill", "update", "1", "--as", "1", "--amount", "400"]
        )

        assert result.exit_code == 0, result.output
        assert "400.00" in result.output


class TestDashboardCommands:
    """Tests for dashboard and recurring commands."""

    def test_summary(self, household):
        create_rent()

        result = runner.invoke(app, ["dashboard", "summary", "--as", "1"])

        assert result.exit_code == 0
        assert "150.00" in result.output

    def test_month_without_year_is_usage_error(self, household):
        result = runner.invoke(app, ["dashboard", "summary", "--as", "1", "--month", "1"])

        assert result.exit_code == 2

    def test_generate_recurring(self, household):
        result = runner.invoke(
            app,
            [
                "recurring", "create",
                "--as", "1", "--group", "1", "--env", "1",
                "--title", "Internet", "--first-due", "2024-01-31",
                "--amount", "120", "--share", "1:50", "--share", "2:50",
                "--receiver", "1", "--no-first-bill",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "2024-02-29" in result.output

        result = runner.invoke(app, ["recurring", "generate", "--as-of", "2024-03-01"])

        assert result.exit_code == 0, result.output
        assert "Generated 1 bills" in result.output

    def test_inbox(self, household):
        create_rent()

        result = runner.invoke(app, ["inbox", "read", "--as", "2"])

        assert result.exit_code == 0, result.output
        assert "Marked 1 notifications read" in result.output


class TestHelpers:
    """Tests for CLI helpers."""

    def test_parse_shares(self):
        shares = parse_shares(["1:33.34", "2:66.66"])

        assert [(s.user_id, str(s.percentage)) for s in shares] == [
            (1, "33.34"),
            (2, "66.66"),
        ]

    def test_parse_window(self):
        assert parse_window(None, None) is None
        assert parse_window(2, 2024).start.isoformat() == "2024-02-01"
        with pytest.raises(typer.BadParameter):
            parse_window(None, 2024)

    def test_format_money(self):
        assert format_money(Decimal("-85.02"), use_color=False) == "(85.02)"
        assert format_money(Decimal("1234.5"), use_color=False) == " 1,234.50 "
