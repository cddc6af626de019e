"""
Tests for the command line interface.
"""

import pendulum
import pytest
from typer.testing import CliRunner

from consultslot import __version__
from consultslot.cli.app import app

runner = CliRunner()

FIXTURE = """
consultants: [alice, bob]
services:
  - {id: intro, duration_minutes: 30, buffer_after_minutes: 15, minimum_advance_hours: 0}
templates:
""" + "".join(
    f'  - {{consultant_id: alice, day_of_week: {dow}, start_time: "09:00", end_time: "12:00"}}\n'
    for dow in range(7)
)


@pytest.fixture
def files(tmp_path):
    data_file = tmp_path / "fixtures.yaml"
    data_file.write_text(FIXTURE, encoding="utf-8")
    config_file = tmp_path / "config.yaml"
    config_file.write_text('timezone: "UTC"\n', encoding="utf-8")
    return ["--data", str(data_file), "--config", str(config_file)]


def in_days(days):
    return pendulum.now("UTC").add(days=days).to_date_string()


class TestCli:
    """Tests for CLI commands against a fixture file."""

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_dates(self, files):
        result = runner.invoke(app, ["dates", "intro", "alice", "--max-results", "2", *files])

        assert result.exit_code == 0
        assert in_days(1) in result.output
        assert in_days(3) not in result.output

    def test_dates_from(self, files):
        result = runner.invoke(app, ["dates", "intro", "alice", "-n", "1", "--from", in_days(5), *files])

        assert result.exit_code == 0
        assert in_days(6) in result.output
        assert in_days(1) not in result.output

    def test_dates_for_consultant_without_schedule(self, files):
        result = runner.invoke(app, ["dates", "intro", "bob", "--days-ahead", "3", *files])

        assert result.exit_code == 0
        assert "No available dates" in result.output

    def test_times(self, files):
        result = runner.invoke(app, ["times", "intro", "alice", in_days(2), *files])

        assert result.exit_code == 0
        assert "09:00" in result.output
        assert "11:15" in result.output
        assert "11:30" not in result.output

    def test_book(self, files):
        result = runner.invoke(app, ["book", "intro", in_days(2), "09:30", "-p", "alice", *files])

        assert result.exit_code == 0
        assert "Booked" in result.output
        assert "INT-" in result.output

    def test_book_from_pool(self, files):
        result = runner.invoke(app, ["book", "intro", in_days(2), "09:30", "-p", "bob", "-p", "alice", *files])

        assert result.exit_code == 0
        assert "alice" in result.output

    def test_book_rejected(self, files):
        result = runner.invoke(app, ["book", "intro", in_days(2), "11:30", "-p", "alice", *files])

        assert result.exit_code == 2
        assert "outside_availability" in result.output

    def test_unknown_service(self, files):
        result = runner.invoke(app, ["times", "coaching", "alice", in_days(2), *files])

        assert result.exit_code == 1
        assert "Service not found" in result.output

    def test_bad_date(self, files):
        result = runner.invoke(app, ["times", "intro", "alice", "next tuesday", *files])

        assert result.exit_code == 1
        assert "Could not parse date" in result.output

    def test_missing_config(self, tmp_path):
        result = runner.invoke(app, ["dates", "intro", "alice", "--config", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 1
        assert "Config file not found" in result.output
