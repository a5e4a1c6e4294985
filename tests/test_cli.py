"""Tests for CLI commands that need no network."""

from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from conftest import SEAT_REPORT
from seatsnipe.cli import main
from seatsnipe.models import BookingResult, BookingStatus

CONFIG = """
global:
  preempt_seconds: 10
week_config:
  {day}:
    启用: {enabled}
    run_at_hour: 20
    run_at_minute: 0
    name: "二楼东自习室"
    seats: ["001", "002"]
    book_start_hour: 8
    duration: 4
"""


def _files(tmp_path, enabled="true"):
    config = tmp_path / "user_config.yml"
    config.write_text(CONFIG.format(day="manual", enabled=enabled), encoding="utf-8")
    seat_map = tmp_path / "seat_report.txt"
    seat_map.write_text(SEAT_REPORT, encoding="utf-8")
    user_info = tmp_path / "user_info.yml"
    user_info.write_text('school_id: "20051234"\npassword: "pw"\n', encoding="utf-8")
    return str(config), str(seat_map), str(user_info)


def test_seats_lists_room(tmp_path):
    _, seat_map, _ = _files(tmp_path)
    result = CliRunner().invoke(main, ["seats", "二楼东自习室", "--seat-map", seat_map])

    assert result.exit_code == 0
    assert "1202" in result.output
    assert "003" in result.output


def test_seats_unknown_room(tmp_path):
    _, seat_map, _ = _files(tmp_path)
    result = CliRunner().invoke(main, ["seats", "nowhere", "--seat-map", seat_map])
    assert result.exit_code == 1


def test_run_disabled_task_exits_cleanly(tmp_path):
    config, seat_map, user_info = _files(tmp_path, enabled="false")
    result = CliRunner().invoke(
        main,
        ["run", config, "--seat-map", seat_map, "--user-info", user_info, "--day", "manual"],
    )

    assert result.exit_code == 0
    assert "not enabled" in result.output


def test_run_reports_result(tmp_path):
    config, seat_map, user_info = _files(tmp_path)
    outcome = BookingResult(status=BookingStatus.EXHAUSTED, room="二楼东自习室", error="nope")

    with patch("seatsnipe.cli.SeatSniper") as MockSniper:
        MockSniper.return_value.execute = AsyncMock(return_value=outcome)
        result = CliRunner().invoke(
            main,
            ["run", config, "--seat-map", seat_map, "--user-info", user_info, "--day", "manual"],
        )

    assert result.exit_code == 1
    assert "EXHAUSTED" in result.output
    task, credentials = MockSniper.return_value.execute.await_args.args
    assert task.seats == ["001", "002"]
    assert credentials.school_id == "20051234"


def test_run_unknown_day_key(tmp_path):
    config, seat_map, user_info = _files(tmp_path)
    result = CliRunner().invoke(
        main,
        ["run", config, "--seat-map", seat_map, "--user-info", user_info, "--day", "周九"],
    )
    assert result.exit_code == 1
    assert "周九" in result.output
