"""
Smoke tests for the command line against the bundled sample snapshot.
"""

from pathlib import Path

from typer.testing import CliRunner

from clinicschedule.cli.app import app


SAMPLE = str(Path(__file__).parent.parent / "sample_snapshot.json")
runner = CliRunner()


def test_slots_lists_free_times():
    result = runner.invoke(
        app, ["slots", "dr-lan", "--date", "2025-12-15", "--data", SAMPLE, "--now", "2025-12-15T07:00:00"]
    )

    assert result.exit_code == 0
    assert "available slot(s)" in result.output


def test_slots_on_day_off():
    result = runner.invoke(
        app, ["slots", "dr-lan", "--date", "2025-12-14", "--data", SAMPLE, "--now", "2025-12-13T07:00:00"]
    )

    assert result.exit_code == 0
    assert "does not work" in result.output


def test_validate_rejects_booked_slot():
    result = runner.invoke(
        app, ["validate", "dr-lan", "2025-12-15", "14:00", "--data", SAMPLE, "--now", "2025-12-15T07:00:00"]
    )

    assert result.exit_code == 2
    assert "slot_no_longer_available" in result.output


def test_validate_accepts_free_slot():
    result = runner.invoke(
        app, ["validate", "dr-lan", "2025-12-15", "15:00", "--data", SAMPLE, "--now", "2025-12-15T07:00:00"]
    )

    assert result.exit_code == 0
    assert "can be booked" in result.output


def test_fee_inside_window():
    result = runner.invoke(app, ["fee", "2025-12-15T10:00:00", "--now", "2025-12-15T09:45:00"])

    assert result.exit_code == 0
    assert "Fee applies" in result.output


def test_missing_snapshot_file(tmp_path):
    result = runner.invoke(app, ["slots", "dr-lan", "--data", str(tmp_path / "missing.json")])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_slots_as_json():
    result = runner.invoke(
        app,
        ["slots", "dr-lan", "--date", "2025-12-15", "--json", "--data", SAMPLE, "--now", "2025-12-15T07:00:00"],
    )

    assert result.exit_code == 0
    assert '"start_time": "08:00"' in result.output
    assert '"reason": "blocked"' in result.output
