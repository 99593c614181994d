"""E2E tests for the small-loader command line."""

import json
from collections.abc import Callable
from pathlib import Path

import pytest
from small_loader.cli import app, backfill, cat, info


def call_expect_success(func: Callable, *args, **kwargs):
    """Call a command and handle both a plain return and SystemExit(0)."""
    try:
        func(*args, **kwargs)
    except SystemExit as exc:
        if exc.code != 0:
            raise


def call_expect_failure(func: Callable, *args, **kwargs) -> int:
    """Call a command expecting failure, return the exit code."""
    try:
        func(*args, **kwargs)
    except SystemExit as exc:
        return exc.code
    else:
        return 0


def _json_lines(text: str) -> list[dict]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


@pytest.mark.e2e
class TestInfo:
    def test_info_csv(self, sensors_csv_file: Path, capsys):
        call_expect_success(info, str(sensors_csv_file))

        out = capsys.readouterr().out
        assert "/temperature" in out
        assert "/label" in out
        assert "Duration" in out
        assert "12" in out

    def test_info_ndjson_time_unit(self, sensors_ndjson_file: Path, capsys):
        call_expect_success(info, str(sensors_ndjson_file), time_unit="ms")

        out = capsys.readouterr().out
        assert "1500000" in out
        assert "/accelerometer" in out

    def test_info_unsupported_format(self, tmp_path: Path, capsys):
        path = tmp_path / "data.bin"
        path.write_bytes(b"\x00")

        assert call_expect_failure(info, str(path)) == 1
        assert "cannot infer source format" in capsys.readouterr().err

    def test_info_missing_time_column(self, tmp_path: Path, capsys):
        path = tmp_path / "bad.csv"
        path.write_bytes(b"time,a\n0,1\n")

        assert call_expect_failure(info, str(path)) == 1
        assert "timestamp_nanos" in capsys.readouterr().err

    def test_info_custom_time_column(self, tmp_path: Path, capsys):
        path = tmp_path / "custom.csv"
        path.write_bytes(b"time,a\n0,1\n")

        call_expect_success(info, str(path), time_column="time")

        assert "/a" in capsys.readouterr().out


@pytest.mark.e2e
class TestCat:
    def test_cat_json(self, sensors_csv_file: Path, capsys):
        call_expect_success(cat, str(sensors_csv_file), json_output=True)

        lines = _json_lines(capsys.readouterr().out)
        assert len(lines) == 12
        assert lines[0] == {
            "topic": "/temperature",
            "channel_id": 1,
            "timestamp": 0,
            "encoding": "json",
            "data": {"value": 21.5},
        }

    def test_cat_filters(self, sensors_csv_file: Path, capsys):
        call_expect_success(
            cat, str(sensors_csv_file), topics=["/label"], start=10, limit=2, json_output=True
        )

        lines = _json_lines(capsys.readouterr().out)
        assert [(line["timestamp"], line["data"]["value"]) for line in lines] == [
            (10, "idle"),
            (10, "busy"),
        ]

    def test_cat_text_output(self, sensors_ndjson_file: Path, capsys):
        call_expect_success(cat, str(sensors_ndjson_file), end=0)

        out = capsys.readouterr().out
        assert "/temperature @ 0" in out
        assert "/accelerometer @ 0" in out

    def test_cat_unknown_topic(self, sensors_csv_file: Path, capsys):
        assert call_expect_failure(cat, str(sensors_csv_file), topics=["/nope"]) == 1
        assert "/nope" in capsys.readouterr().err

    def test_cat_through_app(self, sensors_csv_file: Path, capsys):
        call_expect_success(app, ["cat", str(sensors_csv_file), "--json", "-n", "2"])

        assert len(_json_lines(capsys.readouterr().out)) == 2


@pytest.mark.e2e
class TestBackfill:
    def test_backfill_json(self, sensors_csv_file: Path, capsys):
        call_expect_success(backfill, str(sensors_csv_file), 15, json_output=True)

        lines = _json_lines(capsys.readouterr().out)
        assert [(line["topic"], line["timestamp"], line["data"]["value"]) for line in lines] == [
            ("/temperature", 10, 21.9),
            ("/humidity", 10, 42.0),
            ("/label", 10, "busy"),
        ]

    def test_backfill_before_start(self, sensors_csv_file: Path, capsys):
        call_expect_success(backfill, str(sensors_csv_file), -1)

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "No records" in captured.err
