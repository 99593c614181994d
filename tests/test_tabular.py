"""Tests for the CSV format."""

import json

import pytest
from helpers import csv_bytes
from small_loader import CsvFormat, MalformedRecordError, MissingTimeFieldError


def _payloads(loader, **kwargs):
    return [(r.timestamp, r.channel_id, json.loads(r.data)) for r in loader.create_iter(**kwargs)]


def test_channels_use_column_index(make_loader):
    loader = make_loader(b"a,timestamp_nanos,b\n1,0,2\n")

    channels = loader.initialize().channels

    assert [(c.id, c.topic, c.message_encoding) for c in channels] == [
        (0, "/a", "json"),
        (2, "/b", "json"),
    ]


def test_cells_become_typed_values(make_loader):
    loader = make_loader(
        csv_bytes(
            ["timestamp_nanos", "n", "flag", "text", "nan"],
            [[5, "-1.5e3", "true", "on", "nan"]],
        )
    )

    assert _payloads(loader) == [
        (5, 1, {"value": -1500.0}),
        (5, 2, {"value": True}),
        (5, 3, {"value": "on"}),
        (5, 4, {"value": None}),
    ]


def test_quoted_newline_stays_in_one_row(make_loader):
    loader = make_loader(b'timestamp_nanos,note\n0,"two\nlines"\n10,plain\n')

    assert _payloads(loader) == [(0, 1, {"value": "two\nlines"}), (10, 1, {"value": "plain"})]


def test_bom_crlf_blank_lines_and_missing_final_newline(make_loader):
    loader = make_loader(b"\xef\xbb\xbftimestamp_nanos,a\r\n\r\n0,1\r\n\n10,2")

    assert _payloads(loader) == [(0, 1, {"value": 1.0}), (10, 1, {"value": 2.0})]


def test_custom_time_column(make_loader):
    loader = make_loader(b"t,a\n7,x\n", CsvFormat(time_column="t"))

    assert _payloads(loader) == [(7, 1, {"value": "x"})]


def test_missing_time_column(make_loader):
    with pytest.raises(MissingTimeFieldError, match="timestamp_nanos"):
        make_loader(b"time,a\n0,1\n")


def test_width_mismatch_is_malformed(make_loader):
    with pytest.raises(MalformedRecordError, match="2 fields") as exc_info:
        make_loader(b"timestamp_nanos,a,b\n0,1,2\n10,2\n")

    assert exc_info.value.offset == len(b"timestamp_nanos,a,b\n0,1,2\n")


def test_non_integer_time_is_malformed(make_loader):
    with pytest.raises(MalformedRecordError, match="not an integer"):
        make_loader(b"timestamp_nanos,a\n1.5,1\n")


def test_checkpoint_restores_header():
    decoder = CsvFormat().new_decoder()
    data = b"timestamp_nanos,a\n0,1\n"
    decoder.decode(data, 0, final=False)
    state = decoder.checkpoint()

    fresh = CsvFormat().new_decoder()
    fresh.restore(state)
    step = fresh.decode(data, len(b"timestamp_nanos,a\n"), final=True)

    assert [value.topic for value in step.values] == ["/a"]
