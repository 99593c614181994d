"""Tests for the one-pass time index."""

import logging

import pytest
from helpers import csv_bytes
from pytest_mock import MockerFixture
from small_loader import (
    BytesAccessor,
    CsvFormat,
    DataLoader,
    EmptySourceError,
    LoaderError,
    LoaderOptions,
    MalformedRecordError,
    MissingTimeFieldError,
)
from small_loader.decoder import RecordDecoder
from small_loader.index import TimeIndex
from small_loader.records import NEED_MORE_DATA, ChannelSpec, DecodedValue, DecodeStep, JsonObject
from small_loader.registry import ChannelRegistry


def _build(data: bytes, **kwargs) -> TimeIndex:
    return TimeIndex.build(BytesAccessor(data), CsvFormat().new_decoder, **kwargs)


def test_bounds_and_counts(sensors_loader):
    index = sensors_loader.index

    assert len(index) == 4
    assert (index.start_time, index.end_time) == (0, 20)
    assert index.message_counts == {1: 4, 2: 4, 3: 4}
    assert {c.id: c.message_count for c in index.initialization().channels} == {1: 4, 2: 4, 3: 4}


def test_positions_follow_time_then_source_order():
    index = _build(csv_bytes(["timestamp_nanos", "a"], [[0, 1], [10, 2], [10, 3], [20, 4]]))

    assert [index.timestamp(i) for i in range(len(index))] == [0, 10, 10, 20]
    assert index.first_at_or_after(10) == 1
    assert index.first_at_or_after(21) is None
    assert index.insertion_point(10) == 3
    assert index.insertion_point(-1) == 0
    assert index.latest_for_channel(1, 3) == 2
    assert index.latest_for_channel(1, 0) is None


def test_tokens_point_at_row_offsets():
    data = csv_bytes(["timestamp_nanos", "a"], [[0, 1], [10, 2]])
    index = _build(data)

    header_length = len(b"timestamp_nanos,a\n")
    assert index.token(0).offset == header_length
    assert index.token(1).offset == header_length + len(b"0,1\n")


def test_duplicate_timestamp_jumps_to_earliest_unit():
    index = _build(csv_bytes(["timestamp_nanos", "a"], [[0, 1], [10, 2], [10, 3], [20, 4]]))

    assert index.first_at_or_after(10) == 1
    assert index.first_at_or_after(5) == 1
    assert index.token(1).offset == len(b"timestamp_nanos,a\n0,1\n")


def test_missing_time_column_registers_nothing(mocker: MockerFixture):
    register = mocker.spy(ChannelRegistry, "register_spec")
    loader = DataLoader(BytesAccessor(b"time,a\n0,1\n"), CsvFormat())

    with pytest.raises(MissingTimeFieldError) as exc_info:
        loader.initialize()

    assert exc_info.value.field == "timestamp_nanos"
    assert register.call_count == 0
    assert loader._initialization is None
    with pytest.raises(LoaderError, match="before initialize"):
        _ = loader.index


def test_empty_source_has_zero_bounds(caplog):
    with caplog.at_level(logging.WARNING):
        index = _build(b"")

    assert len(index) == 0
    assert (index.start_time, index.end_time) == (0, 0)
    assert "no records" in caplog.text


def test_header_only_source_keeps_channels():
    index = _build(b"timestamp_nanos,a,b\n")

    assert index.initialization().channels[0].topic == "/a"
    assert index.message_counts == {1: 0, 2: 0}


def test_empty_source_can_be_rejected():
    with pytest.raises(EmptySourceError):
        _build(b"", options=LoaderOptions(allow_empty=False))


def test_unordered_source_is_sorted_stably(caplog):
    data = csv_bytes(["timestamp_nanos", "a"], [[20, "x"], [0, "y"], [20, "z"], [10, "w"]])

    with caplog.at_level(logging.WARNING):
        index = _build(data)

    assert not index.ordered
    assert [index.timestamp(i) for i in range(len(index))] == [0, 10, 20, 20]
    # the two units at 20 keep file order
    assert index.token(2).offset < index.token(3).offset
    assert index.latest_for_channel(1, 4) == 3
    assert "not monotonic" in caplog.text


class _MixedTimeDecoder(RecordDecoder):
    def decode(self, data: bytes, start: int, *, final: bool) -> DecodeStep:
        if not final:
            return NEED_MORE_DATA
        values = (
            DecodedValue(0, "/a", JsonObject({})),
            DecodedValue(1, "/a", JsonObject({})),
        )
        return DecodeStep(len(data) - start, values, (ChannelSpec("/a", "json"),))


def test_unit_with_several_timestamps_is_malformed():
    with pytest.raises(MalformedRecordError, match="different timestamps"):
        TimeIndex.build(BytesAccessor(b"x"), _MixedTimeDecoder)


class _UndeclaredTopicDecoder(RecordDecoder):
    def decode(self, data: bytes, start: int, *, final: bool) -> DecodeStep:
        if not final:
            return NEED_MORE_DATA
        return DecodeStep(len(data) - start, (DecodedValue(0, "/ghost", JsonObject({})),))


def test_value_on_undeclared_topic_is_malformed():
    with pytest.raises(MalformedRecordError, match="/ghost") as exc_info:
        TimeIndex.build(BytesAccessor(b"x"), _UndeclaredTopicDecoder)

    assert exc_info.value.offset == 0
