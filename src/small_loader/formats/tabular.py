"""Tabular rows with a header line and an integer nanosecond time column.

Every column except the time column becomes a channel named ``/<column>``,
with the column index as channel id. Each row fans out into one message per
channel, in column order.
"""

import csv
import io
from collections.abc import Hashable

from small_loader.decoder import RecordDecoder, SourceFormat
from small_loader.exceptions import MalformedRecordError, MissingTimeFieldError
from small_loader.payload import MessageEncoding
from small_loader.records import (
    NEED_MORE_DATA,
    CellValue,
    ChannelSpec,
    DecodedValue,
    DecodeStep,
)

DEFAULT_TIME_COLUMN = "timestamp_nanos"
_BOM = "\ufeff"


def _find_row_end(data: bytes, start: int) -> int:
    """Index of the newline terminating the row at ``start``, or -1.

    Newlines inside double-quoted fields do not terminate a row.
    """
    search_from = start
    while (newline := data.find(b"\n", search_from)) != -1:
        if data.count(b'"', start, newline) % 2 == 0:
            return newline
        search_from = newline + 1
    return -1


def _parse_row(raw: bytes) -> list[str]:
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedRecordError(f"row is not valid UTF-8: {exc}") from exc
    try:
        rows = list(csv.reader(io.StringIO(text, newline="")))
    except csv.Error as exc:
        raise MalformedRecordError(f"invalid CSV row: {exc}") from exc
    if len(rows) != 1:
        raise MalformedRecordError(f"expected one CSV row, found {len(rows)}")
    return rows[0]


class CsvDecoder(RecordDecoder):
    def __init__(self, time_column: str = DEFAULT_TIME_COLUMN) -> None:
        self.time_column = time_column
        self._columns: tuple[str, ...] | None = None
        self._time_index = -1

    def checkpoint(self) -> Hashable:
        return self._columns

    def restore(self, state: Hashable) -> None:
        if state is None:
            self._columns = None
            self._time_index = -1
        else:
            assert isinstance(state, tuple)
            self._columns = state
            self._time_index = state.index(self.time_column)

    def decode(self, data: bytes, start: int, *, final: bool) -> DecodeStep:
        end = _find_row_end(data, start)
        if end == -1:
            if not final:
                return NEED_MORE_DATA
            end = consumed_end = len(data)
        else:
            consumed_end = end + 1
        consumed = consumed_end - start

        raw = data[start:end].rstrip(b"\r")
        if not raw.strip():
            return DecodeStep(consumed)

        if self._columns is None:
            return DecodeStep(consumed, channels=self._read_header(raw))
        return DecodeStep(consumed, self._read_row(raw))

    def _read_header(self, raw: bytes) -> tuple[ChannelSpec, ...]:
        columns = _parse_row(raw)
        if columns and columns[0].startswith(_BOM):
            columns[0] = columns[0][len(_BOM) :]
        if self.time_column not in columns:
            raise MissingTimeFieldError(self.time_column, unit="CSV header")

        self._columns = tuple(columns)
        self._time_index = columns.index(self.time_column)
        return tuple(
            ChannelSpec(topic=f"/{name}", message_encoding=MessageEncoding.JSON, channel_id=i)
            for i, name in enumerate(columns)
            if i != self._time_index
        )

    def _read_row(self, raw: bytes) -> tuple[DecodedValue, ...]:
        assert self._columns is not None
        cells = _parse_row(raw)
        if len(cells) != len(self._columns):
            raise MalformedRecordError(
                f"row has {len(cells)} fields but the header has {len(self._columns)}"
            )

        time_text = cells[self._time_index]
        try:
            timestamp = int(time_text)
        except ValueError:
            raise MalformedRecordError(
                f"time value {time_text!r} is not an integer", channel=self.time_column
            ) from None

        return tuple(
            DecodedValue(timestamp, f"/{name}", CellValue(cell))
            for i, (name, cell) in enumerate(zip(self._columns, cells, strict=True))
            if i != self._time_index
        )


class CsvFormat(SourceFormat):
    name = "csv"
    extensions = (".csv",)

    def __init__(self, time_column: str = DEFAULT_TIME_COLUMN) -> None:
        self.time_column = time_column

    def new_decoder(self) -> CsvDecoder:
        return CsvDecoder(self.time_column)

    def __repr__(self) -> str:
        return f"CsvFormat(time_column={self.time_column!r})"
