"""Newline-delimited JSON objects tagged with a type and a time field, e.g.::

    {"type":"temperature","time":0,"ambient":21,"cpu0":70,"cpu1":65}
    {"type":"accelerometer","time":0,"x":0,"y":0.00175,"z":0.179}

Each type is published on ``/<type>``. The message is the object without its
type tag.
"""

import json
from collections.abc import Hashable, Sequence
from typing import Any

from small_loader.decoder import RecordDecoder, SourceFormat
from small_loader.exceptions import MalformedRecordError, MissingTimeFieldError
from small_loader.payload import MessageEncoding
from small_loader.records import (
    NEED_MORE_DATA,
    ChannelSpec,
    DecodedValue,
    DecodeStep,
    JsonObject,
)

TIME_UNITS: dict[str, int] = {
    "s": 1_000_000_000,
    "ms": 1_000_000,
    "us": 1_000,
    "ns": 1,
}


class NdjsonDecoder(RecordDecoder):
    def __init__(
        self,
        type_field: str = "type",
        time_field: str = "time",
        time_unit: str = "s",
        topics: Sequence[str] | None = None,
    ) -> None:
        self.type_field = type_field
        self.time_field = time_field
        self._scale = TIME_UNITS[time_unit]
        self._static = topics is not None
        self._channels = {
            f"/{name}": ChannelSpec(f"/{name}", MessageEncoding.JSON, channel_id=i)
            for i, name in enumerate(topics or (), start=1)
        }
        self._started = False

    def static_channels(self) -> Sequence[ChannelSpec]:
        return tuple(self._channels.values()) if self._static else ()

    def checkpoint(self) -> Hashable:
        return self._started

    def restore(self, state: Hashable) -> None:
        self._started = bool(state)

    def decode(self, data: bytes, start: int, *, final: bool) -> DecodeStep:
        end = data.find(b"\n", start)
        if end == -1:
            if not final:
                return NEED_MORE_DATA
            end = consumed_end = len(data)
        else:
            consumed_end = end + 1
        consumed = consumed_end - start

        line = data[start:end].strip()
        if not line:
            return DecodeStep(consumed)

        try:
            obj = json.loads(line)
        except ValueError as exc:
            raise MalformedRecordError(f"invalid JSON: {exc}") from exc
        if not isinstance(obj, dict):
            raise MalformedRecordError(f"expected a JSON object, found {type(obj).__name__}")

        first = not self._started
        self._started = True
        kind = self._field(obj, self.type_field, first=first)
        timestamp = self._timestamp(self._field(obj, self.time_field, first=first))
        if not isinstance(kind, str):
            raise MalformedRecordError(f"'{self.type_field}' must be a string, found {kind!r}")

        topic = f"/{kind}"
        announced: tuple[ChannelSpec, ...] = ()
        if topic not in self._channels:
            if self._static:
                raise MalformedRecordError(f"unknown record type '{kind}'", timestamp=timestamp)
            spec = ChannelSpec(topic, MessageEncoding.JSON)
            self._channels[topic] = spec
            announced = (spec,)

        fields = {key: value for key, value in obj.items() if key != self.type_field}
        decoded = DecodedValue(timestamp, topic, JsonObject(fields))
        return DecodeStep(consumed, (decoded,), announced)

    def _field(self, obj: dict[str, Any], name: str, *, first: bool) -> Any:
        if name in obj:
            return obj[name]
        if first:
            raise MissingTimeFieldError(name, unit="first record")
        raise MalformedRecordError(f"record has no '{name}' field")

    def _timestamp(self, value: Any) -> int:
        # bool is an int subclass but never a valid time
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise MalformedRecordError(f"time value {value!r} is not a number")
        try:
            return int(value * self._scale)
        except (OverflowError, ValueError) as exc:
            raise MalformedRecordError(f"time value {value!r} is out of range") from exc


class NdjsonFormat(SourceFormat):
    """NDJSON records.

    Args:
        type_field: Field holding the record type; records are published on ``/<type>``
        time_field: Field holding the record time
        time_unit: Unit of the time field, one of ``s``, ``ms``, ``us``, ``ns``
        topics: Record types to publish, in channel id order. When None, channels
            are discovered in order of first appearance.
    """

    name = "ndjson"
    extensions = (".ndjson", ".jsonl")

    def __init__(
        self,
        type_field: str = "type",
        time_field: str = "time",
        time_unit: str = "s",
        topics: Sequence[str] | None = None,
    ) -> None:
        if time_unit not in TIME_UNITS:
            raise ValueError(f"time_unit must be one of {sorted(TIME_UNITS)}, got {time_unit!r}")
        self.type_field = type_field
        self.time_field = time_field
        self.time_unit = time_unit
        self.topics = tuple(topics) if topics is not None else None

    def new_decoder(self) -> NdjsonDecoder:
        return NdjsonDecoder(self.type_field, self.time_field, self.time_unit, self.topics)

    def __repr__(self) -> str:
        return (
            f"NdjsonFormat(type_field={self.type_field!r}, time_field={self.time_field!r}, "
            f"time_unit={self.time_unit!r}, topics={self.topics!r})"
        )
