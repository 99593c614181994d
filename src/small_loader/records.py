from collections.abc import Hashable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class CellValue:
    """A single cell of a tabular row, kept as the source text."""

    text: str


@dataclass(frozen=True, slots=True)
class JsonObject:
    """One structured record decoded from a JSON line."""

    fields: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class AudioFrame:
    """One block of audio produced by a single media frame.

    Attributes:
        data: Either the encoded frame bytes (``format="mp3"``) or interleaved
            little-endian signed 16-bit samples (``format="pcm-s16"``)
        format: Sample format of ``data``
        sample_rate: Samples per second per channel
        channels: Number of interleaved audio channels
        samples: Number of samples per channel in this frame
    """

    data: bytes = field(repr=False)
    format: str
    sample_rate: int
    channels: int
    samples: int


RawValue = CellValue | JsonObject | AudioFrame


@dataclass(frozen=True, slots=True)
class DecodedValue:
    """A value produced by a decoder, before its topic is resolved to a channel id."""

    timestamp: int
    topic: str
    value: RawValue


@dataclass(frozen=True, slots=True)
class Schema:
    name: str
    encoding: str
    data: bytes = field(repr=False)


@dataclass(frozen=True, slots=True)
class ChannelSpec:
    """A channel declaration made by a decoder.

    ``channel_id`` is set by formats that assign ids statically (e.g. one channel
    per column index); otherwise the registry picks the next free id.
    """

    topic: str
    message_encoding: str
    schema: Schema | None = None
    channel_id: int | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DecodeStep:
    """Result of decoding one physical unit.

    Attributes:
        consumed: Number of bytes consumed from the input. Zero means the decoder
            needs more input before it can make progress.
        values: Logical values produced by the unit, in emission order. All values
            of one step share the same timestamp.
        channels: Channels first announced by this unit.
    """

    consumed: int
    values: tuple[DecodedValue, ...] = ()
    channels: tuple[ChannelSpec, ...] = ()


NEED_MORE_DATA = DecodeStep(0)


@dataclass(frozen=True, slots=True)
class ResumeToken:
    """Opaque position from which decoding can restart without corrupting state.

    Only :class:`small_loader.stream.UnitReader` creates tokens, from offsets it
    handed to the decoder itself.

    Attributes:
        offset: Byte offset of the unit this token points at
        replay_from: Byte offset of the earliest unit that must be decoded again
            to rebuild decoder state; equals ``offset`` for stateless decoders
        context: Decoder checkpoint taken at ``replay_from``
    """

    offset: int
    replay_from: int
    context: Hashable = None


@dataclass(frozen=True, slots=True)
class Record:
    """A decoded, timestamped, channel-tagged message.

    Attributes:
        timestamp: Log time in nanoseconds
        channel_id: Id of the channel the record belongs to
        data: Encoded payload
        encoding: Encoding of ``data`` (matches the channel's message encoding)
    """

    timestamp: int
    channel_id: int
    data: bytes = field(repr=False)
    encoding: str


@dataclass(frozen=True, slots=True)
class Channel:
    id: int
    topic: str
    message_encoding: str
    schema: Schema | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)
    message_count: int = 0


@dataclass(frozen=True, slots=True)
class Initialization:
    """Summary of an indexed source, published to the host once loading finishes."""

    start_time: int
    end_time: int
    channels: tuple[Channel, ...]

    @property
    def message_count(self) -> int:
        return sum(channel.message_count for channel in self.channels)

    def get_channel(self, topic: str) -> Channel | None:
        for channel in self.channels:
            if channel.topic == topic:
                return channel
        return None
