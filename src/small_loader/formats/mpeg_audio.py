"""MPEG-1/2/2.5 audio (Layer I-III, typically ``.mp3``) split into frames.

Each frame becomes one message on a single audio channel. Timestamps are not
stored in the file; they come from a running sample clock that starts at zero.
By default messages carry the encoded frame. With ``pcm=True`` frames are
decoded to interleaved signed 16-bit samples, which requires PyAV.
"""

import logging
from collections.abc import Hashable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from small_loader.decoder import RecordDecoder, SourceFormat
from small_loader.exceptions import LoaderError
from small_loader.payload import MessageEncoding
from small_loader.records import (
    NEED_MORE_DATA,
    AudioFrame,
    ChannelSpec,
    DecodedValue,
    DecodeStep,
)

if TYPE_CHECKING:
    from small_loader.formats._pcm import PcmDecoder

logger = logging.getLogger(__name__)

NS_PER_S = 1_000_000_000

_HEADER_SIZE = 4
_ID3V2_HEADER_SIZE = 10
_ID3V1_SIZE = 128

_MPEG1 = 1
_MPEG2 = 2
_MPEG25 = 25

_VERSIONS = {0b11: _MPEG1, 0b10: _MPEG2, 0b00: _MPEG25}
_LAYERS = {0b11: 1, 0b10: 2, 0b01: 3}

# kbit/s by (version group, layer) for bitrate index 0..14; index 0 is free format
_V2_LOW_BITRATES = (0, 8, 16, 24, 32, 40, 48, 56, 64, 80, 96, 112, 128, 144, 160)
_BITRATES: dict[tuple[int, int], tuple[int, ...]] = {
    (_MPEG1, 1): (0, 32, 64, 96, 128, 160, 192, 224, 256, 288, 320, 352, 384, 416, 448),
    (_MPEG1, 2): (0, 32, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320, 384),
    (_MPEG1, 3): (0, 32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320),
    (_MPEG2, 1): (0, 32, 48, 56, 64, 80, 96, 112, 128, 144, 160, 176, 192, 224, 256),
    (_MPEG2, 2): _V2_LOW_BITRATES,
    (_MPEG2, 3): _V2_LOW_BITRATES,
}

_SAMPLE_RATES = {
    _MPEG1: (44100, 48000, 32000),
    _MPEG2: (22050, 24000, 16000),
    _MPEG25: (11025, 12000, 8000),
}


@dataclass(frozen=True, slots=True)
class FrameHeader:
    version: int
    layer: int
    bitrate: int
    sample_rate: int
    channels: int
    samples: int
    length: int

    @property
    def duration_ns(self) -> int:
        return self.samples * NS_PER_S // self.sample_rate


def parse_frame_header(data: bytes, offset: int = 0) -> FrameHeader | None:
    """Parse the 4-byte frame header at ``offset``; None if it is not a valid header."""
    if len(data) - offset < _HEADER_SIZE:
        return None
    b0, b1, b2, b3 = data[offset : offset + _HEADER_SIZE]
    if b0 != 0xFF or (b1 & 0xE0) != 0xE0:
        return None

    version = _VERSIONS.get((b1 >> 3) & 0b11)
    layer = _LAYERS.get((b1 >> 1) & 0b11)
    bitrate_index = b2 >> 4
    sample_rate_index = (b2 >> 2) & 0b11
    # free-format and reserved values cannot be framed
    if version is None or layer is None or bitrate_index in (0, 15) or sample_rate_index == 3:
        return None

    padding = (b2 >> 1) & 1
    bitrate = _BITRATES[(min(version, _MPEG2), layer)][bitrate_index] * 1000
    sample_rate = _SAMPLE_RATES[version][sample_rate_index]
    channels = 1 if (b3 >> 6) == 0b11 else 2

    if layer == 1:
        samples = 384
        length = (12 * bitrate // sample_rate + padding) * 4
    elif layer == 2:
        samples = 1152
        length = 144 * bitrate // sample_rate + padding
    else:
        samples = 1152 if version == _MPEG1 else 576
        length = (144 if version == _MPEG1 else 72) * bitrate // sample_rate + padding

    return FrameHeader(version, layer, bitrate, sample_rate, channels, samples, length)


def _id3v2_length(data: bytes, start: int) -> int:
    flags = data[start + 5]
    size = 0
    for byte in data[start + 6 : start + 10]:
        size = (size << 7) | (byte & 0x7F)
    footer = _ID3V2_HEADER_SIZE if flags & 0x10 else 0
    return _ID3V2_HEADER_SIZE + size + footer


class MpegAudioDecoder(RecordDecoder):
    def __init__(self, pcm: bool = False, topic: str = "/audio") -> None:
        self.topic = topic
        self.encoding = MessageEncoding.PCM_S16 if pcm else MessageEncoding.MP3
        # the bit reservoir and the synthesis filter carry state across every
        # frame, so exact output after a seek needs a replay from the start
        self.replay_units = None if pcm else 0
        self._pcm_enabled = pcm
        self._pcm: PcmDecoder | None = None
        self._clock = 0

    def static_channels(self) -> Sequence[ChannelSpec]:
        return (ChannelSpec(self.topic, self.encoding),)

    def checkpoint(self) -> Hashable:
        return self._clock

    def restore(self, state: Hashable) -> None:
        assert isinstance(state, int)
        self._clock = state
        if self._pcm is not None:
            # codec state is rebuilt by replaying from the first frame
            self._pcm.close()
            self._pcm = None

    def close(self) -> None:
        if self._pcm is not None:
            self._pcm.close()
            self._pcm = None

    def decode(self, data: bytes, start: int, *, final: bool) -> DecodeStep:
        available = len(data) - start

        if data.startswith(b"ID3", start):
            if available < _ID3V2_HEADER_SIZE:
                return DecodeStep(available) if final else NEED_MORE_DATA
            length = _id3v2_length(data, start)
            if available < length:
                return DecodeStep(available) if final else NEED_MORE_DATA
            return DecodeStep(length)

        if data.startswith(b"TAG", start) and (available >= _ID3V1_SIZE or final):
            return DecodeStep(min(available, _ID3V1_SIZE))

        if available < _HEADER_SIZE:
            return DecodeStep(available) if final else NEED_MORE_DATA

        header = parse_frame_header(data, start)
        if header is None:
            return self._resync(data, start, final=final)

        if available < header.length:
            if not final:
                return NEED_MORE_DATA
            logger.warning(f"Dropping truncated final frame ({available} of {header.length} bytes)")
            return DecodeStep(available)

        frame = data[start : start + header.length]
        timestamp = self._clock
        self._clock += header.duration_ns
        value = DecodedValue(timestamp, self.topic, self._frame(frame, header))
        return DecodeStep(header.length, (value,))

    def _frame(self, frame: bytes, header: FrameHeader) -> AudioFrame:
        if not self._pcm_enabled:
            return AudioFrame(
                data=frame,
                format=MessageEncoding.MP3,
                sample_rate=header.sample_rate,
                channels=header.channels,
                samples=header.samples,
            )

        if self._pcm is None:
            try:
                from small_loader.formats._pcm import PcmDecoder  # noqa: PLC0415
            except ImportError as exc:
                raise LoaderError(
                    "PCM decoding requires the 'audio' extra (av and numpy)"
                ) from exc
            self._pcm = PcmDecoder()
        return AudioFrame(
            data=self._pcm.decode(frame),
            format=MessageEncoding.PCM_S16,
            sample_rate=header.sample_rate,
            channels=header.channels,
            samples=header.samples,
        )

    def _resync(self, data: bytes, start: int, *, final: bool) -> DecodeStep:
        search_from = start + 1
        while (candidate := data.find(b"\xff", search_from)) != -1:
            if len(data) - candidate < _HEADER_SIZE:
                break
            if parse_frame_header(data, candidate) is not None:
                return DecodeStep(candidate - start)
            search_from = candidate + 1

        if final:
            return DecodeStep(len(data) - start)
        # keep a possible partial header at the end of the buffer
        keep = min(_HEADER_SIZE - 1, len(data) - start - 1)
        skip = len(data) - start - keep
        return DecodeStep(skip) if skip > 0 else NEED_MORE_DATA


class Mp3Format(SourceFormat):
    """MPEG audio frames on one channel.

    Args:
        pcm: Decode frames to ``pcm-s16`` instead of publishing encoded frames
        topic: Topic of the audio channel
    """

    name = "mp3"
    extensions = (".mp3", ".mp2", ".mpga")

    def __init__(self, pcm: bool = False, topic: str = "/audio") -> None:
        self.topic = topic
        self.pcm = pcm

    def new_decoder(self) -> MpegAudioDecoder:
        return MpegAudioDecoder(self.pcm, self.topic)

    def __repr__(self) -> str:
        return f"Mp3Format(pcm={self.pcm}, topic={self.topic!r})"
