"""Builders for in-memory test sources."""

import json
from collections.abc import Iterable, Sequence
from typing import Any

SENSORS_CSV = (
    b"timestamp_nanos,temperature,humidity,label\n"
    b"0,21.5,40,idle\n"
    b"10,21.7,41,idle\n"
    b"10,21.9,42,busy\n"
    b"20,22.0,43,busy\n"
)

SENSORS_NDJSON = (
    b'{"type":"temperature","time":0,"ambient":21,"cpu0":70,"cpu1":65}\n'
    b'{"type":"accelerometer","time":0,"x":0,"y":0.00175,"z":0.179}\n'
    b'{"type":"accelerometer","time":0.5,"x":0.01,"y":0.002,"z":0.18}\n'
    b'{"type":"temperature","time":1,"ambient":22,"cpu0":71,"cpu1":66}\n'
    b'{"type":"accelerometer","time":1.5,"x":0.02,"y":0.001,"z":0.181}\n'
)

# MPEG-1 Layer III, 128 kbit/s, 44.1 kHz, no padding: 417 bytes, 1152 samples
MP3_FRAME_LENGTH = 417
MP3_FRAME_DURATION_NS = 26_122_448


def csv_bytes(header: Sequence[str], rows: Iterable[Sequence[Any]]) -> bytes:
    """Render a CSV document with ``\\n`` line endings."""
    lines = [",".join(header)]
    lines.extend(",".join(str(cell) for cell in row) for row in rows)
    return ("\n".join(lines) + "\n").encode()


def ndjson_bytes(records: Iterable[dict[str, Any]]) -> bytes:
    return b"".join(json.dumps(record).encode() + b"\n" for record in records)


def mp3_frame(*, mono: bool = False, fill: int = 0) -> bytes:
    """A syntactically valid MPEG-1 Layer III frame with a constant body."""
    header = bytes([0xFF, 0xFB, 0x90, 0xC0 if mono else 0x00])
    return header + bytes([fill]) * (MP3_FRAME_LENGTH - len(header))


def id3v2_tag(body: bytes = b"\x00" * 20) -> bytes:
    size = len(body)
    syncsafe = bytes([(size >> 21) & 0x7F, (size >> 14) & 0x7F, (size >> 7) & 0x7F, size & 0x7F])
    return b"ID3\x04\x00\x00" + syncsafe + body
