"""Encode decoded values into message payloads for the host."""

import json
import math
from typing import Any

from small_loader.records import AudioFrame, CellValue, JsonObject, RawValue


class MessageEncoding:
    """Message encodings produced by the bundled formats."""

    JSON = "json"
    MP3 = "mp3"
    PCM_S16 = "pcm-s16"


def cell_to_json(text: str) -> Any:
    """Interpret a tabular cell as a number, a boolean or a string, in that order."""
    try:
        number = float(text)
    except ValueError:
        pass
    else:
        # NaN and infinities have no JSON representation
        return number if math.isfinite(number) else None

    if text == "true":
        return True
    if text == "false":
        return False
    return text


def encode_payload(value: RawValue) -> tuple[bytes, str]:
    """Return ``(data, encoding)`` for a decoded value."""
    match value:
        case CellValue(text=text):
            return json.dumps({"value": cell_to_json(text)}).encode(), MessageEncoding.JSON
        case JsonObject(fields=fields):
            return json.dumps(fields).encode(), MessageEncoding.JSON
        case AudioFrame(data=data, format=sample_format):
            return data, sample_format
        case _:
            raise TypeError(f"cannot encode payload of type {type(value).__name__}")
