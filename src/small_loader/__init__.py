"""Small-loader: time-indexed random access to CSV, NDJSON and MP3 files.

A :class:`DataLoader` decodes a source once to build a time index and a channel
list, then serves time-range cursors and per-channel backfill queries from it.
"""

from small_loader.config import DEFAULT_OPTIONS, LoaderOptions
from small_loader.cursor import RangeCursor
from small_loader.decoder import RecordDecoder, SourceFormat
from small_loader.exceptions import (
    ChannelNotFoundError,
    DuplicateChannelError,
    EmptySourceError,
    LoaderError,
    MalformedRecordError,
    MissingTimeFieldError,
    NoSourceError,
    UnitSizeLimitExceededError,
    UnsupportedFormatError,
)
from small_loader.formats import FORMATS, CsvFormat, Mp3Format, NdjsonFormat, format_for
from small_loader.loader import DataLoader, open_loader
from small_loader.payload import MessageEncoding
from small_loader.records import (
    AudioFrame,
    CellValue,
    Channel,
    Initialization,
    JsonObject,
    Record,
    ResumeToken,
)
from small_loader.stream import BytesAccessor, FileAccessor, StreamAccessor

__all__ = [
    "DEFAULT_OPTIONS",
    "FORMATS",
    "AudioFrame",
    "BytesAccessor",
    "CellValue",
    "Channel",
    "ChannelNotFoundError",
    "CsvFormat",
    "DataLoader",
    "DuplicateChannelError",
    "EmptySourceError",
    "FileAccessor",
    "Initialization",
    "JsonObject",
    "LoaderError",
    "LoaderOptions",
    "MalformedRecordError",
    "MessageEncoding",
    "MissingTimeFieldError",
    "Mp3Format",
    "NdjsonFormat",
    "NoSourceError",
    "RangeCursor",
    "Record",
    "RecordDecoder",
    "ResumeToken",
    "SourceFormat",
    "StreamAccessor",
    "UnitSizeLimitExceededError",
    "UnsupportedFormatError",
    "format_for",
    "open_loader",
]
