"""Bundled source formats, looked up by name or by file extension."""

from pathlib import Path

from small_loader.decoder import SourceFormat
from small_loader.exceptions import UnsupportedFormatError
from small_loader.formats.mpeg_audio import Mp3Format
from small_loader.formats.ndjson import NdjsonFormat
from small_loader.formats.tabular import CsvFormat

FORMATS: dict[str, type[SourceFormat]] = {
    fmt.name: fmt for fmt in (CsvFormat, NdjsonFormat, Mp3Format)
}


def format_for(path: str | Path, format_name: str | None = None) -> type[SourceFormat]:
    """Return the format class for ``path``, by explicit name or by its suffix.

    Raises:
        UnsupportedFormatError: If the name is unknown or no format claims the suffix
    """
    if format_name is not None:
        try:
            return FORMATS[format_name]
        except KeyError:
            raise UnsupportedFormatError(str(path), format_name=format_name) from None

    suffix = Path(path).suffix.lower()
    for fmt in FORMATS.values():
        if suffix in fmt.extensions:
            return fmt
    raise UnsupportedFormatError(str(path))


__all__ = [
    "FORMATS",
    "CsvFormat",
    "Mp3Format",
    "NdjsonFormat",
    "format_for",
]
