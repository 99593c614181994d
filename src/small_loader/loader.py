import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from small_loader.backfill import backfill
from small_loader.config import DEFAULT_OPTIONS, LoaderOptions
from small_loader.cursor import RangeCursor
from small_loader.decoder import SourceFormat
from small_loader.exceptions import LoaderError, NoSourceError
from small_loader.formats import format_for
from small_loader.index import TimeIndex
from small_loader.records import Initialization, Record
from small_loader.stream import FileAccessor, StreamAccessor

logger = logging.getLogger(__name__)


class DataLoader:
    """Time-indexed access to one source file.

    :meth:`initialize` decodes the whole source once to build the time index
    and the channel list. Afterwards any number of cursors and backfill queries
    may run against the shared, read-only index.

    Args:
        accessor: The source to read
        source_format: Format used to decode ``accessor``
        options: Reader options
    """

    def __init__(
        self,
        accessor: StreamAccessor,
        source_format: SourceFormat,
        options: LoaderOptions | None = None,
    ) -> None:
        self.accessor = accessor
        self.source_format = source_format
        self.options = options or DEFAULT_OPTIONS
        self._index: TimeIndex | None = None
        self._initialization: Initialization | None = None

    @property
    def index(self) -> TimeIndex:
        if self._index is None:
            raise LoaderError(f"{self.accessor.name}: loader used before initialize()")
        return self._index

    def initialize(self) -> Initialization:
        """Index the source and describe it. Later calls return the cached result."""
        if self._initialization is None:
            logger.debug(f"Initializing {self.accessor.name} as {self.source_format!r}")
            self._index = TimeIndex.build(
                self.accessor, self.source_format.new_decoder, self.options
            )
            self._initialization = self._index.initialization()
        return self._initialization

    def create_iter(
        self,
        start_time: int | None = None,
        end_time: int | None = None,
        channels: Iterable[int] | None = None,
    ) -> RangeCursor:
        """Open a cursor over records with ``start_time <= timestamp <= end_time``.

        Args:
            start_time: Inclusive lower bound in nanoseconds; the source start when None
            end_time: Inclusive upper bound in nanoseconds; unbounded when None
            channels: Channel ids to include; all channels when None
        """
        return RangeCursor(
            self.index,
            self.accessor,
            self.source_format.new_decoder,
            start_time=start_time,
            end_time=end_time,
            channels=channels,
            options=self.options,
        )

    def get_backfill(self, time: int, channels: Iterable[int] | None = None) -> list[Record]:
        """Latest record at or before ``time`` for each requested channel."""
        return backfill(
            self.index,
            self.accessor,
            self.source_format.new_decoder,
            time,
            channels,
            self.options,
        )

    def __repr__(self) -> str:
        return f"DataLoader({self.accessor!r}, {self.source_format!r})"


def open_loader(
    paths: str | Path | Sequence[str | Path],
    *,
    format_name: str | None = None,
    options: LoaderOptions | None = None,
    **format_options: Any,
) -> DataLoader:
    """Create a loader for a file, choosing its format from the suffix.

    Args:
        paths: Path of the source, or a sequence holding exactly one path
        format_name: Format to use instead of guessing from the suffix
        options: Reader options
        **format_options: Keyword arguments for the format class

    Raises:
        NoSourceError: If no path is given
        LoaderError: If more than one path is given
        UnsupportedFormatError: If the format cannot be determined
    """
    if isinstance(paths, str | Path):
        paths = [paths]
    if not paths:
        raise NoSourceError
    if len(paths) > 1:
        raise LoaderError(f"expected a single source file, got {len(paths)}")

    path = paths[0]
    source_format = format_for(path, format_name)(**format_options)
    return DataLoader(FileAccessor(path), source_format, options)
