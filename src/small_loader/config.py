from dataclasses import dataclass

_DEFAULT_READ_SIZE = 64 * 1024
_DEFAULT_MAX_UNIT_SIZE = 64 * 2**20  # 64 MiB - largest single row, line or frame


@dataclass(frozen=True, slots=True)
class LoaderOptions:
    """Tuning knobs shared by the indexer, cursors and backfill.

    Attributes:
        read_size: Number of bytes requested from the stream per read
        max_unit_size: Largest physical unit a decoder may ask to buffer; larger
            units fail with :class:`~small_loader.exceptions.UnitSizeLimitExceededError`
        allow_empty: Whether a source without any record initializes with bounds
            ``(0, 0)`` instead of raising :class:`~small_loader.exceptions.EmptySourceError`
    """

    read_size: int = _DEFAULT_READ_SIZE
    max_unit_size: int = _DEFAULT_MAX_UNIT_SIZE
    allow_empty: bool = True

    def __post_init__(self) -> None:
        if self.read_size <= 0:
            raise ValueError(f"read_size must be positive, got {self.read_size}")
        if self.max_unit_size < self.read_size:
            raise ValueError(
                f"max_unit_size ({self.max_unit_size}) must be at least read_size "
                f"({self.read_size})"
            )


DEFAULT_OPTIONS = LoaderOptions()
