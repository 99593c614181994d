"""Pluggable decoding step shared by every source format."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable, Sequence
from typing import ClassVar

from small_loader.records import ChannelSpec, DecodeStep


class RecordDecoder(ABC):
    """Turns the bytes of one physical unit into zero or more decoded values.

    A decoder is driven by :class:`~small_loader.stream.UnitReader`. Each call to
    :meth:`decode` sees the buffered input starting at ``data[start]`` and either
    consumes exactly one unit (a header, a row, a frame, some junk) or returns
    :data:`~small_loader.records.NEED_MORE_DATA`.

    Decoders whose output depends on earlier units set ``replay_units`` to the
    number of preceding units needed to rebuild that state after a seek, or to
    ``None`` when only a replay from the first unit reproduces it exactly. Any
    remaining carried state is exposed through :meth:`checkpoint` /
    :meth:`restore`.
    """

    replay_units: int | None = 0

    def static_channels(self) -> Sequence[ChannelSpec]:
        """Channels that exist regardless of the content of the source."""
        return ()

    @abstractmethod
    def decode(self, data: bytes, start: int, *, final: bool) -> DecodeStep:
        """Decode one unit from ``data[start:]``.

        Args:
            data: Buffered input; only bytes from ``start`` onward are unconsumed
            start: Index of the first unconsumed byte
            final: True when no more input will ever follow ``data``

        Raises:
            MalformedRecordError: If the unit cannot be decoded
        """
        ...

    def checkpoint(self) -> Hashable:
        """Return an immutable snapshot of the state carried between units."""
        return None

    def restore(self, state: Hashable) -> None:  # noqa: ARG002
        """Reset the decoder to a state previously returned by :meth:`checkpoint`."""
        return

    def close(self) -> None:
        return


DecoderFactory = Callable[[], RecordDecoder]


class SourceFormat(ABC):
    """A source format: its name, file extensions and a decoder factory."""

    name: ClassVar[str]
    extensions: ClassVar[tuple[str, ...]]

    @abstractmethod
    def new_decoder(self) -> RecordDecoder: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
