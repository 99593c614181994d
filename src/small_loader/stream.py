import io
import logging
from collections import deque
from collections.abc import Hashable
from pathlib import Path
from typing import IO, Protocol

from small_loader.config import DEFAULT_OPTIONS, LoaderOptions
from small_loader.decoder import RecordDecoder
from small_loader.exceptions import MalformedRecordError, UnitSizeLimitExceededError
from small_loader.records import DecodeStep, ResumeToken

logger = logging.getLogger(__name__)


class StreamAccessor(Protocol):
    """Read access to one finite byte source. Every ``open`` returns an independent handle."""

    name: str

    def open(self) -> IO[bytes]: ...

    def size(self) -> int: ...


class FileAccessor:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.name = str(path)

    def open(self) -> IO[bytes]:
        return self.path.open("rb")

    def size(self) -> int:
        return self.path.stat().st_size

    def __repr__(self) -> str:
        return f"FileAccessor({self.name!r})"


class BytesAccessor:
    def __init__(self, data: bytes, name: str = "<memory>") -> None:
        self._data = bytes(data)
        self.name = name

    def open(self) -> IO[bytes]:
        return io.BytesIO(self._data)

    def size(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"BytesAccessor({self.name!r}, size={len(self._data)})"


class UnitReader:
    """Feed a stream to a decoder one physical unit at a time.

    The reader owns the stream handle and the decoder. It keeps the absolute
    offset of the first unconsumed byte, so that the offsets it reports are
    exactly the boundaries the decoder itself recognised. Resume tokens are
    minted from those offsets only.
    """

    def __init__(
        self,
        stream: IO[bytes],
        decoder: RecordDecoder,
        options: LoaderOptions = DEFAULT_OPTIONS,
    ) -> None:
        self._stream = stream
        self._decoder = decoder
        self._read_size = options.read_size
        self._max_unit_size = options.max_unit_size
        self._buffer = b""
        self._start = 0
        self._eof = False
        self._position = stream.tell()
        # (offset, decoder checkpoint) of the current unit and the ones it may replay
        self._replay_all = decoder.replay_units is None
        maxlen = 1 if decoder.replay_units is None else decoder.replay_units + 1
        self._history: deque[tuple[int, Hashable]] = deque(maxlen=maxlen)
        self._origin: tuple[int, Hashable] | None = None

    @property
    def position(self) -> int:
        """Absolute offset of the next unit."""
        return self._position

    @property
    def decoder(self) -> RecordDecoder:
        return self._decoder

    def _fill(self) -> None:
        pending = len(self._buffer) - self._start
        if pending >= self._max_unit_size:
            raise UnitSizeLimitExceededError(pending, self._max_unit_size, offset=self._position)

        # grow geometrically so oversized units are not re-copied per read
        chunk = self._stream.read(max(self._read_size, pending))
        if not chunk:
            self._eof = True
        self._buffer = self._buffer[self._start :] + chunk
        self._start = 0

    def next_step(self) -> tuple[int, DecodeStep] | None:
        """Decode the next unit, returning its offset and result, or None at end of stream."""
        while True:
            available = len(self._buffer) - self._start
            if available == 0:
                if self._eof:
                    return None
                self._fill()
                continue

            offset = self._position
            state = self._decoder.checkpoint()
            try:
                step = self._decoder.decode(self._buffer, self._start, final=self._eof)
            except MalformedRecordError as exc:
                if exc.offset is None:
                    raise exc.with_offset(offset) from exc
                raise

            if step.consumed == 0:
                if self._eof:
                    raise MalformedRecordError(
                        f"{available} trailing bytes could not be decoded", offset=offset
                    )
                self._fill()
                continue
            if step.consumed > available:
                raise MalformedRecordError(
                    f"decoder consumed {step.consumed} bytes but only {available} were available",
                    offset=offset,
                )

            if self._origin is None:
                self._origin = (offset, state)
            self._history.append((offset, state))
            self._start += step.consumed
            self._position += step.consumed
            return offset, step

    def resume_token(self) -> ResumeToken:
        """Token that restarts decoding at the unit most recently returned by :meth:`next_step`."""
        if not self._history:
            raise RuntimeError("resume_token() called before any unit was decoded")
        offset = self._history[-1][0]
        replay_from, context = self._origin if self._replay_all else self._history[0]
        return ResumeToken(offset, replay_from, context)

    def seek(self, token: ResumeToken) -> None:
        """Position the reader so that the next unit decoded is the one ``token`` points at."""
        if token.offset == self._position:
            return

        self._stream.seek(token.replay_from)
        self._buffer = b""
        self._start = 0
        self._eof = False
        self._position = token.replay_from
        self._history.clear()
        self._origin = None
        self._decoder.restore(token.context)

        replayed = 0
        while self._position < token.offset:
            if self.next_step() is None:
                raise MalformedRecordError(
                    "stream ended while replaying towards resume point", offset=self._position
                )
            replayed += 1

        if self._position != token.offset:
            raise MalformedRecordError(
                f"resume point {token.offset} is not a unit boundary", offset=self._position
            )
        if replayed:
            logger.debug(f"Replayed {replayed} units from {token.replay_from} to {token.offset}")

    def close(self) -> None:
        self._decoder.close()
        self._stream.close()
