import logging
from collections import deque
from collections.abc import Iterable
from types import TracebackType

from small_loader.config import DEFAULT_OPTIONS, LoaderOptions
from small_loader.decoder import DecoderFactory
from small_loader.exceptions import ChannelNotFoundError, LoaderError, MalformedRecordError
from small_loader.index import TimeIndex
from small_loader.payload import encode_payload
from small_loader.records import DecodeStep, Record
from small_loader.stream import StreamAccessor, UnitReader

logger = logging.getLogger(__name__)


class RangeCursor:
    """Lazy, time-ordered sequence of records between ``start_time`` and ``end_time``.

    The cursor opens its own stream handle and decoder on the first pull and
    buffers only the fan-out of the unit it is currently draining. It is not
    restartable; open a new cursor to read again. Errors raised while pulling
    end the sequence.
    """

    def __init__(
        self,
        index: TimeIndex,
        accessor: StreamAccessor,
        decoder_factory: DecoderFactory,
        *,
        start_time: int | None = None,
        end_time: int | None = None,
        channels: Iterable[int] | None = None,
        options: LoaderOptions = DEFAULT_OPTIONS,
    ) -> None:
        self._index = index
        self._accessor = accessor
        self._decoder_factory = decoder_factory
        self._options = options
        self.start_time = start_time if start_time is not None else index.start_time
        self.end_time = end_time
        self.channels = frozenset(index.channels.ids() if channels is None else channels)

        self._reader: UnitReader | None = None
        self._pending: deque[Record] = deque()
        self._position = index.first_at_or_after(self.start_time)
        self._done = self._position is None or (
            end_time is not None and index.timestamp(self._position) > end_time
        )

    def __iter__(self) -> "RangeCursor":
        return self

    def __next__(self) -> Record:
        try:
            while not self._pending:
                if self._done:
                    raise StopIteration
                result = self._next_step()
                if result is None:
                    self.close()
                    raise StopIteration
                self._queue(*result)
            return self._pending.popleft()
        except (LoaderError, OSError):
            self.close()
            raise

    def _open(self) -> UnitReader:
        assert self._position is not None
        reader = UnitReader(self._accessor.open(), self._decoder_factory(), self._options)
        token = self._index.token(self._position)
        logger.debug(
            f"Cursor seeking to {self._index.timestamp(self._position)} at offset {token.offset}"
        )
        reader.seek(token)
        return reader

    def _next_step(self) -> tuple[int, DecodeStep] | None:
        if self._reader is None:
            self._reader = self._open()

        if not self._index.ordered:
            # units are visited in time order, which is not file order
            if self._position is None or self._position >= len(self._index):
                return None
            self._reader.seek(self._index.token(self._position))
            self._position += 1

        while (result := self._reader.next_step()) is not None:
            offset, step = result
            if step.values:
                return offset, step
            if not self._index.ordered:
                raise MalformedRecordError("indexed unit produced no values", offset=offset)
        return None

    def _queue(self, offset: int, step: DecodeStep) -> None:
        timestamp = step.values[0].timestamp
        if self.end_time is not None and timestamp > self.end_time:
            self.close()
            return
        if timestamp < self.start_time:
            return

        channels = self._index.channels
        for value in step.values:
            try:
                channel_id = channels.id_for(value.topic)
            except ChannelNotFoundError as exc:
                raise MalformedRecordError(
                    str(exc), offset=offset, channel=value.topic, timestamp=value.timestamp
                ) from exc
            if channel_id not in self.channels:
                continue
            data, encoding = encode_payload(value.value)
            self._pending.append(Record(value.timestamp, channel_id, data, encoding))

    def close(self) -> None:
        self._done = True
        self._pending.clear()
        if self._reader is not None:
            self._reader.close()
            self._reader = None

    def __enter__(self) -> "RangeCursor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()
