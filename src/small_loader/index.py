import bisect
import logging
from collections.abc import Mapping

from small_loader.config import DEFAULT_OPTIONS, LoaderOptions
from small_loader.decoder import DecoderFactory
from small_loader.exceptions import ChannelNotFoundError, EmptySourceError, MalformedRecordError
from small_loader.records import Initialization, ResumeToken
from small_loader.registry import ChannelRegistry
from small_loader.stream import StreamAccessor, UnitReader

logger = logging.getLogger(__name__)


class TimeIndex:
    """Time-ordered offsets of every physical unit that produced at least one value.

    Positions (``0 .. len(index) - 1``) enumerate units in time order; for
    duplicate timestamps they keep the order in which the units appear in the
    source. ``ordered`` is False when that order differs from file order, in
    which case readers must seek per unit.
    """

    def __init__(
        self,
        *,
        timestamps: list[int],
        tokens: list[ResumeToken],
        postings: Mapping[int, list[int]],
        message_counts: Mapping[int, int],
        channels: ChannelRegistry,
        ordered: bool = True,
    ) -> None:
        self._timestamps = timestamps
        self._tokens = tokens
        self._postings = postings
        self._message_counts = dict(message_counts)
        self.channels = channels
        self.ordered = ordered

    @classmethod
    def build(
        cls,
        accessor: StreamAccessor,
        decoder_factory: DecoderFactory,
        options: LoaderOptions = DEFAULT_OPTIONS,
    ) -> "TimeIndex":
        """Index ``accessor`` in one linear pass.

        Raises:
            MissingTimeFieldError: If the first structural unit lacks the time field
            MalformedRecordError: If any unit cannot be decoded
            DuplicateChannelError: If a topic is announced twice
            EmptySourceError: If nothing was decoded and ``options.allow_empty`` is False
        """
        decoder = decoder_factory()
        registry = ChannelRegistry()
        for spec in decoder.static_channels():
            registry.register_spec(spec)

        timestamps: list[int] = []
        tokens: list[ResumeToken] = []
        postings: dict[int, list[int]] = {}
        counts: dict[int, int] = {}
        ordered = True

        reader = UnitReader(accessor.open(), decoder, options)
        try:
            while (result := reader.next_step()) is not None:
                offset, step = result
                for spec in step.channels:
                    registry.register_spec(spec)
                if not step.values:
                    continue

                position = len(timestamps)
                timestamp = step.values[0].timestamp
                for value in step.values:
                    if value.timestamp != timestamp:
                        raise MalformedRecordError(
                            "values decoded from one unit carry different timestamps",
                            offset=offset,
                            channel=value.topic,
                            timestamp=value.timestamp,
                        )
                    try:
                        channel_id = registry.id_for(value.topic)
                    except ChannelNotFoundError as exc:
                        raise MalformedRecordError(
                            str(exc), offset=offset, channel=value.topic, timestamp=timestamp
                        ) from exc
                    counts[channel_id] = counts.get(channel_id, 0) + 1
                    channel_postings = postings.setdefault(channel_id, [])
                    if not channel_postings or channel_postings[-1] != position:
                        channel_postings.append(position)

                if timestamps and timestamp < timestamps[-1]:
                    ordered = False
                timestamps.append(timestamp)
                tokens.append(reader.resume_token())
            stateful = decoder.replay_units != 0
        finally:
            reader.close()

        if not ordered:
            if stateful:
                raise MalformedRecordError(
                    "timestamps go backwards in a source whose decoder cannot seek per unit"
                )
            logger.warning(
                f"{accessor.name}: timestamps are not monotonic, cursors will seek per unit"
            )
            timestamps, tokens, postings = _sort_units(timestamps, tokens, postings)

        if not timestamps:
            if not options.allow_empty:
                raise EmptySourceError(accessor.name)
            logger.warning(f"{accessor.name}: no records found")

        index = cls(
            timestamps=timestamps,
            tokens=tokens,
            postings=postings,
            message_counts=counts,
            channels=registry,
            ordered=ordered,
        )
        logger.info(
            f"Indexed {accessor.name}: {len(timestamps)} units, {sum(counts.values())} messages "
            f"on {len(registry)} channels, time range [{index.start_time}, {index.end_time}]"
        )
        return index

    def __len__(self) -> int:
        return len(self._timestamps)

    @property
    def start_time(self) -> int:
        return self._timestamps[0] if self._timestamps else 0

    @property
    def end_time(self) -> int:
        return self._timestamps[-1] if self._timestamps else 0

    @property
    def message_counts(self) -> dict[int, int]:
        return {
            channel_id: self._message_counts.get(channel_id, 0)
            for channel_id in self.channels.ids()
        }

    def timestamp(self, position: int) -> int:
        return self._timestamps[position]

    def token(self, position: int) -> ResumeToken:
        return self._tokens[position]

    def first_at_or_after(self, start_time: int) -> int | None:
        """Position of the first unit with timestamp >= ``start_time``, if any."""
        position = bisect.bisect_left(self._timestamps, start_time)
        return position if position < len(self._timestamps) else None

    def insertion_point(self, query_time: int) -> int:
        """Number of units with timestamp <= ``query_time``."""
        return bisect.bisect_right(self._timestamps, query_time)

    def latest_for_channel(self, channel_id: int, before: int) -> int | None:
        """Position of the last unit before ``before`` that produced a value on ``channel_id``."""
        channel_postings = self._postings.get(channel_id)
        if not channel_postings:
            return None
        k = bisect.bisect_left(channel_postings, before)
        return channel_postings[k - 1] if k > 0 else None

    def initialization(self) -> Initialization:
        return Initialization(
            start_time=self.start_time,
            end_time=self.end_time,
            channels=self.channels.publish(self.message_counts),
        )


def _sort_units(
    timestamps: list[int],
    tokens: list[ResumeToken],
    postings: Mapping[int, list[int]],
) -> tuple[list[int], list[ResumeToken], dict[int, list[int]]]:
    # stable, so units sharing a timestamp keep file order
    order = sorted(range(len(timestamps)), key=timestamps.__getitem__)
    rank = [0] * len(order)
    for new_position, old_position in enumerate(order):
        rank[old_position] = new_position
    return (
        [timestamps[i] for i in order],
        [tokens[i] for i in order],
        {
            channel_id: sorted(rank[position] for position in channel_postings)
            for channel_id, channel_postings in postings.items()
        },
    )
