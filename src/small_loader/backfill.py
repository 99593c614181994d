"""Last known value per channel at a point in time."""

import logging
from collections.abc import Iterable

from small_loader.config import DEFAULT_OPTIONS, LoaderOptions
from small_loader.decoder import DecoderFactory
from small_loader.exceptions import MalformedRecordError
from small_loader.index import TimeIndex
from small_loader.payload import encode_payload
from small_loader.records import Record
from small_loader.stream import StreamAccessor, UnitReader

logger = logging.getLogger(__name__)


def backfill(
    index: TimeIndex,
    accessor: StreamAccessor,
    decoder_factory: DecoderFactory,
    query_time: int,
    channels: Iterable[int] | None = None,
    options: LoaderOptions = DEFAULT_OPTIONS,
) -> list[Record]:
    """Return the latest record with ``timestamp <= query_time`` for each requested channel.

    Only the units holding the answers are decoded: the index is searched for
    the insertion point of ``query_time`` and, per channel, for the last unit
    before it that produced a value on that channel. When several units share
    the winning timestamp the last one in source order wins.

    Args:
        index: Index built for ``accessor``
        accessor: The indexed source
        decoder_factory: Factory for the decoder that built ``index``
        query_time: Time to resolve, in nanoseconds
        channels: Channel ids to resolve; all channels when None
        options: Reader options

    Returns:
        At most one record per requested channel, sorted by channel id. Channels
        without history at ``query_time`` are omitted.
    """
    requested = sorted(set(index.channels.ids() if channels is None else channels))
    insertion_point = index.insertion_point(query_time)

    wanted: dict[int, list[int]] = {}
    for channel_id in requested:
        position = index.latest_for_channel(channel_id, insertion_point)
        if position is not None:
            wanted.setdefault(position, []).append(channel_id)
    if not wanted:
        return []

    records: list[Record] = []
    reader = UnitReader(accessor.open(), decoder_factory(), options)
    try:
        for position in sorted(wanted):
            token = index.token(position)
            reader.seek(token)
            result = reader.next_step()
            if result is None or not result[1].values:
                raise MalformedRecordError("indexed unit produced no values", offset=token.offset)

            latest = {}
            for value in result[1].values:
                channel_id = index.channels.id_for(value.topic)
                if channel_id in wanted[position]:
                    latest[channel_id] = value
            for channel_id, value in latest.items():
                data, encoding = encode_payload(value.value)
                records.append(Record(value.timestamp, channel_id, data, encoding))
    finally:
        reader.close()

    logger.debug(f"Backfill at {query_time}: {len(records)} of {len(requested)} channels")
    return sorted(records, key=lambda record: record.channel_id)
