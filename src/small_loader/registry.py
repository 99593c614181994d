from collections.abc import Iterator, Mapping

from small_loader.exceptions import ChannelNotFoundError, DuplicateChannelError
from small_loader.records import Channel, ChannelSpec, Schema


class ChannelRegistry:
    """Stable numeric ids for the topics of one source.

    Ids are handed out once, when a topic is discovered, and never change.
    Message counts are attached only when the registry is published.
    """

    def __init__(self) -> None:
        self._specs: dict[int, ChannelSpec] = {}
        self._ids_by_topic: dict[str, int] = {}
        self._next_id = 1

    def register(
        self,
        topic: str,
        message_encoding: str,
        schema: Schema | None = None,
        *,
        channel_id: int | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> int:
        if topic in self._ids_by_topic:
            raise DuplicateChannelError(topic=topic)

        if channel_id is None:
            while self._next_id in self._specs:
                self._next_id += 1
            channel_id = self._next_id
        elif channel_id in self._specs:
            raise DuplicateChannelError(channel_id=channel_id)

        self._specs[channel_id] = ChannelSpec(
            topic=topic,
            message_encoding=message_encoding,
            schema=schema,
            channel_id=channel_id,
            metadata=dict(metadata or {}),
        )
        self._ids_by_topic[topic] = channel_id
        return channel_id

    def register_spec(self, spec: ChannelSpec) -> int:
        return self.register(
            spec.topic,
            spec.message_encoding,
            spec.schema,
            channel_id=spec.channel_id,
            metadata=spec.metadata,
        )

    def id_for(self, topic: str) -> int:
        try:
            return self._ids_by_topic[topic]
        except KeyError:
            raise ChannelNotFoundError(topic=topic) from None

    def get(self, channel_id: int) -> ChannelSpec:
        try:
            return self._specs[channel_id]
        except KeyError:
            raise ChannelNotFoundError(channel_id=channel_id) from None

    def ids(self) -> list[int]:
        return list(self._specs)

    def publish(self, message_counts: Mapping[int, int]) -> tuple[Channel, ...]:
        """Freeze the registry into channels, in registration order."""
        return tuple(
            Channel(
                id=channel_id,
                topic=spec.topic,
                message_encoding=spec.message_encoding,
                schema=spec.schema,
                metadata=spec.metadata,
                message_count=message_counts.get(channel_id, 0),
            )
            for channel_id, spec in self._specs.items()
        )

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._specs

    def __iter__(self) -> Iterator[ChannelSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)
