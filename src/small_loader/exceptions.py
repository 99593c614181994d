class LoaderError(Exception):
    pass


class NoSourceError(LoaderError):
    def __init__(self) -> None:
        super().__init__("no paths provided to data loader")


class UnsupportedFormatError(LoaderError):
    def __init__(self, path: str, *, format_name: str | None = None) -> None:
        if format_name is not None:
            msg = f"unknown source format '{format_name}' for {path}"
        else:
            msg = f"cannot infer source format from file name: {path}"
        super().__init__(msg)


class MissingTimeFieldError(LoaderError):
    def __init__(self, field: str, *, unit: str = "header") -> None:
        self.field = field
        super().__init__(f"expected {unit} to contain time field '{field}'")


class MalformedRecordError(LoaderError):
    def __init__(
        self,
        reason: str,
        *,
        offset: int | None = None,
        channel: str | int | None = None,
        timestamp: int | None = None,
    ) -> None:
        self.reason = reason
        self.offset = offset
        self.channel = channel
        self.timestamp = timestamp

        context = []
        if offset is not None:
            context.append(f"offset {offset}")
        if channel is not None:
            context.append(f"channel {channel}")
        if timestamp is not None:
            context.append(f"timestamp {timestamp}")
        if context:
            super().__init__(f"malformed record ({', '.join(context)}): {reason}")
        else:
            super().__init__(f"malformed record: {reason}")

    def with_offset(self, offset: int) -> "MalformedRecordError":
        """Return a copy of this error located at ``offset``."""
        return type(self)(
            self.reason, offset=offset, channel=self.channel, timestamp=self.timestamp
        )


class UnitSizeLimitExceededError(MalformedRecordError):
    def __init__(self, size: int, limit: int, *, offset: int | None = None) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"unit of at least {size} bytes exceeds limit {limit}", offset=offset
        )

    def with_offset(self, offset: int) -> "UnitSizeLimitExceededError":
        return type(self)(self.size, self.limit, offset=offset)


class DuplicateChannelError(LoaderError):
    def __init__(self, *, topic: str | None = None, channel_id: int | None = None) -> None:
        if topic is not None:
            msg = f"channel for topic '{topic}' is already registered"
        else:
            msg = f"channel id {channel_id} is already registered"
        super().__init__(msg)


class ChannelNotFoundError(LoaderError):
    def __init__(self, *, topic: str | None = None, channel_id: int | None = None) -> None:
        if topic is not None:
            msg = f"no channel registered for topic '{topic}'"
        else:
            msg = f"no channel registered with id {channel_id}"
        super().__init__(msg)


class EmptySourceError(LoaderError):
    def __init__(self, path: str | None = None) -> None:
        super().__init__(f"no records found in {path}" if path else "no records found in source")
