"""Command line entry point for small-loader using Cyclopts."""

import json
import logging
import sys
from typing import Annotated, Any, Literal

from cyclopts import App, Group, Parameter
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from small_loader.exceptions import LoaderError
from small_loader.formats import FORMATS, CsvFormat, Mp3Format, NdjsonFormat, format_for
from small_loader.formats.tabular import DEFAULT_TIME_COLUMN
from small_loader.loader import DataLoader, open_loader
from small_loader.payload import MessageEncoding
from small_loader.records import Initialization, Record

console_err = Console(stderr=True)
console_out = Console()

SOURCE_GROUP = Group("Source")
FILTERING_GROUP = Group("Filtering")
OUTPUT_GROUP = Group("Output")

_NS_TO_SEC = 1_000_000_000

FormatOpt = Annotated[
    str | None,
    Parameter(name=["-f", "--format"], group=SOURCE_GROUP, help=f"One of {sorted(FORMATS)}"),
]
TimeColumnOpt = Annotated[str, Parameter(name=["--time-column"], group=SOURCE_GROUP)]
TypeFieldOpt = Annotated[str, Parameter(name=["--type-field"], group=SOURCE_GROUP)]
TimeFieldOpt = Annotated[str, Parameter(name=["--time-field"], group=SOURCE_GROUP)]
TimeUnitOpt = Annotated[
    Literal["s", "ms", "us", "ns"], Parameter(name=["--time-unit"], group=SOURCE_GROUP)
]
PcmOpt = Annotated[bool, Parameter(name=["--pcm"], group=SOURCE_GROUP)]
VerboseOpt = Annotated[bool, Parameter(name=["-v", "--verbose"])]
TopicsOpt = Annotated[list[str] | None, Parameter(name=["-t", "--topics"], group=FILTERING_GROUP)]


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console_err,
                rich_tracebacks=True,
                tracebacks_show_locals=verbose,
            )
        ],
    )


def _load(
    file: str,
    format_name: str | None,
    *,
    time_column: str,
    type_field: str,
    time_field: str,
    time_unit: str,
    pcm: bool,
) -> tuple[DataLoader, Initialization]:
    fmt = format_for(file, format_name)
    options: dict[str, Any] = {}
    if fmt is CsvFormat:
        options["time_column"] = time_column
    elif fmt is NdjsonFormat:
        options.update(type_field=type_field, time_field=time_field, time_unit=time_unit)
    elif fmt is Mp3Format:
        options["pcm"] = pcm

    loader = open_loader(file, format_name=fmt.name, **options)
    return loader, loader.initialize()


def _fail(exc: Exception) -> None:
    console_err.print(f"[red]Error: {escape(str(exc))}[/red]")
    sys.exit(1)


def _resolve_topics(init: Initialization, topics: list[str] | None) -> list[int] | None:
    if not topics:
        return None
    ids = []
    for topic in topics:
        channel = init.get_channel(topic)
        if channel is None:
            raise LoaderError(f"no channel for topic '{topic}'")
        ids.append(channel.id)
    return ids


def _payload(record: Record) -> Any:
    if record.encoding == MessageEncoding.JSON:
        return json.loads(record.data)
    return {"size": len(record.data)}


def _record_to_dict(record: Record, topics: dict[int, str]) -> dict[str, Any]:
    return {
        "topic": topics[record.channel_id],
        "channel_id": record.channel_id,
        "timestamp": record.timestamp,
        "encoding": record.encoding,
        "data": _payload(record),
    }


def _print_record(record: Record, topics: dict[int, str], *, as_json: bool) -> None:
    output = _record_to_dict(record, topics)
    if as_json:
        print(json.dumps(output, separators=(",", ":")), file=sys.stdout)  # noqa: T201
        return

    line = Text()
    line.append(output["topic"], style="bold cyan")
    line.append(" @ ", style="dim")
    line.append(str(record.timestamp), style="green")
    line.append(" ")
    line.append(json.dumps(output["data"]))
    console_out.print(line)


def info(
    file: str,
    *,
    format_name: FormatOpt = None,
    time_column: TimeColumnOpt = DEFAULT_TIME_COLUMN,
    type_field: TypeFieldOpt = "type",
    time_field: TimeFieldOpt = "time",
    time_unit: TimeUnitOpt = "s",
    pcm: PcmOpt = False,
    verbose: VerboseOpt = False,
) -> None:
    """Index a source file and report its time range and channels.

    Examples:
      small-loader info sensors.csv
      small-loader info log.ndjson --time-unit ms
    """
    _setup_logging(verbose)
    try:
        loader, init = _load(
            file,
            format_name,
            time_column=time_column,
            type_field=type_field,
            time_field=time_field,
            time_unit=time_unit,
            pcm=pcm,
        )
    except (LoaderError, OSError) as e:
        _fail(e)
        return

    duration = (init.end_time - init.start_time) / _NS_TO_SEC
    console_out.print(f"[bold]File:[/bold]      {escape(file)} ({loader.source_format.name})")
    console_out.print(f"[bold]Start:[/bold]     {init.start_time}")
    console_out.print(f"[bold]End:[/bold]       {init.end_time}")
    console_out.print(f"[bold]Duration:[/bold]  {duration:.3f} s")
    console_out.print(f"[bold]Messages:[/bold]  {init.message_count}")

    table = Table(title="Channels")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Topic", style="cyan")
    table.add_column("Encoding", style="yellow")
    table.add_column("Messages", justify="right", style="green")
    for channel in init.channels:
        table.add_row(
            str(channel.id), channel.topic, channel.message_encoding, str(channel.message_count)
        )
    console_out.print(table)


def cat(
    file: str,
    *,
    topics: TopicsOpt = None,
    start: Annotated[
        int | None,
        Parameter(name=["-s", "--start"], group=FILTERING_GROUP),
    ] = None,
    end: Annotated[
        int | None,
        Parameter(name=["-e", "--end"], group=FILTERING_GROUP),
    ] = None,
    limit: Annotated[
        int | None,
        Parameter(name=["-n", "--limit"], group=OUTPUT_GROUP),
    ] = None,
    json_output: Annotated[
        bool,
        Parameter(name=["--json"], group=OUTPUT_GROUP),
    ] = False,
    format_name: FormatOpt = None,
    time_column: TimeColumnOpt = DEFAULT_TIME_COLUMN,
    type_field: TypeFieldOpt = "type",
    time_field: TimeFieldOpt = "time",
    time_unit: TimeUnitOpt = "s",
    pcm: PcmOpt = False,
    verbose: VerboseOpt = False,
) -> None:
    """Stream records in time order, one per line.

    Times are nanoseconds on the source's own clock; both bounds are inclusive.

    Examples:
      small-loader cat sensors.csv --topics /temperature
      small-loader cat log.ndjson --start 1000000000 --end 2000000000 --json
    """
    _setup_logging(verbose)
    count = 0
    try:
        loader, init = _load(
            file,
            format_name,
            time_column=time_column,
            type_field=type_field,
            time_field=time_field,
            time_unit=time_unit,
            pcm=pcm,
        )
        names = {channel.id: channel.topic for channel in init.channels}
        channels = _resolve_topics(init, topics)
        with loader.create_iter(start, end, channels) as cursor:
            for record in cursor:
                if limit is not None and count >= limit:
                    break
                count += 1
                _print_record(record, names, as_json=json_output)
    except KeyboardInterrupt:
        console_err.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(0)
    except (LoaderError, OSError) as e:
        _fail(e)


def backfill(
    file: str,
    time: int,
    *,
    topics: TopicsOpt = None,
    json_output: Annotated[
        bool,
        Parameter(name=["--json"], group=OUTPUT_GROUP),
    ] = False,
    format_name: FormatOpt = None,
    time_column: TimeColumnOpt = DEFAULT_TIME_COLUMN,
    type_field: TypeFieldOpt = "type",
    time_field: TimeFieldOpt = "time",
    time_unit: TimeUnitOpt = "s",
    pcm: PcmOpt = False,
    verbose: VerboseOpt = False,
) -> None:
    """Print the last record at or before TIME (nanoseconds) on each channel."""
    _setup_logging(verbose)
    try:
        loader, init = _load(
            file,
            format_name,
            time_column=time_column,
            type_field=type_field,
            time_field=time_field,
            time_unit=time_unit,
            pcm=pcm,
        )
        names = {channel.id: channel.topic for channel in init.channels}
        records = loader.get_backfill(time, _resolve_topics(init, topics))
    except (LoaderError, OSError) as e:
        _fail(e)
        return

    if not records:
        console_err.print(f"[yellow]No records at or before {time}[/yellow]")
    for record in records:
        _print_record(record, names, as_json=json_output)


app = App(
    name="small-loader",
    help="Inspect and read timestamped records from CSV, NDJSON and MP3 files.",
    help_format="rich",
)

app.command(name="info")(info)
app.command(name="cat")(cat)
app.command(name="backfill")(backfill)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
