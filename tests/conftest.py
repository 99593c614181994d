"""Shared pytest fixtures for small-loader tests."""

from collections.abc import Callable
from pathlib import Path

import pytest
from helpers import SENSORS_CSV, SENSORS_NDJSON
from small_loader import BytesAccessor, CsvFormat, DataLoader, LoaderOptions, NdjsonFormat
from small_loader.decoder import SourceFormat


@pytest.fixture
def make_loader() -> Callable[..., DataLoader]:
    """Factory for an initialized loader over in-memory bytes."""

    def _make(
        data: bytes,
        source_format: SourceFormat | None = None,
        options: LoaderOptions | None = None,
    ) -> DataLoader:
        loader = DataLoader(BytesAccessor(data), source_format or CsvFormat(), options)
        loader.initialize()
        return loader

    return _make


@pytest.fixture
def sensors_loader(make_loader) -> DataLoader:
    """Loader over a small CSV with a duplicated timestamp."""
    return make_loader(SENSORS_CSV)


@pytest.fixture
def ndjson_loader(make_loader) -> DataLoader:
    return make_loader(SENSORS_NDJSON, NdjsonFormat())


@pytest.fixture
def sensors_csv_file(tmp_path: Path) -> Path:
    path = tmp_path / "sensors.csv"
    path.write_bytes(SENSORS_CSV)
    return path


@pytest.fixture
def sensors_ndjson_file(tmp_path: Path) -> Path:
    path = tmp_path / "sensors.ndjson"
    path.write_bytes(SENSORS_NDJSON)
    return path
