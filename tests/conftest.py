from datetime import datetime

import duckdb
import pytest

from place_pipeline.config import PipelineConfig
from place_pipeline.database import PlaceStore
from place_pipeline.identity import stamp_identity
from place_pipeline.models import Coordinates, Place


@pytest.fixture
def duckdb_conn():
    conn = duckdb.connect(":memory:")
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def store(duckdb_conn) -> PlaceStore:
    return PlaceStore(duckdb_conn)


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(db_path=":memory:")


def make_place(
    name: str = "Joe's Pizza",
    address: str = "7 Carmine St, New York",
    lat: float = 40.7128,
    lng: float = -74.0060,
    provider_id: str = "ChIJjoes",
    **fields,
) -> Place:
    place = Place(
        provider_id=provider_id,
        name=name,
        address=address,
        coordinates=Coordinates(lat, lng),
        imported_at=datetime(2024, 1, 1),
        **fields,
    )
    return stamp_identity(place)
