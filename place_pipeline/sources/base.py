from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from ..errors import SourceError
from ..identity import stamp_identity
from ..models import Coordinates, Place

SYNTHETIC_ID_PREFIXES = ("takeout_", "saved_", "apple_", "gpx_", "osm_", "4sq_")


class PlaceSource(Protocol):
    tag: str

    def name(self) -> str: ...

    def supported_formats(self) -> frozenset[str]: ...

    def import_from_file(self, path: str | Path) -> list[Place]: ...

    def import_from_data(self, data: bytes, fmt: str) -> list[Place]: ...


def build_place(
    source_tag: str,
    provider_id: str,
    *,
    name: str = "",
    address: str = "",
    lat: float | None = None,
    lng: float | None = None,
    now: datetime,
    custom_fields: dict[str, Any] | None = None,
    **fields: Any,
) -> Place | None:
    """Assemble a canonical record, or None when the entry has nothing to identify it by."""
    place = Place(
        provider_id=provider_id,
        name=(name or "").strip(),
        address=(address or "").strip(),
        coordinates=Coordinates(lat or 0.0, lng or 0.0),
        imported_at=now,
        **fields,
    )
    if not place.has_identity:
        return None

    place.custom_fields = {
        **(custom_fields or {}),
        "imported_from": source_tag,
        "import_date": now.replace(tzinfo=UTC).isoformat(timespec="seconds"),
    }
    return stamp_identity(place)


def safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def safe_int(value: Any) -> int:
    try:
        return int(value)
    except (ValueError, TypeError):
        return 0


def read_bytes(path: str | Path) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise SourceError(f"Failed to read {path}: {exc}") from exc


def decode_text(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")
