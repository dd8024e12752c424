from __future__ import annotations

import csv
import io
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import SourceError
from ..identity import synthesize_provider_id
from ..models import Place, utcnow
from .base import build_place, decode_text, read_bytes, safe_float

logger = logging.getLogger(__name__)

CATEGORY_TAGS = ("amenity", "shop", "tourism", "leisure", "craft", "office")
ADDRESS_TAGS = ("addr:housenumber", "addr:street", "addr:city", "addr:postcode", "addr:country")
_PROMOTED_TAGS = {"name", "phone", "website", "description"}

_AMENITY_NAMES = {
    "restaurant": "Restaurant",
    "cafe": "Cafe",
    "bar": "Bar",
    "pub": "Bar",
    "bank": "Bank",
    "hospital": "Hospital",
    "school": "School",
}
_CATEGORY_PREFIXES = {
    "shop": "Shopping - ",
    "tourism": "Tourism - ",
    "leisure": "Leisure - ",
}


def _title(value: str) -> str:
    return value.replace("_", " ").strip().title()


def humanize_category(tag_key: str, value: str) -> str:
    if tag_key == "amenity" and value in _AMENITY_NAMES:
        return _AMENITY_NAMES[value]
    return _CATEGORY_PREFIXES.get(tag_key, "") + _title(value)


def extract_categories(tags: dict[str, str]) -> list[str]:
    return [humanize_category(key, tags[key]) for key in CATEGORY_TAGS if tags.get(key)]


def build_address(tags: dict[str, str]) -> str:
    return ", ".join(tags[key] for key in ADDRESS_TAGS if tags.get(key))


class OpenStreetMapSource:
    tag = "osm"

    def name(self) -> str:
        return "OpenStreetMap"

    def supported_formats(self) -> frozenset[str]:
        return frozenset({"json", "csv"})

    def import_from_file(self, path: str | Path) -> list[Place]:
        path = Path(path)
        fmt = "csv" if path.suffix.lower() == ".csv" else "json"
        return self.import_from_data(read_bytes(path), fmt)

    def import_from_data(self, data: bytes, fmt: str) -> list[Place]:
        if fmt == "json":
            return self._parse_json(data)
        if fmt == "csv":
            return self._parse_csv(data)
        raise SourceError(f"Unsupported format for {self.name()}: {fmt}")

    def _parse_json(self, data: bytes) -> list[Place]:
        try:
            payload = json.loads(decode_text(data))
        except json.JSONDecodeError as exc:
            raise SourceError(f"Failed to parse OSM JSON: {exc}") from exc

        if isinstance(payload, dict) and isinstance(payload.get("elements"), list):
            elements = payload["elements"]
        elif isinstance(payload, list):
            elements = payload
        else:
            raise SourceError("Unrecognized OSM JSON format: expected a list of nodes or an 'elements' array")

        now = utcnow()
        places: list[Place] = []
        for index, element in enumerate(elements):
            if not isinstance(element, dict):
                logger.warning("Skipping OSM element %d: expected an object", index)
                continue
            tags = element.get("tags")
            if not isinstance(tags, dict):
                continue
            place = self._convert_node(
                element.get("id"),
                safe_float(element.get("lat")),
                safe_float(element.get("lon")),
                {str(k): str(v) for k, v in tags.items() if v is not None},
                now,
            )
            if place is not None:
                places.append(place)
        return places

    def _parse_csv(self, data: bytes) -> list[Place]:
        try:
            rows = list(csv.reader(io.StringIO(decode_text(data))))
        except csv.Error as exc:
            raise SourceError(f"Failed to parse CSV: {exc}") from exc
        if not rows:
            raise SourceError("Empty CSV file")

        columns: dict[str, int] = {}
        aliases = {
            "name": ("name", "title"),
            "lat": ("lat", "latitude"),
            "lon": ("lon", "lng", "longitude"),
            "type": ("type", "category"),
            "description": ("description", "desc", "notes"),
        }
        for index, header in enumerate(rows[0]):
            for column, names in aliases.items():
                if header.strip().lower() in names and column not in columns:
                    columns[column] = index
        if not {"name", "lat", "lon"} <= columns.keys():
            raise SourceError("CSV must have name, lat, and lon columns")

        now = utcnow()
        places: list[Place] = []
        for row in rows[1:]:
            values = {column: row[index].strip() for column, index in columns.items() if index < len(row)}
            name = values.get("name", "")
            lat = safe_float(values.get("lat"))
            lon = safe_float(values.get("lon"))
            if not name or lat is None or lon is None:
                continue

            tags = {"name": name}
            if values.get("type"):
                tags["amenity"] = values["type"]
            if values.get("description"):
                tags["description"] = values["description"]

            place = self._convert_node(None, lat, lon, tags, now)
            if place is not None:
                places.append(place)
        return places

    def _convert_node(
        self,
        node_id: Any,
        lat: float | None,
        lon: float | None,
        tags: dict[str, str],
        now: datetime,
    ) -> Place | None:
        name = tags.get("name", "").strip()
        if not name:
            return None

        lat = lat or 0.0
        lon = lon or 0.0
        if node_id is not None and node_id != "":
            provider_id = f"osm_{node_id}"
        else:
            provider_id = synthesize_provider_id("osm_", name, f"{lat:.6f}", f"{lon:.6f}")

        custom_fields: dict[str, Any] = {}
        if node_id is not None and node_id != "":
            custom_fields["osm_id"] = node_id
        for key, value in tags.items():
            if key in _PROMOTED_TAGS or key.startswith("addr:"):
                continue
            custom_fields[f"osm_{key}"] = value

        return build_place(
            "openstreetmap",
            provider_id,
            name=name,
            address=build_address(tags),
            lat=lat,
            lng=lon,
            now=now,
            custom_fields=custom_fields,
            categories=extract_categories(tags),
            phone=tags.get("phone", ""),
            website=tags.get("website", ""),
            user_notes=tags.get("description", ""),
        )
