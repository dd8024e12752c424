from __future__ import annotations

import csv
import io
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse
from zipfile import BadZipFile, ZipFile

from ..errors import SourceError, UnsupportedFormatError
from ..identity import synthesize_provider_id
from ..models import Place, utcnow
from .base import build_place, decode_text, read_bytes, safe_float, safe_int

logger = logging.getLogger(__name__)

_COORD_PATTERN = re.compile(r"^(-?\d+\.?\d*),(-?\d+\.?\d*)$")

_CSV_NAME = ("Title", "Name", "Place Name")
_CSV_ADDRESS = ("Address", "Location")
_CSV_URL = ("URL", "Link", "Google Maps URL")
_CSV_NOTE = ("Comment", "Note", "Description")
_CSV_LIST = ("List", "Collection", "Folder")
_CSV_LAT = ("Latitude", "Lat")
_CSV_LNG = ("Longitude", "Lng", "Long")


def extract_from_maps_url(url: str) -> tuple[float, float, str]:
    """Pull `lat,lng` or a place name out of the `q` parameter of a Google Maps URL."""
    if not url:
        return 0.0, 0.0, ""
    try:
        query = parse_qs(urlparse(url).query)
    except ValueError:
        return 0.0, 0.0, ""

    q = (query.get("q") or [""])[0]
    if not q:
        return 0.0, 0.0, ""

    match = _COORD_PATTERN.match(q)
    if match:
        return float(match.group(1)), float(match.group(2)), ""

    place_name = unquote(q)
    idx = place_name.find("&")
    if idx > 0:
        place_name = place_name[:idx]
    return 0.0, 0.0, place_name


def _is_takeout_member(path: str) -> bool:
    lowered = path.lower()
    if lowered.endswith(".json"):
        return "Maps" in path or "Saved" in path
    if lowered.endswith(".csv"):
        return "Saved" in path
    return False


def _geojson_point(coordinates: Any) -> tuple[float, float]:
    # GeoJSON order is [lng, lat]
    if not isinstance(coordinates, list) or len(coordinates) < 2:
        return 0.0, 0.0
    lng = safe_float(coordinates[0])
    lat = safe_float(coordinates[1])
    if lat is None or lng is None:
        return 0.0, 0.0
    return lat, lng


def _first(row: dict[str, str], names: tuple[str, ...]) -> str:
    for name in names:
        value = row.get(name, "")
        if value:
            return value
    return ""


def _first_float(row: dict[str, str], names: tuple[str, ...]) -> float | None:
    for name in names:
        value = safe_float(row.get(name))
        if value is not None:
            return value
    return None


class GoogleTakeoutSource:
    tag = "takeout"

    def name(self) -> str:
        return "Google Takeout"

    def supported_formats(self) -> frozenset[str]:
        return frozenset({"zip", "json", "csv", "directory"})

    def import_from_file(self, path: str | Path) -> list[Place]:
        path = Path(path)
        if path.is_dir():
            return self._import_directory(path)
        if not path.exists():
            raise SourceError(f"Path does not exist: {path}")

        suffix = path.suffix.lower()
        if suffix == ".zip":
            return self._import_zip(path)
        if suffix == ".json":
            return self._parse_json(read_bytes(path), utcnow())
        if suffix == ".csv":
            return self._parse_csv(read_bytes(path), utcnow(), default_list=path.stem)
        raise UnsupportedFormatError(str(path))

    def import_from_data(self, data: bytes, fmt: str) -> list[Place]:
        if fmt == "json":
            return self._parse_json(data, utcnow())
        if fmt == "csv":
            return self._parse_csv(data, utcnow())
        raise SourceError(f"Unsupported format for {self.name()}: {fmt}")

    def _import_zip(self, path: Path) -> list[Place]:
        now = utcnow()
        try:
            archive = ZipFile(path)
        except (BadZipFile, OSError) as exc:
            raise SourceError(f"Failed to open zip {path}: {exc}") from exc

        places: list[Place] = []
        with archive:
            for member in sorted(archive.namelist()):
                if not _is_takeout_member(member):
                    continue
                try:
                    data = archive.read(member)
                except (BadZipFile, OSError) as exc:
                    logger.warning("Skipping %s in %s: %s", member, path.name, exc)
                    continue
                places.extend(self._parse_member(member, data, now))
        return places

    def _import_directory(self, root: Path) -> list[Place]:
        now = utcnow()
        places: list[Place] = []
        for path in sorted(root.rglob("*")):
            if not path.is_file():
                continue
            logical_path = path.relative_to(root).as_posix()
            if not _is_takeout_member(logical_path):
                continue
            try:
                data = path.read_bytes()
            except OSError as exc:
                logger.warning("Skipping %s: %s", logical_path, exc)
                continue
            places.extend(self._parse_member(logical_path, data, now))
        return places

    def _parse_member(self, member: str, data: bytes, now: datetime) -> list[Place]:
        try:
            if member.lower().endswith(".csv"):
                return self._parse_csv(data, now, default_list=Path(member).stem)
            return self._parse_json(data, now)
        except SourceError as exc:
            logger.warning("Skipping %s: %s", member, exc)
            return []

    def _parse_json(self, data: bytes, now: datetime) -> list[Place]:
        try:
            payload = json.loads(decode_text(data))
        except json.JSONDecodeError as exc:
            raise SourceError(f"Invalid Google Takeout JSON: {exc}") from exc

        if isinstance(payload, dict):
            if isinstance(payload.get("features"), list):
                return self._collect(payload["features"], lambda item: self._convert_feature(item, now))

            if isinstance(payload.get("lists"), list):
                places: list[Place] = []
                for saved_list in payload["lists"]:
                    if isinstance(saved_list, dict):
                        places.extend(self._parse_saved_list(saved_list, now))
                return places

            if isinstance(payload.get("places"), list):
                return self._parse_saved_list(payload, now)

        raise SourceError("Unrecognized Google Takeout JSON format")

    @staticmethod
    def _collect(items: list[Any], convert) -> list[Place]:
        places: list[Place] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                logger.warning("Skipping entry %d: expected an object, got %s", index, type(item).__name__)
                continue
            try:
                place = convert(item)
            except (TypeError, ValueError, AttributeError) as exc:
                logger.warning("Skipping malformed entry %d: %s", index, exc)
                continue
            if place is not None:
                places.append(place)
        return places

    def _convert_feature(self, feature: dict[str, Any], now: datetime) -> Place | None:
        geometry = feature.get("geometry") or {}
        props = feature.get("properties") or {}
        lat, lng = _geojson_point(geometry.get("coordinates"))

        location = props.get("location") or props.get("Location")
        if isinstance(location, dict):
            name = location.get("name") or location.get("Business Name") or ""
            address = location.get("address") or location.get("Address") or ""
        else:
            location = None
            name = props.get("name") or props.get("Title") or ""
            address = props.get("address") or ""

        url = props.get("google_maps_url") or props.get("Google Maps URL") or ""
        if not name and not address and url:
            url_lat, url_lng, url_name = extract_from_maps_url(url)
            if url_lat != 0 and url_lng != 0:
                lat, lng = url_lat, url_lng
                name = f"Saved Place ({lat:.6f}, {lng:.6f})"
            elif url_name:
                name = url_name

        provider_id = props.get("place_id") or synthesize_provider_id("takeout_", name, address)

        hours = props.get("hours")
        custom_fields: dict[str, Any] = {}
        if url:
            custom_fields["google_maps_url"] = url
        if location and location.get("country_code"):
            custom_fields["country_code"] = location["country_code"]
        if props.get("date"):
            custom_fields["saved_date"] = props["date"]

        return build_place(
            "takeout",
            provider_id,
            name=name,
            address=address,
            lat=lat,
            lng=lng,
            now=now,
            custom_fields=custom_fields,
            categories=[c for c in props.get("categories") or [] if isinstance(c, str) and c],
            rating=safe_float(props.get("rating")) or 0.0,
            rating_count=safe_int(props.get("review_count")),
            price_level=safe_int(props.get("price_level")),
            hours=json.dumps(hours, sort_keys=True) if isinstance(hours, dict) and hours else "",
            phone=props.get("phone") or "",
            website=props.get("website") or "",
            user_notes=props.get("description") or props.get("Comment") or "",
        )

    def _parse_saved_list(self, saved_list: dict[str, Any], now: datetime) -> list[Place]:
        list_name = saved_list.get("name") or ""
        return self._collect(
            saved_list.get("places") or [],
            lambda item: self._convert_saved_place(item, list_name, now),
        )

    def _convert_saved_place(self, item: dict[str, Any], list_name: str, now: datetime) -> Place | None:
        name = item.get("name") or ""
        address = item.get("address") or ""
        if not name and not address:
            return None

        coords = item.get("coordinates") or {}
        url = item.get("google_maps_url") or ""
        custom_fields: dict[str, Any] = {}
        if url:
            custom_fields["google_maps_url"] = url
        if list_name:
            custom_fields["original_list"] = list_name
        if item.get("added_at"):
            custom_fields["added_at"] = item["added_at"]

        return build_place(
            "takeout_saved",
            item.get("place_id") or synthesize_provider_id("saved_", name, address),
            name=name,
            address=address,
            lat=safe_float(coords.get("latitude")),
            lng=safe_float(coords.get("longitude")),
            now=now,
            custom_fields=custom_fields,
            categories=[c for c in item.get("categories") or [] if isinstance(c, str) and c],
            user_notes=item.get("note") or "",
            user_tags=[list_name] if list_name else [],
        )

    def _parse_csv(self, data: bytes, now: datetime, default_list: str = "") -> list[Place]:
        reader = csv.DictReader(io.StringIO(decode_text(data)))
        try:
            if not reader.fieldnames:
                raise SourceError("Failed to read CSV headers")
            rows = [
                {key.strip(): (value or "").strip() for key, value in row.items() if isinstance(key, str)}
                for row in reader
            ]
        except csv.Error as exc:
            raise SourceError(f"Failed to read CSV: {exc}") from exc

        places: list[Place] = []
        for row in rows:
            place = self._convert_csv_row(row, now, default_list)
            if place is not None:
                places.append(place)
        return places

    def _convert_csv_row(self, row: dict[str, str], now: datetime, default_list: str) -> Place | None:
        name = _first(row, _CSV_NAME)
        address = _first(row, _CSV_ADDRESS)
        url = _first(row, _CSV_URL)
        if not name and not address and not url:
            return None

        lat = _first_float(row, _CSV_LAT) or 0.0
        lng = _first_float(row, _CSV_LNG) or 0.0
        if lat == 0 and lng == 0 and url:
            url_lat, url_lng, url_name = extract_from_maps_url(url)
            if url_lat != 0 and url_lng != 0:
                lat, lng = url_lat, url_lng
            if not name and url_name:
                name = url_name

        list_name = _first(row, _CSV_LIST) or default_list
        custom_fields: dict[str, Any] = {}
        if url:
            custom_fields["google_maps_url"] = url
        if list_name:
            custom_fields["original_list"] = list_name

        return build_place(
            "takeout_saved_csv",
            synthesize_provider_id("saved_", name, address, url),
            name=name,
            address=address,
            lat=lat,
            lng=lng,
            now=now,
            custom_fields=custom_fields,
            user_notes=_first(row, _CSV_NOTE),
            user_tags=[list_name] if list_name else [],
        )
