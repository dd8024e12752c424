from __future__ import annotations

import csv
import io
import json
import logging
from pathlib import Path
from typing import Any

from ..config import PipelineConfig
from ..errors import SourceError, UnsupportedFormatError
from ..models import Place
from .apple_maps import AppleMapsSource
from .base import PlaceSource, decode_text
from .foursquare_export import FoursquareExportSource
from .google_takeout import GoogleTakeoutSource
from .openstreetmap import OpenStreetMapSource

logger = logging.getLogger(__name__)

AVAILABLE_SOURCES = {
    "takeout": GoogleTakeoutSource,
    "apple": AppleMapsSource,
    "osm": OpenStreetMapSource,
    "foursquare": FoursquareExportSource,
}

_EXTENSION_SOURCES = {
    ".kml": "apple",
    ".kmz": "apple",
    ".gpx": "apple",
    ".zip": "takeout",
}


def sniff_json(payload: Any) -> str | None:
    if isinstance(payload, dict):
        if any(key in payload for key in ("features", "lists", "places")):
            return "takeout"
        if "elements" in payload:
            return "osm"
        if "checkins" in payload:
            return "foursquare"
        return None
    if isinstance(payload, list):
        first = next((item for item in payload if isinstance(item, dict)), None)
        if first is None:
            return None
        if "venue" in first:
            return "foursquare"
        if "tags" in first or ("lat" in first and "lon" in first):
            return "osm"
    return None


def sniff_csv_header(header: list[str]) -> str | None:
    columns = {column.strip().lower() for column in header}
    if columns & {"url", "link", "google maps url"}:
        return "takeout"
    if columns & {"lat", "latitude"} and columns & {"lon", "lng", "longitude"} and columns & {"name", "title"}:
        return "osm"
    if columns & {"title", "name", "place name"}:
        return "takeout"
    return None


class SourceRegistry:
    def __init__(self) -> None:
        self._sources: dict[str, PlaceSource] = {}

    def register(self, source: PlaceSource) -> None:
        self._sources[source.tag] = source

    def get(self, tag: str) -> PlaceSource:
        try:
            return self._sources[tag]
        except KeyError:
            raise SourceError(f"Unknown source: {tag} (available: {', '.join(self.tags())})") from None

    def tags(self) -> list[str]:
        return list(self._sources)

    def sources(self) -> list[PlaceSource]:
        return list(self._sources.values())

    def detect(self, path: str | Path) -> PlaceSource | None:
        path = Path(path)
        if path.is_dir():
            tag = "takeout"
        else:
            suffix = path.suffix.lower()
            tag = _EXTENSION_SOURCES.get(suffix)
            if tag is None and suffix == ".json":
                tag = self._sniff_file(path, lambda text: sniff_json(json.loads(text)))
            elif tag is None and suffix == ".csv":
                tag = self._sniff_file(path, lambda text: sniff_csv_header(next(csv.reader(io.StringIO(text)), [])))
        return self._sources.get(tag) if tag else None

    @staticmethod
    def _sniff_file(path: Path, sniff) -> str | None:
        try:
            return sniff(decode_text(path.read_bytes()))
        except (OSError, ValueError, csv.Error) as exc:
            logger.debug("Could not sniff %s: %s", path, exc)
            return None

    def import_from_file(self, path: str | Path, source: str = "auto") -> tuple[PlaceSource, list[Place]]:
        path = Path(path)
        if source != "auto":
            chosen = self.get(source)
            return chosen, chosen.import_from_file(path)

        if not path.exists():
            raise SourceError(f"Path does not exist: {path}")

        detected = self.detect(path)
        if detected is not None:
            return detected, detected.import_from_file(path)

        for candidate in self._sources.values():
            try:
                places = candidate.import_from_file(path)
            except SourceError as exc:
                logger.debug("%s could not read %s: %s", candidate.name(), path, exc)
                continue
            if places:
                return candidate, places
        raise UnsupportedFormatError(str(path))


def build_registry(config: PipelineConfig) -> SourceRegistry:
    registry = SourceRegistry()
    for tag in config.enabled_sources:
        source_cls = AVAILABLE_SOURCES.get(tag)
        if source_cls is None:
            raise ValueError(f"Unsupported source: {tag}")
        registry.register(source_cls())
    return registry
