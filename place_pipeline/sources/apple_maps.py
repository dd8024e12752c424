from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import SourceError
from ..identity import synthesize_provider_id
from ..models import Place, utcnow
from .base import build_place, read_bytes, safe_float

logger = logging.getLogger(__name__)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> str:
    for child in element:
        if _local(child.tag) == name:
            return (child.text or "").strip()
    return ""


def _iter_local(element: ET.Element, name: str):
    for node in element.iter():
        if _local(node.tag) == name:
            yield node


def parse_kml_coordinates(value: str) -> tuple[float, float]:
    # KML order is lng,lat[,alt]
    parts = value.strip().split(",")
    if len(parts) < 2:
        return 0.0, 0.0
    lng = safe_float(parts[0].strip())
    lat = safe_float(parts[1].strip())
    if lat is None or lng is None:
        return 0.0, 0.0
    return lat, lng


class AppleMapsSource:
    tag = "apple"

    def name(self) -> str:
        return "Apple Maps"

    def supported_formats(self) -> frozenset[str]:
        return frozenset({"kml", "kmz", "gpx"})

    def import_from_file(self, path: str | Path) -> list[Place]:
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix == ".kmz":
            raise SourceError("KMZ files are not supported, please extract the KML file first")
        fmt = "gpx" if suffix == ".gpx" else "kml"
        return self.import_from_data(read_bytes(path), fmt)

    def import_from_data(self, data: bytes, fmt: str) -> list[Place]:
        if fmt == "kmz":
            raise SourceError("KMZ files are not supported, please extract the KML file first")
        if fmt not in {"kml", "gpx"}:
            raise SourceError(f"Unsupported format for {self.name()}: {fmt}")

        try:
            root = ET.fromstring(data)
        except ET.ParseError as exc:
            raise SourceError(f"Failed to parse {fmt.upper()}: {exc}") from exc

        now = utcnow()
        if fmt == "gpx":
            nodes, convert = _iter_local(root, "wpt"), self._convert_waypoint
        else:
            nodes, convert = _iter_local(root, "Placemark"), self._convert_placemark

        places: list[Place] = []
        for node in nodes:
            place = convert(node, now)
            if place is not None:
                places.append(place)
        return places

    def _convert_placemark(self, placemark: ET.Element, now: datetime) -> Place | None:
        name = _child_text(placemark, "name")
        if not name:
            return None

        point = next(_iter_local(placemark, "coordinates"), None)
        lat, lng = parse_kml_coordinates(point.text or "") if point is not None else (0.0, 0.0)
        if lat == 0 and lng == 0:
            logger.debug("Skipping placemark %r without coordinates", name)
            return None

        address = _child_text(placemark, "address")
        description = _child_text(placemark, "description")

        extended: dict[str, str] = {}
        for data in _iter_local(placemark, "Data"):
            key = data.get("name") or ""
            value = _child_text(data, "value")
            if key and value:
                extended[key] = value

        categories = [value for key, value in extended.items() if key.lower() in {"category", "type"}]
        if not categories and ("restaurant" in name.lower() or "restaurant" in description.lower()):
            categories = ["Restaurant"]

        custom_fields: dict[str, Any] = {f"apple_{key}": value for key, value in extended.items()}
        return build_place(
            "apple_maps",
            synthesize_provider_id("apple_", name, address, f"{lat:.6f}", f"{lng:.6f}"),
            name=name,
            address=address,
            lat=lat,
            lng=lng,
            now=now,
            custom_fields=custom_fields,
            categories=categories,
            phone=_child_text(placemark, "phoneNumber"),
            user_notes=description,
        )

    def _convert_waypoint(self, waypoint: ET.Element, now: datetime) -> Place | None:
        name = _child_text(waypoint, "name")
        if not name:
            return None

        lat = safe_float(waypoint.get("lat"))
        lng = safe_float(waypoint.get("lon"))
        if lat is None or lng is None:
            lat, lng = 0.0, 0.0

        desc = _child_text(waypoint, "desc")
        waypoint_type = _child_text(waypoint, "type")
        waypoint_time = _child_text(waypoint, "time")

        custom_fields: dict[str, Any] = {}
        if waypoint_type:
            custom_fields["gpx_type"] = waypoint_type
        if waypoint_time:
            custom_fields["gpx_time"] = waypoint_time

        return build_place(
            "gpx",
            synthesize_provider_id("gpx_", name, desc, f"{lat:.6f}", f"{lng:.6f}"),
            name=name,
            lat=lat,
            lng=lng,
            now=now,
            custom_fields=custom_fields,
            categories=[waypoint_type] if waypoint_type else [],
            user_notes=desc,
        )
