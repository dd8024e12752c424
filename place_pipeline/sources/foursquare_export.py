from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..errors import SourceError
from ..models import Photo, Place, utcnow
from .base import build_place, decode_text, read_bytes, safe_float, safe_int

logger = logging.getLogger(__name__)


def _from_unix(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (ValueError, TypeError, OverflowError, OSError):
        return None


def _checkins(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        for key in ("checkins", "items"):
            value = payload.get(key)
            if isinstance(value, list):
                return value
            if isinstance(value, Mapping) and isinstance(value.get("items"), list):
                return value["items"]
    raise SourceError("Unrecognized Foursquare export: expected a list of check-ins")


def _build_address(location: Mapping[str, Any]) -> str:
    formatted = location.get("formattedAddress")
    if isinstance(formatted, list) and formatted:
        return ", ".join(str(part) for part in formatted if part)
    parts = [location.get(key) for key in ("address", "city", "state", "postalCode", "country")]
    return ", ".join(str(part) for part in parts if part)


def _convert_photos(checkins: list[Mapping[str, Any]]) -> list[Photo]:
    photos: list[Photo] = []
    for checkin in checkins:
        items = checkin.get("photos")
        if isinstance(items, Mapping):
            items = items.get("items")
        for photo in items or []:
            if not isinstance(photo, Mapping):
                continue
            photos.append(
                Photo(
                    reference=str(photo.get("id") or ""),
                    width=safe_int(photo.get("width")),
                    height=safe_int(photo.get("height")),
                )
            )
    return photos


class FoursquareExportSource:
    tag = "foursquare"

    def name(self) -> str:
        return "Foursquare/Swarm"

    def supported_formats(self) -> frozenset[str]:
        return frozenset({"json"})

    def import_from_file(self, path: str | Path) -> list[Place]:
        return self.import_from_data(read_bytes(path), "json")

    def import_from_data(self, data: bytes, fmt: str) -> list[Place]:
        if fmt != "json":
            raise SourceError(f"Unsupported format for {self.name()}: {fmt}")
        try:
            payload = json.loads(decode_text(data))
        except json.JSONDecodeError as exc:
            raise SourceError(f"Failed to parse Foursquare JSON: {exc}") from exc

        # Repeated visits to one venue collapse into a single record.
        grouped: dict[str, list[Mapping[str, Any]]] = {}
        for index, checkin in enumerate(_checkins(payload)):
            if not isinstance(checkin, Mapping):
                logger.warning("Skipping check-in %d: expected an object", index)
                continue
            venue = checkin.get("venue")
            venue_id = venue.get("id") if isinstance(venue, Mapping) else None
            if not venue_id:
                continue
            grouped.setdefault(str(venue_id), []).append(checkin)

        now = utcnow()
        places: list[Place] = []
        for venue_id, checkins in grouped.items():
            place = self._convert_venue(venue_id, checkins, now)
            if place is not None:
                places.append(place)
        return places

    def _convert_venue(self, venue_id: str, checkins: list[Mapping[str, Any]], now: datetime) -> Place | None:
        venue = checkins[0]["venue"]
        name = venue.get("name") or ""
        if not name:
            return None

        location = venue.get("location") if isinstance(venue.get("location"), Mapping) else {}
        contact = venue.get("contact") if isinstance(venue.get("contact"), Mapping) else {}
        stats = venue.get("stats") if isinstance(venue.get("stats"), Mapping) else {}
        price = venue.get("price") if isinstance(venue.get("price"), Mapping) else {}

        custom_fields: dict[str, Any] = {
            "foursquare_id": venue_id,
            "checkins_count": safe_int(stats.get("checkinsCount")),
            "users_count": safe_int(stats.get("usersCount")),
            "tips_count": safe_int(stats.get("tipCount")),
        }
        for key in ("twitter", "instagram", "facebook"):
            if contact.get(key):
                custom_fields[key] = contact[key]
        if price.get("message"):
            custom_fields["price_message"] = price["message"]
        if price.get("currency"):
            custom_fields["currency"] = price["currency"]
        custom_fields.update(self._checkin_metadata(checkins))

        categories = [
            category.get("name")
            for category in venue.get("categories") or []
            if isinstance(category, Mapping) and category.get("name")
        ]
        first_comment = next((c.get("comments") for c in checkins if c.get("comments")), "")

        return build_place(
            "foursquare",
            f"4sq_{venue_id}",
            name=name,
            address=_build_address(location),
            lat=safe_float(location.get("lat")),
            lng=safe_float(location.get("lng")),
            now=now,
            custom_fields=custom_fields,
            categories=categories,
            photos=_convert_photos(checkins),
            rating=safe_float(venue.get("rating")) or 0.0,
            rating_count=safe_int(stats.get("checkinsCount")),
            price_level=safe_int(price.get("tier")),
            phone=contact.get("formattedPhone") or contact.get("phone") or "",
            website=venue.get("url") or "",
            user_notes=first_comment or "",
        )

    @staticmethod
    def _checkin_metadata(checkins: list[Mapping[str, Any]]) -> dict[str, Any]:
        metadata: dict[str, Any] = {"my_checkins_count": len(checkins)}
        visits = [ts for ts in (_from_unix(c.get("createdAt")) for c in checkins) if ts is not None]
        if visits:
            metadata["first_visit"] = min(visits).strftime("%Y-%m-%d")
            metadata["last_visit"] = max(visits).strftime("%Y-%m-%d")
        comments = [str(c["comments"]) for c in checkins if c.get("comments")]
        if comments:
            metadata["checkin_comments"] = comments
        return metadata
