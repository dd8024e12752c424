from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _parse_dt(value: str | datetime | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def _format_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _unique(values: list[str] | None) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values or []:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


@dataclass(frozen=True)
class Coordinates:
    lat: float = 0.0
    lng: float = 0.0

    @property
    def is_set(self) -> bool:
        # (0, 0) means "no coordinates"
        return not (self.lat == 0 and self.lng == 0)


@dataclass
class Photo:
    reference: str = ""
    local_path: str = ""
    width: int = 0
    height: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference,
            "local_path": self.local_path,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Photo:
        return cls(
            reference=data.get("reference") or "",
            local_path=data.get("local_path") or "",
            width=int(data.get("width") or 0),
            height=int(data.get("height") or 0),
        )


@dataclass
class Review:
    author: str = ""
    rating: int = 0
    text: str = ""
    time: datetime | None = None
    profile_photo: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "author": self.author,
            "rating": self.rating,
            "text": self.text,
            "time": _format_dt(self.time),
            "profile_photo": self.profile_photo,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Review:
        return cls(
            author=data.get("author") or "",
            rating=int(data.get("rating") or 0),
            text=data.get("text") or "",
            time=_parse_dt(data.get("time")),
            profile_photo=data.get("profile_photo") or "",
        )


@dataclass
class Place:
    id: str = ""
    provider_id: str = ""
    name: str = ""
    address: str = ""
    coordinates: Coordinates = field(default_factory=Coordinates)
    categories: list[str] = field(default_factory=list)
    photos: list[Photo] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    rating: float = 0.0
    rating_count: int = 0
    price_level: int = 0
    hours: str = ""
    phone: str = ""
    website: str = ""
    user_notes: str = ""
    user_tags: list[str] = field(default_factory=list)
    custom_fields: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    imported_at: datetime | None = None
    source_hash: str = ""

    def __post_init__(self) -> None:
        self.categories = _unique(self.categories)
        self.user_tags = _unique(self.user_tags)

    @property
    def has_identity(self) -> bool:
        return bool(self.name or self.address or self.coordinates.is_set)

    def has_tag(self, tag: str) -> bool:
        return tag in self.user_tags

    def add_tag(self, tag: str) -> bool:
        if self.has_tag(tag):
            return False
        self.user_tags.append(tag)
        return True

    def remove_tag(self, tag: str) -> bool:
        if not self.has_tag(tag):
            return False
        self.user_tags.remove(tag)
        return True

    def add_category(self, category: str) -> bool:
        if not category or category in self.categories:
            return False
        self.categories.append(category)
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "name": self.name,
            "address": self.address,
            "coordinates": {"lat": self.coordinates.lat, "lng": self.coordinates.lng},
            "categories": list(self.categories),
            "photos": [photo.to_dict() for photo in self.photos],
            "reviews": [review.to_dict() for review in self.reviews],
            "rating": self.rating,
            "rating_count": self.rating_count,
            "price_level": self.price_level,
            "hours": self.hours,
            "phone": self.phone,
            "website": self.website,
            "user_notes": self.user_notes,
            "user_tags": list(self.user_tags),
            "custom_fields": dict(self.custom_fields),
            "created_at": _format_dt(self.created_at),
            "updated_at": _format_dt(self.updated_at),
            "imported_at": _format_dt(self.imported_at),
            "source_hash": self.source_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Place:
        coords = data.get("coordinates") or {}
        return cls(
            id=data.get("id") or "",
            provider_id=data.get("provider_id") or "",
            name=data.get("name") or "",
            address=data.get("address") or "",
            coordinates=Coordinates(float(coords.get("lat") or 0.0), float(coords.get("lng") or 0.0)),
            categories=list(data.get("categories") or []),
            photos=[Photo.from_dict(item) for item in data.get("photos") or []],
            reviews=[Review.from_dict(item) for item in data.get("reviews") or []],
            rating=float(data.get("rating") or 0.0),
            rating_count=int(data.get("rating_count") or 0),
            price_level=int(data.get("price_level") or 0),
            hours=data.get("hours") or "",
            phone=data.get("phone") or "",
            website=data.get("website") or "",
            user_notes=data.get("user_notes") or "",
            user_tags=list(data.get("user_tags") or []),
            custom_fields=dict(data.get("custom_fields") or {}),
            created_at=_parse_dt(data.get("created_at")),
            updated_at=_parse_dt(data.get("updated_at")),
            imported_at=_parse_dt(data.get("imported_at")),
            source_hash=data.get("source_hash") or "",
        )
