"""Merging freshly fetched provider data into stored places.

There are two paths with different conservatism, kept as separate functions:

* `merge_imported` runs when an import finds an existing record: the incoming
  record wins outright, except for identity, history and user-authored data.
* `merge_enrichment` runs when details come back from the enrichment API: a
  provider value only replaces the stored one when it is non-empty and
  different, and categories are unioned.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from .config import PipelineConfig
from .models import Photo, Place, Review, utcnow


def _stamp(now: datetime) -> str:
    return now.replace(tzinfo=UTC).isoformat(timespec="seconds")


@dataclass
class PlaceDetails:
    provider_id: str = ""
    name: str = ""
    address: str = ""
    rating: float = 0.0
    rating_count: int = 0
    price_level: int = 0
    website: str = ""
    phone: str = ""
    hours: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    photos: list[Photo] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)


def merge_imported(existing: Place, incoming: Place, config: PipelineConfig, now: datetime | None = None) -> Place:
    now = now or utcnow()
    merged = copy.deepcopy(incoming)

    merged.id = existing.id
    merged.created_at = existing.created_at
    merged.updated_at = now
    merged.user_notes = existing.user_notes
    merged.user_tags = list(existing.user_tags)

    custom_fields = {key: value for key, value in incoming.custom_fields.items() if config.is_system_field(key)}
    for key, value in existing.custom_fields.items():
        if not config.is_system_field(key):
            custom_fields[key] = copy.deepcopy(value)
    custom_fields["last_import"] = _stamp(now)
    merged.custom_fields = custom_fields
    return merged


def merge_enrichment(
    existing: Place,
    details: PlaceDetails,
    *,
    refresh_reviews: bool = False,
    refresh_photos: bool = False,
    now: datetime | None = None,
) -> Place:
    now = now or utcnow()
    merged = copy.deepcopy(existing)

    # an empty or zero incoming value never blanks a stored one
    for attr in ("rating", "rating_count", "price_level", "website", "phone"):
        value = getattr(details, attr)
        if value and value != getattr(merged, attr):
            setattr(merged, attr, value)

    hours = ", ".join(details.hours)
    if hours and hours != merged.hours:
        merged.hours = hours

    for category in details.categories:
        merged.add_category(category)

    if refresh_reviews and details.reviews:
        merged.reviews = [replace(review) for review in details.reviews]
    if refresh_photos and details.photos:
        merged.photos = [replace(photo) for photo in details.photos]

    merged.updated_at = now
    merged.custom_fields["last_sync"] = _stamp(now)
    return merged
