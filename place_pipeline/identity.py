from __future__ import annotations

import hashlib

from .models import Place


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def generate_id(provider_id: str) -> str:
    return _sha256(provider_id)[:12]


def compute_source_hash(name: str, address: str, lat: float, lng: float, provider_id: str) -> str:
    return _sha256(f"{name}|{address}|{lat:.6f},{lng:.6f}|{provider_id}")


def synthesize_provider_id(prefix: str, *parts: object) -> str:
    digest = _sha256("|".join(str(part) for part in parts))[:16]
    return f"{prefix}{digest}"


def source_hash_for(place: Place) -> str:
    return compute_source_hash(
        place.name,
        place.address,
        place.coordinates.lat,
        place.coordinates.lng,
        place.provider_id,
    )


def stamp_identity(place: Place) -> Place:
    """Derive `id` and `source_hash` from the record's current identity fields."""
    place.id = generate_id(place.provider_id)
    place.source_hash = source_hash_for(place)
    return place
