from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from datetime import UTC, datetime

import requests

from ..config import EnrichmentConfig
from ..database import PlaceStore
from ..errors import EnrichmentError, StorageError
from ..merge import PlaceDetails, merge_enrichment
from ..models import Photo, Place, Review
from ..sources.base import SYNTHETIC_ID_PREFIXES

logger = logging.getLogger(__name__)

DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
DETAILS_FIELDS = (
    "place_id,name,formatted_address,rating,user_ratings_total,price_level,website,"
    "formatted_phone_number,opening_hours,photos,reviews,types"
)


def _parse_details(result: dict) -> PlaceDetails:
    hours = (result.get("opening_hours") or {}).get("weekday_text") or []
    return PlaceDetails(
        provider_id=result.get("place_id") or "",
        name=result.get("name") or "",
        address=result.get("formatted_address") or "",
        rating=float(result.get("rating") or 0.0),
        rating_count=int(result.get("user_ratings_total") or 0),
        price_level=int(result.get("price_level") or 0),
        website=result.get("website") or "",
        phone=result.get("formatted_phone_number") or "",
        hours=[str(line) for line in hours],
        categories=[str(t) for t in result.get("types") or []],
        photos=[
            Photo(
                reference=photo.get("photo_reference") or "",
                width=int(photo.get("width") or 0),
                height=int(photo.get("height") or 0),
            )
            for photo in result.get("photos") or []
        ],
        reviews=[
            Review(
                author=review.get("author_name") or "",
                rating=int(review.get("rating") or 0),
                text=review.get("text") or "",
                time=datetime.fromtimestamp(int(review["time"]), tz=UTC).replace(tzinfo=None)
                if review.get("time")
                else None,
                profile_photo=review.get("profile_photo_url") or "",
            )
            for review in result.get("reviews") or []
        ],
    )


def fetch_place_details(provider_id: str, api_key: str, timeout: float = 30.0) -> PlaceDetails:
    if not provider_id:
        raise EnrichmentError("no provider id")
    try:
        response = requests.get(
            DETAILS_URL,
            params={"place_id": provider_id, "fields": DETAILS_FIELDS, "key": api_key},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise EnrichmentError(f"Request for {provider_id} failed: {exc}") from exc
    if not response.ok:
        raise EnrichmentError(f"Request for {provider_id} failed with HTTP {response.status_code}")

    try:
        data = response.json()
    except ValueError as exc:
        raise EnrichmentError(f"Invalid response for {provider_id}: {exc}") from exc
    if data.get("status") != "OK":
        raise EnrichmentError(f"Place details for {provider_id} returned status {data.get('status')}")
    try:
        return _parse_details(data.get("result") or {})
    except (TypeError, ValueError, AttributeError) as exc:
        raise EnrichmentError(f"Malformed place details for {provider_id}: {exc}") from exc


def enrich_place(
    store: PlaceStore,
    place: Place,
    api_key: str,
    *,
    refresh_reviews: bool = False,
    refresh_photos: bool = False,
    timeout: float = 30.0,
) -> Place:
    details = fetch_place_details(place.provider_id, api_key, timeout=timeout)
    enriched = merge_enrichment(place, details, refresh_reviews=refresh_reviews, refresh_photos=refresh_photos)
    return store.save(enriched)


def enrich_places(
    store: PlaceStore,
    enrichment_cfg: EnrichmentConfig,
    *,
    query: str | None = None,
    refresh_reviews: bool = False,
    refresh_photos: bool = False,
    report: Callable[[str], None] = print,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[int, int]:
    """Enrich up to `max_rows_per_run` places, least recently synced first. Returns (enriched, failed).

    Places whose provider id was synthesized on import are never selected
    because the Places API cannot resolve them. Every request is followed by a
    `delay_seconds` pause, failed or not.
    """
    if not enrichment_cfg.enabled:
        report("Google Places enrichment is disabled (enrichment.google_places.enabled)")
        return 0, 0
    api_key = os.getenv(enrichment_cfg.api_key_env)
    if not api_key:
        raise EnrichmentError(f"Set {enrichment_cfg.api_key_env} to enable enrichment")

    places = store.enrichment_candidates(enrichment_cfg.max_rows_per_run, SYNTHETIC_ID_PREFIXES, query)
    enriched = failed = 0
    for place in places:
        report(f"Enriching {place.name}...")
        try:
            enrich_place(
                store,
                place,
                api_key,
                refresh_reviews=refresh_reviews,
                refresh_photos=refresh_photos,
                timeout=enrichment_cfg.timeout_seconds,
            )
        except (EnrichmentError, StorageError) as exc:
            failed += 1
            report(f"Failed to enrich {place.name}: {exc}")
            logger.warning("Enrichment of %s failed: %s", place.id, exc)
        else:
            enriched += 1
        sleep(enrichment_cfg.delay_seconds)

    return enriched, failed
