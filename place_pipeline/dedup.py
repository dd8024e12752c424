from __future__ import annotations

import math

from .config import PipelineConfig
from .database import PlaceStore
from .models import Place

RANK_SOURCE_HASH = 0
RANK_PROVIDER_ID = 1
RANK_PROXIMITY = 2


def is_nearby(a: Place, b: Place, threshold: float) -> bool:
    if not a.coordinates.is_set or not b.coordinates.is_set:
        return False
    return (
        abs(a.coordinates.lat - b.coordinates.lat) < threshold
        and abs(a.coordinates.lng - b.coordinates.lng) < threshold
    )


def match_rank(place: Place, candidate: Place, threshold: float) -> int | None:
    """How strongly `candidate` identifies as `place`; lower is stronger, None for no match."""
    if place.source_hash and candidate.source_hash == place.source_hash:
        return RANK_SOURCE_HASH
    if place.provider_id and candidate.provider_id == place.provider_id:
        return RANK_PROVIDER_ID
    if is_nearby(place, candidate, threshold):
        return RANK_PROXIMITY
    return None


def _distance(a: Place, b: Place) -> float:
    return math.hypot(a.coordinates.lat - b.coordinates.lat, a.coordinates.lng - b.coordinates.lng)


class DuplicateResolver:
    """Finds the stored record an incoming one duplicates.

    Records passed to `remember` shadow the store by id, so a dry run that
    writes nothing still resolves later records in the batch against the
    ones it would have saved.
    """

    def __init__(self, store: PlaceStore, config: PipelineConfig) -> None:
        self.store = store
        self.threshold = config.proximity_threshold
        self.pending: dict[str, Place] = {}

    def remember(self, place: Place) -> None:
        self.pending[place.id] = place

    def _find_by_source_hash(self, source_hash: str) -> Place | None:
        if not source_hash:
            return None
        for place in self.pending.values():
            if place.source_hash == source_hash:
                return place
        hit = self.store.find_by_source_hash(source_hash)
        if hit is not None and hit.id in self.pending:
            # replaced by a pending record with a different hash
            return None
        return hit

    def find_existing(self, place: Place) -> Place | None:
        hit = self._find_by_source_hash(place.source_hash)
        if hit is not None:
            return hit
        candidates = self.find_candidates(place)
        return candidates[0] if candidates else None

    def find_candidates(self, place: Place) -> list[Place]:
        """All stored matches, ordered source hash > provider id > proximity."""
        found: dict[str, Place] = {}
        hit = self._find_by_source_hash(place.source_hash)
        if hit is not None:
            found[hit.id] = hit
        for candidate in self.store.find_candidates(place, self.threshold):
            if candidate.id not in self.pending:
                found.setdefault(candidate.id, candidate)
        for candidate in self.pending.values():
            found.setdefault(candidate.id, candidate)

        ranked: list[tuple[int, float, str, Place]] = []
        for candidate in found.values():
            rank = match_rank(place, candidate, self.threshold)
            if rank is None:
                continue
            distance = _distance(place, candidate) if rank == RANK_PROXIMITY else 0.0
            ranked.append((rank, distance, candidate.id, candidate))
        ranked.sort(key=lambda item: item[:3])
        return [item[3] for item in ranked]
