from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from .config import PipelineConfig
from .database import PlaceStore
from .dedup import DuplicateResolver
from .errors import StorageError
from .merge import merge_imported
from .models import Place, utcnow
from .sources.registry import SourceRegistry

logger = logging.getLogger(__name__)

IMPORT_MODES = ("smart", "simple")


@dataclass
class ImportResult:
    added: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    def as_tuple(self) -> tuple[int, int, int, int]:
        return self.added, self.updated, self.skipped, self.failed

    def summary(self) -> str:
        return f"added={self.added} updated={self.updated} skipped={self.skipped}"


def import_places(
    store: PlaceStore,
    places: Iterable[Place],
    config: PipelineConfig,
    *,
    mode: str = "smart",
    dry_run: bool = False,
    force: bool = False,
    report: Callable[[str], None] = print,
) -> ImportResult:
    """Save parsed places one at a time, in input order.

    `simple` mode inserts every record. `smart` mode resolves each record
    against the store first: new records are added, matches are skipped, or
    merged and updated when `force` is set. `dry_run` runs resolution and
    merging but never writes; records it would have saved stay visible to
    later records in the batch, so counts and messages match a real run.
    """
    if mode not in IMPORT_MODES:
        raise ValueError(f"Unsupported import mode: {mode}")

    resolver = DuplicateResolver(store, config)
    result = ImportResult()
    places = list(places)
    total = len(places)

    for index, place in enumerate(places, start=1):
        report(f"[{index}/{total}] Processing: {place.name}")
        try:
            existing = resolver.find_existing(place) if mode == "smart" else None

            if existing is None:
                if dry_run:
                    resolver.remember(place)
                else:
                    store.save(place)
                result.added += 1
                report("  + Added new place")
                continue

            if not force:
                result.skipped += 1
                report(f"  - Skipped: already exists as {existing.id} (use --force to update)")
                continue

            merged = merge_imported(existing, place, config)
            if dry_run:
                resolver.remember(merged)
            else:
                store.save(merged)
            result.updated += 1
            report(f"  ~ Updated existing place {existing.id}")
        except StorageError as exc:
            result.failed += 1
            report(f"  ! Error: {exc}")
            logger.warning("Import of %r failed: %s", place.name, exc)

    return result


def run_import(
    store: PlaceStore,
    registry: SourceRegistry,
    config: PipelineConfig,
    path: str | Path,
    *,
    source: str = "auto",
    mode: str | None = None,
    dry_run: bool = False,
    force: bool = False,
    report: Callable[[str], None] = print,
) -> ImportResult:
    """Parse `path` with the matching source and import it, auditing real runs in `import_runs`."""
    mode = mode or config.import_mode
    chosen, places = registry.import_from_file(path, source)
    logger.info("Parsed %d places from %s using %s", len(places), path, chosen.name())
    report(f"Found {len(places)} places in {path} ({chosen.name()})")

    if dry_run:
        return import_places(store, places, config, mode=mode, dry_run=True, force=force, report=report)

    run_id = str(uuid4())
    store.start_run(run_id, chosen.tag, str(path), utcnow())
    try:
        result = import_places(store, places, config, mode=mode, force=force, report=report)
    except Exception as exc:
        store.finish_run(run_id, "failed", str(exc), (0, 0, 0, 0))
        raise
    store.finish_run(run_id, "success", result.summary(), result.as_tuple())
    return result
