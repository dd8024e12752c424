from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from . import editing
from .config import PipelineConfig, load_config
from .database import PlaceStore
from .enrich.google_places import enrich_places
from .errors import PipelineError, PlaceNotFoundError
from .models import Place
from .runner import run_import
from .sources.registry import build_registry


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="place-pipeline", description="Import, deduplicate and curate saved places")
    parser.add_argument("--config", help="Path to a YAML config file")
    parser.add_argument("--db-path", help="Override the DuckDB path from the config")
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db")
    subparsers.add_parser("sources", help="List available import sources")

    import_parser = subparsers.add_parser("import", help="Import places from a file or Takeout directory")
    import_parser.add_argument("path")
    import_parser.add_argument("--source", default="auto", help="auto, takeout, apple, osm or foursquare")
    import_parser.add_argument("--dry-run", action="store_true", help="Report what would change without writing")
    import_parser.add_argument("--force", action="store_true", help="Merge into existing places instead of skipping")
    import_parser.add_argument("--no-merge", action="store_true", help="Skip duplicate checks and insert every place")

    list_parser = subparsers.add_parser("list")
    list_parser.add_argument("--limit", type=int, default=50)
    list_parser.add_argument("--offset", type=int, default=0)

    search_parser = subparsers.add_parser("search")
    search_parser.add_argument("query")

    show_parser = subparsers.add_parser("show")
    show_parser.add_argument("place_id")

    delete_parser = subparsers.add_parser("delete")
    delete_parser.add_argument("place_id")

    note_parser = subparsers.add_parser("note", help="Replace the notes of a place")
    note_parser.add_argument("place_id")
    note_parser.add_argument("text")

    tag_parser = subparsers.add_parser("tag", help="Manage user tags")
    tag_sub = tag_parser.add_subparsers(dest="tag_command", required=True)
    tag_sub.add_parser("list")
    for name in ("add", "remove"):
        p = tag_sub.add_parser(name)
        p.add_argument("place_id")
        p.add_argument("tag")
    rename = tag_sub.add_parser("rename")
    rename.add_argument("old")
    rename.add_argument("new")
    tag_delete = tag_sub.add_parser("delete")
    tag_delete.add_argument("tag")
    apply = tag_sub.add_parser("apply")
    apply.add_argument("tag")
    apply.add_argument("--filter", required=True, help="Search query selecting the places to tag")

    field_parser = subparsers.add_parser("field", help="Manage custom fields")
    field_sub = field_parser.add_subparsers(dest="field_command", required=True)
    field_set = field_sub.add_parser("set")
    field_set.add_argument("place_id")
    field_set.add_argument("name")
    field_set.add_argument("value")
    field_set.add_argument("--type", choices=editing.FIELD_TYPES)
    field_remove = field_sub.add_parser("remove")
    field_remove.add_argument("place_id")
    field_remove.add_argument("name")

    enrich_parser = subparsers.add_parser("enrich", help="Fetch provider details for stored places")
    enrich_parser.add_argument("--filter", help="Only enrich places matching this search query")
    enrich_parser.add_argument("--reviews", action="store_true", help="Replace stored reviews")
    enrich_parser.add_argument("--photos", action="store_true", help="Replace stored photo references")

    return parser


def _print_place(place: Place) -> None:
    print(json.dumps(place.to_dict(), indent=2, ensure_ascii=False))


def _print_row(place: Place) -> None:
    tags = f" [{', '.join(place.user_tags)}]" if place.user_tags else ""
    print(f"{place.id}  {place.name or '(unnamed)'}  {place.address}{tags}")


def _run(args: argparse.Namespace, config: PipelineConfig, store: PlaceStore) -> None:
    if args.command == "init-db":
        print(f"Initialized DB at {config.db_path}")
        return

    if args.command == "sources":
        for source in build_registry(config).sources():
            print(f"{source.name()} ({source.tag})")
            print(f"   Supported formats: {', '.join(sorted(source.supported_formats()))}")
        return

    if args.command == "import":
        if args.dry_run:
            print("DRY RUN: no changes will be made")
        result = run_import(
            store,
            build_registry(config),
            config,
            Path(args.path).expanduser().resolve(),
            source=args.source,
            mode="simple" if args.no_merge else config.import_mode,
            dry_run=args.dry_run,
            force=args.force,
        )
        print("\nImport complete:")
        print(f"  Added:   {result.added} places")
        print(f"  Updated: {result.updated} places")
        print(f"  Skipped: {result.skipped} places")
        if result.failed:
            print(f"  Failed:  {result.failed} places")
        if args.dry_run:
            print("\nRun without --dry-run to apply changes")
        return

    if args.command in {"list", "search"}:
        places = store.list(args.limit, args.offset) if args.command == "list" else store.search(args.query)
        for place in places:
            _print_row(place)
        if not places:
            print("No places found")
        return

    if args.command == "show":
        place = store.get_by_id(args.place_id)
        if place is None:
            raise PlaceNotFoundError(args.place_id)
        _print_place(place)
        return

    if args.command == "delete":
        if not store.delete(args.place_id):
            raise PlaceNotFoundError(args.place_id)
        print(f"Deleted {args.place_id}")
        return

    if args.command == "note":
        editing.set_notes(store, args.place_id, args.text)
        print(f"Updated notes for {args.place_id}")
        return

    if args.command == "tag":
        _run_tag(args, store)
        return

    if args.command == "field":
        if args.field_command == "set":
            value = editing.set_field(store, args.place_id, args.name, args.value, args.type)
            print(f"Set {args.name} = {value!r}")
        elif editing.remove_field(store, args.place_id, args.name):
            print(f"Removed {args.name}")
        else:
            print(f"Field {args.name} not set on {args.place_id}")
        return

    if args.command == "enrich":
        enriched, failed = enrich_places(
            store,
            config.enrichment,
            query=args.filter,
            refresh_reviews=args.reviews,
            refresh_photos=args.photos,
        )
        if config.enrichment.enabled:
            print(f"Enrichment complete: {enriched} enriched, {failed} failed")


def _run_tag(args: argparse.Namespace, store: PlaceStore) -> None:
    if args.tag_command == "list":
        counts = sorted(store.all_tags().items(), key=lambda item: (-item[1], item[0]))
        for tag, count in counts:
            print(f"{tag:<30} {count}")
        if not counts:
            print("No tags found")
    elif args.tag_command == "add":
        changed = editing.add_tag(store, args.place_id, args.tag)
        print(f"Tagged {args.place_id} with {args.tag}" if changed else f"{args.place_id} already has {args.tag}")
    elif args.tag_command == "remove":
        changed = editing.remove_tag(store, args.place_id, args.tag)
        print(f"Removed {args.tag} from {args.place_id}" if changed else f"{args.place_id} has no tag {args.tag}")
    elif args.tag_command == "rename":
        print(f"Renamed {args.old} -> {args.new} on {editing.rename_tag(store, args.old, args.new)} places")
    elif args.tag_command == "delete":
        print(f"Removed {args.tag} from {editing.delete_tag(store, args.tag)} places")
    elif args.tag_command == "apply":
        print(f"Tagged {editing.apply_tag(store, args.tag, args.filter)} places with {args.tag}")


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        config = load_config(args.config)
        if args.db_path:
            config = replace(config, db_path=args.db_path)
        Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)
        store = PlaceStore.open(config.db_path)
        try:
            _run(args, config, store)
        finally:
            store.close()
    except (PipelineError, ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
