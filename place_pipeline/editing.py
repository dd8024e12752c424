"""User edits: notes, tags and custom fields. The only writers of user-owned data."""
from __future__ import annotations

from datetime import date
from typing import Any

from .database import PlaceStore
from .errors import PlaceNotFoundError
from .models import Place

FIELD_TYPES = ("text", "number", "date", "boolean", "list")

_TRUE = {"true", "t", "yes", "y", "1"}
_FALSE = {"false", "f", "no", "n", "0"}


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def parse_field_value(value: str, field_type: str) -> Any:
    if field_type == "text":
        return value
    if field_type == "number":
        return float(value)
    if field_type == "date":
        return date.fromisoformat(value.strip()).isoformat()
    if field_type == "boolean":
        return _parse_bool(value)
    if field_type == "list":
        return [item.strip() for item in value.split(",") if item.strip()]
    raise ValueError(f"Unsupported field type: {field_type} (expected one of {', '.join(FIELD_TYPES)})")


def infer_field_value(value: str) -> Any:
    try:
        return float(value)
    except ValueError:
        pass
    try:
        return _parse_bool(value)
    except ValueError:
        return value


def field_type_of(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, list):
        return "list"
    return "text"


def _load(store: PlaceStore, place_id: str) -> Place:
    place = store.get_by_id(place_id)
    if place is None:
        raise PlaceNotFoundError(place_id)
    return place


def set_notes(store: PlaceStore, place_id: str, notes: str) -> Place:
    place = _load(store, place_id)
    place.user_notes = notes
    return store.save(place)


def add_tag(store: PlaceStore, place_id: str, tag: str) -> bool:
    place = _load(store, place_id)
    if not place.add_tag(tag):
        return False
    store.save(place)
    return True


def remove_tag(store: PlaceStore, place_id: str, tag: str) -> bool:
    place = _load(store, place_id)
    if not place.remove_tag(tag):
        return False
    store.save(place)
    return True


def rename_tag(store: PlaceStore, old: str, new: str) -> int:
    renamed = 0
    for place in store.list():
        if not place.has_tag(old):
            continue
        place.user_tags = [new if tag == old else tag for tag in place.user_tags]
        # renaming onto an existing tag must not leave a duplicate
        place.user_tags = list(dict.fromkeys(place.user_tags))
        store.save(place)
        renamed += 1
    return renamed


def delete_tag(store: PlaceStore, tag: str) -> int:
    removed = 0
    for place in store.list():
        if place.remove_tag(tag):
            store.save(place)
            removed += 1
    return removed


def apply_tag(store: PlaceStore, tag: str, query: str) -> int:
    tagged = 0
    for place in store.search(query):
        if place.add_tag(tag):
            store.save(place)
            tagged += 1
    return tagged


def set_field(store: PlaceStore, place_id: str, name: str, value: str, field_type: str | None = None) -> Any:
    name = name.strip()
    if not name:
        raise ValueError("Field name cannot be empty")
    place = _load(store, place_id)

    if field_type is None:
        if name in place.custom_fields:
            parsed = parse_field_value(value, field_type_of(place.custom_fields[name]))
        else:
            parsed = infer_field_value(value)
    else:
        parsed = parse_field_value(value, field_type)

    place.custom_fields[name] = parsed
    store.save(place)
    return parsed


def remove_field(store: PlaceStore, place_id: str, name: str) -> bool:
    place = _load(store, place_id)
    if name not in place.custom_fields:
        return False
    del place.custom_fields[name]
    store.save(place)
    return True
