from __future__ import annotations

import json
from datetime import datetime
from typing import Any

import duckdb

from .errors import StorageError
from .models import Place, utcnow

DDL = """
create table if not exists places (
    id varchar,
    provider_id varchar,
    name varchar,
    address varchar,
    lat double,
    lng double,
    categories json,
    data json,
    user_notes varchar,
    user_tags json,
    custom_fields json,
    created_at timestamp,
    updated_at timestamp,
    imported_at timestamp,
    source_hash varchar
);

create table if not exists import_runs (
    run_id varchar,
    source_name varchar,
    input_path varchar,
    started_at timestamp,
    finished_at timestamp,
    status varchar,
    message varchar,
    added integer,
    updated integer,
    skipped integer,
    failed integer
);
"""

PLACE_COLUMNS = (
    "id, provider_id, name, address, lat, lng, categories, data, user_notes, "
    "user_tags, custom_fields, created_at, updated_at, imported_at, source_hash"
)


def connect(db_path: str) -> duckdb.DuckDBPyConnection:
    try:
        return duckdb.connect(db_path)
    except duckdb.Error as exc:
        raise StorageError(f"Failed to open database {db_path}: {exc}") from exc


def init_db(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(DDL)


def _provider_payload(place: Place) -> str:
    return json.dumps(
        {
            "photos": [photo.to_dict() for photo in place.photos],
            "reviews": [review.to_dict() for review in place.reviews],
            "rating": place.rating,
            "rating_count": place.rating_count,
            "price_level": place.price_level,
            "hours": place.hours,
            "phone": place.phone,
            "website": place.website,
        },
        ensure_ascii=True,
    )


def _loads(value: str | None, default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except ValueError:
        return default


def _row_to_place(row: tuple) -> Place:
    (
        place_id,
        provider_id,
        name,
        address,
        lat,
        lng,
        categories,
        data,
        user_notes,
        user_tags,
        custom_fields,
        created_at,
        updated_at,
        imported_at,
        source_hash,
    ) = row
    payload = _loads(data, {})
    return Place.from_dict(
        {
            **payload,
            "id": place_id,
            "provider_id": provider_id,
            "name": name,
            "address": address,
            "coordinates": {"lat": lat, "lng": lng},
            "categories": _loads(categories, []),
            "user_notes": user_notes,
            "user_tags": _loads(user_tags, []),
            "custom_fields": _loads(custom_fields, {}),
            "created_at": created_at,
            "updated_at": updated_at,
            "imported_at": imported_at,
            "source_hash": source_hash,
        }
    )


class PlaceStore:
    """Places persisted in a DuckDB `places` table, one row per record id."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self.conn = conn
        init_db(conn)

    @classmethod
    def open(cls, db_path: str) -> PlaceStore:
        return cls(connect(db_path))

    def close(self) -> None:
        self.conn.close()

    def _query(self, sql: str, params: list | None = None) -> list[Place]:
        try:
            rows = self.conn.execute(f"select {PLACE_COLUMNS} from places {sql}", params or []).fetchall()
        except duckdb.Error as exc:
            raise StorageError(f"Query failed: {exc}") from exc
        return [_row_to_place(row) for row in rows]

    def get_by_id(self, place_id: str) -> Place | None:
        rows = self._query("where id = ? limit 1", [place_id])
        return rows[0] if rows else None

    def list(self, limit: int = 10000, offset: int = 0) -> list[Place]:
        return self._query("order by updated_at desc, id limit ? offset ?", [limit, offset])

    def search(self, query: str) -> list[Place]:
        pattern = f"%{query}%"
        return self._query(
            "where name ilike ? or address ilike ? or user_notes ilike ? order by updated_at desc, id",
            [pattern, pattern, pattern],
        )

    def enrichment_candidates(
        self,
        limit: int,
        exclude_prefixes: tuple[str, ...] = (),
        query: str | None = None,
    ) -> list[Place]:
        """Places with a real provider id, never-synced first, then oldest `last_sync`."""
        clauses = ["provider_id != ''"]
        params: list[Any] = []
        for prefix in exclude_prefixes:
            clauses.append("not starts_with(provider_id, ?)")
            params.append(prefix)
        if query:
            pattern = f"%{query}%"
            clauses.append("(name ilike ? or address ilike ? or user_notes ilike ?)")
            params.extend([pattern, pattern, pattern])
        params.append(limit)
        return self._query(
            f"""
            where {' and '.join(clauses)}
            order by json_extract_string(custom_fields, '$.last_sync') asc nulls first, id
            limit ?
            """,
            params,
        )

    def find_by_source_hash(self, source_hash: str) -> Place | None:
        if not source_hash:
            return None
        rows = self._query("where source_hash = ? order by updated_at desc limit 1", [source_hash])
        return rows[0] if rows else None

    def find_candidates(self, place: Place, threshold: float = 0.0001) -> list[Place]:
        """Stored rows sharing the provider id, or within `threshold` degrees on both axes."""
        clauses: list[str] = []
        params: list[Any] = []
        if place.provider_id:
            clauses.append("(provider_id = ? and provider_id != '')")
            params.append(place.provider_id)
        if place.coordinates.is_set:
            # (0, 0) means "no coordinates" and never matches on proximity
            clauses.append("(abs(lat - ?) < ? and abs(lng - ?) < ? and not (lat = 0 and lng = 0))")
            params.extend([place.coordinates.lat, threshold, place.coordinates.lng, threshold])
        if not clauses:
            return []
        return self._query(f"where {' or '.join(clauses)} order by updated_at desc, id", params)

    def save(self, place: Place) -> Place:
        now = utcnow()
        if place.created_at is None:
            place.created_at = now
        place.updated_at = now

        try:
            self.conn.begin()
            self.conn.execute("delete from places where id = ?", [place.id])
            self.conn.execute(
                f"insert into places ({PLACE_COLUMNS}) values (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    place.id,
                    place.provider_id,
                    place.name,
                    place.address,
                    place.coordinates.lat,
                    place.coordinates.lng,
                    json.dumps(place.categories, ensure_ascii=True),
                    _provider_payload(place),
                    place.user_notes,
                    json.dumps(place.user_tags, ensure_ascii=True),
                    json.dumps(place.custom_fields, ensure_ascii=True, default=str),
                    place.created_at,
                    place.updated_at,
                    place.imported_at,
                    place.source_hash,
                ],
            )
            self.conn.commit()
        except duckdb.Error as exc:
            self._rollback()
            raise StorageError(f"Failed to save place {place.id} ({place.name}): {exc}") from exc
        return place

    def _rollback(self) -> None:
        try:
            self.conn.rollback()
        except duckdb.Error:
            # no transaction was open
            pass

    def delete(self, place_id: str) -> bool:
        try:
            deleted = self.conn.execute("select count(*) from places where id = ?", [place_id]).fetchone()[0]
            self.conn.execute("delete from places where id = ?", [place_id])
        except duckdb.Error as exc:
            raise StorageError(f"Failed to delete place {place_id}: {exc}") from exc
        return deleted > 0

    def count(self) -> int:
        return self.conn.execute("select count(*) from places").fetchone()[0]

    def all_tags(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for place in self.list():
            for tag in place.user_tags:
                counts[tag] = counts.get(tag, 0) + 1
        return counts

    def start_run(self, run_id: str, source_name: str, input_path: str, started_at: datetime) -> None:
        self.conn.execute(
            "insert into import_runs (run_id, source_name, input_path, started_at, status) values (?, ?, ?, ?, ?)",
            [run_id, source_name, input_path, started_at, "running"],
        )

    def finish_run(self, run_id: str, status: str, message: str | None, counts: tuple[int, int, int, int]) -> None:
        added, updated, skipped, failed = counts
        self.conn.execute(
            """
            update import_runs
            set finished_at = ?, status = ?, message = ?, added = ?, updated = ?, skipped = ?, failed = ?
            where run_id = ?
            """,
            [utcnow(), status, message, added, updated, skipped, failed, run_id],
        )
