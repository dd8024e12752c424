"""Configuration for place-pipeline, loaded once from YAML and passed around explicitly."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_DB_PATH = os.environ.get(
    "PLACE_PIPELINE_DB",
    str(Path.home() / ".local" / "share" / "place-pipeline" / "places.duckdb"),
)

DEFAULT_SYSTEM_FIELD_PREFIXES = ("google_", "osm_", "apple_", "foursquare_", "gpx_")
DEFAULT_SYSTEM_FIELDS = frozenset({"google_maps_url", "imported_from", "import_date", "last_sync", "last_import"})
DEFAULT_SOURCES = ("takeout", "apple", "osm", "foursquare")


@dataclass(frozen=True)
class EnrichmentConfig:
    enabled: bool = False
    api_key_env: str = "GOOGLE_PLACES_API_KEY"
    max_rows_per_run: int = 200
    delay_seconds: float = 0.1
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class PipelineConfig:
    db_path: str = DEFAULT_DB_PATH
    import_mode: str = "smart"
    proximity_threshold: float = 0.0001
    system_field_prefixes: tuple[str, ...] = DEFAULT_SYSTEM_FIELD_PREFIXES
    system_fields: frozenset[str] = DEFAULT_SYSTEM_FIELDS
    enabled_sources: tuple[str, ...] = DEFAULT_SOURCES
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)

    def is_system_field(self, key: str) -> bool:
        if key in self.system_fields:
            return True
        return any(key.startswith(prefix) for prefix in self.system_field_prefixes)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PipelineConfig:
        data = data or {}
        import_cfg = data.get("import") or {}
        sources_cfg = data.get("sources") or {}
        google_cfg = (data.get("enrichment") or {}).get("google_places") or {}

        mode = import_cfg.get("mode", "smart")
        if mode not in {"smart", "simple"}:
            raise ValueError(f"Unsupported import mode: {mode}")

        if sources_cfg:
            enabled = tuple(name for name, cfg in sources_cfg.items() if (cfg or {}).get("enabled", True))
        else:
            enabled = DEFAULT_SOURCES

        return cls(
            db_path=str(Path(data.get("db_path", DEFAULT_DB_PATH)).expanduser()),
            import_mode=mode,
            proximity_threshold=float(import_cfg.get("proximity_threshold", 0.0001)),
            system_field_prefixes=tuple(import_cfg.get("system_field_prefixes", DEFAULT_SYSTEM_FIELD_PREFIXES)),
            system_fields=frozenset(import_cfg.get("system_fields", DEFAULT_SYSTEM_FIELDS)),
            enabled_sources=enabled,
            enrichment=EnrichmentConfig(
                enabled=bool(google_cfg.get("enabled", False)),
                api_key_env=google_cfg.get("api_key_env", "GOOGLE_PLACES_API_KEY"),
                max_rows_per_run=int(google_cfg.get("max_rows_per_run", 200)),
                delay_seconds=float(google_cfg.get("delay_seconds", 0.1)),
                timeout_seconds=float(google_cfg.get("timeout_seconds", 30.0)),
            ),
        )


def load_config(path: str | None) -> PipelineConfig:
    if not path:
        return PipelineConfig()
    with Path(path).expanduser().open("r", encoding="utf-8") as f:
        return PipelineConfig.from_dict(yaml.safe_load(f))
