"""Configuration loading and validation.

Tuning constants come from YAML (``config/pipeline.yml`` plus an optional
overlay); destination credentials come from the environment. Everything is
resolved once into frozen dataclasses that are passed to constructors.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

from bridge_etl.common.constants import CRITICAL_CONDITION_SCORE
from bridge_etl.common.errors import ConfigError
from bridge_etl.common.fs import read_yaml
from bridge_etl.common.schema import validate_pipeline_config
from bridge_etl.pipeline.coordinates import GeoEnvelope
from bridge_etl.pipeline.normalise import DEFAULT_FIELD_CANDIDATES

STORE_URL_ENV = "SUPABASE_URL"
STORE_KEY_ENV = "SUPABASE_SERVICE_KEY"

# ETRS89 / UTM zone 32N extent of Germany, padded to whole kilometres.
DEFAULT_TILE_BBOX = (280000.0, 5230000.0, 920000.0, 6110000.0)


@dataclass(frozen=True)
class SourceConfig:
    endpoint: str
    type_name: str
    strategy: str = "pagination"
    alternate_type_name: str | None = None
    output_format: str = "application/json"
    request_delay_seconds: float = 0.5
    retry_delay_seconds: float = 2.0
    timeout_seconds: float = 120.0
    page_size: int = 1000
    sort_by: str = "bwnr"
    max_empty_pages: int = 3
    tile_bbox: tuple[float, float, float, float] = DEFAULT_TILE_BBOX
    tile_size_m: float = 50000.0
    max_features_per_tile: int = 10000
    srs_name: str = "urn:ogc:def:crs:EPSG::25832"


@dataclass(frozen=True)
class StoreConfig:
    url: str
    service_key: str
    table: str = "bruecken"
    conflict_column: str = "bauwerksnummer"
    refresh_rpc: str = "refresh_landkreis_stats"
    stats_rpc: str = "global_bridge_stats"
    batch_size: int = 500

    @property
    def has_credentials(self) -> bool:
        return bool(self.url.strip()) and bool(self.service_key.strip())


@dataclass(frozen=True)
class PipelineConfig:
    source: SourceConfig
    store: StoreConfig
    envelope: GeoEnvelope = GeoEnvelope()
    field_map: dict[str, tuple[str, ...]] = field(default_factory=dict)
    critical_threshold: float = CRITICAL_CONDITION_SCORE

    def with_strategy(self, strategy: str | None) -> "PipelineConfig":
        if not strategy or strategy == self.source.strategy:
            return self
        return replace(self, source=replace(self.source, strategy=strategy))


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    return _deep_merge(base, overlay)


def _source_config(cfg: dict) -> SourceConfig:
    pagination = cfg.get("pagination") or {}
    tiles = cfg.get("tiles") or {}
    defaults = SourceConfig(endpoint="", type_name="")
    return SourceConfig(
        endpoint=str(cfg["endpoint"]),
        type_name=str(cfg["type_name"]),
        strategy=str(cfg["strategy"]),
        alternate_type_name=str(cfg["alternate_type_name"]) if cfg.get("alternate_type_name") else None,
        output_format=str(cfg.get("output_format", defaults.output_format)),
        request_delay_seconds=float(cfg.get("request_delay_seconds", defaults.request_delay_seconds)),
        retry_delay_seconds=float(cfg.get("retry_delay_seconds", defaults.retry_delay_seconds)),
        timeout_seconds=float(cfg.get("timeout_seconds", defaults.timeout_seconds)),
        page_size=int(pagination.get("page_size", defaults.page_size)),
        sort_by=str(pagination.get("sort_by", defaults.sort_by)),
        max_empty_pages=int(pagination.get("max_empty_pages", defaults.max_empty_pages)),
        tile_bbox=tuple(float(v) for v in tiles.get("bbox", defaults.tile_bbox)),
        tile_size_m=float(tiles.get("tile_size_m", defaults.tile_size_m)),
        max_features_per_tile=int(tiles.get("max_features_per_tile", defaults.max_features_per_tile)),
        srs_name=str(tiles.get("srs_name", defaults.srs_name)),
    )


def _store_config(cfg: dict, environ: Mapping[str, str]) -> StoreConfig:
    return StoreConfig(
        url=environ.get(STORE_URL_ENV, "").strip(),
        service_key=environ.get(STORE_KEY_ENV, "").strip(),
        table=str(cfg["table"]),
        conflict_column=str(cfg["conflict_column"]),
        refresh_rpc=str(cfg["refresh_rpc"]),
        stats_rpc=str(cfg["stats_rpc"]),
        batch_size=int(cfg.get("batch_size", 500)),
    )


def _field_map(overrides: dict | None) -> dict[str, tuple[str, ...]]:
    merged = {name: tuple(candidates) for name, candidates in DEFAULT_FIELD_CANDIDATES.items()}
    for name, candidates in (overrides or {}).items():
        if name not in merged:
            raise ConfigError(f"Unknown target field in fields: {name}")
        merged[name] = tuple(str(c) for c in candidates)
    return merged


def build_pipeline_config(
    cfg: dict,
    *,
    environ: Mapping[str, str] | None = None,
    allow_unknown: bool = False,
) -> PipelineConfig:
    validate_pipeline_config(cfg, allow_unknown=allow_unknown)
    env = os.environ if environ is None else environ
    envelope_cfg = cfg["validation"]["envelope_wgs84"]
    summary = cfg.get("summary") or {}
    return PipelineConfig(
        source=_source_config(cfg["source"]),
        store=_store_config(cfg["store"], env),
        envelope=GeoEnvelope(
            min_lat=float(envelope_cfg["min_lat"]),
            max_lat=float(envelope_cfg["max_lat"]),
            min_lon=float(envelope_cfg["min_lon"]),
            max_lon=float(envelope_cfg["max_lon"]),
        ),
        field_map=_field_map(cfg.get("fields")),
        critical_threshold=float(summary.get("critical_threshold", CRITICAL_CONDITION_SCORE)),
    )


def load_pipeline_config(
    config_path: Path,
    *,
    overlay_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    allow_unknown: bool = False,
) -> PipelineConfig:
    cfg = _load_yaml_with_overlay(config_path, overlay_path)
    return build_pipeline_config(cfg, environ=environ, allow_unknown=allow_unknown)


def require_store_credentials(config: PipelineConfig) -> None:
    if not config.store.has_credentials:
        raise ConfigError(f"Missing {STORE_URL_ENV} or {STORE_KEY_ENV} environment variables")
