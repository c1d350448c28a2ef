"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from bridge_etl.common.constants import STRATEGIES
from bridge_etl.common.errors import ConfigError


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive(value, ctx: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive number, got {value!r}")


def _assert_non_negative(value, ctx: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"{ctx} must be a non-negative number, got {value!r}")


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"source", "validation", "store"}
    top_known = top_required | {"fields", "summary"}
    _assert_required_keys(cfg, top_required, "pipeline config")
    _assert_no_unknown_keys(cfg, top_known, "pipeline config", allow_unknown)

    source = cfg["source"]
    _assert_required_keys(source, {"endpoint", "type_name", "strategy"}, "source")
    _assert_no_unknown_keys(
        source,
        {
            "endpoint",
            "type_name",
            "alternate_type_name",
            "output_format",
            "strategy",
            "request_delay_seconds",
            "retry_delay_seconds",
            "timeout_seconds",
            "pagination",
            "tiles",
        },
        "source",
        allow_unknown,
    )
    if source["strategy"] not in STRATEGIES:
        raise ConfigError(f"source.strategy must be one of {', '.join(STRATEGIES)}")
    for key in ("request_delay_seconds", "retry_delay_seconds"):
        if key in source:
            _assert_non_negative(source[key], f"source.{key}")

    pagination = source.get("pagination") or {}
    for key in ("page_size", "max_empty_pages"):
        if key in pagination:
            _assert_positive(pagination[key], f"source.pagination.{key}")

    tiles = source.get("tiles") or {}
    if "bbox" in tiles:
        bbox = tiles["bbox"]
        if not isinstance(bbox, list) or len(bbox) != 4:
            raise ConfigError("source.tiles.bbox must be [min_easting, min_northing, max_easting, max_northing]")
        if bbox[0] >= bbox[2] or bbox[1] >= bbox[3]:
            raise ConfigError("source.tiles.bbox minimums must be below maximums")
    for key in ("tile_size_m", "max_features_per_tile"):
        if key in tiles:
            _assert_positive(tiles[key], f"source.tiles.{key}")

    _assert_required_keys(cfg["validation"], {"envelope_wgs84"}, "validation")
    envelope = cfg["validation"]["envelope_wgs84"]
    _assert_required_keys(envelope, {"min_lat", "max_lat", "min_lon", "max_lon"}, "validation.envelope_wgs84")
    if envelope["min_lat"] >= envelope["max_lat"] or envelope["min_lon"] >= envelope["max_lon"]:
        raise ConfigError("validation.envelope_wgs84 minimums must be below maximums")

    store = cfg["store"]
    _assert_required_keys(store, {"table", "conflict_column", "refresh_rpc", "stats_rpc"}, "store")
    if "batch_size" in store:
        _assert_positive(store["batch_size"], "store.batch_size")

    fields = cfg.get("fields") or {}
    if not isinstance(fields, dict):
        raise ConfigError("fields must be a mapping of target field to candidate list")
    for name, candidates in fields.items():
        if not isinstance(candidates, list) or not candidates:
            raise ConfigError(f"fields.{name} must be a non-empty list")

    return cfg
