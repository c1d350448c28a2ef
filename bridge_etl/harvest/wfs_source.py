"""WFS feature retrieval: offset pagination and spatial tiling.

Both strategies expose the same ``fetch_next()`` contract. One call issues one
request unit (a page or a tile). Transient failures are retried once by the
HTTP client; a unit that still fails is logged, marked failed and skipped so
the run keeps moving forward.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from bridge_etl.common.config_loader import SourceConfig
from bridge_etl.common.errors import SourceDecodeError
from bridge_etl.common.http import HttpClient, HttpRequestError, RetryConfig, TimeoutConfig
from bridge_etl.common.logging import log_event
from bridge_etl.common.models import RawFeature

_module_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureCollection:
    features: list[RawFeature]
    total: int | None = None
    returned: int | None = None


@dataclass(frozen=True)
class SourceBatch:
    features: list[RawFeature] = field(default_factory=list)
    done: bool = False
    unit: str = ""
    failed: bool = False
    total: int | None = None


def _safe_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number >= 0 else None


def decode_feature_collection(payload: Any) -> FeatureCollection:
    if not isinstance(payload, dict):
        raise SourceDecodeError("Feature service response is not a JSON object")
    raw_features = payload.get("features")
    if raw_features is None:
        raw_features = []
    if not isinstance(raw_features, list):
        raise SourceDecodeError("Feature service response has a non-list 'features' member")

    features: list[RawFeature] = []
    for item in raw_features:
        if not isinstance(item, dict):
            continue
        feature_id = item.get("id")
        geometry = item.get("geometry")
        properties = item.get("properties")
        features.append(
            RawFeature(
                feature_id=str(feature_id) if feature_id is not None else None,
                geometry=geometry if isinstance(geometry, dict) else None,
                properties=dict(properties) if isinstance(properties, dict) else {},
            )
        )

    total = _safe_int(payload.get("totalFeatures"))
    if total is None:
        total = _safe_int(payload.get("numberMatched"))
    return FeatureCollection(
        features=features,
        total=total,
        returned=_safe_int(payload.get("numberReturned")),
    )


def build_source_client(config: SourceConfig) -> HttpClient:
    """HTTP client for the feature service: one retry on any HTTP failure."""
    return HttpClient(
        timeout=TimeoutConfig(connect=20.0, read=config.timeout_seconds),
        retry=RetryConfig(max_attempts=2, delay=config.retry_delay_seconds, retry_on=(HttpRequestError,)),
        request_interval=config.request_delay_seconds,
    )


class FeatureSource(ABC):
    """Sequence of feature batches; ``done`` on a batch means exhausted."""

    def __init__(self, config: SourceConfig, client: HttpClient, logger: logging.Logger | None = None) -> None:
        self.config = config
        self.client = client
        self.logger = logger or _module_logger
        self.units = 0
        self.failed_units = 0

    @abstractmethod
    def fetch_next(self) -> SourceBatch:
        """Fetch one unit."""

    @abstractmethod
    def progress(self) -> float | None:
        """Completed fraction between 0 and 1, when known."""

    def _base_params(self, type_name: str) -> dict[str, Any]:
        return {
            "service": "WFS",
            "version": "2.0.0",
            "request": "GetFeature",
            "typeName": type_name,
            "outputFormat": self.config.output_format,
        }

    def _query(self, params: dict[str, Any]) -> FeatureCollection:
        payload = self.client.get_json(self.config.endpoint, params=params)
        return decode_feature_collection(payload)

    def _log_failure(self, unit: str, exc: Exception) -> None:
        log_event(
            self.logger,
            f"{unit} failed, skipping: {exc}",
            level=logging.WARNING,
            stage="fetch",
            event="UNIT_FAIL",
            status="error",
            unit=unit,
            error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
        )


class PagedFeatureSource(FeatureSource):
    """Offset pagination with a stable sort key."""

    def __init__(self, config: SourceConfig, client: HttpClient, logger: logging.Logger | None = None) -> None:
        super().__init__(config, client, logger)
        self.start_index = 0
        self.total: int | None = None
        self.empty_streak = 0
        self.exhausted = False

    def progress(self) -> float | None:
        if not self.total:
            return None
        return min(self.start_index / self.total, 1.0)

    def _reached_total(self) -> bool:
        return self.total is not None and self.start_index >= self.total

    def _skip_page(self) -> bool:
        self.start_index += self.config.page_size
        self.empty_streak += 1
        return self.empty_streak >= self.config.max_empty_pages or self._reached_total()

    def fetch_next(self) -> SourceBatch:
        if self.exhausted:
            return SourceBatch(done=True, unit="exhausted", total=self.total)

        self.units += 1
        unit = f"page {self.units} @ {self.start_index}"
        params = self._base_params(self.config.type_name)
        params.update(
            {
                "count": str(self.config.page_size),
                "startIndex": str(self.start_index),
                "sortBy": self.config.sort_by,
            }
        )

        try:
            collection = self._query(params)
        except (HttpRequestError, SourceDecodeError) as exc:
            self.failed_units += 1
            self._log_failure(unit, exc)
            self.exhausted = self._skip_page()
            return SourceBatch(done=self.exhausted, unit=unit, failed=True, total=self.total)

        if self.total is None and collection.total is not None:
            self.total = collection.total

        if not collection.features:
            self.exhausted = self._skip_page()
            return SourceBatch(done=self.exhausted, unit=unit, total=self.total)

        self.empty_streak = 0
        self.start_index += len(collection.features)
        self.exhausted = self._reached_total()
        return SourceBatch(
            features=collection.features,
            done=self.exhausted,
            unit=unit,
            total=self.total,
        )


def iter_tiles(
    bbox: tuple[float, float, float, float],
    tile_size: float,
) -> list[tuple[float, float, float, float]]:
    """Row-major grid of square tiles covering ``bbox``; edge tiles may overhang."""
    min_x, min_y, max_x, max_y = bbox
    columns = max(1, math.ceil((max_x - min_x) / tile_size))
    rows = max(1, math.ceil((max_y - min_y) / tile_size))
    tiles = []
    for row in range(rows):
        for column in range(columns):
            x0 = min_x + column * tile_size
            y0 = min_y + row * tile_size
            tiles.append((x0, y0, x0 + tile_size, y0 + tile_size))
    return tiles


class TiledFeatureSource(FeatureSource):
    """One bounding-box query per grid tile in projected coordinates."""

    def __init__(self, config: SourceConfig, client: HttpClient, logger: logging.Logger | None = None) -> None:
        super().__init__(config, client, logger)
        self.tiles = iter_tiles(config.tile_bbox, config.tile_size_m)
        self.cursor = 0

    def progress(self) -> float | None:
        return self.cursor / len(self.tiles)

    def _tile_params(self, type_name: str, tile: tuple[float, float, float, float]) -> dict[str, Any]:
        params = self._base_params(type_name)
        min_x, min_y, max_x, max_y = tile
        params.update(
            {
                "bbox": f"{min_x:.0f},{min_y:.0f},{max_x:.0f},{max_y:.0f},{self.config.srs_name}",
                "count": str(self.config.max_features_per_tile),
            }
        )
        return params

    def _query_tile(self, tile: tuple[float, float, float, float]) -> FeatureCollection:
        try:
            return self._query(self._tile_params(self.config.type_name, tile))
        except HttpRequestError:
            if not self.config.alternate_type_name:
                raise
        # Some deployments publish the layer without its workspace prefix.
        return self._query(self._tile_params(self.config.alternate_type_name, tile))

    def fetch_next(self) -> SourceBatch:
        if self.cursor >= len(self.tiles):
            return SourceBatch(done=True, unit="exhausted")

        tile = self.tiles[self.cursor]
        self.cursor += 1
        self.units += 1
        unit = f"tile {self.cursor}/{len(self.tiles)}"
        done = self.cursor >= len(self.tiles)

        try:
            collection = self._query_tile(tile)
        except (HttpRequestError, SourceDecodeError) as exc:
            self.failed_units += 1
            self._log_failure(unit, exc)
            return SourceBatch(done=done, unit=unit, failed=True)

        if len(collection.features) >= self.config.max_features_per_tile:
            log_event(
                self.logger,
                f"{unit} hit the feature cap of {self.config.max_features_per_tile}; results may be truncated",
                level=logging.WARNING,
                stage="fetch",
                event="TILE_CAPPED",
                status="warning",
                unit=unit,
            )
        return SourceBatch(features=collection.features, done=done, unit=unit)


def build_feature_source(
    config: SourceConfig,
    client: HttpClient,
    logger: logging.Logger | None = None,
) -> FeatureSource:
    if config.strategy == "pagination":
        return PagedFeatureSource(config, client, logger)
    if config.strategy == "tiles":
        return TiledFeatureSource(config, client, logger)
    raise ValueError(f"Unsupported source strategy: {config.strategy}")
