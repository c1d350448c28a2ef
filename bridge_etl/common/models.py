"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

# Canonical field -> destination column in the `bruecken` table.
STORE_COLUMNS = {
    "asset_id": "bauwerksnummer",
    "name": "name",
    "condition_score": "zustandsnote",
    "condition_class": "zustandsklasse",
    "year_built": "baujahr",
    "road_name": "strasse",
    "locality": "ort",
    "region": "landkreis",
    "country_subdivision": "bundesland",
    "material_class": "baustoffklasse",
    "load_capacity_index": "traglastindex",
    "length_m": "laenge",
    "width_m": "breite",
    "latitude": "lat",
    "longitude": "lng",
    "last_updated": "stand",
}

# (precision, scale) of the NUMERIC destination columns; larger values fail the
# whole upsert batch.
NUMERIC_COLUMN_PRECISION = {
    "condition_score": (2, 1),
    "load_capacity_index": (4, 1),
    "length_m": (10, 2),
    "width_m": (10, 2),
}


@dataclass(frozen=True)
class RawFeature:
    """One observation as received from the feature service."""

    feature_id: str | None
    geometry: dict[str, Any] | None
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CanonicalRecord:
    asset_id: str
    name: str
    latitude: float
    longitude: float
    condition_score: float | None = None
    condition_class: str | None = None
    year_built: int | None = None
    road_name: str | None = None
    locality: str | None = None
    region: str | None = None
    country_subdivision: str | None = None
    material_class: str | None = None
    load_capacity_index: float | None = None
    length_m: float | None = None
    width_m: float | None = None
    last_updated: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_row(self) -> dict[str, Any]:
        """Row keyed by destination column names."""
        values = self.to_dict()
        return {column: values[name] for name, column in STORE_COLUMNS.items()}
