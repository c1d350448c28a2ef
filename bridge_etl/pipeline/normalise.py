"""Map raw WFS features onto canonical bridge records."""

from __future__ import annotations

import math
from typing import Any, Mapping

from bridge_etl.common.constants import SUBDIVISION_BY_CODE, UNKNOWN_NAME
from bridge_etl.common.models import NUMERIC_COLUMN_PRECISION, CanonicalRecord, RawFeature
from bridge_etl.pipeline.coordinates import GeoEnvelope, to_plausible_wgs84, within_projected_band

# Ordered source attribute names per target field; the first non-empty wins.
# `capacityindex` is usually a roman numeral and then coerces to absent.
DEFAULT_FIELD_CANDIDATES: dict[str, tuple[str, ...]] = {
    "asset_id": ("bwnr", "bauwerksnummer", "BWNR"),
    "name": ("buildingname", "bauwerksname", "name"),
    "condition_score": ("zn92019", "zustandsnote", "zn"),
    "condition_class": ("scoreclass", "zustandsklasse"),
    "year_built": ("yearbuild", "baujahr"),
    "road_name": ("issue", "strasse"),
    "locality": ("place", "ort"),
    "region": ("state", "landkreis", "kreis"),
    "subdivision_code": ("bl", "bundesland"),
    "material_class": ("materialclass", "baustoffklasse"),
    "load_capacity_index": ("traglastindex", "capacityindex"),
    "length_m": ("length", "laenge"),
    "width_m": ("width", "breite"),
    "last_updated": ("updated", "stand"),
}

REJECT_MISSING_ID = "missing_id"
REJECT_BAD_GEOMETRY = "bad_geometry"
REJECT_OUT_OF_ENVELOPE = "out_of_envelope"


def lookup_first(properties: Mapping[str, Any], candidates: tuple[str, ...] | list[str]) -> Any:
    for key in candidates:
        value = properties.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def coerce_text(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            value = int(value)
    text = str(value).strip()
    return text or None


def coerce_identifier(value: Any) -> str | None:
    # Integral floats render without the trailing ".0".
    return coerce_text(value)


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def coerce_positive_float(value: Any) -> float | None:
    number = _to_float(value)
    if number is None or number <= 0:
        return None
    return number


def fits_numeric_column(number: float, precision: int, scale: int) -> bool:
    return abs(round(number, scale)) < 10 ** (precision - scale)


def coerce_column_float(value: Any, field_name: str) -> float | None:
    """Positive float that the destination column can hold, else ``None``."""
    number = coerce_positive_float(value)
    if number is None:
        return None
    precision = NUMERIC_COLUMN_PRECISION.get(field_name)
    if precision is not None and not fits_numeric_column(number, *precision):
        return None
    return number


def coerce_positive_int(value: Any) -> int | None:
    number = coerce_positive_float(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def subdivision_name(value: Any) -> str | None:
    if isinstance(value, str) and value.strip() in SUBDIVISION_BY_CODE.values():
        return value.strip()
    code = coerce_positive_int(value)
    if code is None:
        return None
    return SUBDIVISION_BY_CODE.get(code)


def point_coordinates(geometry: Mapping[str, Any] | None) -> tuple[float, float] | None:
    """Easting/northing of a point geometry, or ``None`` when unusable."""
    if not geometry:
        return None
    geometry_type = geometry.get("type")
    if geometry_type not in (None, "Point"):
        return None
    coords = geometry.get("coordinates")
    if not isinstance(coords, (list, tuple)) or len(coords) < 2:
        return None
    easting = _to_float(coords[0])
    northing = _to_float(coords[1])
    if easting is None or northing is None:
        return None
    if not within_projected_band(easting, northing):
        return None
    return easting, northing


def classify_feature(
    feature: RawFeature,
    field_map: Mapping[str, tuple[str, ...]] | None = None,
    envelope: GeoEnvelope | None = None,
) -> tuple[CanonicalRecord | None, str | None]:
    """Return ``(record, None)`` or ``(None, reject_reason)``."""
    fields = field_map or DEFAULT_FIELD_CANDIDATES
    bounds = envelope or GeoEnvelope()
    props = feature.properties or {}

    asset_id = coerce_identifier(lookup_first(props, fields["asset_id"]))
    if asset_id is None:
        return None, REJECT_MISSING_ID

    point = point_coordinates(feature.geometry)
    if point is None:
        return None, REJECT_BAD_GEOMETRY

    position = to_plausible_wgs84(point[0], point[1], bounds)
    if position is None:
        return None, REJECT_OUT_OF_ENVELOPE
    lat, lon = position

    def text(name: str) -> str | None:
        return coerce_text(lookup_first(props, fields[name]))

    def number(name: str) -> float | None:
        return coerce_column_float(lookup_first(props, fields[name]), name)

    record = CanonicalRecord(
        asset_id=asset_id,
        name=text("name") or UNKNOWN_NAME,
        latitude=lat,
        longitude=lon,
        condition_score=number("condition_score"),
        condition_class=text("condition_class"),
        year_built=coerce_positive_int(lookup_first(props, fields["year_built"])),
        road_name=text("road_name"),
        locality=text("locality"),
        region=text("region"),
        country_subdivision=subdivision_name(lookup_first(props, fields["subdivision_code"])),
        material_class=text("material_class"),
        load_capacity_index=number("load_capacity_index"),
        length_m=number("length_m"),
        width_m=number("width_m"),
        last_updated=text("last_updated"),
    )
    return record, None


def normalize_feature(
    feature: RawFeature,
    field_map: Mapping[str, tuple[str, ...]] | None = None,
    envelope: GeoEnvelope | None = None,
) -> CanonicalRecord | None:
    record, _reason = classify_feature(feature, field_map, envelope)
    return record
