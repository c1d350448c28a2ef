"""UTM zone 32N to WGS84 conversion and geographic plausibility checks."""

from __future__ import annotations

import math
from dataclasses import dataclass

# WGS84 ellipsoid; GRS80 (ETRS89) differs below a millimetre at these scales.
SEMI_MAJOR_AXIS = 6378137.0
ECCENTRICITY = 0.0818191908
SCALE_FACTOR = 0.9996
FALSE_EASTING = 500000.0
CENTRAL_MERIDIAN_DEG = 9.0
DECIMALS = 6
# Zone 32N northern-hemisphere grid; anything outside is a corrupted geometry.
MAX_EASTING = 1_000_000.0
MAX_NORTHING = 10_000_000.0


@dataclass(frozen=True)
class GeoEnvelope:
    """Inclusive lat/lon box; the default covers Germany."""

    min_lat: float = 47.0
    max_lat: float = 55.5
    min_lon: float = 5.0
    max_lon: float = 15.5


def utm_to_wgs84(easting: float, northing: float) -> tuple[float, float]:
    """Inverse transverse Mercator, returns ``(lat, lon)`` in degrees.

    Closed-form series: footpoint latitude from the meridional arc, then
    latitude and longitude corrections from the curvature terms. Rounded to
    six decimals (about 0.1 m).
    """
    e2 = ECCENTRICITY * ECCENTRICITY
    ep2 = e2 / (1 - e2)

    x = easting - FALSE_EASTING
    y = northing

    arc = y / SCALE_FACTOR
    mu = arc / (SEMI_MAJOR_AXIS * (1 - e2 / 4 - 3 * e2 * e2 / 64 - 5 * e2 * e2 * e2 / 256))

    e1 = (1 - math.sqrt(1 - e2)) / (1 + math.sqrt(1 - e2))
    phi1 = (
        mu
        + (3 * e1 / 2 - 27 * e1**3 / 32) * math.sin(2 * mu)
        + (21 * e1**2 / 16 - 55 * e1**4 / 32) * math.sin(4 * mu)
        + (151 * e1**3 / 96) * math.sin(6 * mu)
        + (1097 * e1**4 / 512) * math.sin(8 * mu)
    )

    sin_phi1 = math.sin(phi1)
    cos_phi1 = math.cos(phi1)
    tan_phi1 = math.tan(phi1)

    n1 = SEMI_MAJOR_AXIS / math.sqrt(1 - e2 * sin_phi1 * sin_phi1)
    t1 = tan_phi1 * tan_phi1
    c1 = ep2 * cos_phi1 * cos_phi1
    r1 = SEMI_MAJOR_AXIS * (1 - e2) / math.pow(1 - e2 * sin_phi1 * sin_phi1, 1.5)
    d = x / (n1 * SCALE_FACTOR)

    lat = phi1 - (n1 * tan_phi1 / r1) * (
        d**2 / 2
        - (5 + 3 * t1 + 10 * c1 - 4 * c1 * c1 - 9 * ep2) * d**4 / 24
        + (61 + 90 * t1 + 298 * c1 + 45 * t1 * t1 - 252 * ep2 - 3 * c1 * c1) * d**6 / 720
    )
    lon = (
        d
        - (1 + 2 * t1 + c1) * d**3 / 6
        + (5 - 2 * c1 + 28 * t1 - 3 * c1 * c1 + 8 * ep2 + 24 * t1 * t1) * d**5 / 120
    ) / cos_phi1

    lat_deg = math.degrees(lat)
    lon_deg = math.degrees(lon) + CENTRAL_MERIDIAN_DEG
    return round(lat_deg, DECIMALS), round(lon_deg, DECIMALS)


def within_projected_band(easting: float, northing: float) -> bool:
    if not (math.isfinite(easting) and math.isfinite(northing)):
        return False
    return 0.0 < easting < MAX_EASTING and 0.0 <= northing < MAX_NORTHING


def within_envelope(lat: float | None, lon: float | None, envelope: GeoEnvelope) -> bool:
    if lat is None or lon is None:
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return envelope.min_lat <= lat <= envelope.max_lat and envelope.min_lon <= lon <= envelope.max_lon


def to_plausible_wgs84(easting: float, northing: float, envelope: GeoEnvelope) -> tuple[float, float] | None:
    """Convert and filter in one step; ``None`` means the point is implausible."""
    try:
        lat, lon = utm_to_wgs84(easting, northing)
    except (OverflowError, ValueError):
        return None
    if not within_envelope(lat, lon, envelope):
        return None
    return lat, lon
