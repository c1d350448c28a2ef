from bridge_etl.common.models import RawFeature
from bridge_etl.pipeline import coordinates
from bridge_etl.pipeline.normalise import (
    REJECT_BAD_GEOMETRY,
    REJECT_MISSING_ID,
    REJECT_OUT_OF_ENVELOPE,
    classify_feature,
    coerce_column_float,
    coerce_positive_float,
    coerce_positive_int,
    coerce_text,
    lookup_first,
    normalize_feature,
    subdivision_name,
)

POINT = {"type": "Point", "coordinates": [500000.0, 5540000.0]}


def _feature(properties, geometry=POINT):
    return RawFeature(feature_id="bast_tbl.1", geometry=geometry, properties=properties)


def test_normalize_maps_bast_attributes():
    record = normalize_feature(
        _feature(
            {
                "bwnr": " 5823512 ",
                "buildingname": "Talbrücke Rahmede ",
                "zn92019": "3.5",
                "scoreclass": "ungenügend",
                "yearbuild": 1968,
                "issue": "A 45",
                "place": "Lüdenscheid",
                "state": "Märkischer Kreis",
                "bl": 5,
                "materialclass": "Spannbeton",
                "capacityindex": "II",
                "length": "453.0",
                "width": 30.5,
                "updated": "2021-12-02",
            }
        )
    )

    assert record is not None
    assert record.asset_id == "5823512"
    assert record.name == "Talbrücke Rahmede"
    assert record.condition_score == 3.5
    assert record.condition_class == "ungenügend"
    assert record.year_built == 1968
    assert record.road_name == "A 45"
    assert record.locality == "Lüdenscheid"
    assert record.region == "Märkischer Kreis"
    assert record.country_subdivision == "Nordrhein-Westfalen"
    assert record.material_class == "Spannbeton"
    assert record.load_capacity_index is None
    assert record.length_m == 453.0
    assert record.width_m == 30.5
    assert record.last_updated == "2021-12-02"
    assert 49.9 < record.latitude < 50.1
    assert record.longitude == 9.0


def test_missing_name_uses_sentinel_and_absent_fields_stay_none():
    record = normalize_feature(_feature({"bwnr": "1"}))
    assert record.name == "Unbekannt"
    assert record.condition_score is None
    assert record.region is None
    assert record.country_subdivision is None


def test_rejects_missing_or_blank_identifier():
    assert classify_feature(_feature({"buildingname": "x"})) == (None, REJECT_MISSING_ID)
    assert classify_feature(_feature({"bwnr": "   "})) == (None, REJECT_MISSING_ID)


def test_rejects_missing_or_malformed_geometry():
    assert classify_feature(_feature({"bwnr": "1"}, geometry=None)) == (None, REJECT_BAD_GEOMETRY)
    bad = {"type": "Point", "coordinates": ["east", 5540000.0]}
    assert classify_feature(_feature({"bwnr": "1"}, geometry=bad)) == (None, REJECT_BAD_GEOMETRY)
    short = {"type": "Point", "coordinates": [500000.0]}
    assert classify_feature(_feature({"bwnr": "1"}, geometry=short)) == (None, REJECT_BAD_GEOMETRY)
    line = {"type": "LineString", "coordinates": [[1, 2], [3, 4]]}
    assert classify_feature(_feature({"bwnr": "1"}, geometry=line)) == (None, REJECT_BAD_GEOMETRY)


def test_rejects_points_outside_envelope():
    far = {"type": "Point", "coordinates": [500000.0, 100000.0]}
    assert classify_feature(_feature({"bwnr": "1"}, geometry=far)) == (None, REJECT_OUT_OF_ENVELOPE)


def test_envelope_boundary_through_normaliser(monkeypatch):
    monkeypatch.setattr(coordinates, "utm_to_wgs84", lambda _e, _n: (46.999999, 9.0))
    assert normalize_feature(_feature({"bwnr": "1"})) is None

    monkeypatch.setattr(coordinates, "utm_to_wgs84", lambda _e, _n: (47.000001, 9.0))
    record = normalize_feature(_feature({"bwnr": "1"}))
    assert record is not None
    assert record.latitude == 47.000001


def test_candidate_precedence_skips_empty_values():
    props = {"bwnr": "", "bauwerksnummer": "123", "zn92019": None, "zustandsnote": "2,4"}
    record = normalize_feature(_feature(props))
    assert record.asset_id == "123"
    assert record.condition_score == 2.4


def test_custom_field_map():
    field_map = {
        "asset_id": ("ID",),
        "name": ("NAME",),
        "condition_score": ("NOTE",),
        "condition_class": (),
        "year_built": (),
        "road_name": (),
        "locality": (),
        "region": (),
        "subdivision_code": (),
        "material_class": (),
        "load_capacity_index": (),
        "length_m": (),
        "width_m": (),
        "last_updated": (),
    }
    record = normalize_feature(_feature({"ID": 42, "NAME": "B1", "NOTE": 1.9, "bwnr": "ignored"}), field_map)
    assert record.asset_id == "42"
    assert record.name == "B1"
    assert record.condition_score == 1.9


def test_coercions_are_total():
    assert coerce_text(None) is None
    assert coerce_text("  ") is None
    assert coerce_text(True) is None
    assert coerce_text(4711.0) == "4711"
    assert coerce_text(float("nan")) is None

    assert coerce_positive_float("0") is None
    assert coerce_positive_float(-1.5) is None
    assert coerce_positive_float("abc") is None
    assert coerce_positive_float(float("inf")) is None
    assert coerce_positive_float(False) is None
    assert coerce_positive_float([1]) is None
    assert coerce_positive_float("2.5") == 2.5

    assert coerce_positive_int("1975") == 1975
    assert coerce_positive_int(1975.0) == 1975
    assert coerce_positive_int(1975.5) is None
    assert coerce_positive_int(0) is None


def test_subdivision_lookup():
    assert subdivision_name(9) == "Bayern"
    assert subdivision_name("16") == "Thüringen"
    assert subdivision_name("Hessen") == "Hessen"
    assert subdivision_name(17) is None
    assert subdivision_name(0) is None
    assert subdivision_name(None) is None


def test_lookup_first_returns_none_when_nothing_matches():
    assert lookup_first({"a": None, "b": ""}, ["a", "b", "c"]) is None
    assert lookup_first({"a": 0}, ["a"]) == 0


def test_to_row_uses_store_column_names():
    record = normalize_feature(_feature({"bwnr": "7", "zn92019": 2.0, "state": "Kassel"}))
    row = record.to_row()
    assert row["bauwerksnummer"] == "7"
    assert row["zustandsnote"] == 2.0
    assert row["landkreis"] == "Kassel"
    assert set(row) >= {"lat", "lng", "name", "stand", "traglastindex"}


def test_corrupted_projected_coordinates_are_bad_geometry():
    huge = {"type": "Point", "coordinates": [1e60, 5540000.0]}
    assert classify_feature(_feature({"bwnr": "X"}, geometry=huge)) == (None, REJECT_BAD_GEOMETRY)
    as_text = {"type": "Point", "coordinates": ["1e60", "5540000"]}
    assert classify_feature(_feature({"bwnr": "X"}, geometry=as_text)) == (None, REJECT_BAD_GEOMETRY)
    negative = {"type": "Point", "coordinates": [-500000.0, 5540000.0]}
    assert classify_feature(_feature({"bwnr": "X"}, geometry=negative)) == (None, REJECT_BAD_GEOMETRY)


def test_values_too_wide_for_store_columns_become_absent():
    assert coerce_column_float("9.9", "condition_score") == 9.9
    assert coerce_column_float(9.96, "condition_score") is None
    assert coerce_column_float(12, "condition_score") is None
    assert coerce_column_float(999.9, "load_capacity_index") == 999.9
    assert coerce_column_float(1000, "load_capacity_index") is None
    assert coerce_column_float(123456.78, "length_m") == 123456.78

    record = normalize_feature(_feature({"bwnr": "1", "zn92019": 40, "traglastindex": 2500, "length": 80}))
    assert record.condition_score is None
    assert record.load_capacity_index is None
    assert record.length_m == 80.0
