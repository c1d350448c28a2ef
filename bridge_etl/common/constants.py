"""Application constants."""

USER_AGENT = "bridge-etl/0.3 (+batch ingest; contact: configured-email)"
STRATEGIES = ("pagination", "tiles")
COMMANDS = ("run", "refresh", "stats")
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
CRITICAL_CONDITION_SCORE = 3.0
UNKNOWN_NAME = "Unbekannt"
MANUAL_REFRESH_SQL = "REFRESH MATERIALIZED VIEW landkreis_stats;"
JSON_LOG_FIELDS = (
    "timestamp",
    "level",
    "run_id",
    "stage",
    "event",
    "status",
    "unit",
    "attempt",
    "fetched",
    "rejected",
    "unique",
    "error_code",
    "message",
)

# Bundesland code as published in the BASt layer's `bl` attribute.
SUBDIVISION_BY_CODE = {
    1: "Schleswig-Holstein",
    2: "Hamburg",
    3: "Niedersachsen",
    4: "Bremen",
    5: "Nordrhein-Westfalen",
    6: "Hessen",
    7: "Rheinland-Pfalz",
    8: "Baden-Württemberg",
    9: "Bayern",
    10: "Saarland",
    11: "Berlin",
    12: "Brandenburg",
    13: "Mecklenburg-Vorpommern",
    14: "Sachsen",
    15: "Sachsen-Anhalt",
    16: "Thüringen",
}
