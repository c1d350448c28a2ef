"""Destination store: Supabase table reached through its PostgREST API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from bridge_etl.common.config_loader import StoreConfig
from bridge_etl.common.errors import StoreError
from bridge_etl.common.http import HttpClient, HttpRequestError, RetryConfig, TimeoutConfig


@dataclass(frozen=True)
class GlobalStats:
    mean_condition_score: float | None
    mean_year_built: float | None


class DestinationStore(Protocol):
    def upsert_rows(self, rows: Sequence[dict[str, Any]]) -> None: ...

    def refresh_aggregates(self) -> None: ...

    def global_stats(self) -> GlobalStats: ...


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def build_store_client(config: StoreConfig) -> HttpClient:
    """No automatic retries: a failed batch is reported, not replayed."""
    return HttpClient(
        timeout=TimeoutConfig(connect=20.0, read=120.0),
        retry=RetryConfig(max_attempts=1),
        headers={
            "apikey": config.service_key,
            "Authorization": f"Bearer {config.service_key}",
        },
    )


class SupabaseStore:
    def __init__(self, config: StoreConfig, client: HttpClient) -> None:
        self.config = config
        self.client = client
        self.base_url = config.url.rstrip("/") + "/rest/v1"

    def _rpc(self, name: str) -> Any:
        try:
            return self.client.post_json(f"{self.base_url}/rpc/{name}", json_body={})
        except HttpRequestError as exc:
            raise StoreError(f"RPC {name} failed: {exc}") from exc

    def upsert_rows(self, rows: Sequence[dict[str, Any]]) -> None:
        if not rows:
            return
        try:
            self.client.post_json(
                f"{self.base_url}/{self.config.table}",
                params={"on_conflict": self.config.conflict_column},
                json_body=list(rows),
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            )
        except HttpRequestError as exc:
            raise StoreError(f"Upsert into {self.config.table} failed: {exc}") from exc

    def refresh_aggregates(self) -> None:
        self._rpc(self.config.refresh_rpc)

    def global_stats(self) -> GlobalStats:
        payload = self._rpc(self.config.stats_rpc)
        row = payload[0] if isinstance(payload, list) and payload else payload
        if not isinstance(row, dict):
            return GlobalStats(mean_condition_score=None, mean_year_built=None)
        return GlobalStats(
            mean_condition_score=_optional_float(row.get("avg_note")),
            mean_year_built=_optional_float(row.get("avg_baujahr")),
        )
