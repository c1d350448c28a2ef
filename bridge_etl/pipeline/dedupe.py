"""In-run deduplication keyed by asset identifier."""

from __future__ import annotations

from typing import Iterator

from bridge_etl.common.models import CanonicalRecord


class Deduplicator:
    """Last-write-wins working set; one record per asset_id.

    Insertion must stay on a single ordered path (the orchestrator loop) for
    last-write-wins to be deterministic.
    """

    def __init__(self) -> None:
        self._records: dict[str, CanonicalRecord] = {}
        self.inserted = 0
        self.overwrites = 0

    def insert(self, record: CanonicalRecord) -> None:
        if record.asset_id in self._records:
            self.overwrites += 1
        self._records[record.asset_id] = record
        self.inserted += 1

    def get(self, asset_id: str) -> CanonicalRecord | None:
        return self._records.get(asset_id)

    def records(self) -> list[CanonicalRecord]:
        return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[CanonicalRecord]:
        return iter(self._records.values())

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._records
