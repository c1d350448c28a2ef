"""Batched idempotent upserts with per-batch failure isolation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, Sequence

from bridge_etl.common.constants import MANUAL_REFRESH_SQL
from bridge_etl.common.logging import log_event
from bridge_etl.common.models import CanonicalRecord
from bridge_etl.pipeline.store import DestinationStore

_module_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchFailure:
    index: int
    size: int
    error: str


@dataclass
class LoadResult:
    succeeded: int = 0
    succeeded_batches: int = 0
    failed_batches: list[BatchFailure] = field(default_factory=list)
    refreshed: bool = False
    refresh_error: str | None = None

    @property
    def batch_count(self) -> int:
        return self.succeeded_batches + len(self.failed_batches)


def chunked(values: Sequence[CanonicalRecord], size: int) -> Iterator[Sequence[CanonicalRecord]]:
    for i in range(0, len(values), size):
        yield values[i : i + size]


class Loader:
    def __init__(
        self,
        store: DestinationStore,
        batch_size: int = 500,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.store = store
        self.batch_size = batch_size
        self.logger = logger or _module_logger
        self.run_id = run_id

    def upsert(self, records: Sequence[CanonicalRecord], result: LoadResult) -> None:
        for index, batch in enumerate(chunked(records, self.batch_size), start=1):
            try:
                self.store.upsert_rows([record.to_row() for record in batch])
            except Exception as exc:
                result.failed_batches.append(BatchFailure(index=index, size=len(batch), error=str(exc)))
                log_event(
                    self.logger,
                    f"upsert batch {index} ({len(batch)} rows) failed: {exc}",
                    level=logging.ERROR,
                    run_id=self.run_id,
                    stage="load",
                    event="BATCH_FAIL",
                    status="error",
                    unit=f"batch {index}",
                    error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
                )
                continue
            result.succeeded += len(batch)
            result.succeeded_batches += 1
            log_event(
                self.logger,
                f"upserted batch {index} ({len(batch)} rows)",
                level=logging.DEBUG,
                run_id=self.run_id,
                stage="load",
                event="BATCH_OK",
                status="ok",
                unit=f"batch {index}",
            )

    def refresh(self, result: LoadResult) -> None:
        try:
            self.store.refresh_aggregates()
        except Exception as exc:
            result.refresh_error = str(exc)
            log_event(
                self.logger,
                f"could not refresh region aggregates: {exc}; run manually: {MANUAL_REFRESH_SQL}",
                level=logging.WARNING,
                run_id=self.run_id,
                stage="refresh",
                event="REFRESH_FAIL",
                status="warning",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )
            return
        result.refreshed = True
        log_event(
            self.logger,
            "region aggregates refreshed",
            run_id=self.run_id,
            stage="refresh",
            event="REFRESH_OK",
            status="ok",
        )

    def load(
        self,
        records: Sequence[CanonicalRecord],
        before_refresh: Callable[[LoadResult], None] | None = None,
    ) -> LoadResult:
        """Upsert every batch, then refresh the aggregates once.

        ``before_refresh`` sees the upsert outcome before the refresh starts.
        """
        result = LoadResult()
        self.upsert(records, result)
        if before_refresh is not None:
            before_refresh(result)
        self.refresh(result)
        return result
