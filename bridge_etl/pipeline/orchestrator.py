"""Pipeline orchestration: fetch, normalise, deduplicate, load, refresh."""

from __future__ import annotations

import logging
from collections import Counter
from enum import Enum

from bridge_etl.common.config_loader import PipelineConfig, require_store_credentials
from bridge_etl.common.errors import ConfigError, EmptySourceError
from bridge_etl.common.logging import log_event
from bridge_etl.harvest.wfs_source import FeatureSource, SourceBatch
from bridge_etl.pipeline.dedupe import Deduplicator
from bridge_etl.pipeline.load import Loader, LoadResult
from bridge_etl.pipeline.normalise import classify_feature
from bridge_etl.pipeline.reports import RunSummary, apply_record_stats, format_summary


class RunState(str, Enum):
    FETCHING = "FETCHING"
    DRAINED = "DRAINED"
    LOADING = "LOADING"
    REFRESHING = "REFRESHING"
    DONE = "DONE"
    ERROR = "ERROR"


class PipelineRun:
    def __init__(
        self,
        config: PipelineConfig,
        source: FeatureSource,
        loader: Loader,
        logger: logging.Logger,
        run_id: str,
    ) -> None:
        self.config = config
        self.source = source
        self.loader = loader
        self.logger = logger
        self.run_id = run_id
        self.dedupe = Deduplicator()
        self.rejections: Counter[str] = Counter()
        self.summary = RunSummary(run_id=run_id, strategy=config.source.strategy)
        self.state = RunState.FETCHING

    def _enter(self, state: RunState) -> None:
        self.state = state
        self.summary.state = state.value

    def _ingest(self, batch: SourceBatch) -> None:
        for feature in batch.features:
            self.summary.fetched += 1
            record, reason = classify_feature(feature, self.config.field_map, self.config.envelope)
            if record is None:
                self.rejections[reason] += 1
                continue
            self.dedupe.insert(record)

        self.summary.units += 1
        if batch.failed:
            self.summary.failed_units += 1
        self.summary.rejected = sum(self.rejections.values())
        self.summary.unique = len(self.dedupe)

        progress = self.source.progress()
        pct = f"{round(progress * 100)}%" if progress is not None else "?"
        log_event(
            self.logger,
            f"{batch.unit} | {len(batch.features)} features | {pct}",
            run_id=self.run_id,
            stage="fetch",
            event="UNIT_DONE",
            status="error" if batch.failed else "ok",
            unit=batch.unit,
            fetched=self.summary.fetched,
            rejected=self.summary.rejected,
            unique=self.summary.unique,
        )

    def fetch(self) -> None:
        self._enter(RunState.FETCHING)
        log_event(
            self.logger,
            f"fetching bridges from {self.config.source.endpoint} ({self.config.source.strategy})",
            run_id=self.run_id,
            stage="fetch",
            event="STAGE_START",
            status="ok",
        )
        while True:
            batch = self.source.fetch_next()
            self._ingest(batch)
            if batch.done:
                break
        self.summary.rejected_by_reason = dict(sorted(self.rejections.items()))
        self._enter(RunState.DRAINED)

    def _upserted(self, result: LoadResult) -> None:
        self.summary.loaded = result.succeeded
        self.summary.failed_batches = len(result.failed_batches)
        self._enter(RunState.REFRESHING)

    def run(self) -> RunSummary:
        try:
            require_store_credentials(self.config)
        except ConfigError:
            self._enter(RunState.ERROR)
            raise

        self.fetch()
        records = self.dedupe.records()
        apply_record_stats(self.summary, records, self.config.critical_threshold)
        log_event(
            self.logger,
            f"fetched {self.summary.fetched} features, {self.summary.unique} unique bridges after dedup",
            run_id=self.run_id,
            stage="fetch",
            event="STAGE_END",
            status="ok",
            fetched=self.summary.fetched,
            rejected=self.summary.rejected,
            unique=self.summary.unique,
        )
        if not records:
            raise EmptySourceError("No bridges fetched; refusing to touch the destination store")

        self._enter(RunState.LOADING)
        result = self.loader.load(records, before_refresh=self._upserted)
        self.summary.refreshed = result.refreshed
        self.summary.refresh_error = result.refresh_error

        self._enter(RunState.DONE)
        for line in format_summary(self.summary, self.config.critical_threshold):
            log_event(self.logger, line, run_id=self.run_id, stage="summary", event="SUMMARY", status="ok")
        return self.summary
