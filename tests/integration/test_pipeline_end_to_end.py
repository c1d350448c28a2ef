from __future__ import annotations

import logging

import pytest

from bridge_etl.common.config_loader import PipelineConfig, SourceConfig, StoreConfig
from bridge_etl.common.errors import ConfigError, EmptySourceError, StoreError
from bridge_etl.harvest.wfs_source import PagedFeatureSource
from bridge_etl.pipeline.load import Loader
from bridge_etl.pipeline.normalise import DEFAULT_FIELD_CANDIDATES
from bridge_etl.pipeline.orchestrator import PipelineRun, RunState


def _feature(bwnr: str, score: float | None, northing: float = 5540000.0, region: str = "Kassel") -> dict:
    return {
        "type": "Feature",
        "id": f"bast_tbl.{bwnr}",
        "geometry": {"type": "Point", "coordinates": [520000.0, northing]},
        "properties": {"bwnr": bwnr, "zn92019": score, "state": region, "bl": 6},
    }


class PagedClient:
    def __init__(self, pages: list[dict]):
        self.pages = list(pages)
        self.calls: list[dict] = []

    def get_json(self, url: str, **kwargs):
        self.calls.append(dict(kwargs.get("params") or {}))
        if not self.pages:
            return {"features": []}
        return self.pages.pop(0)

    def close(self):
        return None


class FakeStore:
    def __init__(self, fail_refresh: bool = False):
        self.rows: dict[str, dict] = {}
        self.upserts = 0
        self.refreshes = 0
        self.fail_refresh = fail_refresh

    def upsert_rows(self, rows):
        self.upserts += 1
        for row in rows:
            self.rows[row["bauwerksnummer"]] = row

    def refresh_aggregates(self):
        if self.fail_refresh:
            raise StoreError("rpc missing")
        self.refreshes += 1


def _config(url: str = "https://project.supabase.co", key: str = "secret") -> PipelineConfig:
    return PipelineConfig(
        source=SourceConfig(
            endpoint="https://example.test/ows",
            type_name="bast-br:bast_tbl",
            page_size=2,
            request_delay_seconds=0.0,
            retry_delay_seconds=0.0,
        ),
        store=StoreConfig(url=url, service_key=key, batch_size=2),
        field_map=dict(DEFAULT_FIELD_CANDIDATES),
    )


def _pipeline(config: PipelineConfig, client: PagedClient, store: FakeStore) -> PipelineRun:
    logger = logging.getLogger("bridge_etl.test")
    source = PagedFeatureSource(config.source, client, logger)
    loader = Loader(store, batch_size=config.store.batch_size, logger=logger)
    return PipelineRun(config, source, loader, logger, run_id="etl-test")


@pytest.mark.integration
def test_two_pages_with_duplicate_id_keep_page_two_values():
    client = PagedClient(
        [
            {"features": [_feature("A", 2.0), _feature("B", 3.2)], "totalFeatures": 4},
            {"features": [_feature("C", None), _feature("A", 3.7)], "totalFeatures": 4},
        ]
    )
    store = FakeStore()
    pipeline = _pipeline(_config(), client, store)

    summary = pipeline.run()

    assert len(pipeline.dedupe) == 3
    assert pipeline.dedupe.get("A").condition_score == 3.7
    assert store.rows["A"]["zustandsnote"] == 3.7
    assert sorted(store.rows) == ["A", "B", "C"]
    assert summary.fetched == 4
    assert summary.unique == 3
    assert summary.units == 2
    assert summary.loaded == 3
    assert summary.failed_batches == 0
    assert summary.with_condition_score == 2
    assert summary.critical == 2
    assert summary.critical_percent == 100
    assert summary.regions == 1
    assert summary.subdivisions == 1
    assert summary.refreshed is True
    assert pipeline.state is RunState.DONE
    assert summary.state == "DONE"
    assert len(client.calls) == 2


@pytest.mark.integration
def test_rejected_features_are_counted_not_loaded():
    client = PagedClient(
        [
            {
                "features": [
                    _feature("A", 2.0),
                    _feature("", 2.0),
                    _feature("Z", 2.0, northing=100000.0),
                ],
                "totalFeatures": 3,
            }
        ]
    )
    store = FakeStore()

    summary = _pipeline(_config(), client, store).run()

    assert summary.fetched == 3
    assert summary.rejected == 2
    assert summary.rejected_by_reason == {"missing_id": 1, "out_of_envelope": 1}
    assert list(store.rows) == ["A"]


@pytest.mark.integration
def test_empty_source_never_touches_store():
    client = PagedClient([])
    store = FakeStore()
    pipeline = _pipeline(_config(), client, store)

    with pytest.raises(EmptySourceError):
        pipeline.run()

    assert store.upserts == 0
    assert store.refreshes == 0
    assert pipeline.state is RunState.DRAINED
    assert len(client.calls) == 3


@pytest.mark.integration
def test_missing_credentials_fail_before_fetching():
    client = PagedClient([{"features": [_feature("A", 2.0)]}])
    store = FakeStore()
    pipeline = _pipeline(_config(url=""), client, store)

    with pytest.raises(ConfigError):
        pipeline.run()

    assert pipeline.state is RunState.ERROR
    assert client.calls == []


@pytest.mark.integration
def test_refresh_failure_does_not_fail_run():
    client = PagedClient([{"features": [_feature("A", 2.0)], "totalFeatures": 1}])
    store = FakeStore(fail_refresh=True)

    summary = _pipeline(_config(), client, store).run()

    assert summary.loaded == 1
    assert summary.refreshed is False
    assert summary.refresh_error == "rpc missing"
    assert summary.state == "DONE"


@pytest.mark.integration
def test_corrupted_geometry_is_rejected_and_run_still_loads():
    corrupt = _feature("B", 2.0)
    corrupt["geometry"]["coordinates"] = ["1e60", 5540000.0]
    client = PagedClient([{"features": [_feature("A", 2.0), corrupt], "totalFeatures": 2}])
    store = FakeStore()

    summary = _pipeline(_config(), client, store).run()

    assert summary.rejected_by_reason == {"bad_geometry": 1}
    assert summary.loaded == 1
    assert list(store.rows) == ["A"]
    assert summary.state == "DONE"
