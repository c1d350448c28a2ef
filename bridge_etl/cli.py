"""CLI entrypoint for the bridge inventory ingestion pipeline."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Mapping

from bridge_etl.common.config_loader import PipelineConfig, load_pipeline_config, require_store_credentials
from bridge_etl.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, STRATEGIES
from bridge_etl.common.errors import PipelineError
from bridge_etl.common.logging import LOG_FORMATS, build_logger, log_event
from bridge_etl.common.time_utils import generate_run_id
from bridge_etl.harvest.wfs_source import build_feature_source, build_source_client
from bridge_etl.pipeline.load import Loader, LoadResult
from bridge_etl.pipeline.orchestrator import PipelineRun
from bridge_etl.pipeline.reports import write_run_summary
from bridge_etl.pipeline.store import SupabaseStore, build_store_client


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", nargs="?", default="run", choices=COMMANDS)
    parser.add_argument("--config", default="./config/pipeline.yml")
    parser.add_argument("--overlay-config", default=None)
    parser.add_argument("--strategy", default=None, choices=STRATEGIES)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-format", default="text", choices=LOG_FORMATS)
    parser.add_argument("--log-file", default=None)
    parser.add_argument("--summary-path", default=None)
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def run_etl(args: argparse.Namespace, config: PipelineConfig, logger: logging.Logger, run_id: str) -> int:
    log_event(logger, f"target store: {config.store.url or '<unset>'}", run_id=run_id, stage="setup", event="SETUP")
    with build_source_client(config.source) as source_client, build_store_client(config.store) as store_client:
        source = build_feature_source(config.source, source_client, logger)
        loader = Loader(
            SupabaseStore(config.store, store_client),
            batch_size=config.store.batch_size,
            logger=logger,
            run_id=run_id,
        )
        pipeline = PipelineRun(config, source, loader, logger, run_id)
        try:
            summary = pipeline.run()
        finally:
            if args.summary_path:
                write_run_summary(Path(args.summary_path), pipeline.summary)

    if args.strict and summary.has_failures:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def run_refresh(config: PipelineConfig, logger: logging.Logger) -> int:
    require_store_credentials(config)
    with build_store_client(config.store) as store_client:
        loader = Loader(SupabaseStore(config.store, store_client), logger=logger)
        result = LoadResult()
        loader.refresh(result)
    return EXIT_SUCCESS if result.refreshed else EXIT_HARD_FAIL


def run_stats(config: PipelineConfig, logger: logging.Logger, run_id: str) -> int:
    require_store_credentials(config)
    with build_store_client(config.store) as store_client:
        stats = SupabaseStore(config.store, store_client).global_stats()
    log_event(
        logger,
        f"mean condition score: {stats.mean_condition_score}, mean year built: {stats.mean_year_built}",
        run_id=run_id,
        stage="stats",
        event="GLOBAL_STATS",
        status="ok",
    )
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace, environ: Mapping[str, str] | None = None) -> int:
    run_id = args.run_id or generate_run_id()
    logger = build_logger(
        run_id,
        level=args.log_level,
        log_format=args.log_format,
        log_path=Path(args.log_file) if args.log_file else None,
    )
    try:
        config = load_pipeline_config(
            Path(args.config),
            overlay_path=Path(args.overlay_config) if args.overlay_config else None,
            environ=os.environ if environ is None else environ,
        ).with_strategy(args.strategy)

        if args.command == "refresh":
            return run_refresh(config, logger)
        if args.command == "stats":
            return run_stats(config, logger, run_id)
        return run_etl(args, config, logger, run_id)
    except PipelineError as exc:
        log_event(
            logger,
            f"{args.command} failed: {exc}",
            level=logging.ERROR,
            run_id=run_id,
            stage=args.command,
            event="RUN_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        return run_command(args)
    except Exception:
        logging.getLogger("bridge_etl").exception("unexpected failure")
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
