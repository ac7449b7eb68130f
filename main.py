from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Callable, Optional

import aiohttp
import httpx
import typer

from core.config_loader import Settings, load_settings
from core.scheduler import Job, JobOutcome, MetricScheduler, jobs_from_config
from data_ingestion.api.fullnode_client import FullnodeClient
from data_ingestion.api.indexer_client import IndexerClient
from database.attribute_store import AttributeStore
from database.models.base import get_async_engine
from metrics.suite import MetricKind, MetricSuite
from utils.logger import setup_logger

app = typer.Typer(help="On-chain metrics engine: price, TVL, market cap, activity.")


def build_suite_factory(
    http_session: aiohttp.ClientSession,
    gql_session: httpx.AsyncClient,
    settings: Settings,
    store: AttributeStore,
) -> Callable[[], MetricSuite]:
    """Return a factory building a MetricSuite with fresh clients on shared sessions."""

    def _factory() -> MetricSuite:
        return MetricSuite(
            FullnodeClient.from_settings(http_session, settings),
            IndexerClient.from_settings(gql_session, settings),
            store,
        )

    return _factory


def _outcome_payload(outcome: JobOutcome) -> dict:
    return {
        "job": outcome.job.name,
        "ok": outcome.ok,
        "attributes": outcome.attributes,
        "error": outcome.error,
        "started_at": outcome.started_at.isoformat(),
        "finished_at": outcome.finished_at.isoformat(),
    }


@app.command("run-scheduler")
def run_scheduler() -> None:  # pragma: no cover - long-running orchestrator
    """Run every configured metric job until interrupted."""
    asyncio.run(_run_scheduler_async())


async def _run_scheduler_async() -> None:  # pragma: no cover - orchestrator wiring
    settings = load_settings()
    log = setup_logger(settings).getChild("main")
    log.info("Metrics engine starting up")

    engine = get_async_engine(settings)
    store = AttributeStore(engine)
    await store.create_schema()

    async with aiohttp.ClientSession() as http_session, httpx.AsyncClient() as gql_session:
        scheduler = MetricScheduler(
            jobs_from_config(),
            build_suite_factory(http_session, gql_session, settings, store),
            store,
            stagger_seconds=settings.job_stagger_seconds,
        )
        scheduler.start()

        stop_event = asyncio.Event()
        try:
            await stop_event.wait()
        finally:
            log.info("Shutdown initiated; stopping scheduler")
            scheduler.shutdown()
            await engine.dispose()
            log.info("Shutdown complete.")


@app.command("run-metric")
def run_metric(
    metric: MetricKind = typer.Argument(..., help="Metric to compute."),
    project_id: int = typer.Option(1, "--project-id", help="Tracked project id."),
    persist: bool = typer.Option(
        True, "--persist/--no-persist", help="Write the result to the store."
    ),
) -> None:
    """Compute one metric once and print the outcome as JSON."""
    outcome = asyncio.run(_run_metric_async(metric, project_id, persist))
    typer.echo(json.dumps(_outcome_payload(outcome), default=str))
    if not outcome.ok:
        raise typer.Exit(code=1)


async def _run_metric_async(
    metric: MetricKind, project_id: int, persist: bool
) -> JobOutcome:
    settings = load_settings()
    setup_logger(settings)

    engine = get_async_engine(settings)
    store = AttributeStore(engine)
    try:
        if persist:
            await store.create_schema()
        async with aiohttp.ClientSession() as http_session, httpx.AsyncClient() as gql_session:
            job = Job(metric=metric, project_id=project_id, interval_seconds=1)
            scheduler = MetricScheduler(
                [job],
                build_suite_factory(http_session, gql_session, settings, store),
                store,
            )
            return await scheduler.run_job_once(job, persist=persist)
    finally:
        await engine.dispose()


@app.command("init-db")
def init_db(
    seed_project: Optional[str] = typer.Option(
        None, "--seed-project", help="Create a project with this name."
    ),
    token: str = typer.Option("", "--token", help="Token label of the seeded project."),
    contract_address: Optional[str] = typer.Option(None, "--contract-address"),
    category: Optional[str] = typer.Option("DEX", "--category"),
) -> None:
    """Create the schema and optionally seed one project."""
    asyncio.run(_init_db_async(seed_project, token, contract_address, category))


async def _init_db_async(
    seed_project: Optional[str],
    token: str,
    contract_address: Optional[str],
    category: Optional[str],
) -> None:
    settings = load_settings()
    log = setup_logger(settings).getChild("main")
    engine = get_async_engine(settings)
    try:
        store = AttributeStore(engine)
        await store.create_schema()
        log.info("Schema ready at %s", engine.url.render_as_string(hide_password=True))
        if seed_project:
            project_id = await store.create_project(
                seed_project,
                token,
                category=category,
                contract_address=contract_address,
            )
            typer.echo(str(project_id))
    finally:
        await engine.dispose()


@app.command("export-attributes")
def export_attributes(
    project_id: int = typer.Option(..., "--project-id"),
    output_path: Path = typer.Option(..., "--output-path", help="CSV destination."),
) -> None:
    """Write a project's attributes to CSV."""
    rows = asyncio.run(_export_attributes_async(project_id, output_path))
    typer.echo(f"Exported {rows} attribute(s) to {output_path}")


async def _export_attributes_async(project_id: int, output_path: Path) -> int:
    settings = load_settings()
    setup_logger(settings)
    engine = get_async_engine(settings)
    try:
        frame = await AttributeStore(engine).attributes_frame(project_id)
    finally:
        await engine.dispose()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(output_path, index=False)
    logging.getLogger("lm.main").info(
        "Exported %s attributes of project %s", len(frame), project_id
    )
    return len(frame)


if __name__ == "__main__":
    app()
