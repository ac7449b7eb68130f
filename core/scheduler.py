"""Periodic metric jobs on an APScheduler AsyncIOScheduler.

Every configured job is an independent interval job. A tick computes one
metric for one project and upserts the resulting attributes; a failing tick
is logged and recorded as an error outcome, and the job keeps its cadence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import JOB_MISFIRE_GRACE_SECONDS, JOB_STAGGER_SECONDS, SCHEDULED_JOBS
from database.attribute_store import AttributeStore
from metrics.suite import MetricKind, MetricSuite
from utils.time_utils import utc_now

log = logging.getLogger("lm.scheduler")


@dataclass(frozen=True)
class Job:
    metric: MetricKind
    project_id: int
    interval_seconds: int

    @property
    def name(self) -> str:
        return f"{self.metric.value}:{self.project_id}"

    @classmethod
    def from_config(cls, entry: Mapping[str, Any]) -> "Job":
        interval = int(entry["interval_seconds"])
        if interval <= 0:
            raise ValueError(f"Job interval must be positive: {entry!r}")
        return cls(
            metric=MetricKind(entry["metric"]),
            project_id=int(entry["project_id"]),
            interval_seconds=interval,
        )


def jobs_from_config(entries: Iterable[Mapping[str, Any]] = SCHEDULED_JOBS) -> List[Job]:
    return [Job.from_config(entry) for entry in entries]


@dataclass
class JobOutcome:
    job: Job
    started_at: datetime
    finished_at: datetime
    attributes: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class MetricScheduler:
    """Owns the metric jobs and their per-job calculator suites.

    ``suite_factory`` is called once per job so each job gets its own
    clients and circuit breakers.
    """

    def __init__(
        self,
        jobs: Iterable[Job],
        suite_factory: Callable[[], MetricSuite],
        store: AttributeStore,
        *,
        stagger_seconds: int = JOB_STAGGER_SECONDS,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self.jobs: List[Job] = list(jobs)
        self._suite_factory = suite_factory
        self._store = store
        self._stagger = timedelta(seconds=stagger_seconds)
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._suites: Dict[str, MetricSuite] = {}
        self._registered = False
        self.last_outcomes: Dict[str, JobOutcome] = {}

    def _suite_for(self, job: Job) -> MetricSuite:
        suite = self._suites.get(job.name)
        if suite is None:
            suite = self._suite_factory()
            self._suites[job.name] = suite
        return suite

    def register(self, start: Optional[datetime] = None) -> List[str]:
        """Add every job to the scheduler; job i first runs at start + i * stagger."""
        first_run = start or utc_now()
        ids: List[str] = []
        for i, job in enumerate(self.jobs):
            self._suite_for(job)
            self._scheduler.add_job(
                self.run_job_once,
                "interval",
                seconds=job.interval_seconds,
                args=[job],
                id=job.name,
                name=job.name,
                next_run_time=first_run + i * self._stagger,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=JOB_MISFIRE_GRACE_SECONDS,
                replace_existing=True,
            )
            ids.append(job.name)
            log.info(
                "Scheduled %s every %ss, first run at %s",
                job.name,
                job.interval_seconds,
                (first_run + i * self._stagger).isoformat(),
            )
        self._registered = True
        return ids

    def start(self) -> None:
        if not self._registered:
            self.register()
        self._scheduler.start()
        log.info("Scheduler started with %s jobs", len(self.jobs))

    def shutdown(self) -> None:
        self._scheduler.shutdown(wait=False)
        log.info("Scheduler stopped")

    async def run_job_once(self, job: Job, *, persist: bool = True) -> JobOutcome:
        """Run one tick of ``job``. Never raises; the outcome carries the error."""
        started = utc_now()
        try:
            suite = self._suite_for(job)
            attributes = await suite.compute(job.metric, job.project_id)
            if persist:
                await self._store.upsert_attributes(job.project_id, attributes)
        except Exception as exc:  # noqa: BLE001 - a failed tick must not stop the job
            outcome = JobOutcome(
                job=job,
                started_at=started,
                finished_at=utc_now(),
                error=f"{type(exc).__name__}: {exc}",
            )
            log.exception("Job %s failed: %s", job.name, exc)
        else:
            outcome = JobOutcome(
                job=job,
                started_at=started,
                finished_at=utc_now(),
                attributes=attributes,
            )
            log.info(
                "Job %s finished in %.1fs: %s",
                job.name,
                (outcome.finished_at - started).total_seconds(),
                attributes,
            )
        self.last_outcomes[job.name] = outcome
        return outcome
