"""Fan-out pagination over newest-first feeds, bounded by a time window.

Pages are fetched in batches of ``fan_out`` concurrent requests at offsets
fixed before dispatch. Each page is scanned independently until a record
older than the window cutoff shows up; partial results are merged into a
shared accumulator. The scan ends after the first batch that crossed the
boundary, hit the end of the feed, or reached the record ceiling.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import (
    Any,
    Awaitable,
    Callable,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from config import AGGREGATION_SETTINGS
from core.accumulator import SharedAccumulator
from utils.time_utils import parse_to_utc, start_of_utc_day, utc_now

log = logging.getLogger("lm.windowed_aggregator")

T = TypeVar("T")

FetchPage = Callable[[int, int], Awaitable[Sequence[Any]]]
Extract = Callable[[Any], Tuple[Optional[datetime], Iterable[Any]]]


@dataclass(frozen=True)
class AggregationWindow:
    now: datetime
    cutoff: datetime

    @classmethod
    def trailing(cls, days: float, now: Optional[datetime] = None) -> "AggregationWindow":
        """Window covering the last ``days`` days up to ``now``."""
        moment = parse_to_utc(now) if now is not None else utc_now()
        return cls(now=moment, cutoff=moment - timedelta(days=days))

    @classmethod
    def calendar(cls, days_back: int, now: Optional[datetime] = None) -> "AggregationWindow":
        """Window starting at UTC midnight ``days_back`` days before today."""
        moment = parse_to_utc(now) if now is not None else utc_now()
        return cls(now=moment, cutoff=start_of_utc_day(moment, days_back))

    def is_before(self, timestamp: datetime) -> bool:
        return timestamp < self.cutoff


@dataclass(frozen=True)
class PageScan:
    offset: int
    fetched: int
    scanned: int
    boundary_crossed: bool


@dataclass(frozen=True)
class AggregationResult(Generic[T]):
    value: T
    exact: bool
    records_scanned: int
    pages: int


class WindowedActivityAggregator:
    def __init__(
        self,
        *,
        batch_size: int = AGGREGATION_SETTINGS["BATCH_SIZE"],
        fan_out: int = AGGREGATION_SETTINGS["DEFAULT_FAN_OUT"],
        max_records: int = AGGREGATION_SETTINGS["MAX_RECORDS"],
    ) -> None:
        if batch_size <= 0 or fan_out <= 0 or max_records <= 0:
            raise ValueError("batch_size, fan_out and max_records must be positive")
        self.batch_size = batch_size
        self.fan_out = fan_out
        self.max_records = max_records

    async def _scan_page(
        self,
        fetch_page: FetchPage,
        extract: Extract,
        window: AggregationWindow,
        accumulator: SharedAccumulator[T],
        offset: int,
    ) -> PageScan:
        records = await fetch_page(offset, self.batch_size)

        contributions: List[Any] = []
        scanned = 0
        boundary = False
        for record in records:
            timestamp, entries = extract(record)
            if timestamp is None:
                continue
            if window.is_before(timestamp):
                boundary = True
                break
            scanned += 1
            contributions.extend(entries)

        await accumulator.merge(contributions)
        return PageScan(offset, len(records), scanned, boundary)

    async def aggregate(
        self,
        fetch_page: FetchPage,
        extract: Extract,
        window: AggregationWindow,
        accumulator: SharedAccumulator[T],
    ) -> AggregationResult[T]:
        """Scan ``fetch_page(offset, limit)`` until the window boundary.

        ``extract(record)`` returns the record's timestamp and the entries to
        merge into ``accumulator``; records without a timestamp are skipped.
        Any page error aborts the whole aggregation.
        """
        offset = 0
        pages = 0
        records_scanned = 0
        exact = False

        while offset < self.max_records:
            offsets = [
                offset + i * self.batch_size
                for i in range(self.fan_out)
                if offset + i * self.batch_size < self.max_records
            ]
            results = await asyncio.gather(
                *(
                    self._scan_page(fetch_page, extract, window, accumulator, o)
                    for o in offsets
                ),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result

            scans: List[PageScan] = list(results)  # type: ignore[arg-type]
            pages += len(scans)
            records_scanned += sum(s.scanned for s in scans)

            if any(s.boundary_crossed for s in scans):
                exact = True
                break
            if any(s.fetched < self.batch_size for s in scans):
                exact = True
                break
            offset += self.batch_size * len(offsets)

        if not exact:
            log.warning(
                "Aggregation truncated at %s records before reaching %s",
                self.max_records,
                window.cutoff.isoformat(),
            )

        value = await accumulator.snapshot()
        return AggregationResult(
            value=value, exact=exact, records_scanned=records_scanned, pages=pages
        )
