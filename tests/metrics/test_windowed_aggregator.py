from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest
from freezegun import freeze_time

from config import AGGREGATION_SETTINGS
from core.accumulator import AmountAccumulator, MemberAccumulator
from core.exceptions import APIError
from metrics.windowed_aggregator import AggregationWindow, WindowedActivityAggregator

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def feed(in_window: int, older: int, amount: int = 1) -> List[Dict[str, Any]]:
    """Newest-first records: ``in_window`` within 7 days, then ``older`` at 8+ days."""
    records = [
        {"ts": NOW - timedelta(minutes=i), "token": "T", "amount": amount}
        for i in range(in_window)
    ]
    records += [
        {"ts": NOW - timedelta(days=8, minutes=i), "token": "T", "amount": amount}
        for i in range(older)
    ]
    return records


class Paged:
    def __init__(self, records: Sequence[Dict[str, Any]], fail_offset: Optional[int] = None) -> None:
        self.records = list(records)
        self.fail_offset = fail_offset
        self.offsets: List[int] = []

    async def __call__(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        self.offsets.append(offset)
        if offset == self.fail_offset:
            raise APIError("page failed")
        return self.records[offset : offset + limit]


def extract_amount(record: Dict[str, Any]) -> Tuple[Optional[datetime], List[Tuple[str, int]]]:
    return record["ts"], [(record["token"], record["amount"])]


@pytest.mark.asyncio
async def test_stops_at_batch_containing_first_out_of_window_record():
    records = feed(in_window=449, older=551)  # record #450 is 8 days old
    pages = Paged(records)
    agg = WindowedActivityAggregator(batch_size=100, fan_out=2, max_records=500_000)

    result = await agg.aggregate(
        pages, extract_amount, AggregationWindow.trailing(7, NOW), AmountAccumulator()
    )

    assert result.value == {"T": 449}
    assert result.exact is True
    assert result.records_scanned == 449
    assert sorted(pages.offsets) == [0, 100, 200, 300, 400, 500]
    assert result.pages == 6


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "in_window,older",
    [(0, 0), (0, 30), (7, 0), (55, 3), (120, 0), (120, 400), (299, 1)],
)
async def test_sum_equals_in_window_records(in_window, older):
    agg = WindowedActivityAggregator(batch_size=10, fan_out=3, max_records=10_000)

    result = await agg.aggregate(
        Paged(feed(in_window, older, amount=3)),
        extract_amount,
        AggregationWindow.trailing(7, NOW),
        AmountAccumulator(),
    )

    assert result.value.get("T", 0) == 3 * in_window
    assert result.exact is True


@pytest.mark.asyncio
async def test_ceiling_truncates_and_flags_inexact():
    pages = Paged(feed(in_window=1000, older=0))
    agg = WindowedActivityAggregator(batch_size=10, fan_out=4, max_records=300)

    result = await agg.aggregate(
        pages, extract_amount, AggregationWindow.trailing(7, NOW), AmountAccumulator()
    )

    assert result.exact is False
    assert result.value == {"T": 300}
    assert max(pages.offsets) == 290


@pytest.mark.asyncio
async def test_page_error_fails_the_whole_aggregation():
    pages = Paged(feed(in_window=1000, older=0), fail_offset=40)
    agg = WindowedActivityAggregator(batch_size=10, fan_out=3, max_records=10_000)

    with pytest.raises(APIError):
        await agg.aggregate(
            pages, extract_amount, AggregationWindow.trailing(7, NOW), AmountAccumulator()
        )


@pytest.mark.asyncio
async def test_records_without_timestamp_are_skipped():
    records = feed(in_window=5, older=2)
    records.insert(2, {"ts": None, "token": "T", "amount": 1000})
    agg = WindowedActivityAggregator(batch_size=100, fan_out=1)

    result = await agg.aggregate(
        Paged(records), extract_amount, AggregationWindow.trailing(7, NOW), AmountAccumulator()
    )

    assert result.value == {"T": 5}


@pytest.mark.asyncio
async def test_distinct_members_across_pages():
    senders = [
        {"ts": NOW - timedelta(hours=i % 10), "sender": f"0x{i % 7}"} for i in range(60)
    ]
    agg = WindowedActivityAggregator(batch_size=10, fan_out=2)

    result = await agg.aggregate(
        Paged(senders),
        lambda r: (r["ts"], [r["sender"]]),
        AggregationWindow.trailing(1, NOW),
        MemberAccumulator(),
    )

    assert len(result.value) == 7
    assert result.exact is True


def test_rejects_non_positive_settings():
    with pytest.raises(ValueError):
        WindowedActivityAggregator(batch_size=0)


@freeze_time("2025-03-10 15:30:00")
def test_window_constructors():
    trailing = AggregationWindow.trailing(7)
    assert trailing.now == datetime(2025, 3, 10, 15, 30, tzinfo=timezone.utc)
    assert trailing.cutoff == datetime(2025, 3, 3, 15, 30, tzinfo=timezone.utc)

    today = AggregationWindow.calendar(0)
    assert today.cutoff == datetime(2025, 3, 10, tzinfo=timezone.utc)
    assert not today.is_before(datetime(2025, 3, 10, 0, 0, 1, tzinfo=timezone.utc))
    assert today.is_before(datetime(2025, 3, 9, 23, 59, tzinfo=timezone.utc))

    week = AggregationWindow.calendar(7)
    assert week.cutoff == datetime(2025, 3, 3, tzinfo=timezone.utc)


def test_defaults_come_from_aggregation_settings():
    agg = WindowedActivityAggregator()
    assert agg.fan_out == AGGREGATION_SETTINGS["DEFAULT_FAN_OUT"]
    assert agg.batch_size == AGGREGATION_SETTINGS["BATCH_SIZE"]
    assert agg.max_records == AGGREGATION_SETTINGS["MAX_RECORDS"]
