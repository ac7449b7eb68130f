from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from config import (
    AGGREGATION_SETTINGS,
    SWAP_EVENT_STRUCT,
    SWAP_FEE_DENOMINATOR,
    SWAP_FEE_NUMERATOR,
    VOLUME_ACTIVITY_TYPES,
)
from core.accumulator import AmountAccumulator, MemberAccumulator
from data_ingestion.api.indexer_client import IndexerClient
from metrics.price_oracle import PriceOracle, value_in_usd
from metrics.windowed_aggregator import AggregationWindow, WindowedActivityAggregator
from utils.parsing import pair_type_args, parse_amount
from utils.time_utils import try_parse_to_utc

log = logging.getLogger("lm.activity_metrics")


class WindowedMetric(NamedTuple):
    value: Union[int, float]
    exact: bool
    records_scanned: int


def _volume_entries(record: Dict[str, Any]) -> Tuple[Optional[datetime], List[Tuple[str, int]]]:
    activities = record.get("coin_activities") or []
    timestamp = try_parse_to_utc((record.get("user_transaction") or {}).get("timestamp"))
    entries: List[Tuple[str, int]] = []
    for activity in activities:
        if timestamp is None:
            timestamp = try_parse_to_utc(activity.get("transaction_timestamp"))
        if activity.get("is_gas_fee"):
            continue
        if activity.get("activity_type") not in VOLUME_ACTIVITY_TYPES:
            continue
        coin_type = activity.get("coin_type")
        amount = parse_amount(activity.get("amount"))
        if coin_type and amount:
            entries.append((coin_type, amount))
    return timestamp, entries


def _sender_entries(record: Dict[str, Any]) -> Tuple[Optional[datetime], List[str]]:
    txn = record.get("user_transaction") or {}
    sender = txn.get("sender")
    return try_parse_to_utc(txn.get("timestamp")), [sender] if sender else []


def _swap_input_entries(
    item: Tuple[Dict[str, Any], Optional[datetime]]
) -> Tuple[Optional[datetime], List[Tuple[str, int]]]:
    event, timestamp = item
    pair = pair_type_args(event.get("type") or "")
    if pair is None:
        return timestamp, []
    data = event.get("data") or {}
    entries = [
        (pair[0], parse_amount(data.get("amount_x_in"))),
        (pair[1], parse_amount(data.get("amount_y_in"))),
    ]
    return timestamp, [(token, amount) for token, amount in entries if amount]


class ActivityMetrics:
    """Windowed metrics over indexer feeds: volume, active users and fees."""

    def __init__(
        self,
        indexer: IndexerClient,
        oracle: PriceOracle,
        *,
        batch_size: int = AGGREGATION_SETTINGS["BATCH_SIZE"],
        max_records: int = AGGREGATION_SETTINGS["MAX_RECORDS"],
        fan_out: Optional[Dict[str, int]] = None,
    ) -> None:
        self._indexer = indexer
        self._oracle = oracle
        self._batch_size = batch_size
        self._max_records = max_records
        self._fan_out = dict(AGGREGATION_SETTINGS["FAN_OUT"])
        if fan_out:
            self._fan_out.update(fan_out)

    def aggregator(self, metric: str) -> WindowedActivityAggregator:
        return WindowedActivityAggregator(
            batch_size=self._batch_size,
            fan_out=self._fan_out[metric],
            max_records=self._max_records,
        )

    async def trading_volume(
        self,
        address: str,
        entry_function: str,
        days: int = AGGREGATION_SETTINGS["TRADING_VOLUME_DAYS"],
        *,
        now: Optional[datetime] = None,
    ) -> WindowedMetric:
        """USD value of tokens sold into ``entry_function`` swaps over ``days``."""

        async def fetch_page(offset: int, limit: int) -> Sequence[Any]:
            return await self._indexer.swap_activities_page(
                address, entry_function, offset, limit
            )

        result = await self.aggregator("trading_volume").aggregate(
            fetch_page,
            _volume_entries,
            AggregationWindow.trailing(days, now),
            AmountAccumulator(),
        )
        volume = await value_in_usd(self._oracle, result.value)
        log.info(
            "Trading volume for %s over %sd: %.2f USD (%s tokens, exact=%s)",
            address,
            days,
            volume,
            len(result.value),
            result.exact,
        )
        return WindowedMetric(volume, result.exact, result.records_scanned)

    async def _active_users(
        self, metric: str, address: str, window: AggregationWindow
    ) -> WindowedMetric:
        async def fetch_page(offset: int, limit: int) -> Sequence[Any]:
            return await self._indexer.account_senders_page(address, offset, limit)

        result = await self.aggregator(metric).aggregate(
            fetch_page, _sender_entries, window, MemberAccumulator()
        )
        log.info("%s for %s: %s (exact=%s)", metric, address, len(result.value), result.exact)
        return WindowedMetric(len(result.value), result.exact, result.records_scanned)

    async def daily_active_users(
        self, address: str, *, now: Optional[datetime] = None
    ) -> WindowedMetric:
        """Distinct senders since UTC midnight today."""
        return await self._active_users(
            "daily_active_users", address, AggregationWindow.calendar(0, now)
        )

    async def weekly_active_users(
        self,
        address: str,
        days: int = AGGREGATION_SETTINGS["WEEKLY_ACTIVE_USERS_DAYS"],
        *,
        now: Optional[datetime] = None,
    ) -> WindowedMetric:
        """Distinct senders since UTC midnight ``days`` days ago."""
        return await self._active_users(
            "weekly_active_users", address, AggregationWindow.calendar(days, now)
        )

    async def fees_within_days(
        self,
        pool_account: str,
        days: int = AGGREGATION_SETTINGS["DAILY_FEES_DAYS"],
        *,
        now: Optional[datetime] = None,
    ) -> WindowedMetric:
        """USD value of liquidity fees charged on swap inputs.

        ``days=1`` covers today since UTC midnight; each extra day extends
        the window by one calendar day.
        """
        if days < 1:
            raise ValueError("days must be at least 1")
        pattern = f"{pool_account}::{SWAP_EVENT_STRUCT}%"
        window = AggregationWindow.calendar(days - 1, now)
        unresolved: List[Optional[int]] = []

        async def fetch_page(offset: int, limit: int) -> Sequence[Any]:
            events = await self._indexer.swap_events_page(pattern, offset, limit)
            versions = _versions(events)
            stamps = await self._indexer.transaction_timestamps(versions)
            page = [
                (event, try_parse_to_utc(stamps.get(_version(event))))
                for event in events
            ]
            unresolved.extend(_unresolved_in_window(page, window))
            return page

        result = await self.aggregator("daily_fees").aggregate(
            fetch_page, _swap_input_entries, window, AmountAccumulator()
        )
        exact = result.exact
        if unresolved:
            log.warning(
                "Fees for %s skip %s swap event(s) without a timestamp: versions %s",
                pool_account,
                len(unresolved),
                sorted(v for v in unresolved if v is not None)[:20],
            )
            exact = False
        divisor = (SWAP_FEE_DENOMINATOR - SWAP_FEE_NUMERATOR) / SWAP_FEE_NUMERATOR
        fees = await value_in_usd(self._oracle, result.value, divisor=divisor)
        log.info(
            "Fees for %s over %sd: %.2f USD (exact=%s)",
            pool_account,
            days,
            fees,
            exact,
        )
        return WindowedMetric(fees, exact, result.records_scanned)


def _version(event: Dict[str, Any]) -> Optional[int]:
    raw = event.get("transaction_version")
    return int(raw) if raw is not None else None


def _versions(events: Iterable[Dict[str, Any]]) -> List[int]:
    return [v for v in (_version(e) for e in events) if v is not None]


def _unresolved_in_window(
    page: Sequence[Tuple[Dict[str, Any], Optional[datetime]]], window: AggregationWindow
) -> List[Optional[int]]:
    """Versions of events lacking a timestamp, up to the page's window boundary."""
    missing: List[Optional[int]] = []
    for event, timestamp in page:
        if timestamp is None:
            missing.append(_version(event))
        elif window.is_before(timestamp):
            break
    return missing
