from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pytest

from config import STABLECOIN_USDC, SWAP_ACCOUNT, SWAP_ENTRY_FUNCTION, USD_DECIMALS
from metrics.activity_metrics import ActivityMetrics
from metrics.price_oracle import PriceQuote

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
TOKEN = "0xabc::oft::CakeOFT"
WITHDRAW = "0x1::coin::WithdrawEvent"
DEPOSIT = "0x1::coin::DepositEvent"


class FakeOracle:
    def __init__(self, quotes: Dict[str, PriceQuote]) -> None:
        self.quotes = quotes
        self.calls: List[str] = []

    async def price_and_decimals(self, token: str) -> Optional[PriceQuote]:
        self.calls.append(token)
        return self.quotes.get(token)


class FakeIndexer:
    def __init__(
        self,
        swaps: Iterable[Dict[str, Any]] = (),
        senders: Iterable[Dict[str, Any]] = (),
        events: Iterable[Dict[str, Any]] = (),
        timestamps: Optional[Dict[int, str]] = None,
    ) -> None:
        self.swaps = list(swaps)
        self.senders = list(senders)
        self.events = list(events)
        self.timestamps = timestamps or {}
        self.swap_calls: List[tuple] = []
        self.timestamp_batches: List[List[int]] = []

    async def swap_activities_page(self, address, entry_function, offset, limit):
        self.swap_calls.append((address, entry_function))
        return self.swaps[offset : offset + limit]

    async def account_senders_page(self, address, offset, limit):
        return self.senders[offset : offset + limit]

    async def swap_events_page(self, event_type_pattern, offset, limit):
        assert event_type_pattern == f"{SWAP_ACCOUNT}::swap::SwapEvent%"
        return self.events[offset : offset + limit]

    async def transaction_timestamps(self, versions):
        versions = list(versions)
        self.timestamp_batches.append(versions)
        return {v: self.timestamps[v] for v in versions if v in self.timestamps}


QUOTES = {
    TOKEN: PriceQuote(2.0, 8),
    STABLECOIN_USDC: PriceQuote(1.0, USD_DECIMALS),
}


def _metrics(indexer: FakeIndexer, oracle: Optional[FakeOracle] = None) -> ActivityMetrics:
    return ActivityMetrics(
        indexer,  # type: ignore[arg-type]
        oracle or FakeOracle(QUOTES),  # type: ignore[arg-type]
        batch_size=2,
        fan_out={
            "trading_volume": 2,
            "daily_active_users": 2,
            "weekly_active_users": 2,
            "daily_fees": 2,
        },
    )


def swap(ts: str, *activities: Dict[str, Any]) -> Dict[str, Any]:
    return {"user_transaction": {"timestamp": ts}, "coin_activities": list(activities)}


def activity(kind: str, coin: str, amount: int, gas: bool = False) -> Dict[str, Any]:
    return {"activity_type": kind, "coin_type": coin, "amount": str(amount), "is_gas_fee": gas}


@pytest.mark.asyncio
async def test_trading_volume_counts_sold_side_only():
    swaps = [
        swap(
            "2025-03-10T11:00:00",
            activity(WITHDRAW, TOKEN, 10**8),  # 1 token sold -> 2 USD
            activity(DEPOSIT, STABLECOIN_USDC, 2 * 10**6),
            activity(WITHDRAW, "0x1::aptos_coin::AptosCoin", 500, gas=True),
        ),
        swap(
            "2025-03-05T08:00:00",
            activity(WITHDRAW, STABLECOIN_USDC, 3 * 10**6),  # 3 USD
            activity(DEPOSIT, TOKEN, 15 * 10**7),
        ),
        swap("2025-03-01T00:00:00", activity(WITHDRAW, TOKEN, 10**12)),
        swap("2025-02-28T00:00:00", activity(WITHDRAW, TOKEN, 10**12)),
    ]
    indexer = FakeIndexer(swaps=swaps)
    oracle = FakeOracle(QUOTES)

    result = await _metrics(indexer, oracle).trading_volume(
        SWAP_ACCOUNT, SWAP_ENTRY_FUNCTION, now=NOW
    )

    assert result.value == pytest.approx(5.0)
    assert result.exact is True
    assert result.records_scanned == 2
    assert sorted(oracle.calls) == sorted([TOKEN, STABLECOIN_USDC])
    assert indexer.swap_calls[0] == (SWAP_ACCOUNT, SWAP_ENTRY_FUNCTION)


@pytest.mark.asyncio
async def test_active_users_daily_and_weekly():
    def sent(sender: str, ts: str) -> Dict[str, Any]:
        return {"user_transaction": {"sender": sender, "timestamp": ts}}

    senders = [
        sent("0xa", "2025-03-10T11:00:00"),
        sent("0xb", "2025-03-10T10:00:00"),
        sent("0xa", "2025-03-10T09:00:00"),
        sent("0xc", "2025-03-09T23:00:00"),
        sent("0xd", "2025-03-03T00:30:00"),
        sent("0xe", "2025-03-02T23:59:00"),
        sent("0xf", "2025-02-01T00:00:00"),
    ]
    metrics = _metrics(FakeIndexer(senders=senders))

    daily = await metrics.daily_active_users("0xpool", now=NOW)
    weekly = await metrics.weekly_active_users("0xpool", now=NOW)

    assert daily.value == 2 and daily.exact
    assert weekly.value == 4 and weekly.exact


@pytest.mark.asyncio
async def test_fees_use_input_amounts_and_batched_timestamps():
    pair_type = f"{SWAP_ACCOUNT}::swap::SwapEvent<{TOKEN}, {STABLECOIN_USDC}>"
    events = [
        {"transaction_version": 30, "type": pair_type,
         "data": {"amount_x_in": str(399 * 10**8), "amount_y_in": "0"}},
        {"transaction_version": 29, "type": pair_type,
         "data": {"amount_x_in": "0", "amount_y_in": str(399 * 10**6)}},
        {"transaction_version": 28, "type": pair_type,
         "data": {"amount_x_in": str(399 * 10**9), "amount_y_in": "0"}},
    ]
    timestamps = {
        30: "2025-03-10T10:00:00",
        29: "2025-03-10T00:05:00",
        28: "2025-03-09T23:55:00",
    }
    indexer = FakeIndexer(events=events, timestamps=timestamps)

    result = await _metrics(indexer).fees_within_days(SWAP_ACCOUNT, days=1, now=NOW)

    # 399 tokens in / 399 -> 1 token at 2 USD, plus 399 USDC / 399 -> 1 USD
    assert result.value == pytest.approx(3.0)
    assert result.exact is True
    assert [30, 29] in indexer.timestamp_batches


@pytest.mark.asyncio
async def test_fees_window_grows_by_calendar_days():
    pair_type = f"{SWAP_ACCOUNT}::swap::SwapEvent<{TOKEN},{STABLECOIN_USDC}>"
    events = [
        {"transaction_version": 2, "type": pair_type,
         "data": {"amount_x_in": "0", "amount_y_in": str(399 * 10**6)}},
        {"transaction_version": 1, "type": pair_type,
         "data": {"amount_x_in": "0", "amount_y_in": str(399 * 10**6)}},
    ]
    indexer = FakeIndexer(
        events=events,
        timestamps={2: "2025-03-10T01:00:00", 1: "2025-03-09T01:00:00"},
    )

    one_day = await _metrics(indexer).fees_within_days(SWAP_ACCOUNT, days=1, now=NOW)
    two_days = await _metrics(indexer).fees_within_days(SWAP_ACCOUNT, days=2, now=NOW)

    assert one_day.value == pytest.approx(1.0)
    assert two_days.value == pytest.approx(2.0)


@pytest.mark.asyncio
async def test_fees_reject_zero_days():
    with pytest.raises(ValueError):
        await _metrics(FakeIndexer()).fees_within_days(SWAP_ACCOUNT, days=0, now=NOW)


@pytest.mark.asyncio
async def test_fees_with_unresolved_timestamps_are_inexact():
    pair_type = f"{SWAP_ACCOUNT}::swap::SwapEvent<{TOKEN},{STABLECOIN_USDC}>"
    events = [
        {"transaction_version": v, "type": pair_type,
         "data": {"amount_x_in": "0", "amount_y_in": str(399 * 10**6)}}
        for v in (30, 29, 28)
    ]
    # version 29 is not yet visible in the transactions table
    indexer = FakeIndexer(
        events=events,
        timestamps={30: "2025-03-10T10:00:00", 28: "2025-03-09T10:00:00"},
    )

    result = await _metrics(indexer).fees_within_days(SWAP_ACCOUNT, days=1, now=NOW)

    assert result.value == pytest.approx(1.0)
    assert result.exact is False


@pytest.mark.asyncio
async def test_unresolved_events_past_the_window_keep_fees_exact():
    pair_type = f"{SWAP_ACCOUNT}::swap::SwapEvent<{TOKEN},{STABLECOIN_USDC}>"
    events = [
        {"transaction_version": v, "type": pair_type,
         "data": {"amount_x_in": "0", "amount_y_in": str(399 * 10**6)}}
        for v in (30, 29, 28, 27)
    ]
    indexer = FakeIndexer(
        events=events,
        timestamps={30: "2025-03-10T10:00:00", 29: "2025-03-09T10:00:00", 28: "2025-03-09T09:00:00"},
    )

    result = await _metrics(indexer).fees_within_days(SWAP_ACCOUNT, days=1, now=NOW)

    assert result.value == pytest.approx(1.0)
    assert result.exact is True
