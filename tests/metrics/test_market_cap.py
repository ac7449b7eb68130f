from __future__ import annotations

from typing import Any, Dict, Optional

import pytest

from core.exceptions import MetricCalculationError, PriceUnavailableError
from metrics.market_cap import MAX_SUPPLY_ATTRIBUTE, MarketCap, MarketCapCalculator
from metrics.price_oracle import PriceQuote
from utils.typed_values import TypedValue, infer_value_type

TOKEN = "0xabc::oft::CakeOFT"
MINT = "0xabc"
POOL = "0xpool"


def coin_info(supply: int, decimals: int) -> Dict[str, Any]:
    return {
        "decimals": decimals,
        "supply": {"vec": [{"integer": {"vec": [{"value": str(supply)}]}}]},
    }


class FakeFullnode:
    def __init__(self, data: Optional[Dict[str, Any]]) -> None:
        self.data = data
        self.requests = []

    async def get_account_resource(self, address, resource_type):
        self.requests.append((address, resource_type))
        return self.data


class FakeOracle:
    def __init__(self, quote: Optional[PriceQuote]) -> None:
        self.quote = quote

    async def price_and_decimals(self, token):
        return self.quote


class FakeStore:
    def __init__(self, max_supply: Any = None, registered: bool = True) -> None:
        self.max_supply = max_supply
        self.registered = registered

    async def get_project_by_address(self, address):
        if not self.registered:
            return None
        return {"id": 1, "contract_address": address}

    async def get_attribute(self, project_id, key):
        assert key == MAX_SUPPLY_ATTRIBUTE
        if self.max_supply is None:
            return None
        return TypedValue(self.max_supply, infer_value_type(self.max_supply))


def calculator(quote=PriceQuote(2.0, 8), data=coin_info(5 * 10**8, 8)):
    fullnode = FakeFullnode(data)
    return MarketCapCalculator(fullnode, FakeOracle(quote)), fullnode  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_market_cap_uses_max_and_circulating_supply():
    calc, fullnode = calculator()

    cap = await calc.market_cap(FakeStore(max_supply=1_000), POOL, TOKEN, MINT)

    assert cap == MarketCap(fully_diluted=2_000.0, circulating=10.0)
    assert fullnode.requests == [(MINT, f"0x1::coin::CoinInfo<{TOKEN}>")]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "store",
    [FakeStore(max_supply=None), FakeStore(registered=False), FakeStore(max_supply="lots")],
)
async def test_missing_max_supply_counts_as_zero(store):
    calc, _ = calculator()

    cap = await calc.market_cap(store, POOL, TOKEN, MINT)

    assert cap.fully_diluted == 0.0
    assert cap.circulating == pytest.approx(10.0)


@pytest.mark.asyncio
async def test_missing_price_raises():
    calc, _ = calculator(quote=None)
    with pytest.raises(PriceUnavailableError):
        await calc.market_cap(FakeStore(max_supply=1), POOL, TOKEN, MINT)


@pytest.mark.asyncio
@pytest.mark.parametrize("data", [None, {"decimals": 8, "supply": {"vec": []}}])
async def test_unreadable_coin_info_raises(data):
    calc, _ = calculator(data=data)
    with pytest.raises(MetricCalculationError):
        await calc.market_cap(FakeStore(max_supply=1), POOL, TOKEN, MINT)
