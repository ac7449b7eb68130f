from __future__ import annotations

import logging
from typing import List, Tuple

from config import PAIR_RESERVE_MARKER
from core.accumulator import AmountAccumulator
from data_ingestion.api.fullnode_client import FullnodeClient
from metrics.price_oracle import PriceOracle, value_in_usd
from utils.parsing import pair_type_args, parse_amount

log = logging.getLogger("lm.value_locked")


class ValueLockedCalculator:
    """Sums the USD value of every pool reserve held by a swap account."""

    def __init__(self, fullnode: FullnodeClient, oracle: PriceOracle) -> None:
        self._fullnode = fullnode
        self._oracle = oracle

    async def total_value_locked(self, address: str) -> float:
        resources = await self._fullnode.get_account_resources(address)

        reserves: List[Tuple[str, int]] = []
        pools = 0
        for resource in resources:
            resource_type = resource.get("type") or ""
            if PAIR_RESERVE_MARKER not in resource_type:
                continue
            pair = pair_type_args(resource_type)
            if pair is None:
                log.warning("Skipping reserve with unexpected type %s", resource_type)
                continue
            data = resource.get("data") or {}
            reserves.append((pair[0], parse_amount(data.get("reserve_x"))))
            reserves.append((pair[1], parse_amount(data.get("reserve_y"))))
            pools += 1

        accumulator = AmountAccumulator()
        await accumulator.merge(reserves)
        totals = await accumulator.snapshot()

        tvl = await value_in_usd(self._oracle, totals)
        log.info(
            "TVL for %s: %.2f USD across %s pools and %s tokens",
            address,
            tvl,
            pools,
            len(totals),
        )
        return tvl
