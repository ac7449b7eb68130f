from __future__ import annotations

import logging
from dataclasses import dataclass

from core.exceptions import MetricCalculationError, PriceUnavailableError
from data_ingestion.api.fullnode_client import FullnodeClient
from database.attribute_store import AttributeStore
from metrics.price_oracle import PriceOracle

log = logging.getLogger("lm.market_cap")

MAX_SUPPLY_ATTRIBUTE = "token_max_supply"


@dataclass(frozen=True)
class MarketCap:
    fully_diluted: float
    circulating: float


class MarketCapCalculator:
    def __init__(self, fullnode: FullnodeClient, oracle: PriceOracle) -> None:
        self._fullnode = fullnode
        self._oracle = oracle

    async def market_cap(
        self,
        store: AttributeStore,
        pool_address: str,
        token: str,
        token_mint_address: str,
    ) -> MarketCap:
        """Fully diluted and circulating market cap of ``token`` in USD.

        The price is mandatory. The max supply is read from the
        ``token_max_supply`` attribute of the project registered under
        ``pool_address`` and counts as 0 when missing.
        """
        quote = await self._oracle.price_and_decimals(token)
        if quote is None:
            raise PriceUnavailableError(f"No USD price for {token}")

        max_supply = await self.max_supply(store, pool_address)
        circulating = await self.circulating_supply(token, token_mint_address)

        return MarketCap(
            fully_diluted=quote.price * max_supply,
            circulating=quote.price * circulating,
        )

    async def max_supply(self, store: AttributeStore, pool_address: str) -> float:
        project = await store.get_project_by_address(pool_address)
        if project is None:
            log.info("No project registered for %s; max supply is 0", pool_address)
            return 0.0
        attribute = await store.get_attribute(project["id"], MAX_SUPPLY_ATTRIBUTE)
        if attribute is None or attribute.value is None:
            log.info("Project %s has no %s", project["id"], MAX_SUPPLY_ATTRIBUTE)
            return 0.0
        try:
            return float(attribute.value)
        except (TypeError, ValueError):
            log.warning(
                "Ignoring non-numeric %s on project %s: %r",
                MAX_SUPPLY_ATTRIBUTE,
                project["id"],
                attribute.value,
            )
            return 0.0

    async def circulating_supply(self, token: str, token_mint_address: str) -> float:
        resource_type = f"0x1::coin::CoinInfo<{token}>"
        data = await self._fullnode.get_account_resource(
            token_mint_address, resource_type
        )
        if data is None:
            raise MetricCalculationError(
                f"{resource_type} not found under {token_mint_address}"
            )
        try:
            supply = int(data["supply"]["vec"][0]["integer"]["vec"][0]["value"])
            decimals = int(data["decimals"])
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise MetricCalculationError(
                f"Malformed coin info for {token}: {exc}"
            ) from exc
        return supply / 10**decimals
