"""USD price discovery by triangulating against reference stablecoin pools."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Dict, Mapping, NamedTuple, Optional, Sequence, Tuple

from config import (
    PAIR_METADATA_STRUCT,
    REFERENCE_STABLECOINS,
    SWAP_ACCOUNT,
    USD_DECIMALS,
)
from core.exceptions import APIError
from data_ingestion.api.fullnode_client import FullnodeClient
from data_ingestion.api.indexer_client import IndexerClient
from utils.parsing import parse_amount, struct_tag

log = logging.getLogger("lm.price_oracle")


class PriceQuote(NamedTuple):
    price: float
    decimals: int


class PriceOracle:
    """Resolves ``(price, decimals)`` for a token.

    The price comes from the token's pool against the first reference
    stablecoin whose pool can be read; results are never averaged and never
    cached. Every failure mode (transport error, missing pool, empty reserve,
    malformed payload) yields None instead of raising.
    """

    def __init__(
        self,
        fullnode: FullnodeClient,
        indexer: IndexerClient,
        *,
        swap_account: str = SWAP_ACCOUNT,
        stablecoins: Sequence[str] = REFERENCE_STABLECOINS,
        stable_decimals: int = USD_DECIMALS,
    ) -> None:
        self._fullnode = fullnode
        self._indexer = indexer
        self._swap_account = swap_account
        self._stablecoins = tuple(stablecoins)
        self._stable_decimals = stable_decimals

    def is_stablecoin(self, token: str) -> bool:
        return token in self._stablecoins

    async def price_and_decimals(self, token: str) -> Optional[PriceQuote]:
        if self.is_stablecoin(token):
            return PriceQuote(1.0, self._stable_decimals)

        decimals_task = asyncio.ensure_future(self._decimals(token))
        probe_tasks = [
            asyncio.ensure_future(self._pair_reserves(token, stable))
            for stable in self._stablecoins
        ]

        try:
            decimals = await decimals_task
            if decimals is None:
                log.info("No decimals for %s; price unavailable", token)
                return None
            probes = await asyncio.gather(*probe_tasks)
        finally:
            for task in probe_tasks:
                task.cancel()
            await asyncio.gather(*probe_tasks, return_exceptions=True)

        for stable, reserves in zip(self._stablecoins, probes):
            if reserves is None:
                continue
            base, quote = reserves
            if base <= 0:
                log.debug("Empty %s reserve in %s pool", token, stable)
                continue
            try:
                price = quote / base * 10.0 ** (decimals - self._stable_decimals)
            except OverflowError:
                price = math.inf
            if not math.isfinite(price):
                log.warning("Price of %s overflows with %s decimals", token, decimals)
                return None
            return PriceQuote(price, decimals)

        log.info("No stablecoin pool resolved a price for %s", token)
        return None

    async def _decimals(self, token: str) -> Optional[int]:
        try:
            decimals = await self._indexer.coin_decimals(token)
        except APIError as exc:
            log.warning("Decimals lookup failed for %s: %s", token, exc)
            return None
        # coin decimals are a u8 on chain
        if decimals is not None and not 0 <= decimals <= 255:
            log.warning("Ignoring out-of-range decimals %s for %s", decimals, token)
            return None
        return decimals

    async def _pair_reserves(self, token: str, stable: str) -> Optional[Tuple[int, int]]:
        """Return ``(token_reserve, stable_reserve)`` for the token/stable pool.

        Pools are keyed by an ordered pair; when the direct order is not
        readable the reversed key is tried once and its balances swapped back.
        """
        direct = await self._read_pair(token, stable)
        if direct is not None:
            return direct
        reversed_pair = await self._read_pair(stable, token)
        if reversed_pair is None:
            return None
        return reversed_pair[1], reversed_pair[0]

    async def _read_pair(self, token_x: str, token_y: str) -> Optional[Tuple[int, int]]:
        resource_type = struct_tag(
            self._swap_account, PAIR_METADATA_STRUCT, token_x, token_y
        )
        try:
            data = await self._fullnode.get_account_resource(
                self._swap_account, resource_type
            )
        except APIError as exc:
            log.debug("Pair %s/%s unreadable: %s", token_x, token_y, exc)
            return None
        if data is None:
            return None
        try:
            return (
                parse_amount(data["balance_x"]["value"]),
                parse_amount(data["balance_y"]["value"]),
            )
        except (KeyError, TypeError):
            log.warning("Malformed pair metadata for %s/%s", token_x, token_y)
            return None


async def value_in_usd(
    oracle: PriceOracle,
    amounts: Mapping[str, int],
    *,
    divisor: float = 1.0,
) -> float:
    """Sum ``price * amount / divisor / 10^decimals`` over distinct tokens.

    One oracle call per token, issued concurrently. Tokens without a price
    contribute 0.
    """
    tokens = [token for token, amount in amounts.items() if amount]
    quotes = await asyncio.gather(*(oracle.price_and_decimals(t) for t in tokens))

    total = 0.0
    unpriced: Dict[str, Any] = {}
    for token, quote in zip(tokens, quotes):
        if quote is None:
            unpriced[token] = amounts[token]
            continue
        total += quote.price * (amounts[token] / divisor) / 10**quote.decimals
    if unpriced:
        log.warning("Skipped %s unpriced token(s): %s", len(unpriced), sorted(unpriced))
    return total
