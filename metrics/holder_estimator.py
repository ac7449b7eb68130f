from __future__ import annotations

import asyncio
import logging
from typing import List

from config import HOLDER_ESTIMATE_SETTINGS
from core.exceptions import MetricCalculationError
from data_ingestion.api.indexer_client import IndexerClient

log = logging.getLogger("lm.holder_estimator")


class HolderCountEstimator:
    """Estimates how many addresses hold a positive balance of a token.

    The balances collection is only reachable through offset/limit pages, so
    instead of enumerating it the estimator narrows a search interval
    ``[left, right]`` with rounds of concurrent page probes. Each probe asks
    for ``page_size`` records at ``left + i * segment`` and only looks at how
    many came back:

    - a partial page (``0 < count < page_size``) ends the search at
      ``offset + count``;
    - an empty page bounds the end between the previous probe and this one;
    - all full pages move ``left`` to the last segment.

    Once segments are no wider than a page, a full page followed by a known
    end pins the count exactly, so a collection below ``upper_bound`` costs
    at most ``probes * ceil(log10(upper_bound / page_size))`` probe calls.
    """

    def __init__(
        self,
        indexer: IndexerClient,
        *,
        probes: int = HOLDER_ESTIMATE_SETTINGS["PROBES_PER_ROUND"],
        page_size: int = HOLDER_ESTIMATE_SETTINGS["PAGE_SIZE"],
        upper_bound: int = HOLDER_ESTIMATE_SETTINGS["UPPER_BOUND"],
    ) -> None:
        self._indexer = indexer
        self._probes = probes
        self._page_size = page_size
        self._upper_bound = upper_bound
        self.probe_calls = 0

    async def _probe(self, token: str, offset: int) -> int:
        self.probe_calls += 1
        count = await self._indexer.count_coin_holders_page(
            token, offset, self._page_size
        )
        if count < 0 or count > self._page_size:
            raise MetricCalculationError(
                f"Holder page at offset {offset} returned {count} records"
            )
        return count

    async def holder_count(self, token: str) -> int:
        self.probe_calls = 0
        left, right = 1, self._upper_bound
        # True once right + 1 is known to be at or past the end.
        bounded = False

        while left <= right:
            segment = (right - left + 1) // self._probes
            if segment == 0:
                break
            offsets: List[int] = [left + i * segment for i in range(self._probes)]
            counts = await asyncio.gather(
                *(self._probe(token, o) for o in offsets), return_exceptions=True
            )
            for count in counts:
                if isinstance(count, BaseException):
                    raise count

            narrowed = False
            for i, (offset, count) in enumerate(zip(offsets, counts)):
                if 0 < count < self._page_size:
                    log.info("Holder count for %s: %s", token, offset + count)
                    return offset + count
                if count == 0:
                    if i == 0 and offset == 1:
                        # at most one holder; offset 0 tells which
                        return await self._probe(token, 0)
                    if i > 0 and segment <= self._page_size:
                        # previous full page already reaches this offset
                        return offset
                    right = offset - 1
                    if i > 0:
                        left = offsets[i - 1]
                    bounded = True
                    narrowed = True
                    break

            if narrowed:
                continue

            if segment <= self._page_size:
                last_page_end = offsets[-1] + self._page_size
                if bounded and last_page_end >= right + 1:
                    return right + 1
                if not bounded:
                    log.warning(
                        "Holders of %s exceed the search ceiling %s",
                        token,
                        self._upper_bound,
                    )
                    return last_page_end
            left = right - segment + 1

        log.info("Holder count for %s converged at %s", token, left)
        return left
