from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from config import API_CLIENT_SETTINGS
from core.config_loader import Settings
from core.exceptions import APIError, RateLimitedError
from data_ingestion.api import indexer_queries as queries
from data_ingestion.api.circuit import CircuitGate

LOGGER = logging.getLogger("lm.api.indexer")

_retry_cfg = API_CLIENT_SETTINGS.get("TENACITY_RETRY", {})


class IndexerClient:
    """Asynchronous client for the ledger indexer GraphQL API.

    Each helper issues one query and returns plain dict rows. GraphQL
    ``errors`` and non-2xx responses raise APIError; HTTP 429 is retried with
    tenacity before giving up.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        *,
        url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._session = session
        self._url = url
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._circuit = CircuitGate(self.__class__.__name__)

    @classmethod
    def from_settings(
        cls, session: httpx.AsyncClient, settings: Settings
    ) -> "IndexerClient":
        return cls(
            session,
            url=settings.indexer_url,
            api_key=settings.ledger_api_key,
            timeout_seconds=settings.request_timeout_seconds,
        )

    @property
    def circuit(self) -> CircuitGate:
        return self._circuit

    @retry(
        retry=retry_if_exception_type(RateLimitedError),
        wait=wait_random_exponential(
            multiplier=1,
            min=float(_retry_cfg.get("WAIT_MIN", 1)),
            max=float(_retry_cfg.get("WAIT_MAX", 30)),
        ),
        stop=stop_after_attempt(int(_retry_cfg.get("STOP_MAX_ATTEMPT", 3))),
        reraise=True,
    )
    async def execute(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Run one GraphQL document and return its ``data`` object."""
        self._circuit.check()
        try:
            data = await self._post_graphql(query, variables)
        except APIError as exc:
            self._circuit.record_failure(exc)
            raise
        self._circuit.record_success()
        return data

    async def _post_graphql(
        self, query: str, variables: Dict[str, Any]
    ) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            resp = await self._session.post(
                self._url,
                json={"query": query, "variables": variables},
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise APIError(f"Indexer request failed: {exc}") from exc

        if resp.status_code == 429:
            raise RateLimitedError("Rate limited by indexer")
        if resp.status_code >= 400:
            raise APIError(f"Indexer HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise APIError("Indexer returned a non-JSON body") from exc
        if body.get("errors"):
            raise APIError(f"GraphQL errors: {body['errors']}")
        data = body.get("data")
        if not isinstance(data, dict):
            raise APIError("GraphQL response without data")
        return data

    async def _rows(
        self, query: str, variables: Dict[str, Any], root: str
    ) -> List[Dict[str, Any]]:
        data = await self.execute(query, variables)
        rows = data.get(root)
        if not isinstance(rows, list):
            raise APIError(f"GraphQL response missing '{root}' list")
        return rows

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------
    async def coin_decimals(self, coin_type: str) -> Optional[int]:
        """Decimal precision registered for ``coin_type``; None when unknown."""
        rows = await self._rows(
            queries.COIN_DECIMALS, {"coin_type": coin_type}, "coin_infos"
        )
        try:
            if not rows or rows[0].get("decimals") is None:
                return None
            return int(rows[0]["decimals"])
        except (AttributeError, TypeError, ValueError) as exc:
            raise APIError(f"Malformed decimals for {coin_type}: {exc}") from exc

    async def count_coin_holders_page(
        self, coin_type: str, offset: int, limit: int
    ) -> int:
        rows = await self._rows(
            queries.COIN_HOLDERS_PAGE,
            {"coin_type": coin_type, "offset": offset, "limit": limit},
            "current_coin_balances",
        )
        return len(rows)

    async def swap_activities_page(
        self, address: str, entry_function: str, offset: int, limit: int
    ) -> List[Dict[str, Any]]:
        return await self._rows(
            queries.SWAP_ACTIVITIES_PAGE,
            {
                "address": address,
                "entry_function": entry_function,
                "offset": offset,
                "limit": limit,
            },
            "account_transactions",
        )

    async def account_senders_page(
        self, address: str, offset: int, limit: int
    ) -> List[Dict[str, Any]]:
        return await self._rows(
            queries.ACCOUNT_SENDERS_PAGE,
            {"address": address, "offset": offset, "limit": limit},
            "account_transactions",
        )

    async def swap_events_page(
        self, event_type_pattern: str, offset: int, limit: int
    ) -> List[Dict[str, Any]]:
        return await self._rows(
            queries.SWAP_EVENTS_PAGE,
            {"event_type": event_type_pattern, "offset": offset, "limit": limit},
            "events",
        )

    async def transaction_timestamps(self, versions: Iterable[int]) -> Dict[int, str]:
        """Map transaction version -> timestamp for a batch of versions."""
        wanted = sorted({int(v) for v in versions})
        if not wanted:
            return {}
        rows = await self._rows(
            queries.TRANSACTION_TIMESTAMPS,
            {"versions": wanted},
            "user_transactions",
        )
        return {
            int(row["version"]): row["timestamp"]
            for row in rows
            if row.get("version") is not None and row.get("timestamp")
        }
