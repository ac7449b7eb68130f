from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import aiohttp
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from config import API_CLIENT_SETTINGS
from core.exceptions import APIError, RateLimitedError
from data_ingestion.api.circuit import CircuitGate

LOGGER = logging.getLogger("lm.api.rest")


class BaseAPIClient:
    """Base class for REST clients of the ledger.

    A single shared aiohttp.ClientSession must be supplied by the caller.
    Every request passes a rate limiter and a circuit breaker; HTTP 429 is
    retried with jittered exponential backoff, any other failure surfaces
    immediately as APIError.
    """

    def __init__(
        self,
        base_url: str,
        session: aiohttp.ClientSession,
        *,
        api_key: Optional[str] = None,
        rate_limit_per_sec: Optional[float] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.api_key = api_key or ""
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        self._min_interval = 1.0 / rate_limit_per_sec if rate_limit_per_sec else 0.0
        self._last_request_ts = 0.0
        self._rate_lock = asyncio.Lock()

        self._circuit = CircuitGate(self.__class__.__name__)

    @property
    def circuit(self) -> CircuitGate:
        return self._circuit

    async def _rate_limit_wait(self) -> None:
        if self._min_interval <= 0:
            return
        async with self._rate_lock:
            sleep_for = self._min_interval - (time.monotonic() - self._last_request_ts)
            if sleep_for > 0:
                await asyncio.sleep(sleep_for)
            self._last_request_ts = time.monotonic()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    _retry_cfg = API_CLIENT_SETTINGS.get("TENACITY_RETRY", {})
    _wait_min = float(_retry_cfg.get("WAIT_MIN", 1))
    _wait_max = float(_retry_cfg.get("WAIT_MAX", 30))
    _stop_attempts = int(_retry_cfg.get("STOP_MAX_ATTEMPT", 3))

    @retry(
        retry=retry_if_exception_type(RateLimitedError),
        wait=wait_random_exponential(multiplier=1, min=_wait_min, max=_wait_max),
        stop=stop_after_attempt(_stop_attempts),
        reraise=True,
    )
    async def fetch_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        allow_not_found: bool = False,
    ) -> Any:
        """GET ``base_url + path`` and return the decoded JSON body.

        With ``allow_not_found`` a 404 yields None instead of an error.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        self._circuit.check()
        await self._rate_limit_wait()

        try:
            response = await self._send_request(
                url, params or {}, allow_not_found=allow_not_found
            )
        except APIError as exc:
            self._circuit.record_failure(exc)
            LOGGER.debug("GET %s failed: %s", url, exc)
            raise
        self._circuit.record_success()
        return response

    async def _send_request(
        self, url: str, params: Dict[str, Any], *, allow_not_found: bool
    ) -> Any:
        """Perform the HTTP GET with the shared session."""
        try:
            async with self.session.get(
                url, params=params, headers=self._headers(), timeout=self._timeout
            ) as resp:
                if resp.status == 404 and allow_not_found:
                    return None
                if resp.status == 429:
                    raise RateLimitedError(f"Rate limited by {url}")
                if resp.status >= 400:
                    body = await resp.text()
                    raise APIError(f"HTTP {resp.status} from {url}: {body[:200]}")
                return await resp.json(content_type=None)
        except APIError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise APIError(f"Request to {url} failed: {exc}") from exc
