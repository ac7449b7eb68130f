from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from config import API_CLIENT_SETTINGS
from core.config_loader import Settings
from core.exceptions import APIError
from data_ingestion.api.base_client import BaseAPIClient

LOGGER = logging.getLogger("lm.api.fullnode")


class FullnodeClient(BaseAPIClient):
    """Client for the ledger fullnode REST API (account resources)."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        super().__init__(
            base_url,
            session,
            api_key=api_key,
            rate_limit_per_sec=API_CLIENT_SETTINGS.get("RATE_LIMIT_PER_SEC", {}).get(
                "fullnode"
            ),
            timeout_seconds=timeout_seconds,
        )

    @classmethod
    def from_settings(
        cls, session: aiohttp.ClientSession, settings: Settings
    ) -> "FullnodeClient":
        return cls(
            session,
            base_url=settings.fullnode_url,
            api_key=settings.ledger_api_key,
            timeout_seconds=settings.request_timeout_seconds,
        )

    async def get_account_resources(self, address: str) -> List[Dict[str, Any]]:
        """Return every resource stored under ``address``."""
        payload = await self.fetch_json(f"accounts/{address}/resources")
        if not isinstance(payload, list):
            raise APIError(f"Unexpected resources payload for {address}")
        return payload

    async def get_account_resource(
        self, address: str, resource_type: str
    ) -> Optional[Dict[str, Any]]:
        """Return the ``data`` of one typed resource, or None if it does not exist."""
        path = f"accounts/{address}/resource/{quote(resource_type, safe=':,')}"
        payload = await self.fetch_json(path, allow_not_found=True)
        if payload is None:
            LOGGER.debug("Resource %s not found under %s", resource_type, address)
            return None
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise APIError(f"Malformed resource payload for {resource_type}")
        return data
