from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from config import PROJECT_TARGETS
from core.exceptions import MetricCalculationError
from data_ingestion.api.fullnode_client import FullnodeClient
from data_ingestion.api.indexer_client import IndexerClient
from database.attribute_store import AttributeStore
from metrics.activity_metrics import ActivityMetrics, WindowedMetric
from metrics.holder_estimator import HolderCountEstimator
from metrics.market_cap import MarketCapCalculator
from metrics.price_oracle import PriceOracle
from metrics.value_locked import ValueLockedCalculator

log = logging.getLogger("lm.metric_suite")


class MetricKind(str, Enum):
    TOTAL_VALUE_LOCKED = "total_value_locked"
    MARKET_CAP = "market_cap"
    TOKEN_HOLDERS = "token_holders"
    TRADING_VOLUME = "trading_volume"
    DAILY_ACTIVE_USERS = "daily_active_users"
    WEEKLY_ACTIVE_USERS = "weekly_active_users"
    DAILY_FEES = "daily_fees"


ATTRIBUTE_KEYS: Dict[MetricKind, Tuple[str, ...]] = {
    MetricKind.TOTAL_VALUE_LOCKED: ("total_value_locked",),
    MetricKind.MARKET_CAP: ("market_cap_fully_diluted", "market_cap_circulating"),
    MetricKind.TOKEN_HOLDERS: ("num_token_holders",),
    MetricKind.TRADING_VOLUME: ("trading_volume", "trading_volume_exact"),
    MetricKind.DAILY_ACTIVE_USERS: ("daily_active_users", "daily_active_users_exact"),
    MetricKind.WEEKLY_ACTIVE_USERS: (
        "weekly_active_users",
        "weekly_active_users_exact",
    ),
    MetricKind.DAILY_FEES: ("daily_fees", "daily_fees_exact"),
}


@dataclass(frozen=True)
class ProjectTargets:
    """On-chain addresses a project's metrics are computed from."""

    pool_address: str
    token: str
    token_mint_address: str
    swap_entry_function: str

    @classmethod
    def for_project(
        cls, project_id: int, targets: Mapping[int, Mapping[str, str]] = PROJECT_TARGETS
    ) -> "ProjectTargets":
        entry = targets.get(project_id)
        if entry is None:
            raise MetricCalculationError(f"No on-chain targets for project {project_id}")
        return cls(
            pool_address=entry["pool_address"],
            token=entry["token"],
            token_mint_address=entry["token_mint_address"],
            swap_entry_function=entry["swap_entry_function"],
        )


class MetricSuite:
    """All calculators wired to one pair of ledger clients.

    ``compute`` returns the attributes a metric writes, keyed as in
    ``ATTRIBUTE_KEYS``.
    """

    def __init__(
        self,
        fullnode: FullnodeClient,
        indexer: IndexerClient,
        store: AttributeStore,
        *,
        targets: Optional[Mapping[int, Mapping[str, str]]] = None,
    ) -> None:
        self.store = store
        self.oracle = PriceOracle(fullnode, indexer)
        self.holders = HolderCountEstimator(indexer)
        self.activity = ActivityMetrics(indexer, self.oracle)
        self.value_locked = ValueLockedCalculator(fullnode, self.oracle)
        self.market_cap = MarketCapCalculator(fullnode, self.oracle)
        self._targets = targets if targets is not None else PROJECT_TARGETS

    async def compute(self, metric: MetricKind, project_id: int) -> Dict[str, Any]:
        metric = MetricKind(metric)
        targets = ProjectTargets.for_project(project_id, self._targets)
        keys = ATTRIBUTE_KEYS[metric]

        if metric is MetricKind.TOTAL_VALUE_LOCKED:
            tvl = await self.value_locked.total_value_locked(targets.pool_address)
            return {keys[0]: tvl}

        if metric is MetricKind.MARKET_CAP:
            cap = await self.market_cap.market_cap(
                self.store,
                targets.pool_address,
                targets.token,
                targets.token_mint_address,
            )
            return {keys[0]: cap.fully_diluted, keys[1]: cap.circulating}

        if metric is MetricKind.TOKEN_HOLDERS:
            return {keys[0]: await self.holders.holder_count(targets.token)}

        if metric is MetricKind.TRADING_VOLUME:
            windowed = await self.activity.trading_volume(
                targets.pool_address, targets.swap_entry_function
            )
        elif metric is MetricKind.DAILY_ACTIVE_USERS:
            windowed = await self.activity.daily_active_users(targets.pool_address)
        elif metric is MetricKind.WEEKLY_ACTIVE_USERS:
            windowed = await self.activity.weekly_active_users(targets.pool_address)
        else:
            windowed = await self.activity.fees_within_days(targets.pool_address)
        return self._windowed_attributes(metric, project_id, windowed)

    @staticmethod
    def _windowed_attributes(
        metric: MetricKind, project_id: int, windowed: WindowedMetric
    ) -> Dict[str, Any]:
        value_key, exact_key = ATTRIBUTE_KEYS[metric]
        if not windowed.exact:
            log.warning(
                "%s for project %s is truncated after %s records",
                metric.value,
                project_id,
                windowed.records_scanned,
            )
        return {value_key: windowed.value, exact_key: windowed.exact}
