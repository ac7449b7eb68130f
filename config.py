# --- LEDGER ENDPOINTS ---
FULLNODE_URL = "https://api.mainnet.aptoslabs.com/v1"
INDEXER_URL = "https://indexer.mainnet.aptoslabs.com/v1/graphql"
REQUEST_TIMEOUT_SECONDS = 30.0

# --- REFERENCE STABLECOINS ---
# Quote tokens used to triangulate USD prices. Order is preference order.
STABLECOIN_USDC = (
    "0xf22bede237a07e121b56d91a491eb7bcdfd1f5907926a9e58338f964a01b17fa::asset::USDC"
)
STABLECOIN_USDT = (
    "0xf22bede237a07e121b56d91a491eb7bcdfd1f5907926a9e58338f964a01b17fa::asset::USDT"
)
REFERENCE_STABLECOINS = (STABLECOIN_USDC, STABLECOIN_USDT)
USD_DECIMALS = 6

# --- SWAP PROTOCOL ---
SWAP_ACCOUNT = "0xc7efb4076dbe143cbcd98cfaaa929ecfc8f299203dfff63b95ccb6bfe19850fa"
PAIR_METADATA_STRUCT = "swap::TokenPairMetadata"
PAIR_RESERVE_MARKER = "swap::TokenPairReserve"
SWAP_EVENT_STRUCT = "swap::SwapEvent"
SWAP_ENTRY_FUNCTION = f"{SWAP_ACCOUNT}::router::swap_exact_input"
# Liquidity-provider fee is NUMERATOR / DENOMINATOR of each swap input.
SWAP_FEE_NUMERATOR = 25
SWAP_FEE_DENOMINATOR = 10000
# Coin activity types that represent the sold side of a swap.
VOLUME_ACTIVITY_TYPES = ("0x1::coin::WithdrawEvent",)

# --- HOLDER COUNT ESTIMATION ---
HOLDER_ESTIMATE_SETTINGS = {
    "PROBES_PER_ROUND": 10,
    "PAGE_SIZE": 100,
    "UPPER_BOUND": 1_000_000_000,
}

# --- WINDOWED AGGREGATION ---
AGGREGATION_SETTINGS = {
    "BATCH_SIZE": 100,
    "MAX_RECORDS": 500_000,
    "DEFAULT_FAN_OUT": 250,
    "FAN_OUT": {
        "trading_volume": 250,
        "daily_active_users": 50,
        "weekly_active_users": 250,
        "daily_fees": 250,
    },
    "TRADING_VOLUME_DAYS": 7,
    "WEEKLY_ACTIVE_USERS_DAYS": 7,
    "DAILY_FEES_DAYS": 1,
}

# --- TRACKED PROJECTS ---
# On-chain targets per project id.
PROJECT_TARGETS = {
    1: {
        "pool_address": SWAP_ACCOUNT,
        "token": "0x159df6b7689437016108a019fd5bef736bac692b6d4a1f10c941f6fbb9a74ca6::oft::CakeOFT",
        "token_mint_address": "0x159df6b7689437016108a019fd5bef736bac692b6d4a1f10c941f6fbb9a74ca6",
        "swap_entry_function": SWAP_ENTRY_FUNCTION,
    },
}

# --- SCHEDULER ---
JOB_STAGGER_SECONDS = 120
JOB_MISFIRE_GRACE_SECONDS = 300
SCHEDULED_JOBS = [
    {"metric": "total_value_locked", "project_id": 1, "interval_seconds": 3600},
    {"metric": "market_cap", "project_id": 1, "interval_seconds": 3600},
    {"metric": "token_holders", "project_id": 1, "interval_seconds": 86400},
    {"metric": "trading_volume", "project_id": 1, "interval_seconds": 3600},
    {"metric": "daily_active_users", "project_id": 1, "interval_seconds": 7200},
    {"metric": "weekly_active_users", "project_id": 1, "interval_seconds": 86400},
    {"metric": "daily_fees", "project_id": 1, "interval_seconds": 86400},
]

# --- LOGGING ---
LOG_LEVEL = "INFO"
LOG_FILE_PATH = "logs/ledger_metrics.log"

# --- DATABASE ---
DATABASE_URL = "sqlite+aiosqlite:///ledger_metrics.db"
DB_POOL_SIZE = 10
DB_MAX_OVERFLOW = 20
DB_POOL_RECYCLE_SECONDS = 1800  # Recycle connections every 30 minutes

# --- API CLIENTS ---
API_CLIENT_SETTINGS = {
    # Only HTTP 429 responses are retried; everything else fails the tick.
    "TENACITY_RETRY": {
        "WAIT_MIN": 1,
        "WAIT_MAX": 30,
        "STOP_MAX_ATTEMPT": 3,
    },
    "CIRCUIT_BREAKER": {
        "FAIL_MAX": 5,
        "RESET_TIMEOUT": 60,
    },
    "RATE_LIMIT_PER_SEC": {
        "fullnode": None,
        "indexer": None,
    },
}
