from data_ingestion.api.base_client import BaseAPIClient
from data_ingestion.api.circuit import CircuitGate
from data_ingestion.api.fullnode_client import FullnodeClient
from data_ingestion.api.indexer_client import IndexerClient

__all__ = [
    "BaseAPIClient",
    "CircuitGate",
    "FullnodeClient",
    "IndexerClient",
]
