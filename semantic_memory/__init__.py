"""Local semantic memory for AI agents: LanceDB storage, Ollama embeddings, recency decay."""

from .config import Config
from .embeddings import OllamaClient
from .errors import (
    ConfigError,
    DatabaseError,
    DimensionMismatchError,
    MemoryNotFoundError,
    MemoryStoreError,
    OllamaError,
)
from .models import Memory, SearchResult, StoreStats
from .ranking import RankingEngine, compute_decay
from .reinforcement import ReinforcementOperator
from .service import MemoryService
from .store import RecordStore

__all__ = [
    "Config",
    "ConfigError",
    "DatabaseError",
    "DimensionMismatchError",
    "Memory",
    "MemoryNotFoundError",
    "MemoryService",
    "MemoryStoreError",
    "OllamaClient",
    "OllamaError",
    "RankingEngine",
    "RecordStore",
    "ReinforcementOperator",
    "SearchResult",
    "StoreStats",
    "compute_decay",
]
