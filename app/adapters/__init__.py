"""Platform adapters for gateway integrations."""

from app.adapters.base import BasePlatformAdapter, BaseSyncSource
from app.adapters.evolution import EvolutionAdapter, EvolutionSyncSource

__all__ = [
    "BasePlatformAdapter",
    "BaseSyncSource",
    "EvolutionAdapter",
    "EvolutionSyncSource",
]
