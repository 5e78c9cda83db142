"""
Service Container
Holds the storage backends, the generation provider and the open boards
"""
import time
from dataclasses import dataclass
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..storage.base import StorageInterface
    from .board import BoardManager


@dataclass
class ServiceContainer:
    """
    Container holding the core services for Flowboard

    Shared by the API server and the CLI so both build services the same way.
    """
    storage: 'StorageInterface'
    provider: Any  # GenerationProviderProtocol
    boards: 'BoardManager'
    legacy_storage: Optional['StorageInterface'] = None

    # Metadata
    mode: str = "solo"
    initialized_at: Optional[float] = None

    def __post_init__(self):
        if self.initialized_at is None:
            self.initialized_at = time.time()
