"""
Bootstrap module for Flowboard
Single entry point that builds storage, provider and board manager for the
API server and the CLI.
"""
from typing import Optional
import time
import threading

from .container import ServiceContainer
from .config import Config
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Containers cached by mode
_container_cache: dict[str, ServiceContainer] = {}
# Guards the cache and the temporary Config.MODE switch
_container_lock = threading.Lock()


def get_container(
    mode: Optional[str] = None,
    *,
    enable_provider: bool = True,
    force: bool = False
) -> ServiceContainer:
    """
    Build or retrieve cached ServiceContainer

    Args:
        mode: 'solo', 'prod' or 'remote' (defaults to Config.MODE)
        enable_provider: Attach the HTTP generation provider (default: True)
        force: Force rebuild even if cached (default: False)

    Returns:
        ServiceContainer with all services initialized

    Example:
        container = get_container(mode='solo')
        session = container.boards.get("board-1")
    """
    resolved_mode = mode or Config.MODE
    cache_key = f"{resolved_mode}:provider={enable_provider}"

    if not force:
        with _container_lock:
            if cache_key in _container_cache:
                logger.debug(f"Returning cached container for {cache_key}")
                return _container_cache[cache_key]

    with _container_lock:
        if not force and cache_key in _container_cache:
            logger.debug(f"Returning cached container for {cache_key} (built by another thread)")
            return _container_cache[cache_key]

        logger.info(f"Building ServiceContainer for mode={resolved_mode}, provider={enable_provider}")

        # get_storage() reads Config.MODE
        original_mode = Config.MODE
        Config.MODE = resolved_mode

        try:
            # 1. Storage backends
            storage = Config.get_storage()
            legacy_storage = Config.get_legacy_storage()
            logger.debug(f"Storage initialized: {type(storage).__name__}"
                         + (f" (legacy: {type(legacy_storage).__name__})" if legacy_storage else ""))

            # 2. Generation provider
            provider = None
            if enable_provider:
                from ..providers import HttpGenerationProvider
                provider = HttpGenerationProvider()
                logger.debug(f"Generation provider initialized: {provider.base_url}")
            else:
                logger.debug("Generation provider skipped")

            # 3. Board sessions
            from .board import BoardManager
            boards = BoardManager(storage=storage, provider=provider, legacy_storage=legacy_storage)

            container = ServiceContainer(
                storage=storage,
                provider=provider,
                boards=boards,
                legacy_storage=legacy_storage,
                mode=resolved_mode,
                initialized_at=time.time()
            )

            _container_cache[cache_key] = container
            logger.info(f"ServiceContainer built and cached for {cache_key}")
            return container
        finally:
            Config.MODE = original_mode


def clear_cache():
    """Clear the container cache (useful for testing or forced rebuilds)"""
    with _container_lock:
        _container_cache.clear()
    logger.debug("Container cache cleared")
