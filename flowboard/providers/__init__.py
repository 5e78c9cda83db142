"""
Generation providers for Flowboard
"""
from ..core.types import GenerationProviderProtocol as GenerationProvider
from .http import HttpGenerationProvider

__all__ = ["GenerationProvider", "HttpGenerationProvider"]
