"""
Storage module for Flowboard
"""
from .base import StorageInterface
from .local_json import LocalJSONStorage
from .supabase import SupabaseStorage
from .http import HttpCanvasStorage, LegacyCardStorage

__all__ = ['StorageInterface', 'LocalJSONStorage', 'SupabaseStorage', 'HttpCanvasStorage', 'LegacyCardStorage']
