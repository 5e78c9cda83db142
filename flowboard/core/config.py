"""
Configuration for Flowboard
"""
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Configuration class for Flowboard"""

    # Mode: "solo" (local JSON), "prod" (Supabase) or "remote" (canvas REST API)
    MODE: str = os.getenv("FLOWBOARD_MODE", "solo")

    # Storage configuration
    STORAGE_PATH: Optional[str] = os.getenv("FLOWBOARD_STORAGE_PATH")
    if STORAGE_PATH is None:
        STORAGE_PATH = str(Path.home() / ".flowboard" / "data")

    # Supabase configuration (for prod mode)
    SUPABASE_URL: Optional[str] = os.getenv("SUPABASE_URL")
    SUPABASE_KEY: Optional[str] = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

    # Canvas REST API (remote mode persistence) and generation provider endpoint
    CANVAS_API_URL: Optional[str] = os.getenv("FLOWBOARD_CANVAS_API_URL")
    PROVIDER_URL: str = os.getenv("FLOWBOARD_PROVIDER_URL", "http://localhost:7791")
    API_TOKEN: Optional[str] = os.getenv("FLOWBOARD_API_TOKEN")
    REQUEST_TIMEOUT: float = float(os.getenv("FLOWBOARD_REQUEST_TIMEOUT", "60"))

    # API server configuration
    API_HOST: str = os.getenv("FLOWBOARD_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("FLOWBOARD_PORT", "7790"))

    # Debug mode (set FLOWBOARD_DEBUG=true to enable)
    DEBUG: bool = os.getenv("FLOWBOARD_DEBUG", "").lower() in ("true", "1", "yes")

    # Execution polling (seconds)
    POLL_INITIAL_DELAY: float = float(os.getenv("FLOWBOARD_POLL_INITIAL_DELAY", "1.0"))
    POLL_INTERVAL: float = float(os.getenv("FLOWBOARD_POLL_INTERVAL", "2.0"))
    POLL_RETRY_INTERVAL: float = float(os.getenv("FLOWBOARD_POLL_RETRY_INTERVAL", "3.0"))

    # Quiet period before coalesced parameter edits are written
    WRITE_DEBOUNCE_SECONDS: float = float(os.getenv("FLOWBOARD_WRITE_DEBOUNCE", "0.5"))

    # Canvas geometry
    GRID_SNAP: int = int(os.getenv("FLOWBOARD_GRID_SNAP", "20"))
    COLLISION_PADDING: int = int(os.getenv("FLOWBOARD_COLLISION_PADDING", "20"))
    DEFAULT_NODE_WIDTH: int = int(os.getenv("FLOWBOARD_NODE_WIDTH", "320"))
    DEFAULT_NODE_HEIGHT: int = int(os.getenv("FLOWBOARD_NODE_HEIGHT", "400"))

    # Model used by uniform provider calls when the node does not pick one
    DEFAULT_MODEL: str = os.getenv("FLOWBOARD_DEFAULT_MODEL", "flux-2-pro")

    @classmethod
    def validate(cls) -> bool:
        """Validate configuration"""
        if cls.MODE == "prod":
            if not cls.SUPABASE_URL or not cls.SUPABASE_KEY:
                print("[CONFIG] Error: SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required for prod mode")
                return False
        if cls.MODE == "remote" and not cls.CANVAS_API_URL:
            print("[CONFIG] Error: FLOWBOARD_CANVAS_API_URL required for remote mode")
            return False
        if cls.POLL_INTERVAL <= 0 or cls.POLL_RETRY_INTERVAL <= 0:
            print("[CONFIG] Error: poll intervals must be positive")
            return False
        return True

    @classmethod
    def get_storage(cls):
        """Get storage instance based on mode"""
        from ..storage import LocalJSONStorage, SupabaseStorage, HttpCanvasStorage

        if cls.MODE == "prod":
            if not cls.SUPABASE_URL or not cls.SUPABASE_KEY:
                raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required for prod mode")
            return SupabaseStorage(cls.SUPABASE_URL, cls.SUPABASE_KEY)
        elif cls.MODE == "remote":
            if not cls.CANVAS_API_URL:
                raise ValueError("FLOWBOARD_CANVAS_API_URL required for remote mode")
            return HttpCanvasStorage(cls.CANVAS_API_URL, token=cls.API_TOKEN, timeout=cls.REQUEST_TIMEOUT)
        else:
            return LocalJSONStorage(cls.STORAGE_PATH)

    @classmethod
    def get_legacy_storage(cls):
        """Get the older card-API backend used as a not-found fallback (remote mode only)"""
        if cls.MODE != "remote" or not cls.CANVAS_API_URL:
            return None
        from ..storage import LegacyCardStorage
        return LegacyCardStorage(cls.CANVAS_API_URL, token=cls.API_TOKEN, timeout=cls.REQUEST_TIMEOUT)
