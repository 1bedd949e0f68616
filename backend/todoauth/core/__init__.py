# Todo Auth Core Module
from .config import get_settings, settings
from .database import Base, async_session_maker, check_db_connection, engine, get_db
from .logging import setup_logging
from .redis import check_redis_connection, close_redis, get_redis

__all__ = [
    "settings",
    "get_settings",
    "setup_logging",
    "Base",
    "engine",
    "async_session_maker",
    "get_db",
    "check_db_connection",
    "get_redis",
    "check_redis_connection",
    "close_redis",
]
