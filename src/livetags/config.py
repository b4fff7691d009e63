# /src/livetags/config.py
# Configuration loaded from the environment (and an optional .env file)

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

from .live import LiveProjection
from .projections.tag import TagProjection
from .records.timestamps import DISPLAY_FORMAT
from .sources.base import SubscriptionSource
from .sources.json_source import JSONSubscriptionSource
from .sources.memory_source import MemorySubscriptionSource
from .sources.mongodb_source import MongoDBSubscriptionSource
from .sources.sqlite_source import SQLiteSubscriptionSource


class SourceBackend(str, Enum):
    """Supported subscription source backends"""
    MEMORY = "memory"
    JSON = "json"
    SQLITE = "sqlite"
    MONGODB = "mongodb"


@dataclass
class LiveTagsConfig:
    """Settings for building sources and projections."""
    backend: SourceBackend = SourceBackend.MEMORY
    collection: str = "tags"
    storage_dir: str = "./livetags_data"
    sqlite_path: str = "./livetags.db"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "livetags"
    date_format: str = DISPLAY_FORMAT
    timezone: str = "UTC"
    source_options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "LiveTagsConfig":
        """Read LIVETAGS_* variables, loading env_file (or ./.env) first."""
        load_dotenv(env_file)
        defaults = cls()
        return cls(
            backend=SourceBackend(os.getenv("LIVETAGS_BACKEND", defaults.backend.value).lower()),
            collection=os.getenv("LIVETAGS_COLLECTION", defaults.collection),
            storage_dir=os.getenv("LIVETAGS_STORAGE_DIR", defaults.storage_dir),
            sqlite_path=os.getenv("LIVETAGS_SQLITE_PATH", defaults.sqlite_path),
            mongodb_uri=os.getenv("LIVETAGS_MONGODB_URI", defaults.mongodb_uri),
            mongodb_database=os.getenv("LIVETAGS_MONGODB_DATABASE", defaults.mongodb_database),
            date_format=os.getenv("LIVETAGS_DATE_FORMAT", defaults.date_format),
            timezone=os.getenv("LIVETAGS_TIMEZONE", defaults.timezone),
        )


def create_source(config: LiveTagsConfig) -> SubscriptionSource:
    """Build the source selected by config.backend (not yet initialized)."""
    options = dict(config.source_options)
    if config.backend == SourceBackend.MEMORY:
        return MemorySubscriptionSource(**options)
    elif config.backend == SourceBackend.JSON:
        return JSONSubscriptionSource(
            storage_dir=config.storage_dir,
            collection=config.collection,
            **options
        )
    elif config.backend == SourceBackend.SQLITE:
        return SQLiteSubscriptionSource(
            db_path=config.sqlite_path,
            collection=config.collection,
            **options
        )
    elif config.backend == SourceBackend.MONGODB:
        return MongoDBSubscriptionSource(
            connection_string=config.mongodb_uri,
            database_name=config.mongodb_database,
            collection_name=config.collection,
            **options
        )
    else:
        raise ValueError(f"Unsupported source backend: {config.backend}")


def create_projection(
    config: LiveTagsConfig,
    source: Optional[SubscriptionSource] = None
) -> LiveProjection:
    """Build a LiveProjection with the configured display format."""
    tag_projection = TagProjection(
        date_format=config.date_format,
        display_tz=ZoneInfo(config.timezone)
    )
    return LiveProjection(source or create_source(config), projection=tag_projection)
