# /src/livetags/__init__.py
# LiveTags - live, ordered tag views over subscription sources

from .live import LiveProjection, ProjectionState, SubscriptionHandle
from .tag import Tag
from .config import LiveTagsConfig, SourceBackend, create_projection, create_source
from .actor import Actor, Agent, CallMode, ServiceInterface, create_actor, default_host

# Records
from .records import (
    FinalizedTimestamp,
    PendingTimestamp,
    RawRecord,
    ServerTimestamps,
    SortDirection,
    SubscriptionFailure,
)

# Sources
from .sources import (
    LiveQuery,
    SubscriptionSource,
    MemorySubscriptionSource,
    JSONSubscriptionSource,
    SQLiteSubscriptionSource,
    MongoDBSubscriptionSource,
)

# Projections
from .projections import (
    Projection,
    TagProjection,
    MalformedRecordError,
)

__version__ = "1.0.0"

__all__ = [
    # Core
    "LiveProjection",
    "ProjectionState",
    "SubscriptionHandle",
    "Tag",
    # Config
    "LiveTagsConfig",
    "SourceBackend",
    "create_projection",
    "create_source",
    # Remote actors
    "Actor",
    "Agent",
    "CallMode",
    "ServiceInterface",
    "create_actor",
    "default_host",
    # Records
    "FinalizedTimestamp",
    "PendingTimestamp",
    "RawRecord",
    "ServerTimestamps",
    "SortDirection",
    "SubscriptionFailure",
    # Sources
    "LiveQuery",
    "SubscriptionSource",
    "MemorySubscriptionSource",
    "JSONSubscriptionSource",
    "SQLiteSubscriptionSource",
    "MongoDBSubscriptionSource",
    # Projections
    "Projection",
    "TagProjection",
    "MalformedRecordError",
]
