# Subscription sources - live queries over stored tag collections

from .base import LiveQuery, SubscriptionSource, Unsubscribe
from .memory_source import MemorySubscriptionSource
from .json_source import JSONSubscriptionSource
from .sqlite_source import SQLiteSubscriptionSource
from .mongodb_source import MongoDBSubscriptionSource

__all__ = [
    "LiveQuery",
    "SubscriptionSource",
    "Unsubscribe",
    "MemorySubscriptionSource",
    "JSONSubscriptionSource",
    "SQLiteSubscriptionSource",
    "MongoDBSubscriptionSource",
]
