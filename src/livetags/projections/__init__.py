# Snapshot projections - consumer views derived from raw records

from .base import Projection
from .tag import MalformedRecordError, TagProjection

__all__ = [
    "Projection",
    "TagProjection",
    "MalformedRecordError",
]
