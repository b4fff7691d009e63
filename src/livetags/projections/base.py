# /src/livetags/projections/base.py
# Abstract Projection base class

from abc import ABC, abstractmethod
from typing import Generic, List, TypeVar

from ..records.raw import RawRecord

T = TypeVar("T")


class Projection(ABC, Generic[T]):
    """Abstract base class for snapshot projections.

    A projection turns one snapshot (the ordered RawRecords a source
    delivered) into a consumer-facing value. Projections are pure: they
    never reorder the source's records or hold state between snapshots.
    """

    @abstractmethod
    def project(self, records: List[RawRecord]) -> T:
        """Project a snapshot into the target format.

        Args:
            records: RawRecords in the order the source delivered them

        Returns:
            The projected output
        """
        pass

    def __call__(self, records: List[RawRecord]) -> T:
        """Allow calling projection as a function."""
        return self.project(records)
