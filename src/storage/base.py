"""
Abstract store consumed by the aggregator, predictor, user directory and sync pipeline
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional

from src.models.crowd import CrowdSegment
from src.models.trip import Trip
from src.models.user import UserProfile

# Version of a crowd cell that does not exist yet
ABSENT_VERSION = 0


@dataclass(frozen=True)
class VersionedSegment:
    segment: CrowdSegment
    version: int


@dataclass(frozen=True)
class TripPage:
    trips: List[Trip]
    next_cursor: Optional[str] = None


class DataStore(ABC):
    """
    Store interface with explicit lifecycle.

    Every operation on a store that is not open raises ``UpstreamUnavailable``.
    Lookups of unknown keys raise ``NotFound``. Crowd cell writes are
    conditional on the version read: ``put_segment`` raises ``VersionConflict``
    when the stored version is not ``expected_version`` (``ABSENT_VERSION``
    means the cell must not exist yet).
    """

    @abstractmethod
    def open(self) -> 'DataStore':
        pass

    @abstractmethod
    def close(self):
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # Users
    @abstractmethod
    def get_user(self, user_id: str) -> UserProfile:
        pass

    @abstractmethod
    def put_user(self, profile: UserProfile):
        pass

    # Crowd cells
    @abstractmethod
    def get_segment(self, cell: str) -> VersionedSegment:
        pass

    @abstractmethod
    def put_segment(self, cell: str, segment: CrowdSegment, expected_version: int) -> int:
        """Conditionally write a cell, returning its new version"""

    @abstractmethod
    def get_segments(self, cells: Iterable[str]) -> List[CrowdSegment]:
        """Batch point lookup; missing cells are absent from the result"""

    # Trips
    @abstractmethod
    def put_trip(self, trip: Trip):
        """Idempotent upsert keyed by (user id, trip id)"""

    @abstractmethod
    def get_trip(self, user_id: str, trip_id: str) -> Trip:
        pass

    @abstractmethod
    def get_trips(self, user_id: str, limit: int = 50, cursor: Optional[str] = None) -> TripPage:
        """Newest first, paged by an opaque cursor"""
