"""
Thread-safe in-process store with per-key lock striping and optimistic versioning
"""
import base64
import copy
import threading
import zlib
from typing import Dict, Iterable, List, Optional, Tuple

from config.ev_config import STORE_CONFIG
from src.models.crowd import CrowdSegment
from src.models.trip import Trip
from src.models.user import UserProfile
from src.storage.base import ABSENT_VERSION, DataStore, TripPage, VersionedSegment
from src.utils.errors import InvalidInput, NotFound, UpstreamUnavailable, VersionConflict
from src.utils.logger import get_logger

logger = get_logger('store')


def encode_cursor(offset: int) -> str:
    return base64.urlsafe_b64encode(f"offset:{offset}".encode()).decode()


def decode_cursor(cursor: str) -> int:
    try:
        prefix, _, value = base64.urlsafe_b64decode(cursor.encode()).decode().partition(':')
        offset = int(value)
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidInput(f"Malformed trip cursor: {cursor!r}") from e
    if prefix != 'offset' or offset < 0:
        raise InvalidInput(f"Malformed trip cursor: {cursor!r}")
    return offset


class MemoryStore(DataStore):
    """
    In-memory store.

    Writers to the same key serialize on one of ``lock_stripes`` locks; writers
    to keys in different stripes never wait on each other. Values are deep
    copied on the way in and out so callers never share mutable state.
    """

    def __init__(self, lock_stripes: int = None):
        stripes = lock_stripes or STORE_CONFIG['lock_stripes']
        self._locks = [threading.Lock() for _ in range(stripes)]
        self._users: Dict[str, UserProfile] = {}
        self._segments: Dict[str, Tuple[int, CrowdSegment]] = {}
        self._trips: Dict[str, Dict[str, Trip]] = {}
        self._open = False

    # Lifecycle
    def open(self) -> 'MemoryStore':
        self._open = True
        return self

    def close(self):
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def _check_open(self):
        if not self._open:
            raise UpstreamUnavailable(f"{type(self).__name__} is not open")

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[zlib.crc32(key.encode()) % len(self._locks)]

    # Users
    def get_user(self, user_id: str) -> UserProfile:
        self._check_open()
        profile = self._users.get(user_id)
        if profile is None:
            raise NotFound('user', user_id)
        return profile.model_copy(deep=True)

    def put_user(self, profile: UserProfile):
        self._check_open()
        with self._lock_for(f"user:{profile.user_id}"):
            self._users[profile.user_id] = profile.model_copy(deep=True)

    # Crowd cells
    def get_segment(self, cell: str) -> VersionedSegment:
        self._check_open()
        entry = self._segments.get(cell)
        if entry is None:
            raise NotFound('crowd segment', cell)
        version, segment = entry
        return VersionedSegment(segment=copy.deepcopy(segment), version=version)

    def put_segment(self, cell: str, segment: CrowdSegment, expected_version: int) -> int:
        self._check_open()
        with self._lock_for(f"cell:{cell}"):
            current = self._segments.get(cell)
            current_version = current[0] if current else ABSENT_VERSION
            if current_version != expected_version:
                raise VersionConflict(cell, expected_version, current_version)
            new_version = current_version + 1
            self._segments[cell] = (new_version, copy.deepcopy(segment))
        logger.debug(f"Wrote crowd cell {cell} at version {new_version}")
        return new_version

    def get_segments(self, cells: Iterable[str]) -> List[CrowdSegment]:
        self._check_open()
        found = []
        for cell in dict.fromkeys(cells):
            entry = self._segments.get(cell)
            if entry is not None:
                found.append(copy.deepcopy(entry[1]))
        return found

    # Trips
    def put_trip(self, trip: Trip):
        self._check_open()
        if not trip.user_id:
            raise InvalidInput(f"Trip {trip.trip_id} has no user id")
        with self._lock_for(f"trips:{trip.user_id}"):
            self._trips.setdefault(trip.user_id, {})[trip.trip_id] = trip.model_copy(deep=True)

    def get_trip(self, user_id: str, trip_id: str) -> Trip:
        self._check_open()
        trip = self._trips.get(user_id, {}).get(trip_id)
        if trip is None:
            raise NotFound('trip', trip_id)
        return trip.model_copy(deep=True)

    def get_trips(self, user_id: str, limit: int = 50, cursor: Optional[str] = None) -> TripPage:
        self._check_open()
        if limit <= 0:
            raise InvalidInput(f"limit must be positive: {limit}")
        offset = decode_cursor(cursor) if cursor else 0

        with self._lock_for(f"trips:{user_id}"):
            trips = list(self._trips.get(user_id, {}).values())
        trips.sort(key=lambda t: t.start_time, reverse=True)

        page = trips[offset:offset + limit]
        next_offset = offset + len(page)
        next_cursor = encode_cursor(next_offset) if next_offset < len(trips) else None
        return TripPage(trips=[t.model_copy(deep=True) for t in page], next_cursor=next_cursor)

    # Snapshots for persistent subclasses
    def _export(self) -> Dict:
        return {
            'users': copy.deepcopy(self._users),
            'segments': copy.deepcopy(self._segments),
            'trips': copy.deepcopy(self._trips),
        }

    def _import(self, data: Dict):
        self._users = data.get('users', {})
        self._segments = data.get('segments', {})
        self._trips = data.get('trips', {})
