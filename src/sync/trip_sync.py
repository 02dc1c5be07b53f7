"""
Trip sync pipeline: persists submitted trips and folds their segments into crowd cells
"""
import threading
import zlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from config.logging_config import is_detailed_logging_enabled
from config.prediction_config import SYNC_CONFIG, TRAFFIC_LEVELS
from src.crowd.aggregator import CrowdAggregator, SampleContext
from src.models.trip import Trip, TripSegment
from src.models.vehicle import VariantCatalog
from src.storage.base import DataStore
from src.users.directory import UserDirectory
from src.utils.errors import EVRangeError, InvalidInput, NotFound, is_retryable
from src.utils.logger import error, get_logger, info, log_detailed, warning

logger = get_logger('trip_sync')

SYNCED = 'synced'
SKIPPED = 'skipped'        # already synced earlier
RETRYABLE = 'retryable'    # left unsynced, retried next cycle
FAILED = 'failed'          # rejected, resubmitting unchanged will fail again
CANCELLED = 'cancelled'

CLAIM_LOCK_STRIPES = 64


@dataclass(frozen=True)
class TripSyncOutcome:
    trip_id: Optional[str]
    status: str
    segments_created: int = 0
    segments_updated: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class SyncResult:
    user_id: str
    synced_count: int
    new_segments_created: int
    crowd_updates_applied: int
    sync_timestamp: datetime
    outcomes: Tuple[TripSyncOutcome, ...] = ()

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def cancelled(self) -> bool:
        return self.count(CANCELLED) > 0

    def to_response(self) -> Dict:
        return {
            'syncedCount': self.synced_count,
            'newSegmentsCreated': self.new_segments_created,
            'crowdUpdatesApplied': self.crowd_updates_applied,
            'syncTimestamp': self.sync_timestamp.isoformat(),
        }


class _CrowdApplicationError(Exception):
    """Carries partial crowd progress out of a failed trip"""

    def __init__(self, cause: BaseException, created: int, updated: int):
        super().__init__(str(cause))
        self.cause = cause
        self.created = created
        self.updated = updated


class TripSyncPipeline:
    """
    Idempotent trip ingestion.

    A trip is stored unsynced first, then each of its segments is applied to
    the crowd aggregator (when the user shares anonymous data), and finally the
    trip is marked synced. Trips already marked synced are skipped. A trip that
    fails part way keeps the number of segments already applied so the next
    attempt resumes after them. Concurrent batches carrying the same trip are
    serialized per (user, trip) within a pipeline, so only one applies it.
    """

    def __init__(self, store: DataStore, aggregator: CrowdAggregator, users: UserDirectory = None,
                 catalog: VariantCatalog = None, config: Dict = None):
        self.store = store
        self.aggregator = aggregator
        self.catalog = catalog or VariantCatalog()
        self.users = users or UserDirectory(store, self.catalog)
        self.config = dict(SYNC_CONFIG)
        if config:
            self.config.update(config)
        self.debug_mode = is_detailed_logging_enabled('sync_batches')
        self._claim_locks = [threading.Lock() for _ in range(CLAIM_LOCK_STRIPES)]

    def sync_trips(self, user_id: str, trips: Sequence[Union[Trip, Dict[str, Any]]],
                   cancel_event: threading.Event = None,
                   on_trip_done: Callable[[TripSyncOutcome], None] = None) -> SyncResult:
        """
        Sync a batch of trips for one user.

        Per-trip failures are reported as outcomes and never abort the batch.
        Setting ``cancel_event`` stops the batch before the next trip; trips
        already processed stay processed.
        """
        if not user_id:
            raise InvalidInput("user_id is required")
        if len(trips) > self.config['max_trips_per_batch']:
            raise InvalidInput(f"Batch of {len(trips)} trips exceeds the limit of "
                               f"{self.config['max_trips_per_batch']}")

        profile = self.users.get_or_create_user(user_id)
        share = profile.preferences.share_anonymous_data

        outcomes: List[TripSyncOutcome] = []
        for raw in trips:
            if cancel_event is not None and cancel_event.is_set():
                outcome = TripSyncOutcome(trip_id=self._raw_trip_id(raw), status=CANCELLED)
            else:
                outcome = self._sync_one(user_id, raw, share)
            outcomes.append(outcome)
            if on_trip_done is not None:
                on_trip_done(outcome)

        result = SyncResult(
            user_id=user_id,
            synced_count=sum(1 for o in outcomes if o.status == SYNCED),
            new_segments_created=sum(o.segments_created for o in outcomes),
            crowd_updates_applied=sum(o.segments_updated for o in outcomes),
            sync_timestamp=datetime.now(timezone.utc),
            outcomes=tuple(outcomes),
        )

        info(f"Sync for {user_id}: {result.synced_count} synced, {result.count(SKIPPED)} skipped, "
             f"{result.count(RETRYABLE)} retryable, {result.count(FAILED)} failed, "
             f"{result.count(CANCELLED)} cancelled; {result.new_segments_created} cells created, "
             f"{result.crowd_updates_applied} cells updated", 'trip_sync')
        if self.debug_mode:
            for o in outcomes:
                log_detailed(f"{o.trip_id}: {o.status} created={o.segments_created} "
                             f"updated={o.segments_updated} error={o.error}", "sync_batches", user_id)
        return result

    @staticmethod
    def _raw_trip_id(raw) -> Optional[str]:
        if isinstance(raw, Trip):
            return raw.trip_id
        if isinstance(raw, dict):
            return raw.get('tripId') or raw.get('trip_id') or raw.get('id')
        return None

    def _parse(self, user_id: str, raw) -> Trip:
        if isinstance(raw, Trip):
            trip = raw
        else:
            try:
                trip = Trip.model_validate(raw)
            except ValidationError as e:
                raise InvalidInput(f"Invalid trip record: {e}") from e
        if trip.user_id and trip.user_id != user_id:
            raise InvalidInput(f"Trip {trip.trip_id} belongs to {trip.user_id}, not {user_id}")
        return trip

    def _claim_lock(self, user_id: str, trip_id: str) -> threading.Lock:
        key = f"{user_id}:{trip_id}".encode('utf-8')
        return self._claim_locks[zlib.crc32(key) % len(self._claim_locks)]

    def _sync_one(self, user_id: str, raw, share: bool) -> TripSyncOutcome:
        trip_id = self._raw_trip_id(raw)
        try:
            trip = self._parse(user_id, raw)
            trip_id = trip.trip_id
            # The synced check and the crowd writes run under one claim per trip
            with self._claim_lock(user_id, trip_id):
                return self._sync_claimed(user_id, trip, share)
        except _CrowdApplicationError as e:
            return self._failure_outcome(trip_id, e.cause, e.created, e.updated)
        except Exception as e:
            return self._failure_outcome(trip_id, e)

    def _sync_claimed(self, user_id: str, trip: Trip, share: bool) -> TripSyncOutcome:
        applied = 0
        try:
            existing = self.store.get_trip(user_id, trip.trip_id)
        except NotFound:
            existing = None
        if existing is not None:
            if existing.synced:
                return TripSyncOutcome(trip_id=trip.trip_id, status=SKIPPED)
            applied = existing.crowd_segments_applied

        trip = trip.model_copy(update={
            'user_id': user_id,
            'synced': False,
            'synced_at': None,
            'crowd_segments_applied': applied,
            'created_at': (existing.created_at if existing else None) or datetime.now(timezone.utc),
        })
        self.store.put_trip(trip)

        created = updated = 0
        if share:
            created, updated, applied = self._apply_segments(trip, applied)

        try:
            self.store.put_trip(trip.model_copy(update={
                'synced': True,
                'synced_at': datetime.now(timezone.utc),
                'crowd_segments_applied': applied,
            }))
        except Exception as e:
            if applied > trip.crowd_segments_applied:
                self._record_progress(trip, applied)
            raise _CrowdApplicationError(e, created, updated) from e
        return TripSyncOutcome(trip_id=trip.trip_id, status=SYNCED,
                               segments_created=created, segments_updated=updated)

    def _failure_outcome(self, trip_id: Optional[str], exc: BaseException,
                         created: int = 0, updated: int = 0) -> TripSyncOutcome:
        if is_retryable(exc):
            warning(f"Trip {trip_id} left unsynced, will retry: {exc}", 'trip_sync')
            status = RETRYABLE
        elif isinstance(exc, EVRangeError):
            warning(f"Trip {trip_id} rejected: {exc}", 'trip_sync')
            status = FAILED
        else:
            error(f"Trip {trip_id} failed unexpectedly: {type(exc).__name__}: {exc}", 'trip_sync')
            status = FAILED
        return TripSyncOutcome(trip_id=trip_id, status=status, segments_created=created,
                               segments_updated=updated, error=str(exc))

    def _apply_segments(self, trip: Trip, start: int) -> Tuple[int, int, int]:
        """Apply segments from ``start`` on; returns (created, updated, applied)"""
        variant_id = self.catalog.resolve(trip.vehicle_state.variant_id).id
        created = updated = 0
        applied = start
        try:
            for segment in trip.segments[start:]:
                result = self.aggregator.ingest(segment.geohash, variant_id, segment.wh_per_km,
                                                self._context(trip, segment))
                created += int(result.created)
                updated += int(result.updated)
                applied += 1
        except Exception as e:
            if applied > start:
                self._record_progress(trip, applied)
            raise _CrowdApplicationError(e, created, updated) from e
        return created, updated, applied

    def _record_progress(self, trip: Trip, applied: int):
        try:
            self.store.put_trip(trip.model_copy(update={'crowd_segments_applied': applied}))
        except EVRangeError as e:
            warning(f"Could not record crowd progress for trip {trip.trip_id} "
                    f"({applied}/{len(trip.segments)} segments): {e}", 'trip_sync')

    @staticmethod
    def _context(trip: Trip, segment: TripSegment) -> SampleContext:
        return SampleContext(
            distance_km=segment.distance,
            elevation_change=segment.elevation_change,
            road_type=segment.road_type,
            temperature=trip.weather.avg_temperature,
            regen_level=trip.vehicle_state.regen_level,
            regen_recovery_wh_per_km=trip.regen_recovery_wh_per_km(),
            traffic_level=TRAFFIC_LEVELS[segment.traffic_level],
            avg_speed_kmh=segment.avg_speed,
            observed_at=trip.start_time,
        )
