import threading
import time

import pytest

from src.crowd.aggregator import CrowdAggregator
from src.storage.memory_store import MemoryStore
from src.sync.trip_sync import CANCELLED, FAILED, RETRYABLE, SKIPPED, SYNCED, TripSyncPipeline
from src.users.directory import UserDirectory
from src.utils.errors import InvalidInput, NotFound, UpstreamUnavailable, VersionConflict
from src.utils.geohash import geohash

USER = 'user-1'
CELLS = [geohash(18.52, 73.85 + i * 0.05) for i in range(6)]


def make_trip(trip_id, cells=None, wh_per_km=140.0, variant='MR', start='2026-03-02T08:30:00+05:30', **extra):
    cells = CELLS[:2] if cells is None else cells
    trip = {
        'tripId': trip_id,
        'startTime': start,
        'endTime': '2026-03-02T09:10:00+05:30',
        'distance': 2.0 * len(cells),
        'energyUsed': 0.28 * len(cells),
        'startSoC': 80,
        'endSoC': 78,
        'weather': {'avgTemperature': 31, 'avgHumidity': 60, 'avgWindSpeed': 8, 'conditions': 'clear'},
        'vehicleState': {'variantId': variant, 'regenLevel': 2, 'hvacOn': True, 'hvacMode': 'cooling',
                         'hvacTemperature': 22, 'payload': 150, 'tirePressure': 35, 'batteryHealth': 97},
        'consumption': {'totalWhPerKm': wh_per_km, 'regenRecovered': 40},
        'segments': [
            {'startIndex': i, 'endIndex': i + 1, 'geohash': cell, 'distance': 2.0, 'elevationChange': 4,
             'avgSpeed': 35, 'whPerKm': wh_per_km, 'roadType': 'city', 'trafficLevel': 'moderate'}
            for i, cell in enumerate(cells)
        ],
    }
    trip.update(extra)
    return trip


class FlakyStore(MemoryStore):
    def __init__(self, fail_cells=()):
        super().__init__()
        self.fail_cells = set(fail_cells)

    def put_segment(self, cell, segment, expected_version):
        if cell in self.fail_cells:
            raise UpstreamUnavailable(f"write to {cell} timed out")
        return super().put_segment(cell, segment, expected_version)


class AlwaysConflictingStore(MemoryStore):
    def put_segment(self, cell, segment, expected_version):
        raise VersionConflict(cell, expected_version, expected_version + 1)


class SyncedWriteFailsOnceStore(MemoryStore):
    """Loses the first write that marks a trip synced"""

    def __init__(self):
        super().__init__()
        self.failed = False

    def put_trip(self, trip):
        if trip.synced and not self.failed:
            self.failed = True
            raise UpstreamUnavailable("trip write timed out")
        return super().put_trip(trip)


class SlowTripReadStore(MemoryStore):
    def get_trip(self, user_id, trip_id):
        time.sleep(0.05)
        return super().get_trip(user_id, trip_id)


def make_pipeline(store, **aggregator_config):
    aggregator = CrowdAggregator(store, config=aggregator_config or None, sleep=lambda _: None)
    return TripSyncPipeline(store, aggregator)


@pytest.fixture
def pipeline(store):
    return make_pipeline(store)


def sample_count(store, cell):
    return store.get_segment(cell).segment.sample_count


class TestSync:

    def test_new_trips_create_cells(self, pipeline, store):
        result = pipeline.sync_trips(USER, [make_trip('t1', CELLS[:2]), make_trip('t2', CELLS[2:4])])
        assert result.synced_count == 2
        assert result.new_segments_created == 4
        assert result.crowd_updates_applied == 0
        assert store.get_trip(USER, 't1').synced

    def test_shared_cells_are_updated(self, pipeline, store):
        result = pipeline.sync_trips(USER, [make_trip('t1'), make_trip('t2')])
        assert result.new_segments_created == 2
        assert result.crowd_updates_applied == 2
        assert sample_count(store, CELLS[0]) == 2

    def test_response_shape(self, pipeline):
        response = pipeline.sync_trips(USER, [make_trip('t1')]).to_response()
        assert set(response) == {'syncedCount', 'newSegmentsCreated', 'crowdUpdatesApplied', 'syncTimestamp'}
        assert 'T' in response['syncTimestamp']

    def test_unknown_user_gets_default_profile(self, pipeline, store):
        with pytest.raises(NotFound):
            store.get_user(USER)
        pipeline.sync_trips(USER, [])
        profile = store.get_user(USER)
        assert profile.vehicle_config.variant_id == 'MR'
        assert profile.preferences.share_anonymous_data

    def test_secondary_breakdowns_recorded(self, pipeline, store):
        pipeline.sync_trips(USER, [make_trip('t1', CELLS[:1])])
        segment = store.get_segment(CELLS[0]).segment
        assert segment.aggregated_data.by_temperature_range['hot'].count == 1
        assert segment.aggregated_data.by_regen_level[2].avg_recovery == pytest.approx(40 / 2.0)
        pattern = segment.find_traffic_pattern(1, 3)   # 08:30+05:30 is 03:00 UTC
        assert pattern.avg_traffic_level == 2


class TestIdempotence:

    def test_resubmitting_does_not_double_count(self, pipeline, store):
        trips = [make_trip('t1'), make_trip('t2', CELLS[2:4])]
        pipeline.sync_trips(USER, trips)
        again = pipeline.sync_trips(USER, trips)

        assert again.synced_count == 0
        assert again.count(SKIPPED) == 2
        assert again.new_segments_created == 0
        assert again.crowd_updates_applied == 0
        assert sample_count(store, CELLS[0]) == 1

    def test_mixed_batch_counts_only_new_trips(self, pipeline, store):
        pipeline.sync_trips(USER, [make_trip('t1')])
        result = pipeline.sync_trips(USER, [make_trip('t1'), make_trip('t2')])
        assert result.synced_count == 1
        assert sample_count(store, CELLS[0]) == 2

    def test_duplicate_in_same_batch(self, pipeline, store):
        result = pipeline.sync_trips(USER, [make_trip('t1'), make_trip('t1')])
        assert [o.status for o in result.outcomes] == [SYNCED, SKIPPED]
        assert sample_count(store, CELLS[0]) == 1


class TestSharingPreference:

    def test_opted_out_user_contributes_nothing(self, store, pipeline):
        UserDirectory(store).update_preferences(USER, {'shareAnonymousData': False})
        result = pipeline.sync_trips(USER, [make_trip('t1')])

        assert result.synced_count == 1
        assert result.new_segments_created == 0
        assert store.get_segments(CELLS) == []
        assert store.get_trip(USER, 't1').synced


class TestFailures:

    def test_bad_trip_does_not_abort_batch(self, pipeline):
        bad = make_trip('bad')
        del bad['vehicleState']
        result = pipeline.sync_trips(USER, [make_trip('t1'), bad, make_trip('t2', CELLS[2:4])])

        assert [o.status for o in result.outcomes] == [SYNCED, FAILED, SYNCED]
        assert result.synced_count == 2
        assert result.outcomes[1].trip_id == 'bad'

    def test_invalid_segment_geohash_rejected(self, pipeline):
        trip = make_trip('t1')
        trip['segments'][0]['geohash'] = 'not-a-hash'
        result = pipeline.sync_trips(USER, [trip])
        assert result.outcomes[0].status == FAILED

    def test_foreign_trip_rejected(self, pipeline):
        result = pipeline.sync_trips(USER, [make_trip('t1', userId='someone-else')])
        assert result.outcomes[0].status == FAILED

    def test_store_failure_is_retryable_and_resumes(self):
        store = FlakyStore(fail_cells={CELLS[1]}).open()
        pipeline = make_pipeline(store)
        trip = make_trip('t1', CELLS[:3])

        first = pipeline.sync_trips(USER, [trip])
        assert first.outcomes[0].status == RETRYABLE
        assert first.synced_count == 0
        stored = store.get_trip(USER, 't1')
        assert not stored.synced
        assert stored.crowd_segments_applied == 1

        store.fail_cells.clear()
        second = pipeline.sync_trips(USER, [trip])
        assert second.synced_count == 1
        assert second.new_segments_created == 2
        assert [sample_count(store, c) for c in CELLS[:3]] == [1, 1, 1]
        assert store.get_trip(USER, 't1').synced

    def test_failed_final_write_keeps_crowd_progress(self):
        store = SyncedWriteFailsOnceStore().open()
        pipeline = make_pipeline(store)
        trip = make_trip('t1')

        first = pipeline.sync_trips(USER, [trip])
        outcome = first.outcomes[0]
        assert outcome.status == RETRYABLE
        assert outcome.segments_created == 2
        assert store.get_trip(USER, 't1').crowd_segments_applied == 2

        second = pipeline.sync_trips(USER, [trip])
        assert second.synced_count == 1
        assert second.new_segments_created == 0
        assert second.crowd_updates_applied == 0
        assert [sample_count(store, c) for c in CELLS[:2]] == [1, 1]

    def test_conflict_exhaustion_is_retryable(self):
        store = AlwaysConflictingStore().open()
        pipeline = make_pipeline(store, max_update_retries=2)
        result = pipeline.sync_trips(USER, [make_trip('t1')])
        assert result.outcomes[0].status == RETRYABLE
        assert not store.get_trip(USER, 't1').synced

    def test_batch_limit(self, store):
        pipeline = TripSyncPipeline(store, CrowdAggregator(store), config={'max_trips_per_batch': 2})
        with pytest.raises(InvalidInput):
            pipeline.sync_trips(USER, [make_trip(f't{i}') for i in range(3)])


class TestVariants:

    def test_alias_is_canonicalised(self, pipeline, store):
        pipeline.sync_trips(USER, [make_trip('t1', CELLS[:1], variant='nexon_ev_lr')])
        assert set(store.get_segment(CELLS[0]).segment.aggregated_data.by_variant) == {'LR'}

    def test_unknown_variant_falls_back_to_default(self, pipeline, store):
        result = pipeline.sync_trips(USER, [make_trip('t1', CELLS[:1], variant='mystery_ev')])
        assert result.synced_count == 1
        assert set(store.get_segment(CELLS[0]).segment.aggregated_data.by_variant) == {'MR'}


class TestCancellation:

    def test_cancel_before_start(self, pipeline, store):
        cancel = threading.Event()
        cancel.set()
        result = pipeline.sync_trips(USER, [make_trip('t1'), make_trip('t2')], cancel_event=cancel)
        assert result.cancelled
        assert result.count(CANCELLED) == 2
        assert store.get_segments(CELLS) == []

    def test_cancel_between_trips(self, pipeline, store):
        cancel = threading.Event()
        result = pipeline.sync_trips(
            USER, [make_trip('t1'), make_trip('t2'), make_trip('t3')],
            cancel_event=cancel, on_trip_done=lambda outcome: cancel.set(),
        )
        assert [o.status for o in result.outcomes] == [SYNCED, CANCELLED, CANCELLED]
        assert [o.trip_id for o in result.outcomes] == ['t1', 't2', 't3']

        resumed = pipeline.sync_trips(USER, [make_trip('t1'), make_trip('t2'), make_trip('t3')])
        assert resumed.synced_count == 2
        assert sample_count(store, CELLS[0]) == 3


class TestConcurrentBatches:

    def test_same_trip_in_parallel_batches_applies_once(self):
        store = SlowTripReadStore().open()
        pipeline = make_pipeline(store)
        barrier = threading.Barrier(2)
        results = []

        def submit():
            barrier.wait()
            results.append(pipeline.sync_trips(USER, [make_trip('t1')]))

        threads = [threading.Thread(target=submit) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(r.outcomes[0].status for r in results) == [SKIPPED, SYNCED]
        assert [sample_count(store, c) for c in CELLS[:2]] == [1, 1]
