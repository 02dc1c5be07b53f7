from datetime import datetime, timedelta, timezone

import pytest

from src.crowd.aggregator import SampleContext, new_segment
from src.models.trip import Trip
from src.models.user import UserProfile
from src.storage.base import ABSENT_VERSION
from src.storage.file_store import FileStore
from src.storage.memory_store import MemoryStore, decode_cursor, encode_cursor
from src.utils.errors import InvalidInput, NotFound, UpstreamUnavailable, VersionConflict

CELL = 'te7ud2'
T0 = datetime(2026, 3, 1, 7, 0, tzinfo=timezone.utc)


def make_trip(trip_id, hours=0, user_id='user-1'):
    return Trip(trip_id=trip_id, user_id=user_id, start_time=T0 + timedelta(hours=hours),
                vehicle_state={'variantId': 'MR'})


def make_segment(value=140.0):
    return new_segment(CELL, 'MR', value, SampleContext(), T0)


class TestLifecycle:

    def test_closed_store_is_unavailable(self):
        store = MemoryStore()
        assert not store.is_open
        with pytest.raises(UpstreamUnavailable):
            store.get_segment(CELL)

    def test_context_manager(self):
        with MemoryStore() as store:
            assert store.is_open
        assert not store.is_open
        with pytest.raises(UpstreamUnavailable):
            store.put_user(UserProfile(user_id='u'))


class TestSegments:

    def test_conditional_create(self, store):
        assert store.put_segment(CELL, make_segment(), ABSENT_VERSION) == 1
        with pytest.raises(VersionConflict):
            store.put_segment(CELL, make_segment(), ABSENT_VERSION)

    def test_stale_version_rejected(self, store):
        store.put_segment(CELL, make_segment(), ABSENT_VERSION)
        store.put_segment(CELL, make_segment(150.0), 1)
        with pytest.raises(VersionConflict) as exc_info:
            store.put_segment(CELL, make_segment(160.0), 1)
        assert exc_info.value.retryable
        current = store.get_segment(CELL)
        assert current.version == 2
        assert current.segment.aggregated_data.avg_wh_per_km == 150.0

    def test_reads_are_copies(self, store):
        store.put_segment(CELL, make_segment(), ABSENT_VERSION)
        read = store.get_segment(CELL).segment
        read.sample_count = 99
        assert store.get_segment(CELL).segment.sample_count == 1

    def test_missing_cell(self, store):
        with pytest.raises(NotFound):
            store.get_segment(CELL)
        assert store.get_segments([CELL, CELL]) == []


class TestUsersAndTrips:

    def test_user_round_trip(self, store):
        store.put_user(UserProfile(user_id='u1', email='u1@example.com'))
        assert store.get_user('u1').email == 'u1@example.com'
        with pytest.raises(NotFound):
            store.get_user('u2')

    def test_put_trip_is_upsert(self, store):
        store.put_trip(make_trip('t1'))
        store.put_trip(make_trip('t1').model_copy(update={'synced': True}))
        assert store.get_trip('user-1', 't1').synced
        assert len(store.get_trips('user-1').trips) == 1

    def test_trip_needs_user(self, store):
        with pytest.raises(InvalidInput):
            store.put_trip(make_trip('t1', user_id=None))

    def test_paging_newest_first(self, store):
        for i in range(5):
            store.put_trip(make_trip(f't{i}', hours=i))

        first = store.get_trips('user-1', limit=2)
        assert [t.trip_id for t in first.trips] == ['t4', 't3']
        second = store.get_trips('user-1', limit=2, cursor=first.next_cursor)
        assert [t.trip_id for t in second.trips] == ['t2', 't1']
        last = store.get_trips('user-1', limit=2, cursor=second.next_cursor)
        assert [t.trip_id for t in last.trips] == ['t0']
        assert last.next_cursor is None

    def test_mixed_offsets_page_in_utc_order(self, store):
        for trip_id, start in [('ist', '2026-03-03T08:30:00+05:30'), ('naive', '2026-03-03T04:00:00'),
                               ('zulu', '2026-03-03T03:30:00Z')]:
            store.put_trip(Trip.model_validate({'tripId': trip_id, 'userId': 'user-1', 'startTime': start,
                                                'vehicleState': {'variantId': 'MR'}}))

        page = store.get_trips('user-1')
        assert [t.trip_id for t in page.trips] == ['naive', 'zulu', 'ist']
        assert all(t.start_time.tzinfo == timezone.utc for t in page.trips)
        assert page.trips[2].start_time.hour == 3

    def test_trips_isolated_per_user(self, store):
        store.put_trip(make_trip('t1'))
        assert store.get_trips('user-2').trips == []

    def test_cursor_format(self):
        assert decode_cursor(encode_cursor(17)) == 17
        for bad in ('garbage!', encode_cursor(-1), 'b2Zmc2V0Onh5eg=='):
            with pytest.raises(InvalidInput):
                decode_cursor(bad)


class TestFileStore:

    def test_snapshot_survives_reopen(self, tmp_path):
        path = str(tmp_path / 'data' / 'store.pkl.gz')
        with FileStore(path) as store:
            store.put_user(UserProfile(user_id='u1'))
            store.put_segment(CELL, make_segment(), ABSENT_VERSION)
            store.put_trip(make_trip('t1'))

        with FileStore(path) as reopened:
            assert reopened.get_user('u1').user_id == 'u1'
            assert reopened.get_segment(CELL).version == 1
            assert reopened.get_trip('user-1', 't1').trip_id == 't1'

    def test_missing_snapshot_opens_empty(self, tmp_path):
        store = FileStore(str(tmp_path / 'none.pkl.gz')).open()
        assert not store.snapshot_exists()
        assert store.get_segments([CELL]) == []
        store.close()
        assert store.snapshot_exists()

    def test_corrupt_snapshot(self, tmp_path):
        path = tmp_path / 'store.pkl.gz'
        path.write_bytes(b'not a gzip file')
        with pytest.raises(UpstreamUnavailable):
            FileStore(str(path)).open()
