import json
import signal

import pytest
from pydantic import ValidationError

from app.cli import main
from app.services.config_service import (
    RuntimeOverrides,
    load_overrides,
    merged_runtime_config,
    save_overrides,
)
from app.services.event_channel import PREDICTION_COMPLETED, SYNC_COMPLETED, EventChannel
from app.services.range_service import RangeService, build_store
from src.models.requests import PredictionRequest
from src.storage.file_store import FileStore
from src.storage.memory_store import MemoryStore
from src.utils.errors import InvalidInput, UpstreamUnavailable
from src.utils.geohash import geohash

USER = 'user-7'
ORIGIN = {'lat': 18.5204, 'lng': 73.8567, 'elevation': 560}
DESTINATION = {'lat': 18.60, 'lng': 73.90, 'elevation': 600}


def prediction_request(variant='MR', **extra):
    request = {
        'origin': ORIGIN,
        'destination': DESTINATION,
        'vehicleState': {'variantId': variant, 'currentSoC': 80, 'regenLevel': 2},
        'departureTime': '2026-03-02T08:30:00',
        'estimatedDurationMin': 20,
        'weather': {'temperature': 33, 'windSpeed': 5},
    }
    request.update(extra)
    return request


def origin_trip(trip_id, wh_per_km=150.0, hour=8):
    return {
        'tripId': trip_id,
        'startTime': f'2026-03-02T{hour:02d}:00:00',
        'distance': 1.5,
        'energyUsed': 0.225,
        'vehicleState': {'variantId': 'MR'},
        'segments': [{'geohash': geohash(ORIGIN['lat'], ORIGIN['lng'], 6), 'distance': 1.5,
                      'whPerKm': wh_per_km}],
    }


@pytest.fixture
def config(tmp_path):
    return merged_runtime_config(tmp_path / 'absent.yaml')


@pytest.fixture
def service(config):
    with RangeService(store=MemoryStore(), config=config) as range_service:
        yield range_service


class TestConfigService:

    def test_defaults_without_file(self, tmp_path):
        overrides = load_overrides(tmp_path / 'absent.yaml')
        assert overrides.prediction.crowd_confidence_threshold == 0.5
        assert overrides.crowd.max_update_retries == 5

    def test_merged_config_keeps_python_only_keys(self, config):
        assert config['prediction']['high_confidence_threshold'] == 0.7
        assert config['crowd']['temperature_bands'] == {'cold': 15.0, 'hot': 30.0}
        assert config['physics']['gravity'] == 9.81
        assert config['store']['backend'] == 'memory'

    def test_round_trip(self, tmp_path):
        path = tmp_path / 'overrides.yaml'
        overrides = RuntimeOverrides()
        overrides.prediction.crowd_query_timeout_s = 0.5
        save_overrides(overrides, path)

        assert load_overrides(path).prediction.crowd_query_timeout_s == 0.5
        assert merged_runtime_config(path)['prediction']['crowd_query_timeout_s'] == 0.5

    @pytest.mark.parametrize("content", [
        "prediction:\n  crowd_blend_weight: 0.8\n  crowd_blend_floor: 0.3\n",
        "crowd:\n  max_update_retries: 0\n",
        "store:\n  backend: redis\n",
    ])
    def test_invalid_overrides_rejected(self, tmp_path, content):
        path = tmp_path / 'overrides.yaml'
        path.write_text(content)
        with pytest.raises(ValidationError):
            load_overrides(path)

    def test_build_store(self, tmp_path):
        assert isinstance(build_store({'backend': 'memory'}), MemoryStore)
        store = build_store({'backend': 'file', 'file_path': str(tmp_path / 's.pkl.gz'), 'lock_stripes': 8})
        assert isinstance(store, FileStore)
        assert len(store._locks) == 8


class TestEventChannel:

    def test_topic_filter(self):
        channel = EventChannel()
        sync_only = channel.subscribe([SYNC_COMPLETED])
        everything = channel.subscribe()

        assert channel.publish(PREDICTION_COMPLETED, 'p') == 1
        assert channel.publish(SYNC_COMPLETED, 's') == 2
        assert [e.payload for e in sync_only.drain()] == ['s']
        assert [e.topic for e in everything.drain()] == [PREDICTION_COMPLETED, SYNC_COMPLETED]

    def test_full_queue_drops(self):
        channel = EventChannel(maxsize=1)
        subscription = channel.subscribe()
        channel.publish(SYNC_COMPLETED, 1)
        assert channel.publish(SYNC_COMPLETED, 2) == 0
        assert subscription.dropped == 1
        assert channel.stats() == {'subscribers': 1, 'dropped': 1}

    def test_unsubscribe(self):
        channel = EventChannel()
        subscription = channel.subscribe()
        subscription.close()
        assert channel.publish(SYNC_COMPLETED, 1) == 0


class TestRangeService:

    def test_not_usable_before_open(self, config):
        service = RangeService(store=MemoryStore(), config=config)
        with pytest.raises(UpstreamUnavailable):
            service.predict(prediction_request())

    def test_predict_response(self, service):
        response = service.predict_response(prediction_request())
        assert response['estimatedEnergyWh'] > 0
        assert response['estimatedRangeKm'] > 0
        assert not response['crowdDataAvailable']
        assert len(response['segments']) == 1

    def test_invalid_request(self, service):
        request = prediction_request()
        del request['destination']
        with pytest.raises(InvalidInput):
            service.predict(request)

    def test_unknown_variant_predicts_with_default(self, service):
        request = PredictionRequest.model_validate(prediction_request(variant='roadster'))
        assert service.vehicle_state(request).variant.id == 'MR'
        assert service.predict(request).energy_consumption_kwh > 0

    def test_events_published(self, service):
        subscription = service.events.subscribe()
        service.predict(prediction_request())
        service.sync({'userId': USER, 'trips': [origin_trip('t1')]})
        topics = [e.topic for e in subscription.drain()]
        assert topics == [PREDICTION_COMPLETED, SYNC_COMPLETED]

    def test_synced_trips_feed_predictions(self, service):
        result = service.sync({'userId': USER, 'trips': [origin_trip(f't{i}') for i in range(60)]})
        assert result.synced_count == 60
        assert result.new_segments_created == 1
        assert result.crowd_updates_applied == 59

        prediction = service.predict(prediction_request())
        assert prediction.crowd_data_available
        assert prediction.segments[0].crowd_data_used
        assert prediction.confidence == pytest.approx(1.0)

    def test_crowd_queries(self, service):
        service.sync({'userId': USER, 'trips': [origin_trip('t1')]})
        cell = geohash(ORIGIN['lat'], ORIGIN['lng'], 6)

        assert service.get_crowd_by_geohash(cell).sample_count == 1
        assert service.get_crowd_segments([cell])['notFound'] == []
        stats = service.get_route_crowd_data([ORIGIN, DESTINATION])['statistics']
        assert stats['totalSegments'] == 1

    def test_user_profile_updates(self, service):
        profile = service.get_user(USER)
        assert profile.vehicle_config.variant_id == 'MR'

        updated = service.update_vehicle_config(USER, {'variantId': 'nexon_ev_lr', 'batteryHealth': 92})
        assert updated.vehicle_config.variant_id == 'LR'
        assert updated.vehicle_config.battery_health == 92
        assert service.get_user(USER).vehicle_config.variant_id == 'LR'

        prefs = service.update_preferences(USER, {'shareAnonymousData': False})
        assert not prefs.preferences.share_anonymous_data
        assert prefs.vehicle_config.variant_id == 'LR'

    @pytest.mark.parametrize("patch", [{'colour': 'red'}, {'variantId': 'roadster'}])
    def test_invalid_vehicle_config_patch(self, service, patch):
        with pytest.raises(InvalidInput):
            service.update_vehicle_config(USER, patch)

    def test_trip_paging_and_summary(self, service):
        service.sync({'userId': USER, 'trips': [origin_trip(f't{i}', hour=i) for i in range(5)]})

        page = service.get_trips(USER, limit=3)
        assert [t['tripId'] for t in page['trips']] == ['t4', 't3', 't2']
        rest = service.get_trips(USER, limit=3, cursor=page['continuationToken'])
        assert [t['tripId'] for t in rest['trips']] == ['t1', 't0']
        assert rest['continuationToken'] is None

        with pytest.raises(InvalidInput):
            service.get_trips(USER, limit=1000)

        summary = service.trip_summary(USER)
        assert summary['trip_count'] == 5
        assert summary['total_distance_km'] == pytest.approx(7.5)
        assert summary['avg_wh_per_km'] == pytest.approx(150.0)
        assert summary['by_variant']['MR']['trips'] == 5

    def test_summary_with_mixed_offsets(self, service):
        local = {**origin_trip('t1'), 'startTime': '2026-03-02T08:30:00+05:30'}
        service.sync({'userId': USER, 'trips': [local, origin_trip('t2')]})

        assert [t['tripId'] for t in service.get_trips(USER)['trips']] == ['t2', 't1']
        assert service.trip_summary(USER)['trip_count'] == 2

    def test_empty_summary(self, service):
        assert service.trip_summary(USER)['trip_count'] == 0


class TestCli:

    def run(self, tmp_path, *args):
        return main(['--log-mode', 'TESTING', '--overrides', str(tmp_path / 'absent.yaml'), *args])

    def test_predict(self, tmp_path, capsys):
        request = tmp_path / 'predict.json'
        request.write_text(json.dumps(prediction_request()))
        assert self.run(tmp_path, 'predict', str(request)) == 0
        assert 'estimatedEnergyWh' in capsys.readouterr().out

    def test_sync_persists_with_file_store(self, tmp_path, capsys):
        store_path = str(tmp_path / 'store.pkl.gz')
        request = tmp_path / 'sync.json'
        request.write_text(json.dumps({'userId': USER, 'trips': [origin_trip('t1'), origin_trip('t2')]}))

        assert self.run(tmp_path, '--store', store_path, 'sync', str(request)) == 0
        assert self.run(tmp_path, '--store', store_path, 'trips', USER) == 0
        out = capsys.readouterr().out
        assert '"syncedCount": 2' in out
        assert '"tripId": "t2"' in out

    def test_sync_reports_failed_trips(self, tmp_path):
        request = tmp_path / 'sync.json'
        request.write_text(json.dumps({'userId': USER, 'trips': [{'tripId': 'broken'}]}))
        assert self.run(tmp_path, 'sync', str(request)) == 2

    def test_domain_error_exit_code(self, tmp_path):
        assert self.run(tmp_path, 'crowd', 'te7') == 1

    def test_interrupt_cancels_remaining_trips(self, tmp_path, monkeypatch, capsys):
        request = tmp_path / 'sync.json'
        request.write_text(json.dumps({'userId': USER, 'trips': [origin_trip('t1'), origin_trip('t2')]}))
        sync = RangeService.sync

        def interrupted_sync(self, request, cancel_event=None, on_trip_done=None):
            signal.raise_signal(signal.SIGINT)
            return sync(self, request, cancel_event=cancel_event, on_trip_done=on_trip_done)

        monkeypatch.setattr(RangeService, 'sync', interrupted_sync)
        handler = signal.getsignal(signal.SIGINT)

        assert self.run(tmp_path, 'sync', str(request)) == 130
        assert '"syncedCount": 0' in capsys.readouterr().out
        assert signal.getsignal(signal.SIGINT) is handler
