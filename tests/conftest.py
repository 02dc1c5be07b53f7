import os
import sys

import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from src.utils.logger import setup_logger  # noqa: E402
from src.crowd.aggregator import CrowdAggregator  # noqa: E402
from src.models.vehicle import VariantCatalog, VehicleState, regen_level  # noqa: E402
from src.prediction.trip_predictor import TripPredictor  # noqa: E402
from src.storage.memory_store import MemoryStore  # noqa: E402

setup_logger('TESTING')


@pytest.fixture
def catalog():
    return VariantCatalog()


@pytest.fixture
def store():
    memory_store = MemoryStore().open()
    yield memory_store
    memory_store.close()


@pytest.fixture
def aggregator(store):
    return CrowdAggregator(store, sleep=lambda _: None)


@pytest.fixture
def predictor(store, catalog):
    trip_predictor = TripPredictor(store=store, catalog=catalog)
    yield trip_predictor
    trip_predictor.close()


@pytest.fixture
def mr_state(catalog):
    return VehicleState(
        variant=catalog.get('MR'),
        current_soc=80.0,
        battery_health=98.0,
        regen=regen_level(2),
        payload=75.0,
    )
