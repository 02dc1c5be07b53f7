from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from app.services.config_service import merged_runtime_config
from app.services.event_channel import EventChannel, PREDICTION_COMPLETED, SYNC_COMPLETED
from src.analytics.trip_history import get_trips, summarize_trip_history
from src.crowd.aggregator import CrowdAggregator
from src.energy.physics_model import PhysicsConsumptionModel
from src.models.crowd import CrowdSegment
from src.models.prediction import TripPrediction
from src.models.requests import PredictionRequest, SyncRequest
from src.models.route import Coordinate, Route
from src.models.user import UserProfile
from src.models.vehicle import VariantCatalog, VehicleState
from src.prediction.trip_predictor import TripPredictor
from src.storage.base import DataStore
from src.storage.file_store import FileStore
from src.storage.memory_store import MemoryStore
from src.sync.trip_sync import SyncResult, TripSyncOutcome, TripSyncPipeline
from src.users.directory import UserDirectory
from src.utils.errors import InvalidInput, UnknownVariant, UpstreamUnavailable
from src.utils.logger import info, warning


def build_store(store_config: Dict[str, Any]) -> DataStore:
    if store_config.get("backend") == "file":
        return FileStore(store_config["file_path"], store_config.get("lock_stripes"))
    return MemoryStore(store_config.get("lock_stripes"))


def _parse(model, payload):
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise InvalidInput(f"Invalid {model.__name__}: {e}") from e


class RangeService:
    """
    Entry point for UI and sync clients.

    Owns the store handle and every component built on it. Nothing is usable
    before ``open()``; ``close()`` stops the predictor's I/O workers and closes
    the store (a FileStore writes its snapshot).
    """

    def __init__(self, store: Optional[DataStore] = None, config: Optional[Dict[str, Any]] = None,
                 events: Optional[EventChannel] = None, catalog: Optional[VariantCatalog] = None):
        self.config = config or merged_runtime_config()
        self.store = store or build_store(self.config.get("store", {}))
        self.events = events or EventChannel()
        self.catalog = catalog or VariantCatalog()

        self.predictor: Optional[TripPredictor] = None
        self.aggregator: Optional[CrowdAggregator] = None
        self.users: Optional[UserDirectory] = None
        self.sync_pipeline: Optional[TripSyncPipeline] = None
        self._open = False

    # Lifecycle
    def open(self) -> "RangeService":
        if self._open:
            return self
        self.store.open()
        physics = PhysicsConsumptionModel(self.config.get("physics"))
        self.predictor = TripPredictor(self.store, physics, self.catalog, self.config.get("prediction"))
        self.aggregator = CrowdAggregator(self.store, self.config.get("crowd"),
                                          policy=self.config.get("prediction"))
        self.users = UserDirectory(self.store, self.catalog)
        self.sync_pipeline = TripSyncPipeline(self.store, self.aggregator, self.users, self.catalog,
                                              self.config.get("sync"))
        self._open = True
        info(f"Range service opened with {type(self.store).__name__}", "range_service")
        return self

    def close(self):
        if not self._open:
            return
        self._open = False
        try:
            self.predictor.close()
        finally:
            self.store.close()
        info("Range service closed", "range_service")

    def __enter__(self) -> "RangeService":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _require_open(self):
        if not self._open:
            raise UpstreamUnavailable("RangeService is not open")

    # Prediction
    def vehicle_state(self, request: PredictionRequest) -> VehicleState:
        """Vehicle state for a request, substituting the default variant for unknown ones"""
        try:
            return self.predictor.build_vehicle_state(request.vehicle_state)
        except UnknownVariant as e:
            warning(f"{e}; predicting with default variant {self.catalog.default_id}", "range_service")
            fallback = request.vehicle_state.model_copy(update={"variant_id": self.catalog.default_id})
            return self.predictor.build_vehicle_state(fallback)

    def predict(self, request: Union[PredictionRequest, Dict[str, Any]]) -> TripPrediction:
        self._require_open()
        request = _parse(PredictionRequest, request)
        route = Route.from_coordinates(request.coordinates(),
                                       estimated_duration_min=request.estimated_duration_min)
        prediction = self.predictor.predict(
            route,
            self.vehicle_state(request),
            weather=request.weather.to_conditions() if request.weather else None,
            traffic=request.traffic.to_conditions() if request.traffic else None,
            departure_time=request.departure_time,
        )
        self.events.publish(PREDICTION_COMPLETED, prediction)
        return prediction

    def predict_response(self, request: Union[PredictionRequest, Dict[str, Any]]) -> Dict[str, Any]:
        return self.predict(request).to_response()

    # Sync
    def sync(self, request: Union[SyncRequest, Dict[str, Any]],
             cancel_event: Optional[threading.Event] = None,
             on_trip_done: Optional[Callable[[TripSyncOutcome], None]] = None) -> SyncResult:
        self._require_open()
        request = _parse(SyncRequest, request)
        result = self.sync_pipeline.sync_trips(request.user_id, request.trips, cancel_event, on_trip_done)
        self.events.publish(SYNC_COMPLETED, result)
        return result

    # Users
    def get_user(self, user_id: str) -> UserProfile:
        self._require_open()
        return self.users.get_or_create_user(user_id)

    def update_vehicle_config(self, user_id: str, patch) -> UserProfile:
        self._require_open()
        return self.users.update_vehicle_config(user_id, patch)

    def update_preferences(self, user_id: str, patch) -> UserProfile:
        self._require_open()
        return self.users.update_preferences(user_id, patch)

    # Crowd
    def get_crowd_segments(self, cells: Sequence[str]) -> Dict[str, Any]:
        self._require_open()
        return self.aggregator.get_crowd_segments(cells)

    def get_route_crowd_data(self, coordinates: Sequence[Union[Coordinate, Dict[str, float]]]) -> Dict[str, Any]:
        self._require_open()
        points = [c if isinstance(c, Coordinate) else Coordinate(c["lat"], c["lng"], c.get("elevation"))
                  for c in coordinates]
        return self.aggregator.get_route_crowd_data(points)

    def get_crowd_by_geohash(self, cell: str) -> CrowdSegment:
        self._require_open()
        return self.aggregator.get_by_geohash(cell)

    # Trips
    def get_trips(self, user_id: str, limit: Optional[int] = None, cursor: Optional[str] = None) -> Dict[str, Any]:
        self._require_open()
        page = get_trips(self.store, user_id, limit, cursor)
        return {
            "trips": [t.to_wire() for t in page.trips],
            "continuationToken": page.next_cursor,
        }

    def trip_summary(self, user_id: str) -> Dict[str, Any]:
        """Summary over every stored trip of a user"""
        self._require_open()
        trips: List = []
        cursor = None
        while True:
            page = get_trips(self.store, user_id, None, cursor)
            trips.extend(page.trips)
            if page.next_cursor is None:
                break
            cursor = page.next_cursor
        return summarize_trip_history(trips)
