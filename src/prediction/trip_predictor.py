"""
Trip predictor: blends crowd cell data with the physics model per route segment,
falling back to a whole-route physics prediction when crowd data is unreachable
"""
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import fields, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from config.prediction_config import PREDICTION_POLICY
from src.crowd.aggregator import day_of_week
from src.energy.physics_model import PhysicsConsumptionModel
from src.models.crowd import CrowdSegment
from src.models.prediction import (
    ConsumptionBreakdown,
    ElevationPoint,
    RangePoint,
    SegmentPrediction,
    TripPrediction,
)
from src.models.requests import VehicleStateRequest
from src.models.route import Coordinate, Route, RouteSegment, TrafficConditions, WeatherConditions
from src.models.vehicle import VariantCatalog, VehicleState, regen_level
from src.storage.base import DataStore
from src.utils.errors import InvalidRoute, UpstreamUnavailable
from src.utils.geohash import geohash
from src.utils.logger import debug, get_logger, warning

logger = get_logger('trip_predictor')

SOURCE_BLENDED = 'blended'
SOURCE_PHYSICS = 'physics'


def finalize_breakdown(breakdown: ConsumptionBreakdown) -> ConsumptionBreakdown:
    """Recompute ``total`` from the components, never below zero"""
    costs = sum(getattr(breakdown, f.name) for f in fields(breakdown)
                if f.name not in ('regen_recovery', 'total'))
    return replace(breakdown, total=max(0.0, costs - breakdown.regen_recovery))


def parse_departure(departure_time: Union[None, str, datetime]) -> datetime:
    """Departure as a UTC wall clock, matching how trip start times are stored"""
    if departure_time is None:
        return datetime.now(timezone.utc).replace(tzinfo=None)
    if not isinstance(departure_time, datetime):
        departure_time = datetime.fromisoformat(departure_time.replace('Z', '+00:00'))
    if departure_time.tzinfo is not None:
        departure_time = departure_time.astimezone(timezone.utc).replace(tzinfo=None)
    return departure_time


class TripPredictor:
    """
    Orchestrates one prediction.

    Pure computation except for the crowd cell query, which runs on a small
    I/O executor and is bounded by ``crowd_query_timeout_s``. Instances hold
    no per-request state and can serve concurrent callers.
    """

    def __init__(self, store: Optional[DataStore] = None,
                 physics: PhysicsConsumptionModel = None,
                 catalog: VariantCatalog = None,
                 policy: Dict = None,
                 executor: ThreadPoolExecutor = None):
        self.store = store
        self.physics = physics or PhysicsConsumptionModel()
        self.catalog = catalog or VariantCatalog()
        self.policy = dict(PREDICTION_POLICY)
        if policy:
            self.policy.update(policy)
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.policy['io_workers'], thread_name_prefix='crowd-io'
        )

    def close(self):
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def build_vehicle_state(self, request: VehicleStateRequest) -> VehicleState:
        """Vehicle state from a request; raises UnknownVariant for unrecognized variants"""
        return VehicleState(
            variant=self.catalog.get(request.variant_id),
            current_soc=request.current_soc,
            battery_health=request.battery_health,
            battery_temperature=request.battery_temperature,
            regen=regen_level(request.regen_level),
            hvac_on=request.hvac_on,
            hvac_mode=request.hvac_mode,
            hvac_temperature=request.hvac_temperature,
            tire_pressure=request.tire_pressure,
            payload=request.payload,
        )

    # Predictions
    def predict(self, route: Union[Route, Sequence[Coordinate]], state: VehicleState,
                weather: WeatherConditions = None, traffic: TrafficConditions = None,
                departure_time: Union[None, str, datetime] = None) -> TripPrediction:
        """
        Predict a trip, using crowd cells where they are trusted.

        Falls back to ``predict_physics`` when no store is configured or the
        crowd query fails or times out.
        """
        route = self._as_route(route)
        state = state.snapshot()
        departure = parse_departure(departure_time)

        cells = [self._cell(segment) for segment in route.segments]
        crowd = self._fetch_crowd(cells)
        if crowd is None:
            return self.predict_physics(route, state, weather, traffic, departure)

        segments, breakdown = self._segment_predictions(route, state, weather, traffic, departure, crowd)
        crowd_count = sum(1 for s in segments if s.crowd_data_used)
        if crowd_count:
            overall_confidence = (crowd_count / len(segments)) * self.policy['crowd_blend_weight'] \
                + self.policy['crowd_blend_floor']
        else:
            overall_confidence = self.policy['no_crowd_confidence']

        debug(f"Route {route.id}: {crowd_count}/{len(segments)} segments from crowd data", 'trip_predictor')
        return self._build_prediction(route, state, breakdown, segments, overall_confidence,
                                      crowd_count > 0, SOURCE_BLENDED, departure)

    def predict_physics(self, route: Union[Route, Sequence[Coordinate]], state: VehicleState,
                        weather: WeatherConditions = None, traffic: TrafficConditions = None,
                        departure_time: Union[None, str, datetime] = None) -> TripPrediction:
        """Whole-route physics prediction, independent of crowd data"""
        route = self._as_route(route)
        state = state.snapshot()
        departure = parse_departure(departure_time)

        breakdown, _ = self.physics.predict_route(route, state, weather, traffic)
        segments, _ = self._segment_predictions(route, state, weather, traffic, departure, {})
        return self._build_prediction(route, state, breakdown, segments,
                                      self.policy['no_crowd_confidence'], False, SOURCE_PHYSICS, departure)

    # Internals
    @staticmethod
    def _as_route(route) -> Route:
        if isinstance(route, Route):
            if not route.segments:
                raise InvalidRoute("Route has no segments")
            return route
        return Route.from_coordinates(route)

    def _cell(self, segment: RouteSegment) -> str:
        return geohash(segment.start.lat, segment.start.lng, self.policy['geohash_precision'])

    def _fetch_crowd(self, cells: List[str]) -> Optional[Dict[str, CrowdSegment]]:
        if self.store is None:
            return None
        future = self._executor.submit(self.store.get_segments, list(dict.fromkeys(cells)))
        try:
            found = future.result(timeout=self.policy['crowd_query_timeout_s'])
        except (FutureTimeout, TimeoutError):
            future.cancel()
            warning(f"Crowd query timed out after {self.policy['crowd_query_timeout_s']}s, "
                    f"using physics model only", 'trip_predictor')
            return None
        except (UpstreamUnavailable, ConnectionError) as e:
            warning(f"Crowd data unavailable ({e}), using physics model only", 'trip_predictor')
            return None
        return {segment.geohash: segment for segment in found}

    def _route_speed(self, route: Route, traffic: Optional[TrafficConditions]) -> float:
        if traffic is not None and traffic.average_speed is not None:
            return traffic.average_speed
        if route.duration_hours > 0 and route.total_distance_km > 0:
            return route.total_distance_km / route.duration_hours
        return self.physics.constants['default_avg_speed_kmh']

    def _crowd_breakdown(self, state: VehicleState, segment: RouteSegment,
                         crowd_wh: float, hvac_wh: float) -> ConsumptionBreakdown:
        """
        Attribute a crowd-sourced segment.

        Observed Wh/km already includes terrain, so climb and regen recovery are
        reported as their own terms and carved out of ``base``; the segment
        total stays at crowd Wh/km times distance plus HVAC.
        """
        if not segment.has_elevation:
            return ConsumptionBreakdown(base=crowd_wh, hvac=hvac_wh)
        climb, recovered = self.physics.elevation_energy(
            state.total_mass_kg, segment.elevation_gain, segment.elevation_loss,
            state.regen.recovery_efficiency,
        )
        return ConsumptionBreakdown(base=max(0.0, crowd_wh - climb + recovered), elevation=climb,
                                    regen_recovery=recovered, hvac=hvac_wh)

    def _segment_predictions(self, route: Route, state: VehicleState,
                             weather: Optional[WeatherConditions], traffic: Optional[TrafficConditions],
                             departure: datetime, crowd: Dict[str, CrowdSegment]
                             ) -> Tuple[List[SegmentPrediction], ConsumptionBreakdown]:
        threshold = self.policy['crowd_confidence_threshold']
        speed = self._route_speed(route, traffic)
        ambient = weather.temperature if weather is not None else None
        hvac_per_km = self.physics.hvac_overhead_wh_per_km(state, ambient)
        model_rate = self.physics.model_only_wh_per_km(state.variant, state)
        day, hour = day_of_week(departure), departure.hour

        predictions = []
        total = ConsumptionBreakdown()
        for segment in route.segments:
            cell = self._cell(segment)
            entry = crowd.get(cell)
            distance = segment.distance_km

            if entry is not None and entry.confidence > threshold:
                variant_stats = entry.aggregated_data.by_variant.get(state.variant.id)
                wh_per_km = variant_stats.avg_wh_per_km if variant_stats else entry.aggregated_data.avg_wh_per_km
                seg_confidence = entry.confidence
                used_crowd = True
                breakdown = self._crowd_breakdown(state, segment, wh_per_km * distance, hvac_per_km * distance)
            else:
                breakdown = self.physics.calculate_breakdown(
                    state, distance, distance / speed,
                    elevation_gain=segment.elevation_gain,
                    elevation_loss=segment.elevation_loss,
                    weather=weather, traffic=traffic, average_speed_kmh=speed,
                    secondary_adjustments=True, hvac_overhead=True,
                    subject_id=cell,
                )
                wh_per_km = max(0.0, breakdown.total - breakdown.hvac) / distance if distance > 0 else model_rate
                seg_confidence = self.policy['model_only_confidence']
                used_crowd = False

            pattern = None
            if entry is not None:
                pattern = entry.find_traffic_pattern(day, hour)
                if pattern is not None:
                    breakdown = replace(breakdown, traffic=breakdown.traffic + pattern.avg_traffic_level
                                        * self.physics.constants['traffic_level_wh_per_km'] * distance)
                elif entry.traffic_patterns:
                    pattern = entry.traffic_patterns[0]
            breakdown = finalize_breakdown(breakdown)
            total = total + breakdown

            predictions.append(SegmentPrediction(
                geohash=cell,
                distance_km=distance,
                estimated_wh_per_km=wh_per_km,
                confidence=seg_confidence,
                crowd_data_used=used_crowd,
                traffic_level='heavy' if pattern is not None and pattern.avg_traffic_level > 2 else 'light',
                energy_wh=breakdown.total,
            ))
        return predictions, total

    def _build_prediction(self, route: Route, state: VehicleState, breakdown: ConsumptionBreakdown,
                          segments: List[SegmentPrediction], overall_confidence: float,
                          crowd_data_available: bool, source: str, departure: datetime) -> TripPrediction:
        distance = route.total_distance_km
        used_kwh = breakdown.total / 1000
        avg_wh_per_km = self.physics.per_km(breakdown.total, distance)
        range_rate = avg_wh_per_km if avg_wh_per_km > 0 else self.physics.model_only_wh_per_km(state.variant, state)

        usable = state.usable_battery_kwh()
        available = state.available_energy_kwh()
        start_soc = state.current_soc

        # Energy used at evenly spaced fractions of the route
        fractions = np.linspace(0.0, 1.0, self.policy['range_profile_points']) if distance > 0 else np.array([0.0])
        energy_at = used_kwh * fractions
        if usable > 0:
            soc_at = np.clip(start_soc - energy_at / usable * 100, 0.0, 100.0)
        else:
            soc_at = np.zeros_like(fractions)
        range_at = np.maximum(0.0, (available - energy_at) / (range_rate / 1000))

        end_soc = float(soc_at[-1])
        remaining_range = float(range_at[-1])

        return TripPrediction(
            route=route,
            start_soc=start_soc,
            predicted_end_soc=end_soc,
            predicted_range_km=remaining_range,
            estimated_range_km=state.variant.battery_capacity * 1000 / range_rate,
            energy_consumption_kwh=used_kwh,
            consumption_per_km=avg_wh_per_km,
            can_complete=end_soc >= self.physics.constants['safety_buffer_soc'],
            margin_of_safety_km=remaining_range,
            confidence=overall_confidence,
            crowd_data_available=crowd_data_available,
            breakdown=breakdown,
            segments=tuple(segments),
            elevation_profile=self._elevation_profile(route),
            range_at_points=tuple(
                RangePoint(distance_km=round(float(distance * f), 2), predicted_soc=int(round(s)),
                           predicted_range_km=int(round(r)))
                for f, s, r in zip(fractions, soc_at, range_at)
            ),
            source=source,
            departure_time=departure.isoformat(),
        )

    @staticmethod
    def _elevation_profile(route: Route) -> Tuple[ElevationPoint, ...]:
        cumulative = np.concatenate(([0.0], np.cumsum([s.distance_km for s in route.segments])))
        profile = []
        for i, point in enumerate(route.points):
            gradient = route.segments[i - 1].average_gradient if i > 0 else 0.0
            profile.append(ElevationPoint(
                distance_km=round(float(cumulative[i]), 3),
                elevation=point.elevation if point.elevation is not None else 0.0,
                gradient=round(gradient, 2),
            ))
        return tuple(profile)
