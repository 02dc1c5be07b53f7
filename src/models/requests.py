"""
Prediction and sync request payloads
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from src.models.route import Coordinate, TrafficConditions, WeatherConditions
from src.models.trip import CoordinateModel, TripVehicleState, WireModel


class VehicleStateRequest(TripVehicleState):
    current_soc: float = Field(80.0, ge=0, le=100, alias='currentSoC')
    battery_temperature: float = Field(25.0, ge=-40, le=80)


class WeatherRequest(WireModel):
    temperature: float = 25.0
    humidity: float = 50.0
    wind_speed: float = Field(0.0, ge=0)
    wind_direction: float = 0.0
    precipitation: float = Field(0.0, ge=0)
    condition: str = 'clear'

    def to_conditions(self) -> WeatherConditions:
        return WeatherConditions(**self.model_dump())


class TrafficRequest(WireModel):
    density: Literal['free_flow', 'light', 'moderate', 'heavy', 'congested'] = 'free_flow'
    average_speed: Optional[float] = Field(None, gt=0)
    stop_start_frequency: float = Field(0.0, ge=0)

    def to_conditions(self) -> TrafficConditions:
        return TrafficConditions(**self.model_dump())


class PredictionRequest(WireModel):
    origin: CoordinateModel
    destination: CoordinateModel
    waypoints: List[CoordinateModel] = Field(default_factory=list)
    vehicle_state: VehicleStateRequest
    departure_time: Optional[datetime] = None
    weather: Optional[WeatherRequest] = None
    traffic: Optional[TrafficRequest] = None
    estimated_duration_min: Optional[float] = Field(None, ge=0)

    def coordinates(self) -> List[Coordinate]:
        return [Coordinate(lat=p.lat, lng=p.lng, elevation=p.elevation)
                for p in (self.origin, *self.waypoints, self.destination)]


class SyncRequest(WireModel):
    """Trips stay raw here and are validated one by one during sync"""
    user_id: str = Field(min_length=1)
    trips: List[Dict[str, Any]] = Field(default_factory=list)
