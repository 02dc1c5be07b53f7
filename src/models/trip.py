"""
Trip records submitted by sync clients (camelCase on the wire)
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.utils.geohash import is_valid_geohash


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    def to_wire(self) -> dict:
        return self.model_dump(mode='json', by_alias=True)


class CoordinateModel(WireModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    elevation: Optional[float] = None


class TripRoute(WireModel):
    origin: CoordinateModel
    destination: CoordinateModel
    waypoints: List[CoordinateModel] = Field(default_factory=list)
    total_elevation_gain: float = Field(0.0, ge=0)
    total_elevation_loss: float = Field(0.0, ge=0)
    polyline: Optional[str] = None


class TripWeather(WireModel):
    avg_temperature: float = 25.0
    avg_humidity: float = 50.0
    avg_wind_speed: float = Field(0.0, ge=0)
    wind_direction: float = 0.0
    conditions: str = 'clear'


class TripVehicleState(WireModel):
    variant_id: str
    regen_level: int = Field(2, ge=0, le=3)
    hvac_on: bool = False
    hvac_mode: Literal['off', 'cooling', 'heating'] = 'off'
    hvac_temperature: float = Field(24.0, ge=16, le=32)
    payload: float = Field(75.0, ge=0, le=600)
    tire_pressure: float = Field(35.0, ge=15, le=60)
    battery_health: float = Field(100.0, gt=0, le=100)


class ConsumptionMetrics(WireModel):
    total_wh_per_km: float = 0.0
    hvac_consumption: float = 0.0
    drivetrain_consumption: float = 0.0
    regen_recovered: float = 0.0      # Wh
    auxiliary_consumption: float = 0.0


class TripSegment(WireModel):
    start_index: int = Field(0, ge=0)
    end_index: int = Field(0, ge=0)
    geohash: str
    distance: float = Field(ge=0)     # km
    elevation_change: float = 0.0     # meters
    avg_speed: float = Field(0.0, ge=0)
    wh_per_km: float
    road_type: Literal['highway', 'city', 'rural'] = 'city'
    traffic_level: Literal['free', 'light', 'moderate', 'heavy'] = 'free'

    @field_validator('geohash')
    @classmethod
    def validate_geohash(cls, value: str) -> str:
        if not is_valid_geohash(value, min_length=4, max_length=12):
            raise ValueError(f"invalid geohash: {value!r}")
        return value


class Trip(WireModel):
    trip_id: str = Field(min_length=1)
    user_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    distance: float = Field(0.0, ge=0)           # km
    energy_used: float = Field(0.0, ge=0)        # kWh
    start_soc: float = Field(100.0, ge=0, le=100, alias='startSoC')
    end_soc: float = Field(0.0, ge=0, le=100, alias='endSoC')
    route: Optional[TripRoute] = None
    weather: TripWeather = Field(default_factory=TripWeather)
    vehicle_state: TripVehicleState
    consumption: ConsumptionMetrics = Field(default_factory=ConsumptionMetrics)
    segments: List[TripSegment] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    synced: bool = False
    synced_at: Optional[datetime] = None
    crowd_segments_applied: int = Field(0, ge=0)

    @field_validator('start_time', 'end_time', 'created_at', 'synced_at')
    @classmethod
    def normalize_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive timestamps are taken as UTC
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def id(self) -> str:
        return self.trip_id

    def regen_recovery_wh_per_km(self) -> Optional[float]:
        if self.distance <= 0:
            return None
        return self.consumption.regen_recovered / self.distance
