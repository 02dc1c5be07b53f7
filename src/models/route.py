"""
Route, coordinate and driving-condition models
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from config.physics_constants import PHYSICS_CONSTANTS, TRAFFIC_CONSUMPTION_FACTOR
from src.utils.errors import InvalidInput, InvalidRoute
from src.utils.geo import distance_km, validate_lat_lng

ROAD_TYPES = ('highway', 'urban', 'city', 'rural', 'mountain', 'unknown')


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float
    elevation: Optional[float] = None  # meters above sea level

    def __post_init__(self):
        validate_lat_lng(self.lat, self.lng)


@dataclass(frozen=True)
class RouteSegment:
    start: Coordinate
    end: Coordinate
    distance_km: float
    elevation_gain: float      # meters
    elevation_loss: float      # meters
    average_gradient: float    # percent
    road_type: str = 'unknown'

    @property
    def has_elevation(self) -> bool:
        return self.start.elevation is not None and self.end.elevation is not None


@dataclass(frozen=True)
class Route:
    """Immutable route; edits produce a new Route"""
    id: str
    origin: Coordinate
    destination: Coordinate
    waypoints: Tuple[Coordinate, ...]
    segments: Tuple[RouteSegment, ...]
    total_distance_km: float
    total_elevation_gain: float
    total_elevation_loss: float
    estimated_duration_min: float
    name: str = ''

    @property
    def points(self) -> Tuple[Coordinate, ...]:
        return (self.origin, *self.waypoints, self.destination)

    @property
    def duration_hours(self) -> float:
        return self.estimated_duration_min / 60

    @classmethod
    def from_coordinates(cls, coordinates: Sequence[Coordinate],
                         estimated_duration_min: Optional[float] = None,
                         road_type: str = 'unknown',
                         route_id: Optional[str] = None,
                         name: str = '') -> 'Route':
        """Derive segments and totals from an ordered coordinate list"""
        points = tuple(coordinates or ())
        if len(points) < 2:
            raise InvalidRoute(f"Route needs at least two points, got {len(points)}")
        if road_type not in ROAD_TYPES:
            raise InvalidInput(f"road_type must be one of {ROAD_TYPES}: {road_type}")

        segments = []
        for start, end in zip(points[:-1], points[1:]):
            dist = distance_km(start.lat, start.lng, end.lat, end.lng)
            gain = loss = 0.0
            gradient = 0.0
            if start.elevation is not None and end.elevation is not None:
                change = end.elevation - start.elevation
                gain = max(0.0, change)
                loss = max(0.0, -change)
                if dist > 0:
                    gradient = change / (dist * 1000) * 100
            segments.append(RouteSegment(
                start=start, end=end, distance_km=dist,
                elevation_gain=gain, elevation_loss=loss,
                average_gradient=gradient, road_type=road_type,
            ))

        total_distance = sum(s.distance_km for s in segments)
        if estimated_duration_min is None:
            estimated_duration_min = total_distance / PHYSICS_CONSTANTS['default_avg_speed_kmh'] * 60
        if estimated_duration_min < 0:
            raise InvalidInput(f"estimated_duration_min must be non-negative: {estimated_duration_min}")

        return cls(
            id=route_id or str(uuid.uuid4()),
            origin=points[0],
            destination=points[-1],
            waypoints=points[1:-1],
            segments=tuple(segments),
            total_distance_km=total_distance,
            total_elevation_gain=sum(s.elevation_gain for s in segments),
            total_elevation_loss=sum(s.elevation_loss for s in segments),
            estimated_duration_min=float(estimated_duration_min),
            name=name,
        )


@dataclass(frozen=True)
class WeatherConditions:
    temperature: float = PHYSICS_CONSTANTS['default_ambient_temp']  # °C
    humidity: float = 50.0        # %
    wind_speed: float = 0.0       # km/h
    wind_direction: float = 0.0   # degrees, 0 = North
    precipitation: float = 0.0    # mm
    condition: str = 'clear'

    def __post_init__(self):
        if self.wind_speed < 0:
            raise InvalidInput(f"wind_speed must be non-negative: {self.wind_speed}")


@dataclass(frozen=True)
class TrafficConditions:
    density: str = 'free_flow'
    average_speed: Optional[float] = None  # km/h
    stop_start_frequency: float = 0.0      # stops per km

    def __post_init__(self):
        if self.density not in TRAFFIC_CONSUMPTION_FACTOR:
            raise InvalidInput(f"traffic density must be one of {sorted(TRAFFIC_CONSUMPTION_FACTOR)}: {self.density}")
        if self.average_speed is not None and self.average_speed <= 0:
            raise InvalidInput(f"average_speed must be positive: {self.average_speed}")
