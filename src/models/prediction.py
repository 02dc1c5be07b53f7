"""
Read-only prediction results
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Dict, Optional, Tuple

from src.models.route import Route


@dataclass(frozen=True)
class ConsumptionBreakdown:
    """
    Energy attribution in Wh.

    ``regen_recovery`` is reported as a positive amount that was subtracted
    from ``total``; it is never folded into ``elevation``.
    """
    base: float = 0.0
    elevation: float = 0.0
    temperature: float = 0.0
    speed: float = 0.0
    traffic: float = 0.0
    hvac: float = 0.0
    auxiliary: float = 0.0
    wind: float = 0.0
    regen_recovery: float = 0.0
    total: float = 0.0

    def __add__(self, other: 'ConsumptionBreakdown') -> 'ConsumptionBreakdown':
        return ConsumptionBreakdown(**{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)})

    @property
    def weather(self) -> float:
        return self.temperature + self.wind

    def as_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def as_response(self) -> Dict[str, int]:
        """The six named Wh fields of the prediction response"""
        return {
            'baseConsumption': round(self.base),
            'elevationImpact': round(self.elevation),
            'weatherImpact': round(self.weather),
            'trafficImpact': round(self.traffic + self.speed),
            'hvacConsumption': round(self.hvac),
            'regenRecovery': round(self.regen_recovery),
        }


@dataclass(frozen=True)
class SegmentPrediction:
    geohash: str
    distance_km: float
    estimated_wh_per_km: float
    confidence: float
    crowd_data_used: bool
    traffic_level: str
    energy_wh: float


@dataclass(frozen=True)
class ElevationPoint:
    distance_km: float
    elevation: float
    gradient: float


@dataclass(frozen=True)
class RangePoint:
    distance_km: float
    predicted_soc: int
    predicted_range_km: int


@dataclass(frozen=True)
class TripPrediction:
    route: Route
    start_soc: float
    predicted_end_soc: float
    predicted_range_km: float        # remaining at destination
    estimated_range_km: float        # full usable pack at the trip's average Wh/km
    energy_consumption_kwh: float
    consumption_per_km: float        # Wh/km
    can_complete: bool
    margin_of_safety_km: float
    confidence: float
    crowd_data_available: bool
    breakdown: ConsumptionBreakdown
    segments: Tuple[SegmentPrediction, ...]
    elevation_profile: Tuple[ElevationPoint, ...]
    range_at_points: Tuple[RangePoint, ...]
    source: str                      # 'blended' or 'physics'
    departure_time: Optional[str] = None

    @property
    def total_energy_wh(self) -> float:
        return self.energy_consumption_kwh * 1000

    def to_response(self) -> Dict:
        """Prediction response shape consumed by UI and sync clients"""
        return {
            'estimatedEnergyWh': round(self.total_energy_wh),
            'estimatedRangeKm': round(self.estimated_range_km),
            'confidence': round(self.confidence, 2),
            'breakdown': self.breakdown.as_response(),
            'crowdDataAvailable': self.crowd_data_available,
            'segments': [
                {
                    'geohash': s.geohash,
                    'distance': round(s.distance_km, 2),
                    'estimatedWhPerKm': round(s.estimated_wh_per_km),
                    'confidence': round(s.confidence, 2),
                    'crowdDataUsed': s.crowd_data_used,
                    'trafficLevel': s.traffic_level,
                }
                for s in self.segments
            ],
        }
