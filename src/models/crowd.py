"""
Anonymized, per-geocell crowd consumption aggregates

No raw samples are retained; every field is a running statistic.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class VariantStats:
    avg_wh_per_km: float
    sample_count: int


@dataclass
class BandStats:
    avg: float = 0.0
    count: int = 0


@dataclass
class RegenStats:
    avg_wh_per_km: float = 0.0
    avg_recovery: float = 0.0   # Wh/km recovered
    sample_count: int = 0


@dataclass
class TrafficPattern:
    day_of_week: int            # 0-6, Sunday = 0
    hour_of_day: int            # 0-23
    avg_traffic_level: float    # 0-3 (free, light, moderate, heavy)
    avg_speed_kmh: float
    sample_count: int


def _empty_temperature_bands() -> Dict[str, BandStats]:
    return {'cold': BandStats(), 'moderate': BandStats(), 'hot': BandStats()}


@dataclass
class AggregatedConsumption:
    avg_wh_per_km: float
    min_wh_per_km: float
    max_wh_per_km: float
    std_deviation: float = 0.0
    m2: float = 0.0             # sum of squared deviations (Welford)
    by_variant: Dict[str, VariantStats] = field(default_factory=dict)
    by_temperature_range: Dict[str, BandStats] = field(default_factory=_empty_temperature_bands)
    by_regen_level: Dict[int, RegenStats] = field(default_factory=dict)


@dataclass
class CrowdSegment:
    geohash: str
    segment_hash: str
    distance: float             # km
    elevation_change: float     # meters
    road_type: str
    aggregated_data: AggregatedConsumption
    traffic_patterns: List[TrafficPattern] = field(default_factory=list)
    sample_count: int = 0
    last_updated: Optional[datetime] = None
    confidence: float = 0.0

    def find_traffic_pattern(self, day_of_week: int, hour_of_day: int) -> Optional[TrafficPattern]:
        for pattern in self.traffic_patterns:
            if pattern.day_of_week == day_of_week and pattern.hour_of_day == hour_of_day:
                return pattern
        return None

    def to_dict(self) -> Dict:
        """camelCase document as returned to crowd API callers"""
        agg = self.aggregated_data
        return {
            'id': self.geohash,
            'geohash': self.geohash,
            'segmentHash': self.segment_hash,
            'distance': self.distance,
            'elevationChange': self.elevation_change,
            'roadType': self.road_type,
            'aggregatedData': {
                'avgWhPerKm': agg.avg_wh_per_km,
                'minWhPerKm': agg.min_wh_per_km,
                'maxWhPerKm': agg.max_wh_per_km,
                'stdDeviation': agg.std_deviation,
                'byVariant': {
                    k: {'avgWhPerKm': v.avg_wh_per_km, 'sampleCount': v.sample_count}
                    for k, v in agg.by_variant.items()
                },
                'byTemperatureRange': {k: asdict(v) for k, v in agg.by_temperature_range.items()},
                'byRegenLevel': {
                    str(k): {'avgWhPerKm': v.avg_wh_per_km, 'avgRecovery': v.avg_recovery,
                             'sampleCount': v.sample_count}
                    for k, v in agg.by_regen_level.items()
                },
            },
            'trafficPatterns': [
                {
                    'dayOfWeek': p.day_of_week,
                    'hourOfDay': p.hour_of_day,
                    'avgTrafficLevel': p.avg_traffic_level,
                    'avgSpeedKmh': p.avg_speed_kmh,
                    'sampleCount': p.sample_count,
                }
                for p in self.traffic_patterns
            ],
            'sampleCount': self.sample_count,
            'lastUpdated': self.last_updated.isoformat() if self.last_updated else None,
            'confidence': self.confidence,
        }
