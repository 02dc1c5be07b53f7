"""
Crowd aggregator: per-geocell running consumption statistics
Raw samples are never retained; each ingest folds one observation into the cell
"""
import hashlib
import math
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from config.prediction_config import CROWD_CONFIG, PREDICTION_POLICY
from config.logging_config import is_detailed_logging_enabled
from src.crowd.confidence import confidence
from src.models.crowd import (
    AggregatedConsumption,
    BandStats,
    CrowdSegment,
    RegenStats,
    TrafficPattern,
    VariantStats,
)
from src.models.route import Coordinate
from src.storage.base import ABSENT_VERSION, DataStore
from src.utils.errors import ConcurrentUpdateConflict, InvalidInput, NotFound, VersionConflict
from src.utils.geohash import geohash, is_valid_geohash
from src.utils.logger import debug, get_logger, log_detailed, warning

logger = get_logger('crowd_aggregator')


@dataclass(frozen=True)
class SampleContext:
    """Optional facts about where and how a sample was observed"""
    distance_km: float = 0.0
    elevation_change: float = 0.0
    road_type: str = 'unknown'
    temperature: Optional[float] = None
    regen_level: Optional[int] = None
    regen_recovery_wh_per_km: Optional[float] = None
    traffic_level: Optional[float] = None     # 0-3
    avg_speed_kmh: Optional[float] = None
    observed_at: Optional[datetime] = None


@dataclass(frozen=True)
class IngestResult:
    created: bool
    updated: bool


def day_of_week(moment: datetime) -> int:
    """Day index with Sunday = 0"""
    return (moment.weekday() + 1) % 7


def temperature_band(temp_c: float, bands: Dict[str, float] = None) -> str:
    bands = bands or CROWD_CONFIG['temperature_bands']
    if temp_c < bands['cold']:
        return 'cold'
    if temp_c > bands['hot']:
        return 'hot'
    return 'moderate'


def segment_hash(from_cell: str, to_cell: str) -> str:
    return hashlib.sha256(f"{from_cell}:{to_cell}".encode()).hexdigest()[:16]


def _running_mean(mean: float, count: int, observed: float) -> float:
    return mean + (observed - mean) / (count + 1)


def new_segment(cell: str, variant_id: str, observed: float, context: SampleContext,
                now: datetime, bands: Dict[str, float] = None) -> CrowdSegment:
    """Cell created from its first observation"""
    segment = CrowdSegment(
        geohash=cell,
        segment_hash=segment_hash(cell, cell),
        distance=context.distance_km,
        elevation_change=context.elevation_change,
        road_type=context.road_type,
        aggregated_data=AggregatedConsumption(
            avg_wh_per_km=observed,
            min_wh_per_km=observed,
            max_wh_per_km=observed,
            by_variant={variant_id: VariantStats(avg_wh_per_km=observed, sample_count=1)},
        ),
        sample_count=1,
        last_updated=now,
        confidence=confidence(1, 0.0),
    )
    _apply_breakdowns(segment, observed, context, bands)
    return segment


def apply_sample(segment: CrowdSegment, variant_id: str, observed: float, context: SampleContext,
                 now: datetime, bands: Dict[str, float] = None) -> CrowdSegment:
    """
    Fold one observation into an existing cell (mutates and returns ``segment``).

    Mean and deviation use Welford's update so the running average equals the
    true mean of every sample folded in so far.
    """
    agg = segment.aggregated_data
    count = segment.sample_count

    delta = observed - agg.avg_wh_per_km
    agg.avg_wh_per_km = _running_mean(agg.avg_wh_per_km, count, observed)
    agg.m2 += delta * (observed - agg.avg_wh_per_km)
    agg.min_wh_per_km = min(agg.min_wh_per_km, observed)
    agg.max_wh_per_km = max(agg.max_wh_per_km, observed)

    segment.sample_count = count + 1
    agg.std_deviation = math.sqrt(agg.m2 / segment.sample_count)

    variant = agg.by_variant.get(variant_id)
    if variant is None:
        agg.by_variant[variant_id] = VariantStats(avg_wh_per_km=observed, sample_count=1)
    else:
        variant.avg_wh_per_km = _running_mean(variant.avg_wh_per_km, variant.sample_count, observed)
        variant.sample_count += 1

    _apply_breakdowns(segment, observed, context, bands)

    segment.last_updated = now
    segment.confidence = confidence(segment.sample_count, agg.std_deviation)
    return segment


def _apply_breakdowns(segment: CrowdSegment, observed: float, context: SampleContext,
                      bands: Dict[str, float] = None):
    agg = segment.aggregated_data

    if context.temperature is not None:
        band = agg.by_temperature_range.setdefault(temperature_band(context.temperature, bands), BandStats())
        band.avg = _running_mean(band.avg, band.count, observed)
        band.count += 1

    if context.regen_level is not None:
        regen = agg.by_regen_level.setdefault(context.regen_level, RegenStats())
        regen.avg_wh_per_km = _running_mean(regen.avg_wh_per_km, regen.sample_count, observed)
        if context.regen_recovery_wh_per_km is not None:
            regen.avg_recovery = _running_mean(regen.avg_recovery, regen.sample_count,
                                               context.regen_recovery_wh_per_km)
        regen.sample_count += 1

    if context.traffic_level is not None and context.observed_at is not None:
        day, hour = day_of_week(context.observed_at), context.observed_at.hour
        speed = context.avg_speed_kmh or 0.0
        pattern = segment.find_traffic_pattern(day, hour)
        if pattern is None:
            segment.traffic_patterns.append(TrafficPattern(
                day_of_week=day, hour_of_day=hour,
                avg_traffic_level=float(context.traffic_level),
                avg_speed_kmh=speed, sample_count=1,
            ))
        else:
            pattern.avg_traffic_level = _running_mean(pattern.avg_traffic_level, pattern.sample_count,
                                                      context.traffic_level)
            pattern.avg_speed_kmh = _running_mean(pattern.avg_speed_kmh, pattern.sample_count, speed)
            pattern.sample_count += 1


class CrowdAggregator:
    """
    Maintains crowd cells in a ``DataStore``.

    Updates to one cell are serialized by the store's conditional write: an
    ingest reads the cell with its version, folds the sample in and writes it
    back only if the version is unchanged. On conflict it re-reads and retries
    with exponential backoff and jitter, up to ``max_update_retries`` attempts,
    then raises ``ConcurrentUpdateConflict``.
    """

    def __init__(self, store: DataStore, config: Dict = None, policy: Dict = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], datetime] = None):
        self.store = store
        self.config = dict(CROWD_CONFIG)
        if config:
            self.config.update(config)
        # Route queries share cell size and trust threshold with the predictor
        policy = {**PREDICTION_POLICY, **(policy or {})}
        self.precision = policy['geohash_precision']
        self.high_confidence = policy['high_confidence_threshold']
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.debug_mode = is_detailed_logging_enabled('crowd_updates')

    def _backoff_seconds(self, attempt: int) -> float:
        delay = min(self.config['retry_backoff_max_s'],
                    self.config['retry_backoff_base_s'] * (2 ** (attempt - 1)))
        jitter = self.config['retry_jitter']
        return delay * (1 - jitter + random.random() * jitter)

    def ingest(self, cell: str, variant_id: str, observed_wh_per_km: float,
               context: SampleContext = None) -> IngestResult:
        """Fold one observed Wh/km into ``cell``, creating the cell on first sight"""
        if not is_valid_geohash(cell):
            raise InvalidInput(f"Invalid geohash: {cell!r}")
        if observed_wh_per_km is None or not math.isfinite(observed_wh_per_km):
            raise InvalidInput(f"Observed Wh/km must be a finite number: {observed_wh_per_km}")
        if not variant_id:
            raise InvalidInput("variant_id is required")
        context = context or SampleContext()
        bands = self.config['temperature_bands']
        max_attempts = self.config['max_update_retries']

        for attempt in range(1, max_attempts + 1):
            now = self._clock()
            try:
                try:
                    current = self.store.get_segment(cell)
                except NotFound:
                    segment = new_segment(cell, variant_id, observed_wh_per_km, context, now, bands)
                    self.store.put_segment(cell, segment, ABSENT_VERSION)
                    self._log_update(cell, 'created', segment)
                    return IngestResult(created=True, updated=False)

                segment = apply_sample(current.segment, variant_id, observed_wh_per_km, context, now, bands)
                self.store.put_segment(cell, segment, current.version)
                self._log_update(cell, 'updated', segment)
                return IngestResult(created=False, updated=True)

            except VersionConflict as e:
                debug(f"Crowd cell {cell} conflict on attempt {attempt}/{max_attempts}: {e}", 'crowd_aggregator')
                if attempt < max_attempts:
                    self._sleep(self._backoff_seconds(attempt))

        warning(f"Giving up on crowd cell {cell} after {max_attempts} conflicting attempts", 'crowd_aggregator')
        raise ConcurrentUpdateConflict(cell, max_attempts)

    def _log_update(self, cell: str, action: str, segment: CrowdSegment):
        if self.debug_mode:
            agg = segment.aggregated_data
            log_detailed(f"{cell} {action}: n={segment.sample_count} avg={agg.avg_wh_per_km:.2f} "
                         f"std={agg.std_deviation:.2f} confidence={segment.confidence}",
                         "crowd_updates", cell)

    # Queries
    def get_segments(self, cells: Iterable[str]) -> List[CrowdSegment]:
        return self.store.get_segments(cells)

    def get_by_geohash(self, cell: str) -> CrowdSegment:
        """Single cell lookup for 4-8 character hashes, raising NotFound when absent"""
        if not is_valid_geohash(cell, self.config['min_geohash_length'], self.config['max_geohash_length']):
            raise InvalidInput(
                f"Invalid geohash {cell!r}: must be {self.config['min_geohash_length']}-"
                f"{self.config['max_geohash_length']} characters"
            )
        return self.store.get_segment(cell).segment

    def get_crowd_segments(self, cells: Sequence[str]) -> Dict:
        segments = self.get_segments(cells)
        found = {s.geohash for s in segments}
        return {
            'segments': [s.to_dict() for s in segments],
            'notFound': [c for c in cells if c not in found],
        }

    def get_route_crowd_data(self, coordinates: Sequence[Coordinate]) -> Dict:
        """Crowd cells along a route plus coverage statistics"""
        if not coordinates:
            raise InvalidInput("coordinates must not be empty")
        cells = list(dict.fromkeys(geohash(c.lat, c.lng, self.precision) for c in coordinates))
        segments = self.get_segments(cells)

        average_confidence = (sum(s.confidence for s in segments) / len(segments)) if segments else 0.0
        statistics = {
            'totalSegments': len(segments),
            'totalRoutePoints': len(coordinates),
            'uniqueGeohashes': len(cells),
            'coverageRatio': round(len(segments) / len(cells), 2),
            'averageConfidence': round(average_confidence, 2),
            'highConfidenceSegments': sum(1 for s in segments if s.confidence > self.high_confidence),
        }
        return {'segments': [s.to_dict() for s in segments], 'statistics': statistics}
