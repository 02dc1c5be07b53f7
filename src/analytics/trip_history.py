"""
Trip history paging and summaries
"""
from typing import Dict, Iterable, List, Optional

import pandas as pd

from config.prediction_config import SYNC_CONFIG
from src.models.trip import Trip
from src.storage.base import DataStore, TripPage
from src.utils.errors import InvalidInput

TRIP_COLUMNS = ['trip_id', 'start_time', 'distance_km', 'energy_kwh', 'wh_per_km',
                'variant_id', 'avg_temperature', 'synced']


def get_trips(store: DataStore, user_id: str, limit: int = None, cursor: Optional[str] = None) -> TripPage:
    """Newest-first page of a user's trips"""
    if not user_id:
        raise InvalidInput("user_id is required")
    limit = limit or SYNC_CONFIG['default_page_size']
    if limit > SYNC_CONFIG['max_page_size']:
        raise InvalidInput(f"limit must be at most {SYNC_CONFIG['max_page_size']}: {limit}")
    return store.get_trips(user_id, limit=limit, cursor=cursor)


def trips_to_frame(trips: Iterable[Trip]) -> pd.DataFrame:
    rows: List[Dict] = []
    for trip in trips:
        rows.append({
            'trip_id': trip.trip_id,
            'start_time': trip.start_time,
            'distance_km': trip.distance,
            'energy_kwh': trip.energy_used,
            'wh_per_km': trip.energy_used * 1000 / trip.distance if trip.distance > 0 else None,
            'variant_id': trip.vehicle_state.variant_id,
            'avg_temperature': trip.weather.avg_temperature,
            'synced': trip.synced,
        })
    return pd.DataFrame(rows, columns=TRIP_COLUMNS)


def summarize_trip_history(trips: Iterable[Trip]) -> Dict:
    """Totals and distance-weighted efficiency over a set of trips"""
    df = trips_to_frame(trips)
    if df.empty:
        return {
            'trip_count': 0,
            'total_distance_km': 0.0,
            'total_energy_kwh': 0.0,
            'avg_wh_per_km': None,
            'by_variant': {},
        }

    total_distance = float(df['distance_km'].sum())
    total_energy = float(df['energy_kwh'].sum())

    by_variant = (
        df.groupby('variant_id')
        .agg(trips=('trip_id', 'count'), distance_km=('distance_km', 'sum'), energy_kwh=('energy_kwh', 'sum'))
    )
    return {
        'trip_count': int(len(df)),
        'total_distance_km': round(total_distance, 2),
        'total_energy_kwh': round(total_energy, 3),
        'avg_wh_per_km': round(total_energy * 1000 / total_distance, 1) if total_distance > 0 else None,
        'by_variant': {
            variant: {
                'trips': int(row['trips']),
                'distance_km': round(float(row['distance_km']), 2),
                'energy_kwh': round(float(row['energy_kwh']), 3),
            }
            for variant, row in by_variant.iterrows()
        },
    }
