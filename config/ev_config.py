"""
Main configuration file for the EV range prediction engine
Combines all configuration parameters and provides easy access
"""

from .ev_models import (
    VEHICLE_VARIANTS,
    VARIANT_ALIASES,
    DEFAULT_VARIANT_ID,
    REGEN_LEVELS,
    DEFAULT_REGEN_LEVEL,
)
from .physics_constants import (
    PHYSICS_CONSTANTS,
    TEMPERATURE_EFFICIENCY,
    SPEED_CONSUMPTION_FACTORS,
    SPEED_FACTOR_MAX,
    TRAFFIC_CONSUMPTION_FACTOR,
    HVAC_POWER,
    HVAC_OVERHEAD_WH_PER_KM,
    VEHICLE_STATE_LIMITS,
)
from .prediction_config import PREDICTION_POLICY, CROWD_CONFIG, TRAFFIC_LEVELS, SYNC_CONFIG

# Store Configuration
STORE_CONFIG = {
    'backend': 'memory',                       # 'memory' or 'file'
    'file_path': 'data/store/ev_range_store.pkl.gz',
    'lock_stripes': 64                         # per-key lock striping for the in-memory store
}

# Default user profile for first-time users
DEFAULT_USER_PROFILE = {
    'vehicle_config': {
        'variant_id': DEFAULT_VARIANT_ID,
        'battery_health': 100.0,
        'odometer': 0.0,
        'default_regen_level': DEFAULT_REGEN_LEVEL,
        'default_tire_pressure': 35.0,
        'default_payload': 150.0
    },
    'preferences': {
        'units': 'metric',
        'temperature_unit': 'celsius',
        'share_anonymous_data': True,
        'offline_maps_enabled': False,
        'preferred_region': 'maharashtra',
        'notifications_enabled': False
    }
}

# Export all configurations
__all__ = [
    'VEHICLE_VARIANTS',
    'VARIANT_ALIASES',
    'DEFAULT_VARIANT_ID',
    'REGEN_LEVELS',
    'DEFAULT_REGEN_LEVEL',
    'PHYSICS_CONSTANTS',
    'TEMPERATURE_EFFICIENCY',
    'SPEED_CONSUMPTION_FACTORS',
    'SPEED_FACTOR_MAX',
    'TRAFFIC_CONSUMPTION_FACTOR',
    'HVAC_POWER',
    'HVAC_OVERHEAD_WH_PER_KM',
    'VEHICLE_STATE_LIMITS',
    'PREDICTION_POLICY',
    'CROWD_CONFIG',
    'TRAFFIC_LEVELS',
    'SYNC_CONFIG',
    'STORE_CONFIG',
    'DEFAULT_USER_PROFILE'
]
