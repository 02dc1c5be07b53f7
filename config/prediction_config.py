"""
Prediction, crowd aggregation and sync policy parameters
"""

# Blending policy between crowd and model estimates
PREDICTION_POLICY = {
    'crowd_confidence_threshold': 0.5,   # crowd entry must exceed this to be used
    'model_only_confidence': 0.3,        # confidence assigned to model-only segments
    'crowd_blend_weight': 0.7,           # weight of the crowd share in overall confidence
    'crowd_blend_floor': 0.3,            # added to the weighted crowd share
    'no_crowd_confidence': 0.4,          # overall confidence when no segment used crowd data
    'geohash_precision': 6,
    'crowd_query_timeout_s': 2.0,        # read path I/O timeout before model-only fallback
    'high_confidence_threshold': 0.7,    # route coverage statistics
    'range_profile_points': 20,
    'io_workers': 4
}

# Crowd aggregator write policy
CROWD_CONFIG = {
    'max_update_retries': 5,
    'retry_backoff_base_s': 0.005,
    'retry_backoff_max_s': 0.2,
    'retry_jitter': 0.5,                 # fraction of the backoff randomised
    'temperature_bands': {
        'cold': 15.0,                    # < 15°C
        'hot': 30.0                      # > 30°C, moderate in between
    },
    'min_geohash_length': 4,
    'max_geohash_length': 8
}

# Traffic level names as reported by trip segments (0-3 scale)
TRAFFIC_LEVELS = {
    'free': 0,
    'light': 1,
    'moderate': 2,
    'heavy': 3
}

SYNC_CONFIG = {
    'max_trips_per_batch': 500,
    'default_page_size': 50,
    'max_page_size': 200
}
