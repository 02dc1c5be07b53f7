"""
Logging modes for the EV range prediction engine
Pick a mode with EV_RANGE_LOG_MODE or the CLI --log-mode flag
"""

import os

LOG_DIR = os.getenv('EV_RANGE_LOG_DIR', 'debug_logs')

# mode -> logger settings
LOGGING_MODES = {
    # Warnings and errors on the console only
    'PRODUCTION': {
        'log_level': 'WARNING',
        'enable_console': True,
        'enable_file': False,
        'detailed_logging': False,
        'log_format': 'minimal'
    },
    # Service events plus a run log under LOG_DIR
    'DEVELOPMENT': {
        'log_level': 'INFO',
        'enable_console': True,
        'enable_file': True,
        'detailed_logging': False,
        'log_format': 'simple'
    },
    # Everything, including the per-component detail files
    'DEBUG': {
        'log_level': 'DEBUG',
        'enable_console': True,
        'enable_file': True,
        'detailed_logging': True,
        'log_format': 'detailed'
    },
    'SILENT': {
        'log_level': 'CRITICAL',
        'enable_console': False,
        'enable_file': False,
        'detailed_logging': False,
        'log_format': 'minimal'
    },
    # Records reach pytest's caplog; nothing is printed or written to disk
    'TESTING': {
        'log_level': 'DEBUG',
        'enable_console': False,
        'enable_file': False,
        'detailed_logging': False,
        'log_format': 'detailed'
    }
}

DEFAULT_LOGGING_MODE = 'PRODUCTION'
CURRENT_LOGGING_MODE = os.getenv('EV_RANGE_LOG_MODE', DEFAULT_LOGGING_MODE)

# Per-module switches; a module missing here logs
MODULE_LOGGING = {
    'physics_model': True,
    'crowd_aggregator': True,
    'trip_predictor': True,
    'trip_sync': True,
    'store': True,
    'range_service': True
}

# Per-module level floor applied on top of the mode level
MODULE_LOG_LEVELS = {
    'store': 'INFO',          # per-write version lines are DEBUG noise
}

# Detail files written under LOG_DIR when the mode enables detailed logging
DETAILED_LOGGING_COMPONENTS = {
    'energy_calculation': False,  # every breakdown term of every physics call
    'crowd_updates': False,       # every aggregate write
    'sync_batches': True          # per-trip sync outcomes
}


def get_logging_config(mode: str = None) -> dict:
    """Settings for ``mode`` (default: CURRENT_LOGGING_MODE); unknown modes fall back to PRODUCTION"""
    mode = (mode or CURRENT_LOGGING_MODE).upper()
    return dict(LOGGING_MODES.get(mode, LOGGING_MODES[DEFAULT_LOGGING_MODE]))


def is_module_logging_enabled(module_name: str) -> bool:
    return MODULE_LOGGING.get(module_name, True)


def module_log_level(module_name: str):
    return MODULE_LOG_LEVELS.get(module_name)


def is_detailed_logging_enabled(component: str) -> bool:
    return DETAILED_LOGGING_COMPONENTS.get(component, False)
