# Tata Nexon EV variants with METRIC specs
VEHICLE_VARIANTS = {
    'MR': {
        'name': 'Medium Range',
        'full_name': 'Tata Nexon EV Medium Range',
        'battery_capacity': 30.0,   # kWh
        'base_consumption': 130,    # Wh/km at reference conditions
        'motor_efficiency': 0.92,
        'mass': 1400,               # kg (kerb)
        'official_range': 275,      # km (MIDC)
        'real_world_range': 210,    # km
        'top_speed': 120            # km/h
    },
    'LR': {
        'name': 'Long Range',
        'full_name': 'Tata Nexon EV Long Range',
        'battery_capacity': 45.0,
        'base_consumption': 140,
        'motor_efficiency': 0.91,
        'mass': 1560,
        'official_range': 489,
        'real_world_range': 320,
        'top_speed': 150
    }
}

# Identifiers used by older sync clients
VARIANT_ALIASES = {
    'nexon_ev_mr': 'MR',
    'nexon_ev_lr': 'LR',
    'mr': 'MR',
    'lr': 'LR'
}

DEFAULT_VARIANT_ID = 'MR'

# Regenerative braking levels (fraction of descending energy recovered)
REGEN_LEVELS = {
    0: {'name': 'Off', 'description': 'No regenerative braking', 'recovery_efficiency': 0.0},
    1: {'name': 'Low', 'description': 'Light regeneration, coasting feel', 'recovery_efficiency': 0.10},
    2: {'name': 'Medium', 'description': 'Balanced regeneration', 'recovery_efficiency': 0.18},
    3: {'name': 'High', 'description': 'Strong regeneration, one-pedal driving', 'recovery_efficiency': 0.25}
}

DEFAULT_REGEN_LEVEL = 2
