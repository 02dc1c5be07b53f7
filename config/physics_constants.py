# Physical constants for energy consumption calculation
PHYSICS_CONSTANTS = {
    'gravity': 9.81,                        # m/s²
    'auxiliary_power': 0.15,                # kW average (lights, infotainment, ECUs)
    'default_ambient_temp': 25.0,           # °C when no weather is known
    'default_avg_speed_kmh': 50.0,          # used when the route carries no duration

    # Model-only surcharges (per-segment path without full route context)
    'reference_payload_kg': 150.0,
    'payload_surcharge_per_10kg': 0.005,    # +0.5% per 10 kg above reference
    'reference_tire_pressure_psi': 35.0,
    'tire_surcharge_per_psi': 0.01,         # +1% per PSI below reference
    'min_battery_health': 1.0,              # % floor for health derating

    # Wind
    'headwind_share': 0.5,                  # share of wind speed treated as headwind
    'headwind_threshold_kmh': 10.0,
    'headwind_factor': 0.08,
    'headwind_reference_kmh': 30.0,

    # HVAC overhead on the per-segment path (Wh/km)
    'hvac_assumed_ambient': 28.0,           # °C
    'hvac_temp_diff_factor': 0.02,          # +2% per °C between target and ambient

    # Crowd traffic patterns: each level (0-3) adds this much stop-and-go cost
    'traffic_level_wh_per_km': 10.0,

    # Feasibility
    'safety_buffer_soc': 5.0,               # % SoC that must remain at destination

    # Simple range estimate HVAC factors
    'simple_range_heating_factor': 1.25,
    'simple_range_cooling_factor': 1.15,
}

# Battery efficiency by ambient temperature band
TEMPERATURE_EFFICIENCY = {
    'very_cold': 0.70,  # below 0°C
    'cold': 0.85,       # 0-15°C
    'optimal': 1.00,    # 15-30°C
    'hot': 0.92,        # 30-40°C
    'very_hot': 0.85    # above 40°C
}

# (upper speed bound km/h inclusive, consumption multiplier); above the last bound -> SPEED_FACTOR_MAX
SPEED_CONSUMPTION_FACTORS = [
    (30, 1.15),   # stop-start inefficiency
    (70, 1.00),
    (90, 1.12),
    (110, 1.28),
    (130, 1.45),
]
SPEED_FACTOR_MAX = 1.60

TRAFFIC_CONSUMPTION_FACTOR = {
    'free_flow': 1.00,
    'light': 1.05,
    'moderate': 1.12,
    'heavy': 1.25,
    'congested': 1.40
}

# HVAC electrical draw (kW)
HVAC_POWER = {
    'cooling': 2.5,
    'heating': 4.0,
    'off': 0.0
}

# HVAC overhead used when blending per segment (Wh/km)
HVAC_OVERHEAD_WH_PER_KM = {
    'cooling': 20.0,
    'heating': 25.0,
    'off': 0.0
}

# Physical ranges enforced by the vehicle state setters
VEHICLE_STATE_LIMITS = {
    'soc': (0.0, 100.0),
    'battery_health': (0.0, 100.0),
    'battery_temperature': (-40.0, 80.0),
    'tire_pressure': (15.0, 60.0),
    'payload': (0.0, 600.0),
    'hvac_temperature': (16.0, 32.0),
    'regen_level': (0, 3)
}
