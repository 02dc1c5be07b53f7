"""
Vehicle variants, regeneration levels and the mutable per-session vehicle state
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Dict, Optional

from config.ev_models import (
    VEHICLE_VARIANTS,
    VARIANT_ALIASES,
    DEFAULT_VARIANT_ID,
    REGEN_LEVELS,
    DEFAULT_REGEN_LEVEL,
)
from config.physics_constants import PHYSICS_CONSTANTS, VEHICLE_STATE_LIMITS
from src.utils.errors import InvalidInput, UnknownVariant
from src.utils.logger import warning

HVAC_MODES = ('off', 'cooling', 'heating')


@dataclass(frozen=True)
class VehicleVariant:
    id: str
    name: str
    battery_capacity: float   # kWh
    base_consumption: float   # Wh/km
    motor_efficiency: float
    mass: float               # kg


@dataclass(frozen=True)
class RegenLevel:
    level: int
    name: str
    recovery_efficiency: float


def regen_level(level: int) -> RegenLevel:
    """Look up a regeneration level (0-3)"""
    entry = REGEN_LEVELS.get(level)
    if entry is None:
        raise InvalidInput(f"Regen level must be one of {sorted(REGEN_LEVELS)}: {level}")
    return RegenLevel(level=level, name=entry['name'], recovery_efficiency=entry['recovery_efficiency'])


class VariantCatalog:
    """Fixed catalog of vehicle variants"""

    def __init__(self, variants: Dict[str, Dict] = None, aliases: Dict[str, str] = None,
                 default_id: str = DEFAULT_VARIANT_ID):
        variants = variants or VEHICLE_VARIANTS
        self._variants = {
            variant_id: VehicleVariant(
                id=variant_id,
                name=entry['name'],
                battery_capacity=float(entry['battery_capacity']),
                base_consumption=float(entry['base_consumption']),
                motor_efficiency=float(entry['motor_efficiency']),
                mass=float(entry['mass']),
            )
            for variant_id, entry in variants.items()
        }
        self._aliases = dict(VARIANT_ALIASES if aliases is None else aliases)
        if default_id not in self._variants:
            raise InvalidInput(f"Default variant {default_id!r} missing from catalog")
        self.default_id = default_id

    @property
    def default(self) -> VehicleVariant:
        return self._variants[self.default_id]

    def ids(self):
        return list(self._variants)

    def canonical_id(self, variant_id: str) -> str:
        if variant_id in self._variants:
            return variant_id
        alias = self._aliases.get(variant_id) or self._aliases.get(str(variant_id).lower())
        if alias in self._variants:
            return alias
        raise UnknownVariant(variant_id)

    def get(self, variant_id: str) -> VehicleVariant:
        """Strict lookup, raises UnknownVariant"""
        return self._variants[self.canonical_id(variant_id)]

    def resolve(self, variant_id: Optional[str]) -> VehicleVariant:
        """Lookup that falls back to the default variant instead of failing the caller"""
        if variant_id is None:
            return self.default
        try:
            return self.get(variant_id)
        except UnknownVariant:
            warning(f"Unknown variant {variant_id!r}, falling back to {self.default_id}", 'trip_predictor')
            return self.default


def _clamp(value: float, limit_key: str) -> float:
    low, high = VEHICLE_STATE_LIMITS[limit_key]
    return max(low, min(high, value))


@dataclass(frozen=True)
class VehicleStatePatch:
    """Explicit set of fields a partial update (OBD feed, settings screen) may touch"""
    current_soc: Optional[float] = None
    battery_health: Optional[float] = None
    battery_temperature: Optional[float] = None
    regen_level: Optional[int] = None
    hvac_on: Optional[bool] = None
    hvac_mode: Optional[str] = None
    hvac_temperature: Optional[float] = None
    tire_pressure: Optional[float] = None
    payload: Optional[float] = None
    odometer: Optional[float] = None

    def __post_init__(self):
        if self.hvac_mode is not None and self.hvac_mode not in HVAC_MODES:
            raise InvalidInput(f"hvac_mode must be one of {HVAC_MODES}: {self.hvac_mode}")
        if self.regen_level is not None and self.regen_level not in REGEN_LEVELS:
            raise InvalidInput(f"regen_level must be one of {sorted(REGEN_LEVELS)}: {self.regen_level}")
        if self.odometer is not None and self.odometer < 0:
            raise InvalidInput(f"odometer must be non-negative: {self.odometer}")


@dataclass
class VehicleState:
    """
    Mutable per-session vehicle state.

    Mutate through the ``set_*`` methods or ``apply_patch``; they clamp values
    to physical ranges. ``snapshot()`` hands out an independent copy for
    predictions.
    """
    variant: VehicleVariant
    current_soc: float = 80.0
    battery_health: float = 100.0
    battery_temperature: float = 25.0
    regen: RegenLevel = field(default_factory=lambda: regen_level(DEFAULT_REGEN_LEVEL))
    hvac_on: bool = False
    hvac_mode: str = 'off'
    hvac_temperature: float = 24.0
    tire_pressure: float = 35.0
    payload: float = 75.0
    odometer: float = 0.0

    def __post_init__(self):
        self.current_soc = _clamp(self.current_soc, 'soc')
        self.battery_health = _clamp(self.battery_health, 'battery_health')
        self.battery_temperature = _clamp(self.battery_temperature, 'battery_temperature')
        self.tire_pressure = _clamp(self.tire_pressure, 'tire_pressure')
        self.payload = _clamp(self.payload, 'payload')
        self.hvac_temperature = _clamp(self.hvac_temperature, 'hvac_temperature')
        self.set_hvac(self.hvac_on, self.hvac_mode, self.hvac_temperature)

    # Setters
    def set_variant(self, variant: VehicleVariant):
        self.variant = variant

    def set_soc(self, soc: float):
        self.current_soc = _clamp(soc, 'soc')

    def set_battery_health(self, health: float):
        self.battery_health = _clamp(health, 'battery_health')

    def set_battery_temperature(self, temp: float):
        self.battery_temperature = _clamp(temp, 'battery_temperature')

    def set_regen_level(self, level: int):
        low, high = VEHICLE_STATE_LIMITS['regen_level']
        self.regen = regen_level(int(max(low, min(high, level))))

    def set_hvac(self, on: bool, mode: str = 'off', temp: float = None):
        if mode not in HVAC_MODES:
            raise InvalidInput(f"hvac_mode must be one of {HVAC_MODES}: {mode}")
        self.hvac_on = bool(on)
        # Turning HVAC on without a mode defaults to cooling
        self.hvac_mode = (('cooling' if mode == 'off' else mode) if on else 'off')
        if temp is not None:
            self.hvac_temperature = _clamp(temp, 'hvac_temperature')

    def set_tire_pressure(self, pressure: float):
        self.tire_pressure = _clamp(pressure, 'tire_pressure')

    def set_payload(self, kg: float):
        self.payload = _clamp(kg, 'payload')

    def apply_patch(self, patch: VehicleStatePatch):
        """Apply an explicit partial update through the validated setters"""
        if patch.current_soc is not None:
            self.set_soc(patch.current_soc)
        if patch.battery_health is not None:
            self.set_battery_health(patch.battery_health)
        if patch.battery_temperature is not None:
            self.set_battery_temperature(patch.battery_temperature)
        if patch.regen_level is not None:
            self.set_regen_level(patch.regen_level)
        if patch.hvac_on is not None or patch.hvac_mode is not None or patch.hvac_temperature is not None:
            on = self.hvac_on if patch.hvac_on is None else patch.hvac_on
            mode = patch.hvac_mode or self.hvac_mode
            self.set_hvac(on, mode, patch.hvac_temperature)
        if patch.tire_pressure is not None:
            self.set_tire_pressure(patch.tire_pressure)
        if patch.payload is not None:
            self.set_payload(patch.payload)
        if patch.odometer is not None:
            self.odometer = patch.odometer

    def snapshot(self) -> 'VehicleState':
        return replace(self)

    # Derived values
    @property
    def total_mass_kg(self) -> float:
        return self.variant.mass + self.payload

    def usable_battery_kwh(self) -> float:
        return self.variant.battery_capacity * (self.battery_health / 100)

    def available_energy_kwh(self) -> float:
        return self.variant.battery_capacity * self.current_soc * self.battery_health / 10000

    def simple_range_estimate(self) -> int:
        """Range from the current charge at base consumption, without route data"""
        consumption_kwh_per_km = self.variant.base_consumption / 1000
        if self.hvac_on:
            consumption_kwh_per_km *= (PHYSICS_CONSTANTS['simple_range_heating_factor']
                                       if self.hvac_mode == 'heating'
                                       else PHYSICS_CONSTANTS['simple_range_cooling_factor'])
        return round(self.available_energy_kwh() / consumption_kwh_per_km)

    def as_dict(self) -> Dict:
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name not in ('variant', 'regen')}
        data['variant_id'] = self.variant.id
        data['regen_level'] = self.regen.level
        return data
