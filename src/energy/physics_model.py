"""
Explainable physics consumption model
Attributes trip energy to base, elevation, temperature, speed, traffic,
HVAC, auxiliary and wind costs, with regen recovery tracked separately
"""
from typing import Dict, Optional, Tuple

from config.physics_constants import (
    PHYSICS_CONSTANTS,
    TEMPERATURE_EFFICIENCY,
    SPEED_CONSUMPTION_FACTORS,
    SPEED_FACTOR_MAX,
    TRAFFIC_CONSUMPTION_FACTOR,
    HVAC_POWER,
    HVAC_OVERHEAD_WH_PER_KM,
)
from config.logging_config import is_detailed_logging_enabled
from src.models.prediction import ConsumptionBreakdown
from src.models.route import Route, TrafficConditions, WeatherConditions
from src.models.vehicle import VehicleState, VehicleVariant
from src.utils.logger import get_logger, log_detailed

logger = get_logger('physics_model')


class PhysicsConsumptionModel:
    """
    Piecewise-constant EV consumption model:
    - Base rate per variant, scaled by distance
    - Potential energy for climbs, partial recovery on descents by regen level
    - Battery temperature efficiency bands
    - Speed and traffic density multipliers on the base rate
    - HVAC and auxiliary draw over the trip duration
    - Headwind surcharge

    Stateless apart from its constant tables; safe to share between threads.
    """

    def __init__(self, constants: Dict = None):
        self.constants = dict(PHYSICS_CONSTANTS)
        if constants:
            self.constants.update(constants)
        self.temp_efficiency = TEMPERATURE_EFFICIENCY
        self.speed_factors = SPEED_CONSUMPTION_FACTORS
        self.traffic_factors = TRAFFIC_CONSUMPTION_FACTOR

        self.GRAVITY = self.constants['gravity']
        self.AUX_POWER_KW = self.constants['auxiliary_power']

        self.debug_mode = is_detailed_logging_enabled('energy_calculation')

    def _log_detailed(self, message: str, subject_id: str = "unknown"):
        """Write detailed log message to file"""
        if self.debug_mode:
            log_detailed(message, "energy_calculation", subject_id)

    # Factor tables
    def temperature_efficiency(self, temp_c: float) -> float:
        if temp_c < 0:
            return self.temp_efficiency['very_cold']
        if temp_c < 15:
            return self.temp_efficiency['cold']
        if temp_c <= 30:
            return self.temp_efficiency['optimal']
        if temp_c <= 40:
            return self.temp_efficiency['hot']
        return self.temp_efficiency['very_hot']

    def speed_factor(self, speed_kmh: float) -> float:
        for upper_bound, factor in self.speed_factors:
            if speed_kmh <= upper_bound:
                return factor
        return SPEED_FACTOR_MAX

    def traffic_factor(self, density: str) -> float:
        return self.traffic_factors.get(density, 1.0)

    def hvac_power_kw(self, state: VehicleState) -> float:
        if not state.hvac_on:
            return 0.0
        return HVAC_POWER.get(state.hvac_mode, 0.0)

    def elevation_energy(self, mass_kg: float, gain_m: float, loss_m: float,
                         recovery_efficiency: float) -> Tuple[float, float]:
        """Return (climb Wh, recovered Wh) for the given elevation gain and loss"""
        climb = mass_kg * self.GRAVITY * max(0.0, gain_m) / 3600
        recovered = mass_kg * self.GRAVITY * max(0.0, loss_m) / 3600 * recovery_efficiency
        return climb, recovered

    def headwind_cost(self, base_wh: float, wind_speed_kmh: float) -> float:
        headwind = wind_speed_kmh * self.constants['headwind_share']
        if headwind > self.constants['headwind_threshold_kmh']:
            return base_wh * self.constants['headwind_factor'] * (headwind / self.constants['headwind_reference_kmh'])
        return 0.0

    def hvac_overhead_wh_per_km(self, state: VehicleState, ambient_temp: Optional[float] = None) -> float:
        """Per-km HVAC overhead used when costing route segments one at a time"""
        if not state.hvac_on:
            return 0.0
        base = HVAC_OVERHEAD_WH_PER_KM.get(state.hvac_mode, 0.0)
        ambient = self.constants['hvac_assumed_ambient'] if ambient_temp is None else ambient_temp
        temp_diff = abs(state.hvac_temperature - ambient)
        return base * (1 + temp_diff * self.constants['hvac_temp_diff_factor'])

    def model_only_wh_per_km(self, variant: VehicleVariant, state: VehicleState) -> float:
        """Base rate with payload, tire pressure and battery health adjustments"""
        c = self.constants
        consumption = variant.base_consumption

        if state.payload > c['reference_payload_kg']:
            consumption *= 1 + ((state.payload - c['reference_payload_kg']) / 10) * c['payload_surcharge_per_10kg']

        if state.tire_pressure < c['reference_tire_pressure_psi']:
            consumption *= 1 + (c['reference_tire_pressure_psi'] - state.tire_pressure) * c['tire_surcharge_per_psi']

        if state.battery_health < 100:
            consumption *= 100 / max(state.battery_health, c['min_battery_health'])

        return consumption

    def calculate_breakdown(self, state: VehicleState, distance_km: float, duration_hours: float,
                            elevation_gain: float = 0.0, elevation_loss: float = 0.0,
                            weather: WeatherConditions = None,
                            traffic: TrafficConditions = None,
                            average_speed_kmh: Optional[float] = None,
                            secondary_adjustments: bool = False,
                            hvac_overhead: bool = False,
                            subject_id: str = "unknown") -> ConsumptionBreakdown:
        """
        Attribute the energy of one stretch of road.

        Args:
            state: Vehicle state snapshot (variant, payload, regen, HVAC)
            distance_km: Stretch length; zero yields an all-zero breakdown
            duration_hours: Time spent driving, for HVAC and auxiliary draw
            elevation_gain / elevation_loss: Meters climbed and descended
            weather, traffic: Conditions; defaults are 25°C calm, free flow
            average_speed_kmh: Defaults to traffic speed, then distance/duration
            secondary_adjustments: Use the adjusted model-only base rate
            hvac_overhead: Cost HVAC per km instead of power over duration
        """
        if distance_km <= 0:
            return ConsumptionBreakdown()

        ambient = weather.temperature if weather is not None else None
        weather = weather or WeatherConditions()
        traffic = traffic or TrafficConditions()
        variant = state.variant

        if average_speed_kmh is None:
            if traffic.average_speed is not None:
                average_speed_kmh = traffic.average_speed
            elif duration_hours > 0:
                average_speed_kmh = distance_km / duration_hours
            else:
                average_speed_kmh = self.constants['default_avg_speed_kmh']

        wh_per_km = (self.model_only_wh_per_km(variant, state)
                     if secondary_adjustments else variant.base_consumption)
        base = wh_per_km * distance_km

        climb, recovered = self.elevation_energy(
            state.total_mass_kg, elevation_gain, elevation_loss, state.regen.recovery_efficiency
        )

        temperature = base * (1 - self.temperature_efficiency(weather.temperature))
        speed = base * (self.speed_factor(average_speed_kmh) - 1)
        traffic_cost = base * (self.traffic_factor(traffic.density) - 1)
        wind = self.headwind_cost(base, weather.wind_speed)

        if hvac_overhead:
            hvac = self.hvac_overhead_wh_per_km(state, ambient) * distance_km
        else:
            hvac = self.hvac_power_kw(state) * max(0.0, duration_hours) * 1000
        auxiliary = self.AUX_POWER_KW * max(0.0, duration_hours) * 1000

        total = base + climb + temperature + speed + traffic_cost + hvac + auxiliary + wind - recovered
        total = max(0.0, total)

        self._log_detailed(
            f"{distance_km:.3f}km @ {average_speed_kmh:.1f}km/h, {weather.temperature:.1f}°C, {traffic.density}: "
            f"base={base:.1f}Wh climb={climb:.1f}Wh regen={recovered:.1f}Wh temp={temperature:.1f}Wh "
            f"speed={speed:.1f}Wh traffic={traffic_cost:.1f}Wh hvac={hvac:.1f}Wh aux={auxiliary:.1f}Wh "
            f"wind={wind:.1f}Wh total={total:.1f}Wh",
            subject_id
        )

        return ConsumptionBreakdown(
            base=base,
            elevation=climb,
            temperature=temperature,
            speed=speed,
            traffic=traffic_cost,
            hvac=hvac,
            auxiliary=auxiliary,
            wind=wind,
            regen_recovery=recovered,
            total=total,
        )

    def predict_route(self, route: Route, state: VehicleState,
                      weather: WeatherConditions = None,
                      traffic: TrafficConditions = None) -> Tuple[ConsumptionBreakdown, float]:
        """Whole-route breakdown plus the resulting Wh/km"""
        breakdown = self.calculate_breakdown(
            state,
            distance_km=route.total_distance_km,
            duration_hours=route.duration_hours,
            elevation_gain=route.total_elevation_gain,
            elevation_loss=route.total_elevation_loss,
            weather=weather,
            traffic=traffic,
            subject_id=route.id,
        )
        return breakdown, self.per_km(breakdown.total, route.total_distance_km)

    @staticmethod
    def per_km(total_wh: float, distance_km: float) -> float:
        if distance_km <= 0:
            return 0.0
        return total_wh / distance_km
