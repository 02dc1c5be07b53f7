import pytest

from src.models.route import Coordinate, Route, TrafficConditions, WeatherConditions
from src.models.vehicle import VehicleState, VehicleStatePatch, regen_level
from src.utils.errors import InvalidInput, InvalidRoute, UnknownVariant


@pytest.fixture
def state(catalog):
    return VehicleState(variant=catalog.get('MR'))


class TestVariantCatalog:

    def test_ids(self, catalog):
        assert catalog.ids() == ['MR', 'LR']
        assert catalog.default.id == 'MR'

    @pytest.mark.parametrize("given,expected", [('MR', 'MR'), ('lr', 'LR'), ('nexon_ev_mr', 'MR'), ('NEXON_EV_LR', 'LR')])
    def test_aliases(self, catalog, given, expected):
        assert catalog.get(given).id == expected

    def test_strict_lookup_raises(self, catalog):
        with pytest.raises(UnknownVariant):
            catalog.get('model_y')

    def test_resolve_falls_back(self, catalog):
        assert catalog.resolve('model_y').id == 'MR'
        assert catalog.resolve(None).id == 'MR'

    def test_variant_specs(self, catalog):
        lr = catalog.get('LR')
        assert (lr.battery_capacity, lr.base_consumption, lr.mass) == (45.0, 140.0, 1560.0)


class TestClamping:

    def test_constructor_clamps(self, catalog):
        state = VehicleState(variant=catalog.get('MR'), current_soc=130, payload=900, tire_pressure=5)
        assert state.current_soc == 100
        assert state.payload == 600
        assert state.tire_pressure == 15

    @pytest.mark.parametrize("setter,value,attr,expected", [
        ('set_soc', -5, 'current_soc', 0),
        ('set_soc', 55.5, 'current_soc', 55.5),
        ('set_battery_health', 120, 'battery_health', 100),
        ('set_battery_temperature', -60, 'battery_temperature', -40),
        ('set_tire_pressure', 80, 'tire_pressure', 60),
        ('set_payload', -1, 'payload', 0),
    ])
    def test_setters_clamp(self, state, setter, value, attr, expected):
        getattr(state, setter)(value)
        assert getattr(state, attr) == expected

    def test_regen_level_clamped(self, state):
        state.set_regen_level(7)
        assert state.regen.level == 3
        state.set_regen_level(-1)
        assert state.regen.level == 0
        assert state.regen.recovery_efficiency == 0

    def test_unknown_regen_level_lookup(self):
        with pytest.raises(InvalidInput):
            regen_level(4)


class TestHvac:

    def test_on_without_mode_defaults_to_cooling(self, state):
        state.set_hvac(True)
        assert state.hvac_mode == 'cooling'

    def test_off_forces_mode_off(self, state):
        state.set_hvac(False, 'heating')
        assert not state.hvac_on
        assert state.hvac_mode == 'off'

    def test_temperature_clamped(self, state):
        state.set_hvac(True, 'heating', 40)
        assert state.hvac_temperature == 32

    def test_invalid_mode(self, state):
        with pytest.raises(InvalidInput):
            state.set_hvac(True, 'defrost')


class TestPatch:

    def test_partial_update_touches_only_given_fields(self, state):
        before = state.as_dict()
        state.apply_patch(VehicleStatePatch(current_soc=42, hvac_on=True))
        after = state.as_dict()

        assert after['current_soc'] == 42
        assert after['hvac_on'] and after['hvac_mode'] == 'cooling'
        changed = {k for k in after if after[k] != before[k]}
        assert changed == {'current_soc', 'hvac_on', 'hvac_mode'}

    def test_patch_values_clamped(self, state):
        state.apply_patch(VehicleStatePatch(payload=1000, regen_level=3))
        assert state.payload == 600
        assert state.regen.level == 3

    @pytest.mark.parametrize("kwargs", [{'hvac_mode': 'turbo'}, {'regen_level': 9}, {'odometer': -3}])
    def test_invalid_patch(self, kwargs):
        with pytest.raises(InvalidInput):
            VehicleStatePatch(**kwargs)

    def test_snapshot_is_independent(self, state):
        snap = state.snapshot()
        state.set_soc(10)
        assert snap.current_soc == 80


class TestDerived:

    def test_total_mass_includes_payload(self, catalog):
        state = VehicleState(variant=catalog.get('LR'), payload=200)
        assert state.total_mass_kg == 1760

    def test_energy(self, catalog):
        state = VehicleState(variant=catalog.get('MR'), current_soc=80, battery_health=98)
        assert state.usable_battery_kwh() == pytest.approx(29.4)
        assert state.available_energy_kwh() == pytest.approx(23.52)

    def test_simple_range_estimate(self, state):
        assert state.simple_range_estimate() == 185
        state.set_hvac(True, 'heating')
        assert state.simple_range_estimate() == 148


class TestRoute:

    def test_from_coordinates(self):
        route = Route.from_coordinates([
            Coordinate(18.5204, 73.8567, 560),
            Coordinate(18.60, 73.90, 600),
            Coordinate(18.70, 73.95, 580),
        ])
        assert len(route.segments) == 2
        assert route.total_elevation_gain == 40
        assert route.total_elevation_loss == 20
        assert route.total_distance_km == pytest.approx(sum(s.distance_km for s in route.segments))
        assert route.estimated_duration_min == pytest.approx(route.total_distance_km / 50 * 60)
        assert route.segments[0].average_gradient > 0 > route.segments[1].average_gradient

    def test_missing_elevation_counts_as_flat(self):
        route = Route.from_coordinates([Coordinate(18.52, 73.85), Coordinate(18.53, 73.86, 900)])
        assert route.total_elevation_gain == 0
        assert not route.segments[0].has_elevation

    def test_points_order(self):
        points = [Coordinate(18.52, 73.85), Coordinate(18.53, 73.86), Coordinate(18.54, 73.87)]
        assert Route.from_coordinates(points).points == tuple(points)

    def test_needs_two_points(self):
        with pytest.raises(InvalidRoute):
            Route.from_coordinates([Coordinate(18.52, 73.85)])

    @pytest.mark.parametrize("lat,lng", [(91, 0), (0, -181), (None, 10)])
    def test_coordinate_bounds(self, lat, lng):
        with pytest.raises(InvalidInput):
            Coordinate(lat, lng)

    def test_conditions_validation(self):
        with pytest.raises(InvalidInput):
            WeatherConditions(wind_speed=-1)
        with pytest.raises(InvalidInput):
            TrafficConditions(density='gridlock')
        with pytest.raises(InvalidInput):
            TrafficConditions(average_speed=0)
