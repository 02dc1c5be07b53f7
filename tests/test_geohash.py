import pytest

from src.utils.geohash import BASE32, decode_bbox, geohash, is_valid_geohash


class TestGeohash:

    @pytest.mark.parametrize("lat,lng", [
        (18.5204, 73.8567),
        (-33.8688, 151.2093),
        (0.0, 0.0),
        (89.9, -179.9),
        (-90.0, 180.0),
    ])
    @pytest.mark.parametrize("precision", [1, 5, 6, 8, 12])
    def test_length_and_alphabet(self, lat, lng, precision):
        cell = geohash(lat, lng, precision)
        assert len(cell) == precision
        assert all(ch in BASE32 for ch in cell)

    def test_known_values(self):
        assert geohash(57.64911, 10.40744, 11) == 'u4pruydqqvj'
        assert geohash(42.6, -5.6, 5) == 'ezs42'

    def test_deterministic(self):
        assert {geohash(19.076, 72.8777) for _ in range(20)} == {geohash(19.076, 72.8777)}

    def test_default_precision_is_six(self):
        assert len(geohash(19.076, 72.8777)) == 6

    def test_nearby_points_share_cell(self):
        bbox = decode_bbox(geohash(18.5204, 73.8567))
        lat = (bbox['min_lat'] + bbox['max_lat']) / 2
        lng = (bbox['min_lng'] + bbox['max_lng']) / 2
        assert geohash(lat, lng) == geohash(lat + 0.001, lng + 0.001)

    def test_adjacent_cells_differ(self):
        bbox = decode_bbox(geohash(18.5204, 73.8567))
        lat = (bbox['min_lat'] + bbox['max_lat']) / 2
        step = bbox['max_lng'] - bbox['min_lng']
        lng = (bbox['min_lng'] + bbox['max_lng']) / 2
        assert geohash(lat, lng) != geohash(lat, lng + step)

    def test_decode_contains_point(self):
        bbox = decode_bbox(geohash(18.5204, 73.8567, 8))
        assert bbox['min_lat'] <= 18.5204 <= bbox['max_lat']
        assert bbox['min_lng'] <= 73.8567 <= bbox['max_lng']

    def test_decode_rejects_invalid(self):
        with pytest.raises(ValueError):
            decode_bbox('abc!')
        with pytest.raises(ValueError):
            decode_bbox('')


class TestValidation:

    def test_excluded_letters_rejected(self):
        for ch in 'ailo':
            assert not is_valid_geohash(f'te{ch}st')

    def test_length_bounds(self):
        assert is_valid_geohash('tek5', 4, 8)
        assert not is_valid_geohash('tek', 4, 8)
        assert not is_valid_geohash('tek5tek5t', 4, 8)

    def test_non_string(self):
        assert not is_valid_geohash(None)
        assert not is_valid_geohash(123456)
