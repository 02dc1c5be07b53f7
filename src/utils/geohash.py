"""
Geohash encoding used as the anonymization and aggregation key

A 6 character cell covers roughly 1.2 km x 0.6 km. Exact trip paths are never
stored, only the cells they pass through.
"""

from typing import Dict

BASE32 = '0123456789bcdefghjkmnpqrstuvwxyz'
_BASE32_INDEX = {ch: i for i, ch in enumerate(BASE32)}

DEFAULT_PRECISION = 6


def geohash(lat: float, lng: float, precision: int = DEFAULT_PRECISION) -> str:
    """
    Encode a coordinate into a geohash cell id.

    Bits alternate longitude/latitude starting with longitude; every 5 bits
    produce one base-32 character. Callers validate coordinate ranges.
    """
    min_lat, max_lat = -90.0, 90.0
    min_lng, max_lng = -180.0, 180.0
    chars = []
    bit = 0
    ch = 0
    is_lng = True

    while len(chars) < precision:
        if is_lng:
            mid = (min_lng + max_lng) / 2
            if lng >= mid:
                ch = (ch << 1) | 1
                min_lng = mid
            else:
                ch = ch << 1
                max_lng = mid
        else:
            mid = (min_lat + max_lat) / 2
            if lat >= mid:
                ch = (ch << 1) | 1
                min_lat = mid
            else:
                ch = ch << 1
                max_lat = mid
        is_lng = not is_lng
        bit += 1
        if bit == 5:
            chars.append(BASE32[ch])
            bit = 0
            ch = 0

    return ''.join(chars)


def decode_bbox(cell: str) -> Dict[str, float]:
    """Bounding box of a geohash cell"""
    if not is_valid_geohash(cell):
        raise ValueError(f"Invalid geohash: {cell!r}")

    min_lat, max_lat = -90.0, 90.0
    min_lng, max_lng = -180.0, 180.0
    is_lng = True

    for ch in cell:
        value = _BASE32_INDEX[ch]
        for shift in range(4, -1, -1):
            bit_set = (value >> shift) & 1
            if is_lng:
                mid = (min_lng + max_lng) / 2
                if bit_set:
                    min_lng = mid
                else:
                    max_lng = mid
            else:
                mid = (min_lat + max_lat) / 2
                if bit_set:
                    min_lat = mid
                else:
                    max_lat = mid
            is_lng = not is_lng

    return {
        'min_lat': min_lat,
        'min_lng': min_lng,
        'max_lat': max_lat,
        'max_lng': max_lng,
    }


def is_valid_geohash(cell, min_length: int = 1, max_length: int = 12) -> bool:
    if not isinstance(cell, str) or not (min_length <= len(cell) <= max_length):
        return False
    return all(ch in _BASE32_INDEX for ch in cell)
