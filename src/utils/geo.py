from __future__ import annotations

from geopy.distance import geodesic

from src.utils.errors import InvalidInput


def validate_lat_lng(lat: float, lng: float) -> None:
    if lat is None or lng is None:
        raise InvalidInput("Coordinate requires both lat and lng")
    if not (-90.0 <= lat <= 90.0):
        raise InvalidInput(f"lat out of range [-90,90]: {lat}")
    if not (-180.0 <= lng <= 180.0):
        raise InvalidInput(f"lng out of range [-180,180]: {lng}")


def distance_km(a_lat: float, a_lng: float, b_lat: float, b_lng: float) -> float:
    """Geodesic (WGS-84) distance in km"""
    if a_lat == b_lat and a_lng == b_lng:
        return 0.0
    return geodesic((a_lat, a_lng), (b_lat, b_lng)).km
