"""Geospatial helper functions."""

from __future__ import annotations

import math

from shapely.geometry import Polygon, mapping

from ..models.domain import Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in kilometres between two coordinates."""

    if a == b:
        return 0.0
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def bearing_degrees(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the initial bearing from (lat1, lon1) to (lat2, lon2)."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)
    y = math.sin(delta_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda)
    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360) % 360


def destination_point(origin: Coordinate, bearing: float, distance: float) -> Coordinate:
    """Point reached travelling `distance` km from `origin` along an initial bearing."""

    angular = distance / EARTH_RADIUS_KM
    theta = math.radians(bearing)
    phi1 = math.radians(origin.latitude)
    lambda1 = math.radians(origin.longitude)

    phi2 = math.asin(
        math.sin(phi1) * math.cos(angular) + math.cos(phi1) * math.sin(angular) * math.cos(theta)
    )
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(angular) * math.cos(phi1),
        math.cos(angular) - math.sin(phi1) * math.sin(phi2),
    )
    longitude = (math.degrees(lambda2) + 540) % 360 - 180
    return Coordinate(latitude=math.degrees(phi2), longitude=longitude)


def coverage_polygon(center: Coordinate, radius_km: float, segments: int = 64) -> Polygon:
    """Approximate the circle of `radius_km` around `center` as a polygon (lon, lat order)."""

    if segments < 3:
        raise ValueError("A coverage polygon needs at least 3 segments.")
    ring = []
    for step in range(segments):
        point = destination_point(center, 360.0 * step / segments, radius_km)
        ring.append((point.longitude, point.latitude))
    return Polygon(ring)


def coverage_geojson(center: Coordinate, radius_km: float, segments: int = 64) -> dict:
    """GeoJSON geometry of a zone's coverage circle, for map overlays."""

    return dict(mapping(coverage_polygon(center, radius_km, segments)))
