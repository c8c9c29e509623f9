"""Great-circle helpers on a spherical Earth."""

from __future__ import annotations

import math

import numpy as np

EARTH_RADIUS_M = 6_371_000.0

# (latitude, longitude) in degrees
Coordinate = tuple[float, float]


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in meters between two coordinates."""
    lat1, lon1 = a
    lat2, lon2 = b
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    h = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    # Rounding can push h a hair outside [0, 1] for antipodal points.
    h = min(max(h, 0.0), 1.0)
    return 2.0 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))


def distances_from(origin: Coordinate, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Vectorized haversine distance from one origin to many points."""
    lat0 = np.radians(origin[0])
    lon0 = np.radians(origin[1])
    phi = np.radians(np.asarray(lats, dtype=np.float64))
    lam = np.radians(np.asarray(lons, dtype=np.float64))

    h = (
        np.sin((phi - lat0) / 2.0) ** 2
        + np.cos(lat0) * np.cos(phi) * np.sin((lam - lon0) / 2.0) ** 2
    )
    h = np.clip(h, 0.0, 1.0)
    return 2.0 * EARTH_RADIUS_M * np.arctan2(np.sqrt(h), np.sqrt(1.0 - h))


def pairwise_distances(lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Symmetric matrix of haversine distances (meters) between all points."""
    phi = np.radians(np.asarray(lats, dtype=np.float64))
    lam = np.radians(np.asarray(lons, dtype=np.float64))

    d_phi = phi[:, None] - phi[None, :]
    d_lam = lam[:, None] - lam[None, :]
    h = (
        np.sin(d_phi / 2.0) ** 2
        + np.cos(phi)[:, None] * np.cos(phi)[None, :] * np.sin(d_lam / 2.0) ** 2
    )
    h = np.clip(h, 0.0, 1.0)
    matrix = 2.0 * EARTH_RADIUS_M * np.arctan2(np.sqrt(h), np.sqrt(1.0 - h))
    np.fill_diagonal(matrix, 0.0)
    return matrix


def destination(origin: Coordinate, bearing_deg: float, meters: float) -> Coordinate:
    """Point reached by travelling `meters` from `origin` along `bearing_deg`."""
    lat1 = math.radians(origin[0])
    lon1 = math.radians(origin[1])
    theta = math.radians(bearing_deg)
    delta = meters / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat1) * math.cos(delta)
        + math.cos(lat1) * math.sin(delta) * math.cos(theta)
    )
    lon2 = lon1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(lat1),
        math.cos(delta) - math.sin(lat1) * math.sin(lat2),
    )
    # Normalize longitude to [-180, 180).
    lon2_deg = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
    return math.degrees(lat2), lon2_deg
