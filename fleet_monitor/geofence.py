"""
Geofence geometry helpers.

All coordinates are (lat, lng) in degrees, all distances in meters. Points are
anything exposing ``lat`` and ``lng`` attributes (``Location``, ``Destination``,
``TrailPoint``).
"""

import math
from typing import Iterable, List, Optional, Sequence

from fleet_monitor.models import GeoZone, Location

EARTH_RADIUS_M = 6371000


def point_in_polygon(lat: float, lng: float, polygon: Sequence[Location]) -> bool:
    """
    Ray-casting parity test. The ring does not need to repeat its first vertex.

    Edges are half-open in latitude, so a point exactly on a boundary may land
    on either side; callers should not depend on boundary results.
    """
    inside = False
    n = len(polygon)
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i].lng, polygon[i].lat
        xj, yj = polygon[j].lng, polygon[j].lat

        if (yi > lat) != (yj > lat):
            cross_lng = (xj - xi) * (lat - yi) / (yj - yi) + xi
            if lng < cross_lng:
                inside = not inside
        j = i
    return inside


def haversine_distance_meters(a, b) -> float:
    """Great-circle distance between two points on a spherical Earth."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)

    sin_d_lat = math.sin(d_lat / 2)
    sin_d_lng = math.sin(d_lng / 2)

    hh = sin_d_lat * sin_d_lat + math.cos(lat1) * math.cos(lat2) * sin_d_lng * sin_d_lng
    hh = min(1.0, hh)
    c = 2 * math.atan2(math.sqrt(hh), math.sqrt(1 - hh))
    return EARTH_RADIUS_M * c


def is_inside_circle(lat: float, lng: float, center, radius_meters: float) -> bool:
    return haversine_distance_meters(Location(lat=lat, lng=lng), center) <= radius_meters


def distance_from_point_to_segment_meters(point, seg_start, seg_end) -> float:
    """
    Distance from ``point`` to the segment ``seg_start``-``seg_end``.

    The projection is done in plain (lat, lng) space and only the final leg is
    measured with haversine. Good enough at city scale, not geodesically exact.
    """
    a = point.lat - seg_start.lat
    b = point.lng - seg_start.lng
    c = seg_end.lat - seg_start.lat
    d = seg_end.lng - seg_start.lng

    dot = a * c + b * d
    len_sq = c * c + d * d
    param = dot / len_sq if len_sq != 0 else -1

    if param < 0:
        closest = Location(lat=seg_start.lat, lng=seg_start.lng)
    elif param > 1:
        closest = Location(lat=seg_end.lat, lng=seg_end.lng)
    else:
        closest = Location(lat=seg_start.lat + param * c, lng=seg_start.lng + param * d)

    return haversine_distance_meters(point, closest)


def is_in_zone(lat: float, lng: float, zone: GeoZone) -> bool:
    if zone.shape == "circle" and zone.center is not None and zone.radius is not None:
        return is_inside_circle(lat, lng, zone.center, zone.radius)
    if zone.shape == "polygon" and zone.polygon:
        return point_in_polygon(lat, lng, zone.polygon)
    return False


def zones_containing_point(lat: float, lng: float, zones: Optional[Iterable[GeoZone]] = None) -> List[GeoZone]:
    """All zones containing the point, in registry order."""
    if zones is None:
        from fleet_monitor.map_data import GEOFENCE_ZONES
        zones = GEOFENCE_ZONES
    return [z for z in zones if is_in_zone(lat, lng, z)]


def polygon_centroid(polygon: Sequence[Location]) -> Location:
    """Vertex mean of a ring. Fine for the small convex zones we use."""
    if not polygon:
        raise ValueError("polygon has no vertices")
    lat = sum(p.lat for p in polygon) / len(polygon)
    lng = sum(p.lng for p in polygon) / len(polygon)
    return Location(lat=lat, lng=lng)
