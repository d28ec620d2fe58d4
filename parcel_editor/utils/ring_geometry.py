"""
Planar geometry helpers for parcel rings.

Provides utilities for:
- Ring cleanup and signed area
- Bounding-box and point-in-polygon overlap testing
- Boolean difference (subject minus clip)
- Overlap resolution with a centroid-shrink fallback

Latitude and longitude are treated as Cartesian coordinates; no geodesic
correction is applied. Rings are open lists of (lat, lng) pairs.
"""
import logging
import math
from typing import Optional, Sequence

import numpy as np
from shapely.errors import GEOSException
from shapely.geometry import Polygon
from shapely.validation import make_valid

from parcel_editor.config import settings
from parcel_editor.domain.models import PolygonRecord, Point, Ring

logger = logging.getLogger(__name__)


def cleanup_ring(ring: Sequence[Point], epsilon: Optional[float] = None) -> Ring:
    """
    Remove consecutive near-duplicate points and a duplicated closing point.

    Args:
        ring: Sequence of (lat, lng) pairs, open or closed
        epsilon: Merge distance (defaults to settings.ring_epsilon)

    Returns:
        Open ring without coincident neighbours
    """
    eps = settings.ring_epsilon if epsilon is None else epsilon

    cleaned: Ring = []
    for lat, lng in ring:
        point = (float(lat), float(lng))
        if cleaned:
            prev = cleaned[-1]
            if math.hypot(point[0] - prev[0], point[1] - prev[1]) <= eps:
                continue
        cleaned.append(point)

    while len(cleaned) > 2:
        first = cleaned[0]
        last = cleaned[-1]
        if math.hypot(last[0] - first[0], last[1] - first[1]) > eps:
            break
        cleaned.pop()

    return cleaned


def signed_area(ring: Sequence[Point]) -> float:
    """
    Shoelace area with (lat, lng) read as (y, x).

    The sign gives the winding order; the magnitude is only meaningful for
    comparing rings with each other.
    """
    if len(ring) < 3:
        return 0.0
    points = np.asarray(ring, dtype=float)
    y = points[:, 0]
    x = points[:, 1]
    return float(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y) / 2.0)


def bounding_box(ring: Sequence[Point]) -> tuple[float, float, float, float]:
    """
    Bounding box of a non-empty ring.

    Returns:
        (min_lat, min_lng, max_lat, max_lng)
    """
    points = np.asarray(ring, dtype=float)
    min_lat, min_lng = points.min(axis=0)
    max_lat, max_lng = points.max(axis=0)
    return (float(min_lat), float(min_lng), float(max_lat), float(max_lng))


def _boxes_intersect(
    a: tuple[float, float, float, float],
    b: tuple[float, float, float, float],
) -> bool:
    return a[0] <= b[2] and b[0] <= a[2] and a[1] <= b[3] and b[1] <= a[3]


def _box_contains(box: tuple[float, float, float, float], point: Point) -> bool:
    return box[0] <= point[0] <= box[2] and box[1] <= point[1] <= box[3]


def point_in_polygon(point: Point, ring: Sequence[Point]) -> bool:
    """
    Ray-casting containment test.

    Args:
        point: (lat, lng) pair
        ring: Open or closed ring

    Returns:
        True if the ray crosses the ring boundary an odd number of times
    """
    x, y = point
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i]
        xj, yj = ring[j]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def distance_to_boundary(point: Point, ring: Sequence[Point]) -> float:
    """
    Shortest distance from a point to any edge of a ring.

    Args:
        point: (lat, lng) pair
        ring: Open ring with at least one point

    Returns:
        Planar distance in degrees
    """
    starts = np.asarray(ring, dtype=float)
    edges = np.roll(starts, -1, axis=0) - starts
    offsets = np.asarray(point, dtype=float) - starts

    lengths = np.einsum("ij,ij->i", edges, edges)
    safe_lengths = np.where(lengths > 0, lengths, 1.0)
    t = np.clip(np.einsum("ij,ij->i", offsets, edges) / safe_lengths, 0.0, 1.0)

    gaps = offsets - edges * t[:, None]
    return float(np.min(np.hypot(gaps[:, 0], gaps[:, 1])))


def _strictly_inside(
    point: Point,
    ring: Sequence[Point],
    box: tuple[float, float, float, float],
    epsilon: float,
) -> bool:
    return (
        _box_contains(box, point)
        and point_in_polygon(point, ring)
        and distance_to_boundary(point, ring) > epsilon
    )


def overlaps(
    ring_a: Sequence[Point],
    ring_b: Sequence[Point],
    epsilon: Optional[float] = None,
) -> bool:
    """
    Check whether two rings overlap, using vertex containment.

    Bounding boxes are compared first; when they intersect, every vertex of
    each ring is tested for containment in the other. A vertex lying on the
    other ring's boundary (within epsilon) is not contained, so rings that
    only share an edge or a corner do not overlap. Two rings that cross
    edge-to-edge without either holding a vertex of the other are reported
    as not overlapping (known limitation of the heuristic).

    Args:
        ring_a: First ring
        ring_b: Second ring
        epsilon: Boundary tolerance (defaults to settings.ring_epsilon)

    Returns:
        True on the first strictly contained vertex found in either direction
    """
    if len(ring_a) < 3 or len(ring_b) < 3:
        return False

    eps = settings.ring_epsilon if epsilon is None else epsilon

    box_a = bounding_box(ring_a)
    box_b = bounding_box(ring_b)
    if not _boxes_intersect(box_a, box_b):
        return False

    for point in ring_a:
        if _strictly_inside(point, ring_b, box_b, eps):
            return True

    for point in ring_b:
        if _strictly_inside(point, ring_a, box_a, eps):
            return True

    return False


def _to_shapely(ring: Sequence[Point]) -> Polygon:
    """Build a shapely polygon from a closed (lng, lat) ring."""
    closed = [(lng, lat) for lat, lng in ring]
    if closed[0] != closed[-1]:
        closed.append(closed[0])
    polygon = Polygon(closed)
    if not polygon.is_valid:
        polygon = make_valid(polygon)
    return polygon


def _outer_rings(geometry) -> list[Ring]:
    """Outer rings of every polygon in a (multi)geometry, as (lat, lng)."""
    if geometry.is_empty:
        return []

    if hasattr(geometry, "geoms"):
        rings = []
        for part in geometry.geoms:
            rings.extend(_outer_rings(part))
        return rings

    if not isinstance(geometry, Polygon):
        # Lines and points left over by the overlay carry no area
        return []

    coords = list(geometry.exterior.coords)[:-1]
    return [[(lat, lng) for lng, lat in coords]]


def subtract(subject_ring: Sequence[Point], clip_ring: Sequence[Point]) -> list[Ring]:
    """
    Boolean difference of subject minus clip.

    Holes produced by the difference are discarded; only outer rings are
    returned. Fragments with fewer than 3 points after cleanup are dropped.

    Args:
        subject_ring: Ring to clip
        clip_ring: Ring to remove from the subject

    Returns:
        Zero, one or several rings

    Raises:
        GEOSException: If the overlay fails on degenerate input
    """
    if len(subject_ring) < 3:
        return []
    if len(clip_ring) < 3:
        return [list(subject_ring)]

    difference = _to_shapely(subject_ring).difference(_to_shapely(clip_ring))

    fragments = []
    for ring in _outer_rings(difference):
        cleaned = cleanup_ring(ring)
        if len(cleaned) >= 3:
            fragments.append(cleaned)
    return fragments


def _scale_toward(points: np.ndarray, center: np.ndarray, factor: float) -> Ring:
    scaled = center + (points - center) * factor
    return [(float(lat), float(lng)) for lat, lng in scaled]


def shrink_away_from_obstacles(
    ring: Sequence[Point],
    obstacles: Sequence[PolygonRecord],
    start_factor: Optional[float] = None,
    step: Optional[float] = None,
    min_factor: Optional[float] = None,
    fallback_factor: Optional[float] = None,
) -> Ring:
    """
    Scale a ring toward its centroid until it no longer overlaps obstacles.

    Factors are tried from start_factor down to min_factor (inclusive). If
    none clears every obstacle, the ring scaled by fallback_factor is
    returned; it may still overlap but the loop always terminates.

    Args:
        ring: Ring to shrink
        obstacles: Parcels the result must not overlap
        start_factor: First factor (defaults to settings.shrink_start_factor)
        step: Factor decrement (defaults to settings.shrink_step)
        min_factor: Last factor (defaults to settings.shrink_min_factor)
        fallback_factor: Last-resort factor (defaults to settings.shrink_fallback_factor)

    Returns:
        Shrunk ring
    """
    if len(ring) < 3:
        return list(ring)

    start_factor = settings.shrink_start_factor if start_factor is None else start_factor
    step = settings.shrink_step if step is None else step
    min_factor = settings.shrink_min_factor if min_factor is None else min_factor
    fallback_factor = settings.shrink_fallback_factor if fallback_factor is None else fallback_factor

    points = np.asarray(ring, dtype=float)
    center = points.mean(axis=0)

    # Integer step counts avoid drifting past min_factor through float error
    first_step = int(round(start_factor / step))
    last_step = int(round(min_factor / step))

    for n in range(first_step, last_step - 1, -1):
        factor = n * step
        shrunk = _scale_toward(points, center, factor)
        if not any(overlaps(shrunk, obstacle.ring) for obstacle in obstacles):
            logger.debug(f"Shrink factor {factor:.2f} clears {len(obstacles)} obstacles")
            return shrunk

    logger.warning(
        f"No shrink factor down to {min_factor:.2f} cleared the obstacles, "
        f"using {fallback_factor:.2f} fallback"
    )
    return _scale_toward(points, center, fallback_factor)


def resolve_overlap(candidate_ring: Sequence[Point], obstacles: Sequence[PolygonRecord]) -> Ring:
    """
    Compute a non-overlapping alternative to a candidate ring.

    Every obstacle is subtracted from every fragment produced so far; the
    fragment with the largest absolute area is kept (first one on ties).
    When clipping eliminates everything, the candidate is shrunk instead.

    Args:
        candidate_ring: Ring that overlaps the obstacles
        obstacles: Overlapped parcels

    Returns:
        Fixed ring
    """
    if len(candidate_ring) < 3:
        return list(candidate_ring)

    usable = [obstacle for obstacle in obstacles if len(obstacle.ring) >= 3]
    if not usable:
        return list(candidate_ring)

    fragments: list[Ring] = [list(candidate_ring)]
    try:
        for obstacle in usable:
            next_fragments: list[Ring] = []
            for fragment in fragments:
                next_fragments.extend(subtract(fragment, obstacle.ring))
            fragments = next_fragments
    except GEOSException as e:
        logger.warning(f"Boolean difference failed ({e}), falling back to shrink")
        return shrink_away_from_obstacles(candidate_ring, usable)

    if not fragments:
        logger.warning("All candidate fragments removed during clipping, falling back to shrink")
        return shrink_away_from_obstacles(candidate_ring, usable)

    logger.debug(f"Clipping produced {len(fragments)} fragments")
    return max(fragments, key=lambda fragment: abs(signed_area(fragment)))
