"""
WKT encoding and decoding for parcel rings.

Rings are held as (latitude, longitude) pairs; WKT stores x, y which is
(longitude, latitude). Only the subset exchanged with the parcel API is
supported:

    POLYGON((lng1 lat1, lng2 lat2, ..., lng1 lat1))
    MULTIPOLYGON(((lng1 lat1, ...)))   -- outer ring of the first polygon only
"""
import logging
import math
import re
from typing import Optional

from parcel_editor.domain.models import Ring
from parcel_editor.utils.ring_geometry import cleanup_ring

logger = logging.getLogger(__name__)


_MULTIPOLYGON_PATTERN = re.compile(
    r"MULTIPOLYGON\s*\(\s*\(\s*\(\s*([^)]*?)\s*\)", re.IGNORECASE
)
_POLYGON_PATTERN = re.compile(
    r"POLYGON\s*\(\s*\(\s*([^)]*?)\s*\)", re.IGNORECASE
)


def _format_number(value: float) -> str:
    """Shortest decimal form, without a trailing '.0' for integral values."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def ring_to_wkt(ring: Ring) -> str:
    """
    Encode a ring as a WKT polygon.

    The ring is closed by repeating its first vertex unless the last vertex
    is already exactly equal to it.

    Args:
        ring: List of (latitude, longitude) pairs

    Returns:
        Canonical 'POLYGON((lng lat, ...))' string

    Raises:
        ValueError: If the ring is empty
    """
    if not ring:
        raise ValueError("Cannot encode an empty ring as WKT")

    points = list(ring)
    first = points[0]
    last = points[-1]
    if first[0] != last[0] or first[1] != last[1]:
        points.append(first)

    pairs = ", ".join(
        f"{_format_number(lng)} {_format_number(lat)}" for lat, lng in points
    )
    return f"POLYGON(({pairs}))"


def _parse_pair(token: str) -> Optional[tuple[float, float]]:
    parts = token.replace("(", " ").replace(")", " ").split()
    if len(parts) < 2:
        return None
    try:
        lng = float(parts[0])
        lat = float(parts[1])
    except ValueError:
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    return (lat, lng)


def wkt_to_ring(text: Optional[str]) -> Ring:
    """
    Decode the outer ring of a WKT polygon or multipolygon.

    Never raises: anything that cannot be read yields an empty ring, which
    callers treat as "no geometry yet".

    Args:
        text: WKT string (keyword case-insensitive)

    Returns:
        Cleaned open ring of (latitude, longitude) pairs
    """
    if not text:
        return []

    wkt = str(text).strip()
    match = _MULTIPOLYGON_PATTERN.search(wkt) or _POLYGON_PATTERN.search(wkt)
    if match is None:
        logger.debug(f"No polygon found in WKT: {wkt[:80]}")
        return []

    ring = []
    for token in match.group(1).split(","):
        pair = _parse_pair(token)
        if pair is not None:
            ring.append(pair)

    return cleanup_ring(ring)
