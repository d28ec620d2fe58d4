"""
API router for stateless geometry endpoints.
"""
from fastapi import APIRouter, Request

from parcel_editor.api.v1.models.responses import (
    OverlapCheckRequest,
    OverlapCheckResponse,
    ResolveRequest,
    RingRequest,
    RingResponse,
    WKTParseRequest,
    WKTResponse,
)
from parcel_editor.domain.models import PolygonRecord
from parcel_editor.middleware.rate_limit import GEOMETRY_RATE_LIMIT, limiter
from parcel_editor.services.domain.overlap_workflow import OverlapResolutionWorkflow
from parcel_editor.utils.ring_geometry import resolve_overlap
from parcel_editor.utils.wkt_codec import ring_to_wkt, wkt_to_ring


router = APIRouter(
    prefix="/geometry",
    tags=["geometry"],
)


@router.post(
    "/wkt/parse",
    response_model=RingResponse,
    summary="Decode WKT into a ring",
    description="""
    Decode POLYGON or MULTIPOLYGON text into an open ring of [lat, lng] pairs.

    Only the first outer ring is read. Malformed text yields an empty ring
    instead of an error.
    """,
)
@limiter.limit(GEOMETRY_RATE_LIMIT)
async def parse_wkt(request: Request, body: WKTParseRequest) -> RingResponse:
    ring = wkt_to_ring(body.wkt)
    return RingResponse(ring=ring, point_count=len(ring))


@router.post(
    "/wkt/encode",
    response_model=WKTResponse,
    summary="Encode a ring as WKT",
    responses={
        400: {"description": "Empty ring"},
    }
)
@limiter.limit(GEOMETRY_RATE_LIMIT)
async def encode_wkt(request: Request, body: RingRequest) -> WKTResponse:
    # ValueError on an empty ring is mapped to 400 by the error middleware
    return WKTResponse(wkt=ring_to_wkt(body.ring))


@router.post(
    "/overlaps",
    response_model=OverlapCheckResponse,
    summary="Find visible parcels overlapped by a ring",
)
@limiter.limit(GEOMETRY_RATE_LIMIT)
async def check_overlaps(request: Request, body: OverlapCheckRequest) -> OverlapCheckResponse:
    polygons = [
        PolygonRecord(id=p.id, name=p.name, ring=p.ring, visible=p.visible)
        for p in body.polygons
    ]
    overlapping = OverlapResolutionWorkflow.detect_overlaps(body.polygon_id, body.ring, polygons)
    return OverlapCheckResponse(
        overlaps=bool(overlapping),
        overlapping_polygons=overlapping,
    )


@router.post(
    "/resolve",
    response_model=RingResponse,
    summary="Compute a ring clear of the given obstacles",
    description="""
    Subtract every obstacle from the ring and keep the largest fragment.
    When subtraction leaves nothing, the ring is shrunk toward its centroid
    until it clears the obstacles, down to a last-resort 5% copy.
    """,
)
@limiter.limit(GEOMETRY_RATE_LIMIT)
async def resolve(request: Request, body: ResolveRequest) -> RingResponse:
    obstacles = [
        PolygonRecord(id=f"obstacle-{index}", name="", ring=ring)
        for index, ring in enumerate(body.obstacles)
    ]
    ring = resolve_overlap(body.ring, obstacles)
    return RingResponse(ring=ring, point_count=len(ring))
