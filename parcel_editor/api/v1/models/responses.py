"""
API request and response models using Pydantic.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from parcel_editor.domain.models import (
    OverlappingPolygon,
    OverlapWarning,
    Point,
    PolygonRecord,
    Ring,
)


# ------------------------------------------------------------
# Geometry
# ------------------------------------------------------------

class WKTParseRequest(BaseModel):
    """WKT text to decode."""
    wkt: str = Field(
        description="POLYGON or MULTIPOLYGON text, longitude first",
        examples=["POLYGON((4.1 50.2, 4.2 50.2, 4.2 50.3, 4.1 50.3, 4.1 50.2))"]
    )


class RingRequest(BaseModel):
    """A ring of (latitude, longitude) pairs."""
    ring: Ring = Field(description="Open ring of [lat, lng] pairs")


class RingResponse(BaseModel):
    """A ring of (latitude, longitude) pairs."""
    ring: Ring = Field(description="Open ring of [lat, lng] pairs, empty when invalid")
    point_count: int = Field(description="Number of points in the ring")


class WKTResponse(BaseModel):
    """Encoded WKT text."""
    wkt: str = Field(description="Closed POLYGON text, longitude first")


class CandidatePolygon(BaseModel):
    """Existing parcel an overlap check runs against."""
    id: str
    name: str = ""
    ring: Ring
    visible: bool = True


class OverlapCheckRequest(BaseModel):
    """Candidate ring and the parcels it may overlap."""
    ring: Ring
    polygons: List[CandidatePolygon]
    polygon_id: Optional[str] = Field(
        default=None,
        description="Id of the parcel owning the ring, excluded from the check"
    )


class OverlapCheckResponse(BaseModel):
    """Visible parcels overlapped by the candidate ring."""
    overlaps: bool
    overlapping_polygons: List[OverlappingPolygon]


class ResolveRequest(BaseModel):
    """Candidate ring and the obstacle rings to clear."""
    ring: Ring
    obstacles: List[Ring]


# ------------------------------------------------------------
# Editor commands
# ------------------------------------------------------------

class PointRequest(BaseModel):
    lat: float = Field(ge=-90, le=90, examples=[50.25])
    lng: float = Field(ge=-180, le=180, examples=[4.15])


class FinishCreateRequest(BaseModel):
    name: str = Field(default="", description="Parcel name, default name when empty")


class StartEditRequest(BaseModel):
    polygon_id: str


class DragVertexRequest(BaseModel):
    index: int = Field(ge=0, description="Index of the dragged vertex")
    lat: float
    lng: float


class PreviewVisibilityRequest(BaseModel):
    original: Optional[bool] = None
    fixed: Optional[bool] = None


class RenameRequest(BaseModel):
    name: str = Field(min_length=1)


class ColorRequest(BaseModel):
    color: str = Field(min_length=1, examples=["#3388ff"])


class ApproveParcelRequest(BaseModel):
    farm_id: int = Field(description="Farm receiving the approved parcel")


# ------------------------------------------------------------
# Editor snapshot
# ------------------------------------------------------------

class PreviewSnapshot(BaseModel):
    """Overlap preview toggles and the overlays to draw."""
    visible: bool
    show_original: bool
    show_fixed: bool
    overlays: Dict[str, Ring] = Field(default_factory=dict)


class EditorSnapshot(BaseModel):
    """State of one editor after a command."""
    context_type: str
    context_id: str
    applied: bool = Field(
        default=True,
        description="False when the command was ignored in the current state"
    )
    state: str = Field(description="idle, creating, editing or awaiting_overlap_decision")
    editing_id: Optional[str] = None
    point_count: int = 0
    can_finish_create: bool = False
    draft: List[Point] = Field(default_factory=list)
    warning: Optional[OverlapWarning] = None
    preview: PreviewSnapshot
    polygons: List[PolygonRecord]

    class Config:
        json_schema_extra = {
            "example": {
                "context_type": "farm",
                "context_id": "42",
                "applied": True,
                "state": "idle",
                "editing_id": None,
                "point_count": 0,
                "can_finish_create": False,
                "draft": [],
                "warning": None,
                "preview": {
                    "visible": False,
                    "show_original": False,
                    "show_fixed": True,
                    "overlays": {},
                },
                "polygons": [
                    {
                        "id": "101",
                        "name": "North block",
                        "ring": [[50.2, 4.1], [50.2, 4.2], [50.3, 4.2], [50.3, 4.1]],
                        "visible": True,
                        "color": "#3388ff",
                        "version": 0,
                    }
                ],
            }
        }
