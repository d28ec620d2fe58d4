"""
Domain models for parcels and the overlap workflow.

These models represent the core domain entities and should be independent
of any infrastructure concerns (API clients, map layers, etc.).
"""
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field


Point = Tuple[float, float]
"""A (latitude, longitude) pair."""

Ring = List[Point]
"""Open ring of (latitude, longitude) pairs, insertion order significant."""


class PolygonRecord(BaseModel):
    """A parcel as held in the editor's polygon collection."""
    id: str
    name: str
    ring: Ring = Field(default_factory=list)
    visible: bool = True
    color: str = "#3388ff"
    version: int = Field(
        default=0,
        description="Incremented on every committed ring mutation"
    )
    validation_status: Optional[str] = Field(default=None, alias="validationStatus")
    farm_id: Optional[int] = Field(default=None, alias="farmId")
    active: bool = True
    start_validity: Optional[str] = Field(default=None, alias="startValidity")
    end_validity: Optional[str] = Field(default=None, alias="endValidity")
    converted_parcel_id: Optional[str] = Field(default=None, alias="convertedParcelId")

    class Config:
        populate_by_name = True
        frozen = True


class OverlappingPolygon(BaseModel):
    """Reference to an existing parcel that a candidate ring overlaps."""
    id: str
    name: str

    class Config:
        frozen = True


class OverlapWarning(BaseModel):
    """Advisory raised when a committed ring overlaps visible parcels."""
    polygon_id: str
    overlapping_polygons: List[OverlappingPolygon]
    original_ring: Ring
    fixed_ring: Optional[Ring] = Field(
        default=None,
        description="Non-overlapping alternative; None disables accepting the fix"
    )
    is_new_polygon: bool = False

    class Config:
        frozen = True


class ManualEditContext(BaseModel):
    """Warning snapshot kept while a new parcel is redrawn by hand."""
    warning: OverlapWarning
    area_name_snapshot: str = ""

    class Config:
        frozen = True
