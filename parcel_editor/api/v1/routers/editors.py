"""
API router for parcel editors.

Each farm or import batch has one editor held in-process. Every command
returns the resulting EditorSnapshot; commands that are not allowed in
the current state are ignored and reported with applied=false.
"""
from fastapi import APIRouter, HTTPException, Path
from typing import Annotated

from parcel_editor.api.dependencies import EditorDep, EditorRegistryDep
from parcel_editor.api.v1.models.responses import (
    ApproveParcelRequest,
    ColorRequest,
    DragVertexRequest,
    EditorSnapshot,
    FinishCreateRequest,
    PointRequest,
    PreviewSnapshot,
    PreviewVisibilityRequest,
    RenameRequest,
    RingRequest,
    StartEditRequest,
)
from parcel_editor.infrastructure.api_constants import ContextType
from parcel_editor.services.application.edit_session_controller import EditSessionController


router = APIRouter(
    prefix="/editors/{context_type}/{context_id}",
    tags=["editors"],
)

PolygonIdPath = Annotated[str, Path(description="Parcel identifier")]


def build_snapshot(editor: EditSessionController, applied: bool = True) -> EditorSnapshot:
    """
    Describe the editor state for the map UI.

    Args:
        editor: Editor to describe
        applied: Whether the last command changed anything

    Returns:
        EditorSnapshot
    """
    preview = editor.workflow.preview
    return EditorSnapshot(
        context_type=editor.context_type.value,
        context_id=editor.context_id,
        applied=applied,
        state=editor.state.kind,
        editing_id=editor.editing_id,
        point_count=editor.point_count,
        can_finish_create=editor.can_finish_create,
        draft=editor.draft_ring,
        warning=editor.warning,
        preview=PreviewSnapshot(
            visible=preview.visible,
            show_original=preview.show_original,
            show_fixed=preview.show_fixed,
            overlays=editor.workflow.preview_overlays(),
        ),
        polygons=list(editor.polygons),
    )


@router.get("", response_model=EditorSnapshot, summary="Get the editor state")
async def get_editor_state(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor)


@router.post(
    "/load",
    response_model=EditorSnapshot,
    summary="Load parcels from the parcel API",
    description="""
    Replace the editor's collection with the parcels stored by the parcel
    API. A failed request leaves an empty collection. Ignored while a
    session or an overlap decision is open.
    """,
)
async def load_polygons(editor: EditorDep) -> EditorSnapshot:
    applied = editor.state.kind == "idle"
    await editor.load_polygons()
    return build_snapshot(editor, applied)


@router.delete("", status_code=204, summary="Drop the in-process editor")
async def discard_editor(
    context_type: ContextType,
    context_id: str,
    registry: EditorRegistryDep,
) -> None:
    if not registry.discard(context_type, context_id):
        raise HTTPException(status_code=404, detail=f"No editor for {context_type.value} '{context_id}'")


# ------------------------------------------------------------
# Creating
# ------------------------------------------------------------

@router.post("/create/start", response_model=EditorSnapshot, summary="Start drawing a parcel")
async def start_create(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.start_create())


@router.post("/create/points", response_model=EditorSnapshot, summary="Add a point to the drawing")
async def add_point(body: PointRequest, editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.add_point(body.lat, body.lng))


@router.post("/create/undo", response_model=EditorSnapshot, summary="Remove the last drawn point")
async def undo_last_point(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.undo_last_point())


@router.post(
    "/create/finish",
    response_model=EditorSnapshot,
    summary="Finish drawing",
    description="""
    Commit the drawing (at least three points). A clean ring is created
    right away under a temporary id, replaced by the stored id once the
    parcel API answers. An overlapping ring raises an overlap warning.
    """,
)
async def finish_create(body: FinishCreateRequest, editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, await editor.finish_create(body.name))


@router.post("/create/cancel", response_model=EditorSnapshot, summary="Discard the drawing")
async def cancel_create(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.cancel_create())


# ------------------------------------------------------------
# Editing
# ------------------------------------------------------------

@router.post("/edit/start", response_model=EditorSnapshot, summary="Start editing a parcel")
async def start_edit(body: StartEditRequest, editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.start_edit(body.polygon_id))


@router.put("/edit/ring", response_model=EditorSnapshot, summary="Replace the working ring")
async def update_working_ring(body: RingRequest, editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.update_working_ring(body.ring))


@router.post(
    "/edit/drag",
    response_model=EditorSnapshot,
    summary="Move a vertex while dragging",
    responses={
        422: {"description": "Vertex index out of range"},
    }
)
async def drag_vertex(body: DragVertexRequest, editor: EditorDep) -> EditorSnapshot:
    try:
        applied = editor.drag_vertex(body.index, body.lat, body.lng)
    except IndexError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return build_snapshot(editor, applied)


@router.post("/edit/finish", response_model=EditorSnapshot, summary="Commit the edit")
async def finish_edit(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, await editor.finish_edit())


@router.post("/edit/cancel", response_model=EditorSnapshot, summary="Discard the edit")
async def cancel_edit(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.cancel_edit())


# ------------------------------------------------------------
# Overlap decisions
# ------------------------------------------------------------

@router.post("/overlap/ignore", response_model=EditorSnapshot, summary="Keep the overlapping ring")
async def ignore_overlap(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, await editor.ignore_overlap())


@router.post("/overlap/accept", response_model=EditorSnapshot, summary="Use the fixed ring")
async def accept_overlap_fix(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, await editor.accept_overlap_fix())


@router.post("/overlap/manual-edit", response_model=EditorSnapshot, summary="Redraw a new parcel by hand")
async def manual_edit_overlap(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.manual_edit_overlap())


@router.post("/overlap/edit-original", response_model=EditorSnapshot, summary="Reopen the edit")
async def edit_original(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.edit_original())


@router.post("/overlap/cancel", response_model=EditorSnapshot, summary="Drop the commit")
async def cancel_overlap(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.cancel_overlap())


@router.post("/overlap/preview/show", response_model=EditorSnapshot, summary="Show the overlap preview")
async def show_preview(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.show_preview())


@router.post("/overlap/preview/hide", response_model=EditorSnapshot, summary="Hide the overlap preview")
async def hide_preview(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.hide_preview())


@router.put("/overlap/preview", response_model=EditorSnapshot, summary="Toggle preview overlays")
async def set_preview_visibility(body: PreviewVisibilityRequest, editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, editor.set_preview_visibility(original=body.original, fixed=body.fixed))


# ------------------------------------------------------------
# Parcel attributes, deletion and approval
# ------------------------------------------------------------

def _require_polygon(editor: EditSessionController, polygon_id: str) -> None:
    if editor.get_polygon(polygon_id) is None:
        raise HTTPException(status_code=404, detail=f"Parcel '{polygon_id}' not found")


@router.put("/polygons/{polygon_id}/name", response_model=EditorSnapshot, summary="Rename a parcel")
async def rename_polygon(polygon_id: PolygonIdPath, body: RenameRequest, editor: EditorDep) -> EditorSnapshot:
    _require_polygon(editor, polygon_id)
    return build_snapshot(editor, await editor.rename_polygon(polygon_id, body.name))


@router.put("/polygons/{polygon_id}/color", response_model=EditorSnapshot, summary="Recolor a parcel")
async def set_color(polygon_id: PolygonIdPath, body: ColorRequest, editor: EditorDep) -> EditorSnapshot:
    _require_polygon(editor, polygon_id)
    return build_snapshot(editor, await editor.set_color(polygon_id, body.color))


@router.post(
    "/polygons/{polygon_id}/visibility",
    response_model=EditorSnapshot,
    summary="Toggle parcel visibility",
)
async def toggle_visibility(polygon_id: PolygonIdPath, editor: EditorDep) -> EditorSnapshot:
    _require_polygon(editor, polygon_id)
    return build_snapshot(editor, editor.toggle_visibility(polygon_id))


@router.delete(
    "/polygons/{polygon_id}",
    response_model=EditorSnapshot,
    summary="Delete a parcel",
    description="""
    Farm parcels are removed once the parcel API confirmed the deletion;
    a failed deletion keeps the parcel and reports applied=false. Import
    parcels are removed locally.
    """,
)
async def delete_polygon(polygon_id: PolygonIdPath, editor: EditorDep) -> EditorSnapshot:
    _require_polygon(editor, polygon_id)
    return build_snapshot(editor, await editor.delete_polygon(polygon_id))


@router.post(
    "/polygons/{polygon_id}/approve",
    response_model=EditorSnapshot,
    summary="Approve an imported parcel into a farm",
)
async def approve_parcel(
    polygon_id: PolygonIdPath,
    body: ApproveParcelRequest,
    editor: EditorDep,
) -> EditorSnapshot:
    _require_polygon(editor, polygon_id)
    return build_snapshot(editor, await editor.approve_parcel(polygon_id, body.farm_id))


@router.post("/approve", response_model=EditorSnapshot, summary="Approve the import batch")
async def approve_import(editor: EditorDep) -> EditorSnapshot:
    return build_snapshot(editor, await editor.approve_import())
