"""
Application service: Edit session state machine for one parcel collection.

Coordinates the polygon collection, the live edit session, the overlap
workflow and the parcel API. The controller is in exactly one state:

    Idle | Creating | Editing | AwaitingOverlapDecision

Local mutations are applied before the matching request is sent. Failed
creates and updates keep the local state; failed deletes leave the record
in place. Calls made in the wrong state are ignored and return False.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, ClassVar, Optional, Union
import logging
import time

from parcel_editor.config import settings
from parcel_editor.domain.models import (
    OverlapWarning,
    PolygonRecord,
    Ring,
)
from parcel_editor.infrastructure.api_constants import (
    APIConstants,
    ContextType,
    ParcelAPIEndpoints,
)
from parcel_editor.infrastructure.parcel_api_client import (
    RECONCILIATION_POLICY,
    ParcelAPIClient,
    ParcelCreate,
    ParcelData,
    PersistenceOperation,
    ReconciliationPolicy,
)
from parcel_editor.services.domain.edit_session import (
    DRAG_EVENT,
    EDIT_EVENT,
    DraftLayer,
    EditSession,
    LiveSyncThrottle,
    MapLayer,
    WorkingLayer,
)
from parcel_editor.services.domain.overlap_workflow import (
    OverlapResolutionWorkflow,
    Resolution,
)
from parcel_editor.utils.ring_geometry import cleanup_ring
from parcel_editor.utils.wkt_codec import ring_to_wkt, wkt_to_ring

logger = logging.getLogger(__name__)

UNNAMED_PARCEL = "Unnamed parcel"


@dataclass(frozen=True)
class Idle:
    kind: ClassVar[str] = "idle"


@dataclass(frozen=True)
class Creating:
    draft: DraftLayer
    kind: ClassVar[str] = "creating"


@dataclass(frozen=True)
class Editing:
    session: EditSession
    kind: ClassVar[str] = "editing"


@dataclass(frozen=True)
class AwaitingOverlapDecision:
    warning: OverlapWarning
    kind: ClassVar[str] = "awaiting_overlap_decision"


SessionState = Union[Idle, Creating, Editing, AwaitingOverlapDecision]


class EditSessionController:
    """
    Editing state machine for the parcels of one farm or import batch.

    At most one draw or edit session is alive at a time; starting another
    one while it is open is ignored rather than queued.
    """

    def __init__(
        self,
        api_client: ParcelAPIClient,
        context_type: ContextType,
        context_id: str,
        workflow: Optional[OverlapResolutionWorkflow] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the controller with dependencies.

        Args:
            api_client: Parcel API client for persistence
            context_type: Farm or import context
            context_id: Farm or import identifier
            workflow: Overlap workflow (a fresh one by default)
            clock: Monotonic clock used to throttle live updates
        """
        self.api_client = api_client
        self.context_type = context_type
        self.context_id = str(context_id)
        self.base = ParcelAPIEndpoints.base_path(context_type, self.context_id)
        self.workflow = workflow or OverlapResolutionWorkflow()
        self._clock = clock
        self._polygons: tuple[PolygonRecord, ...] = ()
        self._unsaved_ids: set[str] = set()
        # Temporary ids whose POST has not answered yet
        self._pending_creates: set[str] = set()
        self._deleted_while_pending: set[str] = set()
        # Attribute changes made under a temporary id, sent once it is replaced
        self._deferred_changes: dict[str, dict[str, str]] = {}
        self._state: SessionState = Idle()

    # ------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------

    @property
    def polygons(self) -> tuple[PolygonRecord, ...]:
        return self._polygons

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def editing_id(self) -> Optional[str]:
        if isinstance(self._state, Editing):
            return self._state.session.polygon_id
        return None

    @property
    def session(self) -> Optional[EditSession]:
        if isinstance(self._state, Editing):
            return self._state.session
        return None

    @property
    def warning(self) -> Optional[OverlapWarning]:
        return self.workflow.pending

    @property
    def point_count(self) -> int:
        if isinstance(self._state, Creating):
            return self._state.draft.point_count
        return 0

    @property
    def can_finish_create(self) -> bool:
        return isinstance(self._state, Creating) and self._state.draft.can_finish

    @property
    def draft_ring(self) -> Ring:
        if isinstance(self._state, Creating):
            return self._state.draft.get_ring()
        return []

    def get_polygon(self, polygon_id: str) -> Optional[PolygonRecord]:
        for polygon in self._polygons:
            if polygon.id == polygon_id:
                return polygon
        return None

    def is_unsaved(self, polygon_id: str) -> bool:
        """Whether a record still carries its temporary id."""
        return polygon_id in self._unsaved_ids

    # ------------------------------------------------------------
    # Collection updates (records and the tuple are always replaced)
    # ------------------------------------------------------------

    def _replace(self, polygon_id: str, **changes) -> Optional[PolygonRecord]:
        updated = None
        polygons = []
        for polygon in self._polygons:
            if polygon.id == polygon_id:
                updated = polygon.model_copy(update=changes)
                polygons.append(updated)
            else:
                polygons.append(polygon)
        self._polygons = tuple(polygons)
        return updated

    def _set_ring(self, polygon_id: str, ring: Ring, bump_version: bool) -> None:
        polygon = self.get_polygon(polygon_id)
        if polygon is None:
            return
        version = polygon.version + 1 if bump_version else polygon.version
        self._replace(polygon_id, ring=list(ring), version=version)

    def _append(self, record: PolygonRecord) -> None:
        self._polygons = self._polygons + (record,)

    def _remove(self, polygon_id: str) -> None:
        self._polygons = tuple(p for p in self._polygons if p.id != polygon_id)
        self._unsaved_ids.discard(polygon_id)
        self._deferred_changes.pop(polygon_id, None)

    def _substitute_id(self, old_id: str, new_id: str) -> None:
        """Give a record its permanent id in place."""
        self._replace(old_id, id=new_id)
        self._unsaved_ids.discard(old_id)
        session = self.session
        if session is not None and session.polygon_id == old_id:
            session.polygon_id = new_id
        logger.debug(f"Parcel {old_id} is now {new_id}")

    def _temporary_id(self) -> str:
        stamp = int(time.time() * 1000)
        candidate = f"poly-{stamp}"
        while self.get_polygon(candidate) is not None or candidate in self._pending_creates:
            stamp += 1
            candidate = f"poly-{stamp}"
        return candidate

    def _new_record(self, polygon_id: str, ring: Ring, area_name: str) -> PolygonRecord:
        return PolygonRecord(
            id=polygon_id,
            name=area_name or settings.default_parcel_name,
            ring=list(ring),
            visible=True,
            color=settings.default_parcel_color,
            version=0,
            active=True,
            start_validity=datetime.now(timezone.utc).isoformat(),
            end_validity=None,
        )

    @staticmethod
    def _record_from_parcel(parcel: ParcelData) -> PolygonRecord:
        ring = wkt_to_ring(parcel.geodata)
        if parcel.geodata and not ring:
            logger.warning(f"Invalid WKT format for parcel {parcel.id}: {parcel.geodata[:80]}")

        return PolygonRecord(
            id=str(parcel.id),
            name=parcel.name or UNNAMED_PARCEL,
            ring=ring,
            visible=True,
            version=0,
            color=parcel.color or settings.default_parcel_color,
            active=True if parcel.active is None else parcel.active,
            start_validity=parcel.start_validity,
            end_validity=parcel.end_validity,
            farm_id=parcel.farm_id,
            validation_status=parcel.validation_status,
            converted_parcel_id=(
                str(parcel.converted_parcel_id) if parcel.converted_parcel_id is not None else None
            ),
        )

    def _ignored(self, operation: str) -> bool:
        logger.debug(f"{operation} ignored in state {self._state.kind}")
        return False

    # ------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------

    async def load_polygons(self) -> tuple[PolygonRecord, ...]:
        """
        Replace the collection with the parcels stored by the API.

        Returns:
            The new collection (empty when the request failed)
        """
        if not isinstance(self._state, Idle):
            self._ignored("load_polygons")
            return self._polygons

        result = await self.api_client.list_parcels(self.base)
        if not result.ok:
            logger.error(f"Failed to fetch parcels for {self.base}: {result.reason}")
            self._polygons = ()
            self._unsaved_ids.clear()
            self._deferred_changes.clear()
            return self._polygons

        self._polygons = tuple(self._record_from_parcel(p) for p in result.data)
        self._unsaved_ids.clear()
        self._deferred_changes.clear()
        logger.info(f"Loaded {len(self._polygons)} parcels for {self.base}")
        return self._polygons

    # ------------------------------------------------------------
    # Creating
    # ------------------------------------------------------------

    def start_create(self) -> bool:
        """Begin collecting points for a new parcel."""
        if not isinstance(self._state, Idle):
            return self._ignored("start_create")
        self._state = Creating(draft=DraftLayer())
        return True

    def add_point(self, lat: float, lng: float) -> bool:
        if not isinstance(self._state, Creating):
            return self._ignored("add_point")
        self._state.draft.add_point((lat, lng))
        return True

    def undo_last_point(self) -> bool:
        if not isinstance(self._state, Creating):
            return self._ignored("undo_last_point")
        self._state.draft.undo_last_point()
        return True

    def cancel_create(self) -> bool:
        """Discard every collected point."""
        if not isinstance(self._state, Creating):
            return self._ignored("cancel_create")
        self._state.draft.remove()
        self._state = Idle()
        return True

    async def finish_create(self, name: str = "") -> bool:
        """
        Commit the drawn ring as a new parcel.

        Args:
            name: Name typed for the parcel (default name when empty)

        Returns:
            True if the ring was saved or an overlap warning was raised
        """
        if not isinstance(self._state, Creating) or not self._state.draft.can_finish:
            return self._ignored("finish_create")

        draft = self._state.draft
        ring = cleanup_ring(draft.get_ring())
        if len(ring) < 3:
            logger.debug("Drawn ring degenerate after cleanup, still creating")
            return False

        draft.remove()
        self._state = Idle()
        return await self._commit_new(self._temporary_id(), ring, name)

    async def _commit_new(self, temp_id: str, ring: Ring, area_name: str) -> bool:
        warning = self.workflow.submit(temp_id, ring, self._polygons, is_new=True, area_name=area_name)
        if warning is not None:
            self._state = AwaitingOverlapDecision(warning=warning)
            return True
        await self._create_record(temp_id, ring, area_name)
        return True

    async def _create_record(self, temp_id: str, ring: Ring, area_name: str) -> PolygonRecord:
        record = self._new_record(temp_id, ring, area_name)
        self._append(record)
        self._unsaved_ids.add(temp_id)

        payload = ParcelCreate(
            name=record.name,
            active=True,
            start_validity=record.start_validity,
            end_validity=None,
            geodata=ring_to_wkt(record.ring),
            color=record.color,
        )
        self._pending_creates.add(temp_id)
        try:
            result = await self.api_client.create_parcel(self.base, payload)
        finally:
            self._pending_creates.discard(temp_id)

        deleted = temp_id in self._deleted_while_pending
        self._deleted_while_pending.discard(temp_id)

        if result.ok:
            parcel_id = str(result.data.id)
            if deleted:
                await self._delete_created_parcel(temp_id, parcel_id)
            elif self.get_polygon(temp_id) is not None:
                self._substitute_id(temp_id, parcel_id)
                await self._send_deferred_changes(temp_id, parcel_id)
        elif RECONCILIATION_POLICY[PersistenceOperation.CREATE] == ReconciliationPolicy.KEEP_OPTIMISTIC:
            logger.warning(f"Parcel {temp_id} kept locally with its temporary id: {result.reason}")
        return record

    async def _delete_created_parcel(self, temp_id: str, parcel_id: str) -> None:
        """Delete a parcel the API stored after the user already deleted it."""
        if self.context_type != ContextType.FARM:
            logger.info(f"Parcel {temp_id} deleted locally before import parcel {parcel_id} was stored")
            return

        result = await self.api_client.delete_parcel(parcel_id)
        if result.ok:
            logger.info(f"Parcel {parcel_id} deleted once its create for {temp_id} completed")
        else:
            logger.error(f"Parcel {parcel_id} was deleted locally but is still stored: {result.reason}")

    async def _send_deferred_changes(self, temp_id: str, parcel_id: str) -> None:
        changes = self._deferred_changes.pop(temp_id, None)
        if not changes:
            return
        result = await self.api_client.update_parcel(self.base, parcel_id, changes)
        if not result.ok:
            logger.warning(f"Changes to parcel {parcel_id} kept locally: {result.reason}")

    # ------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------

    def start_edit(self, polygon_id: str, layer: Optional[MapLayer] = None) -> bool:
        """
        Open an edit session on a parcel.

        Args:
            polygon_id: Parcel to edit
            layer: Live layer supplied by the map (a WorkingLayer by default)

        Returns:
            True if the session was opened
        """
        if not isinstance(self._state, Idle):
            return self._ignored(f"start_edit({polygon_id})")

        polygon = self.get_polygon(polygon_id)
        if polygon is None or len(polygon.ring) < 3:
            logger.debug(f"Parcel {polygon_id} has no editable geometry")
            return False

        self._open_session(polygon, layer=layer)
        return True

    def _open_session(self, polygon: PolygonRecord, layer: Optional[MapLayer] = None, manual_context=None) -> EditSession:
        session = EditSession(
            polygon_id=polygon.id,
            layer=layer if layer is not None else WorkingLayer(polygon.ring),
            original_ring=list(polygon.ring),
            manual_context=manual_context,
        )
        throttle = LiveSyncThrottle(settings.live_sync_interval_ms, clock=self._clock)

        def sync() -> None:
            if session.closed:
                return
            self._set_ring(session.polygon_id, session.current_ring(), bump_version=False)

        def throttled_sync() -> None:
            if throttle.ready():
                sync()

        session.listen(EDIT_EVENT, sync)
        session.listen(DRAG_EVENT, throttled_sync)
        self._state = Editing(session=session)
        logger.debug(f"Edit session opened for {polygon.id}")
        return session

    def _close_session(self, session: EditSession) -> None:
        session.teardown()
        self._state = Idle()

    def update_working_ring(self, ring: Ring) -> bool:
        """Replace the ring of the live layer."""
        if not isinstance(self._state, Editing):
            return self._ignored("update_working_ring")
        self._state.session.layer.set_ring([(float(lat), float(lng)) for lat, lng in ring])
        return True

    def drag_vertex(self, index: int, lat: float, lng: float) -> bool:
        """Move one vertex of the working layer to an intermediate position."""
        if not isinstance(self._state, Editing):
            return self._ignored("drag_vertex")
        layer = self._state.session.layer
        if not isinstance(layer, WorkingLayer):
            return self._ignored("drag_vertex on an external layer")
        layer.drag_vertex(index, (lat, lng))
        return True

    async def finish_edit(self) -> bool:
        """
        Commit the edited ring.

        Returns:
            True if the ring was saved or an overlap warning was raised
        """
        if not isinstance(self._state, Editing):
            return self._ignored("finish_edit")

        session = self._state.session
        ring = cleanup_ring(session.current_ring())
        polygon_id = session.polygon_id
        self._close_session(session)

        if session.manual_context is not None:
            return await self._finish_manual_edit(polygon_id, ring, session)

        if len(ring) < 3:
            logger.warning(f"Edited ring of {polygon_id} is degenerate, restoring the previous ring")
            self._set_ring(polygon_id, session.original_ring, bump_version=True)
            return False

        warning = self.workflow.submit(
            polygon_id,
            ring,
            self._polygons,
            is_new=False,
            previous_ring=session.original_ring,
        )
        if warning is not None:
            self._state = AwaitingOverlapDecision(warning=warning)
            return True

        await self._save_ring(polygon_id, ring)
        return True

    async def _finish_manual_edit(self, temp_id: str, ring: Ring, session: EditSession) -> bool:
        # A manually redrawn parcel has never been saved: commit it as new
        context = session.manual_context
        self._remove(temp_id)

        if len(ring) < 3:
            logger.warning(f"Redrawn ring of {temp_id} is degenerate, restoring the overlap warning")
            warning = self.workflow.restore(context)
            self._state = AwaitingOverlapDecision(warning=warning)
            return False

        return await self._commit_new(temp_id, ring, context.area_name_snapshot)

    async def _save_ring(self, polygon_id: str, ring: Ring) -> bool:
        if self.get_polygon(polygon_id) is None:
            logger.debug(f"Parcel {polygon_id} no longer exists, ring not saved")
            return False

        self._set_ring(polygon_id, ring, bump_version=True)
        if self.is_unsaved(polygon_id):
            self._deferred_changes.setdefault(polygon_id, {})["geodata"] = ring_to_wkt(ring)
            logger.debug(f"Parcel {polygon_id} is unsaved, ring kept locally")
            return True

        result = await self.api_client.update_parcel(
            self.base, polygon_id, {"geodata": ring_to_wkt(ring)}
        )
        if not result.ok:
            logger.warning(f"Ring of parcel {polygon_id} kept locally: {result.reason}")
        return True

    def cancel_edit(self) -> bool:
        """
        Discard the edit and restore the pre-edit ring.

        A manual-edit session also drops its temporary record and brings
        back the overlap warning it was started from.
        """
        if not isinstance(self._state, Editing):
            return self._ignored("cancel_edit")

        session = self._state.session
        self._close_session(session)

        if session.manual_context is not None:
            self._remove(session.polygon_id)
            warning = self.workflow.restore(session.manual_context)
            self._state = AwaitingOverlapDecision(warning=warning)
            return True

        self._set_ring(session.polygon_id, session.original_ring, bump_version=True)
        return True

    # ------------------------------------------------------------
    # Overlap decisions
    # ------------------------------------------------------------

    async def _persist_resolution(self, resolution: Resolution) -> bool:
        self._state = Idle()
        warning = resolution.warning
        if warning.is_new_polygon:
            await self._create_record(warning.polygon_id, resolution.ring, resolution.area_name)
            return True
        return await self._save_ring(warning.polygon_id, resolution.ring)

    async def ignore_overlap(self) -> bool:
        """Save the original, overlapping ring."""
        if not isinstance(self._state, AwaitingOverlapDecision):
            return self._ignored("ignore_overlap")
        return await self._persist_resolution(self.workflow.ignore())

    async def accept_overlap_fix(self) -> bool:
        """Save the fixed ring. Ignored while no fixed ring exists."""
        if not isinstance(self._state, AwaitingOverlapDecision):
            return self._ignored("accept_overlap_fix")
        resolution = self.workflow.accept()
        if resolution is None:
            return self._ignored("accept_overlap_fix without a fixed ring")
        return await self._persist_resolution(resolution)

    def manual_edit_overlap(self) -> bool:
        """Materialize a new parcel's original ring and edit it by hand."""
        if not isinstance(self._state, AwaitingOverlapDecision):
            return self._ignored("manual_edit_overlap")
        resolution = self.workflow.manual_edit()
        if resolution is None:
            return self._ignored("manual_edit_overlap on an existing parcel")

        record = self._new_record(resolution.warning.polygon_id, resolution.ring, resolution.area_name)
        self._append(record)
        self._unsaved_ids.add(record.id)
        self._state = Idle()
        self._open_session(record, manual_context=resolution.manual_context)
        return True

    def edit_original(self) -> bool:
        """Drop the warning and reopen the edit on the pre-edit ring."""
        if not isinstance(self._state, AwaitingOverlapDecision):
            return self._ignored("edit_original")
        resolution = self.workflow.edit_original()
        if resolution is None:
            return self._ignored("edit_original on a new parcel")

        self._state = Idle()
        polygon_id = resolution.warning.polygon_id
        if resolution.ring is not None:
            self._set_ring(polygon_id, resolution.ring, bump_version=True)
        polygon = self.get_polygon(polygon_id)
        if polygon is None or len(polygon.ring) < 3:
            return False
        self._open_session(polygon)
        return True

    def cancel_overlap(self) -> bool:
        """Drop the commit: nothing is created, edits get their pre-edit ring back."""
        if not isinstance(self._state, AwaitingOverlapDecision):
            return self._ignored("cancel_overlap")
        resolution = self.workflow.cancel()
        self._state = Idle()
        if not resolution.warning.is_new_polygon and resolution.ring is not None:
            self._set_ring(resolution.warning.polygon_id, resolution.ring, bump_version=True)
        return True

    def show_preview(self) -> bool:
        if not isinstance(self._state, AwaitingOverlapDecision):
            return self._ignored("show_preview")
        self.workflow.show_preview()
        return True

    def hide_preview(self) -> bool:
        if not isinstance(self._state, AwaitingOverlapDecision):
            return self._ignored("hide_preview")
        self.workflow.hide_preview()
        return True

    def set_preview_visibility(self, original: Optional[bool] = None, fixed: Optional[bool] = None) -> bool:
        if not isinstance(self._state, AwaitingOverlapDecision):
            return self._ignored("set_preview_visibility")
        self.workflow.set_preview_visibility(original=original, fixed=fixed)
        return True

    # ------------------------------------------------------------
    # Attributes, deletion and approval
    # ------------------------------------------------------------

    async def _update_attribute(self, polygon_id: str, field_name: str, value: str) -> bool:
        """
        Apply a name or color change locally, then send it.

        Records still under a temporary id are not known to the API: the
        change is held back and sent once the POST returns the real id.
        """
        if self._replace(polygon_id, **{field_name: value}) is None:
            return False

        if self.is_unsaved(polygon_id):
            self._deferred_changes.setdefault(polygon_id, {})[field_name] = value
            logger.debug(f"Parcel {polygon_id} is unsaved, {field_name} change kept locally")
            return True

        result = await self.api_client.update_parcel(self.base, polygon_id, {field_name: value})
        if not result.ok:
            logger.warning(f"The {field_name} of parcel {polygon_id} was kept locally: {result.reason}")
        return True

    async def rename_polygon(self, polygon_id: str, name: str) -> bool:
        return await self._update_attribute(polygon_id, "name", name)

    async def set_color(self, polygon_id: str, color: str) -> bool:
        return await self._update_attribute(polygon_id, "color", color)

    def toggle_visibility(self, polygon_id: str) -> bool:
        polygon = self.get_polygon(polygon_id)
        if polygon is None:
            return False
        self._replace(polygon_id, visible=not polygon.visible)
        return True

    async def delete_polygon(self, polygon_id: str) -> bool:
        """
        Delete a parcel.

        Farm parcels are only removed locally once the API confirmed the
        deletion; import parcels and unsaved records are removed locally.
        A record whose create is still in flight is removed at once, and the
        stored parcel is deleted when the POST succeeds. An edit session on
        the parcel is torn down first.
        """
        if self.get_polygon(polygon_id) is None:
            return False

        if self.context_type == ContextType.FARM and not self.is_unsaved(polygon_id):
            result = await self.api_client.delete_parcel(polygon_id)
            if not result.ok:
                logger.error(f"Parcel {polygon_id} not deleted: {result.reason}")
                return False

        if polygon_id in self._pending_creates:
            # The POST is still out; its parcel is deleted once it answers
            self._deleted_while_pending.add(polygon_id)

        session = self.session
        if session is not None and session.polygon_id == polygon_id:
            self._close_session(session)

        self._remove(polygon_id)
        logger.info(f"Parcel {polygon_id} deleted")
        return True

    async def approve_parcel(self, polygon_id: str, farm_id: int) -> bool:
        """Approve one imported parcel into a farm."""
        if self.context_type != ContextType.IMPORT:
            return self._ignored("approve_parcel outside an import")
        if self.get_polygon(polygon_id) is None:
            return False

        result = await self.api_client.validate_imported_parcel(polygon_id, farm_id)
        if not result.ok:
            return False

        body = result.data if isinstance(result.data, dict) else {}
        changes = {"validation_status": body.get("validationStatus") or APIConstants.STATUS_APPROVED}
        if body.get("convertedParcelId") is not None:
            changes["converted_parcel_id"] = str(body["convertedParcelId"])
        self._replace(polygon_id, **changes)
        return True

    async def approve_import(self) -> bool:
        """Approve the whole import batch."""
        if self.context_type != ContextType.IMPORT:
            return self._ignored("approve_import outside an import")
        result = await self.api_client.approve_import(self.context_id)
        return result.ok
