"""
Domain service: Overlap detection and the user decision workflow.

A committed ring (a finished new parcel or a finished edit) is checked
against the visible parcels. When it overlaps any of them, a fixed ring is
computed and an OverlapWarning is held until the user decides to:
- ignore the overlap and keep the original ring
- accept the fixed ring
- redraw a new parcel by hand (manual edit)
- reopen the edit of an existing parcel (edit original)
- cancel the commit

Previewing the original and fixed rings is an orthogonal toggle.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence
import logging

from parcel_editor.domain.models import (
    ManualEditContext,
    OverlappingPolygon,
    OverlapWarning,
    PolygonRecord,
    Ring,
)
from parcel_editor.utils.ring_geometry import overlaps, resolve_overlap

logger = logging.getLogger(__name__)


class WorkflowPhase(str, Enum):
    """Phase of the overlap workflow."""
    CLEAN = "clean"
    DETECTING = "detecting"
    AWAITING_DECISION = "awaiting_decision"


class DecisionOutcome(str, Enum):
    """Decision taken on a pending overlap warning."""
    IGNORED = "ignored"
    ACCEPTED = "accepted"
    MANUAL_EDIT = "manual_edit"
    EDIT_ORIGINAL = "edit_original"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Resolution:
    """What the caller has to do after a decision."""
    outcome: DecisionOutcome
    warning: OverlapWarning
    ring: Optional[Ring] = None
    """Ring to persist (ignore/accept) or to reopen (edit original)"""

    previous_ring: Optional[Ring] = None
    """Ring the edited parcel had before the edit attempt"""

    area_name: str = ""
    manual_context: Optional[ManualEditContext] = None


@dataclass
class PreviewState:
    """Which overlays are drawn while previewing a warning."""
    visible: bool = False
    show_original: bool = False
    show_fixed: bool = True


class OverlapResolutionWorkflow:
    """
    Holds at most one pending OverlapWarning and turns user decisions
    into Resolutions. Persistence is left to the caller.
    """

    def __init__(self):
        self.phase = WorkflowPhase.CLEAN
        self.preview = PreviewState()
        self._warning: Optional[OverlapWarning] = None
        self._area_name = ""
        self._previous_ring: Optional[Ring] = None

    @property
    def pending(self) -> Optional[OverlapWarning]:
        """The warning awaiting a decision, if any."""
        return self._warning

    @property
    def area_name(self) -> str:
        return self._area_name

    @staticmethod
    def detect_overlaps(
        polygon_id: Optional[str],
        ring: Ring,
        polygons: Sequence[PolygonRecord],
    ) -> list[OverlappingPolygon]:
        """
        Find visible parcels overlapped by a ring.

        Args:
            polygon_id: Parcel being committed (excluded from the check)
            ring: Candidate ring
            polygons: Current polygon collection

        Returns:
            Overlapped parcels in collection order
        """
        found = []
        for polygon in polygons:
            if polygon.id == polygon_id or not polygon.visible:
                continue
            if overlaps(ring, polygon.ring):
                found.append(OverlappingPolygon(id=polygon.id, name=polygon.name))
        return found

    def submit(
        self,
        polygon_id: str,
        ring: Ring,
        polygons: Sequence[PolygonRecord],
        is_new: bool,
        area_name: str = "",
        previous_ring: Optional[Ring] = None,
    ) -> Optional[OverlapWarning]:
        """
        Check a committed ring and raise a warning when it overlaps.

        Args:
            polygon_id: Id of the committed parcel (temporary id for new ones)
            ring: Committed ring
            polygons: Current polygon collection
            is_new: Whether the ring belongs to a parcel not yet created
            area_name: Name typed for a new parcel
            previous_ring: Pre-edit ring of an existing parcel

        Returns:
            None when the ring is clean, otherwise the pending warning
        """
        if self._warning is not None:
            logger.debug(f"Warning for {self._warning.polygon_id} still pending, ignoring submit")
            return self._warning

        self.phase = WorkflowPhase.DETECTING
        overlapping = self.detect_overlaps(polygon_id, ring, polygons)

        if not overlapping:
            self.phase = WorkflowPhase.CLEAN
            return None

        overlapping_ids = {o.id for o in overlapping}
        obstacles = [p for p in polygons if p.id in overlapping_ids]
        fixed_ring = resolve_overlap(ring, obstacles)

        logger.info(
            f"Ring for {polygon_id} overlaps {len(overlapping)} parcels: "
            f"{', '.join(o.name for o in overlapping)}"
        )

        self._warning = OverlapWarning(
            polygon_id=polygon_id,
            overlapping_polygons=overlapping,
            original_ring=list(ring),
            fixed_ring=fixed_ring if len(fixed_ring) >= 3 else None,
            is_new_polygon=is_new,
        )
        self._area_name = area_name
        self._previous_ring = list(previous_ring) if previous_ring is not None else None
        self.preview = PreviewState()
        self.phase = WorkflowPhase.AWAITING_DECISION
        return self._warning

    def restore(self, context: ManualEditContext) -> OverlapWarning:
        """
        Put a snapshotted warning back into the awaiting-decision phase.

        Args:
            context: Snapshot taken when the manual edit started

        Returns:
            The restored warning (the same object as in the snapshot)
        """
        self._warning = context.warning
        self._area_name = context.area_name_snapshot
        self._previous_ring = None
        self.preview = PreviewState()
        self.phase = WorkflowPhase.AWAITING_DECISION
        return self._warning

    def _close(self, outcome: DecisionOutcome, ring: Optional[Ring] = None, **extra) -> Resolution:
        resolution = Resolution(
            outcome=outcome,
            warning=self._warning,
            ring=ring,
            previous_ring=self._previous_ring,
            area_name=self._area_name,
            **extra,
        )
        self._warning = None
        self._area_name = ""
        self._previous_ring = None
        self.preview = PreviewState()
        self.phase = WorkflowPhase.CLEAN
        logger.info(f"Overlap warning for {resolution.warning.polygon_id} closed: {outcome.value}")
        return resolution

    def ignore(self) -> Optional[Resolution]:
        """Keep the original, overlapping ring."""
        if self._warning is None:
            return None
        return self._close(DecisionOutcome.IGNORED, ring=list(self._warning.original_ring))

    def accept(self) -> Optional[Resolution]:
        """Use the fixed ring. No-op while no fixed ring is available."""
        if self._warning is None or self._warning.fixed_ring is None:
            return None
        return self._close(DecisionOutcome.ACCEPTED, ring=list(self._warning.fixed_ring))

    def manual_edit(self) -> Optional[Resolution]:
        """Redraw a new parcel by hand, keeping a snapshot for cancel."""
        if self._warning is None or not self._warning.is_new_polygon:
            return None
        context = ManualEditContext(
            warning=self._warning,
            area_name_snapshot=self._area_name,
        )
        return self._close(
            DecisionOutcome.MANUAL_EDIT,
            ring=list(self._warning.original_ring),
            manual_context=context,
        )

    def edit_original(self) -> Optional[Resolution]:
        """Reopen the edit of an existing parcel on its pre-edit ring."""
        if self._warning is None or self._warning.is_new_polygon:
            return None
        return self._close(DecisionOutcome.EDIT_ORIGINAL, ring=self._previous_ring)

    def cancel(self) -> Optional[Resolution]:
        """Drop the commit: no record for new parcels, pre-edit ring for edits."""
        if self._warning is None:
            return None
        return self._close(DecisionOutcome.CANCELLED, ring=self._previous_ring)

    # Preview toggles

    def show_preview(self) -> None:
        if self._warning is None:
            return
        self.preview = PreviewState(visible=True, show_original=False, show_fixed=True)

    def hide_preview(self) -> None:
        self.preview = PreviewState()

    def set_preview_visibility(
        self,
        original: Optional[bool] = None,
        fixed: Optional[bool] = None,
    ) -> None:
        if self._warning is None:
            return
        if original is not None:
            self.preview.show_original = original
        if fixed is not None:
            self.preview.show_fixed = fixed

    def preview_overlays(self) -> dict[str, Ring]:
        """Rings to draw on top of the map while previewing."""
        if self._warning is None or not self.preview.visible:
            return {}
        overlays = {}
        if self.preview.show_original:
            overlays["original"] = list(self._warning.original_ring)
        if self.preview.show_fixed and self._warning.fixed_ring is not None:
            overlays["fixed"] = list(self._warning.fixed_ring)
        return overlays
