"""
Unit tests for the overlap resolution workflow.

Tests cover:
- Overlap detection against visible parcels
- Warning creation and the single-pending-warning rule
- Every user decision
- Preview toggles
"""
import pytest
from unittest.mock import patch

from parcel_editor.domain.models import ManualEditContext, PolygonRecord
from parcel_editor.services.domain.overlap_workflow import (
    DecisionOutcome,
    OverlapResolutionWorkflow,
    WorkflowPhase,
)
from parcel_editor.utils.ring_geometry import signed_area


@pytest.fixture
def workflow() -> OverlapResolutionWorkflow:
    return OverlapResolutionWorkflow()


# ============================================================
# Detection Tests
# ============================================================

class TestDetectOverlaps:
    """Tests for overlap detection."""

    def test_reports_overlapped_parcels(self, sample_records, corner_overlap_ring):
        """Overlapped parcels should be reported by id and name."""
        found = OverlapResolutionWorkflow.detect_overlaps("new", corner_overlap_ring, sample_records)

        assert [(p.id, p.name) for p in found] == [("A", "North block")]

    def test_hidden_parcels_ignored(self, sample_records, corner_overlap_ring):
        """Hidden parcels should not take part in detection."""
        records = [sample_records[0].model_copy(update={"visible": False}), sample_records[1]]

        assert OverlapResolutionWorkflow.detect_overlaps("new", corner_overlap_ring, records) == []

    def test_own_parcel_excluded(self, sample_records, square_ring):
        """A parcel should never overlap itself."""
        assert OverlapResolutionWorkflow.detect_overlaps("A", square_ring, sample_records) == []

    def test_parcels_without_geometry_ignored(self, corner_overlap_ring):
        """Parcels with fewer than 3 points should be skipped."""
        records = [PolygonRecord(id="empty", name="Empty", ring=[])]

        assert OverlapResolutionWorkflow.detect_overlaps("new", corner_overlap_ring, records) == []


# ============================================================
# Submit Tests
# ============================================================

class TestSubmit:
    """Tests for committing a ring to the workflow."""

    def test_clean_ring_raises_nothing(self, workflow, sample_records):
        """A ring clear of every parcel should not raise a warning."""
        ring = [(50, 50), (50, 60), (60, 60), (60, 50)]

        assert workflow.submit("new", ring, sample_records, is_new=True) is None
        assert workflow.phase == WorkflowPhase.CLEAN
        assert workflow.pending is None

    def test_overlapping_ring_raises_warning(self, workflow, sample_records, corner_overlap_ring):
        """An overlapping ring should raise a warning with a fixed ring."""
        warning = workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True, area_name="East")

        assert warning is not None
        assert warning.polygon_id == "poly-1"
        assert warning.is_new_polygon is True
        assert warning.original_ring == corner_overlap_ring
        assert [p.id for p in warning.overlapping_polygons] == ["A"]
        assert abs(signed_area(warning.fixed_ring)) == pytest.approx(75.0)
        assert workflow.phase == WorkflowPhase.AWAITING_DECISION
        assert workflow.area_name == "East"

    def test_second_submit_keeps_pending_warning(self, workflow, sample_records, corner_overlap_ring):
        """Only one warning may be pending; later submits return it unchanged."""
        first = workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True)
        second = workflow.submit("poly-2", corner_overlap_ring, sample_records, is_new=True)

        assert second is first
        assert workflow.pending.polygon_id == "poly-1"


# ============================================================
# Decision Tests
# ============================================================

class TestDecisions:
    """Tests for the user decisions."""

    def test_ignore_returns_original_ring(self, workflow, sample_records, corner_overlap_ring):
        """Ignoring should hand back the original ring and clear the warning."""
        workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True, area_name="East")

        resolution = workflow.ignore()

        assert resolution.outcome == DecisionOutcome.IGNORED
        assert resolution.ring == corner_overlap_ring
        assert resolution.area_name == "East"
        assert workflow.pending is None
        assert workflow.phase == WorkflowPhase.CLEAN

    def test_accept_returns_fixed_ring(self, workflow, sample_records, corner_overlap_ring):
        """Accepting should hand back the fixed ring."""
        warning = workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True)

        resolution = workflow.accept()

        assert resolution.outcome == DecisionOutcome.ACCEPTED
        assert resolution.ring == warning.fixed_ring

    def test_accept_without_fixed_ring_is_noop(self, workflow, sample_records, corner_overlap_ring):
        """Accept should do nothing while no fixed ring is available."""
        with patch(
            "parcel_editor.services.domain.overlap_workflow.resolve_overlap",
            return_value=[(5.0, 5.0), (6.0, 6.0)],
        ):
            warning = workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True)

        assert warning.fixed_ring is None
        assert workflow.accept() is None
        assert workflow.pending is warning

    def test_decisions_without_warning_are_noops(self, workflow):
        """Every decision should return None while nothing is pending."""
        assert workflow.ignore() is None
        assert workflow.accept() is None
        assert workflow.manual_edit() is None
        assert workflow.edit_original() is None
        assert workflow.cancel() is None

    def test_manual_edit_snapshots_warning(self, workflow, sample_records, corner_overlap_ring):
        """Manual edit should keep the warning and area name for a later cancel."""
        warning = workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True, area_name="East")

        resolution = workflow.manual_edit()

        assert resolution.outcome == DecisionOutcome.MANUAL_EDIT
        assert resolution.ring == corner_overlap_ring
        assert resolution.manual_context.warning is warning
        assert resolution.manual_context.area_name_snapshot == "East"
        assert workflow.pending is None

    def test_manual_edit_refused_for_existing_parcel(self, workflow, sample_records, corner_overlap_ring):
        """Manual edit only applies to parcels not created yet."""
        workflow.submit("B", corner_overlap_ring, sample_records, is_new=False, previous_ring=[(0, 0)])

        assert workflow.manual_edit() is None
        assert workflow.pending is not None

    def test_edit_original_returns_previous_ring(self, workflow, sample_records, corner_overlap_ring, far_ring):
        """Edit original should hand back the pre-edit ring."""
        workflow.submit("B", corner_overlap_ring, sample_records, is_new=False, previous_ring=far_ring)

        resolution = workflow.edit_original()

        assert resolution.outcome == DecisionOutcome.EDIT_ORIGINAL
        assert resolution.ring == far_ring

    def test_edit_original_refused_for_new_parcel(self, workflow, sample_records, corner_overlap_ring):
        """A new parcel has no original to go back to."""
        workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True)

        assert workflow.edit_original() is None
        assert workflow.pending is not None

    def test_cancel_returns_previous_ring(self, workflow, sample_records, corner_overlap_ring, far_ring):
        """Cancel should hand back the pre-edit ring of an edited parcel."""
        workflow.submit("B", corner_overlap_ring, sample_records, is_new=False, previous_ring=far_ring)

        resolution = workflow.cancel()

        assert resolution.outcome == DecisionOutcome.CANCELLED
        assert resolution.previous_ring == far_ring
        assert resolution.ring == far_ring
        assert workflow.pending is None

    def test_restore_brings_back_same_warning(self, workflow, sample_records, corner_overlap_ring):
        """Restoring a snapshot should make its warning pending again."""
        warning = workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True, area_name="East")
        context = workflow.manual_edit().manual_context

        restored = workflow.restore(context)

        assert restored is warning
        assert workflow.pending is warning
        assert workflow.area_name == "East"
        assert workflow.phase == WorkflowPhase.AWAITING_DECISION

    def test_restore_accepts_any_snapshot(self, workflow, corner_overlap_ring):
        """A snapshot built elsewhere should be restorable."""
        context = ManualEditContext(
            warning=OverlapResolutionWorkflow().submit(
                "poly-9",
                corner_overlap_ring,
                [PolygonRecord(id="A", name="A", ring=[(0, 0), (0, 10), (10, 10), (10, 0)])],
                is_new=True,
            ),
            area_name_snapshot="Snap",
        )

        assert workflow.restore(context).polygon_id == "poly-9"


# ============================================================
# Preview Tests
# ============================================================

class TestPreview:
    """Tests for the preview toggles."""

    def test_show_preview_defaults_to_fixed_only(self, workflow, sample_records, corner_overlap_ring):
        """Showing the preview should draw only the fixed ring at first."""
        warning = workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True)

        workflow.show_preview()

        assert workflow.preview.visible is True
        assert workflow.preview_overlays() == {"fixed": warning.fixed_ring}

    def test_toggle_original_overlay(self, workflow, sample_records, corner_overlap_ring):
        """The original ring overlay should be toggleable."""
        workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True)
        workflow.show_preview()

        workflow.set_preview_visibility(original=True, fixed=False)

        assert workflow.preview_overlays() == {"original": corner_overlap_ring}

    def test_hide_preview_clears_overlays(self, workflow, sample_records, corner_overlap_ring):
        """Hiding the preview should leave nothing to draw."""
        workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True)
        workflow.show_preview()

        workflow.hide_preview()

        assert workflow.preview_overlays() == {}

    def test_preview_reset_after_decision(self, workflow, sample_records, corner_overlap_ring):
        """Closing the warning should reset the preview."""
        workflow.submit("poly-1", corner_overlap_ring, sample_records, is_new=True)
        workflow.show_preview()

        workflow.ignore()

        assert workflow.preview.visible is False
        assert workflow.preview_overlays() == {}

    def test_show_preview_without_warning_is_noop(self, workflow):
        """The preview cannot be shown without a warning."""
        workflow.show_preview()

        assert workflow.preview.visible is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
