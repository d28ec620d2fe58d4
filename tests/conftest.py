"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- Sample rings and parcel records
- Mock parcel API client
- Editor controllers for farm and import contexts
- FastAPI test client
"""
import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from parcel_editor.main import app
from parcel_editor.domain.models import PolygonRecord
from parcel_editor.infrastructure.api_constants import ContextType
from parcel_editor.infrastructure.parcel_api_client import (
    ParcelAPIClient,
    ParcelData,
    PersistenceResult,
)
from parcel_editor.services.application.edit_session_controller import EditSessionController


# ============================================================
# Sample Geometry Fixtures
# ============================================================

@pytest.fixture
def square_ring() -> list[tuple[float, float]]:
    """10 x 10 square with its corner at the origin."""
    return [(0.0, 0.0), (0.0, 10.0), (10.0, 10.0), (10.0, 0.0)]


@pytest.fixture
def far_ring() -> list[tuple[float, float]]:
    """Square well away from the origin square."""
    return [(100.0, 100.0), (100.0, 110.0), (110.0, 110.0), (110.0, 100.0)]


@pytest.fixture
def corner_overlap_ring() -> list[tuple[float, float]]:
    """Square covering the top-right quarter of the origin square."""
    return [(5.0, 5.0), (5.0, 15.0), (15.0, 15.0), (15.0, 5.0)]


@pytest.fixture
def sample_records(square_ring, far_ring) -> list[PolygonRecord]:
    """Two stored parcels that do not overlap each other."""
    return [
        PolygonRecord(id="A", name="North block", ring=square_ring),
        PolygonRecord(id="B", name="South block", ring=far_ring),
    ]


# ============================================================
# Mock API Client Fixtures
# ============================================================

@pytest.fixture
def stored_parcels() -> list[ParcelData]:
    """Parcels as returned by the parcel API listing."""
    return [
        ParcelData(
            id=1,
            name="North block",
            geodata="POLYGON((0 0, 10 0, 10 10, 0 10, 0 0))",
            color="#ff0000",
            active=True,
            startValidity="2024-01-01T00:00:00+00:00",
        ),
        ParcelData(
            id=2,
            name="South block",
            geodata="POLYGON((100 100, 110 100, 110 110, 100 110, 100 100))",
        ),
    ]


@pytest.fixture
def mock_api_client(stored_parcels):
    """Create a mock parcel API client where every call succeeds."""
    mock_client = AsyncMock(spec=ParcelAPIClient)
    mock_client.list_parcels.return_value = PersistenceResult.success(stored_parcels)
    mock_client.create_parcel.return_value = PersistenceResult.success(
        ParcelData(id=501, name="New parcel")
    )
    mock_client.update_parcel.return_value = PersistenceResult.success(None)
    mock_client.delete_parcel.return_value = PersistenceResult.success(None)
    mock_client.validate_imported_parcel.return_value = PersistenceResult.success(
        {"validationStatus": "APPROVED", "convertedParcelId": 900}
    )
    mock_client.approve_import.return_value = PersistenceResult.success(None)
    return mock_client


# ============================================================
# Controller Fixtures
# ============================================================

class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def farm_editor(mock_api_client, clock) -> EditSessionController:
    """Farm editor without parcels."""
    return EditSessionController(
        api_client=mock_api_client,
        context_type=ContextType.FARM,
        context_id="42",
        clock=clock,
    )


@pytest.fixture
async def loaded_farm_editor(farm_editor) -> EditSessionController:
    """Farm editor holding the stored parcels ("1" and "2")."""
    await farm_editor.load_polygons()
    return farm_editor


@pytest.fixture
def import_editor(mock_api_client, clock) -> EditSessionController:
    """Import editor without parcels."""
    return EditSessionController(
        api_client=mock_api_client,
        context_type=ContextType.IMPORT,
        context_id="7",
        clock=clock,
    )


# ============================================================
# FastAPI Test Client Fixtures
# ============================================================

@pytest.fixture
def test_client() -> TestClient:
    """Create a synchronous test client for FastAPI."""
    return TestClient(app)
