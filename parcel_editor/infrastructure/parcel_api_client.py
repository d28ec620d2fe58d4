"""
Infrastructure layer: Parcel persistence API client.

Every public call returns a PersistenceResult instead of raising, so the
editor can apply the reconciliation policy of each operation explicitly.
Only listing is retried; mutations are sent once.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Dict, Optional, Union
import logging

from pydantic import BaseModel, Field, ValidationError
import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
)

from parcel_editor.config import settings
from parcel_editor.infrastructure.api_constants import (
    APIConstants,
    ParcelAPIEndpoints,
)

logger = logging.getLogger(__name__)


# Pydantic models for API payloads
class ParcelData(BaseModel):
    """Parcel as returned by the parcel API."""
    id: Union[int, str]
    name: Optional[str] = None
    geodata: Optional[str] = Field(default=None, description="Parcel geometry as WKT")
    color: Optional[str] = None
    active: Optional[bool] = None
    start_validity: Optional[str] = Field(default=None, alias="startValidity")
    end_validity: Optional[str] = Field(default=None, alias="endValidity")
    farm_id: Optional[int] = Field(default=None, alias="farmId")
    validation_status: Optional[str] = Field(default=None, alias="validationStatus")
    converted_parcel_id: Optional[Union[int, str]] = Field(default=None, alias="convertedParcelId")

    class Config:
        populate_by_name = True


class ParcelCreate(BaseModel):
    """Body of a parcel creation request."""
    name: str
    active: bool = True
    start_validity: str = Field(alias="startValidity")
    end_validity: Optional[str] = Field(default=None, alias="endValidity")
    geodata: str
    color: str

    class Config:
        populate_by_name = True


class PersistenceOperation(str, Enum):
    """Operations sent to the parcel API."""
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"


class ReconciliationPolicy(str, Enum):
    """What happens to a local mutation when its request fails."""
    KEEP_OPTIMISTIC = "keep_optimistic"
    """Local state is applied first and stays as the presumed truth"""

    GATE_ON_SUCCESS = "gate_on_success"
    """Local state only changes once the request succeeded"""


RECONCILIATION_POLICY: Dict[PersistenceOperation, ReconciliationPolicy] = {
    PersistenceOperation.CREATE: ReconciliationPolicy.KEEP_OPTIMISTIC,
    PersistenceOperation.UPDATE: ReconciliationPolicy.KEEP_OPTIMISTIC,
    PersistenceOperation.DELETE: ReconciliationPolicy.GATE_ON_SUCCESS,
    PersistenceOperation.APPROVE: ReconciliationPolicy.GATE_ON_SUCCESS,
}


@dataclass(frozen=True)
class PersistenceResult:
    """Outcome of a parcel API call: Ok(data) or Err(reason)."""
    ok: bool
    data: Any = None
    reason: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def success(cls, data: Any = None) -> "PersistenceResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, reason: str, status_code: Optional[int] = None) -> "PersistenceResult":
        return cls(ok=False, reason=reason, status_code=status_code)


class ParcelAPIError(Exception):
    """Custom exception for parcel API errors."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _is_retryable(exc: BaseException) -> bool:
    """Server errors and transport failures are retried, client errors are not."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.RequestError)


class ParcelAPIClient:
    """
    Client for the parcel persistence API.

    Implements retry logic with exponential backoff for listing only.
    """

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None):
        """Initialize the API client with configuration."""
        self.base_url = base_url or settings.parcels_api_base_url
        self.token = settings.parcels_api_token if token is None else token

        headers = {
            "accept": APIConstants.CONTENT_TYPE_JSON,
            "Content-Type": APIConstants.CONTENT_TYPE_JSON,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=settings.parcels_api_timeout,
        )

    async def __aenter__(self) -> "ParcelAPIClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def _send(self, method: str, endpoint: str, **kwargs) -> Any:
        response = await self.client.request(method, endpoint, **kwargs)
        response.raise_for_status()
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    @retry(
        stop=stop_after_attempt(settings.max_retry_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_backoff_multiplier,
            min=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    async def _send_with_retry(self, method: str, endpoint: str, **kwargs) -> Any:
        return await self._send(method, endpoint, **kwargs)

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        retry_failures: bool = False,
        **kwargs
    ) -> Any:
        """
        Make an HTTP request.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            retry_failures: Retry server errors with exponential backoff
            **kwargs: Additional arguments for the request

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            ParcelAPIError: If the request fails (after retries, if enabled)
        """
        send = self._send_with_retry if retry_failures else self._send
        try:
            return await send(method, endpoint, **kwargs)
        except httpx.HTTPStatusError as e:
            raise ParcelAPIError(
                f"API request failed: {e.response.status_code} - {e.response.text}",
                status_code=e.response.status_code,
            )
        except httpx.RequestError as e:
            raise ParcelAPIError(f"API request error: {str(e)}", status_code=503)

    async def _execute(
        self,
        operation: PersistenceOperation,
        request: Awaitable[Any],
    ) -> PersistenceResult:
        """Await a request and turn its outcome into a PersistenceResult."""
        try:
            data = await request
        except ParcelAPIError as e:
            logger.error(f"Parcel {operation.value} failed: {e.message}")
            return PersistenceResult.failure(e.message, status_code=e.status_code)
        return PersistenceResult.success(data)

    async def list_parcels(self, base: str) -> PersistenceResult:
        """
        Fetch every parcel of a farm or import batch.

        Args:
            base: Context base path (see ParcelAPIEndpoints.base_path)

        Returns:
            PersistenceResult whose data is a list of ParcelData
        """
        result = await self._execute(
            PersistenceOperation.LIST,
            self._make_request("GET", ParcelAPIEndpoints.parcels(base), retry_failures=True),
        )
        if not result.ok:
            return result
        try:
            parcels = [ParcelData(**item) for item in (result.data or [])]
        except (TypeError, ValidationError) as e:
            logger.error(f"Parcel list response could not be parsed: {e}")
            return PersistenceResult.failure("Malformed parcel list")
        return PersistenceResult.success(parcels)

    async def create_parcel(self, base: str, payload: ParcelCreate) -> PersistenceResult:
        """
        Create a parcel.

        Args:
            base: Context base path
            payload: Creation body

        Returns:
            PersistenceResult whose data is the created ParcelData
        """
        result = await self._execute(
            PersistenceOperation.CREATE,
            self._make_request(
                "POST",
                ParcelAPIEndpoints.parcels(base),
                json=payload.model_dump(by_alias=True),
            ),
        )
        if not result.ok:
            return result
        if not isinstance(result.data, dict) or "id" not in result.data:
            logger.error("Parcel create response carries no id")
            return PersistenceResult.failure("Create response carries no id")
        try:
            created = ParcelData(**result.data)
        except ValidationError as e:
            logger.error(f"Parcel create response could not be parsed: {e}")
            return PersistenceResult.failure("Malformed create response")
        return PersistenceResult.success(created)

    async def update_parcel(
        self,
        base: str,
        parcel_id: str,
        changes: Dict[str, Any],
    ) -> PersistenceResult:
        """
        Send a partial update containing only the changed fields.

        Args:
            base: Context base path
            parcel_id: Parcel identifier
            changes: Changed fields, e.g. {"geodata": ...}, {"color": ...}, {"name": ...}

        Returns:
            PersistenceResult with the decoded response body, if any
        """
        return await self._execute(
            PersistenceOperation.UPDATE,
            self._make_request("PUT", ParcelAPIEndpoints.parcel(base, parcel_id), json=changes),
        )

    async def delete_parcel(self, parcel_id: str) -> PersistenceResult:
        """Delete a farm parcel."""
        return await self._execute(
            PersistenceOperation.DELETE,
            self._make_request("DELETE", ParcelAPIEndpoints.delete_parcel(parcel_id)),
        )

    async def validate_imported_parcel(
        self,
        parcel_id: str,
        farm_id: int,
        status: str = APIConstants.STATUS_APPROVED,
    ) -> PersistenceResult:
        """Approve one imported parcel into a farm."""
        return await self._execute(
            PersistenceOperation.APPROVE,
            self._make_request(
                "PATCH",
                ParcelAPIEndpoints.validate_imported_parcel(parcel_id),
                json={"validationStatus": status, "farmId": farm_id},
            ),
        )

    async def approve_import(self, context_id: str) -> PersistenceResult:
        """Approve a whole import batch."""
        return await self._execute(
            PersistenceOperation.APPROVE,
            self._make_request("POST", ParcelAPIEndpoints.approve_import(context_id)),
        )


# Singleton instance
_api_client: Optional[ParcelAPIClient] = None


def get_api_client() -> ParcelAPIClient:
    """
    Get or create the singleton API client instance.

    Returns:
        ParcelAPIClient instance
    """
    global _api_client
    if _api_client is None:
        _api_client = ParcelAPIClient()
    return _api_client
