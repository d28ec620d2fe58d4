"""
Global error handling middleware.

Errors escaping a route are turned into JSON bodies of the form
{"error": <label>, "detail": <message>}.
"""
import logging
from typing import Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from parcel_editor.infrastructure.parcel_api_client import ParcelAPIError


logger = logging.getLogger(__name__)


def _error_response(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Maps exceptions to responses:

    - ParcelAPIError: status code of the parcel API call
    - ValueError (e.g. encoding an empty ring): 400
    - IndexError (e.g. dragging a vertex that does not exist): 422
    - anything else: 500, with the traceback logged
    """

    async def dispatch(self, request: Request, call_next: Callable):
        context = {"path": request.url.path, "method": request.method}
        try:
            return await call_next(request)

        except ParcelAPIError as e:
            logger.error(f"Parcel API error: {e.message}", extra={**context, "status_code": e.status_code})
            return _error_response(e.status_code, "Parcel API error", e.message)

        except ValueError as e:
            logger.warning(f"Rejected geometry input: {e}", extra=context)
            return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", str(e))

        except IndexError as e:
            logger.warning(f"Vertex index rejected: {e}", extra=context)
            return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "Invalid vertex", str(e))

        except Exception as e:
            logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {e}", extra=context)
            return _error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
                "An unexpected error occurred",
            )
