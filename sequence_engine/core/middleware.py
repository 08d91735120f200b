"""Middleware for error handling and request logging."""

import time
import uuid
from datetime import datetime
from typing import Callable
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import (
    ConfigurationError,
    GraphValidationError,
    RemoteExecutionError,
    RuleConfigError,
    RunNotFoundError,
    RunStateError,
    SequenceEngineError,
    WorkflowNotFoundError,
    create_error_response,
)
from .logging import get_logger, set_logging_context, clear_logging_context


logger = get_logger(__name__)


def status_code_for_error(error: SequenceEngineError) -> int:
    """HTTP status code reported for a sequence engine error."""
    if isinstance(error, (GraphValidationError, RuleConfigError)):
        return 400
    if isinstance(error, (WorkflowNotFoundError, RunNotFoundError)):
        return 404
    if isinstance(error, RunStateError):
        return 409
    if isinstance(error, RemoteExecutionError):
        return 502
    if isinstance(error, ConfigurationError):
        return 500
    return 500


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Tags requests with an id, logs their duration and maps errors to JSON."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        start_time = time.time()

        set_logging_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown"
        )

        try:
            logger.info(f"Request started: {request.method} {request.url.path}")

            response = await call_next(request)

            duration = time.time() - start_time
            logger.info(
                f"Request completed: {request.method} {request.url.path} - "
                f"Status: {response.status_code} - Duration: {duration:.3f}s"
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except SequenceEngineError as e:
            duration = time.time() - start_time
            logger.warning(
                f"Sequence engine error: {request.method} {request.url.path} - "
                f"Error: {e.error_code} - Duration: {duration:.3f}s",
                extra={"error_details": e.to_dict()}
            )
            return JSONResponse(
                status_code=status_code_for_error(e),
                content=create_error_response(e),
                headers={"X-Request-ID": request_id}
            )

        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"Unexpected error: {request.method} {request.url.path} - "
                f"Error: {str(e)} - Duration: {duration:.3f}s",
                exc_info=True
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "details": {
                        "error_type": type(e).__name__,
                        "timestamp": datetime.utcnow().isoformat()
                    },
                    "request_id": request_id
                },
                headers={"X-Request-ID": request_id}
            )

        finally:
            clear_logging_context()
