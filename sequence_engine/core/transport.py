"""Transports used by API-call nodes.

Both transports return the same response envelope, so downstream nodes
cannot tell which one ran.
"""

from typing import Any, Dict, List, Optional

import requests
from pydantic import Field

from ..models.nodes import DEFAULT_EXPECTED_STATUS_CODES, HttpMethod
from ..models.rules import CamelModel
from .error_recovery import api_call_retry, execute_with_retry
from .logging import get_logger

logger = get_logger(__name__)

# Output schema published by every API-call node.
RESPONSE_ENVELOPE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "status": {"type": "number"},
        "statusText": {"type": "string"},
        "data": {"type": "object"},
        "headers": {"type": "object"},
        "success": {"type": "boolean"},
        "error": {"type": "string"},
    },
}


class ApiRequest(CamelModel):
    """A fully rendered request."""
    method: HttpMethod = HttpMethod.GET
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    timeout_ms: int = 10000
    retry_count: int = 0
    expected_status_codes: List[int] = Field(default_factory=lambda: list(DEFAULT_EXPECTED_STATUS_CODES))


class ApiResponse(CamelModel):
    """Response envelope handed to downstream nodes as their payload."""
    status: int
    status_text: str
    data: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, Any] = Field(default_factory=dict)
    success: bool
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ApiTransport:
    """Interface for sending a rendered API request."""

    simulated = False

    def send(self, request: ApiRequest, payload: Dict[str, Any]) -> ApiResponse:
        raise NotImplementedError


class SimulatedTransport(ApiTransport):
    """Answers every request with a canned success echoing the input payload."""

    simulated = True

    def send(self, request: ApiRequest, payload: Dict[str, Any]) -> ApiResponse:
        logger.debug(f"Simulating {request.method.value} {request.url}")
        return ApiResponse(
            status=200,
            status_text="OK",
            data={"simulated": True, "input": payload},
            headers={},
            success=True,
        )


class HttpTransport(ApiTransport):
    """Performs the request over the network with ``requests``."""

    def __init__(self, session: Optional[requests.Session] = None):
        self._session = session or requests.Session()

    def send(self, request: ApiRequest, payload: Dict[str, Any]) -> ApiResponse:
        try:
            response = execute_with_retry(self._perform, api_call_retry(request.retry_count), request)
        except requests.RequestException as e:
            logger.warning(f"API call {request.method.value} {request.url} failed: {str(e)}")
            return ApiResponse(
                status=0,
                status_text="Network Error",
                data={},
                headers={},
                success=False,
                error=str(e),
            )

        success = response.status_code in request.expected_status_codes
        return ApiResponse(
            status=response.status_code,
            status_text=response.reason or "",
            data=self._parse_body(response),
            headers=dict(response.headers),
            success=success,
            error=None if success else f"Unexpected status code {response.status_code}",
        )

    def _perform(self, request: ApiRequest) -> requests.Response:
        return self._session.request(
            request.method.value,
            request.url,
            headers=request.headers,
            data=request.body.encode("utf-8") if request.body else None,
            timeout=request.timeout_ms / 1000.0,
        )

    @staticmethod
    def _parse_body(response: requests.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {"text": response.text}
        return body if isinstance(body, dict) else {"items": body}
