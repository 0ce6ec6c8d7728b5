import json
import logging
from typing import Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .errors import ErrorCode, error_body
from .utils.audit import record_event


logger = logging.getLogger("identity.request")

DEFAULT_VERSION = "v1"


def requested_version(request: Request) -> str:
    """``API-Version`` header first, then the ``/api/vN/...`` path segment."""
    version = request.headers.get("API-Version", "").strip()
    if not version:
        path = request.url.path
        if path.startswith("/api/v"):
            parts = path.split("/")
            if len(parts) >= 3:
                version = parts[2]
    return version or DEFAULT_VERSION


class APIVersionMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, supported: Iterable[str], deprecated: Optional[Iterable[str]] = None, sunset: str = ""):
        super().__init__(app)
        self.supported = frozenset(supported)
        self.deprecated = frozenset(deprecated or ())
        self.sunset = sunset

    async def dispatch(self, request: Request, call_next):
        version = requested_version(request)
        if version not in self.supported:
            record_event(
                getattr(request.app.state, "audit", None),
                "security",
                outcome="rejected",
                event="invalid_api_version",
                requested=version,
                path=request.url.path,
            )
            return JSONResponse(
                status_code=400,
                content=error_body(
                    ErrorCode.VALIDATION_FAILED,
                    "Invalid API version",
                    "Supported versions: " + ", ".join(sorted(self.supported)),
                ),
            )
        request.state.api_version = version
        response: Response = await call_next(request)
        response.headers["API-Version"] = version
        if version in self.deprecated:
            response.headers["Deprecation"] = "true"
            if self.sunset:
                response.headers["Sunset"] = self.sunset
            response.headers["Link"] = f'</api/{DEFAULT_VERSION}>; rel="successor-version"'
            logger.warning(json.dumps({
                "type": "deprecated_api_usage",
                "deprecated_version": version,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
                "user_agent": request.headers.get("user-agent", ""),
            }))
        return response
