from fastapi import APIRouter, Depends, Request

from ..auth import get_store
from ..config import settings
from ..errors import internal_errors
from ..store import CredentialStore


router = APIRouter(tags=["system"])


def _build_info() -> dict:
    info = {"version": settings.API_VERSION, "environment": settings.ENV}
    if settings.BUILD_TIME:
        info["build_time"] = settings.BUILD_TIME
    if settings.GIT_COMMIT:
        info["git_commit"] = settings.GIT_COMMIT
    return info


@router.get("/health")
def health(store: CredentialStore = Depends(get_store)):
    with internal_errors("reach database"):
        store.ping()
    return {"status": "ok", "env": settings.ENV}


@router.get("/version")
def version():
    return {"success": True, "data": _build_info()}


@router.get("/api/info")
def api_info(request: Request):
    return {
        "success": True,
        "data": {
            "current_version": _build_info(),
            "supported_versions": list(request.app.state.supported_versions),
            "deprecated_versions": list(request.app.state.deprecated_versions),
            "api_documentation": "/docs",
            "endpoints": {
                "health": "/health",
                "version": "/version",
                "metrics": "/metrics",
                "v1": "/api/v1",
            },
        },
    }
