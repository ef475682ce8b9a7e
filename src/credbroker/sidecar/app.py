"""
credbroker.sidecar.app

FastAPI app factories for the sidecar's two listeners.

Responsibilities:
- Build the credentials app for the configured provider (AWS or GCP).
- Build the ops app serving health and readiness.
- Share one `LeaseHolder` between them via `app.state`.
"""

from __future__ import annotations

from fastapi import FastAPI

from credbroker import __version__
from credbroker.observability.middleware import RequestContextMiddleware
from credbroker.sidecar.lease import LeaseHolder
from credbroker.sidecar.routers import aws_router, gcp_router, health_router


def create_credentials_app(
    *,
    provider: str,
    holder: LeaseHolder,
    credentials_path: str = "/credentials",
) -> FastAPI:
    app = FastAPI(
        title="credbroker sidecar",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.holder = holder
    app.add_middleware(RequestContextMiddleware)

    if provider == "aws":
        app.include_router(aws_router(credentials_path), tags=["aws"])
    elif provider == "gcp":
        app.include_router(gcp_router, tags=["gcp"])
    else:
        raise ValueError(f"unknown provider: {provider}")
    return app


def create_ops_app(*, holder: LeaseHolder) -> FastAPI:
    app = FastAPI(title="credbroker sidecar ops", version=__version__, docs_url=None, redoc_url=None)
    app.state.holder = holder
    app.include_router(health_router, tags=["health"])
    return app


# --- Module Notes -----------------------------------------------------------
# The credentials app has no OpenAPI or docs routes: on GCP it answers at `/` like
# a metadata server, and SDKs only call the handful of paths in `routers`.
