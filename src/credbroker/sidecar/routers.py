"""
credbroker.sidecar.routers

HTTP endpoints served by the sidecar.

Responsibilities:
- AWS: the container credentials endpoint read by the AWS SDKs.
- GCP: the subset of the GCE metadata server the Google auth libraries use.
- Health and readiness probes for the ops listener.
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from credbroker.sidecar.lease import LeaseHolder, LeaseState

METADATA_FLAVOR = "Google"
_METADATA_HEADERS = {"Metadata-Flavor": METADATA_FLAVOR}


def holder_dep(request: Request) -> LeaseHolder:
    # Set in `credbroker.sidecar.app`.
    return request.app.state.holder  # type: ignore[attr-defined]


def current_lease(holder: LeaseHolder = Depends(holder_dep)) -> LeaseState:
    lease = holder.current
    if lease is None:
        raise HTTPException(status_code=503, detail="credentials not yet available")
    return lease


def rfc3339(ts: datetime) -> str:
    return ts.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


# --- AWS ------------------------------------------------------------------------


def aws_router(credentials_path: str) -> APIRouter:
    router = APIRouter()

    @router.get(credentials_path)
    async def credentials(lease: LeaseState = Depends(current_lease)) -> dict[str, str]:
        return {**lease.payload, "Expiration": rfc3339(lease.expires_at)}

    return router


# --- GCP ------------------------------------------------------------------------


def require_metadata_flavor(metadata_flavor: str | None = Header(default=None)) -> None:
    if metadata_flavor != METADATA_FLAVOR:
        raise HTTPException(status_code=403, detail="missing Metadata-Flavor: Google header")


gcp_router = APIRouter(dependencies=[Depends(require_metadata_flavor)])


def _check_account(account: str, lease: LeaseState) -> None:
    if account not in ("default", lease.payload.get("email")):
        raise HTTPException(status_code=404, detail=f"unknown service account {account}")


@gcp_router.get("/")
async def root() -> Response:
    # Client libraries probe this to detect a metadata server.
    return PlainTextResponse("", headers=_METADATA_HEADERS)


@gcp_router.get("/computeMetadata/v1/instance/service-accounts/{account}/token")
async def token(account: str, lease: LeaseState = Depends(current_lease)) -> Response:
    _check_account(account, lease)
    return JSONResponse(
        {
            "access_token": lease.payload["access_token"],
            "expires_in": int(lease.remaining().total_seconds()),
            "token_type": "Bearer",
        },
        headers=_METADATA_HEADERS,
    )


@gcp_router.get("/computeMetadata/v1/instance/service-accounts/{account}/email")
async def email(account: str, lease: LeaseState = Depends(current_lease)) -> Response:
    _check_account(account, lease)
    return PlainTextResponse(str(lease.payload["email"]), headers=_METADATA_HEADERS)


@gcp_router.get("/computeMetadata/v1/project/project-id")
async def project_id(lease: LeaseState = Depends(current_lease)) -> Response:
    return PlainTextResponse(str(lease.payload.get("project") or ""), headers=_METADATA_HEADERS)


# --- Ops ------------------------------------------------------------------------

health_router = APIRouter()


@health_router.get("/healthz")
async def healthz() -> dict[str, str]:
    # Liveness: process is up and serving HTTP.
    return {"status": "ok"}


@health_router.get("/readyz")
async def readyz(holder: LeaseHolder = Depends(holder_dep)) -> Response:
    # Readiness: a credential has been issued and hasn't expired.
    if not holder.ready():
        return JSONResponse({"status": "not_ready"}, status_code=503)
    return JSONResponse({"status": "ready"})


# --- Module Notes -----------------------------------------------------------
# Expired credentials are still served until the next renewal replaces them;
# /readyz answers 503 in the meantime.
