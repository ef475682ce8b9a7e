"""
tests.test_smoke

Minimal smoke tests to validate the sidecar's ops app boots and serves probes.

Responsibilities:
- Ensure liveness always answers and readiness follows the lease holder.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import httpx
import pytest

from credbroker.sidecar.app import create_ops_app
from credbroker.sidecar.lease import LeaseHolder, LeaseState


@pytest.mark.asyncio
async def test_health_endpoints() -> None:
    holder = LeaseHolder()
    app = create_ops_app(holder=holder)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        r = await client.get("/healthz")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"

        r = await client.get("/readyz")
        assert r.status_code == 503

        holder.swap(
            LeaseState(
                payload={},
                issued_at=datetime.now(tz=UTC),
                lease_duration=timedelta(minutes=15),
            )
        )
        r = await client.get("/readyz")
        assert r.status_code == 200
        assert r.json()["status"] == "ready"

        # Expired credentials make the pod unready.
        holder.swap(
            LeaseState(
                payload={},
                issued_at=datetime.now(tz=UTC) - timedelta(hours=1),
                lease_duration=timedelta(minutes=15),
            )
        )
        r = await client.get("/readyz")
        assert r.status_code == 503


# --- Module Notes -----------------------------------------------------------
# The credentials endpoints are covered in test_sidecar_app.py.
