from __future__ import annotations

import json

import httpx
import pytest

from partsrunner.api.profiles import DriverProfileRepository
from partsrunner.kernel.errors import UpstreamError

pytestmark = pytest.mark.unit


class FakePostgrest:
    def __init__(self, rows: list[dict] | None = None, fail_patch: bool = False) -> None:
        self.rows = list(rows or [])
        self.fail_patch = fail_patch
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.url.path == "/rest/v1/driver_profiles"
        assert request.headers["apikey"] == "anon"
        if request.method == "GET":
            user_id = request.url.params["id"].removeprefix("eq.")
            return httpx.Response(200, json=[r for r in self.rows if r["id"] == user_id])
        if request.method == "POST":
            self.rows.extend(json.loads(request.content))
            return httpx.Response(201)
        if request.method == "PATCH":
            if self.fail_patch:
                return httpx.Response(400, json={"message": "bad column"})
            user_id = request.url.params["id"].removeprefix("eq.")
            for row in self.rows:
                if row["id"] == user_id:
                    row.update(json.loads(request.content))
            return httpx.Response(204)
        return httpx.Response(405)

    @property
    def methods(self) -> list[str]:
        return [r.method for r in self.requests]


def _repo(mock_http, backend: FakePostgrest) -> DriverProfileRepository:
    return DriverProfileRepository(
        base_url="http://backend.test",
        api_key="anon",
        client=mock_http(backend),
        max_attempts=1,
    )


@pytest.mark.asyncio
async def test_update_creates_missing_profile_with_defaults(mock_http):
    backend = FakePostgrest()
    repo = _repo(mock_http, backend)

    await repo.update_profile("user_1", {"isAvailable": True})

    assert backend.methods == ["GET", "POST", "PATCH"]
    assert backend.rows == [{"id": "user_1", "vehicleType": "car", "isAvailable": True}]


@pytest.mark.asyncio
async def test_update_existing_profile_skips_insert(mock_http):
    backend = FakePostgrest(rows=[{"id": "user_1", "vehicleType": "van", "isAvailable": False}])
    repo = _repo(mock_http, backend)

    await repo.update_profile("user_1", {"isAvailable": True, "currentLocationLatitude": 1.0})

    assert backend.methods == ["GET", "PATCH"]
    assert backend.rows[0]["vehicleType"] == "van"
    assert backend.rows[0]["currentLocationLatitude"] == 1.0


@pytest.mark.asyncio
async def test_backend_error_raises_upstream_error(mock_http):
    backend = FakePostgrest(rows=[{"id": "user_1"}], fail_patch=True)
    repo = _repo(mock_http, backend)

    with pytest.raises(UpstreamError) as excinfo:
        await repo.update_profile("user_1", {"nope": 1})

    assert excinfo.value.meta["status_code"] == 400
