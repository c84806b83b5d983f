from uuid import uuid4

import httpx
import pytest

from app.client.api import ConsultationApi
from app.core.errors import InvalidStateError, NotFoundError, TransientNetworkError


def make_api(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ConsultationApi("http://vetconsult.test", "token", client=client)


@pytest.mark.asyncio
async def test_invalid_state_is_parsed_from_conflict_detail():
    def handler(request):
        return httpx.Response(409, json={"detail": {
            "message": "Cannot move video session to 'ended' from 'ended'",
            "entity": "video session",
            "attempted": "ended",
            "actual": "ended"
        }})

    api = make_api(handler)
    with pytest.raises(InvalidStateError) as exc:
        await api.end_session(uuid4())
    assert exc.value.entity == "video session"
    assert exc.value.actual == "ended"
    await api.client.aclose()


@pytest.mark.asyncio
async def test_missing_resources_raise_not_found():
    api = make_api(lambda request: httpx.Response(404, json={"detail": "Video Session not found"}))
    with pytest.raises(NotFoundError):
        await api.get_session(uuid4())
    await api.client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [401, 403, 500, 503])
async def test_auth_and_server_errors_are_transient(status_code):
    api = make_api(lambda request: httpx.Response(status_code, json={"detail": "nope"}))
    with pytest.raises(TransientNetworkError) as exc:
        await api.list_messages(uuid4())
    assert exc.value.status_code == status_code
    await api.client.aclose()


@pytest.mark.asyncio
async def test_connection_failures_are_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    api = make_api(handler)
    with pytest.raises(TransientNetworkError):
        await api.get_public_settings()
    await api.client.aclose()


@pytest.mark.asyncio
async def test_other_client_errors_propagate():
    api = make_api(lambda request: httpx.Response(422, json={"detail": []}))
    with pytest.raises(httpx.HTTPStatusError):
        await api.send_message(uuid4(), "hi")
    await api.client.aclose()


@pytest.mark.asyncio
async def test_requests_are_authenticated_and_versioned():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"join_window_minutes": 15, "time_format": "24h"})

    api = make_api(handler)
    public = await api.get_public_settings()
    await api.client.aclose()

    assert public.join_window_minutes == 15
    assert seen[0].url.path == "/api/v1/settings/public"
    assert seen[0].headers["Authorization"] == "Bearer token"
