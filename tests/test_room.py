import asyncio
from datetime import date, datetime, time, timedelta
from uuid import UUID, uuid4

import httpx
import pytest

from app.client.api import ConsultationApi
from app.client.media import MediaMode
from app.client.room import ConsultationRoom, RoomState
from app.core.errors import JoinWindowClosedError, TransientNetworkError

from tests.conftest import access_token, auth_headers
from tests.fakes import FakeDevices

DAY = date.today() + timedelta(days=3)
SLOT_START = datetime.combine(DAY, time(10, 0))


async def _confirmed_consultation(client, owner, vet):
    response = await client.post("/api/v1/bookings", headers=auth_headers(owner), json={
        "veterinarian_id": str(vet.user_id),
        "scheduled_date": DAY.isoformat(),
        "time_slot_start": "10:00",
        "time_slot_end": "10:30",
        "reason_for_visit": "Itchy skin"
    })
    booking = response.json()
    await client.post(f"/api/v1/bookings/{booking['id']}/confirm", headers=auth_headers(vet))
    response = await client.post(f"/api/v1/bookings/{booking['id']}/consultation", headers=auth_headers(vet))
    return UUID(booking["id"]), UUID(response.json()["id"])


def make_api(client, actor):
    return ConsultationApi("http://test", access_token(actor), client=client)


async def wait_for(predicate, timeout=3.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_call_between_owner_and_vet(client, owner, vet):
    booking_id, consultation_id = await _confirmed_consultation(client, owner, vet)
    clock = [SLOT_START - timedelta(minutes=30)]

    owner_room = ConsultationRoom(
        make_api(client, owner), FakeDevices(), consultation_id, vet.user_id,
        scheduled_date=DAY, slot_start="10:00", slot_end="10:30", join_window_minutes=5,
        poll_interval=0.02, clock=lambda: clock[0]
    )
    vet_room = ConsultationRoom(
        make_api(client, vet), FakeDevices(camera=False), consultation_id, owner.user_id,
        poll_interval=0.02
    )
    try:
        session = await owner_room.open()
        assert session.status == "waiting"
        assert owner_room.state == RoomState.WAITING

        assert not owner_room.can_join()
        with pytest.raises(JoinWindowClosedError) as exc:
            await owner_room.start_call()
        assert exc.value.minutes_remaining == 25

        clock[0] = SLOT_START - timedelta(minutes=2)
        await owner_room.start_call()
        assert owner_room.state == RoomState.LIVE
        assert owner_room.media.capability.mode == MediaMode.VIDEO
        assert owner_room.duration_timer.active

        await vet_room.open()
        assert vet_room.session.id == session.id
        assert vet_room.state == RoomState.LIVE
        assert vet_room.media.capability.mode == MediaMode.AUDIO_ONLY
        assert vet_room.warnings

        sent = await owner_room.send_message("  Hello doctor  ")
        assert sent.message == "Hello doctor"
        assert sent.sender_name == "Jamie Rivera"
        await wait_for(lambda: any(m.id == sent.id for m in vet_room.messages))
        assert await owner_room.send_message("   ") is None

        assert owner_room.start_recording()
        owner_room.recorder.push(b"webm-bytes")

        await vet_room.end_call()
        assert vet_room.state == RoomState.ENDED
        assert vet_room.media.local_stream is None

        await wait_for(lambda: owner_room.state == RoomState.ENDED)
        assert owner_room.recording.data == b"webm-bytes"
        assert owner_room.media.local_stream is None
        assert not owner_room.poller.message_timer.active

        booking = await owner_room.api.get_booking(booking_id)
        assert booking.status == "completed"
        assert await owner_room.end_call() is None
    finally:
        await owner_room.close()
        await vet_room.close()


@pytest.mark.asyncio
async def test_end_call_after_the_other_side_ended(client, owner, vet):
    _, consultation_id = await _confirmed_consultation(client, owner, vet)
    room = ConsultationRoom(make_api(client, owner), FakeDevices(), consultation_id, vet.user_id,
                            poll_interval=30)
    try:
        await room.open()
        await room.start_call()
        await make_api(client, vet).end_session(room.session.id)

        await room.end_call()
        assert room.state == RoomState.ENDED
        assert room.session.status == "ended"
        assert room.error is None
    finally:
        await room.close()


@pytest.mark.asyncio
async def test_end_call_reports_network_failure_and_still_releases_media():
    consultation_id = uuid4()
    now = datetime.utcnow().isoformat()
    active_session = {
        "id": str(uuid4()),
        "consultation_id": str(consultation_id),
        "room_id": "room_a1b2c3d4e5f6",
        "host_user_id": str(uuid4()),
        "participant_user_id": str(uuid4()),
        "status": "active",
        "created_at": now,
        "updated_at": now
    }

    def handler(request):
        if request.url.path.endswith("/end"):
            raise httpx.ConnectError("connection reset", request=request)
        if request.url.path.endswith("/messages"):
            return httpx.Response(200, json=[])
        return httpx.Response(200, json=active_session)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    devices = FakeDevices()
    room = ConsultationRoom(ConsultationApi("http://test", "token", client=http), devices,
                            consultation_id, uuid4(), poll_interval=30)
    try:
        await room.open()
        assert room.state == RoomState.LIVE

        with pytest.raises(TransientNetworkError):
            await room.end_call()
        assert room.error.startswith("Failed to end session")
        assert all(track.stopped for track in devices.tracks)
    finally:
        await room.close()
        await http.aclose()
