import asyncio
from datetime import datetime
from uuid import uuid4

import pytest

from app.client.poller import SessionPoller
from app.core.errors import NotFoundError, TransientNetworkError
from app.schemas.video_session import ChatMessageResponse, VideoSessionResponse

CONSULTATION_ID = uuid4()


def make_session(status="waiting", session_id=None):
    now = datetime.utcnow()
    return VideoSessionResponse(
        id=session_id or uuid4(),
        consultation_id=CONSULTATION_ID,
        room_id="room_0123456789ab",
        host_user_id=uuid4(),
        participant_user_id=uuid4(),
        status=status,
        created_at=now,
        updated_at=now
    )


class FakeApi:
    def __init__(self, session):
        self.sessions = {session.id: session}
        self.latest = session
        self.messages = []
        self.offline = False
        self.lookup_offline = False
        self.messages_offline = False
        self.session_calls = 0
        self.message_calls = 0

    def set(self, session):
        self.sessions[session.id] = session
        self.latest = session

    async def get_session(self, session_id):
        self.session_calls += 1
        if self.offline:
            raise TransientNetworkError("connection refused")
        if session_id not in self.sessions:
            raise NotFoundError("Video Session", session_id)
        return self.sessions[session_id]

    async def get_session_by_consultation(self, consultation_id):
        if self.lookup_offline:
            raise TransientNetworkError("connection refused")
        return self.latest

    async def list_messages(self, session_id, since=None):
        self.message_calls += 1
        if self.offline or self.messages_offline:
            raise TransientNetworkError("connection refused")
        return list(self.messages)


class Recorder:
    def __init__(self):
        self.events = []

    def hook(self, name):
        async def record(payload):
            self.events.append((name, payload))
        return record

    def named(self, name):
        return [payload for event, payload in self.events if event == name]


def make_poller(api, session, events, **kwargs):
    return SessionPoller(
        api,
        CONSULTATION_ID,
        session,
        interval=0.01,
        on_active=events.hook("active"),
        on_ended=events.hook("ended"),
        on_retarget=events.hook("retarget"),
        on_messages=events.hook("messages"),
        on_warning=events.hook("warning"),
        **kwargs
    )


async def wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_waiting_then_active_then_ended():
    session = make_session("waiting")
    api = FakeApi(session)
    events = Recorder()
    poller = make_poller(api, session, events)

    await poller.start()
    assert poller.state_timer.active
    assert not poller.message_timer.active
    assert events.named("messages") == [[]]

    api.set(make_session("active", session.id))
    await wait_for(lambda: poller.live)
    assert not poller.state_timer.active
    assert poller.message_timer.active
    assert len(events.named("active")) == 1

    api.messages = [ChatMessageResponse(
        id=uuid4(), session_id=session.id, sender_id=uuid4(), sender_name="Jamie",
        message="Hello", message_type="text", timestamp=datetime.utcnow()
    )]
    await wait_for(lambda: events.named("messages")[-1] == api.messages)

    api.set(make_session("ended", session.id))
    await wait_for(lambda: poller.stopped)
    assert not poller.state_timer.active
    assert not poller.message_timer.active
    assert len(events.named("ended")) == 1
    assert len(events.named("active")) == 1


@pytest.mark.asyncio
async def test_already_active_session_goes_straight_to_message_polling():
    session = make_session("active")
    api = FakeApi(session)
    events = Recorder()
    poller = make_poller(api, session, events)

    await poller.start()
    try:
        assert poller.live
        assert not poller.state_timer.active
        assert poller.message_timer.active
        assert len(events.named("active")) == 1
    finally:
        poller.stop()


@pytest.mark.asyncio
async def test_stale_session_is_retargeted_through_consultation_lookup():
    stale = make_session("waiting")
    api = FakeApi(stale)
    events = Recorder()
    poller = make_poller(api, stale, events)
    await poller.start()

    replacement = make_session("active")
    del api.sessions[stale.id]
    api.set(replacement)

    await wait_for(lambda: poller.live)
    poller.stop()

    assert poller.session_id == replacement.id
    assert [s.id for s in events.named("retarget")] == [replacement.id]
    assert len(events.named("active")) == 1


@pytest.mark.asyncio
async def test_consecutive_failures_warn_once_and_reset_on_success():
    session = make_session("waiting")
    api = FakeApi(session)
    events = Recorder()
    poller = make_poller(api, session, events, warning_threshold=3)
    await poller.start()

    api.offline = True
    api.lookup_offline = True
    await wait_for(lambda: poller.consecutive_failures >= 6)
    assert len(events.named("warning")) == 1

    api.offline = False
    api.lookup_offline = False
    await wait_for(lambda: poller.consecutive_failures == 0)
    poller.stop()
    assert poller.session_id == session.id


@pytest.mark.asyncio
async def test_failing_chat_warns_even_while_session_fetches_succeed():
    session = make_session("active")
    api = FakeApi(session)
    events = Recorder()
    poller = make_poller(api, session, events, warning_threshold=3)
    api.messages_offline = True
    await poller.start()

    await wait_for(lambda: poller.failures["messages"] >= 5)
    assert poller.failures["session"] == 0
    assert len(events.named("warning")) == 1

    api.messages_offline = False
    await wait_for(lambda: poller.consecutive_failures == 0)
    poller.stop()


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_final():
    session = make_session("waiting")
    api = FakeApi(session)
    poller = make_poller(api, session, Recorder())
    await poller.start()

    poller.stop()
    poller.stop()
    calls = api.session_calls
    await asyncio.sleep(0.05)

    assert api.session_calls == calls
    assert not poller.state_timer.active
    assert not poller.message_timer.active
