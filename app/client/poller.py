"""
Participant-side polling of a consultation session.

While the session is ``waiting`` a state timer re-fetches it every interval.
Once it is observed ``active`` the state timer stops and a separate message
timer takes over; it keeps fetching chat and session state until the session
is ``ended``, at which point every timer is torn down.
"""
import logging
from typing import Awaitable, Callable, List, Optional
from uuid import UUID

from app.client.api import ConsultationApi
from app.client.timers import RepeatingTimer
from app.core.config import settings
from app.core.errors import NotFoundError, TransientNetworkError
from app.db.models.video_session import SessionStatus
from app.schemas.video_session import ChatMessageResponse, VideoSessionResponse

logger = logging.getLogger("vetconsult.client")

SessionCallback = Callable[[VideoSessionResponse], Awaitable[None]]


async def _noop(*args):
    return None


class SessionPoller:
    def __init__(
        self,
        api: ConsultationApi,
        consultation_id: UUID,
        session: VideoSessionResponse,
        *,
        interval: float = settings.POLL_INTERVAL_SECONDS,
        warning_threshold: int = settings.POLL_FAILURE_WARNING_THRESHOLD,
        on_active: SessionCallback = _noop,
        on_ended: SessionCallback = _noop,
        on_retarget: SessionCallback = _noop,
        on_messages: Callable[[List[ChatMessageResponse]], Awaitable[None]] = _noop,
        on_warning: Callable[[str], Awaitable[None]] = _noop,
    ):
        self.api = api
        self.consultation_id = consultation_id
        self.session = session
        self.interval = interval
        self.warning_threshold = warning_threshold
        self.on_active = on_active
        self.on_ended = on_ended
        self.on_retarget = on_retarget
        self.on_messages = on_messages
        self.on_warning = on_warning

        self.state_timer = RepeatingTimer(interval, self._poll_state, name="session-state-poller")
        self.message_timer = RepeatingTimer(interval, self._poll_live, name="session-message-poller")
        self.live = False
        self.stopped = False
        # Session and chat fetches keep separate failure streaks
        self.failures = {"session": 0, "messages": 0}
        self._warned = set()

    @property
    def consecutive_failures(self) -> int:
        return max(self.failures.values())

    @property
    def session_id(self) -> UUID:
        return self.session.id

    async def start(self):
        """Act on the session as first observed, then poll as needed."""
        self.stopped = False
        if self.session.status == SessionStatus.WAITING:
            await self._load_messages()
        await self._apply(self.session)

    def stop(self):
        """Tear down both timers. Safe to call repeatedly."""
        self.stopped = True
        self.state_timer.cancel()
        self.message_timer.cancel()

    async def go_live(self, session: VideoSessionResponse):
        # Used when this participant starts the call itself
        await self._apply(session)

    async def _poll_state(self):
        session = await self._fetch_session()
        if session is not None and not self.stopped:
            await self._apply(session)

    async def _poll_live(self):
        await self._load_messages()
        session = await self._fetch_session()
        if session is not None and not self.stopped:
            await self._apply(session)

    async def _fetch_session(self) -> Optional[VideoSessionResponse]:
        try:
            session = await self.api.get_session(self.session_id)
        except (TransientNetworkError, NotFoundError) as exc:
            await self._record_failure("session", exc)
            return await self._resolve_by_consultation()
        self._record_success("session")
        return session

    async def _resolve_by_consultation(self) -> Optional[VideoSessionResponse]:
        """Fallback path: the session reference may be stale, look it up again."""
        try:
            session = await self.api.get_session_by_consultation(self.consultation_id)
        except (TransientNetworkError, NotFoundError):
            return None
        if session is None:
            return None
        self._record_success("session")
        if session.id != self.session_id:
            logger.info(f"Session {self.session_id} superseded by {session.id}; re-targeting pollers")
            self.live = False
            self.session = session
            await self.on_retarget(session)
        return session

    async def _apply(self, session: VideoSessionResponse):
        self.session = session
        if session.status == SessionStatus.ENDED:
            self.stop()
            await self.on_ended(session)
        elif session.status == SessionStatus.ACTIVE:
            if not self.live:
                self.live = True
                self.state_timer.cancel()
                await self.on_active(session)
                await self._load_messages()
                if not self.stopped and not self.message_timer.active:
                    self.message_timer.start()
        elif session.status == SessionStatus.WAITING:
            if not self.stopped and not self.state_timer.active:
                self.message_timer.cancel()
                self.state_timer.start()

    async def _load_messages(self):
        try:
            messages = await self.api.list_messages(self.session_id)
        except (TransientNetworkError, NotFoundError) as exc:
            await self._record_failure("messages", exc)
            return
        self._record_success("messages")
        await self.on_messages(messages)

    async def _record_failure(self, channel: str, exc: Exception):
        self.failures[channel] += 1
        count = self.failures[channel]
        logger.debug(f"Poll of {channel} failed ({count} in a row): {exc}")
        if count >= self.warning_threshold and channel not in self._warned:
            self._warned.add(channel)
            logger.warning(f"Session {self.session_id}: {count} consecutive {channel} poll failures")
            await self.on_warning("Connection is unstable; updates may be delayed.")

    def _record_success(self, channel: str):
        self.failures[channel] = 0
        self._warned.discard(channel)
