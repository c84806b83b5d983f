import logging
from datetime import date, datetime
from typing import Callable, List, Optional
from uuid import UUID

from app.client.api import ConsultationApi
from app.client.media import MediaController, MediaDevices
from app.client.poller import SessionPoller
from app.client.recorder import Recorder, Recording
from app.client.timers import RepeatingTimer
from app.core.config import settings
from app.core.errors import InvalidStateError, JoinWindowClosedError, TransientNetworkError
from app.core.join_window import is_joinable, join_opens_at, minutes_until_join
from app.db.models.video_session import SessionStatus
from app.schemas.video_session import ChatMessageResponse, VideoSessionResponse

logger = logging.getLogger("vetconsult.client")


class RoomState:
    CLOSED = "closed"
    WAITING = "waiting"
    LIVE = "live"
    ENDED = "ended"


class ConsultationRoom:
    """
    One participant's view of a consultation call.

    Wires the session poller, the media controller, the recorder and the
    call-duration timer together. Every teardown path (session ended, end
    call, closing the room) is safe to run more than once.
    """

    def __init__(
        self,
        api: ConsultationApi,
        devices: MediaDevices,
        consultation_id: UUID,
        participant_user_id: UUID,
        *,
        scheduled_date: Optional[date] = None,
        slot_start: Optional[str] = None,
        slot_end: Optional[str] = None,
        join_window_minutes: int = settings.JOIN_WINDOW_MINUTES,
        poll_interval: float = settings.POLL_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.api = api
        self.consultation_id = consultation_id
        self.participant_user_id = participant_user_id
        self.scheduled_date = scheduled_date
        self.slot_start = slot_start
        self.slot_end = slot_end
        self.join_window_minutes = join_window_minutes
        self.poll_interval = poll_interval
        self.clock = clock

        self.media = MediaController(devices, on_warning=self._media_warning)
        self.recorder = Recorder(self.media)
        self.duration_timer = RepeatingTimer(1.0, self._tick, name="call-duration")
        self.poller: Optional[SessionPoller] = None

        self.state = RoomState.CLOSED
        self.session: Optional[VideoSessionResponse] = None
        self.messages: List[ChatMessageResponse] = []
        self.call_duration = 0
        self.warnings: List[str] = []
        self.error: Optional[str] = None
        self.recording: Optional[Recording] = None

    # -- join window -------------------------------------------------------

    def can_join(self) -> bool:
        if self.scheduled_date is None:
            return True
        return is_joinable(self.scheduled_date, self.slot_start, self.slot_end,
                           self.join_window_minutes, self.clock())

    def _ensure_joinable(self):
        if self.can_join():
            return
        now = self.clock()
        opens_at = join_opens_at(self.scheduled_date, self.slot_start, self.join_window_minutes)
        raise JoinWindowClosedError(
            opens_at, minutes_until_join(self.scheduled_date, self.slot_start, self.join_window_minutes, now)
        )

    # -- lifecycle ---------------------------------------------------------

    async def open(self) -> VideoSessionResponse:
        self.session = await self.api.get_or_create_session(self.consultation_id, self.participant_user_id)
        self.state = RoomState.WAITING
        self.poller = SessionPoller(
            self.api,
            self.consultation_id,
            self.session,
            interval=self.poll_interval,
            on_active=self._on_active,
            on_ended=self._on_ended,
            on_retarget=self._on_retarget,
            on_messages=self._on_messages,
            on_warning=self._on_poll_warning,
        )
        await self.poller.start()
        return self.session

    async def start_call(self) -> VideoSessionResponse:
        if self.session is None or self.poller is None:
            raise RuntimeError("Room is not open")
        self._ensure_joinable()
        session = await self.api.start_session(self.session.id)
        await self.poller.go_live(session)
        return session

    async def end_call(self) -> Optional[Recording]:
        """Stop recording, tear everything down and end the session on the server."""
        recording = self.stop_recording()
        self._teardown()
        try:
            if self.session is not None and self.session.status != SessionStatus.ENDED:
                self.session = await self.api.end_session(self.session.id)
        except InvalidStateError:
            # The other participant ended it first
            self.session = await self.api.get_session(self.session.id)
        except TransientNetworkError as exc:
            self.error = f"Failed to end session: {exc}"
            raise
        finally:
            self.media.release()
        self.state = RoomState.ENDED
        return recording

    async def close(self):
        self.stop_recording()
        self._teardown()
        self.media.release()
        if self.state != RoomState.ENDED:
            self.state = RoomState.CLOSED

    def _teardown(self):
        if self.poller is not None:
            self.poller.stop()
        self.duration_timer.cancel()

    # -- poller callbacks --------------------------------------------------

    async def _on_active(self, session: VideoSessionResponse):
        self.session = session
        self.state = RoomState.LIVE
        if not self.duration_timer.active:
            self.duration_timer.start()
        if not self.media.acquired:
            await self.media.acquire()

    async def _on_ended(self, session: VideoSessionResponse):
        self.session = session
        self.stop_recording()
        self._teardown()
        self.media.release()
        self.state = RoomState.ENDED

    async def _on_retarget(self, session: VideoSessionResponse):
        self.session = session
        self.messages = []

    async def _on_messages(self, messages: List[ChatMessageResponse]):
        self.messages = list(messages)

    async def _on_poll_warning(self, message: str):
        self.warnings.append(message)

    def _media_warning(self, message: str):
        self.warnings.append(message)

    async def _tick(self):
        self.call_duration += 1

    # -- chat & recording --------------------------------------------------

    async def send_message(self, text: str) -> Optional[ChatMessageResponse]:
        text = text.strip()
        if not text or self.session is None:
            return None
        message = await self.api.send_message(self.session.id, text)
        # The poller may already have picked it up
        if all(existing.id != message.id for existing in self.messages):
            self.messages.append(message)
        return message

    def start_recording(self) -> bool:
        return self.recorder.start()

    def stop_recording(self) -> Optional[Recording]:
        recording = self.recorder.stop()
        if recording is None and self.recorder.last_recording is not self.recording:
            # Stopped on its own when the screen share went away
            recording = self.recorder.last_recording
        if recording is not None:
            self.recording = recording
        return recording
