"""
Local media acquisition with graceful degradation.

Capture is attempted tier by tier, richest first; the first tier whose
request succeeds decides the media mode. Chat works in every mode, so a
failed acquisition only ever downgrades the call, never aborts it.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence

from app.core.errors import MediaUnavailableError

logger = logging.getLogger("vetconsult.client")


class MediaMode(str, Enum):
    VIDEO = "video"
    AUDIO_ONLY = "audio-only"
    NONE = "none"


@dataclass
class MediaTrack:
    kind: str  # audio or video
    label: str = ""
    enabled: bool = True
    stopped: bool = False
    on_ended: Optional[Callable[[], None]] = None

    def stop(self):
        """Stop the track from our side. Does not fire ``on_ended``."""
        self.stopped = True

    def end(self):
        """The platform ended the track (e.g. the browser's "stop sharing")."""
        if self.stopped:
            return
        self.stopped = True
        if self.on_ended is not None:
            self.on_ended()


@dataclass
class MediaStream:
    tracks: List[MediaTrack] = field(default_factory=list)

    @property
    def audio_tracks(self) -> List[MediaTrack]:
        return [t for t in self.tracks if t.kind == "audio"]

    @property
    def video_tracks(self) -> List[MediaTrack]:
        return [t for t in self.tracks if t.kind == "video"]

    @property
    def live(self) -> bool:
        return any(not t.stopped for t in self.tracks)

    def add_track(self, track: MediaTrack):
        self.tracks.append(track)

    def stop(self):
        for track in self.tracks:
            track.stop()


@dataclass(frozen=True)
class VideoConstraints:
    width: int = 1280
    height: int = 720
    facing_mode: str = "user"


@dataclass(frozen=True)
class MediaConstraints:
    audio: bool = False
    video: Optional[VideoConstraints] = None


class MediaDevices(Protocol):
    """Platform capture API. Implementations raise MediaUnavailableError on denial or failure."""

    async def get_user_media(self, constraints: MediaConstraints) -> MediaStream: ...

    async def get_display_media(self) -> MediaStream: ...


@dataclass(frozen=True)
class FallbackTier:
    mode: MediaMode
    constraints: Optional[MediaConstraints]  # None acquires nothing and always succeeds
    warning: Optional[str] = None


DEFAULT_TIERS: Sequence[FallbackTier] = (
    FallbackTier(MediaMode.VIDEO, MediaConstraints(audio=True, video=VideoConstraints())),
    FallbackTier(
        MediaMode.AUDIO_ONLY,
        MediaConstraints(audio=True),
        "Camera is unavailable (may be in use by another tab). Audio-only mode enabled."
    ),
    FallbackTier(MediaMode.NONE, None, "Camera & microphone unavailable. You can still use chat."),
)


@dataclass
class MediaCapability:
    mode: MediaMode = MediaMode.NONE
    camera_on: bool = False
    muted: bool = True
    screen_sharing: bool = False
    recording: bool = False


class MediaController:
    """
    Owns the local camera/microphone stream and any screen-share stream.

    Other components may borrow ``local_stream``/``screen_stream`` but only
    ``release`` stops their tracks.
    """

    def __init__(self, devices: MediaDevices, tiers: Sequence[FallbackTier] = DEFAULT_TIERS,
                 on_warning: Optional[Callable[[str], None]] = None):
        self.devices = devices
        self.tiers = tiers
        self.on_warning = on_warning
        self.capability = MediaCapability()
        self.local_stream: Optional[MediaStream] = None
        self.screen_stream: Optional[MediaStream] = None
        # Called with the screen stream once it is gone
        self.screen_share_listeners: List[Callable[[MediaStream], None]] = []
        self.warning: Optional[str] = None
        self.error: Optional[str] = None
        self.acquired = False

    @property
    def displayed_stream(self) -> Optional[MediaStream]:
        # Screen share supersedes the camera preview while it lasts
        if self.capability.screen_sharing and self.screen_stream is not None:
            return self.screen_stream
        return self.local_stream

    def _warn(self, message: Optional[str]):
        self.warning = message
        if message:
            logger.warning(message)
            if self.on_warning is not None:
                self.on_warning(message)

    async def acquire(self) -> MediaCapability:
        """Walk the tiers until one succeeds."""
        self.error = None
        for tier in self.tiers:
            stream = None
            if tier.constraints is not None:
                try:
                    stream = await self.devices.get_user_media(tier.constraints)
                except MediaUnavailableError as exc:
                    logger.info(f"Media tier '{tier.mode.value}' failed: {exc}")
                    continue

            if self.local_stream is not None and self.local_stream is not stream:
                self.local_stream.stop()
            self.local_stream = stream
            has_audio = stream is not None and bool(stream.audio_tracks)
            self.capability.mode = tier.mode
            self.capability.camera_on = tier.mode == MediaMode.VIDEO
            self.capability.muted = not has_audio
            self.acquired = True
            self._warn(tier.warning)
            return self.capability

        # Every tier failed, including one that needs no device
        self.local_stream = None
        self.capability.mode = MediaMode.NONE
        self.capability.camera_on = False
        self.capability.muted = True
        self.acquired = True
        self._warn("Camera & microphone unavailable. You can still use chat.")
        return self.capability

    def toggle_mute(self) -> MediaCapability:
        if self.local_stream is None or not self.local_stream.audio_tracks:
            self.error = "Microphone is unavailable"
            return self.capability
        muted = not self.capability.muted
        for track in self.local_stream.audio_tracks:
            track.enabled = not muted
        self.capability.muted = muted
        return self.capability

    async def toggle_camera(self) -> MediaCapability:
        if self.capability.mode == MediaMode.VIDEO:
            camera_on = not self.capability.camera_on
            if self.local_stream is not None:
                for track in self.local_stream.video_tracks:
                    track.enabled = camera_on
            self.capability.camera_on = camera_on
            return self.capability

        if self.capability.camera_on:
            self.capability.camera_on = False
            return self.capability

        # Camera was never acquired: ask for video only and merge it in
        try:
            stream = await self.devices.get_user_media(MediaConstraints(video=VideoConstraints()))
        except MediaUnavailableError as exc:
            logger.info(f"Camera re-acquisition failed: {exc}")
            self.error = "Camera is still unavailable"
            return self.capability

        if self.local_stream is not None:
            for track in stream.video_tracks:
                self.local_stream.add_track(track)
        else:
            self.local_stream = stream
        self.capability.mode = MediaMode.VIDEO
        self.capability.camera_on = True
        self.error = None
        self.warning = None
        return self.capability

    async def start_screen_share(self) -> MediaCapability:
        if self.capability.screen_sharing:
            return self.capability
        try:
            stream = await self.devices.get_display_media()
        except MediaUnavailableError as exc:
            logger.info(f"Screen share failed: {exc}")
            self.error = "Screen sharing is unavailable"
            return self.capability

        self.screen_stream = stream
        for track in stream.video_tracks:
            track.on_ended = self._screen_share_ended
        self.capability.screen_sharing = True
        return self.capability

    def _screen_share_ended(self):
        logger.info("Screen share ended by the platform; restoring camera view")
        self._drop_screen_stream()

    def _drop_screen_stream(self):
        stream = self.screen_stream
        self.screen_stream = None
        self.capability.screen_sharing = False
        if stream is not None:
            for listener in list(self.screen_share_listeners):
                listener(stream)

    def stop_screen_share(self) -> MediaCapability:
        if self.screen_stream is not None:
            self.screen_stream.stop()
        self._drop_screen_stream()
        return self.capability

    def release(self):
        """Stop every owned track regardless of which tier was reached."""
        if self.local_stream is not None:
            self.local_stream.stop()
            self.local_stream = None
        self.stop_screen_share()
        self.capability.camera_on = False
        self.capability.muted = True
        self.acquired = False
