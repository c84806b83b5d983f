import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from app.client.media import MediaController, MediaStream
from app.core.errors import NoStreamAvailable

logger = logging.getLogger("vetconsult.client")

PREFERRED_MIME_TYPES = ("video/webm;codecs=vp9", "video/webm;codecs=vp8", "video/webm")


@dataclass
class Recording:
    data: bytes
    mime_type: str
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def filename(self) -> str:
        return f"consultation-{self.created_at:%Y%m%d-%H%M%S}.webm"


class Recorder:
    """
    Local capture-to-artifact recorder.

    The stream is borrowed from the MediaController; stopping the recorder
    never stops its tracks.
    """

    def __init__(self, media: MediaController, supported_types: Optional[Iterable[str]] = None):
        self.media = media
        self.supported_types = set(supported_types) if supported_types is not None else set(PREFERRED_MIME_TYPES)
        self.stream: Optional[MediaStream] = None
        self.mime_type: Optional[str] = None
        self._chunks: List[bytes] = []
        self.last_recording: Optional[Recording] = None
        media.screen_share_listeners.append(self._screen_share_ended)

    @property
    def recording(self) -> bool:
        return self.stream is not None

    def _pick_mime_type(self) -> str:
        for mime_type in PREFERRED_MIME_TYPES:
            if mime_type in self.supported_types:
                return mime_type
        return PREFERRED_MIME_TYPES[-1]

    def start(self) -> bool:
        if self.recording:
            return True
        stream = None
        screen = self.media.screen_stream
        if self.media.capability.screen_sharing and screen is not None and screen.live:
            stream = screen
        elif self.media.local_stream is not None and self.media.local_stream.live:
            stream = self.media.local_stream
        if stream is None:
            raise NoStreamAvailable()

        self._chunks = []
        self.mime_type = self._pick_mime_type()
        self.stream = stream
        self.media.capability.recording = True
        logger.info(f"Recording started ({self.mime_type})")
        return True

    def _screen_share_ended(self, stream: MediaStream):
        if self.stream is not stream:
            return
        local = self.media.local_stream
        if local is not None and local.live:
            self.stream = local
            logger.info("Screen share ended; recording continues from the camera")
        else:
            self.stop()

    def push(self, chunk: bytes):
        """Data-available hook: keep non-empty chunks while recording."""
        if self.recording and chunk:
            self._chunks.append(chunk)

    def stop(self) -> Optional[Recording]:
        if not self.recording:
            return None
        recording = Recording(data=b"".join(self._chunks), mime_type=self.mime_type)
        self._chunks = []
        self.stream = None
        self.media.capability.recording = False
        self.last_recording = recording
        logger.info(f"Recording stopped ({recording.size} bytes)")
        return recording
