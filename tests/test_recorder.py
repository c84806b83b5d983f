import pytest

from app.client.media import MediaController
from app.client.recorder import Recorder
from app.core.errors import NoStreamAvailable

from tests.fakes import FakeDevices


@pytest.mark.asyncio
async def test_recording_without_a_stream_fails():
    media = MediaController(FakeDevices())
    recorder = Recorder(media)
    with pytest.raises(NoStreamAvailable):
        recorder.start()
    assert not recorder.recording
    assert not media.capability.recording


@pytest.mark.asyncio
async def test_audio_only_stream_can_be_recorded():
    media = MediaController(FakeDevices(camera=False))
    await media.acquire()
    recorder = Recorder(media)
    assert recorder.start()
    assert recorder.stream.audio_tracks


@pytest.mark.asyncio
async def test_chat_only_mode_has_nothing_to_record():
    media = MediaController(FakeDevices(camera=False, microphone=False))
    await media.acquire()
    with pytest.raises(NoStreamAvailable):
        Recorder(media).start()


@pytest.mark.asyncio
async def test_records_chunks_without_stopping_tracks():
    devices = FakeDevices()
    media = MediaController(devices)
    await media.acquire()
    recorder = Recorder(media)

    assert recorder.start() is True
    assert recorder.start() is True
    assert media.capability.recording
    assert recorder.stream is media.local_stream

    recorder.push(b"\x1a\x45")
    recorder.push(b"")
    recorder.push(b"\xdf\xa3")
    recording = recorder.stop()

    assert recording.data == b"\x1a\x45\xdf\xa3"
    assert recording.size == 4
    assert recording.mime_type == "video/webm;codecs=vp9"
    assert recording.filename.startswith("consultation-")
    assert not media.capability.recording
    assert not any(track.stopped for track in devices.tracks)
    assert recorder.stop() is None


@pytest.mark.asyncio
async def test_screen_share_takes_precedence():
    media = MediaController(FakeDevices())
    await media.acquire()
    await media.start_screen_share()

    recorder = Recorder(media)
    recorder.start()
    assert recorder.stream is media.screen_stream


@pytest.mark.asyncio
async def test_mime_type_falls_back_to_what_is_supported():
    media = MediaController(FakeDevices())
    await media.acquire()

    recorder = Recorder(media, supported_types=["video/webm;codecs=vp8"])
    recorder.start()
    assert recorder.mime_type == "video/webm;codecs=vp8"

    recorder = Recorder(media, supported_types=[])
    recorder.start()
    assert recorder.mime_type == "video/webm"


@pytest.mark.asyncio
async def test_platform_ending_screen_share_moves_recording_to_camera():
    media = MediaController(FakeDevices())
    await media.acquire()
    await media.start_screen_share()
    recorder = Recorder(media)
    recorder.start()
    recorder.push(b"screen")

    media.screen_stream.video_tracks[0].end()

    assert recorder.recording
    assert recorder.stream is media.local_stream
    recorder.push(b"camera")
    assert recorder.stop().data == b"screencamera"


@pytest.mark.asyncio
async def test_screen_share_ending_without_camera_stops_recording():
    media = MediaController(FakeDevices(camera=False, microphone=False))
    await media.acquire()
    await media.start_screen_share()
    recorder = Recorder(media)
    recorder.start()
    recorder.push(b"screen")

    media.stop_screen_share()

    assert not recorder.recording
    assert not media.capability.recording
    assert recorder.last_recording.data == b"screen"
    recorder.push(b"late")
    assert recorder.last_recording.data == b"screen"


@pytest.mark.asyncio
async def test_dead_screen_stream_is_not_recorded():
    media = MediaController(FakeDevices())
    await media.acquire()
    await media.start_screen_share()
    media.screen_stream.stop()

    recorder = Recorder(media)
    recorder.start()
    assert recorder.stream is media.local_stream
