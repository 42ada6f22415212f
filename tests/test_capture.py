import asyncio
import wave
from io import BytesIO

import pytest
import torch

from speechtrainer.constants.audio_properties import SAMPLING_RATE
from speechtrainer.core.errors import (
    DeviceUnavailableError,
    InvalidStateError,
    PermissionDeniedError,
    UnsupportedError,
)
from speechtrainer.core.platform import PlatformCapabilities
from speechtrainer.speech import capture as capture_module
from speechtrainer.speech.capture import AudioCapture


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def read_wav(data):
    with wave.open(BytesIO(data), "rb") as wav_file:
        return wav_file.getnchannels(), wav_file.getframerate(), wav_file.getnframes()


@pytest.mark.asyncio
async def test_start_stop_produces_wav_and_releases_microphone(platform, microphone):
    capture = AudioCapture(platform)

    handle = await capture.start()
    microphone.push(0.5, samples=1600)
    microphone.push(0.25, samples=1600)
    blob = capture.stop(handle)

    assert blob.mime_type == "audio/wav"
    assert blob.sample_rate == SAMPLING_RATE
    assert read_wav(blob.data) == (1, SAMPLING_RATE, 3200)
    assert microphone.stream.closed is True
    assert capture.active_handle is None


@pytest.mark.asyncio
async def test_stop_immediately_gives_empty_but_valid_wav(platform):
    capture = AudioCapture(platform)

    handle = await capture.start()
    blob = capture.stop(handle)

    assert read_wav(blob.data) == (1, SAMPLING_RATE, 0)


@pytest.mark.asyncio
async def test_second_start_is_rejected(platform):
    capture = AudioCapture(platform)
    await capture.start()

    with pytest.raises(InvalidStateError):
        await capture.start()


@pytest.mark.asyncio
async def test_start_without_microphone_is_unsupported():
    capture = AudioCapture(PlatformCapabilities())

    with pytest.raises(UnsupportedError):
        await capture.start()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected", [("denied", PermissionDeniedError), ("missing", DeviceUnavailableError)]
)
async def test_open_failures_propagate(platform, microphone, error, expected):
    microphone.error = error
    capture = AudioCapture(platform)

    with pytest.raises(expected):
        await capture.start()

    assert capture.active_handle is None


@pytest.mark.asyncio
async def test_pause_and_resume_state_checks(platform, microphone):
    capture = AudioCapture(platform)
    handle = await capture.start()

    with pytest.raises(InvalidStateError):
        capture.resume(handle)

    capture.pause(handle)
    assert microphone.stream.paused is True
    with pytest.raises(InvalidStateError):
        capture.pause(handle)

    capture.resume(handle)
    assert microphone.stream.paused is False

    capture.stop(handle)
    with pytest.raises(InvalidStateError):
        capture.pause(handle)
    with pytest.raises(InvalidStateError):
        capture.stop(handle)


@pytest.mark.asyncio
async def test_frames_are_dropped_while_paused(platform, microphone):
    capture = AudioCapture(platform)
    handle = await capture.start()

    microphone.push(0.5, samples=800)
    capture.pause(handle)
    microphone.push(0.5, samples=800)
    capture.resume(handle)
    microphone.push(0.5, samples=800)
    blob = capture.stop(handle)

    assert read_wav(blob.data)[2] == 1600


@pytest.mark.asyncio
async def test_duration_excludes_paused_time(platform):
    clock = FakeClock()
    capture = AudioCapture(platform, clock=clock)
    handle = await capture.start()

    clock.now += 2.0
    capture.pause(handle)
    clock.now += 5.0
    capture.resume(handle)
    clock.now += 1.0
    blob = capture.stop(handle)

    assert blob.duration_seconds == pytest.approx(3.0)


@pytest.mark.asyncio
async def test_level_meter_reports_rms(platform, microphone):
    levels = []
    capture = AudioCapture(platform, level_interval=0.01)
    handle = await capture.start(on_level=levels.append)

    microphone.push(0.5)
    await asyncio.sleep(0.05)
    capture.stop(handle)
    reported = len(levels)
    await asyncio.sleep(0.03)

    assert levels
    assert levels[-1] == pytest.approx(0.5)
    assert all(0.0 <= level <= 1.0 for level in levels)
    assert len(levels) == reported


def test_frame_level_is_clamped():
    assert capture_module.frame_level(torch.full((1, 10), 3.0)) == 1.0
    assert capture_module.frame_level(torch.zeros((1, 0))) == 0.0
    assert capture_module.frame_level(torch.full((1, 10), -0.5)) == pytest.approx(0.5)


def test_frames_to_waveform_downmixes_and_resamples(monkeypatch):
    resample_calls = []

    class FakeResample:
        def __init__(self, orig_freq, new_freq):
            resample_calls.append((orig_freq, new_freq))

        def __call__(self, data):
            return data

    monkeypatch.setattr(capture_module.torchaudio.transforms, "Resample", FakeResample)

    frames = [torch.stack([torch.ones(480), torch.zeros(480)])]
    waveform = capture_module.frames_to_waveform(frames, 48000)

    assert waveform.shape == (1, 480)
    assert waveform[0, 0].item() == pytest.approx(0.5)
    assert resample_calls == [(48000, SAMPLING_RATE)]


def test_frames_to_waveform_skips_resample_at_target_rate(monkeypatch):
    def fail_resample(*_args, **_kwargs):
        raise AssertionError("Resample should not be called")

    monkeypatch.setattr(capture_module.torchaudio.transforms, "Resample", fail_resample)

    assert capture_module.frames_to_waveform([torch.ones((1, 100))], SAMPLING_RATE).shape == (1, 100)
    assert capture_module.frames_to_waveform([], 44100).shape == (1, 0)
