import asyncio

import pytest
import torch

from speechtrainer.api.schemas import RecognitionResult
from speechtrainer.core.errors import DeviceUnavailableError, PermissionDeniedError
from speechtrainer.core.platform import (
    EngineVoice,
    MicrophoneBackend,
    MicrophoneStream,
    PlatformCapabilities,
    RecognitionEngine,
    SynthesisEngine,
)


class FakeStream(MicrophoneStream):
    def __init__(self, sample_rate, channels):
        self.sample_rate = sample_rate
        self.channels = channels
        self.paused = False
        self.closed = False

    def pause(self):
        self.paused = True

    def resume(self):
        self.paused = False

    def close(self):
        self.closed = True


class FakeMicrophone(MicrophoneBackend):
    def __init__(self, sample_rate=16000, channels=1):
        self.sample_rate = sample_rate
        self.channels = channels
        self.error = None
        self.streams = []
        self.on_frame = None

    async def open(self, constraints, on_frame):
        if self.error == "denied":
            raise PermissionDeniedError("Microphone access was denied.")
        if self.error == "missing":
            raise DeviceUnavailableError("No input device.")
        self.constraints = constraints
        self.on_frame = on_frame
        stream = FakeStream(self.sample_rate, self.channels)
        self.streams.append(stream)
        return stream

    @property
    def stream(self):
        return self.streams[-1]

    def push(self, value=0.5, samples=1600):
        self.on_frame(torch.full((self.channels, samples), value))


class FakeRecognitionEngine(RecognitionEngine):
    def __init__(self):
        self.listener = None
        self.config = None
        self.start_error = None
        self.stops = 0
        self.aborts = 0

    async def start(self, config, listener):
        if self.start_error is not None:
            raise self.start_error
        self.config = config
        self.listener = listener

    def stop(self):
        self.stops += 1

    def abort(self):
        self.aborts += 1

    def emit(self, transcript, is_final=False, confidence=0.9):
        self.listener.on_results(
            [RecognitionResult(transcript=transcript, confidence=confidence, is_final=is_final)]
        )

    def fail(self, code):
        self.listener.on_error(code)


class FakeSynthesisEngine(SynthesisEngine):
    """Completes every utterance on the next loop iteration unless told otherwise."""

    def __init__(self, voices=None):
        self.voices = voices if voices is not None else [
            EngineVoice("Samantha", "en-US", default=True),
            EngineVoice("Daniel", "en-GB"),
            EngineVoice("Thomas", "fr-FR"),
        ]
        self.spoken = []
        self.cancels = 0
        self.failing_words = set()
        self.auto_complete = True

    def get_voices(self):
        return self.voices

    def speak(self, utterance):
        self.spoken.append(utterance)
        if self.auto_complete:
            asyncio.get_running_loop().call_soon(self.finish, utterance)

    def finish(self, utterance):
        utterance.notify_start()
        if utterance.text in self.failing_words:
            utterance.notify_error("synthesis-failed")
        else:
            utterance.notify_end()

    def cancel(self):
        self.cancels += 1


@pytest.fixture
def microphone():
    return FakeMicrophone()


@pytest.fixture
def recognition_engine():
    return FakeRecognitionEngine()


@pytest.fixture
def synthesis_engine():
    return FakeSynthesisEngine()


@pytest.fixture
def platform(microphone, recognition_engine, synthesis_engine):
    return PlatformCapabilities(
        microphone=microphone, recognition=recognition_engine, synthesis=synthesis_engine
    )
