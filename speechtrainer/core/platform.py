"""
Seams between the speech core and whatever provides audio, recognition and
synthesis on the host. Concrete engines live in ``speechtrainer.engines``;
tests inject fakes.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import torch

from speechtrainer.api.schemas import (
    BoundaryEvent,
    CaptureConstraints,
    RecognitionConfig,
    RecognitionResult,
    SpeechOptions,
)

FrameCallback = Callable[[torch.Tensor], None]


class MicrophoneStream(ABC):
    """An open input stream delivering ``(channels, samples)`` float frames."""

    sample_rate: int
    channels: int

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def resume(self) -> None: ...

    @abstractmethod
    def close(self) -> None:
        """Stops the stream and releases every device track."""


class MicrophoneBackend(ABC):
    @abstractmethod
    async def open(
        self, constraints: CaptureConstraints, on_frame: FrameCallback
    ) -> MicrophoneStream:
        """
        Opens the default input device. Raises PermissionDeniedError when
        access is refused and DeviceUnavailableError when no input exists.
        """


class RecognitionListener(ABC):
    @abstractmethod
    def on_results(self, results: List[RecognitionResult]) -> None: ...

    @abstractmethod
    def on_error(self, code: str) -> None: ...

    @abstractmethod
    def on_end(self) -> None: ...


class RecognitionEngine(ABC):
    @abstractmethod
    async def start(self, config: RecognitionConfig, listener: RecognitionListener) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...

    def abort(self) -> None:
        self.stop()


class EngineVoice:
    def __init__(self, name: str, lang: str, local_service: bool = True, default: bool = False):
        self.name = name
        self.lang = lang
        self.local_service = local_service
        self.default = default


class Utterance:
    """
    What a synthesis engine is asked to speak. The engine reports progress
    through the ``notify_*`` methods; the owning handle decides whether the
    events still reach the caller.
    """

    def __init__(self, text: str, options: SpeechOptions, voice_name: Optional[str] = None):
        self.text = text
        self.options = options
        self.voice_name = voice_name
        self.listeners = []

    def notify_start(self) -> None:
        for listener in list(self.listeners):
            listener.started()

    def notify_end(self) -> None:
        for listener in list(self.listeners):
            listener.ended()

    def notify_error(self, code: str) -> None:
        for listener in list(self.listeners):
            listener.failed(code)

    def notify_boundary(self, event: BoundaryEvent) -> None:
        for listener in list(self.listeners):
            listener.boundary(event)


class SynthesisEngine(ABC):
    @abstractmethod
    def get_voices(self) -> List[EngineVoice]: ...

    @abstractmethod
    def speak(self, utterance: Utterance) -> None: ...

    @abstractmethod
    def cancel(self) -> None: ...

    def pause(self) -> None:
        pass

    def resume(self) -> None:
        pass

    @property
    def speaking(self) -> bool:
        return False


class PlatformCapabilities:
    def __init__(
        self,
        microphone: Optional[MicrophoneBackend] = None,
        recognition: Optional[RecognitionEngine] = None,
        synthesis: Optional[SynthesisEngine] = None,
    ):
        self.microphone = microphone
        self.recognition = recognition
        self.synthesis = synthesis

    def has_microphone(self) -> bool:
        return self.microphone is not None

    def has_speech_recognition(self) -> bool:
        return self.recognition is not None

    def has_speech_synthesis(self) -> bool:
        return self.synthesis is not None
