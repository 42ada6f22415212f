from enum import Enum
from typing import Optional


class SpeechTrainerError(Exception):
    """Base class for every error raised by speechtrainer."""


class InvalidStateError(SpeechTrainerError):
    """An operation was called out of sequence."""


class UnsupportedError(SpeechTrainerError):
    """The platform lacks the capability an operation needs."""


class PermissionDeniedError(SpeechTrainerError):
    pass


class DeviceUnavailableError(SpeechTrainerError):
    pass


class RecognitionErrorKind(str, Enum):
    NO_SPEECH = "no-speech"
    AUDIO_CAPTURE_FAILED = "audio-capture"
    PERMISSION_DENIED = "not-allowed"
    NETWORK = "network"
    LANGUAGE_NOT_SUPPORTED = "language-not-supported"
    ABORTED = "aborted"
    UNKNOWN = "unknown"


_RECOGNITION_CODES = {
    "no-speech": RecognitionErrorKind.NO_SPEECH,
    "audio-capture": RecognitionErrorKind.AUDIO_CAPTURE_FAILED,
    "not-allowed": RecognitionErrorKind.PERMISSION_DENIED,
    "service-not-allowed": RecognitionErrorKind.PERMISSION_DENIED,
    "network": RecognitionErrorKind.NETWORK,
    "language-not-supported": RecognitionErrorKind.LANGUAGE_NOT_SUPPORTED,
    "aborted": RecognitionErrorKind.ABORTED,
}

_RECOGNITION_MESSAGES = {
    RecognitionErrorKind.NO_SPEECH: "No speech was detected. Please try again.",
    RecognitionErrorKind.AUDIO_CAPTURE_FAILED: "Audio capture failed. Please check your microphone.",
    RecognitionErrorKind.PERMISSION_DENIED: "Microphone access was denied. Please allow microphone access.",
    RecognitionErrorKind.NETWORK: "Network error occurred. Please check your connection.",
    RecognitionErrorKind.LANGUAGE_NOT_SUPPORTED: "Language is not supported.",
    RecognitionErrorKind.ABORTED: "Speech recognition was aborted.",
    RecognitionErrorKind.UNKNOWN: "An unknown error occurred during speech recognition.",
}


class RecognitionError(SpeechTrainerError):
    def __init__(self, kind: RecognitionErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or _RECOGNITION_MESSAGES[kind]
        super().__init__(self.message)

    @classmethod
    def from_code(cls, code: str) -> "RecognitionError":
        return cls(_RECOGNITION_CODES.get(code, RecognitionErrorKind.UNKNOWN))

    @property
    def recoverable(self) -> bool:
        return self.kind in (
            RecognitionErrorKind.NO_SPEECH,
            RecognitionErrorKind.NETWORK,
            RecognitionErrorKind.ABORTED,
        )


class SynthesisError(SpeechTrainerError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Speech synthesis failed: {code}")


class NetworkError(SpeechTrainerError):
    pass


class ApiError(SpeechTrainerError):
    def __init__(self, status_code: Optional[int], message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)
