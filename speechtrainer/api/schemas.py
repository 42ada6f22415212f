from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from speechtrainer.constants.audio_properties import (
    AUDIO_MIME_TYPE,
    MONO_CHANNEL,
    SAMPLING_RATE,
)


class Level(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FeedbackLabel(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    NEEDS_IMPROVEMENT = "Needs improvement"
    TRY_AGAIN = "Try again"
    PERFECT = "Perfect"
    MISSING = "Word not spoken"
    EXTRA = "Extra word"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"


class RecordingStatus(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


class _Payload(BaseModel):
    # The remote endpoint speaks camelCase.
    model_config = ConfigDict(populate_by_name=True)


class TargetPhrase(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    language: str = "en-US"


class WordScore(_Payload):
    index: int
    original: str = ""
    spoken: str = ""
    accuracy_percent: int = Field(alias="accuracy", ge=0, le=100)
    feedback: FeedbackLabel
    difficulty: Difficulty = Difficulty.MEDIUM


class FluencyAnalysis(_Payload):
    word_count: int = Field(0, alias="wordRate")
    hesitation_count: int = Field(0, alias="hesitations")
    repetition_count: int = Field(0, alias="repetitions")
    filler_count: int = Field(0, alias="fillers")
    naturalness: float = Field(1.0, ge=0.0, le=1.0)


class CommonError(_Payload):
    type: str
    description: str
    severity: Level = Level.MEDIUM
    examples: List[str] = []


class Improvement(_Payload):
    type: str = "general"
    priority: Level
    suggestion: str
    exercises: List[str] = []


class PronunciationAnalysis(_Payload):
    overall_score_percent: int = Field(alias="overallScore", ge=0, le=100)
    words: List[WordScore] = Field([], alias="wordAnalysis")
    fluency: FluencyAnalysis = Field(default_factory=FluencyAnalysis, alias="fluencyAnalysis")
    common_errors: List[CommonError] = Field([], alias="commonErrors")
    improvements: List[Improvement] = []
    difficult_phonemes: List[str] = Field([], alias="difficultPhonemes")

    @field_validator("words", mode="before")
    @classmethod
    def number_words(cls, value):
        if not isinstance(value, list):
            return value
        return [
            {"index": index, **item} if isinstance(item, dict) else item
            for index, item in enumerate(value)
        ]

    @model_validator(mode="before")
    @classmethod
    def suggestions_as_improvements(cls, data):
        if not isinstance(data, dict) or "improvements" in data:
            return data
        suggestions = data.get("suggestions")
        if not isinstance(suggestions, list):
            return data
        return {
            **data,
            "improvements": [
                {"priority": Level.MEDIUM, "suggestion": text}
                for text in suggestions
                if isinstance(text, str)
            ],
        }


class AudioBlob(BaseModel):
    data: bytes
    mime_type: str = AUDIO_MIME_TYPE
    sample_rate: int = SAMPLING_RATE
    channels: int = MONO_CHANNEL
    duration_seconds: float = 0.0


class RecordingState(BaseModel):
    status: RecordingStatus = RecordingStatus.IDLE
    elapsed_seconds: int = Field(0, ge=0)
    max_duration_seconds: int = Field(gt=0)
    audio_level: float = Field(0.0, ge=0.0, le=1.0)
    live_transcript: str = ""


class RecordingResult(BaseModel):
    audio: AudioBlob
    transcript: str
    elapsed_seconds: int


class CaptureConstraints(BaseModel):
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True
    sample_rate: int = SAMPLING_RATE
    channels: int = MONO_CHANNEL


class RecognitionConfig(BaseModel):
    language: str = "en-US"
    continuous: bool = False
    interim_results: bool = True
    max_alternatives: int = 3


class RecognitionAlternative(BaseModel):
    transcript: str
    confidence: float = 0.0


class RecognitionResult(BaseModel):
    transcript: str
    confidence: float = 0.0
    is_final: bool = False
    alternatives: List[RecognitionAlternative] = []


class VoiceDescriptor(BaseModel):
    name: str
    language_tag: str
    gender: Gender = Gender.UNKNOWN
    is_local: bool = False
    is_default: bool = False


class SpeechOptions(BaseModel):
    language: str = "en-US"
    rate: float = Field(1.0, ge=0.1, le=10.0)
    pitch: float = Field(1.0, ge=0.0, le=2.0)
    volume: float = Field(1.0, ge=0.0, le=1.0)
    voice_name: Optional[str] = None
    gender: Optional[Gender] = None


class BoundaryEvent(BaseModel):
    name: str = "word"
    char_index: int = 0
    char_length: int = 0
