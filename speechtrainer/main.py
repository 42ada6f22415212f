import logging
from typing import Optional

from speechtrainer.api.client import ApiClient, PronunciationApi
from speechtrainer.constants.environmental_variables import (
    API_BASE_URL,
    RECOGNITION_MODEL_PATH,
    REQUEST_TIMEOUT_SECONDS,
)
from speechtrainer.core.logging import setup_logging
from speechtrainer.core.platform import PlatformCapabilities, SynthesisEngine

setup_logging()

logger = logging.getLogger(__name__)


def create_platform(
    model_path: str = RECOGNITION_MODEL_PATH,
    synthesis: Optional[SynthesisEngine] = None,
    with_recognition: bool = True,
) -> PlatformCapabilities:
    """Wires the PortAudio microphone and, optionally, the Wav2Vec2 recognizer."""
    from speechtrainer.engines.microphone import SoundDeviceMicrophone
    from speechtrainer.engines.wav2vec2 import Wav2Vec2RecognitionEngine, load_model_and_processor

    microphone = SoundDeviceMicrophone()
    recognition = None
    if with_recognition:
        model, processor = load_model_and_processor(model_path)
        recognition = Wav2Vec2RecognitionEngine(model, processor, SoundDeviceMicrophone())
        logger.info("Speech recognition engine ready.")

    return PlatformCapabilities(microphone=microphone, recognition=recognition, synthesis=synthesis)


def create_api(
    base_url: str = API_BASE_URL,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
    token: Optional[str] = None,
) -> PronunciationApi:
    return PronunciationApi(ApiClient(base_url=base_url, timeout=timeout, token=token))


def create_transcriber(platform: PlatformCapabilities):
    """Offline transcription of finished recordings, when the engine supports it."""
    engine = platform.recognition
    if engine is None or not hasattr(engine, "transcribe_audio_bytes"):
        return None
    return lambda audio_bytes: engine.transcribe_audio_bytes(audio_bytes).transcript
