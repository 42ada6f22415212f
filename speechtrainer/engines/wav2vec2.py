import asyncio
import logging
from io import BytesIO
from typing import List, Optional, Tuple

import torch
import torchaudio
from fastapi.concurrency import run_in_threadpool
from transformers import Wav2Vec2ForCTC, Wav2Vec2Processor

from speechtrainer.api.schemas import (
    CaptureConstraints,
    RecognitionAlternative,
    RecognitionConfig,
    RecognitionResult,
)
from speechtrainer.constants.audio_properties import MAX_AUDIO_DURATION_SECONDS, SAMPLING_RATE
from speechtrainer.constants.environmental_variables import RECOGNITION_LANGUAGES
from speechtrainer.core.errors import DeviceUnavailableError, PermissionDeniedError
from speechtrainer.core.platform import (
    MicrophoneBackend,
    MicrophoneStream,
    RecognitionEngine,
    RecognitionListener,
)
from speechtrainer.speech.capture import frames_to_waveform

logger = logging.getLogger(__name__)


def load_model_and_processor(model_repo_id: str):
    """Loads a CTC speech recognition model and its processor."""
    logger.info(f"Loading model: {model_repo_id}")
    model = Wav2Vec2ForCTC.from_pretrained(model_repo_id)
    processor = Wav2Vec2Processor.from_pretrained(model_repo_id)
    model.eval()
    return model, processor


def process_audio_bytes(audio_bytes: bytes) -> torch.Tensor:
    """Decodes a finished recording into the mono 16 kHz tensor the model expects."""
    waveform, sample_rate = torchaudio.load(BytesIO(audio_bytes))

    if waveform.shape[1] > MAX_AUDIO_DURATION_SECONDS * sample_rate:
        raise ValueError(f"Audio too long. Max {MAX_AUDIO_DURATION_SECONDS}s allowed.")

    return frames_to_waveform([waveform], sample_rate)


def run_model_inference(waveform, model, processor) -> Tuple[str, float]:
    """Greedy CTC decoding; confidence is the mean best-token probability."""
    device = model.device

    audio_input = waveform.squeeze(0)
    processed_audio = processor(
        audio_input, sampling_rate=SAMPLING_RATE, return_tensors="pt", padding=True
    )
    input_values = processed_audio.input_values.to(device)

    with torch.no_grad():
        logits = model(input_values).logits

    probabilities = torch.softmax(logits, dim=-1)
    best, predicted_ids = torch.max(probabilities, dim=-1)
    transcript = processor.batch_decode(predicted_ids.cpu())[0]
    return transcript.strip().lower(), float(best.mean())


class Wav2Vec2RecognitionEngine(RecognitionEngine):
    """
    Speech-to-text on a local Wav2Vec2 CTC model. The engine opens its own
    microphone stream and re-decodes the growing buffer every
    ``interim_interval`` seconds. In continuous mode each new hypothesis is
    an interim result; otherwise the first non-empty hypothesis is final and
    ends the session.
    """

    def __init__(
        self,
        model,
        processor,
        microphone: MicrophoneBackend,
        languages: Optional[List[str]] = None,
        interim_interval: float = 1.0,
    ):
        self.model = model
        self.processor = processor
        self.microphone = microphone
        self.languages = [l.lower() for l in (languages or RECOGNITION_LANGUAGES)]
        self.interim_interval = interim_interval
        self._listener: Optional[RecognitionListener] = None
        self._config: Optional[RecognitionConfig] = None
        self._stream: Optional[MicrophoneStream] = None
        self._frames: List[torch.Tensor] = []
        self._task: Optional[asyncio.Task] = None
        self._last_transcript = ""

    def supports(self, language: str) -> bool:
        return language.lower() in self.languages

    async def start(self, config: RecognitionConfig, listener: RecognitionListener) -> None:
        if not self.supports(config.language):
            listener.on_error("language-not-supported")
            return

        self._listener = listener
        self._config = config
        self._frames = []
        self._last_transcript = ""

        try:
            self._stream = await self.microphone.open(CaptureConstraints(), self._frames.append)
        except PermissionDeniedError:
            self._reset()
            listener.on_error("not-allowed")
            return
        except DeviceUnavailableError:
            self._reset()
            listener.on_error("audio-capture")
            return

        self._task = asyncio.get_running_loop().create_task(self._decode_loop())

    def stop(self) -> None:
        listener = self._listener
        self._shutdown()
        if listener is not None:
            listener.on_end()

    def abort(self) -> None:
        listener = self._listener
        self._shutdown()
        if listener is not None:
            listener.on_error("aborted")

    def transcribe_audio_bytes(self, audio_bytes: bytes) -> RecognitionResult:
        waveform = process_audio_bytes(audio_bytes)
        transcript, confidence = run_model_inference(waveform, self.model, self.processor)
        return _result(transcript, confidence, is_final=True)

    async def _decode_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interim_interval)
            if not self._frames:
                continue

            waveform = frames_to_waveform(list(self._frames), self._stream.sample_rate)
            try:
                transcript, confidence = await run_in_threadpool(
                    run_model_inference, waveform, self.model, self.processor
                )
            except Exception as e:
                logger.error(f"Inference failed: {e}", exc_info=True)
                listener = self._listener
                self._shutdown(cancel_task=False)
                listener.on_error("inference-failed")
                return

            if self._listener is None or not transcript or transcript == self._last_transcript:
                continue

            self._last_transcript = transcript
            final = not self._config.continuous
            self._listener.on_results([_result(transcript, confidence, is_final=final)])
            if final:
                listener = self._listener
                self._shutdown(cancel_task=False)
                listener.on_end()
                return

    def _shutdown(self, cancel_task: bool = True) -> None:
        if cancel_task and self._task is not None:
            self._task.cancel()
        if self._stream is not None:
            self._stream.close()
        self._reset()

    def _reset(self) -> None:
        self._task = None
        self._stream = None
        self._listener = None


def _result(transcript: str, confidence: float, is_final: bool) -> RecognitionResult:
    return RecognitionResult(
        transcript=transcript,
        confidence=confidence,
        is_final=is_final,
        alternatives=[RecognitionAlternative(transcript=transcript, confidence=confidence)],
    )
