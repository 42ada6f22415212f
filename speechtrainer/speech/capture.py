import asyncio
import logging
import time
import wave
from io import BytesIO
from typing import Callable, List, Optional

import torch
import torchaudio

from speechtrainer.api.schemas import AudioBlob, CaptureConstraints
from speechtrainer.constants.audio_properties import (
    AUDIO_MIME_TYPE,
    LEVEL_SAMPLE_INTERVAL_SECONDS,
    MONO_CHANNEL,
    SAMPLE_WIDTH_BYTES,
    SAMPLING_RATE,
)
from speechtrainer.core.errors import InvalidStateError, UnsupportedError
from speechtrainer.core.platform import MicrophoneStream, PlatformCapabilities

logger = logging.getLogger(__name__)

LevelCallback = Callable[[float], None]


class CaptureHandle:
    def __init__(self, constraints: CaptureConstraints, clock: Callable[[], float]):
        self.constraints = constraints
        self.stream: Optional[MicrophoneStream] = None
        self.frames: List[torch.Tensor] = []
        self.level = 0.0
        self.active = False
        self.paused = False
        self.meter: Optional[asyncio.Task] = None
        self._clock = clock
        self._started_at = 0.0
        self._paused_at = 0.0
        self._paused_total = 0.0

    def on_frame(self, frame: torch.Tensor) -> None:
        if not self.active or self.paused:
            return
        frame = frame.detach().to(torch.float32)
        if frame.dim() == 1:
            frame = frame.unsqueeze(0)
        self.frames.append(frame)
        self.level = frame_level(frame)

    def mark_started(self) -> None:
        self.active = True
        self._started_at = self._clock()

    def mark_paused(self) -> None:
        self.paused = True
        self.level = 0.0
        self._paused_at = self._clock()

    def mark_resumed(self) -> None:
        self.paused = False
        self._paused_total += self._clock() - self._paused_at

    def elapsed(self) -> float:
        end = self._paused_at if self.paused else self._clock()
        return max(0.0, end - self._started_at - self._paused_total)


class AudioCapture:
    """
    Records one microphone stream at a time and turns it into a PCM16 WAV blob.

    While a handle is active the latest frame's RMS amplitude is published to
    ``on_level`` every ``level_interval`` seconds.
    """

    def __init__(
        self,
        platform: PlatformCapabilities,
        level_interval: float = LEVEL_SAMPLE_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._platform = platform
        self._level_interval = level_interval
        self._clock = clock
        self._handle: Optional[CaptureHandle] = None

    @property
    def active_handle(self) -> Optional[CaptureHandle]:
        return self._handle

    async def start(
        self,
        constraints: Optional[CaptureConstraints] = None,
        on_level: Optional[LevelCallback] = None,
    ) -> CaptureHandle:
        if not self._platform.has_microphone():
            raise UnsupportedError("Audio recording is not supported on this platform.")
        if self._handle is not None:
            raise InvalidStateError("An audio capture stream is already open.")

        constraints = constraints or CaptureConstraints()
        handle = CaptureHandle(constraints, self._clock)
        self._handle = handle

        try:
            handle.stream = await self._platform.microphone.open(constraints, handle.on_frame)
        except Exception as e:
            self._handle = None
            logger.error(f"Failed to open microphone: {e}")
            raise

        handle.mark_started()
        if on_level is not None:
            handle.meter = asyncio.get_running_loop().create_task(
                self._meter(handle, on_level)
            )
        logger.info(f"Audio capture started at {handle.stream.sample_rate} Hz")
        return handle

    def pause(self, handle: CaptureHandle) -> None:
        self._check_active(handle)
        if handle.paused:
            raise InvalidStateError("Cannot pause: capture is not recording.")
        handle.stream.pause()
        handle.mark_paused()

    def resume(self, handle: CaptureHandle) -> None:
        self._check_active(handle)
        if not handle.paused:
            raise InvalidStateError("Cannot resume: capture is not paused.")
        handle.stream.resume()
        handle.mark_resumed()

    def stop(self, handle: CaptureHandle) -> AudioBlob:
        self._check_active(handle)
        duration = handle.elapsed()
        handle.active = False
        try:
            handle.stream.close()
        finally:
            if handle.meter is not None:
                handle.meter.cancel()
            self._handle = None
            logger.info("Audio capture stopped, microphone released")

        waveform = frames_to_waveform(handle.frames, handle.stream.sample_rate)
        return AudioBlob(
            data=encode_wav(waveform),
            mime_type=AUDIO_MIME_TYPE,
            sample_rate=SAMPLING_RATE,
            channels=MONO_CHANNEL,
            duration_seconds=duration,
        )

    def _check_active(self, handle: CaptureHandle) -> None:
        if handle is not self._handle or not handle.active:
            raise InvalidStateError("Capture handle is not active.")

    async def _meter(self, handle: CaptureHandle, on_level: LevelCallback) -> None:
        while handle.active:
            await asyncio.sleep(self._level_interval)
            if handle.active:
                on_level(handle.level)


def frame_level(frame: torch.Tensor) -> float:
    if frame.numel() == 0:
        return 0.0
    rms = torch.sqrt(torch.mean(frame ** 2))
    return float(rms.clamp(0.0, 1.0))


def frames_to_waveform(
    frames: List[torch.Tensor], sample_rate: int, target_rate: int = SAMPLING_RATE
) -> torch.Tensor:
    """Joins captured frames into a mono tensor at ``target_rate``."""
    if not frames:
        return torch.zeros((MONO_CHANNEL, 0))

    waveform = torch.cat(frames, dim=1)
    if waveform.shape[0] > MONO_CHANNEL:
        waveform = torch.mean(waveform, dim=0, keepdim=True)

    if sample_rate != target_rate and waveform.shape[1] > 0:
        resampler = torchaudio.transforms.Resample(orig_freq=sample_rate, new_freq=target_rate)
        waveform = resampler(waveform)

    return waveform


def encode_wav(waveform: torch.Tensor, sample_rate: int = SAMPLING_RATE) -> bytes:
    pcm = (waveform.clamp(-1.0, 1.0) * 32767).to(torch.int16)
    buffer = BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(MONO_CHANNEL)
        wav_file.setsampwidth(SAMPLE_WIDTH_BYTES)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm.reshape(-1).numpy().tobytes())
    return buffer.getvalue()
