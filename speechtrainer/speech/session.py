import asyncio
import logging
from typing import Callable, Optional

from speechtrainer.api.schemas import (
    RecognitionConfig,
    RecognitionResult,
    RecordingResult,
    RecordingState,
    RecordingStatus,
)
from speechtrainer.constants.audio_properties import MAX_RECORDING_SECONDS, TIMER_TICK_SECONDS
from speechtrainer.core.errors import InvalidStateError, RecognitionError
from speechtrainer.speech.capture import AudioCapture, CaptureHandle
from speechtrainer.speech.recognizer import RecognitionSubscription, SpeechRecognizer

logger = logging.getLogger(__name__)


class RecordingSession:
    """
    One recording attempt: idle -> recording <-> paused -> stopped.

    Audio capture and live recognition run side by side; the session
    finalizes exactly once, either through ``end()`` or when the timer
    reaches ``max_duration_seconds``. A stopped session cannot be restarted.
    """

    def __init__(
        self,
        capture: AudioCapture,
        recognizer: Optional[SpeechRecognizer] = None,
        language: str = "en-US",
        max_duration_seconds: int = MAX_RECORDING_SECONDS,
        transcribe: bool = True,
        tick_interval: float = TIMER_TICK_SECONDS,
        on_state_change: Optional[Callable[[RecordingState], None]] = None,
        on_transcript: Optional[Callable[[str, float], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_complete: Optional[Callable[[RecordingResult], None]] = None,
    ):
        self._capture = capture
        self._recognizer = recognizer
        self._language = language
        self._transcribe = transcribe and recognizer is not None
        self._tick_interval = tick_interval
        self._on_state_change = on_state_change
        self._on_transcript = on_transcript
        self._on_error = on_error
        self._on_complete = on_complete

        self._state = RecordingState(max_duration_seconds=max_duration_seconds)
        self._starting = False
        self._capture_handle: Optional[CaptureHandle] = None
        self._subscription: Optional[RecognitionSubscription] = None
        self._timer: Optional[asyncio.Task] = None
        self._result: Optional[RecordingResult] = None
        self._error: Optional[BaseException] = None
        self._done = asyncio.Event()

    @property
    def state(self) -> RecordingState:
        return self._state.model_copy()

    @property
    def status(self) -> RecordingStatus:
        return self._state.status

    @property
    def result(self) -> Optional[RecordingResult]:
        return self._result

    async def begin(self) -> None:
        if self._state.status != RecordingStatus.IDLE or self._starting:
            raise InvalidStateError(f"Cannot begin a session that is {self._state.status.value}.")
        self._starting = True

        starters = [self._capture.start(on_level=self._on_level)]
        if self._transcribe:
            config = RecognitionConfig(
                language=self._language, continuous=True, interim_results=True
            )
            starters.append(
                self._recognizer.start_listening(
                    config, on_result=self._on_result, on_error=self._on_recognition_error
                )
            )

        outcomes = await asyncio.gather(*starters, return_exceptions=True)
        self._starting = False

        failures = [o for o in outcomes if isinstance(o, BaseException)]
        if failures:
            self._abandon(outcomes)
            raise failures[0]

        self._capture_handle = outcomes[0]
        if self._transcribe:
            self._subscription = outcomes[1]

        self._state.status = RecordingStatus.RECORDING
        self._start_timer()
        logger.info(f"Recording started (max {self._state.max_duration_seconds}s)")
        self._notify()

    def pause(self) -> None:
        if self._state.status != RecordingStatus.RECORDING:
            raise InvalidStateError(f"Cannot pause a session that is {self._state.status.value}.")
        self._capture.pause(self._capture_handle)
        self._stop_timer()
        self._state.status = RecordingStatus.PAUSED
        self._state.audio_level = 0.0
        self._notify()

    def resume(self) -> None:
        if self._state.status != RecordingStatus.PAUSED:
            raise InvalidStateError(f"Cannot resume a session that is {self._state.status.value}.")
        self._capture.resume(self._capture_handle)
        self._state.status = RecordingStatus.RECORDING
        self._start_timer()
        self._notify()

    def end(self) -> RecordingResult:
        if self._state.status not in (RecordingStatus.RECORDING, RecordingStatus.PAUSED):
            raise InvalidStateError(f"Cannot end a session that is {self._state.status.value}.")
        self._finalize()
        if self._error is not None:
            raise self._error
        return self._result

    async def wait(self) -> RecordingResult:
        await self._done.wait()
        if self._error is not None:
            raise self._error
        return self._result

    def _finalize(self) -> None:
        self._state.status = RecordingStatus.STOPPED
        self._state.audio_level = 0.0
        self._stop_timer()

        try:
            audio = self._capture.stop(self._capture_handle)
        except Exception as e:
            logger.error(f"Failed to stop audio capture: {e}")
            self._error = e
            self._done.set()
            self._notify()
            if self._on_error is not None:
                self._on_error(e)
            return
        finally:
            if self._subscription is not None:
                self._recognizer.stop_listening(self._subscription)

        self._result = RecordingResult(
            audio=audio,
            transcript=self._state.live_transcript,
            elapsed_seconds=self._state.elapsed_seconds,
        )
        logger.info(f"Recording finished after {self._state.elapsed_seconds}s")
        self._done.set()
        self._notify()
        if self._on_complete is not None:
            self._on_complete(self._result)

    def _abandon(self, outcomes) -> None:
        for outcome in outcomes:
            if isinstance(outcome, CaptureHandle):
                self._capture.stop(outcome)
            elif isinstance(outcome, RecognitionSubscription):
                self._recognizer.stop_listening(outcome)

        self._state.status = RecordingStatus.STOPPED
        self._error = next(o for o in outcomes if isinstance(o, BaseException))
        self._done.set()
        self._notify()

    def _start_timer(self) -> None:
        self._timer = asyncio.get_running_loop().create_task(self._run_timer())

    def _stop_timer(self) -> None:
        if self._timer is not None and self._timer is not asyncio.current_task():
            self._timer.cancel()
        self._timer = None

    async def _run_timer(self) -> None:
        """Counts whole seconds of recording; a pause discards the partial tick."""
        while self._state.status == RecordingStatus.RECORDING:
            await asyncio.sleep(self._tick_interval)
            if self._state.status != RecordingStatus.RECORDING:
                return

            self._state.elapsed_seconds += 1
            self._notify()
            if self._state.elapsed_seconds >= self._state.max_duration_seconds:
                logger.info("Maximum recording duration reached, stopping")
                self._finalize()
                return

    def _on_level(self, level: float) -> None:
        if self._state.status == RecordingStatus.RECORDING:
            self._state.audio_level = level
            self._notify()

    def _on_result(self, result: RecognitionResult) -> None:
        if self._subscription is None and not self._starting:
            return
        transcript = (
            self._subscription.transcript if self._subscription is not None else result.transcript
        )
        self._state.live_transcript = transcript
        if self._on_transcript is not None:
            self._on_transcript(transcript, result.confidence)
        self._notify()

    def _on_recognition_error(self, error: RecognitionError) -> None:
        logger.warning(f"Live transcription interrupted: {error.message}")
        if self._on_error is not None:
            self._on_error(error)

    def _notify(self) -> None:
        if self._on_state_change is not None:
            self._on_state_change(self.state)
