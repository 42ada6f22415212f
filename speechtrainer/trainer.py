"""
Listen / practice / record / results flow for a single target phrase.

The flow owns its synthesizer, recognizer and capture instances. Recording
results are scored locally straight away; when a remote scoring API is
configured its verdict replaces the local one once it arrives, and a failed
remote call only leaves a notice behind.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from speechtrainer.api.client import PronunciationApi
from speechtrainer.api.schemas import (
    PronunciationAnalysis,
    RecordingResult,
    RecordingState,
    RecordingStatus,
    SpeechOptions,
    TargetPhrase,
)
from speechtrainer.constants.audio_properties import MAX_RECORDING_SECONDS, TIMER_TICK_SECONDS
from speechtrainer.core.errors import ApiError, InvalidStateError, NetworkError
from speechtrainer.core.platform import PlatformCapabilities
from speechtrainer.scoring.scorer import PronunciationScorer, merge_remote
from speechtrainer.speech.capture import AudioCapture
from speechtrainer.speech.recognizer import SpeechRecognizer
from speechtrainer.speech.session import RecordingSession
from speechtrainer.speech.synthesizer import SpeechSynthesizer

logger = logging.getLogger(__name__)

WORD_BY_WORD_DELAY_SECONDS = 1.5


class TrainerMode(str, Enum):
    LISTEN = "listen"
    PRACTICE = "practice"
    RECORD = "record"
    RESULTS = "results"


class TrainerResults(BaseModel):
    recording: RecordingResult
    analysis: PronunciationAnalysis
    source: str = "local"
    notice: Optional[str] = None


class PronunciationTrainerFlow:
    def __init__(
        self,
        phrase: TargetPhrase,
        platform: PlatformCapabilities,
        api: Optional[PronunciationApi] = None,
        scorer: Optional[PronunciationScorer] = None,
        transcriber: Optional[Callable[[bytes], str]] = None,
        max_duration_seconds: int = MAX_RECORDING_SECONDS,
        tick_interval: float = TIMER_TICK_SECONDS,
        playback_rate: float = 1.0,
        on_mode_change: Optional[Callable[["TrainerMode"], None]] = None,
        on_highlight: Optional[Callable[[int], None]] = None,
        on_recording_state: Optional[Callable[[RecordingState], None]] = None,
        on_score: Optional[Callable[[PronunciationAnalysis], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.phrase = phrase
        self.platform = platform
        self.api = api
        self.scorer = scorer or PronunciationScorer()
        self.transcriber = transcriber
        self.max_duration_seconds = max_duration_seconds
        self.tick_interval = tick_interval
        self.playback_rate = playback_rate

        self.synthesizer = SpeechSynthesizer(platform)
        self.recognizer = SpeechRecognizer(platform)
        self.capture = AudioCapture(platform)

        self._on_mode_change = on_mode_change
        self._on_highlight = on_highlight
        self._on_recording_state = on_recording_state
        self._on_score = on_score
        self._on_error = on_error

        self.mode = TrainerMode.LISTEN
        self.highlighted_word = -1
        self.session: Optional[RecordingSession] = None
        self.results: Optional[TrainerResults] = None
        self.notice: Optional[str] = None
        self.scoring = False
        self._completion: Optional[asyncio.Task] = None
        self._destroyed = False

    @property
    def words(self):
        return self.phrase.text.split()

    def listen(self) -> None:
        self._enter_listen()
        self.synthesizer.speak(
            self.phrase.text,
            self._speech_options(),
            on_start=lambda: self._highlight(0),
            on_end=lambda: self._highlight(-1),
        )

    def listen_slowly(self) -> None:
        self._enter_listen()
        self.synthesizer.speak_slowly(
            self.phrase.text,
            self._speech_options(),
            on_start=lambda: self._highlight(0),
            on_end=lambda: self._highlight(-1),
        )

    def listen_word_by_word(self, word_delay: float = WORD_BY_WORD_DELAY_SECONDS) -> asyncio.Task:
        self._enter_listen()
        return self.synthesizer.speak_word_by_word(
            self.phrase.text,
            self._speech_options(),
            word_delay=word_delay,
            on_word_start=lambda word, index: self._highlight(index),
            on_word_end=lambda word, index: self._highlight(-1),
            on_complete=lambda: self._highlight(-1),
        )

    def start_practice(self) -> None:
        if self.mode == TrainerMode.RECORD:
            raise InvalidStateError("Stop the current recording before starting over.")
        self.synthesizer.stop()
        self._discard_session()
        self.results = None
        self.notice = None
        self._set_mode(TrainerMode.PRACTICE)

    async def start_recording(self) -> RecordingSession:
        if self.mode != TrainerMode.PRACTICE:
            raise InvalidStateError(f"Recording can only start from practice, not {self.mode.value}.")
        if self.session is not None and self.session.status != RecordingStatus.STOPPED:
            raise InvalidStateError("A recording is already in progress.")

        self.synthesizer.stop()
        session = RecordingSession(
            self.capture,
            self.recognizer if self.platform.has_speech_recognition() else None,
            language=self.phrase.language,
            max_duration_seconds=self.max_duration_seconds,
            tick_interval=self.tick_interval,
            on_state_change=self._on_recording_state,
            on_error=self._report,
            on_complete=self._recording_complete,
        )
        self.session = session
        self._set_mode(TrainerMode.RECORD)

        try:
            await session.begin()
        except Exception as e:
            logger.error(f"Could not start recording: {e}")
            self.session = None
            self._set_mode(TrainerMode.PRACTICE)
            raise
        return session

    def pause_recording(self) -> None:
        self._active_session().pause()

    def resume_recording(self) -> None:
        self._active_session().resume()

    def stop_recording(self) -> RecordingResult:
        session = self._active_session()
        try:
            return session.end()
        except Exception:
            self._recording_failed()
            raise

    async def wait_for_results(self) -> TrainerResults:
        if self.session is None:
            raise InvalidStateError("No recording to wait for.")
        try:
            await self.session.wait()
        except Exception:
            self._recording_failed()
            raise
        if self._completion is not None:
            await self._completion
        return self.results

    def try_again(self) -> None:
        if self.mode != TrainerMode.RESULTS:
            raise InvalidStateError("Try again is only available from results.")
        self.start_practice()

    def listen_again(self) -> None:
        if self.mode != TrainerMode.RESULTS:
            raise InvalidStateError("Listen again is only available from results.")
        self._discard_session()
        self.listen()

    def back_to_listen(self) -> None:
        if self.mode != TrainerMode.PRACTICE:
            raise InvalidStateError("Back to listen is only available from practice.")
        self._set_mode(TrainerMode.LISTEN)

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self.synthesizer.stop()
        if self.session is not None and self.session.status in (
            RecordingStatus.RECORDING,
            RecordingStatus.PAUSED,
        ):
            try:
                self.session.end()
            except Exception as e:
                logger.error(f"Failed to stop recording during teardown: {e}")
        if self._completion is not None and not self._completion.done():
            self._completion.cancel()
        self.recognizer.destroy()
        logger.info("Trainer destroyed")

    def _recording_complete(self, recording: RecordingResult) -> None:
        self._set_mode(TrainerMode.RESULTS)
        self._completion = asyncio.get_running_loop().create_task(self._score(recording))

    async def _score(self, recording: RecordingResult) -> None:
        self.scoring = True
        try:
            if not recording.transcript and self.transcriber is not None:
                recording = await self._transcribe(recording)

            local = self.scorer.score(self.phrase.text, recording.transcript, self.phrase.language)
            self.results = TrainerResults(recording=recording, analysis=local)
            self._publish_score()

            if self.api is not None:
                await self._score_remotely(recording, local)
        finally:
            self.scoring = False

    async def _score_remotely(self, recording: RecordingResult, local: PronunciationAnalysis) -> None:
        try:
            remote = await self.api.analyze_pronunciation(
                self.phrase.text, recording.transcript, self.phrase.language
            )
        except (ApiError, NetworkError) as e:
            logger.warning(f"Remote scoring failed, keeping local result: {e}")
            self._keep_local(e)
        except Exception as e:
            logger.error(f"Unexpected error from remote scoring: {e}", exc_info=True)
            self._keep_local(e)
        else:
            self.results = TrainerResults(
                recording=recording, analysis=merge_remote(remote, local), source="remote"
            )
            self._publish_score()

    def _keep_local(self, error: Exception) -> None:
        self.notice = f"Detailed scoring is unavailable right now: {error}"
        self.results.notice = self.notice
        self._report(error)

    def _publish_score(self) -> None:
        if self._on_score is not None:
            self._on_score(self.results.analysis)

    async def _transcribe(self, recording: RecordingResult) -> RecordingResult:
        try:
            transcript = await run_in_threadpool(self.transcriber, recording.audio.data)
        except Exception as e:
            logger.error(f"Transcription of the recording failed: {e}", exc_info=True)
            self._report(e)
            return recording
        return recording.model_copy(update={"transcript": transcript})

    def _recording_failed(self) -> None:
        if self.mode == TrainerMode.RECORD:
            self.session = None
            self._set_mode(TrainerMode.PRACTICE)

    def _active_session(self) -> RecordingSession:
        if self.mode != TrainerMode.RECORD or self.session is None:
            raise InvalidStateError("No recording in progress.")
        return self.session

    def _discard_session(self) -> None:
        if self._completion is not None and not self._completion.done():
            self._completion.cancel()
        self._completion = None
        self.session = None

    def _enter_listen(self) -> None:
        if self.mode == TrainerMode.RECORD:
            raise InvalidStateError("Cannot play the phrase while recording.")
        self._set_mode(TrainerMode.LISTEN)

    def _speech_options(self) -> SpeechOptions:
        return SpeechOptions(language=self.phrase.language, rate=self.playback_rate)

    def _highlight(self, index: int) -> None:
        self.highlighted_word = index
        if self._on_highlight is not None:
            self._on_highlight(index)

    def _set_mode(self, mode: TrainerMode) -> None:
        if mode != self.mode:
            logger.debug(f"Trainer mode {self.mode.value} -> {mode.value}")
        self.mode = mode
        if self._on_mode_change is not None:
            self._on_mode_change(mode)

    def _report(self, error: Exception) -> None:
        if self._on_error is not None:
            self._on_error(error)
