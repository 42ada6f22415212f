import asyncio
import logging
from typing import Callable, Iterable, List, Optional

from speechtrainer.api.schemas import BoundaryEvent, Gender, SpeechOptions, VoiceDescriptor
from speechtrainer.constants.voices import (
    EMPHASIS_PAUSE_SECONDS,
    EMPHASIS_PITCH_FACTOR,
    EMPHASIS_RATE_FACTOR,
    FEMALE_INDICATORS,
    MALE_INDICATORS,
    PLAIN_PAUSE_SECONDS,
    SLOW_RATE,
    WORD_DELAY_SECONDS,
)
from speechtrainer.core.errors import SynthesisError, UnsupportedError
from speechtrainer.core.platform import PlatformCapabilities, Utterance
from speechtrainer.scoring.utils import language_code

logger = logging.getLogger(__name__)

WordCallback = Callable[[str, int], None]


class UtteranceHandle:
    """
    Caller-side view of one utterance. Once cancelled, no further callback
    fires and ``wait()`` resolves to False.
    """

    def __init__(
        self,
        utterance: Utterance,
        on_start: Optional[Callable[[], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[SynthesisError], None]] = None,
        on_boundary: Optional[Callable[[BoundaryEvent], None]] = None,
    ):
        self.utterance = utterance
        self.on_start = on_start
        self.on_end = on_end
        self.on_error = on_error
        self.on_boundary = on_boundary
        self.cancelled = False
        self.finished = False
        self._done = asyncio.get_running_loop().create_future()
        utterance.listeners.append(self)

    def started(self) -> None:
        if self.cancelled or self.finished:
            return
        if self.on_start is not None:
            self.on_start()

    def ended(self) -> None:
        if self.cancelled or self.finished:
            return
        self.finished = True
        self._done.set_result(True)
        if self.on_end is not None:
            self.on_end()

    def failed(self, code: str) -> None:
        if self.cancelled or self.finished:
            return
        self.finished = True
        error = SynthesisError(code)
        logger.error(f"Speech synthesis error: {code}")
        self._done.set_exception(error)
        # Retrieved here so an unobserved failure does not warn at shutdown.
        self._done.exception()
        if self.on_error is not None:
            self.on_error(error)

    def boundary(self, event: BoundaryEvent) -> None:
        if self.cancelled or self.finished:
            return
        if self.on_boundary is not None:
            self.on_boundary(event)

    def cancel(self) -> None:
        if self.cancelled or self.finished:
            return
        self.cancelled = True
        self._done.set_result(False)

    async def wait(self) -> bool:
        return await self._done


class SpeechSynthesizer:
    def __init__(self, platform: PlatformCapabilities):
        self._platform = platform
        self._current: Optional[UtteranceHandle] = None
        self._sequence: Optional[asyncio.Task] = None

    @property
    def supported(self) -> bool:
        return self._platform.has_speech_synthesis()

    @property
    def speaking(self) -> bool:
        return self.supported and self._platform.synthesis.speaking

    def voices(self) -> List[VoiceDescriptor]:
        if not self.supported:
            return []
        return [
            VoiceDescriptor(
                name=voice.name,
                language_tag=voice.lang,
                gender=detect_gender(voice.name),
                is_local=voice.local_service,
                is_default=voice.default,
            )
            for voice in self._platform.synthesis.get_voices()
        ]

    def voices_for_language(self, language: str) -> List[VoiceDescriptor]:
        code = language_code(language)
        return [v for v in self.voices() if v.language_tag.lower().startswith(code)]

    def get_recommended_voice(
        self, language: str, gender: Optional[Gender] = None
    ) -> Optional[VoiceDescriptor]:
        voices = self.voices_for_language(language)

        if gender is not None:
            matching = [v for v in voices if v.gender == gender]
            if matching:
                return next((v for v in matching if v.is_default), matching[0])

        default = next((v for v in voices if v.is_default), None)
        if default is not None:
            return default
        return voices[0] if voices else None

    def speak(
        self,
        text: str,
        options: Optional[SpeechOptions] = None,
        on_start: Optional[Callable[[], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[SynthesisError], None]] = None,
        on_boundary: Optional[Callable[[BoundaryEvent], None]] = None,
    ) -> UtteranceHandle:
        self._cancel_sequence()
        return self._speak(text, options, on_start, on_end, on_error, on_boundary)

    def speak_slowly(self, text: str, options: Optional[SpeechOptions] = None, **callbacks):
        options = (options or SpeechOptions()).model_copy(update={"rate": SLOW_RATE})
        return self.speak(text, options, **callbacks)

    def speak_word_by_word(
        self,
        text: str,
        options: Optional[SpeechOptions] = None,
        word_delay: float = WORD_DELAY_SECONDS,
        on_word_start: Optional[WordCallback] = None,
        on_word_end: Optional[WordCallback] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> asyncio.Task:
        """
        Speaks each whitespace-separated word in order, pausing ``word_delay``
        seconds between words. A word that fails to synthesize is logged and
        skipped; its ``on_word_end`` still fires so indices stay contiguous.
        """
        options = options or SpeechOptions()
        steps = [(word, options, word_delay) for word in text.split()]
        return self._start_sequence(steps, on_word_start, on_word_end, on_complete)

    def speak_with_emphasis(
        self,
        text: str,
        emphasized_words: Iterable[str],
        options: Optional[SpeechOptions] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> asyncio.Task:
        options = options or SpeechOptions()
        emphasized = {w.lower() for w in emphasized_words}
        stressed = options.model_copy(
            update={
                "rate": max(0.1, options.rate * EMPHASIS_RATE_FACTOR),
                "pitch": min(2.0, options.pitch * EMPHASIS_PITCH_FACTOR),
            }
        )

        steps = []
        for word in text.split():
            if word.lower() in emphasized:
                steps.append((word, stressed, EMPHASIS_PAUSE_SECONDS))
            else:
                steps.append((word, options, PLAIN_PAUSE_SECONDS))
        return self._start_sequence(steps, None, None, on_complete)

    def stop(self) -> None:
        self._cancel_sequence()
        self._cancel_current()

    def pause(self) -> None:
        if self.supported:
            self._platform.synthesis.pause()

    def resume(self) -> None:
        if self.supported:
            self._platform.synthesis.resume()

    def _speak(self, text, options, on_start=None, on_end=None, on_error=None, on_boundary=None):
        if not self.supported:
            raise UnsupportedError("Text-to-speech is not supported on this platform.")

        self._cancel_current()

        options = options or SpeechOptions()
        voice_name = options.voice_name
        if voice_name is None:
            voice = self.get_recommended_voice(options.language, options.gender)
            voice_name = voice.name if voice is not None else None
        elif not any(v.name == voice_name for v in self.voices()):
            logger.warning(f"Voice '{voice_name}' not found, using engine default")
            voice_name = None

        utterance = Utterance(text, options, voice_name)
        handle = UtteranceHandle(utterance, on_start, on_end, on_error, on_boundary)
        self._current = handle
        self._platform.synthesis.speak(utterance)
        return handle

    def _cancel_current(self) -> None:
        if self._current is not None:
            if not self._current.finished:
                self._current.cancel()
                self._platform.synthesis.cancel()
            self._current = None

    def _cancel_sequence(self) -> None:
        if self._sequence is not None and not self._sequence.done():
            self._sequence.cancel()
        self._sequence = None

    def _start_sequence(self, steps, on_word_start, on_word_end, on_complete) -> asyncio.Task:
        self.stop()
        task = asyncio.get_running_loop().create_task(
            self._run_sequence(steps, on_word_start, on_word_end, on_complete)
        )
        self._sequence = task
        return task

    async def _run_sequence(self, steps, on_word_start, on_word_end, on_complete) -> None:
        for index, (word, options, pause) in enumerate(steps):
            if on_word_start is not None:
                on_word_start(word, index)

            try:
                completed = await self._speak(word, options).wait()
            except SynthesisError as e:
                logger.warning(f"Skipping word {index} ('{word}'): {e}")
                completed = True
            if not completed:
                return

            if on_word_end is not None:
                on_word_end(word, index)
            if index < len(steps) - 1:
                await asyncio.sleep(pause)

        self._current = None
        if on_complete is not None:
            on_complete()


def detect_gender(voice_name: str) -> Gender:
    name = voice_name.lower()
    if any(indicator in name for indicator in FEMALE_INDICATORS):
        return Gender.FEMALE
    if any(indicator in name for indicator in MALE_INDICATORS):
        return Gender.MALE
    return Gender.UNKNOWN
