import asyncio
import itertools
import logging
from typing import Callable, List, Optional

from speechtrainer.api.schemas import RecognitionConfig, RecognitionResult
from speechtrainer.constants.voices import SUPPORTED_LANGUAGES
from speechtrainer.core.errors import (
    InvalidStateError,
    RecognitionError,
    RecognitionErrorKind,
    UnsupportedError,
)
from speechtrainer.core.platform import PlatformCapabilities, RecognitionListener

logger = logging.getLogger(__name__)

_END = object()
_subscription_ids = itertools.count(1)


class RecognitionSubscription(RecognitionListener):
    """
    One listening session. Results are delivered in arrival order, both to
    ``on_result`` and to ``async for`` consumers. Finalized segments are kept;
    the interim hypothesis is replaced by each newer one.
    """

    def __init__(
        self,
        config: RecognitionConfig,
        on_result: Optional[Callable[[RecognitionResult], None]] = None,
        on_error: Optional[Callable[[RecognitionError], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[["RecognitionSubscription"], None]] = None,
    ):
        self.id = next(_subscription_ids)
        self.config = config
        self.active = True
        self.error: Optional[RecognitionError] = None
        self._on_result = on_result
        self._on_error = on_error
        self._on_end = on_end
        self._on_close = on_close
        self._finals: List[str] = []
        self._interim = ""
        self._confidence = 0.0
        self._queue: asyncio.Queue = asyncio.Queue()

    @property
    def transcript(self) -> str:
        return " ".join(part for part in self._finals + [self._interim] if part)

    @property
    def confidence(self) -> float:
        return self._confidence

    def on_results(self, results: List[RecognitionResult]) -> None:
        if not self.active:
            return
        for result in results:
            if result.is_final:
                self._finals.append(result.transcript.strip())
                self._interim = ""
            else:
                self._interim = result.transcript.strip()
            self._confidence = result.confidence
            self._queue.put_nowait(result)
            if self._on_result is not None:
                self._on_result(result)

    def on_error(self, code: str) -> None:
        if not self.active:
            return
        error = RecognitionError.from_code(code)
        logger.warning(f"Speech recognition error: {code} ({error.kind.name})")
        self.error = error
        # Queued ahead of the end marker so iterators raise it.
        self._queue.put_nowait(error)
        self._close()
        if self._on_error is not None:
            self._on_error(error)

    def on_end(self) -> None:
        if not self.active:
            return
        logger.info("Speech recognition ended")
        self._close()
        if self._on_end is not None:
            self._on_end()

    def detach(self) -> None:
        """Stops delivering events; later engine callbacks are ignored."""
        if self.active:
            self._close()

    def _close(self) -> None:
        self.active = False
        self._queue.put_nowait(_END)
        if self._on_close is not None:
            self._on_close(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> RecognitionResult:
        item = await self._queue.get()
        if item is _END:
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        if isinstance(item, RecognitionError):
            raise item
        return item


class SpeechRecognizer:
    """
    Wraps a recognition engine. Only one subscription may listen at a time;
    starting another while one is active raises InvalidStateError.
    """

    def __init__(self, platform: PlatformCapabilities):
        self._platform = platform
        self._subscription: Optional[RecognitionSubscription] = None

    @property
    def is_listening(self) -> bool:
        return self._subscription is not None

    async def start_listening(
        self,
        config: Optional[RecognitionConfig] = None,
        on_result: Optional[Callable[[RecognitionResult], None]] = None,
        on_error: Optional[Callable[[RecognitionError], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
    ) -> RecognitionSubscription:
        if not self._platform.has_speech_recognition():
            raise UnsupportedError("Speech recognition is not supported on this platform.")
        if self._subscription is not None:
            raise InvalidStateError("Speech recognition is already active.")

        config = config or RecognitionConfig()
        subscription = RecognitionSubscription(
            config, on_result, on_error, on_end, on_close=self._release
        )
        self._subscription = subscription

        try:
            await self._platform.recognition.start(config, subscription)
        except Exception as e:
            self._subscription = None
            subscription.active = False
            logger.error(f"Failed to start speech recognition: {e}")
            raise

        logger.info(f"Speech recognition started ({config.language})")
        return subscription

    def stop_listening(self, subscription: RecognitionSubscription) -> None:
        if not subscription.active:
            return
        subscription.detach()
        self._platform.recognition.stop()

    def abort_listening(self, subscription: RecognitionSubscription) -> None:
        if not subscription.active:
            return
        subscription.detach()
        self._platform.recognition.abort()

    async def recognize_once(
        self, language: str = "en-US", timeout: float = 10.0
    ) -> RecognitionResult:
        """Listens for a single final result."""
        config = RecognitionConfig(language=language, continuous=False, interim_results=False)
        subscription = await self.start_listening(config)
        try:
            return await asyncio.wait_for(self._first_final(subscription), timeout)
        except asyncio.TimeoutError:
            raise RecognitionError(
                RecognitionErrorKind.NO_SPEECH, "Recognition test timed out"
            )
        finally:
            self.stop_listening(subscription)

    def destroy(self) -> None:
        if self._subscription is not None:
            self.abort_listening(self._subscription)

    @staticmethod
    def supported_languages() -> List[dict]:
        return list(SUPPORTED_LANGUAGES)

    @staticmethod
    async def _first_final(subscription: RecognitionSubscription) -> RecognitionResult:
        async for result in subscription:
            if result.is_final:
                return result
        raise RecognitionError(RecognitionErrorKind.NO_SPEECH)

    def _release(self, subscription: RecognitionSubscription) -> None:
        if self._subscription is subscription:
            self._subscription = None
