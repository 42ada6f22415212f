import logging
import time
from typing import Any, Dict, List, Optional

import requests
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from speechtrainer.api.schemas import PronunciationAnalysis, RecordingResult, TargetPhrase
from speechtrainer.constants.environmental_variables import (
    API_BASE_URL,
    REQUEST_TIMEOUT_SECONDS,
)
from speechtrainer.core.errors import ApiError, NetworkError

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 10.0

STATUS_MESSAGES = {
    400: "Bad request. Please check your input.",
    401: "Authentication required. Please sign in.",
    403: "Access denied. You don't have permission.",
    404: "Resource not found.",
    409: "Conflict. Resource already exists.",
    422: "Validation failed. Please check your input.",
    429: "Too many requests. Please try again later.",
    500: "Internal server error. Please try again later.",
    502: "Service temporarily unavailable. Please try again later.",
    503: "Service maintenance in progress. Please try again later.",
}


class ApiClient:
    """Blocking JSON/multipart client for the learning platform's REST API."""

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        token: Optional[str] = None,
        max_retries: int = 3,
        session: Optional[requests.Session] = None,
        sleep=time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.session = session or requests.Session()
        self._sleep = sleep
        self.set_token(token)

    def set_token(self, token: Optional[str]) -> None:
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        else:
            self.session.headers.pop("Authorization", None)

    def request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        params = dict(kwargs.pop("params", None) or {})
        params["_t"] = int(time.time() * 1000)

        last_error: Exception = NetworkError("Unable to connect to server. Please try again later.")
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.request(
                    method, url, params=params, timeout=self.timeout, **kwargs
                )
            except requests.Timeout:
                last_error = NetworkError(
                    "Request timeout. Please check your connection and try again."
                )
            except requests.ConnectionError:
                last_error = NetworkError("Network error. Please check your internet connection.")
            except requests.RequestException as e:
                last_error = NetworkError(f"Request failed: {e}")
            else:
                if response.status_code < 400:
                    return self._json(response)
                last_error = self._api_error(response)
                if response.status_code < 500 and response.status_code != 429:
                    break

            logger.warning(f"{method} {path} failed (attempt {attempt}/{self.max_retries}): {last_error}")
            if attempt < self.max_retries:
                self._sleep(min(2 ** (attempt - 1), MAX_BACKOFF_SECONDS))

        raise last_error

    async def get(self, path: str, params: Optional[dict] = None) -> Dict[str, Any]:
        return await run_in_threadpool(self.request, "GET", path, params=params)

    async def post(self, path: str, json: Optional[dict] = None, **kwargs) -> Dict[str, Any]:
        return await run_in_threadpool(self.request, "POST", path, json=json, **kwargs)

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError:
            raise ApiError(response.status_code, "Invalid response from server.")

    @staticmethod
    def _api_error(response: requests.Response) -> ApiError:
        try:
            message = response.json().get("message")
        except (AttributeError, ValueError):
            message = None
        if response.status_code >= 500:
            message = STATUS_MESSAGES.get(response.status_code, message)
        if not message:
            message = STATUS_MESSAGES.get(response.status_code, "An unexpected error occurred.")
        return ApiError(response.status_code, message)


class PronunciationApi:
    def __init__(self, client: Optional[ApiClient] = None):
        self.client = client or ApiClient()

    async def analyze_pronunciation(
        self, original_text: str, spoken_text: str, language: str = "en-US"
    ) -> PronunciationAnalysis:
        payload = await self.client.post(
            "/speech/analyze-pronunciation",
            json={"originalText": original_text, "spokenText": spoken_text, "language": language},
        )
        if not isinstance(payload, dict):
            raise ApiError(None, "Malformed pronunciation analysis response")
        if not payload.get("success"):
            raise ApiError(None, payload.get("message") or "Failed to analyze pronunciation")

        try:
            return PronunciationAnalysis.model_validate(
                _percent_accuracies(payload["data"]["analysis"])
            )
        except (AttributeError, KeyError, TypeError, ValidationError) as e:
            logger.error(f"Malformed analysis payload: {e}")
            raise ApiError(None, "Malformed pronunciation analysis response")

    async def process_audio(
        self, recording: RecordingResult, original_text: str, language: str = "en-US"
    ) -> Dict[str, Any]:
        files = {"audio": ("recording.wav", recording.audio.data, recording.audio.mime_type)}
        data = {
            "originalText": original_text,
            "language": language,
            "transcript": recording.transcript,
            "duration": str(recording.elapsed_seconds),
        }
        return await self.client.post("/speech/process-audio", data=data, files=files)

    async def get_exercises(
        self, language: str, level: str = "beginner", category: str = "general"
    ) -> List[TargetPhrase]:
        payload = await self.client.get(
            "/speech/exercises",
            params={"language": language, "level": level, "category": category},
        )
        exercises = (payload.get("data") or {}).get("exercises", [])
        return [
            TargetPhrase(text=item["text"], language=item.get("language", language))
            for item in exercises
            if item.get("text")
        ]

    async def save_assessment(self, user_id: str, assessment: Dict[str, Any]) -> Dict[str, Any]:
        return await self.client.post(f"/speech/user/{user_id}/assessment", json=assessment)

    async def get_progress(
        self, user_id: str, language: str, timeframe: str = "30d"
    ) -> Dict[str, Any]:
        return await self.client.get(
            f"/speech/user/{user_id}/progress",
            params={"language": language, "timeframe": timeframe},
        )


def _percent_accuracies(analysis: Dict[str, Any]) -> Dict[str, Any]:
    """The service reports word accuracy as a 0-1 fraction."""
    words = analysis.get("wordAnalysis")
    if not isinstance(words, list):
        return analysis

    converted = []
    for word in words:
        accuracy = word.get("accuracy") if isinstance(word, dict) else None
        if isinstance(accuracy, (int, float)) and 0 <= accuracy <= 1:
            word = {**word, "accuracy": int(round(accuracy * 100))}
        converted.append(word)
    return {**analysis, "wordAnalysis": converted}
