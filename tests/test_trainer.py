import asyncio

import pytest

from speechtrainer.api.schemas import PronunciationAnalysis, RecordingStatus, TargetPhrase
from speechtrainer.core.errors import InvalidStateError, NetworkError, PermissionDeniedError
from speechtrainer.core.platform import PlatformCapabilities
from speechtrainer.trainer import PronunciationTrainerFlow, TrainerMode


class FakeApi:
    def __init__(self, analysis=None, error=None):
        self.analysis = analysis
        self.error = error
        self.calls = []

    async def analyze_pronunciation(self, original_text, spoken_text, language="en-US"):
        self.calls.append((original_text, spoken_text, language))
        if self.error is not None:
            raise self.error
        return self.analysis


@pytest.fixture
def phrase():
    return TargetPhrase(text="hello world", language="en-US")


async def record(flow, recognition_engine, transcript="hello world"):
    flow.start_practice()
    await flow.start_recording()
    if transcript:
        recognition_engine.emit(transcript, is_final=True)
    flow.stop_recording()
    return await flow.wait_for_results()


@pytest.mark.asyncio
async def test_listen_highlights_while_speaking(platform, phrase):
    highlights = []
    flow = PronunciationTrainerFlow(phrase, platform, on_highlight=highlights.append)

    flow.listen()
    await asyncio.sleep(0.01)

    assert flow.mode == TrainerMode.LISTEN
    assert highlights == [0, -1]


@pytest.mark.asyncio
async def test_listen_word_by_word_highlights_each_word(platform, phrase, synthesis_engine):
    highlights = []
    flow = PronunciationTrainerFlow(phrase, platform, on_highlight=highlights.append)

    await flow.listen_word_by_word(word_delay=0)

    assert highlights == [0, -1, 1, -1, -1]
    assert [u.text for u in synthesis_engine.spoken] == ["hello", "world"]


@pytest.mark.asyncio
async def test_listen_slowly_uses_playback_options(platform, phrase, synthesis_engine):
    flow = PronunciationTrainerFlow(phrase, platform)

    flow.listen_slowly()
    await asyncio.sleep(0.01)

    assert synthesis_engine.spoken[0].options.rate < 1.0
    assert synthesis_engine.spoken[0].options.language == "en-US"


@pytest.mark.asyncio
async def test_full_flow_scores_locally(platform, phrase, recognition_engine, microphone):
    modes = []
    scores = []
    flow = PronunciationTrainerFlow(
        phrase, platform, on_mode_change=modes.append, on_score=scores.append
    )

    results = await record(flow, recognition_engine)

    assert flow.mode == TrainerMode.RESULTS
    assert modes == [TrainerMode.PRACTICE, TrainerMode.RECORD, TrainerMode.RESULTS]
    assert results.source == "local"
    assert results.analysis.overall_score_percent == 100
    assert results.recording.transcript == "hello world"
    assert scores == [results.analysis]
    assert microphone.stream.closed is True
    assert flow.scoring is False


@pytest.mark.asyncio
async def test_remote_result_supersedes_local(platform, phrase, recognition_engine):
    remote = PronunciationAnalysis(overall_score_percent=73)
    api = FakeApi(analysis=remote)
    scores = []
    flow = PronunciationTrainerFlow(phrase, platform, api=api, on_score=scores.append)

    results = await record(flow, recognition_engine, "hello um world")

    assert api.calls == [("hello world", "hello um world", "en-US")]
    local_score = flow.scorer.overall_score("hello world", "hello um world")
    assert [s.overall_score_percent for s in scores] == [local_score, 73]
    assert results.source == "remote"
    assert results.analysis.overall_score_percent == 73
    assert results.analysis.fluency.hesitation_count == 1
    assert results.notice is None


@pytest.mark.asyncio
async def test_remote_failure_keeps_local_result_with_notice(platform, phrase, recognition_engine):
    errors = []
    api = FakeApi(error=NetworkError("Network error. Please check your internet connection."))
    flow = PronunciationTrainerFlow(phrase, platform, api=api, on_error=errors.append)

    results = await record(flow, recognition_engine)

    assert results.source == "local"
    assert results.analysis.overall_score_percent == 100
    assert "unavailable" in results.notice
    assert flow.notice == results.notice
    assert isinstance(errors[0], NetworkError)


@pytest.mark.asyncio
async def test_transcriber_fills_empty_transcript(platform, phrase, recognition_engine):
    seen = []

    def transcriber(audio_bytes):
        seen.append(audio_bytes)
        return "hello world"

    flow = PronunciationTrainerFlow(phrase, platform, transcriber=transcriber)

    results = await record(flow, recognition_engine, transcript="")

    assert seen and seen[0].startswith(b"RIFF")
    assert results.recording.transcript == "hello world"
    assert results.analysis.overall_score_percent == 100


@pytest.mark.asyncio
async def test_flow_without_recognition_still_records(phrase, microphone, synthesis_engine):
    platform = PlatformCapabilities(microphone=microphone, synthesis=synthesis_engine)
    flow = PronunciationTrainerFlow(phrase, platform)

    flow.start_practice()
    await flow.start_recording()
    flow.stop_recording()
    results = await flow.wait_for_results()

    assert results.recording.transcript == ""
    assert results.analysis.overall_score_percent < 100


@pytest.mark.asyncio
async def test_recording_only_starts_from_practice(platform, phrase):
    flow = PronunciationTrainerFlow(phrase, platform)

    with pytest.raises(InvalidStateError):
        await flow.start_recording()

    flow.start_practice()
    await flow.start_recording()
    with pytest.raises(InvalidStateError):
        await flow.start_recording()
    with pytest.raises(InvalidStateError):
        flow.start_practice()
    with pytest.raises(InvalidStateError):
        flow.listen()

    flow.destroy()


@pytest.mark.asyncio
async def test_recording_controls_require_active_recording(platform, phrase, recognition_engine):
    flow = PronunciationTrainerFlow(phrase, platform)

    with pytest.raises(InvalidStateError):
        flow.pause_recording()
    with pytest.raises(InvalidStateError):
        flow.stop_recording()

    flow.start_practice()
    session = await flow.start_recording()
    flow.pause_recording()
    assert session.status == RecordingStatus.PAUSED
    flow.resume_recording()
    assert session.status == RecordingStatus.RECORDING
    flow.stop_recording()
    await flow.wait_for_results()


@pytest.mark.asyncio
async def test_failed_start_returns_to_practice(platform, phrase, microphone):
    microphone.error = "denied"
    flow = PronunciationTrainerFlow(phrase, platform)
    flow.start_practice()

    with pytest.raises(PermissionDeniedError):
        await flow.start_recording()

    assert flow.mode == TrainerMode.PRACTICE
    assert flow.session is None


@pytest.mark.asyncio
async def test_result_navigation(platform, phrase, recognition_engine):
    flow = PronunciationTrainerFlow(phrase, platform)

    with pytest.raises(InvalidStateError):
        flow.try_again()
    with pytest.raises(InvalidStateError):
        flow.listen_again()

    await record(flow, recognition_engine)
    flow.try_again()
    assert flow.mode == TrainerMode.PRACTICE
    assert flow.results is None

    flow.back_to_listen()
    assert flow.mode == TrainerMode.LISTEN
    with pytest.raises(InvalidStateError):
        flow.back_to_listen()

    await record(flow, recognition_engine)
    flow.listen_again()
    assert flow.mode == TrainerMode.LISTEN
    assert flow.session is None


@pytest.mark.asyncio
async def test_destroy_releases_active_recording(platform, phrase, microphone, recognition_engine):
    flow = PronunciationTrainerFlow(phrase, platform)
    flow.start_practice()
    await flow.start_recording()

    flow.destroy()
    flow.destroy()

    assert microphone.stream.closed is True
    assert flow.session.status == RecordingStatus.STOPPED
    assert recognition_engine.stops == 1


@pytest.mark.asyncio
async def test_local_score_is_published_before_remote_answers(platform, phrase, recognition_engine):
    release = asyncio.Event()
    scores = []

    class SlowApi(FakeApi):
        async def analyze_pronunciation(self, original_text, spoken_text, language="en-US"):
            await release.wait()
            return PronunciationAnalysis(overall_score_percent=64)

    flow = PronunciationTrainerFlow(phrase, platform, api=SlowApi(), on_score=scores.append)
    flow.start_practice()
    await flow.start_recording()
    recognition_engine.emit("hello world", is_final=True)
    flow.stop_recording()
    await asyncio.sleep(0.01)

    assert [s.overall_score_percent for s in scores] == [100]
    assert flow.scoring is True

    release.set()
    results = await flow.wait_for_results()

    assert [s.overall_score_percent for s in scores] == [100, 64]
    assert results.source == "remote"


@pytest.mark.asyncio
async def test_unexpected_remote_error_keeps_local_result(platform, phrase, recognition_engine):
    errors = []
    scores = []
    api = FakeApi(error=ValueError("Expecting value: line 1 column 1 (char 0)"))
    flow = PronunciationTrainerFlow(
        phrase, platform, api=api, on_error=errors.append, on_score=scores.append
    )

    results = await record(flow, recognition_engine)

    assert results.source == "local"
    assert "unavailable" in results.notice
    assert isinstance(errors[0], ValueError)
    assert len(scores) == 1


@pytest.mark.asyncio
async def test_service_payload_supersedes_local(platform, phrase, recognition_engine):
    from speechtrainer.api.client import ApiClient, PronunciationApi

    class ServiceSession:
        headers = {}

        def request(self, method, url, **kwargs):
            body = {
                "success": True,
                "data": {
                    "analysis": {
                        "overallScore": 82,
                        "similarity": 0.82,
                        "wordAnalysis": [
                            {"original": "hello", "spoken": "hello", "accuracy": 1, "feedback": "Excellent"},
                            {"original": "world", "spoken": "word", "accuracy": 0.8, "feedback": "Good"},
                        ],
                        "feedback": "Very good pronunciation with minor areas for improvement.",
                        "suggestions": ["Practice speaking slowly and clearly"],
                        "phonemeAnalysis": {},
                    }
                },
            }
            return type("Response", (), {"status_code": 200, "json": lambda self: body})()

    api = PronunciationApi(ApiClient(session=ServiceSession(), sleep=lambda _s: None))
    flow = PronunciationTrainerFlow(phrase, platform, api=api)

    results = await record(flow, recognition_engine, "hello word")

    assert results.source == "remote"
    assert results.notice is None
    assert results.analysis.overall_score_percent == 82
    assert [w.accuracy_percent for w in results.analysis.words] == [100, 80]


@pytest.mark.asyncio
async def test_failed_stop_returns_to_practice(platform, phrase, microphone):
    errors = []
    flow = PronunciationTrainerFlow(phrase, platform, on_error=errors.append)
    flow.start_practice()
    await flow.start_recording()

    def broken_close():
        raise OSError("device removed")

    microphone.stream.close = broken_close

    with pytest.raises(OSError):
        flow.stop_recording()

    assert flow.mode == TrainerMode.PRACTICE
    assert flow.session is None
    assert isinstance(errors[0], OSError)

    microphone.error = None
    await flow.start_recording()
    assert flow.mode == TrainerMode.RECORD
    flow.destroy()
