"""
Local, offline pronunciation scoring.

Compares a target phrase with a recognized transcript. Words are aligned by
position only: word ``i`` of the target is compared with word ``i`` of the
transcript, so an inserted or dropped word shifts every later pair.
"""

import logging
from typing import List

from speechtrainer.api.schemas import (
    CommonError,
    Difficulty,
    FeedbackLabel,
    FluencyAnalysis,
    Improvement,
    Level,
    PronunciationAnalysis,
    WordScore,
)
from speechtrainer.constants.pronunciation import (
    COMMON_ERRORS,
    CORRECT_WORD_SIMILARITY,
    DIFFICULT_PHONEMES,
    DIFFICULTY_PATTERNS,
    ERROR_SEVERITY,
    FILLER_PATTERN,
    HESITATION_PATTERN,
    LENGTH_WEIGHT,
    LOW_OVERALL_SCORE,
    MAX_ERROR_EXAMPLES,
    MAX_LENGTH_PENALTY,
    MIN_NATURALNESS,
    OVERALL_EXERCISES,
    OVERALL_SUGGESTION,
    PHONEME_EXERCISES,
    POOR_WORD_ACCURACY,
    TEXT_SIMILARITY_WEIGHT,
    WORD_ACCURACY_WEIGHT,
    WORD_EXERCISES,
    WORD_FEEDBACK_THRESHOLDS,
)
from speechtrainer.scoring.utils import language_code, similarity, split_words

logger = logging.getLogger(__name__)


class PronunciationScorer:
    def score(
        self, target_text: str, spoken_text: str, language: str = "en-US"
    ) -> PronunciationAnalysis:
        words = self.analyze_words(target_text, spoken_text, language)
        common_errors = self.identify_common_errors(target_text, language)
        analysis = PronunciationAnalysis(
            overall_score_percent=self.overall_score(target_text, spoken_text),
            words=words,
            fluency=self.analyze_fluency(target_text, spoken_text),
            common_errors=common_errors,
            difficult_phonemes=DIFFICULT_PHONEMES.get(language_code(language), []),
        )
        analysis.improvements = self.generate_improvements(analysis)

        logger.debug(
            f"Scored '{target_text}' vs '{spoken_text}' ({language}): "
            f"{analysis.overall_score_percent}%"
        )
        return analysis

    def overall_score(self, target_text: str, spoken_text: str) -> int:
        text_similarity = similarity(target_text.lower(), spoken_text.lower())
        word_accuracy = self.word_accuracy(target_text, spoken_text)
        length_penalty = self.length_penalty(target_text, spoken_text)

        score = (
            text_similarity * TEXT_SIMILARITY_WEIGHT
            + word_accuracy * WORD_ACCURACY_WEIGHT
            + (1 - length_penalty) * LENGTH_WEIGHT
        ) * 100
        return int(round(max(0.0, min(100.0, score))))

    @staticmethod
    def length_penalty(target_text: str, spoken_text: str) -> float:
        target_count = len(split_words(target_text))
        spoken_count = len(split_words(spoken_text))
        longest = max(target_count, spoken_count)
        if longest == 0:
            return 0.0
        return min(MAX_LENGTH_PENALTY, abs(target_count - spoken_count) / longest)

    @staticmethod
    def word_accuracy(target_text: str, spoken_text: str) -> float:
        target_words = split_words(target_text.lower())
        spoken_words = split_words(spoken_text.lower())
        longest = max(len(target_words), len(spoken_words))
        if longest == 0:
            return 1.0

        correct = 0
        for original, spoken in zip(target_words, spoken_words):
            if similarity(original, spoken) >= CORRECT_WORD_SIMILARITY:
                correct += 1
        return correct / longest

    def analyze_words(
        self, target_text: str, spoken_text: str, language: str = "en-US"
    ) -> List[WordScore]:
        target_words = split_words(target_text.lower())
        spoken_words = split_words(spoken_text.lower())

        scores = []
        for index in range(max(len(target_words), len(spoken_words))):
            original = target_words[index] if index < len(target_words) else ""
            spoken = spoken_words[index] if index < len(spoken_words) else ""
            accuracy = similarity(original, spoken)
            scores.append(
                WordScore(
                    index=index,
                    original=original,
                    spoken=spoken,
                    accuracy_percent=int(round(accuracy * 100)),
                    feedback=word_feedback(original, spoken, accuracy),
                    difficulty=word_difficulty(original, language),
                )
            )
        return scores

    def analyze_fluency(self, target_text: str, spoken_text: str) -> FluencyAnalysis:
        spoken_words = split_words(spoken_text)
        return FluencyAnalysis(
            word_count=len(spoken_words),
            hesitation_count=len(HESITATION_PATTERN.findall(spoken_text)),
            repetition_count=count_repetitions(spoken_words),
            filler_count=len(FILLER_PATTERN.findall(spoken_text)),
            naturalness=naturalness(target_text, spoken_text),
        )

    def identify_common_errors(self, target_text: str, language: str) -> List[CommonError]:
        patterns = COMMON_ERRORS.get(language_code(language), {})
        text = target_text.lower()

        errors = []
        for error_type, entry in patterns.items():
            matches = entry["pattern"].findall(text)
            if matches:
                errors.append(
                    CommonError(
                        type=error_type,
                        description=entry["feedback"],
                        severity=Level(ERROR_SEVERITY.get(error_type, "medium")),
                        examples=matches[:MAX_ERROR_EXAMPLES],
                    )
                )
        return errors

    def generate_improvements(self, analysis: PronunciationAnalysis) -> List[Improvement]:
        improvements = []

        if analysis.overall_score_percent < LOW_OVERALL_SCORE:
            improvements.append(
                Improvement(
                    type="overall",
                    priority=Level.HIGH,
                    suggestion=OVERALL_SUGGESTION,
                    exercises=OVERALL_EXERCISES,
                )
            )

        poor_words = [w for w in analysis.words if w.accuracy_percent < POOR_WORD_ACCURACY]
        if poor_words:
            names = ", ".join(w.original or w.spoken for w in poor_words)
            improvements.append(
                Improvement(
                    type="word_accuracy",
                    priority=Level.MEDIUM,
                    suggestion=f"Practice these specific words: {names}",
                    exercises=WORD_EXERCISES,
                )
            )

        for error in analysis.common_errors:
            improvements.append(
                Improvement(
                    type="phoneme",
                    priority=error.severity,
                    suggestion=error.description,
                    exercises=PHONEME_EXERCISES,
                )
            )

        return improvements


def word_feedback(original: str, spoken: str, accuracy: float) -> FeedbackLabel:
    if not original and not spoken:
        return FeedbackLabel.PERFECT
    if not spoken:
        return FeedbackLabel.MISSING
    if not original:
        return FeedbackLabel.EXTRA

    percent = accuracy * 100
    for threshold, label in WORD_FEEDBACK_THRESHOLDS:
        if percent >= threshold:
            return FeedbackLabel(label)
    return FeedbackLabel.TRY_AGAIN


def word_difficulty(word: str, language: str) -> Difficulty:
    patterns = DIFFICULTY_PATTERNS.get(language_code(language))
    if not patterns:
        return Difficulty.MEDIUM
    if word in patterns["easy"]:
        return Difficulty.EASY
    if word in patterns["hard"]:
        return Difficulty.HARD
    return Difficulty.MEDIUM


def count_repetitions(words: List[str]) -> int:
    return sum(
        1 for previous, current in zip(words, words[1:]) if previous.lower() == current.lower()
    )


def naturalness(target_text: str, spoken_text: str) -> float:
    longest = max(len(target_text), len(spoken_text))
    if longest == 0:
        return 1.0
    return max(MIN_NATURALNESS, 1 - abs(len(target_text) - len(spoken_text)) / longest)


def merge_remote(
    remote: PronunciationAnalysis, local: PronunciationAnalysis
) -> PronunciationAnalysis:
    """Keeps the server's verdict but trusts the locally computed fluency."""
    return remote.model_copy(update={"fluency": local.fluency})
