import re

TEXT_SIMILARITY_WEIGHT = 0.4
WORD_ACCURACY_WEIGHT = 0.4
LENGTH_WEIGHT = 0.2
MAX_LENGTH_PENALTY = 0.5
CORRECT_WORD_SIMILARITY = 0.8
POOR_WORD_ACCURACY = 60
LOW_OVERALL_SCORE = 70
MIN_NATURALNESS = 0.3
MAX_ERROR_EXAMPLES = 3

# (minimum accuracy percent, label value), checked top-down
WORD_FEEDBACK_THRESHOLDS = [
    (90, "Excellent"),
    (70, "Good"),
    (50, "Needs improvement"),
]

HESITATION_PATTERN = re.compile(r"\b(uh|um|er|ah|hmm)\b", re.IGNORECASE)
FILLER_PATTERN = re.compile(
    r"\b(like|you know|actually|basically|literally)\b", re.IGNORECASE
)

COMMON_ERRORS = {
    "en": {
        "th_sounds": {
            "pattern": re.compile(r"th"),
            "feedback": 'Place your tongue between your teeth for "th" sounds',
        },
        "r_sounds": {
            "pattern": re.compile(r"r"),
            "feedback": "Curl your tongue back without touching the roof of your mouth",
        },
        "vowel_length": {
            "pattern": re.compile(r"[aeiou]"),
            "feedback": "Pay attention to vowel length - some vowels are longer than others",
        },
    },
    "fr": {
        "r_sounds": {
            "pattern": re.compile(r"r"),
            "feedback": 'Use a guttural "r" sound from the back of your throat',
        },
        "nasal_vowels": {
            "pattern": re.compile(r"[aeiou]n"),
            "feedback": 'Nasalize vowels before "n" sounds',
        },
    },
}

ERROR_SEVERITY = {
    "th_sounds": "high",
    "r_sounds": "medium",
    "vowel_length": "low",
    "nasal_vowels": "medium",
}

DIFFICULTY_PATTERNS = {
    "en": {
        "easy": ["cat", "dog", "run", "big", "yes", "no"],
        "medium": ["think", "world", "right", "through", "beautiful"],
        "hard": ["thoroughly", "rhythm", "sixth", "clothes", "squirrel"],
    },
    "fr": {
        "easy": ["chat", "chien", "oui", "non", "eau"],
        "medium": ["français", "bonjour", "merci", "comment"],
        "hard": ["grenouille", "écureuil", "serrurerie"],
    },
}

DIFFICULT_PHONEMES = {
    "en": ["θ", "ð", "r", "l", "w"],
    "fr": ["ʁ", "y", "ɲ", "ʒ"],
    "de": ["x", "ç", "y", "ø"],
    "es": ["r", "x", "ɲ"],
}

OVERALL_SUGGESTION = "Focus on speaking more slowly and clearly"
OVERALL_EXERCISES = ["slow_speech", "word_by_word"]
WORD_EXERCISES = ["word_practice", "phoneme_drill"]
PHONEME_EXERCISES = ["phoneme_practice", "minimal_pairs"]
