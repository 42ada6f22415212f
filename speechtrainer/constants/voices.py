FEMALE_INDICATORS = [
    "female", "woman", "girl", "samantha", "victoria", "karen", "susan",
    "alice", "emma", "sophia",
]
MALE_INDICATORS = [
    "male", "man", "boy", "alex", "daniel", "thomas", "david",
    "john", "michael", "william",
]

SLOW_RATE = 0.7
EMPHASIS_RATE_FACTOR = 0.8
EMPHASIS_PITCH_FACTOR = 1.2
EMPHASIS_PAUSE_SECONDS = 0.8
PLAIN_PAUSE_SECONDS = 0.4
WORD_DELAY_SECONDS = 1.0

SUPPORTED_LANGUAGES = [
    {"code": "en-US", "name": "English (US)"},
    {"code": "en-GB", "name": "English (UK)"},
    {"code": "fr-FR", "name": "French"},
    {"code": "de-DE", "name": "German"},
    {"code": "es-ES", "name": "Spanish (Spain)"},
    {"code": "es-MX", "name": "Spanish (Mexico)"},
    {"code": "it-IT", "name": "Italian"},
    {"code": "pt-BR", "name": "Portuguese (Brazil)"},
    {"code": "ja-JP", "name": "Japanese"},
    {"code": "ko-KR", "name": "Korean"},
    {"code": "zh-CN", "name": "Chinese (Simplified)"},
    {"code": "ru-RU", "name": "Russian"},
    {"code": "ar-SA", "name": "Arabic"},
    {"code": "hi-IN", "name": "Hindi"},
]
