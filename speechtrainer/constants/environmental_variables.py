import os

API_BASE_URL = os.getenv("SPEECHTRAINER_API_BASE_URL", "http://localhost:5000/api")
REQUEST_TIMEOUT_SECONDS = float(os.getenv("SPEECHTRAINER_REQUEST_TIMEOUT", "30"))
RECOGNITION_MODEL_PATH = os.getenv(
    "RECOGNITION_MODEL_PATH", "facebook/wav2vec2-base-960h"
)
RECOGNITION_LANGUAGES = os.getenv("RECOGNITION_LANGUAGES", "en-US,en-GB").split(",")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
