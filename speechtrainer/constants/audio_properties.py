SAMPLING_RATE = 16000
MONO_CHANNEL = 1
SAMPLE_WIDTH_BYTES = 2
AUDIO_MIME_TYPE = "audio/wav"

MAX_RECORDING_SECONDS = 60
MAX_AUDIO_DURATION_SECONDS = 300
TIMER_TICK_SECONDS = 1.0
LEVEL_SAMPLE_INTERVAL_SECONDS = 0.1
