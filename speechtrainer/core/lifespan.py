from contextlib import asynccontextmanager
import logging
from typing import Optional

from speechtrainer.api.client import PronunciationApi
from speechtrainer.api.schemas import TargetPhrase
from speechtrainer.core.platform import PlatformCapabilities
from speechtrainer.trainer import PronunciationTrainerFlow

logger = logging.getLogger(__name__)


@asynccontextmanager
async def trainer_lifespan(
    phrase: TargetPhrase,
    platform: PlatformCapabilities,
    api: Optional[PronunciationApi] = None,
    **options,
):
    logger.info(f"Lifespan: Creating trainer for '{phrase.text}' ({phrase.language})...")
    flow = PronunciationTrainerFlow(phrase, platform, api=api, **options)
    try:
        yield flow
    finally:
        flow.destroy()
        logger.info("Lifespan: Trainer released.")
