import logging
from typing import Optional

import soundfile as sf

logger = logging.getLogger(__name__)


def read_duration_seconds(path: str) -> Optional[float]:
    """Duration of *path* in seconds, or ``None`` when libsndfile cannot read it."""
    try:
        info = sf.info(path)
    except (RuntimeError, OSError) as exc:
        logger.debug("soundfile could not read %s: %s", path, exc)
        return None
    if not info.samplerate:
        return None
    return float(info.frames) / float(info.samplerate)
