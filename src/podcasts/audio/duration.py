"""Audio duration probing with mutagen."""

import logging
from pathlib import Path

import mutagen

from podcasts.utils.errors import ProbeError

logger = logging.getLogger(__name__)


def probe_duration(path: Path) -> int:
    """Read the playing time of an audio file.

    Args:
        path: Downloaded enclosure

    Returns:
        Duration in whole seconds

    Raises:
        ProbeError: If the file is not a recognised audio format or reports no length
    """
    try:
        audio = mutagen.File(path)
    except (mutagen.MutagenError, OSError) as e:
        raise ProbeError(f"Could not read audio file {path}: {e}") from e

    if audio is None or audio.info is None:
        raise ProbeError(f"Unrecognised audio format: {path}")

    length = getattr(audio.info, "length", None)
    if not length or length <= 0:
        raise ProbeError(f"No duration reported for {path}")

    logger.debug(f"Probed duration of {path}: {length:.1f}s")
    return round(length)
