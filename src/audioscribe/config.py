"""
Process-wide constants.

Logging verbosity can be overridden per run with the ``AUDIOSCRIBE_LOG_LEVEL``
and ``AUDIOSCRIBE_LOG_TO_CONSOLE`` environment variables.
"""

import logging
import os

LOG_LEVEL = os.environ.get("AUDIOSCRIBE_LOG_LEVEL", "INFO")
LOG_TO_CONSOLE = os.environ.get("AUDIOSCRIBE_LOG_TO_CONSOLE", "0").lower() in ("1", "true", "yes")

# Every PCM backend receives mono float32 at this rate.
TARGET_SAMPLE_RATE = 16000
# Inclusive upper bound on clip size.
MAX_INPUT_BYTES = 100 * 1024 * 1024


def get_log_level() -> int:
    level = logging.getLevelName(LOG_LEVEL.upper())
    return level if isinstance(level, int) else logging.INFO
