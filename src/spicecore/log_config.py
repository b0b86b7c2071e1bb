# --- src/spicecore/log_config.py ---
import logging
import os
import sys
from typing import Optional, Union

#: Environment variable that overrides the level chosen at import time.
LOG_LEVEL_ENV_VAR = "SPICECORE_LOG_LEVEL"


def setup_logging(level: Optional[Union[int, str]] = None):
    """
    Routes all solver log records to stdout with a single shared format.

    `level` may be a logging constant or a name such as "debug". When None,
    the SPICECORE_LOG_LEVEL environment variable is used, else INFO.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV_VAR, logging.INFO)
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        level = resolved if isinstance(resolved, int) else logging.INFO

    log_formatter = logging.Formatter(
        "%(asctime)s [%(levelname)-5.5s] [%(name)s] %(message)s"
    )
    root_logger = logging.getLogger()

    # Replace any handlers left over from a previous configuration.
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(log_formatter)
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)
    logging.getLogger(__name__).debug(f"Logging configured at level {logging.getLevelName(level)}.")
