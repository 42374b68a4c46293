import logging
import sys
from typing import Optional

from rate_engine.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Ensure the root logger has handlers and the desired level.
    Uvicorn configures handlers before importing our code, scripts usually do not.
    """
    resolved_level = (level or settings.LOG_LEVEL).upper()
    root_logger = logging.getLogger()

    if not root_logger.handlers:
        logging.basicConfig(
            level=resolved_level,
            format=LOG_FORMAT,
            handlers=[logging.StreamHandler(sys.stdout)],
        )
    else:
        root_logger.setLevel(resolved_level)

    # MultipleSchemesWarning and friends go through the logging pipeline too
    logging.captureWarnings(True)
    return logging.getLogger("rate_engine")
