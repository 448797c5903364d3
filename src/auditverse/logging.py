from __future__ import annotations

import logging


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# matplotlib emits font-cache chatter at DEBUG; colormaps are all we use from it.
_NOISY_LOGGERS = ("matplotlib",)


def configure_logging(level: str = "INFO", *, log_format: str = LOG_FORMAT) -> None:
    logging.basicConfig(level=level.upper(), format=log_format)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
