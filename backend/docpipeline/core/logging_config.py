"""Process-wide logging setup, shared by the worker and any embedding host."""

from __future__ import annotations

import logging

from docpipeline.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Apply the root logging configuration.

    DEBUG when settings.debug is set, otherwise settings.log_level.
    Safe to call more than once — basicConfig is a no-op after the first call
    unless force=True, which we only use when an explicit level is passed.
    """
    if level is not None:
        logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)
        return

    resolved = logging.DEBUG if settings.debug else settings.log_level.upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)

    # botocore logs every request at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
