"""Logging setup for the meterstore process."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Attach a single stream handler to the ``meterstore`` logger.

    Safe to call more than once; later calls only adjust the level.
    """
    root = logging.getLogger("meterstore")
    root.setLevel(level.upper())
    if not any(getattr(h, "_meterstore", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._meterstore = True  # type: ignore[attr-defined]
        root.addHandler(handler)
