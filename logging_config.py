"""Logging configuration"""

import logging

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once (gunicorn/werkzeug may have touched it first)."""
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    # engineio/socketio are very chatty at INFO
    logging.getLogger("engineio").setLevel(logging.WARNING)
    logging.getLogger("socketio").setLevel(logging.WARNING)
    _configured = True
