import logging

from .config import settings

# -------------------------------------------------------------
# Logging setup
# -------------------------------------------------------------
# One package logger carries the handler; modules log through
# children of it so the host application can tune verbosity in one place.

_ROOT_NAME = "racewayroute"

_root = logging.getLogger(_ROOT_NAME)
if not _root.handlers:
    _h = logging.StreamHandler()
    _h.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    _root.addHandler(_h)
    # default level can be overridden by the main application
    _root.setLevel(settings.log_level.upper())


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{_ROOT_NAME}.{name}")
