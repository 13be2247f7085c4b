"""Component loggers for heartbeat synthesis and rendering.

Every module asks for a short component name ("synth", "render") and gets
the logger heartbeat.<name>, printing one compact line per record to stdout:

    [D 09:12:03.481 synth    ] 10 beats at 60.0 BPM, 44100 Hz: beat=44100 ...
    [I 09:12:04.902 render   ] Wrote output/Heartbeats_60bpm.wav (441000 samples, peak 32767)

The CLI's --log-level is applied to every component at once with set_level().
"""
import logging
import os
import sys
import threading
from typing import Dict, Optional

LOG_LEVEL_ENV = "HEARTBEAT_LOG_LEVEL"
NAMESPACE = "heartbeat"

_components: Dict[str, logging.Logger] = {}
_components_lock = threading.Lock()


class HeartbeatFormatter(logging.Formatter):
    """[{level initial} {HH:MM:SS.mmm} {component, 9 chars}] {message}"""

    def format(self, record):
        component = record.name.rsplit('.', 1)[-1][:9].ljust(9)
        clock = f"{self.formatTime(record, '%H:%M:%S')}.{int(record.msecs):03d}"

        line = f"[{record.levelname[0]} {clock} {component}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _resolve_level(level: Optional[str]) -> int:
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO")
    return getattr(logging, level.upper(), logging.INFO)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Logger for one heartbeat component, e.g. get_logger("synth").

    The level is taken from `level`, else $HEARTBEAT_LOG_LEVEL, else INFO;
    unknown names mean INFO. Asking again for the same component returns
    the same logger with its level updated, never a second handler.
    """
    logger = logging.getLogger(f"{NAMESPACE}.{name}")
    logger.setLevel(_resolve_level(level))

    with _components_lock:
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(HeartbeatFormatter())
            logger.addHandler(handler)
            # Records are printed here only, not again by the root logger
            logger.propagate = False
        _components[name] = logger

    return logger


def set_level(level: str) -> None:
    """Apply one level to every component logger created so far."""
    resolved = _resolve_level(level)
    with _components_lock:
        for logger in _components.values():
            logger.setLevel(resolved)
