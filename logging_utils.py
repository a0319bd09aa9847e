"""Tagged console logging for funsync.

Every subsystem logs through log_event with a short tag (Registry, Broadcast,
Intensity, ...) so interleaved output from the device loops stays readable.
Per-tick failures go through log_event_throttled so a device that keeps
timing out at 10 Hz does not flood the console.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Tuple

_logger = logging.getLogger("funsync")
if not _logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s][%(tag)s] %(message)s"))
    _logger.addHandler(handler)
    _logger.setLevel(logging.INFO)


class _TagAdapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: dict[str, Any]):
        kwargs.setdefault("extra", {})["tag"] = kwargs.pop("tag", "Funsync")
        return msg, kwargs


_adapter = _TagAdapter(_logger, {})

# key -> (last emit time, occurrences suppressed since)
_throttle_state: Dict[str, Tuple[float, int]] = {}


def _level_value(level: str) -> int:
    name = (level or "INFO").upper()
    if name == "WARN":
        name = "WARNING"
    return getattr(logging, name, logging.INFO)


def log_event(level: str, tag: str, message: str, **fields: Any) -> None:
    """Log message under tag; fields are rendered as ` | k=v k=v`."""
    if fields:
        message = f"{message} | " + " ".join(f"{k}={v}" for k, v in fields.items())
    _adapter.log(_level_value(level), message, tag=tag)


def log_event_throttled(key: str, interval_ms: float, level: str, tag: str, message: str,
                        **fields: Any) -> bool:
    """log_event at most once per interval_ms for key.

    Occurrences dropped in between are reported as suppressed=N on the next
    emitted line. Returns True if the line was emitted.
    """
    now = time.monotonic()
    last, suppressed = _throttle_state.get(key, (None, 0))
    if last is not None and (now - last) * 1000 < interval_ms:
        _throttle_state[key] = (last, suppressed + 1)
        return False
    if suppressed:
        fields["suppressed"] = suppressed
    _throttle_state[key] = (now, 0)
    log_event(level, tag, message, **fields)
    return True


def reset_throttle(key: str | None = None) -> None:
    """Forget throttle history for key (all keys when None)."""
    if key is None:
        _throttle_state.clear()
    else:
        _throttle_state.pop(key, None)


def set_log_level(level: str) -> None:
    """Set global log level (DEBUG/INFO/WARNING/ERROR)."""
    _logger.setLevel(_level_value(level))


def get_log_level() -> str:
    return logging.getLevelName(_logger.level)


def get_logger() -> logging.Logger:
    """Underlying logger, for tests that use assertLogs."""
    return _logger
