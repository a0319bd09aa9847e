"""
funsync - Control Surface
The ingress side of the device loop: producers publish the latest desired
intensity here and the broadcast loop picks it up on its next tick.
"""

import json
import math
from typing import Optional

from logging_utils import log_event


def clamp_unit(value: float) -> float:
    """Clamp to [0, 1]; NaN maps to 0."""
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


class LatestValue:
    """
    Single-slot overwrite register.

    No queue and no history: a write replaces whatever was there and readers
    see some recent write. A float attribute store is atomic under the GIL,
    which is all the ordering this needs.
    """

    def __init__(self, initial: float = 0.0):
        self._value = float(initial)

    def store(self, value: float) -> None:
        self._value = value

    def load(self) -> float:
        return self._value


class ControlSurface:
    """Accepts control values from any thread or task without blocking"""

    # JSON keys accepted by handle_message, in priority order
    MESSAGE_KEYS = ("o", "v")

    def __init__(self, target: LatestValue):
        self.target = target

    def set_value(self, value: float) -> None:
        """Overwrite the target intensity. Range is enforced by the reader."""
        self.target.store(float(value))

    @property
    def value(self) -> float:
        return self.target.load()

    def handle_message(self, text: str) -> bool:
        """
        Apply a text control message from the WebSocket collaborator.

        Accepts {"o": <float>}, {"v": <float>} or a bare number. Anything else
        returns False so the caller can answer with a usage hint and the value
        is left alone. Text that is not JSON at all is logged as a WARNING;
        well-formed JSON without a usable control value (other clients'
        chatter on the same socket) is ignored at DEBUG.
        """
        try:
            value = parse_control_message(text)
        except ValueError:
            log_event("WARNING", "Control", "Unknown command received", text=text[:80])
            return False
        if value is None:
            log_event("DEBUG", "Control", "Ignoring message without control value", text=text[:80])
            return False
        self.set_value(value)
        return True


def parse_control_message(text: str) -> Optional[float]:
    """Extract the control value from a message.

    Raises ValueError when text is not JSON; returns None for JSON that
    carries no numeric "o"/"v" value.
    """
    try:
        payload = json.loads(text)
    except TypeError as e:
        raise ValueError(f"not a text message: {type(text).__name__}") from e
    except RecursionError as e:
        raise ValueError("message nested too deeply") from e

    if isinstance(payload, dict):
        for key in ControlSurface.MESSAGE_KEYS:
            value = _as_float(payload.get(key))
            if value is not None:
                return value
        return None
    return _as_float(payload)


def _as_float(raw) -> Optional[float]:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    try:
        return float(raw)
    except OverflowError:
        return None
