"""
funsync - Funscript data model
Motion waypoints (actions) and the JSON shape shared by original and
intensity scripts: {"actions": [{"at": <ms>, "pos": <0-100>}, ...]}
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, List

from errors import FunscriptError


@dataclass(frozen=True)
class Action:
    """A single motion waypoint"""
    at: int      # Timestamp in milliseconds (>= 0)
    pos: float   # Position 0.0-100.0 (or intensity for derived scripts)

    @classmethod
    def from_dict(cls, data: Any) -> "Action":
        if not isinstance(data, dict):
            raise FunscriptError(f"action must be an object, got {type(data).__name__}")
        try:
            at = data["at"]
            pos = data["pos"]
        except KeyError as e:
            raise FunscriptError(f"action is missing field {e.args[0]!r}") from e
        if isinstance(at, bool) or not isinstance(at, (int, float)):
            raise FunscriptError(f"action 'at' must be a number, got {at!r}")
        if isinstance(pos, bool) or not isinstance(pos, (int, float)):
            raise FunscriptError(f"action 'pos' must be a number, got {pos!r}")
        try:
            at_ms, pos_value = int(at), float(pos)
        except (OverflowError, ValueError) as e:
            raise FunscriptError(f"action values must be finite, got at={at!r} pos={pos!r}") from e
        if not math.isfinite(pos_value):
            raise FunscriptError(f"action 'pos' must be finite, got {pos!r}")
        if at < 0:
            raise FunscriptError(f"action 'at' must be non-negative, got {at!r}")
        return cls(at=at_ms, pos=pos_value)

    def to_dict(self) -> dict:
        return {"at": self.at, "pos": self.pos}


ActionSequence = List[Action]


@dataclass
class FunscriptData:
    """An ordered action list plus any other top-level keys of the file"""
    actions: ActionSequence = field(default_factory=list)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "FunscriptData":
        if not isinstance(data, dict):
            raise FunscriptError("funscript root must be an object")
        raw_actions = data.get("actions")
        if not isinstance(raw_actions, list):
            raise FunscriptError("funscript must contain an 'actions' list")
        actions = [Action.from_dict(item) for item in raw_actions]
        extra = {k: v for k, v in data.items() if k != "actions"}
        return cls(actions=actions, extra=extra)

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data["actions"] = [a.to_dict() for a in self.actions]
        return data

    @classmethod
    def loads(cls, text: str) -> "FunscriptData":
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as e:
            raise FunscriptError(f"invalid JSON: {e}") from e
        return cls.from_dict(data)

    def dumps(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

