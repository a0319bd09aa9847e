"""
funsync - Funscript Service
What the file-serving route needs: locate the funscript next to a video,
load it, and pair it with a derived intensity script. Failures come back as
a status on the response instead of exceptions.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from config import Config
from errors import FunscriptError, IntensityUnavailable
from funscript import FunscriptData
from intensity_engine import derive_intensity
from logging_utils import log_event


@dataclass
class FunscriptResponse:
    original: Optional[FunscriptData] = None
    intensity: Optional[FunscriptData] = None
    status: int = 200
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "original": self.original.to_dict() if self.original is not None else None,
            "intensity": self.intensity.to_dict() if self.intensity is not None else None,
        }


def funscript_path_for_video(video_path: str, base_path: str) -> Path:
    """The funscript shares the video's name with a .funscript extension.
    Raises FunscriptError for paths that escape base_path."""
    base = Path(base_path).resolve()
    try:
        candidate = (base / video_path).with_suffix(".funscript").resolve()
    except ValueError as e:
        raise FunscriptError(f"invalid video path {video_path!r}: {e}") from e
    if base != candidate and base not in candidate.parents:
        raise FunscriptError(f"path escapes the video share: {video_path}")
    return candidate


def load_funscript(path: Path) -> FunscriptData:
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise FunscriptError(f"failed to read {path}: {e}") from e
    try:
        return FunscriptData.loads(text)
    except FunscriptError as e:
        raise FunscriptError(f"failed to parse {path}: {e}") from e


def generate_intensity_funscript(original: FunscriptData, config: Optional[Config] = None) -> FunscriptData:
    """Derive the intensity script. Works on a copy of the original actions."""
    settings = (config or Config()).intensity
    actions = list(original.actions)
    if len(actions) < 2:
        raise IntensityUnavailable("cannot generate intensity: requires at least 2 actions")

    intensity_actions = derive_intensity(
        actions,
        settings.sample_rate_ms,
        settings.window_radius_ms,
        settings=settings,
    )
    if not intensity_actions:
        raise IntensityUnavailable("intensity derivation produced no samples")
    return FunscriptData(actions=intensity_actions)


def build_funscript_response(video_path: str, config: Config) -> FunscriptResponse:
    base_path = config.media.video_share_path
    if not base_path:
        log_event("ERROR", "Funscript", "VIDEO_SHARE_PATH is not configured")
        return FunscriptResponse(status=500, error="video share path not configured")

    try:
        path = funscript_path_for_video(video_path, base_path)
    except FunscriptError as e:
        log_event("ERROR", "Funscript", "Path determination error", error=e)
        return FunscriptResponse(status=400, error=str(e))

    try:
        original = load_funscript(path)
    except FunscriptError as e:
        log_event("INFO", "Funscript", "Original failed to load", file=path.name, error=e)
        return FunscriptResponse(status=404, error=str(e))

    response = FunscriptResponse(original=original)
    try:
        response.intensity = generate_intensity_funscript(original, config)
        log_event("INFO", "Funscript", "Generated intensity", file=path.name,
                  samples=len(response.intensity.actions))
    except IntensityUnavailable as e:
        log_event("WARNING", "Funscript", "Intensity data is missing", file=path.name, error=e)
        response.error = str(e)
    return response
