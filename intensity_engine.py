"""
funsync - Intensity Engine
Derives a continuous thrust-intensity curve from sparse funscript waypoints.

For every sample time a window of +/- window_radius_ms is laid over the
(condensed) action track. The total distance travelled inside the window,
divided by the window length and scaled, is the raw intensity: four full
0->100->0 strokes per second come out at 100. The raw curve is rate limited
on the way up and blended with a slow EWMA so short gaps between strokes do
not collapse the curve.

Pure and deterministic: no I/O, no state survives a call.
"""

import math
from typing import Optional

import numpy as np

from config import IntensityConfig
from funscript import Action, ActionSequence
from logging_utils import log_event


def interpolate_position(a0: Optional[Action], a1: Optional[Action], time: int) -> float:
    """Linear position between two actions, clamped to their endpoints."""
    if a0 is None and a1 is None:
        return 0.0
    if a0 is None:
        return a1.pos
    if a1 is None:
        return a0.pos
    if time <= a0.at:
        return a0.pos
    if time >= a1.at:
        return a1.pos
    if a0.at == a1.at:
        return a0.pos
    fraction = (time - a0.at) / (a1.at - a0.at)
    return a0.pos + (a1.pos - a0.pos) * fraction


def _merge_group(group: ActionSequence) -> Action:
    if len(group) == 1:
        return group[0]
    avg_at = sum(a.at for a in group) // len(group)
    return Action(at=avg_at, pos=group[0].pos)


def condense_identical_positions(actions: ActionSequence, max_gap_ms: int) -> ActionSequence:
    """
    Collapse runs of equal positions that sit within max_gap_ms of each other
    into a single action at the mean timestamp.

    The first and last actions are kept as they are so the track keeps its
    time span. Returns a new list; the input is not modified.
    """
    if len(actions) <= 3:
        return list(actions)

    interior = actions[1:-1]
    condensed = [actions[0]]
    group = [interior[0]]
    for action in interior[1:]:
        last = group[-1]
        if action.pos == last.pos and action.at - last.at <= max_gap_ms:
            group.append(action)
        else:
            condensed.append(_merge_group(group))
            group = [action]
    condensed.append(_merge_group(group))
    condensed.append(actions[-1])
    return condensed


def find_non_binary_position(actions: ActionSequence) -> Optional[Action]:
    """First action whose position is neither 0 nor 100, if any."""
    for action in actions:
        if action.pos != 0.0 and action.pos != 100.0:
            return action
    return None


def _window_intensity(
    track: ActionSequence,
    ats: np.ndarray,
    positions: np.ndarray,
    window_start: int,
    window_end: int,
    scaling_factor: float,
) -> float:
    """Scaled travel distance inside [window_start, window_end]."""
    n = len(track)
    duration = window_end - window_start

    # Last action at or before the window start (or the first action)
    start_idx = max(0, int(np.searchsorted(ats, window_start, side="right")) - 1)
    start_next = track[start_idx + 1] if start_idx + 1 < n else None
    start_pos = interpolate_position(track[start_idx], start_next, window_start)

    # First action at or after the window end (or the last action)
    end_idx = min(n - 1, int(np.searchsorted(ats, window_end, side="left")))
    end_prev = track[end_idx - 1] if end_idx > 0 else track[start_idx]
    end_pos = interpolate_position(end_prev, track[end_idx], window_end)

    inside = (ats > window_start) & (ats < window_end)
    times = np.concatenate(([window_start], ats[inside], [window_end]))
    values = np.concatenate(([start_pos], positions[inside], [end_pos]))

    moving = np.diff(times) > 0
    travel = float(np.abs(np.diff(values))[moving].sum())

    intensity = travel / duration * scaling_factor
    return intensity if math.isfinite(intensity) else 0.0


def _round_to_step(t: int, step: int) -> int:
    if step <= 0:
        return t
    return int(round(t / step)) * step


def derive_intensity(
    actions: ActionSequence,
    sample_rate_ms: int,
    window_radius_ms: int,
    *,
    settings: Optional[IntensityConfig] = None,
) -> ActionSequence:
    """
    Convert motion waypoints to intensity samples.

    Args:
        actions: Waypoints. Sorted in place by timestamp.
        sample_rate_ms: Spacing of output samples. 0 yields a single sample.
        window_radius_ms: Half-width of the analysis window.
        settings: Constants (scaling, rise limit, smoothing, strict mode).

    Returns:
        Intensity samples in the funscript action shape; empty when fewer
        than two actions are given or strict mode rejects a position.
    """
    if sample_rate_ms < 0 or window_radius_ms < 0:
        raise ValueError("sample_rate_ms and window_radius_ms must be non-negative")

    settings = settings or IntensityConfig()

    if len(actions) < 2:
        return []

    actions.sort(key=lambda a: a.at)

    if settings.binary_positions_only:
        invalid = find_non_binary_position(actions)
        if invalid is not None:
            log_event("ERROR", "Intensity", "Invalid position, valid values are 0 or 100",
                      pos=invalid.pos, at=invalid.at)
            return []

    if settings.condense_enabled:
        track = condense_identical_positions(actions, settings.condense_gap_ms)
    else:
        track = list(actions)

    ats = np.array([a.at for a in track], dtype=np.int64)
    positions = np.array([a.pos for a in track], dtype=np.float64)

    min_time = actions[0].at
    max_time = actions[-1].at
    max_increase = settings.max_increase_per_sec / 1000.0 * sample_rate_ms
    alpha = settings.smoothing_alpha

    # Keyed by rounded time: a later sample landing on the same slot replaces it
    samples: dict[int, float] = {}
    if min_time > 0:
        samples[0] = 0.0

    t = 0
    previous_intensity = 0.0
    previous_smooth = 0.0
    while t <= max_time:
        window_start = max(0, t - window_radius_ms)
        window_end = min(max_time, t + window_radius_ms)

        if window_end > window_start:
            raw = _window_intensity(track, ats, positions, window_start, window_end,
                                    settings.scaling_factor)
        else:
            raw = 0.0

        if sample_rate_ms > 0 and raw > previous_intensity + max_increase:
            raw = previous_intensity + max_increase

        if settings.smoothing_enabled:
            smooth = previous_smooth + alpha * (raw - previous_smooth)
            value = max(raw, smooth)
        else:
            smooth = raw
            value = raw

        samples[_round_to_step(t, sample_rate_ms)] = value

        previous_smooth = smooth
        previous_intensity = value
        if sample_rate_ms == 0:
            break
        t += sample_rate_ms

    log_event("DEBUG", "Intensity", "Derived curve", inputs=len(actions),
              condensed=len(track), samples=len(samples))
    return [Action(at=at, pos=pos) for at, pos in samples.items()]
