# funsync Configuration
# All default values and constants

from dataclasses import dataclass, field, is_dataclass
from typing import List


CURRENT_CONFIG_VERSION = 1


@dataclass
class ConnectionConfig:
    """WebSocket connection to the Intiface / Buttplug server"""
    server_url: str = "ws://127.0.0.1:12345"
    client_name: str = "Video player Client"
    auto_connect: bool = True


@dataclass
class DeviceConfig:
    """Device sync loop settings"""
    # Capabilities that get a slot; scanning continues until every one is filled
    tracked_capabilities: List[str] = field(default_factory=lambda: ["Oscillate", "Vibrate"])
    broadcast_period_ms: int = 100    # Command loop period (10 Hz)
    scan_period_ms: int = 5000        # How often to re-check for missing devices
    command_timeout_ms: int = 500     # Per-command timeout, treated as a send failure
    vibrate_dead_zone: float = 0.03   # Vibrate output is 0 below this input
    vibrate_gain: float = 1.5         # Vibrate output = (value - dead_zone) * gain


@dataclass
class IntensityConfig:
    """Thrust intensity derivation parameters"""
    sample_rate_ms: int = 50          # Output sample spacing (ms)
    window_radius_ms: int = 500       # +/- window around each sample (ms)
    condense_enabled: bool = True     # Merge near-duplicate waypoints before windowing
    condense_gap_ms: int = 200        # Max gap between identical positions to merge
    scaling_factor: float = 125.0     # 4 full strokes per second -> 100
    max_increase_per_sec: float = 40.0  # Rise limit of the output curve
    smoothing_enabled: bool = True
    smoothing_alpha: float = 0.6      # EWMA weight toward the new raw value
    binary_positions_only: bool = False  # Strict mode: reject positions other than 0/100


@dataclass
class MediaConfig:
    """Where videos and their funscripts live"""
    video_share_path: str = ""        # VIDEO_SHARE_PATH env var overrides this


@dataclass
class Config:
    """Master configuration"""
    version: int = 1                  # Schema version for persisted configs
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)
    intensity: IntensityConfig = field(default_factory=IntensityConfig)
    media: MediaConfig = field(default_factory=MediaConfig)
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored; nested sections are merged field by field."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current) and isinstance(value, dict):
            apply_dict_to_dataclass(current, value)
            continue

        setattr(target, key, value)


def _clamp_number(value, default, low, high):
    try:
        value = type(default)(value)
    except (TypeError, ValueError):
        value = default
    return max(low, min(high, value))


def migrate_config(config: Config, loaded_version) -> None:
    """Upgrade older config structures to the current schema.
    Fills defaults for fields persisted as null and clamps unsafe values."""
    try:
        version = int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        version = 0

    if version < 1:
        if not getattr(config.device, 'tracked_capabilities', None):
            config.device.tracked_capabilities = ["Oscillate", "Vibrate"]
        if getattr(config.intensity, 'smoothing_enabled', None) is None:
            config.intensity.smoothing_enabled = True
        if getattr(config.intensity, 'binary_positions_only', None) is None:
            config.intensity.binary_positions_only = False

    device = config.device
    device.broadcast_period_ms = _clamp_number(device.broadcast_period_ms, 100, 10, 10000)
    device.scan_period_ms = _clamp_number(device.scan_period_ms, 5000, 100, 600000)
    device.command_timeout_ms = _clamp_number(device.command_timeout_ms, 500, 10, 60000)
    device.vibrate_dead_zone = _clamp_number(device.vibrate_dead_zone, 0.03, 0.0, 1.0)

    intensity = config.intensity
    intensity.sample_rate_ms = _clamp_number(intensity.sample_rate_ms, 50, 0, 60000)
    intensity.window_radius_ms = _clamp_number(intensity.window_radius_ms, 500, 0, 60000)
    intensity.smoothing_alpha = _clamp_number(intensity.smoothing_alpha, 0.6, 0.0, 1.0)

    config.version = CURRENT_CONFIG_VERSION
