#!/usr/bin/env python3
"""
funsync - Funscript intensity and device sync

  run.py intensity INPUT [-o OUTPUT]   derive an intensity funscript
  run.py devices                       drive devices from values on stdin
"""

import argparse
import asyncio
import sys
import threading
from pathlib import Path
from typing import Optional, TextIO

from config import Config
from config_persistence import load_config
from errors import FunscriptError, IntensityUnavailable
from funscript_service import generate_intensity_funscript, load_funscript
from logging_utils import log_event, set_log_level


def run_intensity(args: argparse.Namespace, config: Config) -> int:
    if args.sample_rate is not None:
        config.intensity.sample_rate_ms = args.sample_rate
    if args.window_radius is not None:
        config.intensity.window_radius_ms = args.window_radius
    if args.strict_binary:
        config.intensity.binary_positions_only = True
    if args.no_smoothing:
        config.intensity.smoothing_enabled = False

    input_path = Path(args.input)
    try:
        original = load_funscript(input_path)
        intensity = generate_intensity_funscript(original, config)
    except (FunscriptError, IntensityUnavailable) as e:
        log_event("ERROR", "Funscript", "Cannot derive intensity", file=input_path.name, error=e)
        return 1

    output_path = Path(args.output) if args.output else input_path.with_suffix(".intensity.funscript")
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(intensity.dumps())
    log_event("INFO", "Funscript", "Wrote intensity script", path=output_path,
              samples=len(intensity.actions))
    return 0


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, lines: "asyncio.Queue[Optional[str]]",
                        stream: TextIO) -> threading.Thread:
    """Read lines on a daemon thread; None marks end of input.

    A daemon thread blocked in readline() does not hold up interpreter exit
    after Ctrl+C the way an executor worker would.
    """
    def _reader():
        try:
            for line in iter(stream.readline, ""):
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, None)
        except RuntimeError:
            # Event loop already closed
            return

    thread = threading.Thread(target=_reader, name="funsync-stdin", daemon=True)
    thread.start()
    return thread


async def _feed_stdin(controller, stream: Optional[TextIO] = None) -> None:
    lines: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
    _start_stdin_reader(asyncio.get_running_loop(), lines, stream or sys.stdin)
    while True:
        line = await lines.get()
        if line is None:
            return
        line = line.strip()
        if line:
            controller.control.handle_message(line)


async def run_devices_async(config: Config) -> int:
    from device_controller import DeviceController

    controller = DeviceController(config)
    if not await controller.start():
        return 1
    try:
        await _feed_stdin(controller)
    finally:
        controller.set_value(0.0)
        # Let one broadcast tick carry the zero before shutting down
        await asyncio.sleep(config.device.broadcast_period_ms / 1000.0 * 2)
        await controller.stop()
    return 0


def run_devices(args: argparse.Namespace, config: Config) -> int:
    if args.url:
        config.connection.server_url = args.url
    try:
        return asyncio.run(run_devices_async(config))
    except KeyboardInterrupt:
        log_event("INFO", "Controller", "Interrupted")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run funsync")
    parser.add_argument("--log-level", default=None,
                        help="Logging level (DEBUG/INFO/WARNING/ERROR), default from config")
    sub = parser.add_subparsers(dest="command", required=True)

    p_int = sub.add_parser("intensity", help="Derive an intensity funscript")
    p_int.add_argument("input", help="Path to the source .funscript")
    p_int.add_argument("-o", "--output", default=None,
                       help="Output path (default: <input>.intensity.funscript)")
    p_int.add_argument("--sample-rate", type=int, default=None, help="Sample spacing in ms")
    p_int.add_argument("--window-radius", type=int, default=None, help="Window half-width in ms")
    p_int.add_argument("--strict-binary", action="store_true",
                       help="Reject scripts with positions other than 0 and 100")
    p_int.add_argument("--no-smoothing", action="store_true", help="Disable EWMA smoothing")
    p_int.set_defaults(handler=run_intensity)

    p_dev = sub.add_parser("devices", help="Drive devices from JSON values on stdin")
    p_dev.add_argument("--url", default=None, help="Intiface server URL")
    p_dev.set_defaults(handler=run_devices)

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    config = load_config()
    set_log_level(args.log_level or config.log_level)
    sys.exit(args.handler(args, config))


if __name__ == "__main__":
    main()
