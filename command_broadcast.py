"""
funsync - Command Broadcast Loop
Sends the latest control value to every connected device at a fixed rate.

Commands are not queued: a slow or failing device only misses ticks, and
the next tick carries whatever value is current by then.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple

from config import DeviceConfig
from control_surface import LatestValue, clamp_unit
from device_registry import DeviceRegistry
from device_types import CapabilityType, DeviceHandle
from logging_utils import log_event, log_event_throttled, reset_throttle

# A device failing every tick is reported at most this often
FAILURE_LOG_INTERVAL_MS = 2000


def vibrate_output(value: float, dead_zone: float = 0.03, gain: float = 1.5) -> float:
    """Vibration feels stronger than oscillation at the same level, so cut
    the bottom off and stretch the rest."""
    if value < dead_zone:
        return 0.0
    return clamp_unit((value - dead_zone) * gain)


def oscillate_output(value: float) -> float:
    return value


class CommandBroadcastLoop:
    """
    Fixed-rate sender.

    tick() sends one round and waits for it. run() uses dispatch() instead,
    which gives every slot its own in-flight send: a slot still waiting on
    its device skips the tick while the other slots keep their cadence.
    """

    def __init__(self, registry: DeviceRegistry, target: LatestValue,
                 device_config: Optional[DeviceConfig] = None):
        cfg = device_config or DeviceConfig()
        self.registry = registry
        self.target = target
        self.period_s = cfg.broadcast_period_ms / 1000.0
        self.timeout_s = cfg.command_timeout_ms / 1000.0
        self.output_for: Dict[CapabilityType, Callable[[float], float]] = {
            CapabilityType.OSCILLATE: oscillate_output,
            CapabilityType.VIBRATE: lambda v: vibrate_output(v, cfg.vibrate_dead_zone, cfg.vibrate_gain),
        }
        self.commands_sent = 0
        self.send_failures = 0
        self.skipped_sends = 0
        self._in_flight: Dict[CapabilityType, asyncio.Task] = {}

    async def _pending(self) -> List[Tuple[CapabilityType, DeviceHandle, float]]:
        value = clamp_unit(self.target.load())
        pending = []
        for capability in self.registry.slots:
            handle = await self.registry.handle_for(capability)
            if handle is None:
                continue
            pending.append((capability, handle, self.output_for[capability](value)))
        return pending

    async def tick(self) -> Dict[CapabilityType, float]:
        """Send one round of commands. Returns the values that were sent."""
        pending = await self._pending()
        if not pending:
            return {}

        results = await asyncio.gather(
            *(self._send(handle, capability, output) for capability, handle, output in pending)
        )
        return {capability: output for (capability, _, output), ok in zip(pending, results) if ok}

    async def dispatch(self) -> List[CapabilityType]:
        """Start one send per occupied slot without waiting for it.

        Returns the capabilities a send was started for.
        """
        started = []
        for capability, handle, output in await self._pending():
            previous = self._in_flight.get(capability)
            if previous is not None and not previous.done():
                self.skipped_sends += 1
                continue
            self._in_flight[capability] = asyncio.create_task(
                self._send(handle, capability, output), name=f"funsync:send:{capability.value}")
            started.append(capability)
        return started

    async def drain(self) -> None:
        """Wait for sends started by dispatch() to finish."""
        tasks, self._in_flight = list(self._in_flight.values()), {}
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _send(self, handle: DeviceHandle, capability: CapabilityType, output: float) -> bool:
        throttle_key = f"send:{handle.name}:{capability.value}"
        try:
            await asyncio.wait_for(handle.send(capability, output), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            self.send_failures += 1
            log_event_throttled(throttle_key, FAILURE_LOG_INTERVAL_MS, "WARNING", "Broadcast",
                                "Send timeout", device=handle.name, capability=capability.value)
            return False
        except Exception as e:
            self.send_failures += 1
            log_event_throttled(throttle_key, FAILURE_LOG_INTERVAL_MS, "ERROR", "Broadcast",
                                "Error sending command", device=handle.name,
                                capability=capability.value, error=e)
            return False
        self.commands_sent += 1
        # Next failure after a recovery is reported straight away
        reset_throttle(throttle_key)
        return True

    async def run(self, stop_event: asyncio.Event) -> None:
        """Dispatch every period until stop_event is set."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        try:
            while not stop_event.is_set():
                try:
                    await self.dispatch()
                except Exception as e:
                    log_event("ERROR", "Broadcast", "Broadcast error", error=e)

                next_tick += self.period_s
                delay = next_tick - loop.time()
                if delay < 0:
                    # Fell behind; skip missed ticks instead of bursting
                    next_tick = loop.time()
                    delay = 0
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.drain()
