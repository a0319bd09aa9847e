"""
funsync - Device Controller
Owns all device-side state (slots, scanning flag, target intensity) and
the three background loops. One instance is built at startup and handed
to whatever feeds it control values; nothing here is global.
"""

import asyncio
from typing import List, Optional

from command_broadcast import CommandBroadcastLoop
from config import Config
from control_surface import ControlSurface, LatestValue
from device_registry import DeviceRegistry
from device_types import CapabilityType, HardwareTransport
from errors import DeviceConnectionError
from logging_utils import log_event
from scan_scheduler import ScanScheduler


def default_transport(config: Config) -> HardwareTransport:
    # Deferred so the engine can be built with a fake transport without
    # pulling in the client library
    from buttplug_transport import ButtplugTransport
    return ButtplugTransport(config.connection.client_name)


def tracked_capabilities(config: Config) -> List[CapabilityType]:
    capabilities = []
    for name in config.device.tracked_capabilities:
        capability = CapabilityType.parse(name)
        if capability not in capabilities:
            capabilities.append(capability)
    return capabilities


class DeviceController:
    """
    Device sync context.

    Lifecycle: build -> start() -> (set_value from producers) -> stop().
    If the server cannot be reached, start() returns False and the
    controller stays inert: values are still accepted, nothing is sent.
    """

    def __init__(self, config: Config, transport: Optional[HardwareTransport] = None):
        self.config = config
        self.transport = transport if transport is not None else default_transport(config)

        self.target = LatestValue()
        self.control = ControlSurface(self.target)
        self.registry = DeviceRegistry(self.transport, tracked_capabilities(config))
        self.scheduler = ScanScheduler(self.registry, self.transport, config.device.scan_period_ms)
        self.broadcaster = CommandBroadcastLoop(self.registry, self.target, config.device)

        self.stop_event = asyncio.Event()
        self.running = False
        self._tasks: List[asyncio.Task] = []

    def set_value(self, value: float) -> None:
        self.control.set_value(value)

    async def start(self) -> bool:
        """Connect and spawn the loops. Returns False if the server is unreachable."""
        if self.running:
            return True

        if not self.config.connection.auto_connect:
            log_event("INFO", "Controller", "Auto-connect disabled, device subsystem inactive")
            return False

        url = self.config.connection.server_url
        try:
            await self.transport.connect(url)
        except DeviceConnectionError as e:
            log_event("ERROR", "Controller", "Device subsystem inactive", error=e)
            return False

        self.stop_event.clear()
        self._tasks = [
            asyncio.create_task(self.registry.run_events(self.transport.events, self.stop_event),
                                name="funsync:events"),
            asyncio.create_task(self.scheduler.run(self.stop_event), name="funsync:scan"),
            asyncio.create_task(self.broadcaster.run(self.stop_event), name="funsync:broadcast"),
        ]
        self.running = True
        log_event("INFO", "Controller", "Started", url=url,
                  capabilities=",".join(c.value for c in self.registry.slots))
        return True

    async def stop(self) -> None:
        """Signal the loops to finish, wait for them, then disconnect."""
        if not self.running:
            return
        self.stop_event.set()
        tasks, self._tasks = self._tasks, []
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.registry.stop_scanning()
        await self.transport.disconnect()
        self.running = False
        log_event("INFO", "Controller", "Stopped",
                  sent=self.broadcaster.commands_sent, failures=self.broadcaster.send_failures)
