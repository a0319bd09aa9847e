"""
funsync - Scan Scheduler
Starts hardware discovery every few seconds while any tracked capability
has no device, and retries a stop that previously failed.
"""

import asyncio

from device_registry import DeviceRegistry
from device_types import DiscoveryControl
from logging_utils import log_event


class ScanScheduler:
    def __init__(self, registry: DeviceRegistry, discovery: DiscoveryControl, period_ms: int = 5000):
        self.registry = registry
        self.discovery = discovery
        self.period_s = period_ms / 1000.0

    async def tick(self) -> bool:
        """One scheduling pass. Returns True if a scan was started."""
        missing = await self.registry.missing_capabilities()

        if not missing:
            if self.registry.scanning:
                await self.registry.stop_scanning()
            return False

        async with self.registry.scan_lock:
            if self.registry.scanning:
                return False
            log_event("INFO", "Scan", "Devices missing, starting scan",
                      missing=",".join(c.value for c in missing))
            try:
                await self.discovery.start_discovery()
            except Exception as e:
                log_event("ERROR", "Scan", "Error starting scan", error=e)
                return False
            self.registry.scanning = True

        log_event("INFO", "Scan", "Scan started")
        return True

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick until stop_event is set (never, in production)."""
        while not stop_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                log_event("ERROR", "Scan", "Scheduler error", error=e)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.period_s)
            except asyncio.TimeoutError:
                pass
