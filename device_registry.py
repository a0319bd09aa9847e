"""
funsync - Device Registry
Tracks which connected device fills each capability slot and whether
hardware discovery is running.

Each slot has its own lock so a slow reader of one slot (the broadcast
loop) never holds up event handling for the other. The scanning flag has a
separate lock shared with the ScanScheduler.
"""

import asyncio
from typing import Dict, Iterable, List, Optional

from device_types import (
    CapabilityType,
    DeviceAdded,
    DeviceEvent,
    DeviceHandle,
    DeviceRemoved,
    DiscoveryControl,
    ScanningFinished,
)
from logging_utils import log_event


class ConnectionSlot:
    """Holds at most one device for a capability"""

    def __init__(self, capability: CapabilityType):
        self.capability = capability
        self._lock = asyncio.Lock()
        self._handle: Optional[DeviceHandle] = None

    async def get(self) -> Optional[DeviceHandle]:
        async with self._lock:
            return self._handle

    async def occupy(self, handle: DeviceHandle) -> Optional[DeviceHandle]:
        """Store handle, returning whatever it replaced."""
        async with self._lock:
            previous = self._handle
            self._handle = handle
            return previous

    async def release(self, name: str, index: Optional[int] = None) -> bool:
        """Clear the slot if it holds the named device."""
        async with self._lock:
            current = self._handle
            if current is None or not _same_device(current, name, index):
                return False
            self._handle = None
            return True


def _same_device(handle: DeviceHandle, name: str, index: Optional[int]) -> bool:
    # The transport index is unique per connection; names can collide
    if index is not None and handle.index is not None:
        return handle.index == index
    return handle.name == name


class DeviceRegistry:
    """
    Connection state machine.

    Slots go Empty -> Filled on DeviceAdded and back on DeviceRemoved.
    Scanning goes Idle -> Scanning (ScanScheduler) -> Idle once every slot
    is filled.
    """

    def __init__(self, discovery: DiscoveryControl,
                 capabilities: Iterable[CapabilityType] = (CapabilityType.OSCILLATE, CapabilityType.VIBRATE)):
        self.discovery = discovery
        self.slots: Dict[CapabilityType, ConnectionSlot] = {
            capability: ConnectionSlot(capability) for capability in capabilities
        }
        if not self.slots:
            raise ValueError("at least one capability must be tracked")
        self.scan_lock = asyncio.Lock()
        self.scanning = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def handle_for(self, capability: CapabilityType) -> Optional[DeviceHandle]:
        slot = self.slots.get(capability)
        if slot is None:
            return None
        return await slot.get()

    async def missing_capabilities(self) -> List[CapabilityType]:
        missing = []
        for capability, slot in self.slots.items():
            if await slot.get() is None:
                missing.append(capability)
        return missing

    async def all_filled(self) -> bool:
        return not await self.missing_capabilities()

    async def snapshot(self) -> Dict[str, Optional[str]]:
        """Capability name -> connected device name (None when empty)."""
        result = {}
        for capability, slot in self.slots.items():
            handle = await slot.get()
            result[capability.value] = handle.name if handle is not None else None
        return result

    # ------------------------------------------------------------------
    # Discovery events
    # ------------------------------------------------------------------

    async def device_added(self, handle: DeviceHandle) -> None:
        log_event("INFO", "Registry", "Device connected", name=handle.name,
                  capabilities=",".join(sorted(c.value for c in handle.capabilities)))

        for capability in handle.capabilities:
            slot = self.slots.get(capability)
            if slot is None:
                continue
            previous = await slot.occupy(handle)
            if previous is not None and previous is not handle:
                log_event("INFO", "Registry", "Slot reassigned", capability=capability.value,
                          previous=previous.name, device=handle.name)
            else:
                log_event("INFO", "Registry", "Slot filled", capability=capability.value,
                          device=handle.name)

        if await self.all_filled():
            if await self.stop_scanning():
                log_event("INFO", "Registry", "Stopped scanning: all devices connected")

    async def device_removed(self, name: str, index: Optional[int] = None) -> None:
        log_event("INFO", "Registry", "Device removed", name=name)
        for capability, slot in self.slots.items():
            if await slot.release(name, index):
                log_event("INFO", "Registry", "Slot cleared", capability=capability.value, device=name)

    def scanning_finished(self) -> None:
        log_event("INFO", "Registry", "Device scanning finished")

    async def handle_event(self, event: DeviceEvent) -> None:
        if isinstance(event, DeviceAdded):
            await self.device_added(event.handle)
        elif isinstance(event, DeviceRemoved):
            await self.device_removed(event.name, event.index)
        elif isinstance(event, ScanningFinished):
            self.scanning_finished()
        else:
            log_event("DEBUG", "Registry", "Ignoring event", event=type(event).__name__)

    async def run_events(self, events: "asyncio.Queue[DeviceEvent]", stop_event: asyncio.Event) -> None:
        """Consume transport events until stop_event is set."""
        while not stop_event.is_set():
            try:
                event = await asyncio.wait_for(events.get(), timeout=0.1)
            except asyncio.TimeoutError:
                continue
            try:
                await self.handle_event(event)
            except Exception as e:
                log_event("ERROR", "Registry", "Event handling error", error=e)
            finally:
                events.task_done()

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    async def stop_scanning(self) -> bool:
        """Stop discovery if it is running. Returns True when it was stopped.

        Failures are logged and leave the flag set; ScanScheduler retries on
        its next tick.
        """
        async with self.scan_lock:
            if not self.scanning:
                return False
            try:
                await self.discovery.stop_discovery()
            except Exception as e:
                log_event("ERROR", "Registry", "Failed to stop scanning", error=e)
                return False
            self.scanning = False
            return True
