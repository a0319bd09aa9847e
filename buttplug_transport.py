"""
funsync - Buttplug Transport
Wraps a Buttplug client connected to an Intiface server. Client callbacks
become DeviceEvents on an asyncio queue, and client devices become
DeviceHandles with a send() that issues scalar output commands.
"""

import asyncio
from typing import Any, Callable, FrozenSet

from buttplug import ButtplugClient, DeviceOutputCommand, OutputType

from device_types import (
    CapabilityType,
    DeviceAdded,
    DeviceEvent,
    DeviceHandle,
    DeviceRemoved,
    ScanningFinished,
)
from errors import DeviceConnectionError
from logging_utils import log_event


_OUTPUT_TYPES = {
    CapabilityType.OSCILLATE: OutputType.OSCILLATE,
    CapabilityType.VIBRATE: OutputType.VIBRATE,
}


def device_capabilities(device: Any) -> FrozenSet[CapabilityType]:
    """Capabilities a Buttplug device exposes, limited to the known kinds."""
    return frozenset(c for c in CapabilityType if device.has_output(c.value))


class ButtplugTransport:
    """Hardware transport backed by the buttplug client library"""

    def __init__(self, client_name: str = "Video player Client",
                 client_factory: Callable[[str], Any] = ButtplugClient):
        self.client = client_factory(client_name)
        self.events: "asyncio.Queue[DeviceEvent]" = asyncio.Queue()
        self.connected = False
        self._bind_client_callbacks()

    def _bind_client_callbacks(self) -> None:
        self.client.on_device_added = self._on_device_added
        self.client.on_device_removed = self._on_device_removed
        self.client.on_scanning_finished = self._on_scanning_finished
        self.client.on_server_disconnect = self._on_server_disconnect

    async def connect(self, url: str) -> None:
        """Connect to the server. Raises DeviceConnectionError on failure."""
        try:
            await self.client.connect(url)
        except Exception as e:
            self.connected = False
            log_event("ERROR", "Transport", "Failed to connect to Buttplug server", url=url, error=e)
            raise DeviceConnectionError(f"failed to connect to {url}: {e}") from e
        self.connected = True
        log_event("INFO", "Transport", "Connected", url=url)

    async def disconnect(self) -> None:
        if not self.connected:
            return
        self.connected = False
        try:
            await self.client.disconnect()
        except Exception as e:
            log_event("WARNING", "Transport", "Disconnect failed", error=e)

    async def start_discovery(self) -> None:
        await self.client.start_scanning()

    async def stop_discovery(self) -> None:
        await self.client.stop_scanning()

    def make_handle(self, device: Any) -> DeviceHandle:
        async def send(capability: CapabilityType, value: float) -> None:
            await device.run_output(DeviceOutputCommand(_OUTPUT_TYPES[capability], float(value)))

        return DeviceHandle(
            name=device.name,
            capabilities=device_capabilities(device),
            send=send,
            index=getattr(device, "index", None),
        )

    # Client callbacks

    def _on_device_added(self, device: Any) -> None:
        self.events.put_nowait(DeviceAdded(self.make_handle(device)))

    def _on_device_removed(self, device: Any) -> None:
        self.events.put_nowait(DeviceRemoved(name=device.name, index=getattr(device, "index", None)))

    def _on_scanning_finished(self) -> None:
        self.events.put_nowait(ScanningFinished())

    def _on_server_disconnect(self) -> None:
        self.connected = False
        log_event("WARNING", "Transport", "Server disconnected")

