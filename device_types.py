"""
funsync - Device types
Capability kinds, device handles and the transport contracts the device
loops are written against. The Buttplug adapter implements these; tests
use in-memory fakes.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, FrozenSet, Optional, Protocol


class CapabilityType(Enum):
    """Kinds of actuation a device can expose (values match Buttplug output names)"""
    OSCILLATE = "Oscillate"
    VIBRATE = "Vibrate"

    @classmethod
    def parse(cls, name: str) -> "CapabilityType":
        for capability in cls:
            if capability.value.lower() == str(name).strip().lower():
                return capability
        raise ValueError(f"unknown capability: {name!r}")


SendFn = Callable[[CapabilityType, float], Awaitable[None]]


@dataclass(frozen=True, eq=False)
class DeviceHandle:
    """A connected actuator as seen by the registry"""
    name: str
    capabilities: FrozenSet[CapabilityType]
    send: SendFn = field(repr=False)
    index: Optional[int] = None   # Transport connection index when known


@dataclass(frozen=True)
class DeviceAdded:
    handle: DeviceHandle


@dataclass(frozen=True)
class DeviceRemoved:
    name: str
    index: Optional[int] = None


@dataclass(frozen=True)
class ScanningFinished:
    pass


DeviceEvent = DeviceAdded | DeviceRemoved | ScanningFinished


class DiscoveryControl(Protocol):
    async def start_discovery(self) -> None: ...

    async def stop_discovery(self) -> None: ...


class HardwareTransport(DiscoveryControl, Protocol):
    events: "asyncio.Queue[DeviceEvent]"

    async def connect(self, url: str) -> None: ...

    async def disconnect(self) -> None: ...
