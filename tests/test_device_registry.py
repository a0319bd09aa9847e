import asyncio
import unittest

from device_registry import ConnectionSlot, DeviceRegistry
from device_types import CapabilityType, DeviceAdded, DeviceHandle, DeviceRemoved, ScanningFinished
from scan_scheduler import ScanScheduler

OSC = CapabilityType.OSCILLATE
VIB = CapabilityType.VIBRATE


class DummyDiscovery:
    def __init__(self):
        self.start_calls = 0
        self.stop_calls = 0
        self.fail_start = False
        self.fail_stop = False
        self.active = False

    async def start_discovery(self):
        self.start_calls += 1
        if self.fail_start:
            raise RuntimeError("start refused")
        self.active = True

    async def stop_discovery(self):
        self.stop_calls += 1
        if self.fail_stop:
            raise RuntimeError("stop refused")
        self.active = False


def make_handle(name, *capabilities, index=None):
    async def send(capability, value):
        pass

    return DeviceHandle(name=name, capabilities=frozenset(capabilities), send=send, index=index)


class TestConnectionSlot(unittest.IsolatedAsyncioTestCase):
    async def test_occupy_and_release_by_name(self):
        slot = ConnectionSlot(OSC)
        handle = make_handle("Toy A", OSC)
        self.assertIsNone(await slot.occupy(handle))
        self.assertIs(await slot.get(), handle)

        self.assertFalse(await slot.release("Toy B"))
        self.assertIs(await slot.get(), handle)

        self.assertTrue(await slot.release("Toy A"))
        self.assertIsNone(await slot.get())

    async def test_release_prefers_index_over_name(self):
        slot = ConnectionSlot(VIB)
        await slot.occupy(make_handle("Twin", VIB, index=2))

        self.assertFalse(await slot.release("Twin", index=1))
        self.assertTrue(await slot.release("Twin", index=2))


class TestDeviceRegistry(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.discovery = DummyDiscovery()
        self.registry = DeviceRegistry(self.discovery)

    async def test_two_devices_fill_slots_and_stop_scanning(self):
        self.registry.scanning = True
        toy_a = make_handle("Toy A", OSC)
        toy_b = make_handle("Toy B", VIB)

        await self.registry.device_added(toy_a)
        self.assertTrue(self.registry.scanning)
        self.assertEqual(self.discovery.stop_calls, 0)

        await self.registry.device_added(toy_b)
        self.assertIs(await self.registry.handle_for(OSC), toy_a)
        self.assertIs(await self.registry.handle_for(VIB), toy_b)
        self.assertFalse(self.registry.scanning)
        self.assertEqual(self.discovery.stop_calls, 1)

        await self.registry.device_removed("Toy A")
        self.assertIsNone(await self.registry.handle_for(OSC))
        self.assertIs(await self.registry.handle_for(VIB), toy_b)
        self.assertEqual(await self.registry.missing_capabilities(), [OSC])

    async def test_device_with_both_capabilities_fills_both_slots(self):
        both = make_handle("Combo", OSC, VIB)
        await self.registry.device_added(both)
        self.assertTrue(await self.registry.all_filled())
        self.assertEqual(await self.registry.snapshot(), {"Oscillate": "Combo", "Vibrate": "Combo"})

        await self.registry.device_removed("Combo")
        self.assertEqual(await self.registry.missing_capabilities(), [OSC, VIB])

    async def test_last_writer_wins(self):
        first = make_handle("First", OSC)
        second = make_handle("Second", OSC)
        await self.registry.device_added(first)
        await self.registry.device_added(second)
        self.assertIs(await self.registry.handle_for(OSC), second)

    async def test_untracked_capability_is_ignored(self):
        registry = DeviceRegistry(self.discovery, [VIB])
        await registry.device_added(make_handle("Stroker", OSC))
        self.assertIsNone(await registry.handle_for(OSC))
        self.assertEqual(await registry.missing_capabilities(), [VIB])

    async def test_stop_failure_leaves_scanning_and_scheduler_retries(self):
        self.registry.scanning = True
        self.discovery.fail_stop = True

        await self.registry.device_added(make_handle("Combo", OSC, VIB))
        self.assertTrue(self.registry.scanning)

        self.discovery.fail_stop = False
        scheduler = ScanScheduler(self.registry, self.discovery)
        await scheduler.tick()
        self.assertFalse(self.registry.scanning)
        self.assertEqual(self.discovery.stop_calls, 2)

    async def test_stop_scanning_when_idle_is_noop(self):
        self.assertFalse(await self.registry.stop_scanning())
        self.assertFalse(await self.registry.stop_scanning())
        self.assertFalse(self.registry.scanning)
        self.assertEqual(self.discovery.stop_calls, 0)

    async def test_filling_slots_while_idle_does_not_stop(self):
        await self.registry.device_added(make_handle("Combo", OSC, VIB))
        self.assertEqual(self.discovery.stop_calls, 0)

    async def test_run_events_consumes_queue_until_stopped(self):
        events = asyncio.Queue()
        stop_event = asyncio.Event()
        task = asyncio.create_task(self.registry.run_events(events, stop_event))

        toy = make_handle("Toy A", OSC)
        events.put_nowait(DeviceAdded(toy))
        events.put_nowait(ScanningFinished())
        await asyncio.wait_for(events.join(), timeout=1.0)
        self.assertIs(await self.registry.handle_for(OSC), toy)

        events.put_nowait(DeviceRemoved("Toy A"))
        await asyncio.wait_for(events.join(), timeout=1.0)
        self.assertIsNone(await self.registry.handle_for(OSC))

        stop_event.set()
        await asyncio.wait_for(task, timeout=1.0)

    async def test_requires_at_least_one_capability(self):
        with self.assertRaises(ValueError):
            DeviceRegistry(self.discovery, [])


if __name__ == "__main__":
    unittest.main()
