"""
Shared pytest fixtures for gpiod-dbus tests.

The provider, bus and hotplug collaborators are replaced with in-memory fakes
that record what the manager asked of them.
"""

import itertools
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from gpiod_dbus.bus import BusRegistrationError
from gpiod_dbus.chip import ChipHandle, ChipInfo
from gpiod_dbus.events import HotplugEvent
from gpiod_dbus.manager import ChipManager


# ============================================================================
# Fake collaborators
# ============================================================================

class FakeRawChip:
    def __init__(self) -> None:
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1


class FakeChipProvider:
    """Opens chips from a table of ChipInfo; missing ids fail like a vanished device."""

    def __init__(self, chips: Dict[str, ChipInfo]) -> None:
        self.chips = dict(chips)
        self.failures: Dict[str, OSError] = {}
        self.opened: List[ChipHandle] = []
        self.raw: Dict[str, List[FakeRawChip]] = {}

    def open(self, device_id: str) -> ChipHandle:
        if device_id in self.failures:
            raise self.failures[device_id]
        if device_id not in self.chips:
            raise FileNotFoundError(2, "No such file or directory", f"/dev/{device_id}")
        raw = FakeRawChip()
        self.raw.setdefault(device_id, []).append(raw)
        handle = ChipHandle(device_id, raw, self.chips[device_id])
        self.opened.append(handle)
        return handle


class FakeBus:
    """Records exported objects; registration ids are never reused."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.objects: Dict[int, Tuple[str, Callable[[str], Any]]] = {}
        self.reject: set = set()
        self.unregistered: List[int] = []
        self.released = False
        self.script: List[Any] = []
        self.post: Optional[Callable[[Any], None]] = None

    def register_object(self, path: str, reader: Callable[[str], Any]) -> int:
        if path in self.reject:
            raise BusRegistrationError(f"cannot export {path}")
        registration = next(self._ids)
        self.objects[registration] = (path, reader)
        return registration

    def unregister_object(self, registration: int) -> None:
        del self.objects[registration]
        self.unregistered.append(registration)

    def paths(self) -> List[str]:
        return sorted(path for path, _ in self.objects.values())

    def read(self, path: str, name: str) -> Any:
        for registered, reader in self.objects.values():
            if registered == path:
                return reader(name)
        raise KeyError(path)

    async def own_name(self) -> None:
        for event in self.script:
            self.post(event)

    async def release(self) -> None:
        self.released = True


class FakeHotplug:
    def __init__(self) -> None:
        self.present: List[HotplugEvent] = []
        self.subscribed = False
        self.closed = False

    def subscribe(self) -> None:
        self.subscribed = True

    def enumerate(self):
        return iter(list(self.present))

    def close(self) -> None:
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def chip_table() -> Dict[str, ChipInfo]:
    return {
        "gpiochip0": ChipInfo(name="gpiochip0", label="pinctrl-bcm2711", num_lines=58),
        "gpiochip1": ChipInfo(name="gpiochip1", label="raspberrypi-exp-gpio", num_lines=8),
        "gpiochip2": ChipInfo(name="gpiochip2", label="mcp23017", num_lines=16),
    }


@pytest.fixture
def provider(chip_table) -> FakeChipProvider:
    return FakeChipProvider(chip_table)


@pytest.fixture
def bus() -> FakeBus:
    return FakeBus()


@pytest.fixture
def hotplug() -> FakeHotplug:
    return FakeHotplug()


@pytest.fixture
def manager(provider, bus, hotplug) -> ChipManager:
    return ChipManager(provider, bus, hotplug)

