"""Chip lifecycle manager.

Reacts to bus-ownership transitions and udev hotplug events, keeps the chip
registry consistent with the set of present chips and answers property reads
for the exported objects.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Dict, Optional

from .bus import ROOT_PATH, BusRegistrationError
from .chip import ChipHandle
from .events import BusAcquired, BusState, HotplugEvent, LossReason, NameAcquired, NameLost
from .registry import ChipRegistry, ChipRegistryError, ExposedChip

LOGGER = logging.getLogger(__name__)

CHIP_PROPERTIES: Dict[str, Callable[[ChipHandle], Any]] = {
    "Name": lambda handle: handle.name,
    "Label": lambda handle: handle.label,
    "NumLines": lambda handle: int(handle.num_lines),
}


class BusNameLost(RuntimeError):
    """Raised when the daemon can no longer own its name on the bus."""

    def __init__(self, event: NameLost) -> None:
        self.reason = event.reason
        self.detail = event.detail
        if event.reason is LossReason.NO_CONNECTION:
            message = "unable to make connection to the bus"
        elif event.reason is LossReason.CONNECTION_CLOSED:
            message = "connection to the bus closed, dying..."
        else:
            message = f"name '{event.name}' lost on the bus, dying..."
        if event.detail:
            message = f"{message} ({event.detail})"
        super().__init__(message)


def object_path(device_id: str) -> str:
    """Return the bus object path for a device."""
    return f"{ROOT_PATH}/{device_id}"


class ChipManager:
    """Drive the chip registry from bus and hotplug events."""

    def __init__(self, chips, bus, hotplug, registry: Optional[ChipRegistry] = None) -> None:
        self._chips = chips
        self._bus = bus
        self._hotplug = hotplug
        self.registry = registry if registry is not None else ChipRegistry()
        self.state = BusState.UNOWNED

    def handle(self, event: Any) -> None:
        """Apply a single event. BusNameLost and ChipRegistryError propagate."""
        if isinstance(event, HotplugEvent):
            self.on_hotplug(event)
        elif isinstance(event, BusAcquired):
            self.on_bus_acquired(event)
        elif isinstance(event, NameAcquired):
            self.on_name_acquired(event)
        elif isinstance(event, NameLost):
            self.on_name_lost(event)
        else:
            LOGGER.warning("ignoring unexpected event %r", event)

    def on_bus_acquired(self, event: BusAcquired) -> None:
        LOGGER.debug("DBus connection acquired")
        self.state = BusState.CONNECTED

    def on_name_acquired(self, event: NameAcquired) -> None:
        LOGGER.debug("DBus name acquired: '%s'", event.name)
        self.state = BusState.NAME_ACQUIRED

        # Subscribe before enumerating so no chip can slip between the two.
        self._hotplug.subscribe()
        for device in self._hotplug.enumerate():
            if device.is_chip_device:
                self.add_chip(device.device_id)

    def on_name_lost(self, event: NameLost) -> None:
        LOGGER.debug("DBus name lost: '%s'", event.name)
        self.state = BusState.NAME_LOST
        raise BusNameLost(event)

    def on_hotplug(self, event: HotplugEvent) -> None:
        if not event.is_chip_device:
            return

        LOGGER.debug("uevent: %s action on %s device", event.action, event.device_id)

        if event.action == "add":
            self.add_chip(event.device_id)
        elif event.action == "remove":
            self.remove_chip(event.device_id)
        else:
            LOGGER.warning("unknown action for uevent: %s", event.action)

    def add_chip(self, device_id: str) -> Optional[ExposedChip]:
        """Open the chip and export it; return None if either step fails."""
        if device_id in self.registry:
            raise ChipRegistryError(f"duplicate add for chip {device_id}")

        LOGGER.debug("creating a dbus object for %s", device_id)

        try:
            handle = self._chips.open(device_id)
        except OSError as exc:
            LOGGER.warning("error opening GPIO device %s: %s", device_id, exc)
            return None

        record = ExposedChip(device_id=device_id, handle=handle, bus=self._bus)
        reader = functools.partial(self.get_property, device_id)
        try:
            record.registration = self._bus.register_object(object_path(device_id), reader)
        except BusRegistrationError as exc:
            record.destroy()
            LOGGER.warning("error registering a dbus object: %s", exc)
            return None

        self.registry.insert(record)
        return record

    def remove_chip(self, device_id: str) -> None:
        LOGGER.debug("removing a dbus object for %s", device_id)
        self.registry.remove(device_id)

    def get_property(self, device_id: str, name: str) -> Any:
        """Return the value of a chip property, or None if it is unknown."""
        LOGGER.debug("property get - object: %s, property: %s", object_path(device_id), name)
        record = self.registry.lookup(device_id)
        getter = CHIP_PROPERTIES.get(name)
        if record is None or record.handle is None or getter is None:
            return None
        return getter(record.handle)

    def teardown(self) -> None:
        """Destroy every exposed chip."""
        if len(self.registry):
            LOGGER.debug("destroying %d chip object(s)", len(self.registry))
        self.registry.clear()
