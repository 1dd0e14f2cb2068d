"""udev hotplug source for gpiochips (pyudev)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterator, Optional

import pyudev

from .events import HotplugEvent

LOGGER = logging.getLogger(__name__)

SUBSYSTEM = "gpio"


def event_from_device(device: Any, action: Optional[str] = None) -> HotplugEvent:
    """Build a hotplug event from a pyudev device."""
    return HotplugEvent(
        action=action if action is not None else str(device.action),
        device_id=str(device.sys_name),
        device_file=device.device_node,
    )


class UdevHotplugSource:
    """Deliver udev events for one subsystem into the running event loop."""

    def __init__(
        self,
        post: Callable[[HotplugEvent], None],
        subsystem: str = SUBSYSTEM,
        context: Optional[Any] = None,
    ) -> None:
        self._post = post
        self._subsystem = subsystem
        self._context = context if context is not None else pyudev.Context()
        self._monitor: Optional[Any] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def subscribed(self) -> bool:
        return self._monitor is not None

    def subscribe(self) -> None:
        """Start the netlink monitor and watch it from the running loop."""
        if self.subscribed:
            return
        monitor = pyudev.Monitor.from_netlink(self._context)
        monitor.filter_by(subsystem=self._subsystem)
        monitor.start()
        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(monitor.fileno(), self._drain)
        self._monitor = monitor
        LOGGER.debug("subscribed to %s uevents", self._subsystem)

    def enumerate(self) -> Iterator[HotplugEvent]:
        """Yield an ``add`` event for every device already present."""
        for device in self._context.list_devices(subsystem=self._subsystem):
            yield event_from_device(device, action="add")

    def _drain(self) -> None:
        monitor = self._monitor
        if monitor is None:
            return
        while True:
            device = monitor.poll(timeout=0)
            if device is None:
                return
            self._post(event_from_device(device))

    def close(self) -> None:
        monitor, self._monitor = self._monitor, None
        if monitor is None:
            return
        if self._loop is not None:
            self._loop.remove_reader(monitor.fileno())
            self._loop = None
