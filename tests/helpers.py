"""Helpers shared by the gpiod-dbus tests."""

from gpiod_dbus.events import HotplugEvent


def chip_event(action: str, device_id: str, legacy: bool = False) -> HotplugEvent:
    """Hotplug event for a character device (or its legacy sysfs twin)."""
    return HotplugEvent(action=action, device_id=device_id, device_file=None if legacy else f"/dev/{device_id}")
