"""gpiod-dbus package: exposes GPIO chips as objects on the system bus."""

__version__ = "0.1.0"

__all__ = [
    "bus",
    "chip",
    "cli",
    "daemon",
    "events",
    "hotplug",
    "manager",
    "registry",
]
