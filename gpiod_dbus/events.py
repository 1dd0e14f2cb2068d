"""Events delivered to the daemon's event loop."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class BusState(Enum):
    UNOWNED = "unowned"
    CONNECTED = "bus-connected"
    NAME_ACQUIRED = "name-acquired"
    NAME_LOST = "name-lost"


class LossReason(Enum):
    NO_CONNECTION = "no-connection"
    CONNECTION_CLOSED = "connection-closed"
    NAME_REVOKED = "name-revoked"


@dataclass(frozen=True)
class HotplugEvent:
    """A udev action on a device of the watched subsystem.

    Each gpiochip action produces two uevents: one for the character device
    and one for the legacy sysfs device. Only the former has a device file.
    """

    action: str
    device_id: str
    device_file: Optional[str] = None

    @property
    def is_chip_device(self) -> bool:
        return self.device_file is not None


@dataclass(frozen=True)
class BusAcquired:
    pass


@dataclass(frozen=True)
class NameAcquired:
    name: str


@dataclass(frozen=True)
class NameLost:
    name: str
    reason: LossReason
    detail: str = ""


@dataclass(frozen=True)
class SignalReceived:
    signum: int
