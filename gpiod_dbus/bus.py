"""D-Bus connection for gpiod-dbus (dbus-fast).

Owns the well-known name, reports ownership transitions as events and exports
one ``org.gpiod.Chip`` object per exposed chip.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from dbus_fast import BusType, DBusError, ErrorType, Message, MessageType, NameFlag, PropertyAccess, RequestNameReply
from dbus_fast.aio import MessageBus
from dbus_fast.errors import InvalidBusNameError, InvalidInterfaceNameError, InvalidObjectPathError
from dbus_fast.service import ServiceInterface, dbus_property
from dbus_fast.validators import assert_bus_name_valid, assert_interface_name_valid, assert_object_path_valid

from .events import BusAcquired, LossReason, NameAcquired, NameLost

LOGGER = logging.getLogger(__name__)

BUS_NAME = "org.gpiod"
ROOT_PATH = "/org/gpiod"
INTERFACE_NAME = "org.gpiod.Chip"

DBUS_NAME = "org.freedesktop.DBus"
ACQUIRED_REPLIES = (RequestNameReply.PRIMARY_OWNER, RequestNameReply.ALREADY_OWNER)

PropertyReader = Callable[[str], Any]


class BusSetupError(RuntimeError):
    """Raised when the bus name or object layout is invalid."""


class BusRegistrationError(RuntimeError):
    """Raised when an object cannot be exported on the bus."""


class ChipInterface(ServiceInterface):
    """Read-only ``org.gpiod.Chip`` interface backed by a property reader."""

    def __init__(self, reader: PropertyReader) -> None:
        super().__init__(INTERFACE_NAME)
        self._reader = reader

    def _read(self, name: str) -> Any:
        value = self._reader(name)
        if value is None:
            raise DBusError(ErrorType.UNKNOWN_OBJECT, "chip is no longer available")
        return value

    @dbus_property(access=PropertyAccess.READ)
    def Name(self) -> "s":
        return self._read("Name")

    @dbus_property(access=PropertyAccess.READ)
    def Label(self) -> "s":
        return self._read("Label")

    @dbus_property(access=PropertyAccess.READ)
    def NumLines(self) -> "u":
        return self._read("NumLines")


def validate_layout(name: str = BUS_NAME, root: str = ROOT_PATH, interface: str = INTERFACE_NAME) -> None:
    """Check the bus name, object root and interface name before connecting."""
    try:
        assert_bus_name_valid(name)
        assert_object_path_valid(root)
        assert_interface_name_valid(interface)
    except (InvalidBusNameError, InvalidObjectPathError, InvalidInterfaceNameError) as exc:
        raise BusSetupError(f"error setting up the bus interface: {exc}") from exc


class DbusConnection:
    """System bus connection owning a single well-known name."""

    def __init__(self, post: Callable[[Any], None], name: str = BUS_NAME, bus_type: BusType = BusType.SYSTEM) -> None:
        validate_layout(name)
        self._post = post
        self._name = name
        self._bus_type = bus_type
        self._bus: Optional[MessageBus] = None
        self._owned = False
        self._ids = itertools.count(1)
        self._objects: Dict[int, Tuple[str, ChipInterface]] = {}

    @property
    def connected(self) -> bool:
        return self._bus is not None and self._bus.connected

    async def own_name(self) -> None:
        """Connect, request the name and report every ownership transition.

        Runs until the connection goes away; cancel it before releasing the
        name to stop reporting.
        """
        try:
            self._bus = await MessageBus(bus_type=self._bus_type).connect()
        except Exception as exc:
            self._post(NameLost(self._name, LossReason.NO_CONNECTION, str(exc)))
            return
        self._post(BusAcquired())

        self._bus.add_message_handler(self._on_message)
        try:
            reply = await self._bus.request_name(self._name, NameFlag.DO_NOT_QUEUE)
        except DBusError as exc:
            self._post(NameLost(self._name, LossReason.NAME_REVOKED, str(exc)))
            return
        except Exception as exc:
            self._post(NameLost(self._name, LossReason.CONNECTION_CLOSED, str(exc)))
            return
        if reply not in ACQUIRED_REPLIES:
            self._post(NameLost(self._name, LossReason.NAME_REVOKED, f"request returned {reply.name}"))
            return
        self._owned = True
        self._post(NameAcquired(self._name))

        try:
            await self._bus.wait_for_disconnect()
        except Exception as exc:
            self._post(NameLost(self._name, LossReason.CONNECTION_CLOSED, str(exc)))
            return
        self._post(NameLost(self._name, LossReason.CONNECTION_CLOSED))

    def _on_message(self, message: Message) -> Optional[bool]:
        if (
            message.message_type == MessageType.SIGNAL
            and message.sender == DBUS_NAME
            and message.member == "NameLost"
            and message.body
            and message.body[0] == self._name
        ):
            self._owned = False
            self._post(NameLost(self._name, LossReason.NAME_REVOKED))
        return None

    def register_object(self, path: str, reader: PropertyReader) -> int:
        """Export a chip object at path and return its registration id."""
        if not self.connected:
            raise BusRegistrationError(f"cannot export {path}: not connected to the bus")
        if any(registered == path for registered, _ in self._objects.values()):
            raise BusRegistrationError(f"an object is already exported at {path}")
        interface = ChipInterface(reader)
        try:
            self._bus.export(path, interface)
        except (InvalidObjectPathError, ValueError) as exc:
            raise BusRegistrationError(f"cannot export {path}: {exc}") from exc
        registration = next(self._ids)
        self._objects[registration] = (path, interface)
        return registration

    def unregister_object(self, registration: int) -> None:
        path, interface = self._objects.pop(registration)
        if self.connected:
            self._bus.unexport(path, interface)

    async def release(self) -> None:
        """Release the name and close the connection."""
        bus, self._bus = self._bus, None
        if bus is None:
            return
        if self._owned and bus.connected:
            try:
                await bus.release_name(self._name)
            except DBusError as exc:
                LOGGER.warning("error releasing bus name %s: %s", self._name, exc)
        self._owned = False
        bus.disconnect()
