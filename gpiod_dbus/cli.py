"""CLI client listing the chips exposed by gpio-dbus."""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any, Dict, List

from dbus_fast import BusType, DBusError, Message, MessageType
from dbus_fast.aio import MessageBus

from .bus import BUS_NAME, INTERFACE_NAME, ROOT_PATH

PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"


def parse_args() -> argparse.Namespace:
    """Parse CLI arguments for the listing client."""
    parser = argparse.ArgumentParser(description="List GPIO chips exposed on the bus by gpio-dbus")
    parser.add_argument("--session", action="store_true", help="Query the session bus instead of the system bus")
    parser.add_argument("chips", nargs="*", help="Only show these chips (e.g. gpiochip0)")
    return parser.parse_args()


def unpack_properties(body: List[Any]) -> Dict[str, Any]:
    """Turn a GetAll reply body into plain values."""
    props = body[0] if body else {}
    return {name: getattr(value, "value", value) for name, value in props.items()}


async def get_chip(bus: MessageBus, device_id: str) -> Dict[str, Any]:
    """Return the properties of one exposed chip."""
    reply = await bus.call(
        Message(
            destination=BUS_NAME,
            path=f"{ROOT_PATH}/{device_id}",
            interface=PROPERTIES_INTERFACE,
            member="GetAll",
            signature="s",
            body=[INTERFACE_NAME],
        )
    )
    if reply.message_type == MessageType.ERROR:
        detail = reply.body[0] if reply.body else reply.error_name
        raise RuntimeError(f"{device_id}: {detail}")
    return {"chip": device_id, **unpack_properties(reply.body)}


async def list_chips(bus_type: BusType, only: List[str]) -> List[Dict[str, Any]]:
    """Return the properties of every exposed chip (or only the named ones)."""
    bus = await MessageBus(bus_type=bus_type).connect()
    try:
        if only:
            names = list(only)
        else:
            node = await bus.introspect(BUS_NAME, ROOT_PATH)
            names = sorted(child.name for child in node.nodes)
        return [await get_chip(bus, name) for name in names]
    finally:
        bus.disconnect()


def main() -> None:
    """Run the CLI and print JSON results."""
    args = parse_args()
    bus_type = BusType.SESSION if args.session else BusType.SYSTEM
    try:
        chips = asyncio.run(list_chips(bus_type, args.chips))
    except (DBusError, OSError, RuntimeError) as exc:
        print(json.dumps({"ok": False, "error": str(exc)}, indent=2))
        raise SystemExit(1)
    print(json.dumps({"ok": True, "chips": chips}, indent=2))


if __name__ == "__main__":
    main()
