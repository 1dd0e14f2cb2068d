"""Daemon entry point for gpiod-dbus.

Owns the event loop: connects to the system bus, exposes gpiochips once the
bus name is acquired and tears everything down when asked to stop.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, List, Optional

from . import __version__
from .bus import BusSetupError, DbusConnection
from .chip import GpiodChipProvider
from .events import SignalReceived
from .hotplug import UdevHotplugSource
from .manager import BusNameLost, ChipManager
from .registry import ChipRegistryError

LOGGER = logging.getLogger(__name__)

PROG = "gpio-dbus"

SYSLOG_PRIORITIES = {
    logging.CRITICAL: 0,
    logging.ERROR: 3,
    logging.WARNING: 4,
    logging.INFO: 6,
    logging.DEBUG: 7,
}

QUIT_SIGNALS = (signal.SIGTERM, signal.SIGINT)
IGNORED_SIGNALS = (signal.SIGHUP,)


class PriorityFormatter(logging.Formatter):
    """Prefix each line with its syslog priority (``<4>message``)."""

    def __init__(self) -> None:
        super().__init__("%(message)s")

    def format(self, record: logging.LogRecord) -> str:
        priority = SYSLOG_PRIORITIES.get(record.levelno)
        if priority is None:
            priority = 5
        return f"<{priority}>{super().format(record)}"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments for the daemon."""
    parser = argparse.ArgumentParser(prog=PROG, description=f"{PROG} v{__version__} - dbus daemon for libgpiod")
    parser.add_argument("-d", "--debug", action="store_true", help="print additional debug messages")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def configure_logging(debug: bool) -> None:
    """Send priority-tagged log lines to stderr."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(PriorityFormatter())
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)


class Daemon:
    """Process-lifetime state: the event queue, the collaborators and the manager."""

    def __init__(self, events: asyncio.Queue, bus, hotplug, manager: ChipManager) -> None:
        self.events = events
        self.bus = bus
        self.hotplug = hotplug
        self.manager = manager

    async def run(self) -> int:
        """Process events until a quit signal (0) or loss of the bus name (1)."""
        loop = asyncio.get_running_loop()
        for signum in QUIT_SIGNALS + IGNORED_SIGNALS:
            loop.add_signal_handler(signum, self.events.put_nowait, SignalReceived(signum))
        owner = asyncio.create_task(self.bus.own_name())

        LOGGER.info("%s started", PROG)
        try:
            while True:
                event = await self.events.get()
                if isinstance(event, SignalReceived):
                    LOGGER.debug("%s received", signal.Signals(event.signum).name)
                    if event.signum in QUIT_SIGNALS:
                        return 0
                    continue
                self.manager.handle(event)
        except BusNameLost as exc:
            LOGGER.error("%s", exc)
            return 1
        finally:
            owner.cancel()
            for signum in QUIT_SIGNALS + IGNORED_SIGNALS:
                loop.remove_signal_handler(signum)
            await self.teardown()

    async def teardown(self) -> None:
        """Destroy every chip object, release the bus name, drop the hotplug monitor."""
        try:
            self.manager.teardown()
        finally:
            try:
                await self.bus.release()
            finally:
                self.hotplug.close()


async def serve(chips: Any) -> int:
    """Build the daemon around a chip provider and run it."""
    events: asyncio.Queue = asyncio.Queue()
    bus = DbusConnection(events.put_nowait)
    hotplug = UdevHotplugSource(events.put_nowait)
    daemon = Daemon(events, bus, hotplug, ChipManager(chips, bus, hotplug))
    return await daemon.run()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for running the daemon."""
    args = parse_args(argv)
    configure_logging(args.debug)
    LOGGER.info("initiating %s", PROG)

    try:
        chips = GpiodChipProvider()
    except RuntimeError as exc:
        LOGGER.error("%s", exc)
        return 1
    LOGGER.debug("using gpiod bindings %s", chips.version)

    try:
        status = asyncio.run(serve(chips))
    except BusSetupError as exc:
        LOGGER.error("%s", exc)
        return 1
    except OSError as exc:
        LOGGER.error("error setting up the udev monitor: %s", exc)
        return 1
    except ChipRegistryError:
        LOGGER.critical("unrecoverable internal error", exc_info=True)
        return 1

    if status == 0:
        LOGGER.info("%s exiting cleanly", PROG)
    return status


if __name__ == "__main__":
    raise SystemExit(main())
