"""Registry of chips currently exposed on the bus."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .chip import ChipHandle


class ChipRegistryError(AssertionError):
    """Raised when a registry operation violates the hotplug protocol."""


@dataclass
class ExposedChip:
    """A chip with an open handle and a bus object registered for it."""

    device_id: str
    handle: Optional[ChipHandle]
    bus: Any
    registration: Optional[int] = None

    def destroy(self) -> None:
        """Close the handle, then unregister the bus object.

        Parts that were never set up are skipped; unregistration still happens
        if closing the handle fails.
        """
        handle, self.handle = self.handle, None
        registration, self.registration = self.registration, None
        try:
            if handle is not None:
                handle.close()
        finally:
            if registration is not None:
                self.bus.unregister_object(registration)


class ChipRegistry:
    """Map device ids to exposed chips. Single writer, no locking."""

    def __init__(self) -> None:
        self._chips: Dict[str, ExposedChip] = {}

    def insert(self, record: ExposedChip) -> None:
        if record.device_id in self._chips:
            raise ChipRegistryError(f"chip {record.device_id} is already registered")
        self._chips[record.device_id] = record

    def remove(self, device_id: str) -> None:
        """Destroy the record for device_id and drop it from the registry."""
        record = self._chips.get(device_id)
        if record is None:
            raise ChipRegistryError(f"chip {device_id} is not registered")
        try:
            record.destroy()
        finally:
            del self._chips[device_id]

    def lookup(self, device_id: str) -> Optional[ExposedChip]:
        return self._chips.get(device_id)

    def clear(self) -> None:
        """Destroy every record (final teardown)."""
        while self._chips:
            self.remove(next(iter(self._chips)))

    def ids(self) -> List[str]:
        return sorted(self._chips)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._chips

    def __len__(self) -> int:
        return len(self._chips)
