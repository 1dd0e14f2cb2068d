"""Chip handle provider for gpiod-dbus (libgpiod-backed)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
import logging
import os

LOGGER = logging.getLogger(__name__)

DEFAULT_DEV_DIR = "/dev"


@dataclass(frozen=True)
class ChipInfo:
    """Static chip metadata, read once when the chip is opened."""

    name: str
    label: str
    num_lines: int


class ChipHandle:
    """An open GPIO chip.

    The metadata is cached at open time so property reads never touch the
    device again.
    """

    def __init__(self, device_id: str, chip: Any, info: ChipInfo) -> None:
        self.device_id = device_id
        self._chip = chip
        self._info = info

    @property
    def name(self) -> str:
        return self._info.name

    @property
    def label(self) -> str:
        return self._info.label

    @property
    def num_lines(self) -> int:
        return self._info.num_lines

    @property
    def closed(self) -> bool:
        return self._chip is None

    def close(self) -> None:
        chip, self._chip = self._chip, None
        if chip is None:
            return
        try:
            chip.close()
        except OSError as exc:
            LOGGER.warning("error closing GPIO device %s: %s", self.device_id, exc)


class GpiodChipProvider:
    """Open chips by device name through the gpiod bindings (v1 and v2 APIs)."""

    def __init__(self, dev_dir: str = DEFAULT_DEV_DIR, gpiod: Optional[Any] = None) -> None:
        self._dev_dir = dev_dir
        self._gpiod = gpiod if gpiod is not None else self._load_gpiod()
        self._backend = "v2" if hasattr(self._gpiod, "request_lines") else "v1"

    @staticmethod
    def _load_gpiod():
        try:
            import gpiod
        except ImportError as exc:
            raise RuntimeError("gpiod is required for GPIO access (install python3-libgpiod)") from exc
        return gpiod

    @property
    def version(self) -> str:
        """Return the version string of the loaded bindings."""
        version = getattr(self._gpiod, "__version__", None) or getattr(self._gpiod, "version_string", None)
        if callable(version):
            version = version()
        return str(version or "unknown")

    def path_for(self, device_id: str) -> str:
        return os.path.join(self._dev_dir, device_id)

    def open(self, device_id: str) -> ChipHandle:
        """Open the chip and read its metadata (raises OSError on failure)."""
        chip = self._gpiod.Chip(self.path_for(device_id))
        try:
            info = self._read_info(chip)
        except OSError:
            chip.close()
            raise
        LOGGER.debug("opened %s: name=%s label=%s lines=%d", device_id, info.name, info.label, info.num_lines)
        return ChipHandle(device_id, chip, info)

    def _read_info(self, chip: Any) -> ChipInfo:
        if self._backend == "v2":
            info = chip.get_info()
            return ChipInfo(name=str(info.name), label=str(info.label), num_lines=int(info.num_lines))
        return ChipInfo(name=str(chip.name()), label=str(chip.label()), num_lines=int(chip.num_lines()))
