"""
reader.py
─────────
Sector-level, read-only access to the card being recovered.

The device is either a raw block device node (e.g. /dev/mmcblk0) or a dd
image of one. Every access reads exactly one sector at a fixed offset, and
a failed read comes back as a SectorRead with no data instead of raising,
so callers can keep walking the device past bad media.

Usage:
    from sdcard.reader import BlockDevice

    with BlockDevice("/dev/mmcblk0") as dev:
        for sector in dev.iter_sectors(0, 4):
            print(sector.index, sector.ok)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator


SECTOR_SIZE = 512   # SD cards address in 512-byte blocks

logger = logging.getLogger(__name__)


@dataclass
class SectorRead:
    index: int
    data:  bytes | None     # None when the sector could not be read

    @property
    def ok(self) -> bool:
        return self.data is not None


class BlockDevice:
    """
    A card exposed as a sequence of fixed-size sectors.

    Sector count is derived from the device size (seek to end), so it works
    for both block device nodes and regular image files. A trailing partial
    sector is not addressable.
    """

    def __init__(self, path: str | Path, sector_size: int = SECTOR_SIZE):
        if sector_size <= 0:
            raise ValueError(f"Sector size must be positive, got {sector_size}.")

        self.path        = Path(path)
        self.sector_size = sector_size
        self._f          = open(self.path, "rb", buffering=0)

        try:
            self.device_size = self._f.seek(0, os.SEEK_END)
        except OSError:
            self._f.close()
            raise

        self.sector_count = self.device_size // sector_size

    @property
    def image_size(self) -> int:
        """Bytes in a full raw image: every addressable sector."""
        return self.sector_count * self.sector_size

    def read_sector(self, index: int) -> SectorRead:
        if not 0 <= index < self.sector_count:
            raise IndexError(
                f"Sector {index} out of range "
                f"(device has {self.sector_count} sectors)."
            )
        try:
            data = self._read_at(index * self.sector_size, self.sector_size)
        except OSError as e:
            logger.debug("Sector %d read failed: %s", index, e)
            return SectorRead(index=index, data=None)

        if len(data) != self.sector_size:
            logger.debug("Sector %d short read: %d bytes", index, len(data))
            return SectorRead(index=index, data=None)

        return SectorRead(index=index, data=data)

    def iter_sectors(self, start: int = 0, end: int | None = None) -> Iterator[SectorRead]:
        """Yield sectors start..end-1 (or to the last sector) in ascending order."""
        if end is None or end > self.sector_count:
            end = self.sector_count
        for index in range(start, end):
            yield self.read_sector(index)

    def _read_at(self, offset: int, size: int) -> bytes:
        self._f.seek(offset)
        return self._f.read(size)

    def close(self) -> None:
        self._f.close()

    def __enter__(self) -> "BlockDevice":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"<BlockDevice path={str(self.path)!r} "
            f"sectors={self.sector_count} "
            f"sector_size={self.sector_size}>"
        )


def open_device(path: str | Path | None, sector_size: int = SECTOR_SIZE) -> BlockDevice | None:
    """
    Open the card at startup. Returns None (card not detected) when the
    device is missing or unreadable; the service keeps running without it.
    """
    if path is None:
        logger.warning("No card device configured.")
        return None
    try:
        device = BlockDevice(path, sector_size=sector_size)
    except OSError as e:
        logger.warning("SD card not detected at %s: %s", path, e)
        return None

    logger.info(
        "SD card initialized: %s (%d sectors of %d bytes)",
        device.path, device.sector_count, device.sector_size,
    )
    return device
