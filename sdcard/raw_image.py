"""
raw_image.py
────────────
Streams the whole card as one raw image, sector 0 to the last sector.

A sector that fails to read is replaced by a block of DAMAGED_SECTOR bytes
of the same length and the transfer carries on, so the image always has
exactly sector_count * sector_size bytes and every sector stays at its true
offset. A substituted sector is indistinguishable on the wire from one that
really contains 0xE5 throughout.

Sectors are read in runs of SECTORS_PER_CHUNK in the threadpool (device
I/O blocks) and each run goes out as one body chunk.

Usage:
    image = RawImage(device)
    response = StreamingResponse(image.stream(), ...)
"""

import hashlib
import logging
from typing import AsyncIterator

from starlette.concurrency import run_in_threadpool

from sdcard.reader import BlockDevice


DAMAGED_SECTOR    = 0xE5
SECTORS_PER_CHUNK = 128     # 64 KB per write at 512-byte sectors
DAMAGED_KEPT      = 16      # damaged sector indices remembered for the summary

logger = logging.getLogger(__name__)


class RawImage:
    def __init__(self, device: BlockDevice, sectors_per_chunk: int = SECTORS_PER_CHUNK):
        if sectors_per_chunk <= 0:
            raise ValueError(f"sectors_per_chunk must be positive, got {sectors_per_chunk}.")

        self.device            = device
        self.sectors_per_chunk = sectors_per_chunk
        self.damaged_count     = 0
        self.first_damaged: list[int] = []
        self.bytes_sent        = 0
        self._marker           = bytes([DAMAGED_SECTOR]) * device.sector_size
        self._digest           = hashlib.sha256()

    @property
    def content_length(self) -> int:
        return self.device.image_size

    def read_run(self, start: int, count: int) -> bytes:
        """Read sectors start..start+count-1 into one contiguous block."""
        size = self.device.sector_size
        run  = bytearray(count * size)

        for n, sector in enumerate(self.device.iter_sectors(start, start + count)):
            if sector.ok:
                run[n * size : (n + 1) * size] = sector.data
            else:
                run[n * size : (n + 1) * size] = self._marker
                self.damaged_count += 1
                if len(self.first_damaged) < DAMAGED_KEPT:
                    self.first_damaged.append(sector.index)
                logger.error("Error reading sector %d", sector.index)

        return bytes(run)

    async def stream(self) -> AsyncIterator[bytes]:
        total = self.device.sector_count
        logger.info(
            "%d sectors, %d bytes per sector, %d bytes.",
            total, self.device.sector_size, self.content_length,
        )

        try:
            for start in range(0, total, self.sectors_per_chunk):
                count = min(self.sectors_per_chunk, total - start)
                chunk = await run_in_threadpool(self.read_run, start, count)
                self._digest.update(chunk)
                yield chunk
                self.bytes_sent += len(chunk)     # confirmed: the consumer asked for more
        finally:
            if self.bytes_sent == self.content_length:
                logger.info(
                    "Raw image sent: %d bytes, %d damaged sectors (first: %s), sha256=%s",
                    self.bytes_sent, self.damaged_count, self.first_damaged,
                    self._digest.hexdigest(),
                )
            else:
                logger.warning(
                    "Raw image transfer stopped: %d of %d bytes confirmed sent.",
                    self.bytes_sent, self.content_length,
                )
