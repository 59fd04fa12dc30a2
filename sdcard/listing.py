"""
listing.py
──────────
Streams one directory as a JSON array:

    [{"type":"dir","name":"/DCIM"},{"type":"file","name":"/boot.ini"}]

Entries are serialised and closed one at a time in the filesystem's own
enumeration order; the full listing is never held in memory.
"""

import json
from typing import AsyncIterator

from sdcard.filesystem import FileHandle


def describe(entry: FileHandle) -> str:
    return json.dumps(
        {"type": "dir" if entry.is_directory else "file", "name": entry.path},
        separators=(",", ":"),
    )


async def stream_listing(directory: FileHandle) -> AsyncIterator[str]:
    """Yield the array text piecewise. Closes the directory handle when done."""
    try:
        yield "["
        count = 0
        while (entry := directory.open_next_file()) is not None:
            with entry:
                item = describe(entry)
            yield ("," if count else "") + item
            count += 1
        yield "]"
    finally:
        directory.close()
