import errno

import pytest
from fastapi.testclient import TestClient

from recovery_server import create_app
from sdcard.filesystem import FileSystemView
from sdcard.reader import BlockDevice


SECTOR_SIZE = 512
SECTORS     = 4


def sector_bytes(index: int, size: int = SECTOR_SIZE) -> bytes:
    """Distinct, non-0xE5 content for each sector."""
    return bytes((index * 31 + i) % 200 for i in range(size))


class FlakyDevice(BlockDevice):
    """A real image-backed device whose chosen sectors fail or come back short."""

    def __init__(self, path, bad_sectors=(), short_sectors=(), **kwargs):
        super().__init__(path, **kwargs)
        self.bad_sectors   = set(bad_sectors)
        self.short_sectors = set(short_sectors)
        self.reads: list[int] = []

    def _read_at(self, offset, size):
        index = offset // self.sector_size
        self.reads.append(index)
        if index in self.bad_sectors:
            raise OSError(errno.EIO, "Input/output error")
        data = super()._read_at(offset, size)
        if index in self.short_sectors:
            return data[: size // 2]
        return data


class SpyView(FileSystemView):
    def __init__(self, root):
        super().__init__(root)
        self.calls: list[tuple[str, str]] = []

    def exists(self, path):
        self.calls.append(("exists", path))
        return super().exists(path)

    def open(self, path):
        self.calls.append(("open", path))
        return super().open(path)


@pytest.fixture
def card_image(tmp_path):
    path = tmp_path / "card.img"
    path.write_bytes(b"".join(sector_bytes(i) for i in range(SECTORS)))
    return path


@pytest.fixture
def card_root(tmp_path):
    root = tmp_path / "mnt"
    (root / "docs").mkdir(parents=True)
    (root / "photos").mkdir()
    (root / "empty").mkdir()
    (root / "noindex").mkdir()
    (root / "index.htm").write_text("<h1>card</h1>")
    (root / "page.htm").write_text("<p>page</p>")
    (root / "style.css").write_text("body{}")
    (root / "notes.txt").write_text("hello")
    (root / "docs" / "index.htm").write_text("<h1>docs</h1>")
    (root / "photos" / "a.jpg").write_bytes(b"\xff\xd8jpeg")
    return root


@pytest.fixture
def device(card_image):
    dev = FlakyDevice(card_image)
    yield dev
    dev.close()


@pytest.fixture
def view(card_root):
    return SpyView(card_root)


@pytest.fixture
def client(device, view):
    return TestClient(create_app(device, view))


@pytest.fixture
def no_card_client(view):
    return TestClient(create_app(None, view))
