"""
settings.py
───────────
Startup configuration. Read once from the environment (or the command
line, see recovery_server.main) before the app is built; never changed
while the server runs.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from sdcard.reader import SECTOR_SIZE


ENV_PREFIX     = "SDRECOVERY_"
DEFAULT_DEVICE = "/dev/mmcblk0"
DEFAULT_HOST   = "0.0.0.0"
DEFAULT_PORT   = 8000


@dataclass(frozen=True)
class Settings:
    device:      Path | None = Path(DEFAULT_DEVICE)
    mount_root:  Path | None = None
    sector_size: int         = SECTOR_SIZE
    host:        str         = DEFAULT_HOST
    port:        int         = DEFAULT_PORT
    log_level:   str         = "INFO"
    log_file:    str | None  = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            return value if value else None

        device = get("DEVICE") or DEFAULT_DEVICE
        root   = get("ROOT")
        return cls(
            device      = Path(device),
            mount_root  = Path(root) if root else None,
            sector_size = _positive_int("SECTOR_SIZE", get("SECTOR_SIZE"), SECTOR_SIZE),
            host        = get("HOST") or DEFAULT_HOST,
            port        = _positive_int("PORT", get("PORT"), DEFAULT_PORT),
            log_level   = (get("LOG_LEVEL") or "INFO").upper(),
            log_file    = get("LOG_FILE"),
        )


def _positive_int(name: str, raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}.") from None
    if value <= 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be positive, got {value}.")
    return value
