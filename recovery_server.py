"""
recovery_server.py
──────────────────
FastAPI server exposing an SD card over HTTP for recovery.

Endpoints:
    GET    /list?dir=<path>     Stream a directory listing as a JSON array
    GET    /raw                 Stream the whole card as a raw sector image
    GET    /<path>[?download]   Serve a file from the card's filesystem
                                (anything unmatched ends in a 404 diagnostic)

The raw image is the recovery path of last resort: it reads the device
sector by sector and does not depend on the filesystem being intact.

Run:
    sd-web-recovery --device /dev/mmcblk0 --root /media/sdcard
    SDRECOVERY_DEVICE=card.img uvicorn --factory recovery_server:app_factory
"""

import argparse
import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from logging_config import setup_logging
from sdcard import content_type
from sdcard.filesystem import FileHandle, FileSystemView, mount_view
from sdcard.listing import stream_listing
from sdcard.raw_image import RawImage
from sdcard.reader import BlockDevice, open_device
from settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Application state ─────────────────────────────────────────────────────────
@dataclass
class RecoveryState:
    """
    Everything decided at startup. card_detected never changes afterwards.

    lock admits one streamed body at a time: the server handles a single
    transfer in flight and later requests wait for it to finish. This keeps
    device reads strictly sequential at the cost of throughput.
    """
    device:     BlockDevice | None
    filesystem: FileSystemView | None
    lock:       asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def card_detected(self) -> bool:
        return self.device is not None

    def exists(self, path: str) -> bool:
        return self.filesystem is not None and self.filesystem.exists(path)

    def open(self, path: str) -> FileHandle | None:
        if self.filesystem is None:
            return None
        return self.filesystem.open(path)

    async def one_at_a_time(self, body: AsyncIterator) -> AsyncIterator:
        async with self.lock:
            async with aclosing(body):
                async for chunk in body:
                    yield chunk


def get_state(request: Request) -> RecoveryState:
    return request.app.state.recovery


def _streamed(body: AsyncIterator, media_type: str, length: int | None = None) -> StreamingResponse:
    # Content-Type passed verbatim: no charset is appended to text types.
    headers = {"Content-Type": media_type}
    if length is not None:
        headers["Content-Length"] = str(length)
    return StreamingResponse(body, headers=headers)


# ── GET /list ─────────────────────────────────────────────────────────────────
@router.get("/list")
async def print_directory(
    directory: str | None = Query(None, alias="dir"),
    state: RecoveryState = Depends(get_state),
):
    """
    Stream the entries of one directory as
    [{"type":"dir"|"file","name":"<path>"}, ...] with no declared length.
    """
    if directory is None:
        raise HTTPException(status_code=400, detail="BAD ARGS")
    if directory != "/" and not state.exists(directory):
        raise HTTPException(status_code=400, detail="BAD PATH")

    handle = state.open(directory)
    if handle is None or not handle.is_directory:
        if handle is not None:
            handle.close()
        raise HTTPException(status_code=400, detail="NOT DIR")

    handle.rewind()
    return _streamed(state.one_at_a_time(stream_listing(handle)), "text/json")


# ── GET /raw ──────────────────────────────────────────────────────────────────
@router.get("/raw")
async def stream_raw(state: RecoveryState = Depends(get_state)):
    """Stream every sector of the card; unreadable sectors become 0xE5 blocks."""
    if state.device is None:
        logger.warning("Raw image requested but no card was detected.")
        return Response(content=b"", media_type=content_type.DOWNLOAD_TYPE)

    image = RawImage(state.device)
    return _streamed(
        state.one_at_a_time(image.stream()),
        content_type.DOWNLOAD_TYPE,
        image.content_length,
    )


# ── Static files ──────────────────────────────────────────────────────────────
async def _send_file(handle: FileHandle) -> AsyncIterator[bytes]:
    expected = handle.size
    sent     = 0
    try:
        async for chunk in handle.chunks():
            yield chunk
            sent += len(chunk)
    finally:
        handle.close()
        if sent != expected:
            logger.warning(
                "Sent less data than expected for %s: %d of %d bytes confirmed.",
                handle.path, sent, expected,
            )


def load_from_card(path: str, download: bool, state: RecoveryState) -> StreamingResponse | None:
    """
    Serve a file from the card, or its directory's index.htm.
    Returns None when nothing suitable exists.
    """
    path, media_type = content_type.resolve(path)

    handle = state.open(path)
    if handle is not None and handle.is_directory:
        handle.close()
        path = path.rstrip("/") + "/" + content_type.INDEX_DOCUMENT
        media_type = content_type.HTML_TYPE
        handle = state.open(path)

    if handle is None:
        return None
    if handle.is_directory:
        handle.close()
        return None

    if download:
        media_type = content_type.DOWNLOAD_TYPE

    return _streamed(state.one_at_a_time(_send_file(handle)), media_type, handle.size)


# ── Fallback ──────────────────────────────────────────────────────────────────
def not_found_message(request: Request, path: str, card_detected: bool) -> str:
    message = "" if card_detected else "SDCARD Not Detected\n\n"
    args = request.query_params.multi_items()

    message += f"URI: {path}\nMethod: {request.method}\nArguments: {len(args)}\n"
    for name, value in args:
        message += f" NAME:{name}\n VALUE:{value}\n"
    return message


@router.api_route("/{path:path}", methods=["GET", "POST"])
async def handle_not_found(
    request: Request,
    path: str,
    state: RecoveryState = Depends(get_state),
):
    """Try the card's filesystem first; otherwise describe the request in a 404."""
    path = "/" + path
    if state.card_detected:
        response = load_from_card(path, "download" in request.query_params, state)
        if response is not None:
            return response

    message = not_found_message(request, path, state.card_detected)
    logger.info(message)
    return PlainTextResponse(message, status_code=404)


async def _plain_text_error(request: Request, exc: StarletteHTTPException):
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


# ── App construction ──────────────────────────────────────────────────────────
def create_app(device: BlockDevice | None, filesystem: FileSystemView | None) -> FastAPI:
    # No /docs or /openapi.json: every unmatched path belongs to the card.
    app = FastAPI(title="SD Web Recovery", docs_url=None, redoc_url=None, openapi_url=None)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, _plain_text_error)

    app.state.recovery = RecoveryState(device=device, filesystem=filesystem)
    app.include_router(router)
    return app


def build_app(settings: Settings) -> FastAPI:
    device     = open_device(settings.device, settings.sector_size)
    filesystem = mount_view(settings.mount_root)
    return create_app(device, filesystem)


def app_factory() -> FastAPI:
    """Entry point for `uvicorn --factory recovery_server:app_factory`."""
    settings = Settings.from_env()
    setup_logging("sdrecovery", settings.log_level, settings.log_file)
    return build_app(settings)


# ── CLI ───────────────────────────────────────────────────────────────────────
def parse_args(argv: list[str] | None = None, defaults: Settings | None = None) -> Settings:
    defaults = defaults or Settings.from_env()

    parser = argparse.ArgumentParser(description="Serve an SD card over HTTP for recovery.")
    parser.add_argument("--device", type=Path, default=defaults.device,
                        help="Block device or image to read sectors from")
    parser.add_argument("--root", type=Path, default=defaults.mount_root,
                        help="Directory where the card's filesystem is mounted")
    parser.add_argument("--sector-size", type=int, default=defaults.sector_size,
                        help="Bytes per sector")
    parser.add_argument("--host", default=defaults.host)
    parser.add_argument("--port", type=int, default=defaults.port)
    parser.add_argument("--log-level", default=defaults.log_level,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        type=str.upper)
    parser.add_argument("--log-file", default=defaults.log_file)
    args = parser.parse_args(argv)

    if args.sector_size <= 0:
        parser.error("--sector-size must be positive")

    return Settings(
        device      = args.device,
        mount_root  = args.root,
        sector_size = args.sector_size,
        host        = args.host,
        port        = args.port,
        log_level   = args.log_level,
        log_file    = args.log_file,
    )


def main(argv: list[str] | None = None) -> None:
    settings = parse_args(argv)
    setup_logging("sdrecovery", settings.log_level, settings.log_file)

    app = build_app(settings)
    logger.info("HTTP server starting on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port,
                workers=1, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
