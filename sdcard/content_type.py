"""
content_type.py
───────────────
Maps a request path to the file actually served and its Content-Type.

Rules, in order:
    trailing "/"    append the directory index document (index.htm)
    ".src" suffix   strip it and serve as text/plain, so e.g. page.htm.src
                    returns the source of page.htm instead of rendering it
    known suffix    look up CONTENT_TYPES (case-sensitive)
    anything else   text/plain
"""

from types import MappingProxyType


INDEX_DOCUMENT = "index.htm"
SOURCE_SUFFIX  = ".src"
DEFAULT_TYPE   = "text/plain"
HTML_TYPE      = "text/html"
DOWNLOAD_TYPE  = "application/octet-stream"

CONTENT_TYPES = MappingProxyType({
    "htm": HTML_TYPE,
    "css": "text/css",
    "js":  "application/javascript",
    "png": "image/png",
    "gif": "image/gif",
    "jpg": "image/jpeg",
    "ico": "image/x-icon",
    "xml": "text/xml",
    "pdf": "application/pdf",
    "zip": "application/zip",
})


def resolve(path: str) -> tuple[str, str]:
    """Return (resolved_path, content_type) for a request path."""
    if path.endswith("/"):
        path += INDEX_DOCUMENT

    if path.endswith(SOURCE_SUFFIX):
        return path[: -len(SOURCE_SUFFIX)], DEFAULT_TYPE

    name = path.rsplit("/", 1)[-1]
    _, dot, suffix = name.rpartition(".")
    if not dot:
        return path, DEFAULT_TYPE
    return path, CONTENT_TYPES.get(suffix, DEFAULT_TYPE)
