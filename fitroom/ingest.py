"""
MIT License — image ingestion
Turns uploads and remote image URLs into data URLs for the Gemini provider.
"""

from __future__ import annotations
import io
import base64
import asyncio
import logging
import mimetypes
from typing import Optional, Protocol
from urllib.parse import quote

import httpx
from PIL import Image

from fitroom.dataurl import DEFAULT_MIME_TYPE, is_data_url, to_data_url

logger = logging.getLogger(__name__)

DEFAULT_PROXY_URL = "https://images.weserv.nl/"


class Readable(Protocol):
    filename: Optional[str]
    content_type: Optional[str]

    async def read(self) -> bytes: ...


def _guess_mime(upload: Readable) -> str:
    if upload.content_type and upload.content_type.startswith("image/"):
        return upload.content_type
    if upload.filename:
        guessed, _ = mimetypes.guess_type(upload.filename)
        if guessed:
            return guessed
    return DEFAULT_MIME_TYPE


async def from_file(upload: Readable) -> str:
    """Read an uploaded file (e.g. FastAPI's ``UploadFile``) into a data URL.

    Read errors propagate unchanged.
    """
    content = await upload.read()
    return to_data_url(_guess_mime(upload), base64.b64encode(content).decode("ascii"))


# characters encodeURIComponent leaves alone on top of quote()'s defaults
_URI_COMPONENT_SAFE = "!~*'()"


def proxy_url(url: str, proxy_base: Optional[str] = None) -> str:
    base = proxy_base or DEFAULT_PROXY_URL
    return f"{base}?url={quote(url, safe=_URI_COMPONENT_SAFE)}"


def _render_png(content: bytes) -> str:
    img = Image.open(io.BytesIO(content))
    img.load()
    surface = Image.new("RGBA", img.size)
    surface.paste(img.convert("RGBA"), (0, 0))
    buf = io.BytesIO()
    surface.save(buf, format="PNG")
    return to_data_url("image/png", base64.b64encode(buf.getvalue()).decode("ascii"))


async def _fetch(client: httpx.AsyncClient, url: str) -> bytes:
    r = await client.get(url)
    r.raise_for_status()
    return r.content


async def from_remote_url(
    url: str,
    *,
    proxy_base: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout_s: float = 30.0,
) -> str:
    """Load a remote image through the proxy and re-encode it as a PNG data URL.

    Data URLs are returned untouched without any network call. ``httpx.HTTPError``
    and Pillow decode errors (``OSError``, ``DecompressionBombError``) surface to the caller as-is.
    """
    if is_data_url(url):
        return url

    target = proxy_url(url, proxy_base)
    logger.info(f"Fetching remote image via proxy: {target}")

    if client is not None:
        content = await _fetch(client, target)
    else:
        async with httpx.AsyncClient(timeout=timeout_s, follow_redirects=True) as c:
            content = await _fetch(c, target)

    return await asyncio.to_thread(_render_png, content)
