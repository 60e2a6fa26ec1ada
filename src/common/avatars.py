from __future__ import annotations

import asyncio
import base64
import binascii
import io
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import unquote_to_bytes, urlsplit

import httpx
from PIL import Image, UnidentifiedImageError


class AvatarError(RuntimeError):
    """Base error for avatar loading."""


class AvatarFetchError(AvatarError):
    """The avatar bytes could not be retrieved."""


class AvatarDecodeError(AvatarError):
    """The retrieved bytes are not a decodable image."""


@dataclass(frozen=True)
class ImageCacheEntry:
    """A decoded avatar: the image handle plus its natural pixel size."""

    image: Any
    width: int
    height: int


def decode_image(data: bytes) -> ImageCacheEntry:
    if not data:
        raise AvatarDecodeError("Empty image payload")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as ex:
        raise AvatarDecodeError("Failed to decode avatar image") from ex
    width, height = img.size
    return ImageCacheEntry(image=img, width=width, height=height)


def _data_url_bytes(url: str) -> bytes:
    # data:[<mediatype>][;base64],<payload>
    header, sep, payload = url[5:].partition(",")
    if not sep:
        raise AvatarFetchError("Malformed data URL")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as ex:
            raise AvatarFetchError("Malformed base64 in data URL") from ex
    return unquote_to_bytes(payload)


class AvatarClient:
    """
    Async avatar loader: fetches image bytes and decodes them with Pillow.

    Notes
    - http(s) URLs are fetched through an `httpx.AsyncClient`; `data:` URLs are
      decoded in-process without a network call.
    - Transport errors, 429 and 5xx are retried with exponential backoff.
      Other non-200 statuses fail immediately.
    - Decoding happens on the event loop thread; avatars are small.
    """

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff: float = 0.25,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._timeout = timeout
        self._max_retries = max(0, max_retries)
        self._backoff = backoff
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AvatarClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --------------- Public API ---------------
    async def fetch(self, url: str) -> ImageCacheEntry:
        """
        Load the avatar at `url` and return the decoded entry.

        Raises AvatarFetchError when the bytes cannot be retrieved and
        AvatarDecodeError when they are not an image.
        """
        scheme = urlsplit(url).scheme.lower()
        if scheme == "data":
            return decode_image(_data_url_bytes(url))
        if scheme not in ("http", "https"):
            raise AvatarFetchError(f"Unsupported avatar URL scheme: {scheme or '(none)'}")
        data = await self._request(url)
        return decode_image(data)

    # --------------- Internal ---------------
    async def _request(self, url: str) -> bytes:
        attempt = 0
        backoff = self._backoff
        last_exc: Optional[Exception] = None
        while attempt <= self._max_retries:
            try:
                resp = await self._client.get(url)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
            else:
                if resp.status_code == 200:
                    return resp.content
                if resp.status_code in (429, 500, 502, 503, 504):
                    last_exc = AvatarFetchError(f"HTTP {resp.status_code} for {url}")
                else:
                    raise AvatarFetchError(f"HTTP {resp.status_code} for {url}")

            # Retry path
            attempt += 1
            if attempt > self._max_retries:
                break
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, 4.0)

        if last_exc is not None:
            raise AvatarFetchError(f"Failed to fetch {url} after retries") from last_exc
        raise AvatarFetchError(f"Failed to fetch {url} after retries (unknown error)")


__all__ = [
    "AvatarClient",
    "AvatarDecodeError",
    "AvatarError",
    "AvatarFetchError",
    "ImageCacheEntry",
    "decode_image",
]
