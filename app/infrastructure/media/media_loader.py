from __future__ import annotations

import base64
import logging
import mimetypes
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from app.application.exceptions import MediaNotFoundError
from app.domain.entities.message import MediaPayload

DEFAULT_MIMETYPE = "application/octet-stream"


class MediaLoader:
    """Builds base64 media payloads from local files or remote URLs."""

    def __init__(self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=transport)
        self._logger = logging.getLogger(__name__)

    def from_file_path(self, file_path: str) -> MediaPayload:
        path = Path(file_path)
        if not path.is_file():
            raise MediaNotFoundError(file_path)
        mimetype, _ = mimetypes.guess_type(path.name)
        return MediaPayload(
            mimetype=mimetype or DEFAULT_MIMETYPE,
            data=base64.b64encode(path.read_bytes()).decode("ascii"),
            filename=path.name,
        )

    async def from_url(self, url: str, filename: str | None = None) -> MediaPayload:
        resp = await self._client.get(url)
        resp.raise_for_status()

        name = filename or _filename_from_url(url)
        content_type = resp.headers.get("content-type", "").split(";", 1)[0].strip()
        mimetype = content_type or (mimetypes.guess_type(name)[0] if name else None) or DEFAULT_MIMETYPE
        self._logger.info("Media downloaded", extra={"url": url, "bytes": len(resp.content)})
        return MediaPayload(
            mimetype=mimetype,
            data=base64.b64encode(resp.content).decode("ascii"),
            filename=name,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _filename_from_url(url: str) -> str | None:
    name = Path(unquote(urlparse(url).path)).name
    return name or None
