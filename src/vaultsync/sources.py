"""Byte-oriented key/value sources the store reads from and writes to.

Every source speaks the same small async contract (:class:`Source`) and
reports failures only through :mod:`vaultsync.errors`:

* ``get``    raises :class:`NotFound` for a missing key and
  :class:`SourceUnavailable` for I/O failures.
* ``set``    is atomic from the caller's point of view and raises
  :class:`SourceUnavailable` on failure.
* ``exists`` answers presence without reading the payload.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Awaitable, Optional, Protocol, TypeVar, runtime_checkable
from urllib.parse import quote

import httpx

from .errors import NotFound, SourceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _escape_key(key: str) -> str:
    """Percent-encode *key* into a single path segment (``/``, ``#``, ``?`` included)."""
    escaped = quote(key, safe="")
    if escaped in (".", ".."):
        escaped = escaped.replace(".", "%2E")
    return escaped


@runtime_checkable
class Source(Protocol):
    """Async key/value persistence endpoint."""

    async def get(self, key: str) -> bytes:
        ...

    async def set(self, key: str, data: bytes) -> None:
        ...

    async def exists(self, key: str) -> bool:
        ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class MemorySource:
    """Dict-backed source; handy for tests and for embedding."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    async def get(self, key: str) -> bytes:
        try:
            return self._data[key]
        except KeyError:
            raise NotFound(key) from None

    async def set(self, key: str, data: bytes) -> None:
        self._data[key] = bytes(data)

    async def exists(self, key: str) -> bool:
        return key in self._data

    def __repr__(self) -> str:
        return f"MemorySource(keys={sorted(self._data)})"


# ---------------------------------------------------------------------------
# Local files
# ---------------------------------------------------------------------------


class FileSource:
    """One file per key below *root*; the durable local copy."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        """Return the file holding *key*; any key maps to one file directly below *root*."""
        if not key:
            raise ValueError("Storage key must not be empty.")
        return self.root / _escape_key(key)

    async def get(self, key: str) -> bytes:
        path = self.path_for(key)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise NotFound(key) from None
        except OSError as exc:
            raise SourceUnavailable(f"Could not read {path}: {exc}") from exc
        logger.debug("read %d bytes from %s", len(data), path)
        return data

    async def set(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as exc:
            raise SourceUnavailable(f"Could not write {path}: {exc}") from exc
        logger.debug("wrote %d bytes to %s", len(data), path)

    async def exists(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(path.is_file)
        except OSError as exc:
            raise SourceUnavailable(f"Could not stat {path}: {exc}") from exc

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)

        # Atomic write via temp file
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        os.chmod(tmp, 0o600)
        tmp.replace(path)

    def __repr__(self) -> str:
        return f"FileSource({str(self.root)!r})"


# ---------------------------------------------------------------------------
# Remote (HTTP)
# ---------------------------------------------------------------------------


class HttpSource:
    """Remote source speaking plain ``GET``/``PUT``/``HEAD`` on ``{base_url}/{key}``.

    The key is percent-encoded as one path segment.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"User-Agent": "vaultsync"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def get(self, key: str) -> bytes:
        resp = await self._request("GET", key)
        if resp.status_code == 404:
            raise NotFound(key)
        self._raise_for_status(resp, key)
        logger.debug("fetched %d bytes for %s from %s", len(resp.content), key, self.base_url)
        return resp.content

    async def set(self, key: str, data: bytes) -> None:
        resp = await self._request(
            "PUT",
            key,
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        self._raise_for_status(resp, key)
        logger.debug("pushed %d bytes for %s to %s", len(data), key, self.base_url)

    async def exists(self, key: str) -> bool:
        resp = await self._request("HEAD", key)
        if resp.status_code == 404:
            return False
        self._raise_for_status(resp, key)
        return True

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpSource:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(self, method: str, key: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, _escape_key(key), **kwargs)
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"{method} {key} failed: {exc}") from exc

    @staticmethod
    def _raise_for_status(resp: httpx.Response, key: str) -> None:
        if resp.is_success:
            return
        raise SourceUnavailable(
            f"{resp.request.method} {key} returned HTTP {resp.status_code}"
        )

    def __repr__(self) -> str:
        return f"HttpSource({self.base_url!r})"


# ---------------------------------------------------------------------------
# Timeout wrapper
# ---------------------------------------------------------------------------


class TimeoutSource:
    """Bounds every call on *inner*; a timeout surfaces as :class:`SourceUnavailable`."""

    def __init__(self, inner: Source, timeout: float) -> None:
        self.inner = inner
        self.timeout = timeout

    async def get(self, key: str) -> bytes:
        return await self._bounded(self.inner.get(key), "get", key)

    async def set(self, key: str, data: bytes) -> None:
        await self._bounded(self.inner.set(key, data), "set", key)

    async def exists(self, key: str) -> bool:
        return await self._bounded(self.inner.exists(key), "exists", key)

    async def _bounded(self, call: Awaitable[T], op: str, key: str) -> T:
        try:
            return await asyncio.wait_for(call, self.timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("%s(%s) on %r timed out after %.1fs", op, key, self.inner, self.timeout)
            raise SourceUnavailable(f"{op} {key} timed out after {self.timeout}s") from exc

    def __repr__(self) -> str:
        return f"TimeoutSource({self.inner!r}, timeout={self.timeout})"
