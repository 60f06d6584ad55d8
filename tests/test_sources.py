"""Tests for vaultsync.sources."""

import asyncio
from urllib.parse import unquote

import httpx
import pytest

from vaultsync.errors import NotFound, SourceUnavailable
from vaultsync.sources import FileSource, HttpSource, MemorySource, Source, TimeoutSource


def test_sources_satisfy_protocol(tmp_path):
    assert isinstance(MemorySource(), Source)
    assert isinstance(FileSource(tmp_path), Source)
    assert isinstance(TimeoutSource(MemorySource(), 1), Source)


# ---------------------------------------------------------------------------
# MemorySource
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_memory_source_roundtrip():
    source = MemorySource()
    assert not await source.exists("k")
    with pytest.raises(NotFound):
        await source.get("k")
    await source.set("k", b"data")
    assert await source.exists("k")
    assert await source.get("k") == b"data"


# ---------------------------------------------------------------------------
# FileSource
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_file_source_creates_directory(tmp_path):
    root = tmp_path / "nested" / "store"
    source = FileSource(root)
    await source.set("coll_main", b"blob")
    assert (root / "coll_main").read_bytes() == b"blob"
    assert not (root / "coll_main.tmp").exists()


@pytest.mark.asyncio
async def test_file_source_restricts_permissions(tmp_path):
    source = FileSource(tmp_path)
    await source.set("coll_main", b"blob")
    assert (tmp_path / "coll_main").stat().st_mode & 0o777 == 0o600


@pytest.mark.asyncio
async def test_file_source_overwrites(tmp_path):
    source = FileSource(tmp_path)
    await source.set("k", b"one")
    await source.set("k", b"two")
    assert await source.get("k") == b"two"


@pytest.mark.asyncio
async def test_file_source_missing_key(tmp_path):
    source = FileSource(tmp_path)
    assert not await source.exists("coll_x")
    with pytest.raises(NotFound):
        await source.get("coll_x")


@pytest.mark.asyncio
async def test_file_source_read_error_is_unavailable(tmp_path):
    (tmp_path / "coll_dir").mkdir()
    with pytest.raises(SourceUnavailable):
        await FileSource(tmp_path).get("coll_dir")


@pytest.mark.asyncio
async def test_file_source_write_error_is_unavailable(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"")
    with pytest.raises(SourceUnavailable):
        await FileSource(blocker).set("k", b"data")


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["coll_my vault", "coll_a/b", "../escape", "..", "."])
async def test_file_source_stores_any_key_below_root(tmp_path, key):
    source = FileSource(tmp_path / "data")
    await source.set(key, b"blob")

    path = source.path_for(key)
    assert path.parent == tmp_path / "data"
    assert path.is_file()
    assert await source.exists(key)
    assert await source.get(key) == b"blob"


@pytest.mark.asyncio
async def test_file_source_keys_do_not_collide(tmp_path):
    source = FileSource(tmp_path)
    await source.set("coll_a/b", b"slash")
    await source.set("coll_a%2Fb", b"escaped")
    assert await source.get("coll_a/b") == b"slash"
    assert await source.get("coll_a%2Fb") == b"escaped"


def test_file_source_rejects_empty_key(tmp_path):
    with pytest.raises(ValueError):
        FileSource(tmp_path).path_for("")


# ---------------------------------------------------------------------------
# HttpSource
# ---------------------------------------------------------------------------


def _remote(store: dict, seen: list | None = None, status: int | None = None) -> HttpSource:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if status is not None:
            return httpx.Response(status)
        key = unquote(request.url.raw_path.decode("ascii").rsplit("/", 1)[-1])
        if request.method == "PUT":
            store[key] = request.content
            return httpx.Response(204)
        if key not in store:
            return httpx.Response(404)
        if request.method == "HEAD":
            return httpx.Response(200)
        return httpx.Response(200, content=store[key])

    return HttpSource(
        "https://sync.example.com/api",
        token="t0ken",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_http_source_roundtrip():
    store: dict = {}
    seen: list = []
    async with _remote(store, seen) as remote:
        assert not await remote.exists("coll_main")
        with pytest.raises(NotFound):
            await remote.get("coll_main")
        await remote.set("coll_main", b"\x00blob")
        assert await remote.exists("coll_main")
        assert await remote.get("coll_main") == b"\x00blob"

    assert store == {"coll_main": b"\x00blob"}
    assert all(r.url.path == "/api/coll_main" for r in seen)
    assert all(r.headers["Authorization"] == "Bearer t0ken" for r in seen)


@pytest.mark.asyncio
async def test_http_source_escapes_key_into_one_segment():
    store: dict = {}
    seen: list = []
    async with _remote(store, seen) as remote:
        await remote.set("coll_work", b"work")
        with pytest.raises(NotFound):
            await remote.get("coll_work#personal?x/y")
        await remote.set("coll_work#personal?x/y", b"personal")
        assert await remote.get("coll_work#personal?x/y") == b"personal"

    assert store == {"coll_work": b"work", "coll_work#personal?x/y": b"personal"}
    assert seen[1].url.raw_path == b"/api/coll_work%23personal%3Fx%2Fy"
    assert all(not r.url.query and not r.url.fragment for r in seen)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 500, 503])
async def test_http_source_error_status_is_unavailable(status):
    async with _remote({}, status=status) as remote:
        with pytest.raises(SourceUnavailable, match=str(status)):
            await remote.get("coll_main")
        with pytest.raises(SourceUnavailable):
            await remote.set("coll_main", b"x")
        with pytest.raises(SourceUnavailable):
            await remote.exists("coll_main")


@pytest.mark.asyncio
async def test_http_source_transport_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with HttpSource("https://sync.example.com", transport=httpx.MockTransport(handler)) as remote:
        with pytest.raises(SourceUnavailable, match="connection refused"):
            await remote.get("coll_main")


# ---------------------------------------------------------------------------
# TimeoutSource
# ---------------------------------------------------------------------------


class SlowSource(MemorySource):
    async def get(self, key):
        await asyncio.sleep(5)
        return await super().get(key)


@pytest.mark.asyncio
async def test_timeout_becomes_unavailable():
    source = TimeoutSource(SlowSource(), timeout=0.05)
    with pytest.raises(SourceUnavailable, match="timed out"):
        await source.get("k")


@pytest.mark.asyncio
async def test_timeout_source_passes_through():
    inner = MemorySource()
    source = TimeoutSource(inner, timeout=1)
    await source.set("k", b"v")
    assert await source.exists("k")
    assert await source.get("k") == b"v"
    with pytest.raises(NotFound):
        await source.get("missing")
