"""
Shared fixtures: an in-process fake hub and small stub HTTP objects.
"""

import asyncio
from collections import defaultdict

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from hfmd.core.session import create_transfer_session
from hfmd.models.config import DownloadConfig

REPO_ID = "acme/tiny-model"


class FakeHub:
    """
    Serves the tree API and `/resolve/` downloads for one repository.

    `files` maps repository paths to their bytes. `modes` changes how a
    path's downloads behave: "ignore_range" answers every request with the
    full body and 200, "no_length" streams the body chunked without a
    Content-Length. `statuses` queues error statuses returned before the
    real body. `page_size` splits tree listings into pages linked with
    `Link: rel="next"` headers.
    """

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.modes: dict[str, str] = {}
        self.statuses: dict[str, list[int]] = defaultdict(list)
        self.requests: list[tuple[str, str | None]] = []
        self.api_requests: list[str] = []
        self.search_results: list[dict] = []
        self.search_params: list[dict] = []
        self.readme: str | None = None
        self.page_size: int | None = None
        self.delay = 0.0
        self.active = 0
        self.peak_active = 0
        self.release = asyncio.Event()
        self.block_downloads = False
        self.endpoint = ""

    def add(self, path: str, data: bytes) -> None:
        self.files[path] = data

    def download_requests(self, path: str) -> list[str | None]:
        """Range headers of every download request for `path`."""
        return [rng for p, rng in self.requests if p == path]

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api/models", self._search)
        app.router.add_get("/api/datasets", self._search)
        app.router.add_get("/api/{kind}/{org}/{name}/tree/{revision}", self._tree)
        app.router.add_get(
            "/api/{kind}/{org}/{name}/tree/{revision}/{tail:.+}", self._tree
        )
        app.router.add_get(
            "/datasets/{org}/{name}/resolve/{revision}/{path:.+}", self._resolve
        )
        app.router.add_get("/{org}/{name}/resolve/{revision}/{path:.+}", self._resolve)
        return app

    def _check_repo(self, request: web.Request) -> None:
        repo = f"{request.match_info['org']}/{request.match_info['name']}"
        if repo != REPO_ID:
            raise web.HTTPNotFound()
        if request.match_info["revision"] == "private":
            raise web.HTTPUnauthorized()

    async def _search(self, request: web.Request) -> web.Response:
        self.search_params.append(dict(request.query))
        return web.json_response(self.search_results)

    async def _tree(self, request: web.Request) -> web.Response:
        self._check_repo(request)
        prefix = request.match_info.get("tail", "").strip("/")
        self.api_requests.append(prefix)
        entries: dict[str, dict] = {}
        for path, data in sorted(self.files.items()):
            if prefix and not path.startswith(prefix + "/"):
                continue
            rest = path[len(prefix) + 1 :] if prefix else path
            head, sep, _ = rest.partition("/")
            child = f"{prefix}/{head}" if prefix else head
            if sep:
                entries.setdefault(
                    child, {"type": "directory", "oid": "d" * 40, "size": 0, "path": child}
                )
            else:
                entries[child] = {
                    "type": "file",
                    "oid": "f" * 40,
                    "size": len(data),
                    "path": child,
                }
                if path.endswith(".safetensors"):
                    entries[child]["size"] = 134
                    entries[child]["lfs"] = {
                        "oid": "a" * 64,
                        "size": len(data),
                        "pointerSize": 134,
                    }
        listing = list(entries.values())
        if not self.page_size:
            return web.json_response(listing)
        start = int(request.query.get("cursor", 0))
        headers = {}
        if start + self.page_size < len(listing):
            next_url = request.url.update_query(cursor=start + self.page_size)
            headers["Link"] = f'<{next_url}>; rel="next"'
        return web.json_response(
            listing[start : start + self.page_size], headers=headers
        )

    async def _resolve(self, request: web.Request) -> web.StreamResponse:
        self._check_repo(request)
        path = request.match_info["path"]
        rng = request.headers.get("Range")
        self.requests.append((path, rng))

        if self.statuses[path]:
            return web.Response(status=self.statuses[path].pop(0))
        if path == "README.md" and self.readme is not None:
            return web.Response(text=self.readme)
        if path not in self.files:
            raise web.HTTPNotFound()

        data = self.files[path]
        mode = self.modes.get(path, "normal")
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.block_downloads:
                await self.release.wait()

            status, body, headers = 200, data, {}
            if rng and mode != "ignore_range":
                start = int(rng.removeprefix("bytes=").split("-")[0])
                if start >= len(data):
                    return web.Response(
                        status=416, headers={"Content-Range": f"bytes */{len(data)}"}
                    )
                status, body = 206, data[start:]
                headers["Content-Range"] = f"bytes {start}-{len(data) - 1}/{len(data)}"

            if mode == "no_length":
                response = web.StreamResponse(status=status, headers=headers)
                response.enable_chunked_encoding()
                await response.prepare(request)
                await response.write(body)
                await response.write_eof()
                return response
            return web.Response(status=status, body=body, headers=headers)
        finally:
            self.active -= 1


@pytest.fixture
async def hub():
    fake = FakeHub()
    server = TestServer(fake.make_app())
    await server.start_server()
    fake.endpoint = str(server.make_url("")).rstrip("/")
    try:
        yield fake
    finally:
        # never leave a handler blocked while the server shuts down
        fake.release.set()
        await server.close()


@pytest.fixture
def config(hub):
    return DownloadConfig(
        endpoint=hub.endpoint,
        base_delay=0,
        durable_writes=False,
        chunk_size=4096,
    )


@pytest.fixture
async def session():
    session = create_transfer_session(None)
    try:
        yield session
    finally:
        await session.close()


class RecordingSink:
    """A progress sink that records every call and checks the sink contract."""

    def __init__(self):
        self.started: list[str] = []
        self.totals: dict[str, list[int]] = defaultdict(list)
        self.progress: dict[str, int] = defaultdict(int)
        self.finished: dict = {}
        self.advanced = asyncio.Event()

    def start(self, task_id):
        self.started.append(task_id)

    def set_total(self, task_id, total):
        assert self.progress[task_id] == 0, "set_total after advance"
        self.totals[task_id].append(total)

    def advance(self, task_id, delta):
        assert delta >= 0
        self.progress[task_id] += delta
        self.advanced.set()

    def finish(self, task_id, outcome):
        self.finished[task_id] = outcome


@pytest.fixture
def sink():
    return RecordingSink()


class StubContent:
    """Serves `chunks` in order, then either EOF or a read that never ends."""

    def __init__(self, chunks, hang=False):
        self.chunks = list(chunks)
        self.hang = hang
        self.reads_aborted = False

    async def read(self, n=-1):
        if self.chunks:
            return self.chunks.pop(0)
        if self.hang:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.reads_aborted = True
                raise
        return b""


class StubResponse:
    def __init__(self, status, content_length, chunks=(), hang=False):
        self.status = status
        self.content_length = content_length
        self.content = StubContent(chunks, hang)
        self.released = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.released = True

    def raise_for_status(self):
        assert self.status < 400, "stub responses only model successful bodies"


class StubSession:
    """Returns the queued responses in order and records request headers."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[dict[str, str]] = []

    def get(self, url, headers=None, **kwargs):
        self.calls.append(dict(headers or {}))
        return self._respond()

    async def _respond(self):
        return self.responses.pop(0)
