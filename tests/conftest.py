"""
pytest configuration and fixtures.
"""

import asyncio
import os
from pathlib import Path
from typing import Callable

import httpx
import pytest
from starlette.testclient import TestClient

from hyperserve.config import ListingMode, ServerConfig
from hyperserve.server import make_app

# 固定的修改时间，便于断言 Last-Modified
FIXED_MTIME = 1_700_000_000


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """基目录：site/ 下放若干文件，site 外放一个不应被访问到的文件。"""
    root = tmp_path / "site"
    root.mkdir()
    (root / "index.html").write_text("<h1>home</h1>", encoding="utf-8")
    (root / "hello.txt").write_bytes(b"hello world")
    (root / "blob.zzz").write_bytes(b"\x00\x01\x02")
    os.utime(root / "hello.txt", (FIXED_MTIME, FIXED_MTIME))

    docs = root / "docs"
    docs.mkdir()
    (docs / "a.txt").write_bytes(b"12345")
    (docs / ".hidden").write_text("secret", encoding="utf-8")

    (root / "empty").mkdir()
    (root / ".env").write_text("TOKEN=1", encoding="utf-8")
    (tmp_path / "secret.txt").write_text("top secret", encoding="utf-8")
    return root


class ByteStream(httpx.AsyncByteStream):
    """按块产出的响应体，与真实传输一样只能读一次。"""

    def __init__(self, body: bytes, chunk_size: int = 4):
        self.body = body
        self.chunk_size = chunk_size

    async def __aiter__(self):
        for i in range(0, len(self.body), self.chunk_size):
            yield self.body[i:i + self.chunk_size]


class Upstream:
    """httpx.MockTransport 的上游模拟，记录收到的请求。"""

    def __init__(self, status: int = 200, body: bytes = b"upstream", fail: bool = False):
        self.status = status
        self.body = body
        self.fail = fail
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(
            self.status,
            headers={"X-Upstream": "yes"},
            stream=ByteStream(self.body),
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeUpstreamSocket:
    """上游 WebSocket 连接的替身：收到什么就回什么，收到 "bye" 时主动关闭。"""

    def __init__(self):
        self.sent: list = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message) -> None:
        self.sent.append(message)
        await self._inbox.put(None if message == "bye" else message)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._inbox.get()
        if message is None:
            raise StopAsyncIteration
        return message

    async def close(self) -> None:
        self.closed = True


class FakeConnector:
    """替换 websockets.connect。"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.urls: list[str] = []
        self.upstreams: list[FakeUpstreamSocket] = []

    async def __call__(self, url: str) -> FakeUpstreamSocket:
        self.urls.append(url)
        if self.fail:
            raise OSError("connection refused")
        upstream = FakeUpstreamSocket()
        self.upstreams.append(upstream)
        return upstream


@pytest.fixture
def upstream() -> Upstream:
    return Upstream(status=418, body=b"from upstream")


@pytest.fixture
def dead_upstream() -> Upstream:
    return Upstream(fail=True)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def dead_connector() -> FakeConnector:
    return FakeConnector(fail=True)


@pytest.fixture
def make_client(site: Path) -> Callable[..., TestClient]:
    """按需构建 TestClient：make_client(cors=True, proxy=..., upstream=...)。"""

    def factory(
        *,
        upstream: Upstream | None = None,
        ws_connect: FakeConnector | None = None,
        **overrides,
    ) -> TestClient:
        overrides.setdefault("base_dir", site)
        overrides.setdefault("listing", ListingMode.AUTO_INDEX)
        config = ServerConfig(**overrides)
        app = make_app(
            config,
            proxy_transport=upstream.transport if upstream else None,
            ws_connect=ws_connect,
        )
        return TestClient(app)

    return factory
