"""访问日志：每个请求恰好一条 JSON 记录，写 stdout，可选追加到文件。"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

__all__ = [
    "ACCESS_LOGGER", "AccessLogEntry", "AccessLogger", "AccessLogMiddleware",
    "setup_logging",
]

ACCESS_LOGGER = "hyperserve.access"

access_logger = logging.getLogger(ACCESS_LOGGER)
logger = logging.getLogger("hyperserve")


def setup_logging(level: int = logging.INFO) -> None:
    """诊断信息走 stderr；访问日志单独一个 handler 写 stdout，只输出 JSON 本身。"""
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    if not access_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        access_logger.addHandler(handler)
    access_logger.setLevel(logging.INFO)
    access_logger.propagate = False


@dataclass(frozen=True)
class AccessLogEntry:
    """单个请求的访问记录。"""

    source: str
    time: int
    resp_body_size: int
    host: str
    address: str
    request_length: int
    method: str
    uri: str
    status: int
    user_agent: str
    resp_time: float
    upstream_addr: str


class AccessLogger:
    """写 stdout，并在配置了路径时以追加模式写文件，协程安全。"""

    def __init__(self, path: Path | None = None):
        self.path = path
        self._lock = asyncio.Lock()

    async def write(self, entry: AccessLogEntry) -> None:
        line = json.dumps(dataclasses.asdict(entry), ensure_ascii=False)
        access_logger.info(line)
        if self.path is None:
            return
        async with self._lock:
            try:
                with self.path.open("a", encoding="utf-8", newline="\n") as f:
                    f.write(line + "\n")
            except OSError as e:
                logger.error("Failed to write to log file %s: %s", self.path, e)


def _content_length(headers: Headers) -> int:
    try:
        return int(headers.get("content-length") or 0)
    except ValueError:
        return 0


class AccessLogMiddleware:
    """纯 ASGI 中间件，包住整个应用，在每条退出路径上记录一次。

    分发器通过 scope["state"]["upstream"] 告知本次请求是否转发到了上游。
    """

    def __init__(self, app: ASGIApp, sink: AccessLogger, source: str = "hyperserve"):
        self.app = app
        self.sink = sink
        self.source = source

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        state: dict[str, Any] = scope.setdefault("state", {})
        outcome = {"status": 0, "bytes": 0}
        is_ws = scope["type"] == "websocket"

        async def send_wrapper(message: Message) -> None:
            kind = message["type"]
            if kind in ("http.response.start", "websocket.http.response.start"):
                outcome["status"] = message["status"]
            elif kind in ("http.response.body", "websocket.http.response.body"):
                outcome["bytes"] += len(message.get("body", b""))
            elif kind == "websocket.accept":
                outcome["status"] = 101
            elif kind == "websocket.send":
                payload = message.get("bytes")
                if payload is None:
                    payload = (message.get("text") or "").encode("utf-8")
                outcome["bytes"] += len(payload)
            elif kind == "websocket.close" and not outcome["status"]:
                # 握手前关闭，服务器以 403 拒绝
                outcome["status"] = 403
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            if not outcome["status"]:
                outcome["status"] = 500
            raise
        finally:
            await self.sink.write(self._entry(scope, state, outcome, start, is_ws))

    def _entry(
        self, scope: Scope, state: dict[str, Any], outcome: dict[str, int],
        start: float, is_ws: bool,
    ) -> AccessLogEntry:
        headers = Headers(scope=scope)
        client = scope.get("client")
        address = headers.get("x-forwarded-for") or (client[0] if client else "") or "unknown"
        uri = scope.get("raw_path", b"").decode("latin-1").split("?", 1)[0] or scope["path"]
        query = scope.get("query_string", b"")
        if query:
            uri += "?" + query.decode("latin-1")
        return AccessLogEntry(
            source=self.source,
            time=int(time.time() * 1000),
            resp_body_size=outcome["bytes"],
            host=headers.get("host", ""),
            address=address,
            request_length=_content_length(headers),
            method="GET" if is_ws else scope["method"],
            uri=uri,
            status=outcome["status"],
            user_agent=headers.get("user-agent", ""),
            resp_time=time.perf_counter() - start,
            upstream_addr=state.get("upstream") or "-",
        )
