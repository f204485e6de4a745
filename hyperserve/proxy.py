"""反向代理：把本地未命中的请求转发到固定上游，流式回传响应。"""

from __future__ import annotations

import logging
from urllib.parse import urlsplit

import httpx
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse

from .config import DEFAULT_PROXY_TIMEOUT_S

__all__ = ["ReverseProxyClient", "join_url_path"]

logger = logging.getLogger("hyperserve.proxy")

# 逐跳头由本端和 httpx 各自重新分帧
_HOP_BY_HOP = {
    "connection", "keep-alive", "proxy-connection", "transfer-encoding",
    "te", "trailer", "upgrade",
}


def join_url_path(prefix: str, path: str) -> str:
    """拼接上游路径前缀和请求路径，保留请求路径的结尾斜杠。"""
    parts = [seg for seg in (prefix.strip("/"), path.lstrip("/")) if seg]
    joined = "/" + "/".join(parts)
    if path.endswith("/") and not joined.endswith("/"):
        joined += "/"
    return joined


class ReverseProxyClient:
    """持有一个共享的 httpx.AsyncClient；不重试，失败即 502。"""

    def __init__(
        self,
        target: str,
        *,
        user_agent: str | None = None,
        timeout_s: float = DEFAULT_PROXY_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.target = target
        self._split = urlsplit(target)
        self.authority = self._split.netloc
        self.user_agent = user_agent
        self.client = httpx.AsyncClient(
            follow_redirects=False,
            timeout=httpx.Timeout(timeout_s),
            transport=transport,
        )

    async def close(self) -> None:
        """关闭 HTTP 客户端。"""
        await self.client.aclose()

    def upstream_url(self, request: Request) -> str:
        raw_path = request.scope.get("raw_path")
        path = raw_path.decode("latin-1").split("?", 1)[0] if raw_path else request.scope["path"]
        url = f"{self._split.scheme}://{self.authority}{join_url_path(self._split.path, path)}"
        query = request.scope.get("query_string", b"")
        if query:
            url += "?" + query.decode("latin-1")
        return url

    def upstream_headers(self, request: Request) -> list[tuple[str, str]]:
        client_ip = (
            request.headers.get("x-forwarded-for")
            or request.headers.get("x-real-ip")
            or "unknown"
        )
        headers: list[tuple[str, str]] = []
        for key, value in request.headers.items():
            lk = key.lower()
            if lk in _HOP_BY_HOP or lk in ("host", "x-forwarded-for"):
                continue
            if lk == "user-agent" and self.user_agent:
                continue
            headers.append((key, value))
        headers.append(("host", self.authority))
        headers.append(("x-forwarded-for", client_ip))
        if self.user_agent:
            headers.append(("user-agent", self.user_agent))
        return headers

    async def forward(self, request: Request) -> Response:
        has_body = "content-length" in request.headers or "transfer-encoding" in request.headers
        upstream_req = self.client.build_request(
            request.method,
            self.upstream_url(request),
            headers=self.upstream_headers(request),
            content=request.stream() if has_body else None,
        )
        try:
            resp = await self.client.send(upstream_req, stream=True)
        except httpx.RequestError as e:
            logger.warning("Proxy request to %s failed: %s: %s", upstream_req.url, type(e).__name__, e)
            return PlainTextResponse("Proxy Error", status_code=502)

        response = StreamingResponse(
            resp.aiter_raw(),
            status_code=resp.status_code,
            background=BackgroundTask(resp.aclose),
        )
        response.raw_headers = [
            (k.lower(), v)
            for k, v in resp.headers.raw
            if k.decode("latin-1").lower() not in _HOP_BY_HOP
        ]
        return response
