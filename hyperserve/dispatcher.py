"""请求分发：按固定策略顺序为每个请求产生恰好一个响应。

顺序：Host 过滤 → CORS 预检 → WebSocket 升级 → Basic 认证 → 本地解析 → 代理回退。
命中即返回，后续步骤不再执行。
"""

from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import FileResponse, HTMLResponse, PlainTextResponse, Response
from starlette.websockets import WebSocket

from .auth import AuthGate
from .config import ServerConfig
from .cors import CorsPolicy
from .listing import render_listing
from .proxy import ReverseProxyClient
from .relay import WebSocketRelay
from .resolver import Denied, DirectoryHit, FileHit, PathResolver, Resolution, content_type_for

__all__ = ["RequestDispatcher", "request_host"]

logger = logging.getLogger("hyperserve.dispatch")


def request_host(headers: Headers) -> str:
    """取 Host 头并去掉端口，支持 [IPv6]:port。"""
    host = headers.get("host", "")
    if host.startswith("["):
        end = host.find("]")
        return host[1:end] if end != -1 else host
    return host.split(":", 1)[0]


class RequestDispatcher:
    """组合各策略组件。代理和中继都是可选的显式依赖，不存在全局状态。"""

    def __init__(
        self,
        config: ServerConfig,
        *,
        proxy: ReverseProxyClient | None = None,
        relay: WebSocketRelay | None = None,
    ):
        self.config = config
        self.auth = AuthGate(config.credentials)
        self.cors = CorsPolicy(config.cors)
        self.resolver = PathResolver(
            config.base_dir, config.listing, hide_dotfiles=config.hide_dotfiles,
        )
        self.proxy = proxy
        self.relay = relay

    def host_allowed(self, headers: Headers) -> bool:
        if not self.config.allowed_host:
            return True
        return request_host(headers).lower() == self.config.allowed_host.lower()

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def handle_http(self, request: Request) -> Response:
        response = await self._dispatch(request)
        return self.cors.decorate(response)

    async def _dispatch(self, request: Request) -> Response:
        if not self.host_allowed(request.headers):
            return PlainTextResponse("Forbidden - Invalid Host", status_code=403)

        if self.cors.is_preflight(request):
            return self.cors.preflight()

        # 合法的握手会被服务器作为 websocket 连接交给 handle_websocket；
        # 仍以普通 HTTP 到达说明握手不成立
        if self.relay is not None and request.headers.get("upgrade", "").lower() == "websocket":
            return PlainTextResponse("WebSocket upgrade failed", status_code=400)

        if not self.auth.check(request.headers.get("authorization")):
            return self.auth.challenge()

        resolution = await run_in_threadpool(self.resolver.resolve, request.scope["path"])
        return await self._serve(request, resolution)

    async def _serve(self, request: Request, resolution: Resolution) -> Response:
        if isinstance(resolution, FileHit):
            return FileResponse(
                resolution.path,
                stat_result=resolution.stat_result,
                media_type=content_type_for(resolution.path),
            )
        if isinstance(resolution, DirectoryHit):
            try:
                page = await run_in_threadpool(
                    render_listing, resolution.path, resolution.url_path,
                    hide_dotfiles=self.config.hide_dotfiles,
                )
            except OSError as e:
                logger.warning("Error reading directory %s: %s", resolution.path, e)
                return await self._fallback(request, "Error reading directory", 500)
            return HTMLResponse(page)
        if isinstance(resolution, Denied):
            return PlainTextResponse(resolution.reason, status_code=403)
        return await self._fallback(request, resolution.reason, 404)

    async def _fallback(self, request: Request, body: str, status: int) -> Response:
        if self.proxy is None:
            return PlainTextResponse(body, status_code=status)
        request.state.upstream = self.proxy.target
        return await self.proxy.forward(request)

    # ------------------------------------------------------------------
    # WebSocket
    # ------------------------------------------------------------------

    async def handle_websocket(self, websocket: WebSocket) -> None:
        if not self.host_allowed(websocket.headers):
            await websocket.close()
            return
        if self.relay is None:
            # 没有 --wsproxy 时握手无处可去，也无法作为静态文件应答，直接拒绝（403）
            await websocket.close()
            return
        websocket.state.upstream = self.relay.target
        await self.relay.handle(websocket)
