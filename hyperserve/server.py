"""ASGI 应用装配与 hypercorn 启动。"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator

import httpx
from hypercorn.asyncio import serve as hyper_serve
from hypercorn.config import Config as HyperConfig
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.routing import Route, WebSocketRoute

from .accesslog import AccessLogger, AccessLogMiddleware
from .config import ServerConfig
from .dispatcher import RequestDispatcher
from .proxy import ReverseProxyClient
from .relay import Connector, WebSocketRelay

__all__ = ["make_app", "serve"]

logger = logging.getLogger("hyperserve")


def make_app(
    config: ServerConfig,
    *,
    proxy_transport: httpx.AsyncBaseTransport | None = None,
    ws_connect: Connector | None = None,
) -> Starlette:
    """构建 Starlette 应用。proxy_transport / ws_connect 用于替换上游连接。"""
    proxy = None
    if config.proxy:
        proxy = ReverseProxyClient(
            config.proxy,
            user_agent=config.user_agent,
            timeout_s=config.proxy_timeout,
            transport=proxy_transport,
        )
    relay = WebSocketRelay(config.wsproxy, connect=ws_connect) if config.wsproxy else None
    dispatcher = RequestDispatcher(config, proxy=proxy, relay=relay)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        if proxy is not None:
            await proxy.close()

    app = Starlette(
        routes=[
            Route("/{path:path}", dispatcher.handle_http),
            WebSocketRoute("/{path:path}", dispatcher.handle_websocket),
        ],
        middleware=[Middleware(AccessLogMiddleware, sink=AccessLogger(config.log_path))],
        lifespan=lifespan,
    )
    app.state.dispatcher = dispatcher
    return app


def _hypercorn_config(config: ServerConfig) -> HyperConfig:
    hc = HyperConfig()
    hc.bind = [f"{config.bind}:{config.port}"]
    # 访问日志由 AccessLogMiddleware 负责
    hc.accesslog = None
    if config.tls:
        hc.certfile = str(config.tls_cert)
        hc.keyfile = str(config.tls_key)
    return hc


def serve(config: ServerConfig) -> None:
    """使用 hypercorn 启动服务器，阻塞直到中断。"""
    app = make_app(config)
    hc = _hypercorn_config(config)

    logger.info("=" * 50)
    logger.info("hyperserve")
    logger.info("=" * 50)
    logger.info(f"根目录: {config.base_dir}")
    logger.info(f"目录策略: {config.listing.value}")
    if config.proxy:
        logger.info(f"Fallback proxy enabled to {config.proxy}")
    if config.wsproxy:
        logger.info(f"WebSocket proxy enabled to {config.wsproxy}")
    if config.log_path:
        logger.info(f"访问日志: {config.log_path}")
    logger.info(f"Listening on {config.scheme}://localhost:{config.port}")
    logger.info("=" * 50)

    try:
        asyncio.run(hyper_serve(app, hc))
    except KeyboardInterrupt:
        logger.info("服务器已停止。")
