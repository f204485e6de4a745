"""WebSocket 中继：客户端连接 ↔ 新建的上游连接，按消息双向转发。"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable

import anyio
import websockets
from starlette.websockets import WebSocket, WebSocketState
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

__all__ = ["WebSocketRelay"]

logger = logging.getLogger("hyperserve.relay")

Connector = Callable[[str], Awaitable[Any]]


class WebSocketRelay:
    """尽力而为的中继：不重连、不缓存，任一侧关闭即关闭另一侧。"""

    def __init__(self, target: str, *, connect: Connector | None = None):
        self.target = target
        self._connect = connect or websockets.connect

    def upstream_url(self, path: str) -> str:
        # 只拼接路径，不带查询串
        return self.target + path

    async def handle(self, websocket: WebSocket) -> None:
        await websocket.accept()
        url = self.upstream_url(websocket.scope["path"])
        try:
            upstream = await self._connect(url)
        except (OSError, asyncio.TimeoutError, InvalidHandshake, InvalidURI) as e:
            logger.error("WebSocket proxy connection to %s failed: %s", url, e)
            await self._close_client(websocket, code=1011)
            return

        try:
            await self._pump(websocket, upstream)
        finally:
            # 外部取消时也要关掉两端
            with anyio.CancelScope(shield=True):
                await upstream.close()
                await self._close_client(websocket)

    async def _pump(self, websocket: WebSocket, upstream: Any) -> None:
        path = websocket.scope["path"]

        async def run(pump: Callable[[WebSocket, Any], Awaitable[None]]) -> None:
            # 任一方向结束即取消另一方向
            try:
                await pump(websocket, upstream)
            except Exception as e:
                logger.warning("WebSocket relay %s ended: %s", path, e)
            finally:
                tg.cancel_scope.cancel()

        async with anyio.create_task_group() as tg:
            tg.start_soon(run, self._client_to_upstream)
            tg.start_soon(run, self._upstream_to_client)

    @staticmethod
    async def _client_to_upstream(websocket: WebSocket, upstream: Any) -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            try:
                if message.get("text") is not None:
                    await upstream.send(message["text"])
                elif message.get("bytes") is not None:
                    await upstream.send(message["bytes"])
            except ConnectionClosed:
                return

    @staticmethod
    async def _upstream_to_client(websocket: WebSocket, upstream: Any) -> None:
        try:
            async for message in upstream:
                if isinstance(message, str):
                    await websocket.send_text(message)
                else:
                    await websocket.send_bytes(message)
        except ConnectionClosed:
            return

    @staticmethod
    async def _close_client(websocket: WebSocket, code: int = 1000) -> None:
        if (
            websocket.application_state is WebSocketState.CONNECTED
            and websocket.client_state is WebSocketState.CONNECTED
        ):
            with contextlib.suppress(RuntimeError):
                await websocket.close(code=code)
