"""CORS 预检应答与响应头修饰。"""

from __future__ import annotations

from starlette.requests import Request
from starlette.responses import Response

__all__ = ["CorsPolicy"]

ALLOW_ORIGIN = "*"
ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization"
MAX_AGE = 86400


class CorsPolicy:
    """开启时统一应答预检，并给所有响应加上允许跨域的头。"""

    def __init__(self, enabled: bool):
        self.enabled = enabled

    def is_preflight(self, request: Request) -> bool:
        return self.enabled and request.method == "OPTIONS"

    def preflight(self) -> Response:
        return Response(status_code=204, headers={
            "Access-Control-Allow-Origin": ALLOW_ORIGIN,
            "Access-Control-Allow-Methods": ALLOW_METHODS,
            "Access-Control-Allow-Headers": ALLOW_HEADERS,
            "Access-Control-Max-Age": str(MAX_AGE),
        })

    def decorate(self, response: Response) -> Response:
        """CORS 开启时给任意响应加上允许头；原地修改并返回。"""
        if not self.enabled:
            return response
        response.headers["Access-Control-Allow-Origin"] = ALLOW_ORIGIN
        response.headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
        response.headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS
        return response
