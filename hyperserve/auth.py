"""HTTP Basic 认证。"""

from __future__ import annotations

import base64
import binascii
import hmac

from starlette.responses import PlainTextResponse, Response

__all__ = ["AuthGate"]

CHALLENGE = 'Basic realm="Authentication required"'


class AuthGate:
    """校验 Authorization: Basic 头。credentials 为 None 时不做任何检查。"""

    def __init__(self, credentials: tuple[str, str] | None):
        self.credentials = credentials

    @property
    def enabled(self) -> bool:
        return self.credentials is not None

    def check(self, header: str | None) -> bool:
        if self.credentials is None:
            return True
        if not header:
            return False
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "basic":
            return False
        try:
            decoded = base64.b64decode(token.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return False
        username, sep, password = decoded.partition(":")
        if not sep:
            return False
        want_user, want_pass = self.credentials
        # 两项都比较，避免按字段短路
        user_ok = hmac.compare_digest(username.encode(), want_user.encode())
        pass_ok = hmac.compare_digest(password.encode(), want_pass.encode())
        return user_ok and pass_ok

    @staticmethod
    def challenge() -> Response:
        return PlainTextResponse(
            "Unauthorized", status_code=401, headers={"WWW-Authenticate": CHALLENGE},
        )
