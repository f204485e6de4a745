"""启动配置：命令行参数 + 环境变量 → 只读的 ServerConfig。"""

from __future__ import annotations

import argparse
import enum
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

__all__ = ["ConfigError", "ListingMode", "ServerConfig", "DEFAULT_PORT", "DEFAULT_PROXY_TIMEOUT_S"]

DEFAULT_PORT = 3000
DEFAULT_PROXY_TIMEOUT_S = 60.0


class ConfigError(Exception):
    """启动配置无效，进程不应开始服务。"""


class ListingMode(enum.Enum):
    """请求解析到目录时的处理策略。"""

    DISABLED = "disabled"
    AUTO_INDEX = "auto-index"
    FULL = "full-listing"


@dataclass(frozen=True)
class ServerConfig:
    """进程级只读配置，启动时构建一次，所有请求共享。"""

    port: int = DEFAULT_PORT
    base_dir: Path = Path(".")
    listing: ListingMode = ListingMode.AUTO_INDEX
    cors: bool = False
    tls_cert: Path | None = None
    tls_key: Path | None = None
    hide_dotfiles: bool = False
    proxy: str | None = None
    wsproxy: str | None = None
    username: str | None = None
    password: str | None = None
    allowed_host: str | None = None
    user_agent: str | None = None
    log_path: Path | None = None
    bind: str = "0.0.0.0"
    proxy_timeout: float = DEFAULT_PROXY_TIMEOUT_S

    def __post_init__(self) -> None:
        if (self.tls_cert is None) != (self.tls_key is None):
            raise ConfigError("TLS enabled but certificate or key file not provided")
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"invalid port: {self.port}")

    @property
    def tls(self) -> bool:
        return self.tls_cert is not None

    @property
    def credentials(self) -> tuple[str, str] | None:
        """用户名和密码都配置时才启用 Basic 认证。"""
        if self.username and self.password:
            return self.username, self.password
        return None

    @property
    def scheme(self) -> str:
        return "https" if self.tls else "http"

    def check_tls_files(self) -> None:
        """确认证书和私钥可读；失败抛 ConfigError。"""
        if not self.tls:
            return
        for label, path in (("certificate", self.tls_cert), ("key", self.tls_key)):
            try:
                with open(path, "rb") as f:
                    f.read(1)
            except OSError as e:
                raise ConfigError(f"Failed to read TLS {label} {path}: {e}") from e

    @classmethod
    def from_args(
        cls, args: argparse.Namespace, environ: Mapping[str, str] | None = None,
    ) -> "ServerConfig":
        """由 argparse 结果构建配置。--port 缺省时依次读取 PORT、NODE_PORT。"""
        env = os.environ if environ is None else environ
        raw_port = args.port or env.get("PORT") or env.get("NODE_PORT") or str(DEFAULT_PORT)
        try:
            port = int(raw_port)
        except ValueError:
            raise ConfigError(f"invalid port: {raw_port!r}") from None

        if args.showDir:
            listing = ListingMode.FULL
        elif args.autoIndex:
            listing = ListingMode.AUTO_INDEX
        else:
            listing = ListingMode.DISABLED

        tls_cert = tls_key = None
        if args.tls:
            if not args.tlsCert or not args.tlsKey:
                raise ConfigError("TLS enabled but certificate or key file not provided")
            tls_cert, tls_key = Path(args.tlsCert), Path(args.tlsKey)

        base_dir = Path(args.baseDir or ".").resolve()
        if not base_dir.is_dir():
            raise ConfigError(f"base directory does not exist: {base_dir}")

        cfg = cls(
            port=port,
            base_dir=base_dir,
            listing=listing,
            cors=args.cors,
            tls_cert=tls_cert,
            tls_key=tls_key,
            hide_dotfiles=args.noDotfiles,
            proxy=args.proxy or None,
            wsproxy=args.wsproxy or None,
            username=args.username or None,
            password=args.password or None,
            allowed_host=args.host or None,
            user_agent=args.userAgent or None,
            log_path=Path(args.logpath) if args.logpath else None,
            bind=args.bind,
            proxy_timeout=args.proxyTimeout,
        )
        cfg.check_tls_files()
        return cfg
