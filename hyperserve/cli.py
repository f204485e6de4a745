"""hyperserve 命令行入口。

用法:
    hyperserve [--port 3000] [--baseDir .] [--showDir] [--proxy URL] ...
"""

from __future__ import annotations

import argparse
import logging

from . import __version__
from .accesslog import setup_logging
from .config import DEFAULT_PROXY_TIMEOUT_S, ConfigError, ServerConfig
from .server import serve

logger = logging.getLogger("hyperserve")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hyperserve",
        description="静态文件服务器，本地未命中时回退到上游代理",
    )
    parser.add_argument("--port", default=None,
                        help="监听端口（默认取 PORT / NODE_PORT 环境变量，否则 3000）")
    parser.add_argument("--baseDir", default=".", help="静态文件根目录")
    parser.add_argument("--showDir", action="store_true", help="显示目录列表")
    parser.add_argument("--autoIndex", action=argparse.BooleanOptionalAction, default=True,
                        help="目录请求时返回其中的 index.html")
    parser.add_argument("--cors", action="store_true", help="启用 CORS")
    parser.add_argument("--tls", action="store_true", help="启用 TLS")
    parser.add_argument("--tlsCert", default="", help="TLS 证书文件")
    parser.add_argument("--tlsKey", default="", help="TLS 私钥文件")
    parser.add_argument("--noDotfiles", action="store_true", help="不列出、不提供点文件")
    parser.add_argument("--proxy", default="", help="本地未命中时回退代理到该 URL")
    parser.add_argument("--wsproxy", default="", help="WebSocket 代理到该 URL")
    parser.add_argument("--username", default="", help="Basic 认证用户名")
    parser.add_argument("--password", default="", help="Basic 认证密码")
    parser.add_argument("--logpath", default=None, help="访问日志文件（追加写入）")
    parser.add_argument("--userAgent", default="", help="转发请求使用的 User-Agent")
    parser.add_argument("--host", default="", help="只接受该 Host 头的请求")
    parser.add_argument("--bind", default="0.0.0.0", help="监听地址")
    parser.add_argument("--proxyTimeout", type=float, default=DEFAULT_PROXY_TIMEOUT_S,
                        help=f"上游请求超时秒数（默认 {DEFAULT_PROXY_TIMEOUT_S:g}）")
    parser.add_argument("--version", action="version", version=__version__)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI 入口。"""
    args = build_parser().parse_args(argv)
    setup_logging()
    try:
        config = ServerConfig.from_args(args)
    except ConfigError as e:
        logger.error(f"配置错误: {e}")
        return 1
    serve(config)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
