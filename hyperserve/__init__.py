"""hyperserve — 静态文件服务器，本地未命中时回退到上游反向代理 / WebSocket 中继。"""

__version__ = "0.1.0"
