"""请求路径 → 基目录下的文件系统位置。"""

from __future__ import annotations

import mimetypes
import os
import stat
from dataclasses import dataclass
from pathlib import Path, PurePath

from .config import ListingMode

__all__ = [
    "Resolution", "FileHit", "DirectoryHit", "NotFound", "Denied",
    "PathResolver", "content_type_for",
]

# ---------------------------------------------------------------------------
# MIME
# ---------------------------------------------------------------------------

_MIME_MAP = {
    ".js": "application/javascript; charset=utf-8",
    ".mjs": "application/javascript; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".json": "application/json; charset=utf-8",
    ".html": "text/html; charset=utf-8",
    ".htm": "text/html; charset=utf-8",
    ".png": "image/png", ".jpg": "image/jpeg", ".jpeg": "image/jpeg",
    ".gif": "image/gif", ".svg": "image/svg+xml; charset=utf-8",
    ".webp": "image/webp", ".wav": "audio/wav", ".mp4": "video/mp4",
    ".woff2": "font/woff2", ".woff": "font/woff", ".wasm": "application/wasm",
    ".xml": "application/xml; charset=utf-8",
    ".txt": "text/plain; charset=utf-8", ".ico": "image/x-icon",
}


def content_type_for(path: Path) -> str:
    """按扩展名推断 Content-Type，未知类型为 application/octet-stream。"""
    ext = path.suffix.lower()
    if ext in _MIME_MAP:
        return _MIME_MAP[ext]
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


# ---------------------------------------------------------------------------
# 解析结果
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileHit:
    """解析到普通文件。"""

    path: Path
    stat_result: os.stat_result

    @property
    def size(self) -> int:
        return self.stat_result.st_size

    @property
    def mtime(self) -> float:
        return self.stat_result.st_mtime


@dataclass(frozen=True)
class DirectoryHit:
    """解析到目录且允许完整列表。"""

    path: Path
    url_path: str


@dataclass(frozen=True)
class NotFound:
    """本地无法满足；调用方应尝试代理回退。"""

    reason: str = "Not Found"


@dataclass(frozen=True)
class Denied:
    """目录存在但策略禁止列出。"""

    reason: str = "Directory listing not allowed"


Resolution = FileHit | DirectoryHit | NotFound | Denied


# ---------------------------------------------------------------------------
# 解析器
# ---------------------------------------------------------------------------


class PathResolver:
    """把已解码的请求路径映射到 base_dir 下，规范化后再做一次包含检查。"""

    def __init__(
        self,
        base_dir: Path,
        listing: ListingMode = ListingMode.AUTO_INDEX,
        *,
        hide_dotfiles: bool = False,
    ):
        self.base_dir = Path(os.path.abspath(base_dir))
        self.listing = listing
        self.hide_dotfiles = hide_dotfiles

    def _target(self, request_path: str) -> Path | None:
        joined = os.path.normpath(os.path.join(self.base_dir, request_path.lstrip("/")))
        target = Path(joined)
        if not self._safe(self.base_dir, target):
            return None
        if self.hide_dotfiles:
            rel = target.relative_to(self.base_dir)
            if any(part.startswith(".") for part in rel.parts):
                return None
        return target

    @staticmethod
    def _safe(root: Path, target: PurePath) -> bool:
        """路径穿越防护（纯词法，不跟随符号链接）。"""
        try:
            target.relative_to(root)
            return True
        except ValueError:
            return False

    def resolve(self, request_path: str) -> Resolution:
        target = self._target(request_path)
        if target is None:
            return NotFound()
        try:
            st = os.stat(target)
        except (OSError, ValueError):
            return NotFound()

        if stat.S_ISDIR(st.st_mode):
            return self._resolve_directory(target, request_path)
        if stat.S_ISREG(st.st_mode):
            return FileHit(target, st)
        return NotFound()

    def _resolve_directory(self, target: Path, request_path: str) -> Resolution:
        if self.listing is ListingMode.FULL:
            return DirectoryHit(target, request_path)
        if self.listing is ListingMode.AUTO_INDEX:
            index = target / "index.html"
            try:
                st = index.stat()
            except OSError:
                return NotFound("index.html not found")
            if stat.S_ISREG(st.st_mode):
                return FileHit(index, st)
            return NotFound("index.html not found")
        return Denied()
