"""目录列表 HTML 渲染。"""

from __future__ import annotations

import html
import os
import posixpath
from email.utils import formatdate
from pathlib import Path
from urllib.parse import quote

__all__ = ["format_size", "http_date", "render_listing"]

_UNITS = ["B", "KB", "MB", "GB", "TB"]

_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>Index of {title}</title>
    <style>
      body {{ font-family: system-ui; padding: 2em; }}
      table {{ width: 100%; border-collapse: collapse; }}
      th, td {{ text-align: left; padding: 8px; border-bottom: 1px solid #ddd; }}
      a {{ text-decoration: none; }}
      a:hover {{ text-decoration: underline; }}
    </style>
  </head>
  <body>
    <h1>Index of {title}</h1>
    <table>
      <tr>
        <th>Name</th>
        <th>Size</th>
        <th>Last Modified</th>
      </tr>
{rows}
    </table>
  </body>
</html>
"""

_ROW = """      <tr>
        <td><a href="{href}">{name}</a></td>
        <td>{size}</td>
        <td>{mtime}</td>
      </tr>"""


def format_size(num_bytes: int) -> str:
    """按 1024 进位格式化字节数，保留一位小数。"""
    size = float(num_bytes)
    unit = 0
    while size >= 1024 and unit < len(_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{size:.1f} {_UNITS[unit]}"


def http_date(ts: float) -> str:
    return formatdate(ts, usegmt=True)


def render_listing(dir_path: Path, url_path: str, *, hide_dotfiles: bool = False) -> str:
    """渲染目录列表。按目录枚举顺序输出；目录读取失败时抛 OSError。"""
    rows: list[str] = []
    with os.scandir(dir_path) as it:
        for entry in it:
            if hide_dotfiles and entry.name.startswith("."):
                continue
            try:
                st = entry.stat()
                is_dir = entry.is_dir()
            except OSError:
                # 悬空符号链接等
                continue
            suffix = "/" if is_dir else ""
            href = quote(posixpath.join(url_path or "/", entry.name)) + suffix
            rows.append(_ROW.format(
                href=html.escape(href, quote=True),
                name=html.escape(entry.name) + suffix,
                size="-" if is_dir else format_size(st.st_size),
                mtime=http_date(st.st_mtime),
            ))
    return _PAGE.format(title=html.escape(url_path or "/"), rows="\n".join(rows))
