"""展示用格式化工具。"""

from __future__ import annotations

_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_bytes(size: int | None, decimals: int = 2) -> str:
    """把字节数转换为 ``1.5 MB`` 这类可读文本（1024 进制）。"""
    value = float(int(size or 0))
    if value <= 0:
        return "0 Bytes"
    index = 0
    while value >= 1024 and index < len(_UNITS) - 1:
        value /= 1024
        index += 1
    places = max(decimals, 0)
    text = f"{value:.{places}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {_UNITS[index]}"
