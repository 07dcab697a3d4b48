"""文件存储：基于本地文件系统保存用户上传的原始文件、缩略图与整理副本。

目录布局（均相对于上传根目录）：
- ``{user_id}/{stored_name}``：原始文件；
- ``{user_id}/thumbnails/thumb_{token}_{name}``：缩略图；
- ``{user_id}/organized_photos/YYYY/MM/DD/{name}``：按拍摄日期整理的副本。

对外返回的路径一律是以 ``/`` 分隔的相对路径，数据库中只保存相对路径。
"""

from __future__ import annotations

import os
import re
import shutil
import time
import uuid
from pathlib import Path
from typing import Iterator, Optional

from fastapi import status

from app.packages.cloudstore.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    ORGANIZED_DIRNAME,
    RESERVED_DIRNAMES,
    THUMBNAILS_DIRNAME,
)
from app.packages.cloudstore.core.enums import ErrorKind
from app.packages.cloudstore.core.exceptions import AppException, StorageError
from app.packages.cloudstore.core.logger import get_logger

logger = get_logger("blob_store")

_UNSAFE_CHARS = re.compile(r"[^\w.\-() ]+", re.UNICODE)
# 文件系统的文件名上限按字节计（ext4 等为 255）
NAME_MAX_BYTES = 255
_MAX_NAME_BYTES = 150
_DISAMBIGUATOR_BYTES = 9


def _utf8_len(text: str) -> int:
    return len(text.encode("utf-8"))


def _truncate_utf8(text: str, max_bytes: int) -> str:
    return text.encode("utf-8")[: max(max_bytes, 0)].decode("utf-8", errors="ignore")


def fit_filename(name: str, max_bytes: int) -> str:
    """按 UTF-8 字节数截断文件名，尽量保留扩展名。"""
    if _utf8_len(name) <= max_bytes:
        return name
    stem, dot, ext = name.rpartition(".")
    if dot and stem and _utf8_len(ext) < 16:
        return _truncate_utf8(stem, max_bytes - _utf8_len(ext) - 1) + "." + ext
    return _truncate_utf8(name, max_bytes)


def sanitize_filename(name: Optional[str], max_bytes: int = _MAX_NAME_BYTES) -> str:
    """去掉目录部分与不安全字符，保留扩展名并限制字节长度。"""
    base = os.path.basename((name or "").replace("\\", "/")).strip()
    base = _UNSAFE_CHARS.sub("_", base).strip(" .")
    if not base:
        return "file"
    return fit_filename(base, max_bytes)


def random_token(length: int = 32) -> str:
    return uuid.uuid4().hex[:length]


class BlobStore:
    def __init__(self, root: str | os.PathLike):
        self.root = Path(root).resolve()
        if not self.root.exists():
            try:
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:  # pragma: no cover - 极端情况下可能失败
                raise AppException(f"无法创建上传根目录: {exc}", status.HTTP_500_INTERNAL_SERVER_ERROR) from exc

    # 统一的安全路径拼接，防止路径遍历
    def resolve(self, rel: str) -> Path:
        rel_norm = (rel or "").strip().lstrip("/")
        candidate = (self.root / rel_norm).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise AppException("非法路径: 越权访问", HTTP_STATUS_BAD_REQUEST) from exc
        return candidate

    def relpath(self, abs_path: Path) -> str:
        return Path(abs_path).resolve().relative_to(self.root).as_posix()

    def user_dir(self, user_id: int, *, create: bool = False) -> Path:
        path = self.resolve(str(user_id))
        if create:
            path.mkdir(parents=True, exist_ok=True)
        return path

    def thumbnails_dir(self, user_id: int) -> Path:
        return self.user_dir(user_id) / THUMBNAILS_DIRNAME

    def organized_dir(self, user_id: int) -> Path:
        return self.user_dir(user_id) / ORGANIZED_DIRNAME

    # ----------------------------
    # 写入
    # ----------------------------
    def store(self, user_id: int, content: bytes, desired_name: str) -> str:
        """写入一个新文件并返回相对路径。

        文件名由毫秒时间戳 + 随机串 + 清洗后的原始名组成，并以独占模式创建，
        并发上传同名文件不会互相覆盖。
        """
        safe_name = sanitize_filename(desired_name)
        try:
            target_dir = self.user_dir(user_id, create=True)
            while True:
                prefix = f"{int(time.time() * 1000)}_{random_token()}_"
                stored_name = prefix + fit_filename(safe_name, NAME_MAX_BYTES - len(prefix))
                dst = target_dir / stored_name
                try:
                    with open(dst, "xb") as f:
                        f.write(content)
                    break
                except FileExistsError:
                    continue
        except OSError as exc:
            logger.exception("Failed to write blob for user %s: %s", user_id, exc)
            raise StorageError(ErrorKind.STORE_FAILED, "文件写入失败") from exc
        return self.relpath(dst)

    def copy_to_dir(self, src: Path, dst_dir: Path, *, name: Optional[str] = None) -> Path:
        """把文件复制到目标目录（按需创建）；同名时在主文件名后追加 8 位随机串，不覆盖已有文件。"""
        dst_dir.mkdir(parents=True, exist_ok=True)
        filename = fit_filename(name or src.name, NAME_MAX_BYTES - _DISAMBIGUATOR_BYTES)
        dst = dst_dir / filename
        while dst.exists():
            stem, suffix = Path(filename).stem, Path(filename).suffix
            dst = dst_dir / f"{stem}_{random_token(8)}{suffix}"
        shutil.copy2(src, dst)
        return dst

    # ----------------------------
    # 查询与删除
    # ----------------------------
    def exists(self, rel: Optional[str]) -> bool:
        if not rel:
            return False
        return self.resolve(rel).is_file()

    def size(self, rel: str) -> int:
        target = self.resolve(rel)
        try:
            return int(target.stat().st_size)
        except FileNotFoundError as exc:
            raise StorageError(ErrorKind.NOT_FOUND, "文件不存在") from exc

    def delete(self, rel: Optional[str]) -> bool:
        """删除文件；路径不存在时返回 ``False``（幂等）。"""
        if not rel:
            return False
        target = self.resolve(rel)
        try:
            target.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Failed to delete blob %s: %s", rel, exc)
            return False

    def subdirectory_size(self, rel: str = "") -> int:
        """递归统计目录下所有文件的大小，无法读取的条目按 0 计。"""
        base = self.resolve(rel)
        total = 0
        for dirpath, _dirnames, filenames in os.walk(base, onerror=lambda _err: None):
            for filename in filenames:
                try:
                    total += os.stat(os.path.join(dirpath, filename)).st_size
                except OSError:
                    continue
        return total

    def iter_user_files(self, user_id: int) -> Iterator[Path]:
        """遍历用户目录下的原始文件，跳过缩略图与整理目录。"""
        base = self.user_dir(user_id)
        if not base.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(base):
            if Path(dirpath) == base:
                dirnames[:] = [d for d in dirnames if d not in RESERVED_DIRNAMES]
            dirnames.sort()
            for filename in sorted(filenames):
                yield Path(dirpath) / filename
