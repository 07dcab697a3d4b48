"""缩略图服务：上传图片后生成固定尺寸（默认 300x300，居中裁剪）的预览图。

- 生成器：Pillow（默认）、ImageMagick（外部命令，可选）、直接复制（兜底）；
- 启动时根据 ``THUMBNAIL_ENGINE`` 与运行环境探测选择主生成器；
- 主生成器失败时退回为复制原图，复制也失败时返回 ``None``，绝不影响上传主流程。
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from app.packages.cloudstore.core.config import Settings
from app.packages.cloudstore.core.constants import THUMBNAIL_PREFIX
from app.packages.cloudstore.core.exceptions import ToolUnavailableError
from app.packages.cloudstore.core.logger import get_logger
from app.packages.cloudstore.services.blob_store import NAME_MAX_BYTES, BlobStore, fit_filename, random_token
from app.packages.cloudstore.services.content_classifier import is_raster_image

logger = get_logger("thumbnails")


class ThumbnailError(RuntimeError):
    """生成缩略图失败（解码失败、格式不支持等）。"""


class Thumbnailer:
    """缩略图生成器接口。"""

    name = "abstract"

    def render(self, src: Path, dst: Path, *, size: int) -> None:
        raise NotImplementedError


class PillowThumbnailer(Thumbnailer):
    name = "pillow"

    def render(self, src: Path, dst: Path, *, size: int) -> None:
        fmt = Image.registered_extensions().get(dst.suffix.lower())
        try:
            with Image.open(src) as img:
                img = ImageOps.exif_transpose(img)
                thumb = ImageOps.fit(img, (size, size), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
                if fmt == "JPEG" and thumb.mode not in ("RGB", "L"):
                    thumb = thumb.convert("RGB")
                thumb.save(dst, format=fmt)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise ThumbnailError(f"Pillow 无法生成缩略图: {exc}") from exc


class MagickThumbnailer(Thumbnailer):
    """调用 ImageMagick：等比缩放至覆盖目标尺寸后居中裁剪。"""

    name = "magick"

    def __init__(self, binary: str, *, timeout: float) -> None:
        self.binary = binary
        self.timeout = timeout

    def render(self, src: Path, dst: Path, *, size: int) -> None:
        geometry = f"{size}x{size}"
        cmd = [
            self.binary,
            f"{src}[0]",
            "-auto-orient",
            "-thumbnail", f"{geometry}^",
            "-gravity", "center",
            "-extent", geometry,
            str(dst),
        ]
        try:
            subprocess.run(cmd, capture_output=True, check=True, timeout=self.timeout)
        except FileNotFoundError as exc:
            raise ToolUnavailableError(f"未找到 ImageMagick: {self.binary}") from exc
        except subprocess.TimeoutExpired as exc:
            raise ToolUnavailableError(f"ImageMagick 超时（{self.timeout}s）") from exc
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="ignore").strip()
            raise ThumbnailError(f"ImageMagick 返回 {exc.returncode}: {stderr}") from exc
        if not dst.exists():
            raise ThumbnailError("ImageMagick 未生成输出文件")


class CopyThumbnailer(Thumbnailer):
    """兜底实现：直接复制原文件作为“缩略图”。"""

    name = "copy"

    def render(self, src: Path, dst: Path, *, size: int) -> None:
        shutil.copyfile(src, dst)


def _find_magick(settings: Settings) -> Optional[str]:
    if settings.magick_binary:
        return shutil.which(settings.magick_binary)
    return shutil.which("magick") or shutil.which("convert")


def build_thumbnailer(settings: Settings) -> Thumbnailer:
    """按配置与环境探测结果选择主生成器。"""
    engine = (settings.thumbnail_engine or "auto").strip().lower()
    if engine == "copy":
        return CopyThumbnailer()
    if engine == "magick":
        binary = _find_magick(settings)
        if binary:
            return MagickThumbnailer(binary, timeout=settings.external_tool_timeout)
        logger.warning("THUMBNAIL_ENGINE=magick but ImageMagick was not found on PATH, using Pillow")
    return PillowThumbnailer()


class ThumbnailGenerator:
    def __init__(
        self,
        blob_store: BlobStore,
        thumbnailer: Thumbnailer,
        *,
        size: int = 300,
        fallback: Optional[Thumbnailer] = None,
    ) -> None:
        self.blob_store = blob_store
        self.thumbnailer = thumbnailer
        self.size = size
        self.fallback = fallback or CopyThumbnailer()

    def generate(self, original_path: str, user_id: int) -> Optional[str]:
        """为 ``original_path``（相对路径）生成缩略图，返回缩略图相对路径或 ``None``。"""
        try:
            src = self.blob_store.resolve(original_path)
            thumb_dir = self.blob_store.thumbnails_dir(user_id)
            thumb_dir.mkdir(parents=True, exist_ok=True)
            prefix = f"{THUMBNAIL_PREFIX}{random_token()}_"
            dst = thumb_dir / (prefix + fit_filename(src.name, NAME_MAX_BYTES - len(prefix)))
        except OSError as exc:
            logger.warning("Cannot prepare thumbnail directory for user %s: %s", user_id, exc)
            return None

        if is_raster_image(src.name):
            try:
                self.thumbnailer.render(src, dst, size=self.size)
                return self.blob_store.relpath(dst)
            except Exception as exc:  # 主生成器的任何失败都退回复制
                logger.warning(
                    "Thumbnailer %s failed for %s, falling back to %s: %s",
                    self.thumbnailer.name, original_path, self.fallback.name, exc,
                )
                dst.unlink(missing_ok=True)

        try:
            self.fallback.render(src, dst, size=self.size)
            return self.blob_store.relpath(dst)
        except OSError as exc:
            logger.warning("Fallback thumbnail failed for %s: %s", original_path, exc)
            dst.unlink(missing_ok=True)
            return None
