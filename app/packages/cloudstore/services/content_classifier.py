"""内容分类：根据文件名扩展名判断粗粒度文件类型。"""

from __future__ import annotations

from typing import Optional

from app.packages.cloudstore.core.enums import FileTypeEnum

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "bmp", "svg", "webp", "heic", "heif", "tif", "tiff"})
VIDEO_EXTENSIONS = frozenset({"mp4", "avi", "mov", "wmv", "flv", "mkv", "webm", "m4v"})
DOCUMENT_EXTENSIONS = frozenset({"pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "txt", "rtf", "csv", "md"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "ogg", "flac", "m4a", "aac"})

# 可被 Pillow/ImageMagick 解码并缩放的位图格式（svg 为矢量，heic 依赖额外插件）
RASTER_IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "bmp", "webp", "tif", "tiff"})

_CATEGORY_TABLE = (
    (FileTypeEnum.IMAGE, IMAGE_EXTENSIONS),
    (FileTypeEnum.VIDEO, VIDEO_EXTENSIONS),
    (FileTypeEnum.DOCUMENT, DOCUMENT_EXTENSIONS),
    (FileTypeEnum.AUDIO, AUDIO_EXTENSIONS),
)


def get_extension(filename: Optional[str]) -> str:
    """返回最后一个 ``.`` 之后的小写扩展名，没有扩展名时返回空字符串。"""
    name = filename or ""
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def classify(filename: Optional[str]) -> FileTypeEnum:
    """全函数：任何输入都返回一个确定的类型，未识别的扩展名归为 ``other``。"""
    ext = get_extension(filename)
    if not ext:
        return FileTypeEnum.OTHER
    for file_type, extensions in _CATEGORY_TABLE:
        if ext in extensions:
            return file_type
    return FileTypeEnum.OTHER


def resolve_file_type(filename: Optional[str], declared: Optional[str] = None) -> FileTypeEnum:
    """以扩展名分类为准；仅当分类结果为 ``other`` 时采用客户端声明的合法类型。"""
    detected = classify(filename)
    if detected is not FileTypeEnum.OTHER or not declared:
        return detected
    try:
        return FileTypeEnum(declared.strip().lower())
    except ValueError:
        return detected


def is_raster_image(filename: Optional[str]) -> bool:
    return get_extension(filename) in RASTER_IMAGE_EXTENSIONS
