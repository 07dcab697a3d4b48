"""缩略图生成的单元测试：主生成器、外部工具缺失与兜底复制。"""

from pathlib import Path

import pytest
from PIL import Image

from app.packages.cloudstore.core.config import get_settings
from app.packages.cloudstore.services.thumbnail_service import (
    CopyThumbnailer,
    MagickThumbnailer,
    PillowThumbnailer,
    ThumbnailError,
    ThumbnailGenerator,
    Thumbnailer,
    build_thumbnailer,
)


class _BrokenThumbnailer(Thumbnailer):
    name = "broken"

    def render(self, src: Path, dst: Path, *, size: int) -> None:
        dst.write_bytes(b"partial")
        raise ThumbnailError("decoder exploded")


class _DiskFullCopy(Thumbnailer):
    name = "disk-full"

    def render(self, src: Path, dst: Path, *, size: int) -> None:
        raise OSError(28, "No space left on device")


def test_pillow_thumbnail_is_square_and_centered(blob_store, make_jpeg):
    rel = blob_store.store(1, make_jpeg(size=(800, 400)), "wide.jpg")
    generator = ThumbnailGenerator(blob_store, PillowThumbnailer(), size=300)

    thumb_rel = generator.generate(rel, 1)

    assert thumb_rel is not None
    assert thumb_rel.startswith("1/thumbnails/thumb_")
    assert thumb_rel.endswith("wide.jpg")
    with Image.open(blob_store.resolve(thumb_rel)) as img:
        assert img.size == (300, 300)


def test_failing_primary_falls_back_to_copy(blob_store, make_jpeg):
    content = make_jpeg()
    rel = blob_store.store(1, content, "a.jpg")
    generator = ThumbnailGenerator(blob_store, _BrokenThumbnailer())

    thumb_rel = generator.generate(rel, 1)

    assert thumb_rel is not None
    assert blob_store.resolve(thumb_rel).read_bytes() == content


def test_missing_external_tool_falls_back_to_copy(blob_store, make_jpeg):
    content = make_jpeg()
    rel = blob_store.store(2, content, "b.jpg")
    generator = ThumbnailGenerator(blob_store, MagickThumbnailer("/nonexistent/magick", timeout=1.0))

    thumb_rel = generator.generate(rel, 2)

    assert thumb_rel is not None
    assert blob_store.resolve(thumb_rel).read_bytes() == content


def test_non_raster_files_are_copied(blob_store):
    svg = b"<svg xmlns='http://www.w3.org/2000/svg'/>"
    rel = blob_store.store(1, svg, "logo.svg")
    generator = ThumbnailGenerator(blob_store, PillowThumbnailer())

    thumb_rel = generator.generate(rel, 1)

    assert blob_store.resolve(thumb_rel).read_bytes() == svg


def test_returns_none_when_fallback_fails(blob_store, make_jpeg):
    rel = blob_store.store(1, make_jpeg(), "c.jpg")
    generator = ThumbnailGenerator(blob_store, _BrokenThumbnailer(), fallback=_DiskFullCopy())

    assert generator.generate(rel, 1) is None
    assert list(blob_store.thumbnails_dir(1).iterdir()) == []


def test_build_thumbnailer_respects_engine_setting():
    settings = get_settings()

    assert isinstance(build_thumbnailer(settings.model_copy(update={"thumbnail_engine": "copy"})), CopyThumbnailer)
    assert isinstance(build_thumbnailer(settings.model_copy(update={"thumbnail_engine": "pillow"})), PillowThumbnailer)
    missing = settings.model_copy(update={"thumbnail_engine": "magick", "magick_binary": "definitely-not-installed"})
    assert isinstance(build_thumbnailer(missing), PillowThumbnailer)


class _ExplodingThumbnailer(Thumbnailer):
    name = "exploding"

    def render(self, src: Path, dst: Path, *, size: int) -> None:
        raise RuntimeError("unexpected engine error")


def test_unexpected_primary_error_falls_back_to_copy(blob_store, make_jpeg):
    content = make_jpeg()
    rel = blob_store.store(1, content, "d.jpg")
    generator = ThumbnailGenerator(blob_store, _ExplodingThumbnailer())

    thumb_rel = generator.generate(rel, 1)

    assert thumb_rel is not None
    assert blob_store.resolve(thumb_rel).read_bytes() == content


def test_decompression_bomb_falls_back_to_copy(blob_store, make_jpeg, monkeypatch):
    content = make_jpeg(size=(300, 300))
    rel = blob_store.store(3, content, "huge.jpg")
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)

    with pytest.raises(ThumbnailError):
        PillowThumbnailer().render(blob_store.resolve(rel), blob_store.root / "unused.jpg", size=300)

    thumb_rel = ThumbnailGenerator(blob_store, PillowThumbnailer()).generate(rel, 3)

    assert thumb_rel is not None
    assert blob_store.resolve(thumb_rel).read_bytes() == content


def test_thumbnail_name_of_long_multibyte_file_fits_filename_limit(blob_store, make_jpeg):
    rel = blob_store.store(4, make_jpeg(), "照" * 80 + ".jpg")

    thumb_rel = ThumbnailGenerator(blob_store, PillowThumbnailer()).generate(rel, 4)

    assert thumb_rel is not None
    thumb_name = thumb_rel.rsplit("/", 1)[-1]
    assert len(thumb_name.encode("utf-8")) <= 255
    assert thumb_name.endswith(".jpg")
    with Image.open(blob_store.resolve(thumb_rel)) as img:
        assert img.size == (300, 300)
