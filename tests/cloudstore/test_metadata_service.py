"""照片元数据提取的单元测试：探测器失败时只保留文件系统时间，绝不抛出。"""

from datetime import datetime, timezone
from pathlib import Path

from app.packages.cloudstore.services.metadata_service import (
    ExiftoolProbe,
    MetadataExtractor,
    MetadataProbe,
    NullMetadataProbe,
    PillowExifProbe,
    ProbeResult,
    parse_exif_datetime,
)


class _ExplodingProbe(MetadataProbe):
    name = "exploding"

    def probe(self, path: Path) -> ProbeResult:
        raise RuntimeError("boom")


class _StaticProbe(MetadataProbe):
    name = "static"

    def __init__(self, result: ProbeResult) -> None:
        self.result = result

    def probe(self, path: Path) -> ProbeResult:
        return self.result


def test_pillow_probe_reads_camera_date_and_resolution(tmp_path, make_jpeg):
    path = tmp_path / "shot.jpg"
    path.write_bytes(make_jpeg(size=(320, 240), taken="2021:07:04 10:20:30", make="Canon", model="EOS R5"))

    meta = MetadataExtractor(PillowExifProbe()).extract(path)

    assert meta.date_taken == datetime(2021, 7, 4, 10, 20, 30, tzinfo=timezone.utc)
    assert meta.camera == "Canon EOS R5"
    assert meta.resolution == "320x240"
    assert meta.location is None


def test_probe_failure_degrades_to_stat_only(tmp_path):
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"not really a jpeg")

    for probe in (_ExplodingProbe(), PillowExifProbe(), ExiftoolProbe("/nonexistent/exiftool", timeout=1.0)):
        meta = MetadataExtractor(probe).extract(path)
        assert meta.date_taken is None
        assert meta.camera is None
        assert meta.file_created is not None
        assert meta.file_modified is not None


def test_missing_file_still_returns_result(tmp_path):
    meta = MetadataExtractor(NullMetadataProbe()).extract(tmp_path / "gone.jpg")

    assert meta.file_created is not None
    assert meta.date_taken is None


def test_original_date_preferred_and_location_needs_both_coordinates(tmp_path):
    path = tmp_path / "a.jpg"
    path.write_bytes(b"x")
    original = datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    created = datetime(2022, 1, 1, tzinfo=timezone.utc)

    only_lat = MetadataExtractor(
        _StaticProbe(ProbeResult(date_original=original, date_created=created, latitude=31.2, width=100))
    ).extract(path)
    assert only_lat.date_taken == original
    assert only_lat.location is None
    assert only_lat.resolution is None

    full = MetadataExtractor(
        _StaticProbe(ProbeResult(date_created=created, latitude=31.2, longitude=121.5, model=" Pixel 8 "))
    ).extract(path)
    assert full.date_taken == created
    assert (full.location.latitude, full.location.longitude) == (31.2, 121.5)
    assert full.camera == "Pixel 8"
    assert full.to_dict()["location"] == {"latitude": 31.2, "longitude": 121.5}


def test_parse_exif_datetime_ignores_placeholders():
    assert parse_exif_datetime("0000:00:00 00:00:00") is None
    assert parse_exif_datetime("garbage") is None
    assert parse_exif_datetime(None) is None
    assert parse_exif_datetime("2019:12:31 23:59:59").year == 2019


def test_gps_dms_conversion_applies_hemisphere():
    value = PillowExifProbe._gps_coordinate((40.0, 26.0, 46.0), "S", negative="S")
    assert value == round(-(40 + 26 / 60 + 46 / 3600), 7)
    assert PillowExifProbe._gps_coordinate(None, "N", negative="S") is None
