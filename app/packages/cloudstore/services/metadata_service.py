"""照片元数据提取：拍摄时间、GPS、相机型号与分辨率。

文件系统时间（创建/修改）总是可用；其余字段来自探测器：
- ``ExiftoolProbe``：调用 ``exiftool -j -n``，带超时；
- ``PillowExifProbe``：读取 Pillow 暴露的 EXIF 标签；
- ``NullMetadataProbe``：不提供任何字段。

``MetadataExtractor.extract`` 永不抛出异常，探测失败时退化为仅包含文件系统时间的结果。
"""

from __future__ import annotations

import json
import os
import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from PIL import Image, UnidentifiedImageError

from app.packages.cloudstore.core.config import Settings
from app.packages.cloudstore.core.exceptions import ToolUnavailableError
from app.packages.cloudstore.core.logger import get_logger
from app.packages.cloudstore.core.timezone import from_timestamp, get_timezone, now as tz_now

logger = get_logger("metadata")

_EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"

# EXIF 标签编号
_TAG_MAKE = 0x010F
_TAG_MODEL = 0x0110
_TAG_DATETIME = 0x0132
_TAG_EXIF_IFD = 0x8769
_TAG_GPS_IFD = 0x8825
_TAG_DATETIME_ORIGINAL = 0x9003
_TAG_DATETIME_DIGITIZED = 0x9004
_GPS_LAT_REF, _GPS_LAT, _GPS_LON_REF, _GPS_LON = 1, 2, 3, 4


@dataclass
class GeoLocation:
    latitude: float
    longitude: float


@dataclass
class ProbeResult:
    """探测器的原始输出，所有字段都可能缺失。"""

    date_original: Optional[datetime] = None
    date_created: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    make: Optional[str] = None
    model: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class ExtractedMetadata:
    file_created: datetime
    file_modified: datetime
    date_taken: Optional[datetime] = None
    location: Optional[GeoLocation] = None
    camera: Optional[str] = None
    resolution: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "dateTaken": self.date_taken.isoformat() if self.date_taken else None,
            "location": (
                {"latitude": self.location.latitude, "longitude": self.location.longitude}
                if self.location
                else None
            ),
            "camera": self.camera,
            "resolution": self.resolution,
            "fileCreated": self.file_created.isoformat(),
            "fileModified": self.file_modified.isoformat(),
        }


def parse_exif_datetime(value: Any) -> Optional[datetime]:
    """解析 ``YYYY:MM:DD HH:MM:SS`` 格式，忽略全零等占位值；结果按配置时区解释。"""
    if value is None:
        return None
    text = str(value).strip().rstrip("\x00")
    if not text or text.startswith(("0000:00:00", "0001:01:01")):
        return None
    try:
        parsed = datetime.strptime(text[:19], _EXIF_DATE_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=get_timezone())


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().strip("\x00").strip()
    return text or None


class MetadataProbe:
    """元数据探测器接口。"""

    name = "abstract"

    def probe(self, path: Path) -> ProbeResult:
        raise NotImplementedError


class NullMetadataProbe(MetadataProbe):
    name = "none"

    def probe(self, path: Path) -> ProbeResult:
        return ProbeResult()


class ExiftoolProbe(MetadataProbe):
    name = "exiftool"

    def __init__(self, binary: str, *, timeout: float) -> None:
        self.binary = binary
        self.timeout = timeout

    def probe(self, path: Path) -> ProbeResult:
        try:
            out = subprocess.run(
                [self.binary, "-j", "-n", str(path)],
                capture_output=True,
                check=True,
                timeout=self.timeout,
            ).stdout
        except FileNotFoundError as exc:
            raise ToolUnavailableError(f"未找到 exiftool: {self.binary}") from exc
        except (subprocess.TimeoutExpired, subprocess.CalledProcessError) as exc:
            raise ToolUnavailableError(f"exiftool 执行失败: {exc}") from exc

        items = json.loads(out.decode("utf-8", errors="ignore") or "[]")
        data = items[0] if items else {}
        return ProbeResult(
            date_original=parse_exif_datetime(data.get("DateTimeOriginal")),
            date_created=parse_exif_datetime(data.get("CreateDate")),
            latitude=_as_float(data.get("GPSLatitude")),
            longitude=_as_float(data.get("GPSLongitude")),
            make=_clean_text(data.get("Make")),
            model=_clean_text(data.get("Model")),
            width=_as_int(data.get("ImageWidth")),
            height=_as_int(data.get("ImageHeight")),
        )


class PillowExifProbe(MetadataProbe):
    name = "pillow"

    def probe(self, path: Path) -> ProbeResult:
        try:
            with Image.open(path) as img:
                width, height = img.size
                exif = img.getexif()
                exif_ifd = exif.get_ifd(_TAG_EXIF_IFD)
                gps_ifd = exif.get_ifd(_TAG_GPS_IFD)
        except (UnidentifiedImageError, OSError) as exc:
            raise ToolUnavailableError(f"Pillow 无法读取图片: {exc}") from exc

        return ProbeResult(
            date_original=parse_exif_datetime(exif_ifd.get(_TAG_DATETIME_ORIGINAL)),
            date_created=parse_exif_datetime(
                exif_ifd.get(_TAG_DATETIME_DIGITIZED) or exif.get(_TAG_DATETIME)
            ),
            latitude=self._gps_coordinate(gps_ifd.get(_GPS_LAT), gps_ifd.get(_GPS_LAT_REF), negative="S"),
            longitude=self._gps_coordinate(gps_ifd.get(_GPS_LON), gps_ifd.get(_GPS_LON_REF), negative="W"),
            make=_clean_text(exif.get(_TAG_MAKE)),
            model=_clean_text(exif.get(_TAG_MODEL)),
            width=width,
            height=height,
        )

    @staticmethod
    def _gps_coordinate(dms: Any, ref: Any, *, negative: str) -> Optional[float]:
        if not dms or len(dms) != 3:
            return None
        parts = [_as_float(item) for item in dms]
        if any(part is None for part in parts):
            return None
        degrees, minutes, seconds = parts
        value = degrees + minutes / 60.0 + seconds / 3600.0
        if str(ref or "").strip().upper() == negative:
            value = -value
        return round(value, 7)


def build_metadata_probe(settings: Settings) -> MetadataProbe:
    """按配置与环境探测结果选择探测器：auto 时优先 exiftool，其次 Pillow。"""
    engine = (settings.metadata_engine or "auto").strip().lower()
    if engine == "none":
        return NullMetadataProbe()
    if engine in ("auto", "exiftool"):
        binary = shutil.which(settings.exiftool_binary)
        if binary:
            return ExiftoolProbe(binary, timeout=settings.external_tool_timeout)
        if engine == "exiftool":
            logger.warning("METADATA_ENGINE=exiftool but %s was not found on PATH, using Pillow", settings.exiftool_binary)
    return PillowExifProbe()


class MetadataExtractor:
    def __init__(self, probe: MetadataProbe) -> None:
        self.probe = probe

    def extract(self, path: str | os.PathLike) -> ExtractedMetadata:
        target = Path(path)
        file_created, file_modified = self._stat_times(target)
        result = ExtractedMetadata(file_created=file_created, file_modified=file_modified)

        try:
            probed = self.probe.probe(target)
        except Exception as exc:
            logger.warning("Metadata probe %s failed for %s: %s", self.probe.name, target.name, exc)
            return result

        result.date_taken = probed.date_original or probed.date_created
        if probed.latitude is not None and probed.longitude is not None:
            result.location = GeoLocation(latitude=probed.latitude, longitude=probed.longitude)
        camera = " ".join(part for part in (probed.make, probed.model) if part).strip()
        result.camera = camera or None
        if probed.width and probed.height:
            result.resolution = f"{probed.width}x{probed.height}"
        return result

    @staticmethod
    def _stat_times(path: Path) -> tuple[datetime, datetime]:
        try:
            st = path.stat()
        except OSError:
            current = tz_now()
            return current, current
        created = getattr(st, "st_birthtime", None) or st.st_ctime
        return from_timestamp(created), from_timestamp(st.st_mtime)
