"""测试夹具：为 pytest 提供数据库、上传目录、服务组件与客户端的共享配置。"""

import io
import os
import shutil
import tempfile
import uuid
from typing import Callable, Generator, Optional

# 必须在导入应用之前设置，配置对象会被缓存
_TEST_ROOT = tempfile.mkdtemp(prefix="cloudstore_tests_")
TEST_DB_PATH = os.path.join(_TEST_ROOT, "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["UPLOAD_ROOT"] = os.path.join(_TEST_ROOT, "uploads")
os.environ["LOG_DIR"] = os.path.join(_TEST_ROOT, "log")
os.environ["THUMBNAIL_ENGINE"] = "pillow"
os.environ["METADATA_ENGINE"] = "pillow"
os.environ["TIMEZONE"] = "UTC"
os.environ["AUTO_ORGANIZE_DEFAULT"] = "false"

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.main import app
from app.packages.cloudstore.core.dependencies import get_db
from app.packages.cloudstore.crud.file_record import file_record_crud
from app.packages.cloudstore.crud.photo_metadata import photo_metadata_crud
from app.packages.cloudstore.crud.users import user_crud
from app.packages.cloudstore.db import session as db_session
from app.packages.cloudstore.db.init_db import init_db
from app.packages.cloudstore.models.base import Base
from app.packages.cloudstore.models.user import User
from app.packages.cloudstore.services.blob_store import BlobStore
from app.packages.cloudstore.services.ingestion_service import IngestionPipeline
from app.packages.cloudstore.services.metadata_service import MetadataExtractor, PillowExifProbe
from app.packages.cloudstore.services.organizer_service import PhotoOrganizer
from app.packages.cloudstore.services.quota_service import QuotaLedger
from app.packages.cloudstore.services.thumbnail_service import PillowThumbnailer, ThumbnailGenerator

MB = 1024 * 1024


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    Base.metadata.create_all(bind=engine)
    init_db()
    yield

    engine.dispose()
    shutil.rmtree(_TEST_ROOT, ignore_errors=True)


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_user(db_session_fixture: Session) -> Callable[..., User]:
    """创建带指定配额的用户，邮箱随机生成，避免用例之间互相影响。"""

    def _make(*, storage_limit: int = 10 * MB, storage_used: int = 0) -> User:
        return user_crud.create(
            db_session_fixture,
            {
                "email": f"user_{uuid.uuid4().hex[:12]}@example.com",
                "name": "tester",
                "hashed_password": "not-used",
                "storage_used": storage_used,
                "storage_limit": storage_limit,
            },
        )

    return _make


@pytest.fixture()
def blob_store(tmp_path) -> BlobStore:
    return BlobStore(tmp_path / "uploads")


@pytest.fixture()
def extractor() -> MetadataExtractor:
    return MetadataExtractor(PillowExifProbe())


@pytest.fixture()
def make_pipeline(blob_store: BlobStore, extractor: MetadataExtractor) -> Callable[..., IngestionPipeline]:
    """按需替换协作者（记录 CRUD、缩略图生成器等）构造上传流水线。"""

    def _make(
        *,
        records=file_record_crud,
        thumbnails: Optional[ThumbnailGenerator] = None,
        metadata_extractor: Optional[MetadataExtractor] = None,
        max_upload_size: int = 5 * MB,
    ) -> IngestionPipeline:
        return IngestionPipeline(
            blob_store=blob_store,
            quota=QuotaLedger(user_crud),
            thumbnails=thumbnails or ThumbnailGenerator(blob_store, PillowThumbnailer(), size=300),
            extractor=metadata_extractor or extractor,
            records=records,
            metadata_records=photo_metadata_crud,
            max_upload_size=max_upload_size,
        )

    return _make


@pytest.fixture()
def organizer(blob_store: BlobStore, extractor: MetadataExtractor) -> PhotoOrganizer:
    return PhotoOrganizer(blob_store, extractor, photo_metadata_crud)


def _build_jpeg(
    *,
    size: tuple[int, int] = (640, 480),
    color: str = "red",
    taken: Optional[str] = None,
    make: Optional[str] = None,
    model: Optional[str] = None,
) -> bytes:
    """生成一张 JPEG，可选写入拍摄时间与相机信息（主 IFD 标签）。"""
    img = Image.new("RGB", size, color)
    exif = Image.Exif()
    if taken:
        exif[0x0132] = taken
    if make:
        exif[0x010F] = make
    if model:
        exif[0x0110] = model
    buf = io.BytesIO()
    if len(exif):
        img.save(buf, format="JPEG", exif=exif.tobytes())
    else:
        img.save(buf, format="JPEG")
    return buf.getvalue()


@pytest.fixture()
def make_jpeg() -> Callable[..., bytes]:
    return _build_jpeg


@pytest.fixture()
def client(db_session_fixture):
    """构建 FastAPI TestClient，并注入测试专用的数据库依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
