"""服务装配：启动时按配置构造一次全部服务，通过依赖注入提供给路由层。"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from app.packages.cloudstore.core.config import Settings, get_settings
from app.packages.cloudstore.core.logger import logger
from app.packages.cloudstore.crud.file_record import file_record_crud
from app.packages.cloudstore.crud.photo_metadata import photo_metadata_crud
from app.packages.cloudstore.crud.users import user_crud
from app.packages.cloudstore.db import session as db_session
from app.packages.cloudstore.services.batch_service import BatchIngestionCoordinator
from app.packages.cloudstore.services.blob_store import BlobStore
from app.packages.cloudstore.services.file_service import FileService
from app.packages.cloudstore.services.ingestion_service import IngestionPipeline
from app.packages.cloudstore.services.metadata_service import MetadataExtractor, build_metadata_probe
from app.packages.cloudstore.services.organizer_service import PhotoOrganizer
from app.packages.cloudstore.services.quota_service import QuotaLedger
from app.packages.cloudstore.services.thumbnail_service import ThumbnailGenerator, build_thumbnailer


@dataclass
class ServiceContainer:
    settings: Settings
    blob_store: BlobStore
    quota: QuotaLedger
    thumbnails: ThumbnailGenerator
    extractor: MetadataExtractor
    ingestion: IngestionPipeline
    organizer: PhotoOrganizer
    batch: BatchIngestionCoordinator
    files: FileService


def _new_session():
    # 每次调用时读取 SessionLocal，测试中替换引擎后依然生效
    return db_session.SessionLocal()


def build_container(settings: Optional[Settings] = None) -> ServiceContainer:
    settings = settings or get_settings()
    blob_store = BlobStore(settings.upload_directory)
    quota = QuotaLedger(user_crud)
    thumbnailer = build_thumbnailer(settings)
    thumbnails = ThumbnailGenerator(blob_store, thumbnailer, size=settings.thumbnail_size)
    probe = build_metadata_probe(settings)
    extractor = MetadataExtractor(probe)

    ingestion = IngestionPipeline(
        blob_store=blob_store,
        quota=quota,
        thumbnails=thumbnails,
        extractor=extractor,
        records=file_record_crud,
        metadata_records=photo_metadata_crud,
        max_upload_size=settings.max_upload_size,
    )
    organizer = PhotoOrganizer(blob_store, extractor, photo_metadata_crud, session_factory=_new_session)
    batch = BatchIngestionCoordinator(ingestion, quota, organizer, max_files=settings.max_batch_files)
    files = FileService(
        blob_store=blob_store,
        quota=quota,
        extractor=extractor,
        records=file_record_crud,
        metadata_records=photo_metadata_crud,
    )

    logger.info(
        "Services ready: upload root=%s, thumbnailer=%s, metadata probe=%s",
        blob_store.root, thumbnailer.name, probe.name,
    )
    return ServiceContainer(
        settings=settings,
        blob_store=blob_store,
        quota=quota,
        thumbnails=thumbnails,
        extractor=extractor,
        ingestion=ingestion,
        organizer=organizer,
        batch=batch,
        files=files,
    )


@lru_cache
def get_container() -> ServiceContainer:
    return build_container()
