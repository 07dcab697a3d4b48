"""单文件上传流水线。

分类 → 准入检查 → 写入文件 →（图片）缩略图 + 元数据 → 写文件记录 → 提交配额。

- 准入失败（用户不存在/空间不足）发生在写文件之前，不产生任何副作用；
- 写入文件之后的失败会删除已写入的原文件与缩略图，再以 ``store_failed`` 报告；
- 缩略图与元数据是尽力而为的附加数据，失败只记日志，不改变上传结果。
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.cloudstore.core.enums import ErrorKind, FileTypeEnum
from app.packages.cloudstore.core.exceptions import StorageError
from app.packages.cloudstore.core.logger import get_logger
from app.packages.cloudstore.core.timezone import to_utc
from app.packages.cloudstore.crud.file_record import CRUDFileRecord
from app.packages.cloudstore.crud.photo_metadata import CRUDPhotoMetadata
from app.packages.cloudstore.models.file_record import FileRecord
from app.packages.cloudstore.models.photo_metadata import PhotoMetadata
from app.packages.cloudstore.services.blob_store import BlobStore
from app.packages.cloudstore.services.content_classifier import resolve_file_type
from app.packages.cloudstore.services.metadata_service import ExtractedMetadata, MetadataExtractor
from app.packages.cloudstore.services.quota_service import QuotaLedger
from app.packages.cloudstore.services.thumbnail_service import ThumbnailGenerator
from app.packages.cloudstore.utils.formatting import format_bytes

logger = get_logger("ingestion")


class IngestionState(str, Enum):
    RECEIVED = "received"
    CLASSIFIED = "classified"
    ADMISSION_CHECKED = "admission_checked"
    STORED = "stored"
    ENRICHMENT_ATTEMPTED = "enrichment_attempted"
    RECORDED = "recorded"
    QUOTA_COMMITTED = "quota_committed"
    REJECTED_NO_USER = "rejected_no_user"
    REJECTED_OVER_QUOTA = "rejected_over_quota"
    FAILED_STORE = "failed_store"


_REJECTION_STATES = {
    ErrorKind.NOT_FOUND: IngestionState.REJECTED_NO_USER,
    ErrorKind.OVER_QUOTA: IngestionState.REJECTED_OVER_QUOTA,
}


@dataclass
class UploadItem:
    content: bytes
    original_name: str
    declared_type: Optional[str] = None
    # 超出上传上限的文件只读入部分内容，这里记录客户端上报的真实大小
    reported_size: Optional[int] = None

    @property
    def size(self) -> int:
        return max(len(self.content), self.reported_size or 0)


@dataclass
class IngestionOutcome:
    record: FileRecord
    state: IngestionState
    metadata: Optional[PhotoMetadata] = None

    @property
    def size(self) -> int:
        return int(self.record.file_size or 0)


class IngestionFailed(StorageError):
    """流水线终止失败，``state`` 为终止状态。"""

    def __init__(self, error: StorageError, state: IngestionState) -> None:
        super().__init__(error.kind, error.detail, data={k: v for k, v in (error.data or {}).items() if k != "kind"})
        self.state = state


class IngestionPipeline:
    def __init__(
        self,
        *,
        blob_store: BlobStore,
        quota: QuotaLedger,
        thumbnails: ThumbnailGenerator,
        extractor: MetadataExtractor,
        records: CRUDFileRecord,
        metadata_records: CRUDPhotoMetadata,
        max_upload_size: int,
    ) -> None:
        self.blob_store = blob_store
        self.quota = quota
        self.thumbnails = thumbnails
        self.extractor = extractor
        self.records = records
        self.metadata_records = metadata_records
        self.max_upload_size = max_upload_size

    def ingest(
        self,
        db: Session,
        user_id: int,
        item: UploadItem,
        *,
        commit_quota: bool = True,
        admitted: bool = False,
    ) -> IngestionOutcome:
        """执行一次完整上传。

        ``admitted=True`` 表示调用方已对整批文件做过准入检查；``commit_quota=False``
        时由调用方在最后统一提交配额增量（批量上传）。
        """
        state = IngestionState.RECEIVED
        if item.size > self.max_upload_size:
            raise StorageError(
                ErrorKind.FILE_TOO_LARGE,
                f"文件超过大小限制（{format_bytes(self.max_upload_size)}）",
                data={"name": item.original_name},
            )

        file_type = resolve_file_type(item.original_name, item.declared_type)
        state = IngestionState.CLASSIFIED

        if not admitted:
            try:
                user = self.quota.get_user(db, user_id)
                self.quota.ensure_admission(user, item.size)
            except StorageError as exc:
                raise IngestionFailed(exc, _REJECTION_STATES.get(exc.kind, IngestionState.FAILED_STORE)) from exc
        state = IngestionState.ADMISSION_CHECKED

        try:
            stored_path = self.blob_store.store(user_id, item.content, item.original_name)
        except StorageError as exc:
            raise IngestionFailed(exc, IngestionState.FAILED_STORE) from exc
        state = IngestionState.STORED

        thumbnail_path: Optional[str] = None
        extracted: Optional[ExtractedMetadata] = None
        if file_type is FileTypeEnum.IMAGE:
            thumbnail_path = self._generate_thumbnail(stored_path, user_id)
            extracted = self.extractor.extract(self.blob_store.resolve(stored_path))
            state = IngestionState.ENRICHMENT_ATTEMPTED

        try:
            record = self.records.create(
                db,
                {
                    "user_id": user_id,
                    "original_name": item.original_name,
                    "stored_name": stored_path.rsplit("/", 1)[-1],
                    "stored_path": stored_path,
                    "thumbnail_path": thumbnail_path,
                    "file_type": file_type.value,
                    "file_size": item.size,
                    "is_public": False,
                },
                auto_commit=False,
            )
            state = IngestionState.RECORDED
            if commit_quota:
                self.quota.commit(db, user_id, item.size, auto_commit=False)
            db.commit()
            db.refresh(record)
        except Exception as exc:
            db.rollback()
            self.blob_store.delete(stored_path)
            self.blob_store.delete(thumbnail_path)
            logger.warning(
                "Recording %s failed at state %s, blob removed: %s",
                item.original_name, state.value, exc,
                extra={"user_id": user_id, "file_name": item.original_name},
            )
            raise IngestionFailed(
                StorageError(ErrorKind.STORE_FAILED, "文件记录保存失败", data={"name": item.original_name}),
                IngestionState.FAILED_STORE,
            ) from exc

        final_state = IngestionState.QUOTA_COMMITTED if commit_quota else IngestionState.RECORDED
        metadata = self._record_metadata(db, record, extracted) if extracted is not None else None
        logger.info(
            "Ingested %s as %s (%s bytes, type=%s)",
            item.original_name, stored_path, item.size, file_type.value,
            extra={"user_id": user_id, "file_id": record.id, "file_name": item.original_name},
        )
        return IngestionOutcome(record=record, state=final_state, metadata=metadata)

    def _generate_thumbnail(self, stored_path: str, user_id: int) -> Optional[str]:
        try:
            return self.thumbnails.generate(stored_path, user_id)
        except Exception as exc:
            logger.warning("Thumbnail generation raised for %s: %s", stored_path, exc, extra={"user_id": user_id})
            return None

    def _record_metadata(
        self, db: Session, record: FileRecord, extracted: ExtractedMetadata
    ) -> Optional[PhotoMetadata]:
        """写入照片元数据行；失败时只记录日志，文件记录保持不变。"""
        location = extracted.location
        payload = {
            "file_id": record.id,
            "date_taken": to_utc(extracted.date_taken or record.create_time),
            "latitude": Decimal(str(location.latitude)) if location else None,
            "longitude": Decimal(str(location.longitude)) if location else None,
            "camera_model": extracted.camera,
            "resolution": extracted.resolution,
            "organized": False,
        }
        try:
            return self.metadata_records.create(db, payload)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning(
                "Photo metadata for file %s not saved: %s", record.id, exc,
                extra={"file_id": record.id},
            )
            return None
