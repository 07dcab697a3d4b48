"""照片整理：把用户目录下的图片按拍摄日期复制到 ``organized_photos/YYYY/MM/DD/``。

整理只复制不删除，原文件、缩略图与已有的整理副本都不会被修改。
已在数据库中标记为已整理且副本仍存在的图片会被跳过，重复执行不会产生新的副本。
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.cloudstore.core.enums import FileTypeEnum
from app.packages.cloudstore.core.logger import get_logger
from app.packages.cloudstore.core.timezone import to_local
from app.packages.cloudstore.crud.photo_metadata import CRUDPhotoMetadata
from app.packages.cloudstore.models.photo_metadata import PhotoMetadata
from app.packages.cloudstore.services.blob_store import BlobStore, sanitize_filename
from app.packages.cloudstore.services.content_classifier import classify
from app.packages.cloudstore.services.metadata_service import MetadataExtractor

logger = get_logger("organizer")


@dataclass
class OrganizeReport:
    organized_count: int = 0
    failed_count: int = 0
    total_count: int = 0
    skipped_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "organizedCount": self.organized_count,
            "failedCount": self.failed_count,
            "totalCount": self.total_count,
            "skippedCount": self.skipped_count,
        }


class PhotoOrganizer:
    def __init__(
        self,
        blob_store: BlobStore,
        extractor: MetadataExtractor,
        metadata_records: CRUDPhotoMetadata,
        *,
        session_factory: Optional[Callable[[], Session]] = None,
    ) -> None:
        self.blob_store = blob_store
        self.extractor = extractor
        self.metadata_records = metadata_records
        self.session_factory = session_factory

    def organize(self, user_id: int, db: Optional[Session] = None) -> OrganizeReport:
        """整理单个用户的全部图片，单个文件失败只计数，不中断整体。

        传入 ``db`` 时会读取已记录的拍摄时间与整理标记，并在复制后回写标记；
        不传时只依据文件本身的元数据整理。
        """
        report = OrganizeReport()
        tracked: Dict[str, PhotoMetadata] = (
            self.metadata_records.map_by_stored_path(db, user_id) if db is not None else {}
        )
        organized_root = self.blob_store.organized_dir(user_id)

        for path in self.blob_store.iter_user_files(user_id):
            if classify(path.name) is not FileTypeEnum.IMAGE:
                continue
            report.total_count += 1
            rel = self.blob_store.relpath(path)
            meta = tracked.get(rel)

            try:
                if meta is not None and meta.organized and self.blob_store.exists(meta.organized_path):
                    report.skipped_count += 1
                    continue
                photo_date = self._photo_date(path, meta)
                target_dir = organized_root / f"{photo_date:%Y}" / f"{photo_date:%m}" / f"{photo_date:%d}"
                name = sanitize_filename(meta.file.original_name) if meta is not None else path.name
                copied = self.blob_store.copy_to_dir(path, target_dir, name=name)
            except Exception as exc:
                report.failed_count += 1
                logger.warning("Organizing %s failed: %s", rel, exc, exc_info=True, extra={"user_id": user_id})
                continue

            report.organized_count += 1
            if meta is not None and db is not None:
                self._mark_organized(db, meta, self.blob_store.relpath(copied))

        logger.info(
            "Organized photos for user %s: %s",
            user_id, report.to_dict(),
            extra={"user_id": user_id},
        )
        return report

    def organize_in_background(self, user_id: int) -> None:
        """供后台任务调用：自行打开会话，异常只记录日志。"""
        if self.session_factory is None:
            self._run_safely(user_id, None)
            return
        db = self.session_factory()
        try:
            self._run_safely(user_id, db)
        finally:
            db.close()

    def _run_safely(self, user_id: int, db: Optional[Session]) -> None:
        try:
            self.organize(user_id, db)
        except Exception:
            logger.exception("Background photo organizing failed", extra={"user_id": user_id})

    def _photo_date(self, path: Path, meta: Optional[PhotoMetadata]) -> datetime:
        if meta is not None and meta.date_taken is not None:
            return to_local(meta.date_taken)
        extracted = self.extractor.extract(path)
        return to_local(extracted.date_taken or extracted.file_created)

    def _mark_organized(self, db: Session, meta: PhotoMetadata, organized_path: str) -> None:
        meta.organized = True
        meta.organized_path = organized_path
        try:
            self.metadata_records.save(db, meta)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning(
                "Could not mark file %s as organized: %s", meta.file_id, exc,
                extra={"file_id": meta.file_id},
            )


def schedule_in_thread(func: Callable[..., Any], *args: Any) -> None:
    """没有请求级后台任务可用时，在守护线程中执行。"""
    threading.Thread(target=func, args=args, daemon=True).start()
