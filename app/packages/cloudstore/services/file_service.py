"""文件查询与管理：列表、详情、下载、缩略图、删除、照片元数据与同步状态。"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.packages.cloudstore.core.config import get_settings
from app.packages.cloudstore.core.enums import ErrorKind, FileTypeEnum
from app.packages.cloudstore.core.exceptions import StorageError
from app.packages.cloudstore.core.logger import get_logger
from app.packages.cloudstore.core.timezone import isoformat, to_local
from app.packages.cloudstore.crud.file_record import CRUDFileRecord
from app.packages.cloudstore.crud.photo_metadata import CRUDPhotoMetadata
from app.packages.cloudstore.models.file_record import FileRecord
from app.packages.cloudstore.models.photo_metadata import PhotoMetadata
from app.packages.cloudstore.models.user import User
from app.packages.cloudstore.services.blob_store import BlobStore
from app.packages.cloudstore.services.metadata_service import MetadataExtractor
from app.packages.cloudstore.services.quota_service import QuotaLedger
from app.packages.cloudstore.utils.formatting import format_bytes

logger = get_logger("files")


def thumbnail_url(record: FileRecord) -> Optional[str]:
    if not record.thumbnail_path:
        return None
    return f"{get_settings().api_v1_str}/files/{record.id}/thumbnail"


def to_file_view(record: FileRecord) -> Dict[str, Any]:
    """文件记录的对外视图（camelCase 字段）。"""
    return {
        "id": record.id,
        "name": record.original_name,
        "size": int(record.file_size or 0),
        "type": record.file_type,
        "path": record.stored_path,
        "thumbnailPath": record.thumbnail_path,
        "thumbnailUrl": thumbnail_url(record),
        "isPublic": bool(record.is_public),
        "isUploaded": True,
        "userId": record.user_id,
        "createdAt": isoformat(record.create_time),
        "updatedAt": isoformat(record.update_time),
    }


def _photo_date(record: FileRecord) -> Optional[datetime]:
    meta = record.photo_metadata
    if meta is not None and meta.date_taken is not None:
        return to_local(meta.date_taken)
    return to_local(record.create_time)


class FileService:
    def __init__(
        self,
        *,
        blob_store: BlobStore,
        quota: QuotaLedger,
        extractor: MetadataExtractor,
        records: CRUDFileRecord,
        metadata_records: CRUDPhotoMetadata,
    ) -> None:
        self.blob_store = blob_store
        self.quota = quota
        self.extractor = extractor
        self.records = records
        self.metadata_records = metadata_records

    # ----------------------------
    # 查询
    # ----------------------------
    def list_files(
        self,
        db: Session,
        user: User,
        *,
        file_type: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        records = self.records.list_for_user(db, user.id, file_type=file_type, search=search)
        return [to_file_view(record) for record in records]

    def get_record(self, db: Session, user: User, file_id: int) -> FileRecord:
        record = self.records.get_for_user(db, file_id, user.id)
        if record is None:
            raise StorageError(ErrorKind.NOT_FOUND, "文件不存在", data={"fileId": file_id})
        return record

    def get_file(self, db: Session, user: User, file_id: int) -> Dict[str, Any]:
        return to_file_view(self.get_record(db, user, file_id))

    def get_download_path(self, db: Session, user: User, file_id: int) -> tuple[Path, FileRecord]:
        record = self.get_record(db, user, file_id)
        path = self.blob_store.resolve(record.stored_path)
        if not path.is_file():
            logger.warning("Blob missing on disk for file %s", record.id, extra={"file_id": record.id})
            raise StorageError(ErrorKind.NOT_FOUND, "文件已不存在于磁盘", data={"fileId": file_id})
        return path, record

    def get_thumbnail_path(self, db: Session, user: User, file_id: int) -> Path:
        record = self.get_record(db, user, file_id)
        if not record.thumbnail_path or not self.blob_store.exists(record.thumbnail_path):
            raise StorageError(ErrorKind.NOT_FOUND, "缩略图不存在", data={"fileId": file_id})
        return self.blob_store.resolve(record.thumbnail_path)

    # ----------------------------
    # 删除
    # ----------------------------
    def delete_file(self, db: Session, user: User, file_id: int) -> Dict[str, Any]:
        """删除记录并释放配额后，再删除原文件与缩略图。

        数据库提交在前：提交失败时磁盘文件保持不变；文件删除是幂等的，
        即使文件已被手动移除也不会报错。
        """
        record = self.get_record(db, user, file_id)
        size = int(record.file_size or 0)
        stored_path, thumbnail_path = record.stored_path, record.thumbnail_path

        self.records.hard_delete(db, record, auto_commit=False)
        self.quota.commit(db, user.id, -size, auto_commit=False)
        db.commit()

        removed = self.blob_store.delete(stored_path)
        self.blob_store.delete(thumbnail_path)
        logger.info(
            "Deleted file %s (%s bytes, blob removed=%s)", file_id, size, removed,
            extra={"user_id": user.id, "file_id": file_id},
        )
        return {"id": file_id, "releasedBytes": size}

    # ----------------------------
    # 照片
    # ----------------------------
    def get_photo_metadata(self, db: Session, user: User, file_id: int) -> Dict[str, Any]:
        """返回图片的元数据；没有元数据行时实时从文件中提取。"""
        record = self.get_record(db, user, file_id)
        if not record.is_image:
            raise StorageError(ErrorKind.NOT_AN_IMAGE, "该文件不是图片", data={"fileId": file_id})

        extracted = self.extractor.extract(self.blob_store.resolve(record.stored_path))
        meta: Optional[PhotoMetadata] = record.photo_metadata
        if meta is None:
            payload = extracted.to_dict()
            payload["dateTaken"] = isoformat(extracted.date_taken or record.create_time)
            payload.update({"organized": False, "organizedPath": None})
        else:
            payload = {
                "dateTaken": isoformat(meta.date_taken or record.create_time),
                "location": (
                    {"latitude": float(meta.latitude), "longitude": float(meta.longitude)}
                    if meta.latitude is not None and meta.longitude is not None
                    else None
                ),
                "camera": meta.camera_model,
                "resolution": meta.resolution,
                "fileCreated": extracted.file_created.isoformat(),
                "fileModified": extracted.file_modified.isoformat(),
                "organized": bool(meta.organized),
                "organizedPath": meta.organized_path,
            }
        payload.update({"fileId": record.id, "name": record.original_name})
        return payload

    def photos_by_date(self, db: Session, user: User) -> List[Dict[str, Any]]:
        records = self.records.list_for_user(db, user.id, file_type=FileTypeEnum.IMAGE.value)
        groups: "OrderedDict[str, List[FileRecord]]" = OrderedDict()
        for record in sorted(records, key=_photo_date, reverse=True):
            groups.setdefault(_photo_date(record).strftime("%Y-%m-%d"), []).append(record)
        return [
            {"date": day, "count": len(items), "photos": [to_file_view(r) for r in items]}
            for day, items in groups.items()
        ]

    def gallery(self, db: Session, user: User, *, page: int = 1, page_size: int = 50) -> Dict[str, Any]:
        page = max(page, 1)
        page_size = min(max(page_size, 1), 200)
        image_type = FileTypeEnum.IMAGE.value
        total = self.records.count_for_user(db, user.id, file_type=image_type)
        records = self.records.list_for_user(
            db, user.id, file_type=image_type, skip=(page - 1) * page_size, limit=page_size
        )
        items = [
            {
                "id": record.id,
                "name": record.original_name,
                "thumbnailUrl": thumbnail_url(record),
                "dateTaken": isoformat(_photo_date(record)),
                "size": int(record.file_size or 0),
            }
            for record in records
        ]
        return {"items": items, "total": total, "page": page, "pageSize": page_size}

    # ----------------------------
    # 统计
    # ----------------------------
    def type_summary(self, db: Session, user: User) -> List[Dict[str, Any]]:
        return [
            {"type": file_type, "count": count, "totalSize": total, "totalSizeFormatted": format_bytes(total)}
            for file_type, count, total in self.records.type_summary(db, user.id)
        ]

    def sync_status(self, db: Session, user: User, *, since: Optional[datetime] = None) -> Dict[str, Any]:
        db.refresh(user)
        disk_usage = self.blob_store.subdirectory_size(str(user.id)) if self.blob_store.user_dir(user.id).is_dir() else 0
        return {
            "totalFiles": self.records.count_for_user(db, user.id),
            "imageCount": self.records.count_for_user(db, user.id, file_type=FileTypeEnum.IMAGE.value),
            "newSince": self.records.count_for_user(db, user.id, since=since) if since is not None else None,
            "lastUploadAt": isoformat(self.records.latest_create_time(db, user.id)),
            "storageUsed": int(user.storage_used or 0),
            "storageLimit": int(user.storage_limit or 0),
            "storagePercentage": user.storage_percentage,
            "diskUsage": disk_usage,
            "diskUsageFormatted": format_bytes(disk_usage),
        }
