"""照片元数据 CRUD。"""

from __future__ import annotations

from typing import Dict

from sqlalchemy.orm import Session

from app.packages.cloudstore.crud.base import CRUDBase
from app.packages.cloudstore.models.file_record import FileRecord
from app.packages.cloudstore.models.photo_metadata import PhotoMetadata


class CRUDPhotoMetadata(CRUDBase[PhotoMetadata]):
    def map_by_stored_path(self, db: Session, user_id: int) -> Dict[str, PhotoMetadata]:
        """返回 ``stored_path -> PhotoMetadata``，供照片整理时查询已整理标记。"""
        rows = (
            db.query(FileRecord.stored_path, PhotoMetadata)
            .join(PhotoMetadata, PhotoMetadata.file_id == FileRecord.id)
            .filter(FileRecord.user_id == user_id)
            .all()
        )
        return {stored_path: meta for stored_path, meta in rows}


photo_metadata_crud = CRUDPhotoMetadata(PhotoMetadata)
