"""文件记录 CRUD。"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.packages.cloudstore.crud.base import CRUDBase
from app.packages.cloudstore.models.file_record import FileRecord


class CRUDFileRecord(CRUDBase[FileRecord]):
    def get_for_user(self, db: Session, file_id: int, user_id: int) -> Optional[FileRecord]:
        return (
            self.query(db)
            .filter(FileRecord.id == file_id, FileRecord.user_id == user_id)
            .first()
        )

    def list_for_user(
        self,
        db: Session,
        user_id: int,
        *,
        file_type: Optional[str] = None,
        search: Optional[str] = None,
        since: Optional[datetime] = None,
        skip: int = 0,
        limit: Optional[int] = None,
        newest_first: bool = True,
    ) -> List[FileRecord]:
        query = self._filtered(db, user_id, file_type=file_type, search=search, since=since)
        order = FileRecord.create_time.desc() if newest_first else FileRecord.create_time.asc()
        query = query.options(selectinload(FileRecord.photo_metadata)).order_by(order, FileRecord.id.desc())
        if skip:
            query = query.offset(max(skip, 0))
        if limit is not None:
            query = query.limit(max(limit, 1))
        return query.all()

    def count_for_user(
        self,
        db: Session,
        user_id: int,
        *,
        file_type: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> int:
        query = self._filtered(db, user_id, file_type=file_type, since=since)
        return int(query.with_entities(func.count(FileRecord.id)).scalar() or 0)

    def type_summary(self, db: Session, user_id: int) -> list[tuple[str, int, int]]:
        """按文件类型统计数量与总大小，返回 ``(type, count, total_size)`` 列表。"""
        rows = (
            db.query(FileRecord.file_type, func.count(FileRecord.id), func.coalesce(func.sum(FileRecord.file_size), 0))
            .filter(FileRecord.user_id == user_id)
            .group_by(FileRecord.file_type)
            .order_by(FileRecord.file_type.asc())
            .all()
        )
        return [(row[0], int(row[1]), int(row[2])) for row in rows]

    def latest_create_time(self, db: Session, user_id: int) -> Optional[datetime]:
        return (
            db.query(func.max(FileRecord.create_time))
            .filter(FileRecord.user_id == user_id)
            .scalar()
        )

    def _filtered(self, db: Session, user_id: int, *, file_type=None, search=None, since=None):
        query = self.query(db).filter(FileRecord.user_id == user_id)
        if file_type and file_type != "all":
            query = query.filter(FileRecord.file_type == file_type)
        if search and search.strip():
            query = query.filter(FileRecord.original_name.ilike(f"%{search.strip()}%"))
        if since is not None:
            query = query.filter(FileRecord.create_time >= since)
        return query


file_record_crud = CRUDFileRecord(FileRecord)
