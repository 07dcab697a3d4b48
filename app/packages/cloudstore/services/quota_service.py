"""存储配额：上传前的准入检查与用量的原子增减。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.packages.cloudstore.core.enums import ErrorKind
from app.packages.cloudstore.core.exceptions import StorageError
from app.packages.cloudstore.crud.users import CRUDUser
from app.packages.cloudstore.models.user import User
from app.packages.cloudstore.utils.formatting import format_bytes


@dataclass(frozen=True)
class Admission:
    allowed: bool
    reason: Optional[ErrorKind] = None


class QuotaLedger:
    def __init__(self, users: CRUDUser) -> None:
        self.users = users

    def get_user(self, db: Session, user_id: int) -> User:
        user = self.users.get(db, user_id)
        if user is None:
            raise StorageError(ErrorKind.NOT_FOUND, "用户不存在")
        return user

    @staticmethod
    def check_admission(user: User, incoming_bytes: int) -> Admission:
        """纯检查：``storage_used + incoming <= storage_limit``。"""
        if int(user.storage_used or 0) + int(incoming_bytes) <= int(user.storage_limit or 0):
            return Admission(allowed=True)
        return Admission(allowed=False, reason=ErrorKind.OVER_QUOTA)

    def ensure_admission(self, user: User, incoming_bytes: int) -> None:
        if not self.check_admission(user, incoming_bytes).allowed:
            raise StorageError(
                ErrorKind.OVER_QUOTA,
                "存储空间不足",
                data={
                    "storageUsed": int(user.storage_used or 0),
                    "storageLimit": int(user.storage_limit or 0),
                    "incoming": int(incoming_bytes),
                    "available": format_bytes(user.storage_available),
                },
            )

    def commit(self, db: Session, user_id: int, delta_bytes: int, *, auto_commit: bool = True) -> None:
        """以原子增量更新用量，减少时下限为 0。"""
        if not delta_bytes:
            return
        self.users.increment_storage_used(db, user_id, delta_bytes, auto_commit=auto_commit)
