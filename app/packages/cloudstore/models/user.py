"""用户模型：账号信息与存储配额计数。"""

from typing import List, Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.cloudstore.models.base import Base, TimestampMixin


class User(TimestampMixin, Base):
    """用户实体。

    ``storage_used`` 只能通过 ``user_crud.increment_storage_used`` 以原子增量方式修改，
    上限由上传前的准入检查保证，数据库层只约束非负。
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("storage_used >= 0", name="storage_used_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    hashed_password: Mapped[str] = mapped_column(String(255))
    storage_used: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    storage_limit: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    files: Mapped[List["FileRecord"]] = relationship(
        "FileRecord",
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def storage_available(self) -> int:
        return max(0, int(self.storage_limit or 0) - int(self.storage_used or 0))

    @property
    def storage_percentage(self) -> float:
        """已用空间百分比（0-100），上限为 0 时返回 0。"""
        limit: Optional[int] = self.storage_limit
        if not limit:
            return 0.0
        return min(100.0, int(self.storage_used or 0) * 100.0 / limit)
