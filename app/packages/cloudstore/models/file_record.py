"""文件记录模型：每条记录对应上传目录中一个真实存在的文件。"""

from typing import Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.cloudstore.core.enums import FileTypeEnum
from app.packages.cloudstore.models.base import Base, TimestampMixin


class FileRecord(TimestampMixin, Base):
    __tablename__ = "file_records"
    __table_args__ = (
        UniqueConstraint("user_id", "stored_name", name="uq_file_records_user_stored_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    original_name: Mapped[str] = mapped_column(String(255))
    stored_name: Mapped[str] = mapped_column(String(255))
    stored_path: Mapped[str] = mapped_column(String(1024))  # 相对上传根目录
    thumbnail_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    file_type: Mapped[str] = mapped_column(String(16), default=FileTypeEnum.OTHER.value, index=True)
    file_size: Mapped[int] = mapped_column(BigInteger, default=0)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)

    owner: Mapped["User"] = relationship("User", back_populates="files")
    photo_metadata: Mapped[Optional["PhotoMetadata"]] = relationship(
        "PhotoMetadata",
        back_populates="file",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def is_image(self) -> bool:
        return self.file_type == FileTypeEnum.IMAGE.value
