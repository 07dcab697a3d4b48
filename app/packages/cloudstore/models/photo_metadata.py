"""照片元数据模型：与图片类型的文件记录一对一，随文件记录级联删除。"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.cloudstore.models.base import Base, TimestampMixin


class PhotoMetadata(TimestampMixin, Base):
    __tablename__ = "photo_metadata"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    file_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("file_records.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    date_taken: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)
    longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)
    camera_model: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    resolution: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)  # "WxH"
    organized: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    organized_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    file: Mapped["FileRecord"] = relationship("FileRecord", back_populates="photo_metadata")
