"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from app.packages.cloudstore.models.file_record import FileRecord
from app.packages.cloudstore.models.photo_metadata import PhotoMetadata
from app.packages.cloudstore.models.user import User

__all__ = [
    "FileRecord",
    "PhotoMetadata",
    "User",
]
