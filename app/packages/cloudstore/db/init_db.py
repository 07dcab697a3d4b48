"""Database bootstrapping utilities."""

from app.packages.cloudstore.models import FileRecord, PhotoMetadata, User  # noqa: F401  触发模型注册
from app.packages.cloudstore.core.config import get_settings
from app.packages.cloudstore.core.logger import logger
from app.packages.cloudstore.db import session as db_session
from app.packages.cloudstore.models.base import Base


def init_db() -> None:
    """Create all database tables if they do not exist, and make sure the upload root is present."""
    Base.metadata.create_all(bind=db_session.engine)
    upload_root = get_settings().upload_directory
    upload_root.mkdir(parents=True, exist_ok=True)
    logger.info("Database ready, uploads stored under %s", upload_root)
