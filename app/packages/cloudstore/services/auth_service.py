"""认证服务：注册、登录与当前用户信息。"""

from typing import Any, Dict

from sqlalchemy.orm import Session

from app.packages.cloudstore.core.config import get_settings
from app.packages.cloudstore.core.constants import (
    ACCESS_TOKEN_TYPE,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_OK,
    HTTP_STATUS_UNAUTHORIZED,
)
from app.packages.cloudstore.core.exceptions import AppException
from app.packages.cloudstore.core.logger import logger
from app.packages.cloudstore.core.responses import create_response
from app.packages.cloudstore.core.security import create_access_token, get_password_hash, verify_password
from app.packages.cloudstore.core.timezone import isoformat
from app.packages.cloudstore.crud.users import user_crud
from app.packages.cloudstore.models.user import User
from app.packages.cloudstore.utils.formatting import format_bytes


def to_user_view(user: User) -> Dict[str, Any]:
    used = int(user.storage_used or 0)
    limit = int(user.storage_limit or 0)
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "storageUsed": used,
        "storageLimit": limit,
        "storageAvailable": user.storage_available,
        "storagePercentage": round(user.storage_percentage, 2),
        "storageUsedFormatted": format_bytes(used),
        "storageLimitFormatted": format_bytes(limit),
        "createdAt": isoformat(user.create_time),
    }


class AuthService:
    """负责处理用户注册与登录流程。新用户的配额上限取自 ``DEFAULT_STORAGE_LIMIT``。"""

    def register_user(self, db: Session, *, email: str, name: str, password: str) -> dict:
        normalized = email.strip().lower()
        if user_crud.get_by_email(db, normalized):
            raise AppException(msg="邮箱已被注册", code=HTTP_STATUS_CONFLICT)

        user = user_crud.create(
            db,
            {
                "email": normalized,
                "name": name.strip(),
                "hashed_password": get_password_hash(password),
                "storage_used": 0,
                "storage_limit": get_settings().default_storage_limit,
                "is_active": True,
            },
        )
        logger.info("Registered user %s", user.id, extra={"user_id": user.id})
        return create_response("注册成功", to_user_view(user), HTTP_STATUS_OK)

    def login(self, db: Session, *, email: str, password: str) -> dict:
        """校验凭证并签发访问令牌。"""
        user = user_crud.get_by_email(db, email)
        if user is None or not verify_password(password, user.hashed_password):
            raise AppException(msg="邮箱或密码错误", code=HTTP_STATUS_UNAUTHORIZED)

        access_token = create_access_token({"user_id": user.id, "email": user.email})
        return create_response(
            "登录成功",
            {
                "access_token": access_token,
                "token_type": ACCESS_TOKEN_TYPE,
                "user": to_user_view(user),
            },
            HTTP_STATUS_OK,
        )

    def me(self, db: Session, user: User) -> dict:
        db.refresh(user)
        return create_response("获取用户信息成功", to_user_view(user), HTTP_STATUS_OK)


auth_service = AuthService()
