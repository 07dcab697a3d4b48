"""认证相关路由定义。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.packages.cloudstore.api.v1.schemas.auth import (
    LoginRequest,
    ProfileResponse,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
)
from app.packages.cloudstore.core.dependencies import get_current_active_user, get_db
from app.packages.cloudstore.models.user import User
from app.packages.cloudstore.services.auth_service import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> RegisterResponse:
    """注册新用户，配额上限使用系统默认值。"""
    return auth_service.register_user(db, email=payload.email, name=payload.name, password=payload.password)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> TokenResponse:
    """校验凭证并签发访问令牌。"""
    return auth_service.login(db, email=payload.email, password=payload.password)


@router.get("/me", response_model=ProfileResponse)
def me(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ProfileResponse:
    return auth_service.me(db, current_user)
