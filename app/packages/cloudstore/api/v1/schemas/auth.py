"""认证相关的请求与响应模型。"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from app.packages.cloudstore.api.v1.schemas.common import ResponseEnvelope


class RegisterRequest(BaseModel):
    """用户注册时需要提交的字段约束。"""

    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)


class UserProfile(BaseModel):
    """用户信息与存储使用情况。"""

    id: int
    email: str
    name: str
    storageUsed: int
    storageLimit: int
    storageAvailable: int
    storagePercentage: float
    storageUsedFormatted: str
    storageLimitFormatted: str
    createdAt: Optional[str] = None


class TokenResponseData(BaseModel):
    """登录成功后签发的令牌信息。"""

    access_token: str
    token_type: Literal["bearer"]
    user: UserProfile


RegisterResponse = ResponseEnvelope[UserProfile]
TokenResponse = ResponseEnvelope[TokenResponseData]
ProfileResponse = ResponseEnvelope[UserProfile]
