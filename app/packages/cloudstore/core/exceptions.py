"""异常处理模块：定义统一的业务异常与响应格式。"""

from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.packages.cloudstore.core.enums import ErrorKind


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data=None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.data = data


_KIND_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.OVER_QUOTA: status.HTTP_400_BAD_REQUEST,
    ErrorKind.STORE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.TOOL_UNAVAILABLE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.NOT_AN_IMAGE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.TOO_MANY_FILES: status.HTTP_400_BAD_REQUEST,
    ErrorKind.FILE_TOO_LARGE: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
}


class StorageError(AppException):
    """上传/存储链路的类型化错误，``kind`` 决定 HTTP 状态码。"""

    def __init__(self, kind: ErrorKind, msg: str, *, data: Optional[dict[str, Any]] = None) -> None:
        payload = {"kind": kind.value}
        if data:
            payload.update(data)
        super().__init__(msg, _KIND_STATUS[kind], payload)
        self.kind = kind


class ToolUnavailableError(RuntimeError):
    """外部工具（ImageMagick/exiftool 等）不存在、超时或返回非零状态。"""


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    payload = {
        "msg": "服务器内部错误",
        "data": None,
        "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
