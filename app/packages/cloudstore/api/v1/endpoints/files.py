"""文件上传、查询、下载与删除路由。

静态路径（``/files/upload``、``/files/summary/types`` 等）必须先于 ``/files/{file_id}`` 注册。
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.packages.cloudstore.api.v1.schemas.files import (
    BatchUploadResponse,
    DeleteResponse,
    FileDetailResponse,
    FileListResponse,
    PhotoMetadataResponse,
    SyncStatusResponse,
    TypeSummaryResponse,
)
from app.packages.cloudstore.core.constants import HTTP_STATUS_OK
from app.packages.cloudstore.core.dependencies import get_current_active_user, get_db, get_services
from app.packages.cloudstore.core.responses import create_response
from app.packages.cloudstore.models.user import User
from app.packages.cloudstore.services.container import ServiceContainer
from app.packages.cloudstore.services.file_service import to_file_view
from app.packages.cloudstore.services.ingestion_service import UploadItem

router = APIRouter(prefix="/files", tags=["files"])


def _to_item(upload: UploadFile, max_size: int, declared_type: Optional[str] = None) -> UploadItem:
    """最多读取 ``max_size + 1`` 字节，超限文件不整体读入内存，由上传流水线按大小拒绝。"""
    if upload.size is not None and upload.size > max_size:
        content = b""
    else:
        content = upload.file.read(max_size + 1)
    return UploadItem(
        content=content,
        original_name=upload.filename or "file",
        declared_type=declared_type,
        reported_size=upload.size,
    )


@router.post("/upload", response_model=FileDetailResponse)
def upload_file(
    file: UploadFile = File(...),
    file_type: Optional[str] = Form(None, alias="type"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    """上传单个文件；图片会同时生成缩略图并提取照片元数据。"""
    item = _to_item(file, services.ingestion.max_upload_size, file_type)
    outcome = services.ingestion.ingest(db, current_user.id, item)
    return create_response("上传成功", to_file_view(outcome.record), HTTP_STATUS_OK)


@router.post("/batch-upload", response_model=BatchUploadResponse)
def batch_upload(
    background_tasks: BackgroundTasks,
    files: list[UploadFile] = File(...),
    auto_organize: Optional[bool] = Form(None, alias="autoOrganize"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    """批量上传，单个文件失败不影响其他文件；可选在返回后异步整理照片。"""
    if auto_organize is None:
        auto_organize = services.settings.auto_organize_default
    result = services.batch.ingest_batch(
        db,
        current_user.id,
        [_to_item(upload, services.ingestion.max_upload_size) for upload in files],
        auto_organize=auto_organize,
        schedule=background_tasks.add_task,
    )
    data = {
        "succeeded": [to_file_view(outcome.record) for outcome in result.succeeded],
        "failedCount": result.failed_count,
        "failures": [failure.to_dict() for failure in result.failures],
        "uploadedBytes": result.committed_bytes,
        "organizeScheduled": result.organize_scheduled,
    }
    msg = "批量上传完成" if not result.failed_count else f"批量上传完成，{result.failed_count} 个文件失败"
    return create_response(msg, data, HTTP_STATUS_OK)


@router.get("", response_model=FileListResponse)
def list_files(
    file_type: Optional[str] = Query(None, alias="type"),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    data = services.files.list_files(db, current_user, file_type=file_type, search=search)
    return create_response("获取文件列表成功", data, HTTP_STATUS_OK)


@router.get("/summary/types", response_model=TypeSummaryResponse)
def type_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    """按文件类型统计数量与占用空间。"""
    return create_response("获取文件类型统计成功", services.files.type_summary(db, current_user), HTTP_STATUS_OK)


@router.get("/sync/status", response_model=SyncStatusResponse)
def sync_status(
    since: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    """客户端同步用：文件数量、指定时间后的新增数量与磁盘占用。"""
    data = services.files.sync_status(db, current_user, since=since)
    return create_response("获取同步状态成功", data, HTTP_STATUS_OK)


@router.get("/{file_id}", response_model=FileDetailResponse)
def get_file(
    file_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    return create_response("获取文件信息成功", services.files.get_file(db, current_user, file_id), HTTP_STATUS_OK)


@router.get("/{file_id}/download")
def download_file(
    file_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    path, record = services.files.get_download_path(db, current_user, file_id)
    return FileResponse(path, filename=record.original_name)


@router.get("/{file_id}/thumbnail")
def get_thumbnail(
    file_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    return FileResponse(services.files.get_thumbnail_path(db, current_user, file_id))


@router.get("/{file_id}/metadata", response_model=PhotoMetadataResponse)
def get_photo_metadata(
    file_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    """图片的拍摄时间、位置、相机与分辨率；非图片返回 400。"""
    data = services.files.get_photo_metadata(db, current_user, file_id)
    return create_response("获取照片元数据成功", data, HTTP_STATUS_OK)


@router.delete("/{file_id}", response_model=DeleteResponse)
def delete_file(
    file_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    return create_response("删除成功", services.files.delete_file(db, current_user, file_id), HTTP_STATUS_OK)
