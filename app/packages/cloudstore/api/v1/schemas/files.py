"""文件与照片接口的响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel

from app.packages.cloudstore.api.v1.schemas.common import ResponseEnvelope


class FileView(BaseModel):
    id: int
    name: str
    size: int
    type: str
    path: str
    thumbnailPath: Optional[str] = None
    thumbnailUrl: Optional[str] = None
    isPublic: bool = False
    isUploaded: bool = True
    userId: int
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class BatchFailureView(BaseModel):
    name: str
    kind: str
    msg: str


class BatchUploadData(BaseModel):
    """批量上传结果：部分失败时整体仍返回成功，失败数量单独给出。"""

    succeeded: list[FileView]
    failedCount: int
    failures: list[BatchFailureView]
    uploadedBytes: int
    organizeScheduled: bool


class OrganizeData(BaseModel):
    organizedCount: int
    failedCount: int
    totalCount: int
    skippedCount: int = 0


class TypeSummaryItem(BaseModel):
    type: str
    count: int
    totalSize: int
    totalSizeFormatted: str


class DeleteData(BaseModel):
    id: int
    releasedBytes: int


FileDetailResponse = ResponseEnvelope[FileView]
FileListResponse = ResponseEnvelope[list[FileView]]
BatchUploadResponse = ResponseEnvelope[BatchUploadData]
OrganizeResponse = ResponseEnvelope[OrganizeData]
TypeSummaryResponse = ResponseEnvelope[list[TypeSummaryItem]]
DeleteResponse = ResponseEnvelope[DeleteData]
# 元数据、按日期分组、图库与同步状态字段较多，直接透传字典
PhotoMetadataResponse = ResponseEnvelope[dict[str, Any]]
PhotosByDateResponse = ResponseEnvelope[list[dict[str, Any]]]
GalleryResponse = ResponseEnvelope[dict[str, Any]]
SyncStatusResponse = ResponseEnvelope[dict[str, Any]]
