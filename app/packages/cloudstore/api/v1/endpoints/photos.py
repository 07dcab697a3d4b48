"""照片浏览与整理路由。"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.cloudstore.api.v1.schemas.files import GalleryResponse, OrganizeResponse, PhotosByDateResponse
from app.packages.cloudstore.core.constants import HTTP_STATUS_OK
from app.packages.cloudstore.core.dependencies import get_current_active_user, get_db, get_services
from app.packages.cloudstore.core.responses import create_response
from app.packages.cloudstore.models.user import User
from app.packages.cloudstore.services.container import ServiceContainer

router = APIRouter(prefix="/files/photos", tags=["photos"])


@router.get("/by-date", response_model=PhotosByDateResponse)
def photos_by_date(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    """按拍摄日期分组，最新的日期在前。"""
    return create_response("获取照片成功", services.files.photos_by_date(db, current_user), HTTP_STATUS_OK)


@router.get("/gallery", response_model=GalleryResponse)
def gallery(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200, alias="pageSize"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    data = services.files.gallery(db, current_user, page=page, page_size=page_size)
    return create_response("获取图库成功", data, HTTP_STATUS_OK)


@router.post("/organize", response_model=OrganizeResponse)
def organize_photos(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    services: ServiceContainer = Depends(get_services),
):
    """立即整理当前用户的照片，返回整理统计。"""
    report = services.organizer.organize(current_user.id, db)
    return create_response("照片整理完成", report.to_dict(), HTTP_STATUS_OK)
