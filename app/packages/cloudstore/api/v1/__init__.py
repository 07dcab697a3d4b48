"""API v1 汇总路由：统一挂载所有版本化的子路由。"""

from fastapi import APIRouter

from app.packages.cloudstore.api.v1.endpoints import auth, files, photos

api_router = APIRouter()
api_router.include_router(auth.router)
# /files/photos/* 需先于 /files/{file_id} 匹配
api_router.include_router(photos.router)
api_router.include_router(files.router)
