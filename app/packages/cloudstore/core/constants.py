"""常量定义：HTTP 状态码、令牌类型与上传目录布局。"""

from fastapi import status

HTTP_STATUS_OK = status.HTTP_200_OK
HTTP_STATUS_BAD_REQUEST = status.HTTP_400_BAD_REQUEST
HTTP_STATUS_UNAUTHORIZED = status.HTTP_401_UNAUTHORIZED
HTTP_STATUS_CONFLICT = status.HTTP_409_CONFLICT

ACCESS_TOKEN_TYPE = "bearer"

# 用户目录下的保留子目录，照片整理时不会递归进入
THUMBNAILS_DIRNAME = "thumbnails"
ORGANIZED_DIRNAME = "organized_photos"
RESERVED_DIRNAMES = frozenset({THUMBNAILS_DIRNAME, ORGANIZED_DIRNAME})

THUMBNAIL_PREFIX = "thumb_"
