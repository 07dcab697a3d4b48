"""枚举定义：文件类型分类与错误类别。"""

from enum import Enum


class FileTypeEnum(str, Enum):
    """文件的粗粒度类型，由扩展名决定。"""

    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    AUDIO = "audio"
    OTHER = "other"


class ErrorKind(str, Enum):
    """各组件对外暴露的错误类别，调用方按类别分支而不是匹配消息文本。"""

    NOT_FOUND = "not_found"
    OVER_QUOTA = "over_quota"
    STORE_FAILED = "store_failed"
    TOOL_UNAVAILABLE = "tool_unavailable"
    NOT_AN_IMAGE = "not_an_image"
    TOO_MANY_FILES = "too_many_files"
    FILE_TOO_LARGE = "file_too_large"
