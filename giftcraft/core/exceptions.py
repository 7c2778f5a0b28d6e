"""
领域异常
"""


class GiftcraftException(Exception):
    """应用异常基类"""

    pass


class ProjectNotFoundException(GiftcraftException):
    """项目不存在"""

    pass


class MediaStorageException(GiftcraftException):
    """媒体库读写失败"""

    pass
