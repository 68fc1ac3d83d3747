"""
领域异常
服务层抛出，路由层统一映射为 HTTP 状态码

继承 ValueError：调用方按 ValueError 捕获时行为不变
"""


class DomainError(ValueError):
    """领域异常基类"""
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotFound(DomainError):
    """房间/住宿记录/预订不存在"""
    status_code = 404


class Conflict(DomainError):
    """房间不可用、重复房间号、时间段冲突、已退房等"""
    status_code = 409


class ValidationError(DomainError):
    """时间段非法、无可用折扣、日期格式错误"""
    status_code = 400


class Unauthorized(DomainError):
    """缺少操作人身份"""
    status_code = 401


class UpstreamUnavailable(DomainError):
    """外部协作方（通知、图片存储）失败

    写操作提交后出现时只记录日志，不向调用方报错
    """
    status_code = 502
