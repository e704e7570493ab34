"""
统一异常体系。

所有业务异常继承 BaseAppException，包含：
- type:        错误类型标识（unauthenticated / forbidden / not_found / conflict / validation_error）
- code:        业务错误码（ADMIN_REQUIRED / INSUFFICIENT_CREDITS / LEDGER_BUSY / ...）
- message:     人类可读的描述
- detail:      可选的附加信息（dict / list / None）
- http_status: HTTP 状态码

Service 层只需 raise，exception_handler 统一捕获并格式化响应。
任何被拒绝的操作都在 transaction.atomic() 内抛出，数据库状态保持调用前的样子。
"""


class BaseAppException(Exception):
    """所有业务异常的基类。"""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class UnauthenticatedError(BaseAppException):
    """没有解析到调用者身份，401。"""

    type = 'unauthenticated'
    code = 'UNAUTHENTICATED'
    http_status = 401


class ForbiddenError(BaseAppException):
    """调用者角色不够，或者不拥有目标资源，403。"""

    type = 'forbidden'
    code = 'FORBIDDEN'
    http_status = 403


class NotFoundError(BaseAppException):
    """引用的 organization / identity / transaction 不存在，404。"""

    type = 'not_found'
    code = 'NOT_FOUND'
    http_status = 404


class ConflictError(BaseAppException):
    """
    状态冲突，409。

    包括重复状态（重复报价、相反的审核结果）、余额不足，以及 ledger 行锁重试耗尽。
    锁冲突时 detail 带 retryable=True，调用方可以用同样的输入重试。
    """

    type = 'conflict'
    code = 'CONFLICT'
    http_status = 409


class ValidationError(BaseAppException):
    """输入验证失败，任何写入之前抛出，400。"""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400
