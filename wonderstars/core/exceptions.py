"""
业务异常定义

调用方可预期的失败（今日已兑换、余额不足）不走异常，返回结构化结果；
这里只放需要中断流程的错误。
"""

from typing import Any, Dict, Optional


class BusinessException(Exception):
    """业务异常基类"""

    status_code = 400
    error_code = "business_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class VoucherValidationError(BusinessException):
    """优惠券配置非法（创建/更新时校验）"""

    status_code = 422
    error_code = "voucher_validation_error"


class VoucherNotFound(BusinessException):
    """优惠券不存在"""

    status_code = 404
    error_code = "voucher_not_found"


class UserNotFound(BusinessException):
    """用户不存在"""

    status_code = 404
    error_code = "user_not_found"


class InvalidAmount(BusinessException):
    """发放/消费数量非法"""

    status_code = 422
    error_code = "invalid_amount"


class DuplicateOperation(BusinessException):
    """唯一约束冲突：该操作已经执行过"""

    status_code = 409
    error_code = "duplicate_operation"


class DatastoreError(BusinessException):
    """数据库不可用或超时"""

    status_code = 503
    error_code = "datastore_error"

    def __init__(self, message: str = "Something went wrong. Please try again.", details=None):
        super().__init__(message, details)
