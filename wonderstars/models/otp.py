"""
手机验证码请求/响应模型

字段都允许缺省，缺字段时由服务层返回 400 文案。
"""

from typing import Optional
from pydantic import BaseModel


class SendOtpRequest(BaseModel):
    phone: Optional[str] = None


class VerifyOtpRequest(BaseModel):
    phone: Optional[str] = None
    code: Optional[str] = None


class OtpOutcome(BaseModel):
    """服务层结果：HTTP状态码 + 响应体"""

    status_code: int
    body: dict
