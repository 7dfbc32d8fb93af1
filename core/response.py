"""
统一响应格式

Every endpoint answers ``{code, message, data, error}``. Payment results are
pydantic models; they are dumped in JSON mode here so Decimal amounts travel
as strings ("99.99") and never as floats.
"""
from typing import Any, Optional, Generic, TypeVar
from pydantic import BaseModel, Field, field_serializer
from datetime import datetime, timezone

from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


T = TypeVar("T")


class ErrorDetail(BaseModel):
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """UTC ISO8601，以 Z 结尾"""
        ts = timestamp.replace(tzinfo=timezone.utc) if timestamp.tzinfo is None else timestamp.astimezone(timezone.utc)
        return ts.isoformat().replace("+00:00", "Z")


class Response(BaseModel, Generic[T]):
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


def success_response(
    data: Any = None,
    message: str = "Success",
    code: int = BusinessCode.SUCCESS
) -> Response:
    """创建成功响应；pydantic 模型按 JSON 模式展开"""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    return Response(code=code, message=message, data=data, error=None)


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None
) -> Response:
    """
    创建错误响应

    Args:
        code: BusinessCode 或 PaymentCode
        message: 错误消息
        error_type: 错误类型（如 InvalidRequest / RefundExceedsBalance）
        details: 错误详情
        field: 错误字段
        request_id: 请求ID
    """
    return Response(
        code=code,
        message=message,
        data=None,
        error=ErrorDetail(type=error_type, details=details, field=field, request_id=request_id),
    )


def exception_response(exc: BusinessException, request_id: Optional[str] = None) -> Response:
    """把业务异常展开为错误响应"""
    return error_response(
        code=exc.code,
        message=exc.message,
        error_type=exc.error_type,
        details=exc.details,
        field=exc.field,
        request_id=request_id,
    )
