"""领域层异常基类。

All payment failures derive from ``BusinessException`` so the API layer can
render any of them through one handler. The domain never imports ``core``.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.codes import BusinessCode


class BusinessException(Exception):
    """
    业务异常基类

    Attributes:
        code: BusinessCode 或 PaymentCode
        message: 面向调用方的错误描述
        error_type: 稳定的错误类型名（如 RefundExceedsBalance）
        details: 结构化上下文，不得包含卡号或完整令牌
        field: 出错的输入字段
    """

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)

    def log_context(self) -> dict[str, Any]:
        """Key/value pairs for structured logging."""
        context: dict[str, Any] = {
            "code": int(self.code),
            "error_type": self.error_type,
            "error": self.message,
        }
        if self.field:
            context["field"] = self.field
        return context

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={int(self.code)}, message={self.message!r})"


class DomainValidationException(BusinessException):
    """实体不变量被破坏（负金额、非法货币、退款超额）"""

    def __init__(self, message: str, *, field: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )
