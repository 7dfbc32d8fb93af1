"""
Numeric business codes carried in every API envelope.

``BusinessCode`` holds the cross-cutting codes (success, validation, HTTP-level
and infrastructure failures); payment outcomes live in
``shared.codes.payment_codes.PaymentCode``. Both are IntEnums with disjoint
ranges so a single lookup table can map either to an HTTP status.
"""
from enum import IntEnum

from .payment_codes import PaymentCode


class BusinessCode(IntEnum):
    SUCCESS = 0

    # 输入校验 (1xxxx)
    PARAM_VALIDATION_ERROR = 10003

    # 通用资源 (2xxxx)
    NOT_FOUND = 20006

    # HTTP 层鉴权 (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # 系统 (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode", "PaymentCode"]
