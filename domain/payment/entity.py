"""
支付领域实体 - 支付聚合根
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional

from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import InvalidPaymentStateException


MAX_RETRY_ATTEMPTS = 3


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"        # 待支付
    PAID = "paid"              # 支付成功
    FAILED = "failed"          # 支付失败（可重试）
    REFUNDED = "refunded"      # 已退款（含部分退款）
    CANCELLED = "cancelled"    # 已取消


class PaymentMethod(str, Enum):
    CARD = "card"
    APPLE_PAY = "apple_pay"
    STC_PAY = "stc_pay"


TERMINAL_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.REFUNDED, PaymentStatus.CANCELLED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def generate_payment_public_id() -> str:
    return f"pmt_{secrets.token_hex(12)}"


@dataclass
class PaymentMetadata:
    """
    网关关联数据

    Named fields cover the keys the payment flows write; anything else the
    stored JSON carries survives in ``extra``.
    """

    gateway: Optional[str] = None
    given_id: Optional[str] = None  # 幂等键
    description: Optional[str] = None
    callback_url: Optional[str] = None
    session_id: Optional[str] = None
    recurring: Optional[bool] = None
    token_hint: Optional[str] = None
    moyasar_response: Optional[dict] = None
    transaction_id: Optional[str] = None
    moyasar_created_at: Optional[str] = None
    verification: Optional[dict] = None
    failure: Optional[dict] = None
    refund: Optional[dict] = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def _known_keys(cls) -> set[str]:
        return {f.name for f in fields(cls)} - {"extra"}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PaymentMetadata":
        meta = cls()
        if data:
            meta.merge(data)
        return meta

    def to_dict(self) -> dict:
        data = dict(self.extra)
        for key in self._known_keys():
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    def merge(self, patch: "Mapping[str, Any] | PaymentMetadata") -> "PaymentMetadata":
        """Merge keys into the bag; existing keys not in ``patch`` are kept."""
        if isinstance(patch, PaymentMetadata):
            patch = patch.to_dict()
        known = self._known_keys()
        for key, value in patch.items():
            if key == "extra" and isinstance(value, Mapping):
                self.extra.update(value)
            elif key in known:
                setattr(self, key, value)
            else:
                self.extra[key] = value
        return self


@dataclass
class Payment:
    """
    支付聚合根 - 管理一次收款尝试的生命周期

    业务规则：
    1. 金额不能为负，货币代码为3位字母
    2. 状态转换必须遵循状态机（pending -> paid/failed/cancelled, failed -> paid/failed/cancelled, paid -> refunded）
    3. 累计退款金额不能超过支付金额
    4. payment_date 仅在转为 paid 时设置
    """

    id: Optional[int]
    public_id: str
    business_id: str
    amount: Decimal
    currency: str = "SAR"
    status: PaymentStatus = PaymentStatus.PENDING
    subscription_id: Optional[str] = None
    moyasar_payment_id: Optional[str] = None  # 网关支付ID
    payment_method: Optional[PaymentMethod] = None

    payment_date: Optional[datetime] = None
    failure_reason: Optional[str] = None

    # 退款相关
    refund_amount: Optional[Decimal] = None
    refunded_at: Optional[datetime] = None

    # 重试相关
    retry_count: int = 0
    last_retry_at: Optional[datetime] = None

    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    metadata: PaymentMetadata = field(default_factory=PaymentMetadata)

    def __post_init__(self):
        """初始化后验证"""
        if not isinstance(self.amount, Decimal):
            self.amount = Decimal(str(self.amount))
        if self.refund_amount is not None and not isinstance(self.refund_amount, Decimal):
            self.refund_amount = Decimal(str(self.refund_amount))
        if isinstance(self.status, str) and not isinstance(self.status, PaymentStatus):
            self.status = PaymentStatus(self.status)
        if isinstance(self.payment_method, str) and not isinstance(self.payment_method, PaymentMethod):
            self.payment_method = PaymentMethod(self.payment_method)
        if self.metadata is None or isinstance(self.metadata, Mapping):
            self.metadata = PaymentMetadata.from_dict(self.metadata)
        self._validate_amount()
        self._validate_currency()
        self._normalize_timestamps()

    def _validate_amount(self) -> None:
        if self.amount < 0:
            raise DomainValidationException(f"Payment amount must not be negative: {self.amount}", field="amount")
        if self.refund_amount is not None and self.refund_amount > self.amount:
            raise DomainValidationException(
                f"Refund amount {self.refund_amount} exceeds payment amount {self.amount}",
                field="refund_amount",
            )

    def _validate_currency(self) -> None:
        """业务规则：货币代码必须是3位字母"""
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")

    def _normalize_timestamps(self) -> None:
        """规范化所有时间戳为 UTC"""
        self.payment_date = _ensure_utc(self.payment_date)
        self.refunded_at = _ensure_utc(self.refunded_at)
        self.last_retry_at = _ensure_utc(self.last_retry_at)
        self.cancelled_at = _ensure_utc(self.cancelled_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def _touch(self) -> datetime:
        self.updated_at = _utcnow()
        return self.updated_at

    # 查询
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID

    def is_failed(self) -> bool:
        return self.status == PaymentStatus.FAILED

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_retry(self, max_attempts: int = MAX_RETRY_ATTEMPTS) -> bool:
        return self.status == PaymentStatus.FAILED and self.retry_count < max_attempts

    @property
    def refunded_total(self) -> Decimal:
        return self.refund_amount or Decimal("0")

    def remaining_refundable(self) -> Decimal:
        return self.amount - self.refunded_total

    def is_fully_refunded(self) -> bool:
        return self.refund_amount is not None and self.refund_amount >= self.amount

    # 状态转换
    def mark_paid(
        self,
        moyasar_payment_id: Optional[str] = None,
        metadata_patch: "Optional[Mapping[str, Any] | PaymentMetadata]" = None,
    ) -> None:
        """
        标记支付成功

        Re-marking an already paid payment only merges metadata and keeps the
        original payment_date. A null gateway id never clears an existing one.
        """
        if self.status in (PaymentStatus.REFUNDED, PaymentStatus.CANCELLED):
            raise InvalidPaymentStateException(self.status.value, "mark as paid")
        now = self._touch()
        if self.status != PaymentStatus.PAID:
            self.status = PaymentStatus.PAID
            self.payment_date = now
        if moyasar_payment_id:
            self.moyasar_payment_id = moyasar_payment_id
        if metadata_patch:
            self.metadata.merge(metadata_patch)

    def mark_failed(self, reason: Optional[str] = None) -> None:
        """标记支付失败；retry_count 保持不变"""
        if self.status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            raise InvalidPaymentStateException(self.status.value, "mark as failed")
        self.status = PaymentStatus.FAILED
        if reason:
            self.failure_reason = reason
        self._touch()

    def increment_retry(self) -> None:
        self.retry_count += 1
        self.last_retry_at = self._touch()

    def mark_cancelled(self) -> None:
        if self.status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            raise InvalidPaymentStateException(self.status.value, "cancel")
        self.status = PaymentStatus.CANCELLED
        self.cancelled_at = self._touch()

    def process_refund(self, amount: Optional[Decimal] = None) -> Decimal:
        """
        记录退款，返回本次退款金额

        Balance rules are checked by the refund flow before the gateway call;
        this only guards the hard invariant that the running total never
        exceeds the payment amount.
        """
        refund = self.remaining_refundable() if amount is None else Decimal(amount)
        new_total = self.refunded_total + refund
        if refund < 0 or new_total > self.amount:
            raise DomainValidationException(
                f"Refund of {refund} would bring total refunded to {new_total} over {self.amount}",
                field="refund_amount",
            )
        self.refund_amount = new_total
        self.status = PaymentStatus.REFUNDED
        self.refunded_at = self._touch()
        return refund

    def link_gateway_payment(self, moyasar_payment_id: str) -> None:
        """回填网关支付ID（仅在尚未设置时）"""
        if not self.moyasar_payment_id:
            self.moyasar_payment_id = moyasar_payment_id
            self._touch()

    def merge_metadata(self, patch: "Mapping[str, Any] | PaymentMetadata") -> None:
        self.metadata.merge(patch)
        self._touch()
