"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Examples::

    MOYASAR__SECRET_KEY=sk_test_xxx
    MOYASAR__TIMEOUTS__READ=10
    PAYMENT__AMOUNT_TOLERANCE=0.01
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class MoyasarTimeouts(BaseModel):
    connect: float = 5.0
    read: float = 10.0   # fetch / verification
    write: float = 30.0  # charge / refund


class MoyasarSettings(BaseModel):
    secret_key: Optional[str] = None
    publishable_key: Optional[str] = None
    base_url: str = "https://api.moyasar.com/v1"
    callback_url: Optional[str] = None
    timeouts: MoyasarTimeouts = Field(default_factory=MoyasarTimeouts)


class PaymentPolicy(BaseModel):
    default_currency: str = "SAR"
    amount_tolerance: Decimal = Decimal("0.01")


class PaymentSettings(BaseSettings):
    moyasar: MoyasarSettings = Field(default_factory=MoyasarSettings)
    payment: PaymentPolicy = Field(default_factory=PaymentPolicy)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
