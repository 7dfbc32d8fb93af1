"""
Payment domain events.

Dataclass events record important payment lifecycle facts for downstream handling
(e.g., operator alerts, messaging). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    payment_id: Optional[str]
    moyasar_payment_id: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentPaid(PaymentEvent):
    pass


@dataclass
class PaymentFailed(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class PaymentRefunded(PaymentEvent):
    amount: str = ""
    total_refunded: str = ""


@dataclass
class PaymentRequiresManualReview(PaymentEvent):
    """Gateway reports the charge as paid but local expectations disagree."""
    issues: list[str] = field(default_factory=list)


@dataclass
class TokenMismatchDetected(PaymentEvent):
    subscription_id: str = ""
