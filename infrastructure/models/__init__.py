"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import PaymentModel
from .subscription import SubscriptionModel

__all__ = [
    "Base",
    "metadata",
    "PaymentModel",
    "SubscriptionModel",
]
