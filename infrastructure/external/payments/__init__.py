"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.logging_config import get_logger
from core.settings import MoyasarSettings, payment_settings
from application.ports.payment_gateway import PaymentGateway


logger = get_logger(__name__)


def get_payment_gateway(config: Optional[MoyasarSettings] = None) -> PaymentGateway:
    from .moyasar_client import MoyasarClient, is_production_key, validate_publishable_key

    config = config or payment_settings.moyasar
    if config.publishable_key:
        check = validate_publishable_key(config.publishable_key)
        if not check.valid:
            logger.warning("moyasar_publishable_key_invalid", environment=check.environment)
        logger.info(
            "moyasar_gateway_configured",
            environment=check.environment,
            production=is_production_key(config.publishable_key),
        )
    return MoyasarClient(config)
