"""Cross-check two pricing passes over the same inputs."""
from __future__ import annotations

import logging

from app.models.pricing import PricingConfig, PricingResult

logger = logging.getLogger(__name__)


def validate_pricing_result(first: PricingResult, second: PricingResult, config: PricingConfig) -> bool:
    """True when both passes agree on lenders, rates and payments within epsilon."""
    if len(first.quotes) != len(second.quotes):
        logger.error("Validation failed: quote count mismatch %d vs %d",
                     len(first.quotes), len(second.quotes))
        return False

    for q1, q2 in zip(first.quotes, second.quotes):
        if q1.lender_name != q2.lender_name:
            logger.error("Validation failed: lender mismatch %r vs %r", q1.lender_name, q2.lender_name)
            return False
        if len(q1.scenarios) != len(q2.scenarios):
            logger.error("Validation failed: %s scenario count mismatch", q1.lender_name)
            return False
        for s1, s2 in zip(q1.scenarios, q2.scenarios):
            if abs(s1.rate - s2.rate) > config.validation_rate_epsilon:
                logger.error("Validation failed: %s rate mismatch %s vs %s",
                             q1.lender_name, s1.rate, s2.rate)
                return False
            if abs(s1.monthly_payment - s2.monthly_payment) > config.validation_payment_epsilon:
                logger.error("Validation failed: %s payment mismatch %s vs %s",
                             q1.lender_name, s1.monthly_payment, s2.monthly_payment)
                return False
    return True
