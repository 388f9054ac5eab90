"""Credit ledger and pricing."""

from mediaforge.credits.models import CreditReason, LedgerMetadata
from mediaforge.credits.pricing import DEFAULT_PRICING, PricingTable
from mediaforge.credits.service import CreditService, credit_service

__all__ = [
    "CreditReason",
    "CreditService",
    "DEFAULT_PRICING",
    "LedgerMetadata",
    "PricingTable",
    "credit_service",
]
