"""Credit ledger database models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from sqlalchemy import JSON, Boolean, Column, DateTime, Enum as SQLEnum, Integer, String, Text, UniqueConstraint

from mediaforge.storage.models import Base, utcnow


class CreditReason(str, Enum):
    """Why a ledger entry changed the balance."""
    PURCHASE = "purchase"
    USAGE = "usage"
    BONUS = "bonus"
    REFUND = "refund"


class UsageStatus(str, Enum):
    """Outcome of a metered generation."""
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class UserCredits(Base):
    """Cached balance projection of a user's ledger.

    Invariant: balance == total_purchased - total_used, balance >= 0.
    Updated in the same transaction as every CreditTransaction insert.
    """
    __tablename__ = "user_credits"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)

    balance = Column(Integer, nullable=False, default=0)
    total_purchased = Column(Integer, nullable=False, default=0)
    total_used = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<UserCredits(user={self.user_id}, balance={self.balance})>"


class CreditTransaction(Base):
    """Immutable ledger entry."""
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)

    # Transaction details
    amount = Column(Integer, nullable=False)  # Positive = credit, Negative = debit
    balance_after = Column(Integer, nullable=False)
    reason = Column(SQLEnum(CreditReason), nullable=False)
    description = Column(String(500), nullable=False)

    # Usage reference
    feature = Column(String(50), nullable=True)
    provider = Column(String(50), nullable=True)

    metadata_json = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<CreditTransaction(id={self.id}, user={self.user_id}, amount={self.amount})>"


class UsageLog(Base):
    """Per-generation usage record for analytics."""
    __tablename__ = "usage_logs"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    feature = Column(String(50), nullable=False)
    provider = Column(String(50), nullable=False)
    credits_used = Column(Integer, nullable=False)
    status = Column(SQLEnum(UsageStatus), nullable=False)
    prompt = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    metadata_json = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)


class CreditPackage(Base):
    """Purchasable credit bundle."""
    __tablename__ = "credit_packages"

    id = Column(String(50), primary_key=True)  # starter, pro, enterprise
    name = Column(String(255), nullable=False)
    credits = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)  # cents
    currency = Column(String(3), nullable=False, default="USD")
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_free = Column(Boolean, nullable=False, default=False)
    popular = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "credits": self.credits,
            "price": self.price,
            "currency": self.currency,
            "description": self.description,
            "isActive": self.is_active,
            "isFree": self.is_free,
            "popular": self.popular,
        }


class FeaturePricing(Base):
    """Credit cost per (feature, provider)."""
    __tablename__ = "feature_pricing"
    __table_args__ = (UniqueConstraint("feature", "provider", name="uq_feature_pricing_feature_provider"),)

    id = Column(Integer, primary_key=True)
    feature = Column(String(50), nullable=False)
    provider = Column(String(50), nullable=False)
    credits_per_use = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "feature": self.feature,
            "model": self.provider,
            "creditsPerUse": self.credits_per_use,
            "isActive": self.is_active,
            "description": self.description,
        }


class FreePackageClaim(Base):
    """One row per (user, free package) so a free pack is granted once."""
    __tablename__ = "free_package_claims"
    __table_args__ = (UniqueConstraint("user_id", "package_id", name="uq_free_package_claims_user_package"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    package_id = Column(String(50), nullable=False)
    claimed_at = Column(DateTime, default=utcnow)


class LedgerMetadata(BaseModel):
    """Typed metadata attached to ledger entries and purchases.

    Keys by reason:
    - purchase: package_id, package_name, session_id, payment_intent
    - usage: feature, provider
    - bonus: source (free_pack, user_registration, referral_signup,
      referral_pro_purchase, admin_grant, cli_grant), package_id, package_name,
      referred_user_id, referral_code, granted_by
    - refund: source, granted_by
    """
    model_config = ConfigDict(extra="forbid")

    source: str | None = None
    package_id: str | None = None
    package_name: str | None = None
    session_id: str | None = None
    payment_intent: str | None = None
    referred_user_id: str | None = None
    referral_code: str | None = None
    feature: str | None = None
    provider: str | None = None
    granted_by: str | None = None

    def to_json(self) -> dict | None:
        data = self.model_dump(exclude_none=True)
        return data or None
