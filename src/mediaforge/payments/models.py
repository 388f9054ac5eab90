"""Purchase history models."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Enum as SQLEnum, Integer, String

from mediaforge.storage.models import Base, utcnow


class PurchaseStatus(str, Enum):
    """Purchase lifecycle: pending -> completed | failed."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Purchase(Base):
    """Credit purchase through Stripe Checkout.

    ``transaction_id`` is the Checkout Session id; its uniqueness plus the
    pending -> completed transition make payment confirmation idempotent.
    """
    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    package_id = Column(String(50), nullable=True)

    amount = Column(Integer, nullable=False)  # cents
    currency = Column(String(3), nullable=False, default="USD")
    credits = Column(Integer, nullable=False)
    status = Column(SQLEnum(PurchaseStatus), nullable=False, default=PurchaseStatus.PENDING)

    transaction_id = Column(String(255), nullable=False, unique=True, index=True)
    payment_intent = Column(String(255), nullable=True)
    metadata_json = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Purchase(id={self.id}, user={self.user_id}, status={self.status})>"
