"""Referral system database models."""

from enum import Enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, Integer, String

from mediaforge.storage.models import Base, utcnow


class ReferralStatus(str, Enum):
    """Lifecycle of a referred user."""
    SIGNED_UP = "signed_up"
    PRO_PURCHASED = "pro_purchased"


class ReferralEventType(str, Enum):
    CLICK = "click"
    SIGNUP = "signup"
    PRO_PURCHASE = "pro_purchase"


class ReferralLink(Base):
    """Unique referral code for each user.

    Each user gets one referral code that they can share. The counters
    are kept in step with the rows in ``referral_events``.
    """
    __tablename__ = "referral_links"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, unique=True)
    code = Column(String(20), unique=True, nullable=False, index=True)

    clicks = Column(Integer, nullable=False, default=0)
    signups = Column(Integer, nullable=False, default=0)
    pro_purchases = Column(Integer, nullable=False, default=0)
    credits_earned = Column(Integer, nullable=False, default=0)  # Signup bonuses plus Pro rewards

    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<ReferralLink(code={self.code}, user={self.user_id})>"


class ReferralAttachment(Base):
    """Durable link from a referred user to their referrer.

    The unique index on referred_user_id makes the first attachment win.
    """
    __tablename__ = "referral_attachments"

    id = Column(Integer, primary_key=True)
    referred_user_id = Column(String(64), nullable=False, unique=True)
    referrer_user_id = Column(String(64), nullable=False, index=True)
    code = Column(String(20), nullable=False)

    status = Column(SQLEnum(ReferralStatus), nullable=False, default=ReferralStatus.SIGNED_UP)
    bonus_credits = Column(Integer, nullable=False, default=0)  # Paid to the referrer so far

    attached_at = Column(DateTime, default=utcnow)
    rewarded_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ReferralAttachment(referrer={self.referrer_user_id}, referred={self.referred_user_id})>"


class ReferralEvent(Base):
    """Timeline entry for a referral link: a click, a signup or a Pro purchase."""
    __tablename__ = "referral_events"

    id = Column(Integer, primary_key=True)
    referrer_user_id = Column(String(64), nullable=False, index=True)
    referred_user_id = Column(String(64), nullable=True)  # Unknown for clicks
    code = Column(String(20), nullable=False)
    type = Column(SQLEnum(ReferralEventType), nullable=False)

    created_at = Column(DateTime, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "referredUserId": self.referred_user_id,
            "code": self.code,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ReferralEvent(type={self.type}, code={self.code})>"
