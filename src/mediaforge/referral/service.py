"""Referral service for managing referral codes and signup bonuses."""

import secrets
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mediaforge.auth.admin import is_admin_user
from mediaforge.credits.models import CreditReason, LedgerMetadata
from mediaforge.credits.service import CreditService
from mediaforge.logging_config import get_logger
from mediaforge.referral.models import (
    ReferralAttachment,
    ReferralEvent,
    ReferralEventType,
    ReferralLink,
    ReferralStatus,
)
from mediaforge.settings import settings
from mediaforge.storage.db import Database, db
from mediaforge.storage.models import utcnow

logger = get_logger(__name__)

CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 10

# ReferralLink counter bumped for each event written by attach and reward
EVENT_COUNTERS = {
    ReferralEventType.SIGNUP: "signups",
    ReferralEventType.PRO_PURCHASE: "pro_purchases",
}


def _generate_code(length: int = CODE_LENGTH) -> str:
    """Generate a readable referral code.

    Uses uppercase letters and digits, avoiding confusing characters.
    Format: ABC12XYZ (8 chars by default)
    """
    # Exclude confusing characters: 0, O, I, l, 1
    alphabet = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def normalize_code(code: str | None) -> str | None:
    if not code:
        return None
    code = code.strip().upper()
    return code or None


class ReferralService:
    """Service for managing referral codes and referral bonuses."""

    def __init__(self, database: Database | None = None, credit_service: CreditService | None = None):
        """Initialize referral service."""
        self.db = database or db
        self.credit_service = credit_service or CreditService(self.db)
        self.logger = get_logger(__name__)

    def get_or_create_referral_link(self, user_id: str) -> ReferralLink:
        """Get existing referral link or create a new one for the user.

        Args:
            user_id: User ID

        Returns:
            ReferralLink object
        """
        existing = self._get_link_for_user(user_id)
        if existing:
            return existing

        try:
            with self.db.session() as session:
                code = _generate_code()
                for _ in range(MAX_CODE_ATTEMPTS):
                    taken = session.query(ReferralLink.id).filter(
                        ReferralLink.code == code
                    ).first()
                    if not taken:
                        break
                    code = _generate_code()

                link = ReferralLink(user_id=user_id, code=code, clicks=0)
                session.add(link)
                session.flush()
        except IntegrityError:
            # Another request created the link for this user first
            existing = self._get_link_for_user(user_id)
            if existing:
                return existing
            raise

        self.logger.info("referral_link_created", user_id=user_id, code=link.code)
        return link

    def validate_code(self, code: str | None) -> ReferralLink | None:
        """Look up a referral code.

        Returns:
            ReferralLink if valid, None otherwise
        """
        code = normalize_code(code)
        if not code:
            return None

        with self.db.session() as session:
            return session.query(ReferralLink).filter(ReferralLink.code == code).first()

    def track_click(self, code: str) -> bool:
        """Track a click on a referral link.

        Returns:
            True if the code exists
        """
        code = normalize_code(code)
        if not code:
            return False

        with self.db.session() as session:
            result = session.execute(
                update(ReferralLink)
                .where(ReferralLink.code == code)
                .values(clicks=ReferralLink.clicks + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return False

            referrer_id = session.query(ReferralLink.user_id).filter(
                ReferralLink.code == code
            ).scalar()
            session.add(
                ReferralEvent(
                    referrer_user_id=referrer_id,
                    code=code,
                    type=ReferralEventType.CLICK,
                )
            )

        self.logger.info("referral_click_tracked", code=code)
        return True

    def attach_referral_on_signup(self, new_user_id: str, code: str | None) -> bool:
        """Attach a new user to the owner of a referral code.

        The attachment, the signup event and the referrer's signup bonus
        commit together. Unknown codes, self-referrals and users that
        already have a referrer are ignored.

        Args:
            new_user_id: ID of the user who just signed up
            code: Referral code from the request body or ``ref`` cookie

        Returns:
            True if a new attachment was recorded
        """
        code = normalize_code(code)
        if not code:
            return False

        try:
            with self.db.session() as session:
                link = session.query(ReferralLink).filter(ReferralLink.code == code).first()

                if not link:
                    self.logger.info("referral_code_unknown", code=code, user_id=new_user_id)
                    return False

                if link.user_id == new_user_id:
                    self.logger.info("referral_self_referral_ignored", user_id=new_user_id)
                    return False

                already_attached = session.query(ReferralAttachment.id).filter(
                    ReferralAttachment.referred_user_id == new_user_id
                ).first()
                if already_attached:
                    return False

                attachment = ReferralAttachment(
                    referred_user_id=new_user_id,
                    referrer_user_id=link.user_id,
                    code=link.code,
                    status=ReferralStatus.SIGNED_UP,
                    bonus_credits=0,
                )
                session.add(attachment)
                session.flush()

                bonus = max(settings.referral_signup_bonus, 0)
                if bonus > 0:
                    self.credit_service.add_credits_in_session(
                        session,
                        user_id=link.user_id,
                        amount=bonus,
                        reason=CreditReason.BONUS,
                        description="Referral signup bonus - new user registered with your code",
                        metadata=LedgerMetadata(
                            source="referral_signup",
                            referred_user_id=new_user_id,
                            referral_code=link.code,
                        ),
                    )
                    attachment.bonus_credits = bonus

                self._record_event(
                    session,
                    link.code,
                    ReferralEventType.SIGNUP,
                    referred_user_id=new_user_id,
                    credits=bonus,
                )
                referrer_id = link.user_id
        except IntegrityError:
            # A concurrent attach for the same user won
            self.logger.info("referral_attach_conflict", user_id=new_user_id)
            return False

        self.logger.info(
            "referral_attached",
            referrer_id=referrer_id,
            referred_id=new_user_id,
            bonus_credited=bonus,
        )
        return True

    def reward_on_pro_purchase(self, referred_user_id: str) -> bool:
        """Reward the referrer the first time a referred user buys the Pro pack.

        Returns:
            True if the attachment moved to ``pro_purchased``
        """
        with self.db.session() as session:
            return self.reward_on_pro_purchase_in_session(session, referred_user_id)

    def reward_on_pro_purchase_in_session(self, session: Session, referred_user_id: str) -> bool:
        """Pro-purchase reward inside the caller's transaction.

        Purchase completion calls this so that the reward commits or rolls
        back with the purchase itself. Admin referrers are marked as
        rewarded but receive no credits.
        """
        attachment = session.query(ReferralAttachment).filter(
            ReferralAttachment.referred_user_id == referred_user_id
        ).first()

        if not attachment:
            return False

        result = session.execute(
            update(ReferralAttachment)
            .where(
                ReferralAttachment.id == attachment.id,
                ReferralAttachment.status == ReferralStatus.SIGNED_UP,
            )
            .values(status=ReferralStatus.PRO_PURCHASED, rewarded_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False

        referrer_id = attachment.referrer_user_id
        reward = max(settings.referral_pro_purchase_reward, 0)
        if is_admin_user(session, referrer_id):
            reward = 0

        if reward > 0:
            self.credit_service.add_credits_in_session(
                session,
                user_id=referrer_id,
                amount=reward,
                reason=CreditReason.BONUS,
                description=f"Referral reward for {referred_user_id} Pro purchase",
                metadata=LedgerMetadata(
                    source="referral_pro_purchase",
                    referred_user_id=referred_user_id,
                    referral_code=attachment.code,
                ),
            )
            session.execute(
                update(ReferralAttachment)
                .where(ReferralAttachment.id == attachment.id)
                .values(bonus_credits=ReferralAttachment.bonus_credits + reward)
                .execution_options(synchronize_session=False)
            )

        self._record_event(
            session,
            attachment.code,
            ReferralEventType.PRO_PURCHASE,
            referred_user_id=referred_user_id,
            credits=reward,
        )

        self.logger.info(
            "referral_pro_purchase_rewarded",
            referrer_id=referrer_id,
            referred_id=referred_user_id,
            reward=reward,
        )
        return True

    def get_stats(self, user_id: str, event_limit: int = 50) -> dict[str, Any]:
        """Get referral statistics for a user.

        Creates the user's link if it does not exist yet.

        Returns:
            Dict with the link counters, totals over the user's attachments
            and the most recent events, newest first
        """
        link = self.get_or_create_referral_link(user_id)

        with self.db.session() as session:
            total_referred, total_bonus = session.query(
                func.count(ReferralAttachment.id),
                func.coalesce(func.sum(ReferralAttachment.bonus_credits), 0),
            ).filter(
                ReferralAttachment.referrer_user_id == user_id
            ).one()

            events = session.query(ReferralEvent).filter(
                ReferralEvent.referrer_user_id == user_id
            ).order_by(
                ReferralEvent.created_at.desc(), ReferralEvent.id.desc()
            ).limit(event_limit).all()

        return {
            "code": link.code,
            "clicks": link.clicks,
            "signups": link.signups,
            "pro_purchases": link.pro_purchases,
            "credits_earned": link.credits_earned,
            "total_referred": total_referred,
            "total_bonus_credits": int(total_bonus),
            "events": events,
        }

    def _get_link_for_user(self, user_id: str) -> ReferralLink | None:
        with self.db.session() as session:
            return session.query(ReferralLink).filter(ReferralLink.user_id == user_id).first()

    def _record_event(
        self,
        session: Session,
        code: str,
        event_type: ReferralEventType,
        referred_user_id: str,
        credits: int = 0,
    ) -> None:
        counter = EVENT_COUNTERS[event_type]

        session.execute(
            update(ReferralLink)
            .where(ReferralLink.code == code)
            .values(
                **{counter: getattr(ReferralLink, counter) + 1},
                credits_earned=ReferralLink.credits_earned + credits,
            )
            .execution_options(synchronize_session=False)
        )
        referrer_id = session.query(ReferralLink.user_id).filter(ReferralLink.code == code).scalar()
        session.add(
            ReferralEvent(
                referrer_user_id=referrer_id,
                referred_user_id=referred_user_id,
                code=code,
                type=event_type,
            )
        )


# Singleton instance
referral_service = ReferralService()
