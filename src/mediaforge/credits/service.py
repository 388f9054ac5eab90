"""Credit ledger for MediaForge."""

from typing import Any

from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mediaforge.auth.admin import is_admin_user
from mediaforge.credits.models import (
    CreditPackage,
    CreditReason,
    CreditTransaction,
    FeaturePricing,
    FreePackageClaim,
    LedgerMetadata,
    UsageLog,
    UsageStatus,
    UserCredits,
)
from mediaforge.credits.pricing import DEFAULT_PRICING, PricingTable
from mediaforge.errors import InsufficientCreditsError, InvalidInputError, NotFoundError
from mediaforge.logging_config import get_logger
from mediaforge.storage.db import Database, db
from mediaforge.storage.models import utcnow

logger = get_logger(__name__)

_UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


def _metadata_json(metadata: LedgerMetadata | dict | None) -> dict | None:
    if metadata is None:
        return None
    if isinstance(metadata, dict):
        try:
            metadata = LedgerMetadata(**metadata)
        except ValidationError as e:
            raise InvalidInputError("Invalid metadata", fields=[err["loc"][0] for err in e.errors()])
    return metadata.to_json()


class CreditService:
    """Service for managing user credits.

    Every balance change is a single in-database update of the cached
    ``user_credits`` row plus one ledger entry, committed together.
    Deductions use ``WHERE balance >= cost`` so concurrent requests can
    never drive a balance negative.
    """

    def __init__(self, database: Database | None = None, pricing: PricingTable = DEFAULT_PRICING):
        """Initialize credit service.

        Args:
            database: Database to use (defaults to the global one)
            pricing: Default pricing used by the seed operations
        """
        self.db = database or db
        self.pricing = pricing
        self.logger = get_logger(__name__)

    # ==================== BALANCE ====================

    def get_balance(self, user_id: str) -> dict[str, int]:
        """Get user's credit balance.

        Users without a credit row get a zero balance; no row is created.

        Args:
            user_id: User ID

        Returns:
            Dict with balance, total_purchased and total_used
        """
        with self.db.session() as session:
            account = self._get_account(session, user_id)

            if not account:
                return {"balance": 0, "total_purchased": 0, "total_used": 0}

            return {
                "balance": account.balance,
                "total_purchased": account.total_purchased,
                "total_used": account.total_used,
            }

    def check_credits(self, user_id: str, feature: str, provider: str) -> dict[str, Any]:
        """Check if user has enough credits for a feature, without mutating anything.

        Raises:
            InvalidInputError: If no active pricing exists for the feature
        """
        with self.db.session() as session:
            if is_admin_user(session, user_id):
                return {
                    "has_credits": True,
                    "required_credits": 0,
                    "current_balance": self._current_balance(session, user_id),
                    "is_admin": True,
                }

            required = self._resolve_cost(session, feature, provider)
            balance = self._current_balance(session, user_id)

            return {
                "has_credits": balance >= required,
                "required_credits": required,
                "current_balance": balance,
                "is_admin": False,
            }

    # ==================== MUTATIONS ====================

    def add_credits(
        self,
        user_id: str,
        amount: int,
        reason: CreditReason | str,
        description: str,
        metadata: LedgerMetadata | dict | None = None,
    ) -> dict[str, int]:
        """Add credits to user account.

        Args:
            user_id: User ID
            amount: Amount to add (positive)
            reason: purchase, bonus or refund
            description: Human-readable description
            metadata: Optional typed metadata

        Returns:
            Dict with credits_added and new_balance
        """
        with self.db.session() as session:
            return self.add_credits_in_session(
                session,
                user_id=user_id,
                amount=amount,
                reason=reason,
                description=description,
                metadata=metadata,
            )

    def add_credits_in_session(
        self,
        session: Session,
        user_id: str,
        amount: int,
        reason: CreditReason | str,
        description: str,
        metadata: LedgerMetadata | dict | None = None,
    ) -> dict[str, int]:
        """Add credits inside a caller-owned transaction.

        Used where the credit must commit or roll back together with other
        writes (referral attachment, purchase completion).
        """
        if amount <= 0:
            raise InvalidInputError("Amount must be positive")

        reason = CreditReason(reason)
        if reason == CreditReason.USAGE:
            raise InvalidInputError("Usage entries are created by deductions only")

        metadata_json = _metadata_json(metadata)

        self._ensure_account(session, user_id)
        session.execute(
            update(UserCredits)
            .where(UserCredits.user_id == user_id)
            .values(
                balance=UserCredits.balance + amount,
                total_purchased=UserCredits.total_purchased + amount,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        new_balance = self._current_balance(session, user_id)

        session.add(
            CreditTransaction(
                user_id=user_id,
                amount=amount,
                balance_after=new_balance,
                reason=reason,
                description=description,
                metadata_json=metadata_json,
            )
        )
        session.flush()

        self.logger.info(
            "credits_added",
            user_id=user_id,
            amount=amount,
            reason=reason.value,
            new_balance=new_balance,
        )

        return {"credits_added": amount, "new_balance": new_balance}

    def deduct_credits(
        self,
        user_id: str,
        feature: str,
        provider: str,
        prompt: str | None = None,
        metadata: LedgerMetadata | dict | None = None,
    ) -> dict[str, Any]:
        """Deduct credits for feature usage.

        Admin users are not charged; their usage is logged with 0 credits.

        Args:
            user_id: User ID
            feature: Feature used (video-generation, map-animation, ...)
            provider: Provider/model used (hailuo, veo2, ...)
            prompt: Optional user prompt, kept in the usage log
            metadata: Optional typed metadata

        Returns:
            Dict with success, credits_deducted and new_balance

        Raises:
            InvalidInputError: If no active pricing exists
            InsufficientCreditsError: If balance is below the cost
        """
        with self.db.session() as session:
            if is_admin_user(session, user_id):
                self._log_usage(session, user_id, feature, provider, 0, UsageStatus.SUCCESS, prompt, metadata)
                self.logger.info("admin_usage_logged", user_id=user_id, feature=feature, provider=provider)
                return {
                    "success": True,
                    "credits_deducted": 0,
                    "new_balance": self._current_balance(session, user_id),
                }

            cost = self._resolve_cost(session, feature, provider)

            self._ensure_account(session, user_id)
            result = session.execute(
                update(UserCredits)
                .where(UserCredits.user_id == user_id, UserCredits.balance >= cost)
                .values(
                    balance=UserCredits.balance - cost,
                    total_used=UserCredits.total_used + cost,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                available = self._current_balance(session, user_id)
                self.logger.info(
                    "credits_insufficient",
                    user_id=user_id,
                    required=cost,
                    available=available,
                )
                raise InsufficientCreditsError(cost, available)

            new_balance = self._current_balance(session, user_id)

            session.add(
                CreditTransaction(
                    user_id=user_id,
                    amount=-cost,
                    balance_after=new_balance,
                    reason=CreditReason.USAGE,
                    description=f"Used {cost} credits for {feature} with {provider}",
                    feature=feature,
                    provider=provider,
                    metadata_json=_metadata_json(metadata),
                )
            )
            self._log_usage(session, user_id, feature, provider, cost, UsageStatus.SUCCESS, prompt, metadata)

            self.logger.info(
                "credits_deducted",
                user_id=user_id,
                feature=feature,
                provider=provider,
                amount=cost,
                new_balance=new_balance,
            )

            return {"success": True, "credits_deducted": cost, "new_balance": new_balance}

    def refund_credits(
        self,
        user_id: str,
        amount: int,
        description: str | None = None,
        metadata: LedgerMetadata | dict | None = None,
    ) -> dict[str, int]:
        """Refund credits, e.g. after a failed generation."""
        return self.add_credits(
            user_id=user_id,
            amount=amount,
            reason=CreditReason.REFUND,
            description=description or f"Refund of {amount} credits",
            metadata=metadata,
        )

    def claim_free_package(self, user_id: str, package_id: str) -> dict[str, int]:
        """Grant a free package's credits, once per user and package.

        Raises:
            InvalidInputError: If the package is unknown, not free, or already claimed
        """
        with self.db.session() as session:
            package = session.get(CreditPackage, package_id)

            if not package or not package.is_active:
                raise InvalidInputError("Invalid package")

            if not package.is_free:
                raise InvalidInputError("Package is not free")

            session.add(FreePackageClaim(user_id=user_id, package_id=package_id))
            try:
                session.flush()
            except IntegrityError:
                raise InvalidInputError("Package already claimed")

            return self.add_credits_in_session(
                session,
                user_id=user_id,
                amount=package.credits,
                reason=CreditReason.BONUS,
                description=f"Free {package.name} - {package.credits} credits",
                metadata=LedgerMetadata(
                    package_id=package.id,
                    package_name=package.name,
                    source="free_pack",
                ),
            )

    # ==================== USAGE & HISTORY ====================

    def log_usage(
        self,
        user_id: str,
        feature: str,
        provider: str,
        credits_used: int,
        status: UsageStatus | str,
        prompt: str | None = None,
        metadata: LedgerMetadata | dict | None = None,
        error_message: str | None = None,
    ) -> None:
        """Record a usage log row, e.g. for a failed or cancelled generation."""
        with self.db.session() as session:
            self._log_usage(
                session, user_id, feature, provider, credits_used, UsageStatus(status),
                prompt, metadata, error_message,
            )

    def get_transaction_history(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[CreditTransaction]:
        """Get user's transaction history, newest first."""
        with self.db.session() as session:
            return session.query(CreditTransaction).filter(
                CreditTransaction.user_id == user_id
            ).order_by(
                CreditTransaction.created_at.desc(),
                CreditTransaction.id.desc(),
            ).offset(offset).limit(limit).all()

    def get_usage_history(self, user_id: str, limit: int = 50) -> list[UsageLog]:
        """Get user's usage history, newest first."""
        with self.db.session() as session:
            return session.query(UsageLog).filter(
                UsageLog.user_id == user_id
            ).order_by(
                UsageLog.created_at.desc(),
                UsageLog.id.desc(),
            ).limit(limit).all()

    # ==================== PRICING ====================

    def list_packages(self, active_only: bool = True) -> list[CreditPackage]:
        """Get credit packages ordered by credit amount ascending."""
        with self.db.session() as session:
            query = session.query(CreditPackage)
            if active_only:
                query = query.filter(CreditPackage.is_active.is_(True))
            return query.order_by(CreditPackage.credits.asc()).all()

    def get_package(self, package_id: str) -> CreditPackage | None:
        with self.db.session() as session:
            return session.get(CreditPackage, package_id)

    def list_feature_pricing(self) -> list[FeaturePricing]:
        with self.db.session() as session:
            return session.query(FeaturePricing).order_by(
                FeaturePricing.feature, FeaturePricing.provider
            ).all()

    def update_feature_pricing(
        self,
        feature: str,
        provider: str,
        credits_per_use: int | None = None,
        is_active: bool | None = None,
    ) -> FeaturePricing:
        """Admin update of a feature price.

        Raises:
            NotFoundError: If the (feature, provider) pair has no pricing row
            InvalidInputError: If the new cost is negative
        """
        if credits_per_use is not None and credits_per_use < 0:
            raise InvalidInputError("creditsPerUse must not be negative")

        with self.db.session() as session:
            pricing = session.query(FeaturePricing).filter(
                FeaturePricing.feature == feature,
                FeaturePricing.provider == provider,
            ).first()

            if not pricing:
                raise NotFoundError(f"No pricing found for feature: {feature} with model: {provider}")

            if credits_per_use is not None:
                pricing.credits_per_use = credits_per_use
            if is_active is not None:
                pricing.is_active = is_active
            session.flush()

            self.logger.info(
                "feature_pricing_updated",
                feature=feature,
                provider=provider,
                credits_per_use=pricing.credits_per_use,
                is_active=pricing.is_active,
            )
            return pricing

    def initialize_default_pricing(self) -> int:
        """Insert default feature prices that are missing.

        Returns:
            Number of rows inserted
        """
        inserted = 0
        with self.db.session() as session:
            for price in self.pricing.features:
                existing = session.query(FeaturePricing.id).filter(
                    FeaturePricing.feature == price.feature,
                    FeaturePricing.provider == price.provider,
                ).first()

                if existing:
                    continue

                session.add(
                    FeaturePricing(
                        feature=price.feature,
                        provider=price.provider,
                        credits_per_use=price.credits_per_use,
                        description=price.description,
                        is_active=True,
                    )
                )
                inserted += 1

        self.logger.info("default_pricing_initialized", inserted=inserted)
        return inserted

    def initialize_default_packages(self) -> int:
        """Insert default credit packages that are missing.

        Returns:
            Number of rows inserted
        """
        inserted = 0
        with self.db.session() as session:
            for spec in self.pricing.packages:
                if session.get(CreditPackage, spec.id):
                    continue

                session.add(
                    CreditPackage(
                        id=spec.id,
                        name=spec.name,
                        credits=spec.credits,
                        price=spec.price,
                        currency=spec.currency,
                        description=spec.description,
                        is_active=True,
                        is_free=spec.is_free,
                        popular=spec.popular,
                    )
                )
                inserted += 1

        self.logger.info("default_packages_initialized", inserted=inserted)
        return inserted

    # ==================== INTERNALS ====================

    def _get_account(self, session: Session, user_id: str) -> UserCredits | None:
        return session.query(UserCredits).filter(UserCredits.user_id == user_id).first()

    def _current_balance(self, session: Session, user_id: str) -> int:
        balance = session.query(UserCredits.balance).filter(
            UserCredits.user_id == user_id
        ).scalar()
        return balance or 0

    def _ensure_account(self, session: Session, user_id: str) -> None:
        """Create the user's credit row if it does not exist yet."""
        if session.query(UserCredits.id).filter(UserCredits.user_id == user_id).first():
            return

        now = utcnow()
        values = {
            "user_id": user_id,
            "balance": 0,
            "total_purchased": 0,
            "total_used": 0,
            "created_at": now,
            "updated_at": now,
        }

        insert = _UPSERT_INSERTS.get(session.get_bind().dialect.name)
        if insert is not None:
            session.execute(
                insert(UserCredits).values(**values).on_conflict_do_nothing(index_elements=["user_id"])
            )
            return

        # Other backends: rely on the unique index inside a savepoint
        try:
            with session.begin_nested():
                session.add(UserCredits(**values))
        except IntegrityError:
            logger.debug("credit_account_exists", user_id=user_id)

    def _resolve_cost(self, session: Session, feature: str, provider: str) -> int:
        pricing = session.query(FeaturePricing).filter(
            FeaturePricing.feature == feature,
            FeaturePricing.provider == provider,
            FeaturePricing.is_active.is_(True),
        ).first()

        if not pricing:
            raise InvalidInputError(f"No pricing found for feature: {feature} with model: {provider}")

        return pricing.credits_per_use

    def _log_usage(
        self,
        session: Session,
        user_id: str,
        feature: str,
        provider: str,
        credits_used: int,
        status: UsageStatus,
        prompt: str | None = None,
        metadata: LedgerMetadata | dict | None = None,
        error_message: str | None = None,
    ) -> None:
        session.add(
            UsageLog(
                user_id=user_id,
                feature=feature,
                provider=provider,
                credits_used=credits_used,
                status=status,
                prompt=prompt,
                error_message=error_message,
                metadata_json=_metadata_json(metadata),
            )
        )


# Singleton instance
credit_service = CreditService()
