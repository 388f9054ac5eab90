"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

Creates tables for:
- users: Clerk-mirrored accounts
- user_credits / credit_transactions / usage_logs: credit ledger
- credit_packages / feature_pricing / free_package_claims: catalogue
- purchases: Stripe Checkout history
- referral_links / referral_attachments / referral_events: referral ledger and timeline
- notifications: per-user inbox
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""

    op.create_table(
        "users",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=True),
        sa.Column("last_name", sa.String(255), nullable=True),
        sa.Column("image_url", sa.String(1024), nullable=True),
        sa.Column("role", sa.Enum("USER", "ADMIN", name="userrole"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Credit ledger
    op.create_table(
        "user_credits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False),
        sa.Column("total_purchased", sa.Integer(), nullable=False),
        sa.Column("total_used", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_credits_user_id", "user_credits", ["user_id"], unique=True)

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column(
            "reason",
            sa.Enum("PURCHASE", "USAGE", "BONUS", "REFUND", name="creditreason"),
            nullable=False,
        ),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("feature", sa.String(50), nullable=True),
        sa.Column("provider", sa.String(50), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_credit_transactions_user_id", "credit_transactions", ["user_id"])
    op.create_index("ix_credit_transactions_created_at", "credit_transactions", ["created_at"])

    op.create_table(
        "usage_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("feature", sa.String(50), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("credits_used", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("SUCCESS", "FAILED", "CANCELLED", name="usagestatus"),
            nullable=False,
        ),
        sa.Column("prompt", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_usage_logs_user_id", "usage_logs", ["user_id"])
    op.create_index("ix_usage_logs_created_at", "usage_logs", ["created_at"])

    # Catalogue
    op.create_table(
        "credit_packages",
        sa.Column("id", sa.String(50), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_free", sa.Boolean(), nullable=False),
        sa.Column("popular", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "feature_pricing",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("feature", sa.String(50), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("credits_per_use", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("feature", "provider", name="uq_feature_pricing_feature_provider"),
    )

    op.create_table(
        "free_package_claims",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("package_id", sa.String(50), nullable=False),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "package_id", name="uq_free_package_claims_user_package"),
    )
    op.create_index("ix_free_package_claims_user_id", "free_package_claims", ["user_id"])

    # Payments
    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("package_id", sa.String(50), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "COMPLETED", "FAILED", name="purchasestatus"),
            nullable=False,
        ),
        sa.Column("transaction_id", sa.String(255), nullable=False),
        sa.Column("payment_intent", sa.String(255), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_purchases_user_id", "purchases", ["user_id"])
    op.create_index("ix_purchases_transaction_id", "purchases", ["transaction_id"], unique=True)

    # Referrals
    op.create_table(
        "referral_links",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("clicks", sa.Integer(), nullable=False),
        sa.Column("signups", sa.Integer(), nullable=False),
        sa.Column("pro_purchases", sa.Integer(), nullable=False),
        sa.Column("credits_earned", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )
    op.create_index("ix_referral_links_code", "referral_links", ["code"], unique=True)

    op.create_table(
        "referral_attachments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("referred_user_id", sa.String(64), nullable=False),
        sa.Column("referrer_user_id", sa.String(64), nullable=False),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column(
            "status",
            sa.Enum("SIGNED_UP", "PRO_PURCHASED", name="referralstatus"),
            nullable=False,
        ),
        sa.Column("bonus_credits", sa.Integer(), nullable=False),
        sa.Column("attached_at", sa.DateTime(), nullable=True),
        sa.Column("rewarded_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("referred_user_id"),
    )
    op.create_index("ix_referral_attachments_referrer_user_id", "referral_attachments", ["referrer_user_id"])

    op.create_table(
        "referral_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("referrer_user_id", sa.String(64), nullable=False),
        sa.Column("referred_user_id", sa.String(64), nullable=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column(
            "type",
            sa.Enum("CLICK", "SIGNUP", "PRO_PURCHASE", name="referraleventtype"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_referral_events_referrer_user_id", "referral_events", ["referrer_user_id"])
    op.create_index("ix_referral_events_created_at", "referral_events", ["created_at"])

    # Notifications
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "type",
            sa.Enum("WELCOME", "CREDIT", "SYSTEM", "INFO", name="notificationtype"),
            nullable=False,
        ),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("notifications")
    op.drop_table("referral_events")
    op.drop_table("referral_attachments")
    op.drop_table("referral_links")
    op.drop_table("purchases")
    op.drop_table("free_package_claims")
    op.drop_table("feature_pricing")
    op.drop_table("credit_packages")
    op.drop_table("usage_logs")
    op.drop_table("credit_transactions")
    op.drop_table("user_credits")
    op.drop_table("users")
