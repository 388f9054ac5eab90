"""Referral API endpoints."""

from fastapi import APIRouter, Cookie, Depends, Request
from pydantic import BaseModel

from mediaforge.api.deps import get_referral_service, get_user_service
from mediaforge.api.rate_limit import (
    REFERRAL_ATTACH_LIMIT,
    REFERRAL_CLICK_LIMIT,
    REFERRAL_VALIDATE_LIMIT,
    limiter,
)
from mediaforge.auth.middleware import require_auth
from mediaforge.auth.models import Identity
from mediaforge.auth.service import UserService
from mediaforge.errors import NotFoundError
from mediaforge.logging_config import get_logger
from mediaforge.referral.service import ReferralService

logger = get_logger(__name__)

router = APIRouter(prefix="/referrals", tags=["referrals"])


# ==================== MODELS ====================


class AttachRequest(BaseModel):
    """Attach body; the ``ref`` cookie is used when no code is given."""
    code: str | None = None


class CodeRequest(BaseModel):
    """Request carrying a referral code (validate, track click)."""
    code: str


# ==================== ENDPOINTS ====================


@router.get("")
def get_referral_stats(
    identity: Identity = Depends(require_auth),
    referrals: ReferralService = Depends(get_referral_service),
):
    """Referral code, counters and recent events for the caller.

    Creates the code on first access.
    """
    stats = referrals.get_stats(identity.user_id)

    return {
        "code": stats["code"],
        "totalReferred": stats["total_referred"],
        "totalBonusCredits": stats["total_bonus_credits"],
        "clicks": stats["clicks"],
        "signups": stats["signups"],
        "proPurchases": stats["pro_purchases"],
        "creditsEarned": stats["credits_earned"],
        "events": [event.to_dict() for event in stats["events"]],
    }


@router.post("")
def create_referral_link(
    identity: Identity = Depends(require_auth),
    referrals: ReferralService = Depends(get_referral_service),
):
    """Get or create the caller's referral link."""
    link = referrals.get_or_create_referral_link(identity.user_id)

    return {
        "link": {
            "code": link.code,
            "createdAt": link.created_at.isoformat() if link.created_at else None,
        }
    }


@router.post("/validate")
@limiter.limit(REFERRAL_VALIDATE_LIMIT)
def validate_referral_code(
    request: Request,
    body: CodeRequest,
    referrals: ReferralService = Depends(get_referral_service),
    users: UserService = Depends(get_user_service),
):
    """Check a referral code before sign-up.

    Returns the referrer's first name for personalization, never more.
    """
    link = referrals.validate_code(body.code)
    if not link:
        return {"valid": False, "referrerName": None}

    referrer = users.get_user(link.user_id)

    return {
        "valid": True,
        "referrerName": referrer.first_name if referrer else None,
    }


@router.post("/attach")
@limiter.limit(REFERRAL_ATTACH_LIMIT)
def attach_referral(
    request: Request,
    body: AttachRequest | None = None,
    ref: str | None = Cookie(default=None),
    identity: Identity = Depends(require_auth),
    referrals: ReferralService = Depends(get_referral_service),
):
    """Attach the caller to a referrer after sign-up.

    Only the first attachment for a user counts; later calls report
    ``attached: false``.
    """
    code = (body.code if body else None) or ref
    attached = referrals.attach_referral_on_signup(identity.user_id, code)

    return {"ok": True, "attached": attached}


@router.post("/track-click")
@limiter.limit(REFERRAL_CLICK_LIMIT)
def track_referral_click(
    request: Request,
    body: CodeRequest,
    referrals: ReferralService = Depends(get_referral_service),
):
    """Count a visit through a referral link."""
    if not referrals.track_click(body.code):
        raise NotFoundError("Invalid referral code")

    return {"success": True}
