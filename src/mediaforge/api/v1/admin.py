"""Admin endpoints for pricing and manual credit grants."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from mediaforge.api.deps import get_credit_service
from mediaforge.auth.middleware import require_admin
from mediaforge.auth.models import Identity
from mediaforge.credits.models import CreditReason, LedgerMetadata
from mediaforge.credits.service import CreditService
from mediaforge.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class PricingUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    feature: str
    model: str
    credits_per_use: int | None = Field(default=None, alias="creditsPerUse")
    is_active: bool | None = Field(default=None, alias="isActive")


class CreditGrant(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    amount: int = Field(gt=0)
    description: str | None = None


@router.get("/pricing")
def list_pricing(
    admin: Identity = Depends(require_admin),
    credits: CreditService = Depends(get_credit_service),
):
    """All feature prices, active or not."""
    return [pricing.to_dict() for pricing in credits.list_feature_pricing()]


@router.patch("/pricing")
def update_pricing(
    body: PricingUpdate,
    admin: Identity = Depends(require_admin),
    credits: CreditService = Depends(get_credit_service),
):
    """Change the cost or availability of a feature."""
    pricing = credits.update_feature_pricing(
        body.feature,
        body.model,
        credits_per_use=body.credits_per_use,
        is_active=body.is_active,
    )
    logger.info("admin_pricing_updated", admin_id=admin.user_id, feature=body.feature, provider=body.model)

    return pricing.to_dict()


@router.post("/credits/grant")
def grant_credits(
    body: CreditGrant,
    admin: Identity = Depends(require_admin),
    credits: CreditService = Depends(get_credit_service),
):
    """Grant bonus credits to a user."""
    result = credits.add_credits(
        body.user_id,
        body.amount,
        reason=CreditReason.BONUS,
        description=body.description or f"Admin grant - {body.amount} credits",
        metadata=LedgerMetadata(source="admin_grant", granted_by=admin.user_id),
    )

    return {
        "success": True,
        "creditsAdded": result["credits_added"],
        "newBalance": result["new_balance"],
    }
