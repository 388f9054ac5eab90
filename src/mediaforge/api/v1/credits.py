"""Credit API endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from mediaforge.api.deps import get_credit_service
from mediaforge.auth.middleware import require_auth
from mediaforge.auth.models import Identity
from mediaforge.credits.service import CreditService
from mediaforge.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/credits", tags=["credits"])


# ==================== MODELS ====================


class FreePackRequest(BaseModel):
    """Request to claim a free credit package."""
    model_config = ConfigDict(populate_by_name=True)

    package_id: str = Field(alias="packageId")


class FeatureRequest(BaseModel):
    """Feature/model pair to check or charge."""
    feature: str = Field(min_length=1)
    model: str = Field(min_length=1)
    prompt: str | None = None


class UsageReport(BaseModel):
    """A generation that did not complete; nothing is charged."""
    model_config = ConfigDict(populate_by_name=True)

    feature: str = Field(min_length=1)
    model: str = Field(min_length=1)
    status: Literal["failed", "cancelled"]
    prompt: str | None = None
    error_message: str | None = Field(default=None, alias="errorMessage", max_length=2000)


# ==================== ENDPOINTS ====================


@router.get("/balance")
def get_balance(
    identity: Identity = Depends(require_auth),
    credits: CreditService = Depends(get_credit_service),
):
    """Get the caller's credit balance."""
    balance = credits.get_balance(identity.user_id)

    return {
        "balance": balance["balance"],
        "totalPurchased": balance["total_purchased"],
        "totalUsed": balance["total_used"],
    }


@router.get("/packages")
def list_packages(
    identity: Identity = Depends(require_auth),
    credits: CreditService = Depends(get_credit_service),
):
    """Active packages ordered by credit amount ascending."""
    return [package.to_dict() for package in credits.list_packages()]


@router.post("/add-free-pack")
def add_free_pack(
    body: FreePackRequest,
    identity: Identity = Depends(require_auth),
    credits: CreditService = Depends(get_credit_service),
):
    """Claim a free package's credits."""
    result = credits.claim_free_package(identity.user_id, body.package_id)

    return {
        "success": True,
        "creditsAdded": result["credits_added"],
        "newBalance": result["new_balance"],
    }


@router.post("/check")
def check_credits(
    body: FeatureRequest,
    identity: Identity = Depends(require_auth),
    credits: CreditService = Depends(get_credit_service),
):
    """Check whether the caller can afford a feature."""
    result = credits.check_credits(identity.user_id, body.feature, body.model)

    return {
        "hasCredits": result["has_credits"],
        "requiredCredits": result["required_credits"],
        "currentBalance": result["current_balance"],
        "isAdmin": result["is_admin"],
    }


@router.post("/deduct")
def deduct_credits(
    body: FeatureRequest,
    identity: Identity = Depends(require_auth),
    credits: CreditService = Depends(get_credit_service),
):
    """Charge the caller for one use of a feature.

    Responds 402 with required/available when the balance is too low.
    """
    result = credits.deduct_credits(
        identity.user_id,
        body.feature,
        body.model,
        prompt=body.prompt,
    )

    return {
        "success": result["success"],
        "creditsDeducted": result["credits_deducted"],
        "newBalance": result["new_balance"],
    }


@router.get("/transactions")
def get_transactions(
    identity: Identity = Depends(require_auth),
    credits: CreditService = Depends(get_credit_service),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    """Caller's ledger entries, newest first."""
    transactions = credits.get_transaction_history(identity.user_id, limit=limit, offset=offset)

    return [
        {
            "id": tx.id,
            "type": tx.reason.value,
            "amount": tx.amount,
            "balanceAfter": tx.balance_after,
            "description": tx.description,
            "feature": tx.feature,
            "model": tx.provider,
            "metadata": tx.metadata_json,
            "createdAt": tx.created_at.isoformat() if tx.created_at else None,
        }
        for tx in transactions
    ]


@router.get("/usage")
def get_usage(
    identity: Identity = Depends(require_auth),
    credits: CreditService = Depends(get_credit_service),
    limit: int = Query(default=50, ge=1, le=100),
):
    """Caller's usage log, newest first."""
    logs = credits.get_usage_history(identity.user_id, limit=limit)

    return [
        {
            "id": log.id,
            "feature": log.feature,
            "model": log.provider,
            "creditsUsed": log.credits_used,
            "status": log.status.value,
            "errorMessage": log.error_message,
            "createdAt": log.created_at.isoformat() if log.created_at else None,
        }
        for log in logs
    ]


@router.post("/usage")
def report_usage(
    body: UsageReport,
    identity: Identity = Depends(require_auth),
    credits: CreditService = Depends(get_credit_service),
):
    """Record a failed or cancelled generation in the caller's usage log."""
    credits.log_usage(
        identity.user_id,
        body.feature,
        body.model,
        credits_used=0,
        status=body.status,
        prompt=body.prompt,
        error_message=body.error_message,
    )
    logger.info("usage_reported", user_id=identity.user_id, feature=body.feature, status=body.status)

    return {"success": True}
