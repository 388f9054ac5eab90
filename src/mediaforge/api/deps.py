"""Service dependencies bound to the request's database."""

from fastapi import Depends

from mediaforge.auth.service import UserService
from mediaforge.credits.service import CreditService
from mediaforge.notifications.service import NotificationService
from mediaforge.payments.stripe_service import CheckoutService
from mediaforge.referral.service import ReferralService
from mediaforge.storage.db import Database, get_database


def get_credit_service(database: Database = Depends(get_database)) -> CreditService:
    return CreditService(database)


def get_notification_service(database: Database = Depends(get_database)) -> NotificationService:
    return NotificationService(database)


def get_referral_service(
    database: Database = Depends(get_database),
    credit_service: CreditService = Depends(get_credit_service),
) -> ReferralService:
    return ReferralService(database, credit_service)


def get_checkout_service(
    database: Database = Depends(get_database),
    credit_service: CreditService = Depends(get_credit_service),
    referral_service: ReferralService = Depends(get_referral_service),
    notification_service: NotificationService = Depends(get_notification_service),
) -> CheckoutService:
    return CheckoutService(database, credit_service, referral_service, notification_service)


def get_user_service(
    database: Database = Depends(get_database),
    credit_service: CreditService = Depends(get_credit_service),
    notification_service: NotificationService = Depends(get_notification_service),
) -> UserService:
    return UserService(database, credit_service, notification_service)
