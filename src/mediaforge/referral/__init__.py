"""Referral system module for MediaForge.

- Each user gets one stable referral code
- A new user can be attached to one referrer, once
- The referrer earns a signup bonus, and a reward on the referred user's first Pro purchase
- Clicks, signups and Pro purchases are kept as a per-link event timeline
"""

from mediaforge.referral.models import ReferralAttachment, ReferralEvent, ReferralLink
from mediaforge.referral.service import ReferralService, referral_service

__all__ = ["ReferralAttachment", "ReferralEvent", "ReferralLink", "ReferralService", "referral_service"]
