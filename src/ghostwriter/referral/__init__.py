"""Referral module.

Simple reward-on-first-song system:
- Invitee claims an inviter's code, creating a pending referral
- On the invitee's first saved song the inviter gets 40 credits
  and the invitee 20, once
"""

from ghostwriter.referral.service import ReferralService, qualify_and_reward, referral_service

__all__ = ["ReferralService", "qualify_and_reward", "referral_service"]
