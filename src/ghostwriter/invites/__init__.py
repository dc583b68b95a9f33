"""Invite codes for tier onboarding."""

from ghostwriter.invites.service import InviteService, invite_service

__all__ = ["InviteService", "invite_service"]
