"""Tier invite codes and the monthly community code rotation."""

import secrets
from typing import Any

from ghostwriter.logging_config import get_logger
from ghostwriter.settings import settings
from ghostwriter.storage.db import Database, db
from ghostwriter.storage.models import TIER_RANK, InviteCode, MembershipTier


def _is_owner(owner_email: str | None) -> bool:
    configured = settings.invite_owner_email.strip().lower()
    return bool(configured) and (owner_email or "").strip().lower() == configured


def _require_owner(owner_email: str | None) -> None:
    if not _is_owner(owner_email):
        raise PermissionError("Unauthorized")


def invite_to_dict(invite: InviteCode) -> dict[str, Any]:
    return {
        "code": invite.code,
        "tier": invite.tier,
        "max_uses": invite.max_uses,
        "current_uses": invite.current_uses,
        "active": invite.active,
        "created_at": invite.created_at.isoformat(),
    }


class InviteService:
    """Service for owner-managed invite codes."""

    def __init__(self, database: Database | None = None):
        """Initialize invite service.

        Args:
            database: Database to use (defaults to the global instance)
        """
        self.db = database or db
        self.logger = get_logger(__name__)

    def validate_code(self, code: str) -> dict[str, Any]:
        """Check an invite code and count the use when valid.

        Args:
            code: Invite code as typed by the user

        Returns:
            Dict with valid and tier (None when invalid)
        """
        normalized = (code or "").strip().upper()

        with self.db.session() as session:
            invite = session.query(InviteCode).filter(InviteCode.code == normalized).first()

            if not invite or not invite.active:
                return {"valid": False, "tier": None}
            if invite.max_uses > 0 and invite.current_uses >= invite.max_uses:
                return {"valid": False, "tier": None}

            invite.current_uses += 1
            self.logger.info("invite_code_used", code=normalized, uses=invite.current_uses)
            return {"valid": True, "tier": invite.tier}

    def create_code(self, owner_email: str, code: str, tier: str, max_uses: int = 0) -> dict[str, Any]:
        """Create an invite code.

        Raises:
            PermissionError: If the caller is not the invite owner
            ValueError: On an unknown tier, negative max_uses or a taken code
        """
        _require_owner(owner_email)
        if tier not in TIER_RANK:
            raise ValueError(f"Invalid tier: {tier}")
        if max_uses < 0:
            raise ValueError("max_uses must be >= 0")

        normalized = (code or "").strip().upper()
        if not normalized:
            raise ValueError("code is required")

        with self.db.session() as session:
            if session.query(InviteCode.id).filter(InviteCode.code == normalized).first():
                raise ValueError(f"Invite code {normalized} already exists")

            invite = InviteCode(code=normalized, tier=tier, max_uses=max_uses)
            session.add(invite)
            session.flush()

            self.logger.info("invite_code_created", code=normalized, tier=tier, max_uses=max_uses)
            return invite_to_dict(invite)

    def deactivate_code(self, owner_email: str, code: str) -> bool:
        """Deactivate an invite code.

        Returns:
            True if a code was found
        """
        _require_owner(owner_email)
        normalized = (code or "").strip().upper()

        with self.db.session() as session:
            invite = session.query(InviteCode).filter(InviteCode.code == normalized).first()
            if not invite:
                return False
            invite.active = False

        self.logger.info("invite_code_deactivated", code=normalized)
        return True

    def list_codes(self, owner_email: str) -> list[dict[str, Any]]:
        """List all invite codes, newest first. Empty for non-owners."""
        if not _is_owner(owner_email):
            return []

        with self.db.session() as session:
            invites = session.query(InviteCode).order_by(InviteCode.id.desc()).all()
            return [invite_to_dict(invite) for invite in invites]

    def get_active_code(self, owner_email: str) -> dict[str, Any] | None:
        """Get the current community code. None for non-owners."""
        if not _is_owner(owner_email):
            return None

        prefix = settings.invite_code_prefix
        with self.db.session() as session:
            invite = (
                session.query(InviteCode)
                .filter(InviteCode.code.startswith(prefix), InviteCode.active.is_(True))
                .order_by(InviteCode.id.desc())
                .first()
            )
            return invite_to_dict(invite) if invite else None

    def rotate_community_code(self) -> str:
        """Retire active community codes and issue a fresh one.

        Run monthly by the scheduler.

        Returns:
            The new code
        """
        prefix = settings.invite_code_prefix

        with self.db.session() as session:
            active = session.query(InviteCode).filter(
                InviteCode.code.startswith(prefix),
                InviteCode.active.is_(True),
            ).all()
            for invite in active:
                invite.active = False

            new_code = f"{prefix}{1000 + secrets.randbelow(9000)}"
            while session.query(InviteCode.id).filter(InviteCode.code == new_code).first():
                new_code = f"{prefix}{1000 + secrets.randbelow(9000)}"

            session.add(InviteCode(
                code=new_code,
                tier=MembershipTier.SKOOL.value,
                max_uses=0,
            ))

        self.logger.info("community_code_rotated", code=new_code, retired=len(active))
        return new_code


# Singleton instance
invite_service = InviteService()
