"""Caller identity supplied by the upstream identity provider.

Authentication happens in front of this service. The proxy forwards the
verified identity in ``X-User-Email`` and ``X-User-Name``; a request without
an email is unauthenticated (401). Admins are the emails listed in
``security.admin_emails``.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

from quest_board.config import config


@dataclass(frozen=True, slots=True)
class Identity:
    email: str
    display_name: str

    @property
    def is_admin(self) -> bool:
        return config.is_admin(self.email)


def require_identity(
    x_user_email: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
) -> Identity:
    """FastAPI dependency returning the caller, or raising 401."""
    email = (x_user_email or "").strip().lower()
    if not email:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return Identity(email=email, display_name=(x_user_name or "").strip())


def require_admin(identity: Identity = Depends(require_identity)) -> Identity:
    """FastAPI dependency restricting a route to configured admins (403 otherwise)."""
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return identity
