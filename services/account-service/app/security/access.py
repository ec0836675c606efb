"""Resolve presented session tokens and enforce role-based authorization."""

from __future__ import annotations

import logging

from ..domain.account import Role
from ..domain.errors import ForbiddenError, InvalidTokenError, UnauthenticatedError
from .tokens import SessionClaims, TokenService

logger = logging.getLogger(__name__)

# Roles allowed to act on accounts other than their own.
ADMIN_ROLES: tuple[Role, ...] = (Role.admin, Role.super_admin)


class AccessGate:
    """Gatekeeper consulted before any protected operation runs."""

    def __init__(self, tokens: TokenService) -> None:
        self._tokens = tokens

    def authenticate(self, presented_token: str | None) -> SessionClaims:
        """Return the session claims for ``presented_token``.

        Raises:
            UnauthenticatedError: When no token is presented or it does not verify as a session token.
        """
        if not presented_token:
            raise UnauthenticatedError()
        try:
            return self._tokens.verify_session(presented_token)
        except InvalidTokenError as exc:
            logger.info("rejected session token: %s", exc.message)
            raise UnauthenticatedError("Invalid authentication token") from exc

    def require_role(self, claims: SessionClaims, *roles: Role) -> None:
        if claims.role not in roles:
            raise ForbiddenError()

    def authorize_profile_edit(self, claims: SessionClaims, target_id: str) -> None:
        """Allow owners to edit themselves and admins to edit anyone."""
        if claims.account_id == target_id:
            return
        self.require_role(claims, *ADMIN_ROLES)
