"""Role-based permission table.

The whole permission matrix lives in ``PERMISSIONS`` so it can be audited in
one place. ``RoleAuthorizer.authorize`` is a pure, total function: it never
raises, it returns an ``AuthorizationDecision``. Service code converts a deny
into ``AuthorizationError`` via ``require``.

Owner-scoped actions (a contractor reading or updating their own record) are
listed in ``OWNER_ACTIONS``: the contractor role is allowed only when the
target ``owner_id`` equals the principal's id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from tender_clearinghouse.domain.enums import Action, Role
from tender_clearinghouse.domain.exceptions import AuthorizationError

if TYPE_CHECKING:
    import uuid

    from tender_clearinghouse.domain.models import Principal

_ADMIN = frozenset({Role.ADMIN})
_STAFF = frozenset({Role.ADMIN, Role.VERIFIER})
_CONTRACTOR = frozenset({Role.CONTRACTOR})
_AUTHENTICATED = frozenset(Role)

PERMISSIONS: dict[Action, frozenset[Role]] = {
    # Tenders
    Action.CREATE_TENDER: _ADMIN,
    Action.LIST_OPEN_TENDERS: _AUTHENTICATED,
    Action.VIEW_TENDER: _AUTHENTICATED,
    Action.AWARD_TENDER: _ADMIN,
    Action.CLOSE_TENDER: _ADMIN,
    Action.REOPEN_TENDER: _ADMIN,
    Action.CANCEL_TENDER: _ADMIN,
    Action.VIEW_TENDER_EVENTS: _ADMIN,
    # Bids
    Action.SUBMIT_BID: _CONTRACTOR,
    Action.LIST_BIDS: _STAFF | _CONTRACTOR,
    Action.LIST_CONTRACTOR_BIDS: _STAFF | _CONTRACTOR,
    # Payments
    Action.PROCESS_PAYMENT: _ADMIN,
    Action.RECONCILE_PAYMENT: _ADMIN,
    Action.CLEAR_PAYMENT_HISTORY: _ADMIN,
    Action.LIST_ALL_PAYMENTS: _ADMIN,
    Action.LIST_CONTRACTOR_PAYMENTS: _STAFF | _CONTRACTOR,
    # Verification
    Action.SUBMIT_VERIFICATION_REQUEST: _CONTRACTOR,
    Action.VIEW_OWN_VERIFICATION_REQUEST: _CONTRACTOR,
    Action.LIST_VERIFICATION_REQUESTS: _STAFF,
    Action.REVIEW_VERIFICATION_REQUEST: _STAFF,
    Action.SET_VERIFICATION_STATUS: _STAFF,
    # Contractor directory
    Action.LIST_CONTRACTORS: _STAFF,
    Action.VIEW_VERIFICATION_OVERVIEW: _STAFF,
    Action.VIEW_CONTRACTOR: _STAFF | _CONTRACTOR,
    Action.UPDATE_CONTRACTOR: _STAFF | _CONTRACTOR,
    Action.DELETE_CONTRACTOR: _ADMIN,
    Action.RATE_CONTRACTOR: _STAFF,
}

# Actions where the contractor role only reaches records it owns.
OWNER_ACTIONS: frozenset[Action] = frozenset({
    Action.LIST_CONTRACTOR_BIDS,
    Action.LIST_CONTRACTOR_PAYMENTS,
    Action.VIEW_CONTRACTOR,
    Action.UPDATE_CONTRACTOR,
})


@dataclass(frozen=True)
class AuthorizationDecision:
    """Result of a permission check."""

    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> AuthorizationDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> AuthorizationDecision:
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed


class RoleAuthorizer:
    """Maps a principal and an action to allow or deny."""

    def __init__(self, permissions: dict[Action, frozenset[Role]] | None = None) -> None:
        self._permissions = permissions if permissions is not None else PERMISSIONS

    def authorize(
        self,
        principal: Principal | None,
        action: Action,
        owner_id: uuid.UUID | None = None,
    ) -> AuthorizationDecision:
        """Decide whether ``principal`` may perform ``action``.

        Args:
            principal: The authenticated actor (None means unauthenticated).
            action: The operation being attempted.
            owner_id: For owner-scoped actions, the contractor the target
                record belongs to.
        """
        if principal is None:
            return AuthorizationDecision.deny("Authentication required")

        allowed_roles = self._permissions.get(action)
        if not allowed_roles or principal.role not in allowed_roles:
            return AuthorizationDecision.deny(
                f"Role '{principal.role.value}' may not {action.value.replace('_', ' ')}"
            )

        if (
            action in OWNER_ACTIONS
            and principal.role is Role.CONTRACTOR
            and owner_id != principal.id
        ):
            return AuthorizationDecision.deny("Contractors may only access their own records")

        return AuthorizationDecision.allow()

    def require(
        self,
        principal: Principal | None,
        action: Action,
        owner_id: uuid.UUID | None = None,
    ) -> None:
        """Raise AuthorizationError unless ``authorize`` allows the action."""
        decision = self.authorize(principal, action, owner_id=owner_id)
        if not decision:
            raise AuthorizationError(message=f"Access denied. {decision.reason}")


default_authorizer = RoleAuthorizer()
