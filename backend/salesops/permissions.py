# Overview: Role to capability map and the Capabilities value passed into core operations.

"""
Capabilities are resolved once per request from the actor's role and then
handed to service calls explicitly. Services never look up roles themselves.

Branch scope: super admins act on every branch; everyone else is limited to
the branch on their user record.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import PermissionDenied


ROLE_SUPER_ADMIN = "super_admin"
ROLE_BRANCH_ADMIN = "branch_admin"
ROLE_SALES = "sales"

ROLES = (ROLE_SUPER_ADMIN, ROLE_BRANCH_ADMIN, ROLE_SALES)


# -- capability codes --

VIEW_STOCK = "VIEW_STOCK"
ADJUST_STOCK = "ADJUST_STOCK"
TRANSFER_STOCK = "TRANSFER_STOCK"
MANAGE_CATALOG = "MANAGE_CATALOG"
SUBMIT_TRANSACTIONS = "SUBMIT_TRANSACTIONS"
APPROVE_TRANSACTIONS = "APPROVE_TRANSACTIONS"
CANCEL_TRANSACTIONS = "CANCEL_TRANSACTIONS"
SUBMIT_VISITS = "SUBMIT_VISITS"
APPROVE_VISITS = "APPROVE_VISITS"
REJECT_VISITS = "REJECT_VISITS"
ARCHIVE_RECORDS = "ARCHIVE_RECORDS"
MANAGE_TARGETS = "MANAGE_TARGETS"
VIEW_REPORTS = "VIEW_REPORTS"
MANAGE_COMMISSIONS = "MANAGE_COMMISSIONS"

ALL_CAPABILITIES = frozenset({
    VIEW_STOCK,
    ADJUST_STOCK,
    TRANSFER_STOCK,
    MANAGE_CATALOG,
    SUBMIT_TRANSACTIONS,
    APPROVE_TRANSACTIONS,
    CANCEL_TRANSACTIONS,
    SUBMIT_VISITS,
    APPROVE_VISITS,
    REJECT_VISITS,
    ARCHIVE_RECORDS,
    MANAGE_TARGETS,
    VIEW_REPORTS,
    MANAGE_COMMISSIONS,
})

DEFAULT_ROLE_CAPABILITIES = {
    ROLE_SUPER_ADMIN: ALL_CAPABILITIES,
    ROLE_BRANCH_ADMIN: frozenset({
        VIEW_STOCK,
        ADJUST_STOCK,
        TRANSFER_STOCK,
        SUBMIT_TRANSACTIONS,
        APPROVE_TRANSACTIONS,
        CANCEL_TRANSACTIONS,
        SUBMIT_VISITS,
        APPROVE_VISITS,
        REJECT_VISITS,
        ARCHIVE_RECORDS,
        MANAGE_TARGETS,
        VIEW_REPORTS,
        MANAGE_COMMISSIONS,
    }),
    ROLE_SALES: frozenset({
        VIEW_STOCK,
        SUBMIT_TRANSACTIONS,
        SUBMIT_VISITS,
    }),
}


@dataclass(frozen=True)
class Capabilities:
    """What an actor may do, and on which branch (None = every branch)."""

    codes: frozenset = field(default_factory=frozenset)
    branch_id: int | None = None

    @classmethod
    def for_role(cls, role: str, branch_id: int | None = None) -> "Capabilities":
        codes = DEFAULT_ROLE_CAPABILITIES.get(role, frozenset())
        if role == ROLE_SUPER_ADMIN:
            branch_id = None
        return cls(codes=frozenset(codes), branch_id=branch_id)

    @classmethod
    def for_user(cls, user) -> "Capabilities":
        return cls.for_role(user.role, user.branch_id)

    def has(self, code: str) -> bool:
        return code in self.codes

    def covers_branch(self, branch_id: int | None) -> bool:
        return self.branch_id is None or branch_id is None or self.branch_id == branch_id

    def require(self, code: str, *, branch_id: int | None = None) -> None:
        if code not in self.codes:
            raise PermissionDenied(
                f"Missing capability {code}",
                details={"required_capability": code},
            )
        if not self.covers_branch(branch_id):
            raise PermissionDenied(
                f"Capability {code} does not extend to branch {branch_id}",
                details={"required_capability": code, "branch_id": branch_id},
            )
