"""
Capability-based access control for collaborator contracts.

Each contract owns a table mapping (capability id, identity) to a grant.
Capability ids are content-addressed (SHA3-256 of a role name) so that
independently deployed contracts agree on them without a shared enum.

Security:
- Only holders of the admin capability can grant/revoke
- Every privileged mutation calls require_capability first
- Audit trail of grant/revoke/renounce
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Set

from .exceptions import AuthorizationError
from .identifiers import ZERO_ID, content_id, normalize_address

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_CAPABILITY = ZERO_ID
MINTER_CAPABILITY = content_id("MINTER_ROLE")
WRITER_CAPABILITY = content_id("WRITER_ROLE")


@dataclass
class CapabilityTable:
    """
    Explicit authorization table: capability -> set of identities.

    The admin identity given at construction holds DEFAULT_ADMIN_CAPABILITY,
    which administers every capability in the table.

    Usage:
        table = CapabilityTable(admin=deployer)
        table.grant_capability(deployer, MINTER_CAPABILITY, engine_address)
        table.require_capability(MINTER_CAPABILITY, engine_address)
    """

    admin: str = ""

    # capability id -> normalized identities
    grants: Dict[str, Set[str]] = field(default_factory=dict)

    # Audit log
    changes: list = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.admin:
            self.grants.setdefault(DEFAULT_ADMIN_CAPABILITY, set()).add(
                normalize_address(self.admin)
            )

    def has_capability(self, capability: str, account: str) -> bool:
        return normalize_address(account) in self.grants.get(capability, set())

    def require_capability(self, capability: str, account: str) -> None:
        """
        Raise unless account holds capability.

        Raises:
            AuthorizationError: "account <identity> is missing capability <id>"
        """
        if not self.has_capability(capability, account):
            logger.warning(
                "Access denied: capability not granted",
                extra={
                    "event": "access_control.denied",
                    "account": normalize_address(account)[:10],
                    "capability": capability[:10],
                },
            )
            raise AuthorizationError.missing_capability(
                normalize_address(account), capability
            )

    def grant_capability(self, caller: str, capability: str, account: str) -> bool:
        """
        Grant a capability to an account.

        Args:
            caller: Must hold the admin capability
            capability: Capability id
            account: Identity receiving the grant

        Returns:
            True if the grant is new, False if it already existed
        """
        self.require_capability(DEFAULT_ADMIN_CAPABILITY, caller)
        account_norm = normalize_address(account)
        members = self.grants.setdefault(capability, set())
        if account_norm in members:
            return False

        members.add(account_norm)
        self._audit("grant", capability, account_norm, caller)
        logger.info(
            "Capability granted",
            extra={
                "event": "access_control.granted",
                "capability": capability[:10],
                "account": account_norm[:10],
                "admin": normalize_address(caller)[:10],
            },
        )
        return True

    def revoke_capability(self, caller: str, capability: str, account: str) -> bool:
        """Revoke a capability. Returns False if the account did not hold it."""
        self.require_capability(DEFAULT_ADMIN_CAPABILITY, caller)
        account_norm = normalize_address(account)
        members = self.grants.get(capability, set())
        if account_norm not in members:
            return False

        members.discard(account_norm)
        self._audit("revoke", capability, account_norm, caller)
        logger.info(
            "Capability revoked",
            extra={
                "event": "access_control.revoked",
                "capability": capability[:10],
                "account": account_norm[:10],
                "admin": normalize_address(caller)[:10],
            },
        )
        return True

    def renounce_capability(self, caller: str, capability: str) -> bool:
        """Drop a capability the caller holds."""
        caller_norm = normalize_address(caller)
        members = self.grants.get(capability, set())
        if caller_norm not in members:
            return False
        members.discard(caller_norm)
        self._audit("renounce", capability, caller_norm, caller)
        return True

    def members(self, capability: str) -> Set[str]:
        return set(self.grants.get(capability, set()))

    def _audit(self, action: str, capability: str, account: str, caller: str) -> None:
        self.changes.append({
            "action": action,
            "capability": capability,
            "account": account,
            "caller": normalize_address(caller),
            "timestamp": time.time(),
        })

    # ==================== Serialization ====================

    def to_dict(self) -> Dict:
        return {
            "admin": self.admin,
            "grants": {cap: sorted(members) for cap, members in self.grants.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "CapabilityTable":
        table = cls(admin=data.get("admin", ""))
        for cap, members in data.get("grants", {}).items():
            table.grants.setdefault(cap, set()).update(members)
        return table
