"""
ERC721 Non-Fungible Token used as the position receipt.

Each vesting position is represented by one token; whoever holds it may
redeem the position. Provides:
- Basic NFT operations (transferFrom, approve, setApprovalForAll)
- Capability-gated minting (MINTER capability)
- Enumeration of an owner's tokens
- Scoped checkpoint/rollback for all-or-nothing engine calls

Security features:
- Owner verification on transfers
- Approval validation
- Zero address checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable

from ..access_control import MINTER_CAPABILITY, CapabilityTable
from ..exceptions import ContractError
from ..identifiers import ZERO_ADDRESS, derive_address, normalize_address

logger = logging.getLogger(__name__)


@dataclass
class NFTEvent:
    """Represents an ERC721 event."""

    event_type: str  # "Transfer", "Approval", "ApprovalForAll"
    from_address: str
    to_address: str
    token_id: int
    approved: bool = False  # For ApprovalForAll
    timestamp: float = field(default_factory=time.time)


@dataclass
class ERC721Token:
    """
    ERC721 collection with capability-gated minting.

    Token ids are sequential from 0 unless the minter supplies one.
    """

    # Collection metadata
    name: str
    symbol: str

    # Contract address
    address: str = ""

    # Administrator of the collection's capability table
    admin: str = ""

    access: CapabilityTable = field(default_factory=CapabilityTable)

    # Token state
    owners: dict[int, str] = field(default_factory=dict)  # tokenId -> owner
    balances: dict[str, int] = field(default_factory=dict)  # owner -> count
    token_approvals: dict[int, str] = field(default_factory=dict)  # tokenId -> approved
    operator_approvals: dict[str, dict[str, bool]] = field(
        default_factory=dict
    )  # owner -> operator -> approved

    next_token_id: int = 0

    events: list[NFTEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.address:
            self.address = derive_address(f"erc721:{self.name}:{self.symbol}:{time.time()}")
        if self.admin and not self.access.admin:
            self.access = CapabilityTable(admin=self.admin)

    # ==================== View Functions ====================

    def balance_of(self, owner: str) -> int:
        return self.balances.get(normalize_address(owner), 0)

    def owner_of(self, token_id: int) -> str:
        """
        Get the owner of an NFT.

        Raises:
            ContractError: If token doesn't exist
        """
        owner = self.owners.get(token_id)
        if not owner:
            raise ContractError(f"ERC721: token {token_id} does not exist")
        return owner

    def exists(self, token_id: int) -> bool:
        return token_id in self.owners

    def get_approved(self, token_id: int) -> str:
        self._require_minted(token_id)
        return self.token_approvals.get(token_id, ZERO_ADDRESS)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        owner_norm = normalize_address(owner)
        operator_norm = normalize_address(operator)
        return self.operator_approvals.get(owner_norm, {}).get(operator_norm, False)

    def tokens_of(self, owner: str) -> list[int]:
        """List token ids currently held by owner, ascending."""
        owner_norm = normalize_address(owner)
        return sorted(tid for tid, holder in self.owners.items() if holder == owner_norm)

    def total_supply(self) -> int:
        return len(self.owners)

    # ==================== State-Changing Functions ====================

    def approve(self, caller: str, to: str, token_id: int) -> bool:
        """
        Approve an address to transfer a specific token.

        Args:
            caller: Message sender
            to: Address to approve
            token_id: Token ID
        """
        owner = self.owner_of(token_id)
        caller_norm = normalize_address(caller)
        to_norm = normalize_address(to)

        if to_norm == owner:
            raise ContractError("ERC721: approval to current owner")

        if caller_norm != owner and not self.is_approved_for_all(owner, caller_norm):
            raise ContractError("ERC721: approve caller is not owner nor approved")

        self.token_approvals[token_id] = to_norm
        self._emit("Approval", owner, to_norm, token_id)

        return True

    def set_approval_for_all(
        self, caller: str, operator: str, approved: bool
    ) -> bool:
        caller_norm = normalize_address(caller)
        operator_norm = normalize_address(operator)

        if operator_norm == caller_norm:
            raise ContractError("ERC721: approve to caller")

        self.operator_approvals.setdefault(caller_norm, {})[operator_norm] = approved
        self._emit("ApprovalForAll", caller_norm, operator_norm, 0, approved=approved)

        return True

    def transfer_from(
        self, caller: str, from_addr: str, to_addr: str, token_id: int
    ) -> bool:
        """
        Transfer an NFT.

        Args:
            caller: Message sender
            from_addr: Current owner
            to_addr: New owner
            token_id: Token ID

        Raises:
            ContractError: On wrong owner, missing approval or zero recipient
        """
        from_norm = normalize_address(from_addr)
        to_norm = normalize_address(to_addr)
        caller_norm = normalize_address(caller)

        owner = self.owner_of(token_id)
        if owner != from_norm:
            raise ContractError("ERC721: transfer from incorrect owner")

        if not self._is_approved_or_owner(caller_norm, token_id):
            raise ContractError("ERC721: caller is not owner nor approved")

        if to_norm == ZERO_ADDRESS:
            raise ContractError("ERC721: transfer to zero address")

        self.token_approvals.pop(token_id, None)

        self.balances[from_norm] = self.balances.get(from_norm, 1) - 1
        self.balances[to_norm] = self.balances.get(to_norm, 0) + 1
        self.owners[token_id] = to_norm

        self._emit("Transfer", from_norm, to_norm, token_id)

        logger.debug(
            "ERC721 transfer",
            extra={
                "event": "erc721.transfer",
                "collection": self.symbol,
                "token_id": token_id,
                "from": from_norm[:10],
                "to": to_norm[:10],
            }
        )
        return True

    def mint(self, minter: str, to: str, token_id: int | None = None) -> int:
        """
        Mint a new NFT.

        Args:
            minter: Address calling mint (must hold MINTER capability)
            to: Recipient address
            token_id: Optional specific token ID

        Returns:
            Minted token ID

        Raises:
            AuthorizationError: If minter lacks MINTER capability
            ContractError: If the id is taken or recipient is zero
        """
        self.access.require_capability(MINTER_CAPABILITY, minter)

        to_norm = normalize_address(to)
        if to_norm == ZERO_ADDRESS:
            raise ContractError("ERC721: mint to zero address")

        if token_id is None:
            token_id = self.next_token_id
        if token_id in self.owners:
            raise ContractError(f"ERC721: token {token_id} already minted")
        self.next_token_id = max(self.next_token_id, token_id + 1)

        self.owners[token_id] = to_norm
        self.balances[to_norm] = self.balances.get(to_norm, 0) + 1

        self._emit("Transfer", ZERO_ADDRESS, to_norm, token_id)

        logger.info(
            "ERC721 mint",
            extra={
                "event": "erc721.mint",
                "collection": self.symbol,
                "token_id": token_id,
                "to": to_norm[:10],
            }
        )

        return token_id

    def safe_mint(self, minter: str, to: str) -> int:
        """Mint the next sequential token id."""
        return self.mint(minter, to)

    # ==================== Helpers ====================

    def _require_minted(self, token_id: int) -> None:
        if token_id not in self.owners:
            raise ContractError(f"ERC721: token {token_id} does not exist")

    def _is_approved_or_owner(self, caller: str, token_id: int) -> bool:
        owner = self.owner_of(token_id)
        return (
            caller == owner
            or self.get_approved(token_id) == caller
            or self.is_approved_for_all(owner, caller)
        )

    def _emit(
        self, event_type: str, from_addr: str, to_addr: str, token_id: int, approved: bool = False
    ) -> None:
        self.events.append(
            NFTEvent(
                event_type=event_type,
                from_address=from_addr,
                to_address=to_addr,
                token_id=token_id,
                approved=approved,
            )
        )

    # ==================== Checkpoint / Serialization ====================

    def checkpoint(self, token_ids: Iterable[int] = (), accounts: Iterable[str] = ()) -> dict:
        """Capture ownership of token_ids and the balances of accounts."""
        return {
            "owners": {tid: self.owners.get(tid) for tid in token_ids},
            "token_approvals": {tid: self.token_approvals.get(tid) for tid in token_ids},
            "balances": {
                account: self.balances.get(account)
                for account in map(normalize_address, accounts)
            },
            "next_token_id": self.next_token_id,
            "event_count": len(self.events),
        }

    def rollback(self, checkpoint: dict) -> None:
        for section in ("owners", "token_approvals", "balances"):
            current = getattr(self, section)
            for key, value in checkpoint[section].items():
                if value is None:
                    current.pop(key, None)
                else:
                    current[key] = value
        self.next_token_id = checkpoint["next_token_id"]
        del self.events[checkpoint["event_count"]:]

    def to_dict(self) -> dict:
        """Serialize NFT state to dictionary."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "address": self.address,
            "admin": self.admin,
            "access": self.access.to_dict(),
            "owners": dict(self.owners),
            "balances": dict(self.balances),
            "token_approvals": dict(self.token_approvals),
            "operator_approvals": {
                k: dict(v) for k, v in self.operator_approvals.items()
            },
            "next_token_id": self.next_token_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ERC721Token":
        """Deserialize NFT state from dictionary."""
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            address=data.get("address", ""),
            admin=data.get("admin", ""),
            access=CapabilityTable.from_dict(data.get("access", {})),
        )
        token.owners = {int(k): v for k, v in data.get("owners", {}).items()}
        token.balances = dict(data.get("balances", {}))
        token.token_approvals = {
            int(k): v for k, v in data.get("token_approvals", {}).items()
        }
        token.operator_approvals = {
            k: dict(v) for k, v in data.get("operator_approvals", {}).items()
        }
        token.next_token_id = data.get("next_token_id", 0)
        return token
