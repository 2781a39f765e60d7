"""
ERC20 Fungible Token.

The token that vesting positions escrow. Provides the subset of EIP-20 the
escrow adapter relies on:
- Basic token operations (transfer, approve, transferFrom)
- Owner-only minting
- Transfer/Approval events
- Scoped checkpoint/rollback for all-or-nothing engine calls

Security features:
- Zero address checks
- Balance underflow prevention
- Allowance validation
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable

from ..exceptions import ContractError
from ..identifiers import ZERO_ADDRESS, derive_address, normalize_address

logger = logging.getLogger(__name__)


@dataclass
class TokenEvent:
    """Represents an ERC20 event."""

    event_type: str  # "Transfer" or "Approval"
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ERC20Token:
    """
    ERC20 token with integer balances in the smallest unit.

    All balances and allowances are held in-memory; to_dict/from_dict
    persist them.
    """

    # Token metadata
    name: str
    symbol: str
    decimals: int = 18
    total_supply: int = 0

    # Contract address
    address: str = ""

    # Owner (for minting permissions)
    owner: str = ""

    # State
    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)

    # Event log
    events: list[TokenEvent] = field(default_factory=list)

    UINT256_MAX: int = 2**256 - 1

    def __post_init__(self) -> None:
        if not self.address:
            self.address = derive_address(f"erc20:{self.name}:{self.symbol}:{time.time()}")
        self.owner = normalize_address(self.owner)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        """
        Get the allowance granted by owner to spender.

        Args:
            owner: Token owner address
            spender: Spender address

        Returns:
            Approved amount
        """
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)
        return self.allowances.get(owner_norm, {}).get(spender_norm, 0)

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Args:
            sender: Address sending tokens (msg.sender)
            recipient: Address receiving tokens
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            ContractError: If transfer fails
        """
        sender_norm = normalize_address(sender)
        recipient_norm = normalize_address(recipient)

        self._validate_address(recipient_norm, "recipient")
        self._validate_amount(amount)

        sender_balance = self.balances.get(sender_norm, 0)
        if sender_balance < amount:
            raise ContractError(
                f"ERC20: transfer amount exceeds balance "
                f"({amount} > {sender_balance})"
            )

        self.balances[sender_norm] = sender_balance - amount
        self.balances[recipient_norm] = self.balances.get(recipient_norm, 0) + amount

        self._emit_transfer(sender_norm, recipient_norm, amount)

        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": sender_norm[:10],
                "to": recipient_norm[:10],
                "amount": amount,
            }
        )

        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """
        Approve spender to spend tokens on behalf of owner.

        Args:
            owner: Token owner (msg.sender)
            spender: Address being approved
            amount: Amount to approve

        Returns:
            True if successful
        """
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)

        self._validate_address(spender_norm, "spender")
        self._validate_amount(amount)

        self.allowances.setdefault(owner_norm, {})[spender_norm] = amount
        self._emit_approval(owner_norm, spender_norm, amount)

        return True

    def transfer_from(
        self, spender: str, from_addr: str, to_addr: str, amount: int
    ) -> bool:
        """
        Transfer tokens using an allowance.

        Args:
            spender: Address executing transfer (msg.sender)
            from_addr: Token owner
            to_addr: Recipient
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            ContractError: If allowance or balance is insufficient
        """
        spender_norm = normalize_address(spender)
        from_norm = normalize_address(from_addr)
        to_norm = normalize_address(to_addr)

        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        current_allowance = self.allowance(from_norm, spender_norm)
        if current_allowance < amount:
            raise ContractError(
                f"ERC20: insufficient allowance ({current_allowance} < {amount})"
            )

        from_balance = self.balances.get(from_norm, 0)
        if from_balance < amount:
            raise ContractError(
                f"ERC20: transfer amount exceeds balance ({amount} > {from_balance})"
            )

        # Unlimited allowances are never decremented
        if current_allowance != self.UINT256_MAX:
            self.allowances[from_norm][spender_norm] = current_allowance - amount

        self.balances[from_norm] = from_balance - amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount

        self._emit_transfer(from_norm, to_norm, amount)

        return True

    def increase_allowance(self, owner: str, spender: str, added_value: int) -> bool:
        """Increase spender's allowance (safer than approve for increments)."""
        new_allowance = min(self.allowance(owner, spender) + added_value, self.UINT256_MAX)
        return self.approve(owner, spender, new_allowance)

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """
        Mint new tokens (owner only).

        Raises:
            ContractError: If caller is not the owner or recipient is zero
        """
        self._require_owner(minter)

        to_norm = normalize_address(to)
        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount

        self._emit_transfer(ZERO_ADDRESS, to_norm, amount)

        logger.info(
            "ERC20 mint",
            extra={
                "event": "erc20.mint",
                "token": self.symbol,
                "to": to_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            }
        )

        return True

    # ==================== Helpers ====================

    def _validate_address(self, address: str, field: str) -> None:
        if address == ZERO_ADDRESS or not address:
            raise ContractError(f"ERC20: {field} is zero address")

    def _validate_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise ContractError("ERC20: amount must be an integer")
        if amount < 0:
            raise ContractError("ERC20: amount cannot be negative")
        if amount > self.UINT256_MAX:
            raise ContractError("ERC20: amount exceeds uint256")

    def _require_owner(self, caller: str) -> None:
        if normalize_address(caller) != self.owner:
            raise ContractError("ERC20: caller is not owner")

    def _emit_transfer(self, from_addr: str, to_addr: str, amount: int) -> None:
        self.events.append(
            TokenEvent(
                event_type="Transfer",
                from_address=from_addr,
                to_address=to_addr,
                value=amount,
            )
        )

    def _emit_approval(self, owner: str, spender: str, amount: int) -> None:
        self.events.append(
            TokenEvent(
                event_type="Approval",
                from_address=owner,
                to_address=spender,
                value=amount,
            )
        )

    # ==================== Checkpoint / Serialization ====================

    def checkpoint(
        self,
        accounts: Iterable[str] = (),
        allowances: Iterable[tuple[str, str]] = (),
    ) -> dict:
        """
        Capture the balances and (owner, spender) allowances a call is about
        to touch. Absent entries are recorded as None.
        """
        allowance_keys = [(normalize_address(o), normalize_address(s)) for o, s in allowances]
        return {
            "total_supply": self.total_supply,
            "balances": {
                account: self.balances.get(account)
                for account in map(normalize_address, accounts)
            },
            "allowances": {
                key: self.allowances.get(key[0], {}).get(key[1])
                for key in allowance_keys
            },
            "event_count": len(self.events),
        }

    def rollback(self, checkpoint: dict) -> None:
        self.total_supply = checkpoint["total_supply"]
        for account, balance in checkpoint["balances"].items():
            if balance is None:
                self.balances.pop(account, None)
            else:
                self.balances[account] = balance
        for (owner, spender), value in checkpoint["allowances"].items():
            if value is None:
                self.allowances.get(owner, {}).pop(spender, None)
            else:
                self.allowances.setdefault(owner, {})[spender] = value
        del self.events[checkpoint["event_count"]:]

    def to_dict(self) -> dict:
        """Serialize token state to dictionary."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": self.total_supply,
            "address": self.address,
            "owner": self.owner,
            "balances": dict(self.balances),
            "allowances": {k: dict(v) for k, v in self.allowances.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ERC20Token":
        """Deserialize token state from dictionary."""
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            decimals=data.get("decimals", 18),
            total_supply=data.get("total_supply", 0),
            address=data.get("address", ""),
            owner=data.get("owner", ""),
        )
        token.balances = dict(data.get("balances", {}))
        token.allowances = {
            k: dict(v) for k, v in data.get("allowances", {}).items()
        }
        return token
