"""
Escrow adapter over the fungible token.

The engine's own address is the custody account: pull moves a holder's
approved balance into custody, push pays released amounts out of it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..contracts.erc20 import ERC20Token
from ..exceptions import ContractError, InsufficientFundsError
from ..identifiers import normalize_address

logger = logging.getLogger(__name__)


@dataclass
class Escrow:
    token: ERC20Token
    custodian: str

    def __post_init__(self) -> None:
        self.custodian = normalize_address(self.custodian)

    @property
    def held(self) -> int:
        """Balance currently in custody."""
        return self.token.balance_of(self.custodian)

    def pull(self, from_addr: str, amount: int) -> None:
        """
        Move amount from from_addr into custody using its allowance.

        Raises:
            InsufficientFundsError: Balance or allowance too small
        """
        try:
            self.token.transfer_from(self.custodian, from_addr, self.custodian, amount)
        except ContractError as exc:
            raise InsufficientFundsError(
                f"Escrow pull of {amount} from {normalize_address(from_addr)} failed: {exc}",
                details={
                    "from": normalize_address(from_addr),
                    "amount": amount,
                    "balance": self.token.balance_of(from_addr),
                    "allowance": self.token.allowance(from_addr, self.custodian),
                },
            ) from exc
        logger.debug(
            "Escrow pull",
            extra={"event": "escrow.pull", "from": normalize_address(from_addr)[:10], "amount": amount},
        )

    def push(self, to_addr: str, amount: int) -> None:
        """
        Pay amount out of custody.

        Raises:
            ContractError: Custody cannot cover amount (accounting bug)
        """
        self.token.transfer(self.custodian, to_addr, amount)
        logger.debug(
            "Escrow push",
            extra={"event": "escrow.push", "to": normalize_address(to_addr)[:10], "amount": amount},
        )
