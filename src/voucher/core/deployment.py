"""
Wiring of a complete voucher system.

Deploys the fungible token, the receipt collection, the metadata registry
and the engine, then grants the engine the MINTER and WRITER capabilities
it needs before its first call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .access_control import MINTER_CAPABILITY, WRITER_CAPABILITY
from .contracts.data_registry import DataRegistry
from .contracts.erc20 import ERC20Token
from .contracts.erc721 import ERC721Token
from .exceptions import ValidationError
from .identifiers import is_valid_address, normalize_address
from .vesting.engine import VoucherEngine

logger = logging.getLogger(__name__)


@dataclass
class VoucherSystem:
    admin: str
    token: ERC20Token
    receipts: ERC721Token
    registry: DataRegistry
    engine: VoucherEngine

    def fund(self, account: str, amount: int, approve: bool = True) -> None:
        """Mint amount to account and (optionally) approve the engine for it."""
        self.token.mint(self.admin, account, amount)
        if approve:
            self.token.increase_allowance(account, self.engine.address, amount)


def deploy_voucher_system(
    admin: str,
    token_name: str = "Tether USD",
    token_symbol: str = "USDT",
    receipt_name: str = "Vesting Voucher",
    receipt_symbol: str = "VCHR",
    time_provider: Optional[Callable[[], int]] = None,
    grant_capabilities: bool = True,
    **engine_kwargs,
) -> VoucherSystem:
    """
    Deploy and wire all contracts.

    Args:
        admin: Deployer; owns the token and administers capabilities
        grant_capabilities: Grant MINTER/WRITER to the engine (disable to
            exercise unprovisioned engines)
        engine_kwargs: Forwarded to VoucherEngine

    Returns:
        The deployed system
    """
    if not is_valid_address(admin):
        raise ValidationError(f"Invalid admin address: {admin!r}")
    admin_norm = normalize_address(admin)

    token = ERC20Token(name=token_name, symbol=token_symbol, owner=admin_norm)
    receipts = ERC721Token(name=receipt_name, symbol=receipt_symbol, admin=admin_norm)
    registry = DataRegistry(admin=admin_norm)
    registry.register_collection(receipts)

    engine = VoucherEngine(
        token=token,
        receipts=receipts,
        registry=registry,
        time_provider=time_provider,
        **engine_kwargs,
    )

    if grant_capabilities:
        receipts.access.grant_capability(admin_norm, MINTER_CAPABILITY, engine.address)
        registry.access.grant_capability(admin_norm, WRITER_CAPABILITY, engine.address)

    logger.info(
        "Voucher system deployed",
        extra={
            "event": "deployment.completed",
            "token": token.address,
            "receipts": receipts.address,
            "registry": registry.address,
            "engine": engine.address,
            "capabilities_granted": grant_capabilities,
        },
    )

    return VoucherSystem(
        admin=admin_norm,
        token=token,
        receipts=receipts,
        registry=registry,
        engine=engine,
    )
