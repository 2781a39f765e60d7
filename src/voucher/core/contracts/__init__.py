"""
Collaborator contracts consumed by the voucher engine.

- ERC20: fungible token held in escrow
- ERC721: position receipt collection
- DataRegistry: token-scoped metadata store
"""

from .data_registry import DataRegistry, RegistryEvent
from .erc20 import ERC20Token, TokenEvent
from .erc721 import ERC721Token, NFTEvent

__all__ = [
    "ERC20Token",
    "TokenEvent",
    "ERC721Token",
    "NFTEvent",
    "DataRegistry",
    "RegistryEvent",
]
