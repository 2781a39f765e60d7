"""
Key/value metadata registry scoped to NFT tokens.

Values are stored per (collection, token id, key). Keys and schemas are
content-addressed ids (see identifiers.content_id); values are opaque bytes.
Writers must hold the WRITER capability; safe_write additionally checks
that the requester owns the referenced token.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable

from ..access_control import WRITER_CAPABILITY, CapabilityTable
from ..exceptions import AuthorizationError, ContractError, ValidationError
from ..identifiers import ZERO_ADDRESS, derive_address, normalize_address
from .erc721 import ERC721Token

logger = logging.getLogger(__name__)


@dataclass
class RegistryEvent:
    """Write or Schema event."""

    event_type: str  # "Write" or "Schema"
    key: str
    value: bytes | str
    requester: str = ""
    collection: str = ""
    token_id: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass
class DataRegistry:
    """
    Metadata registry for NFT-scoped records.

    Usage:
        registry = DataRegistry(admin=deployer)
        registry.access.grant_capability(deployer, WRITER_CAPABILITY, writer)
        registry.write(writer, holder, nft.address, 0, key, b"...")
    """

    admin: str = ""
    address: str = ""
    access: CapabilityTable = field(default_factory=CapabilityTable)

    # collection -> token id -> key -> value
    records: dict[str, dict[int, dict[str, bytes]]] = field(default_factory=dict)
    schemas: dict[str, str] = field(default_factory=dict)

    # Collections resolvable for ownership checks
    collections: dict[str, ERC721Token] = field(default_factory=dict)

    events: list[RegistryEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.address:
            self.address = derive_address(f"registry:{self.admin}:{time.time()}")
        if self.admin and not self.access.admin:
            self.access = CapabilityTable(admin=self.admin)

    def register_collection(self, collection: ERC721Token) -> None:
        self.collections[normalize_address(collection.address)] = collection

    # ==================== Read ====================

    def read(self, collection: str, token_id: int, key: str) -> bytes:
        """Read a value; unset entries read as empty bytes."""
        return (
            self.records.get(normalize_address(collection), {})
            .get(token_id, {})
            .get(key, b"")
        )

    def get_schema(self, key: str) -> str:
        return self.schemas.get(key, "")

    # ==================== Write ====================

    def write(
        self,
        caller: str,
        requester: str,
        collection: str,
        token_id: int,
        key: str,
        value: bytes,
    ) -> bool:
        """
        Store a value for a token.

        Args:
            caller: Must hold WRITER capability
            requester: Account the write is made on behalf of
            collection: NFT collection address
            token_id: Token id within the collection
            key: Content id of the record key
            value: Raw bytes

        Raises:
            AuthorizationError: If caller lacks WRITER capability
            ValidationError: If requester is the zero address
        """
        self.access.require_capability(WRITER_CAPABILITY, caller)
        requester_norm = normalize_address(requester or ZERO_ADDRESS)
        if requester_norm == ZERO_ADDRESS:
            raise ValidationError("Requester must be live account")
        self._store(requester_norm, collection, token_id, key, value)
        return True

    def safe_write(
        self,
        caller: str,
        requester: str,
        collection: str,
        token_id: int,
        key: str,
        value: bytes,
    ) -> bool:
        """
        Store a value only if requester currently owns the token.

        Raises:
            AuthorizationError: Missing WRITER capability, unknown collection
                or requester is not the token owner
        """
        self.access.require_capability(WRITER_CAPABILITY, caller)
        requester_norm = normalize_address(requester or ZERO_ADDRESS)
        if not self._is_owner(requester_norm, collection, token_id):
            raise AuthorizationError(
                "Requester must be true owner of NFT",
                account=requester_norm,
            )
        self._store(requester_norm, collection, token_id, key, value)
        return True

    def set_schema(self, caller: str, key: str, schema: str) -> bool:
        """Attach a schema description to a key (WRITER capability)."""
        self.access.require_capability(WRITER_CAPABILITY, caller)
        self.schemas[key] = schema
        self.events.append(RegistryEvent(event_type="Schema", key=key, value=schema))
        logger.info(
            "Registry schema set",
            extra={"event": "registry.schema", "key": key[:10], "schema": schema},
        )
        return True

    # ==================== Helpers ====================

    def _is_owner(self, requester: str, collection: str, token_id: int) -> bool:
        if requester == ZERO_ADDRESS:
            return False
        nft = self.collections.get(normalize_address(collection))
        if nft is None:
            return False
        try:
            return nft.owner_of(token_id) == requester
        except ContractError:
            return False

    def _store(
        self, requester: str, collection: str, token_id: int, key: str, value: bytes
    ) -> None:
        if not isinstance(value, (bytes, bytearray)):
            raise ValidationError("Registry values must be bytes")
        collection_norm = normalize_address(collection)
        (
            self.records.setdefault(collection_norm, {})
            .setdefault(token_id, {})
        )[key] = bytes(value)
        self.events.append(
            RegistryEvent(
                event_type="Write",
                key=key,
                value=bytes(value),
                requester=requester,
                collection=collection_norm,
                token_id=token_id,
            )
        )
        logger.debug(
            "Registry write",
            extra={
                "event": "registry.write",
                "collection": collection_norm[:10],
                "token_id": token_id,
                "key": key[:10],
                "size": len(value),
            },
        )

    # ==================== Checkpoint ====================

    def checkpoint(
        self,
        entries: Iterable[tuple[str, int, str]] = (),
        schema_keys: Iterable[str] = (),
    ) -> dict:
        """
        Capture the (collection, token id, key) records and schemas a call is
        about to write. Absent entries are recorded as None.
        """
        records = {}
        for collection, token_id, key in entries:
            collection_norm = normalize_address(collection)
            records[(collection_norm, token_id, key)] = (
                self.records.get(collection_norm, {}).get(token_id, {}).get(key)
            )
        return {
            "records": records,
            "schemas": {key: self.schemas.get(key) for key in schema_keys},
            "event_count": len(self.events),
        }

    def rollback(self, checkpoint: dict) -> None:
        for (collection, token_id, key), value in checkpoint["records"].items():
            if value is not None:
                self.records.setdefault(collection, {}).setdefault(token_id, {})[key] = value
                continue
            tokens = self.records.get(collection, {})
            tokens.get(token_id, {}).pop(key, None)
            if token_id in tokens and not tokens[token_id]:
                del tokens[token_id]
            if collection in self.records and not tokens:
                del self.records[collection]
        for key, schema in checkpoint["schemas"].items():
            if schema is None:
                self.schemas.pop(key, None)
            else:
                self.schemas[key] = schema
        del self.events[checkpoint["event_count"]:]
