"""
Value types returned by the gateway client.

Every type here is a frozen dataclass built by decoding a node response
(see ``proxy.py``); callers never construct network-side values such as
``TransactionOnNetwork`` themselves. Amounts are kept as decimal strings
exactly as the node sent them, so no precision is lost.

Each decoded value also keeps ``raw``: the mapping it was decoded from.
Fields that later gateway versions add are therefore never dropped, and
smart-contract logs/results stay opaque pass-through data.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


# =========================================================================
# Network
# =========================================================================


@dataclass(frozen=True)
class NetworkConfig:
    """Static network parameters plus the current epoch/round.

    Fetched once and held by the caller; nothing in the client mutates it.

    Attributes:
        chain_id: Chain identifier to put in transactions.
        min_gas_price: Minimum accepted gas price.
        min_gas_limit: Minimum gas limit of a plain transfer.
        gas_per_data_byte: Extra gas per byte of the data field.
        min_transaction_version: Lowest accepted transaction version.
        round_duration: Round duration in milliseconds.
        num_shards: Number of shards, metachain excluded.
        denomination: Decimals of the native currency.
        current_epoch: Metachain epoch at fetch time.
        current_round: Metachain round at fetch time.
    """

    chain_id: str
    min_gas_price: int
    min_gas_limit: int
    gas_per_data_byte: int
    min_transaction_version: int
    round_duration: int
    num_shards: int
    denomination: int
    current_epoch: int
    current_round: int
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class NetworkEconomics:
    total_supply: str
    epoch: int
    total_fees: str | None = None
    dev_rewards: str | None = None
    total_base_staked_value: str | None = None
    total_top_up_value: str | None = None
    inflation: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


# =========================================================================
# Accounts and tokens
# =========================================================================


@dataclass(frozen=True)
class AccountInfo:
    """Snapshot of an account. A new query always yields a new instance.

    Attributes:
        address: Bech32 address.
        balance: Balance in the smallest unit, as a decimal string.
        nonce: Next nonce the account must use.
        username: Registered username, if any.
        code: Hex-encoded contract code for smart-contract accounts.
        code_hash: Hash of the contract code, if any.
        owner_address: Owner of a smart-contract account, if any.
    """

    address: str
    balance: str
    nonce: int
    username: str | None = None
    code: str | None = None
    code_hash: str | None = None
    owner_address: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class TokenMetadata:
    identifier: str
    name: str
    ticker: str
    decimals: int
    owner: str | None = None
    supply: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


# =========================================================================
# Transactions
# =========================================================================


@dataclass(frozen=True)
class TransactionRequest:
    """A signed transaction handed over by the upstream builder.

    The payload is opaque: it is sent byte-for-byte and never inspected.
    A mapping is serialized once, at construction, to compact JSON.

    Attributes:
        payload: Serialized signed transaction (JSON bytes).
        sender: Sender address, used for logging and nonce lookups.
        hash: Transaction hash, None until broadcast.
    """

    payload: bytes
    sender: str
    hash: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.payload, Mapping):
            encoded = json.dumps(dict(self.payload), separators=(",", ":")).encode("utf-8")
            object.__setattr__(self, "payload", encoded)
        elif isinstance(self.payload, str):
            object.__setattr__(self, "payload", self.payload.encode("utf-8"))
        if not self.payload:
            raise ValueError("payload must be non-empty")
        if not self.sender:
            raise ValueError("sender must be non-empty")

    @classmethod
    def from_mapping(cls, tx: Mapping[str, Any], sender: str | None = None) -> TransactionRequest:
        """Wrap an already-signed transaction object.

        The sender defaults to the object's ``sender`` field.
        """
        resolved = sender or tx.get("sender")
        if not isinstance(resolved, str) or not resolved:
            raise ValueError("sender must be given or present in the transaction")
        return cls(payload=tx, sender=resolved)  # type: ignore[arg-type]

    def with_hash(self, tx_hash: str) -> TransactionRequest:
        return replace(self, hash=tx_hash)


class TransactionStatus(StrEnum):
    """Normalized transaction status."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    INVALID = "invalid"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


@dataclass(frozen=True)
class StatusTable:
    """Maps node status strings to TransactionStatus.

    The set of strings a node emits is an external contract that grows
    over time, so the table is data: extend it rather than editing code.
    Anything not listed is PENDING, which keeps a poller going until its
    budget runs out instead of declaring an outcome it cannot know.
    """

    success: frozenset[str] = frozenset({"success", "successful", "executed"})
    failed: frozenset[str] = frozenset(
        {"fail", "failed", "reward-reverted", "rewardreverted", "notexecuted"}
    )
    invalid: frozenset[str] = frozenset({"invalid"})
    pending: frozenset[str] = frozenset(
        {"pending", "received", "partially-executed", "partiallyexecuted"}
    )

    def classify(self, raw_status: str) -> TransactionStatus:
        key = raw_status.strip().lower()
        if key in self.success:
            return TransactionStatus.SUCCESS
        if key in self.invalid:
            return TransactionStatus.INVALID
        if key in self.failed:
            return TransactionStatus.FAILED
        if key not in self.pending:
            logger.warning("unknown transaction status %r, treating as pending", raw_status)
        return TransactionStatus.PENDING

    def extend(
        self,
        *,
        success: Iterable[str] = (),
        failed: Iterable[str] = (),
        invalid: Iterable[str] = (),
        pending: Iterable[str] = (),
    ) -> StatusTable:
        """Return a new table with additional status strings."""
        return StatusTable(
            success=self.success | {s.lower() for s in success},
            failed=self.failed | {s.lower() for s in failed},
            invalid=self.invalid | {s.lower() for s in invalid},
            pending=self.pending | {s.lower() for s in pending},
        )


DEFAULT_STATUS_TABLE = StatusTable()


@dataclass(frozen=True)
class TransactionOnNetwork:
    """A transaction as reported by the node.

    Attributes:
        hash: Transaction hash.
        sender: Sender address.
        receiver: Receiver address.
        nonce: Sender nonce used by the transaction.
        value: Transferred amount, decimal string.
        status: Normalized status.
        raw_status: Status string exactly as the node sent it.
        data: Base64 data field, if any.
        gas_limit: Gas limit, if reported.
        gas_price: Gas price, if reported.
        block_nonce: Nonce of the including block, when included.
        block_hash: Hash of the including block, when included.
        round: Round of inclusion, when included.
        epoch: Epoch of inclusion, when included.
        logs: Raw logs/events mapping (pass-through).
        smart_contract_results: Raw smart-contract results (pass-through).
    """

    hash: str
    sender: str
    receiver: str
    nonce: int
    value: str
    status: TransactionStatus
    raw_status: str
    data: str | None = None
    gas_limit: int | None = None
    gas_price: int | None = None
    block_nonce: int | None = None
    block_hash: str | None = None
    round: int | None = None
    epoch: int | None = None
    logs: Mapping[str, Any] | None = None
    smart_contract_results: tuple[Mapping[str, Any], ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True)
class TransactionCost:
    gas_units: int
    return_message: str = ""


# =========================================================================
# VM queries and blocks
# =========================================================================


@dataclass(frozen=True)
class VmQuery:
    """Read-only smart-contract call.

    Attributes:
        sc_address: Contract address.
        func_name: Endpoint name.
        args: Hex-encoded arguments.
        caller: Optional caller address.
        value: Optional call value, decimal string.
    """

    sc_address: str
    func_name: str
    args: tuple[str, ...] = ()
    caller: str | None = None
    value: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "scAddress": self.sc_address,
            "funcName": self.func_name,
            "args": list(self.args),
        }
        if self.caller is not None:
            body["caller"] = self.caller
        if self.value is not None:
            body["value"] = self.value
        return body


@dataclass(frozen=True)
class VmQueryResult:
    return_data: tuple[str, ...]
    return_code: str
    return_message: str = ""
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class HyperBlock:
    nonce: int
    round: int
    epoch: int
    hash: str
    prev_block_hash: str
    num_txs: int
    timestamp: int
    shard_blocks: tuple[Mapping[str, Any], ...] = ()
    transactions: tuple[Mapping[str, Any], ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)
