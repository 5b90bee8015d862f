"""
Endpoint catalog — logical operation → HTTP method and path.

Pure lookup, no I/O. The catalog is parameterized by an API version tag
so one build can talk to gateways exposing different path schemes;
callers only ever name an ``Operation``.

Simulator control endpoints live in the same table but resolve only on
a catalog built with ``simulator=True``. A production catalog rejects
them as FATAL, so block generation can never reach a real network.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from string import Formatter
from urllib.parse import quote

from dharitri_sdk_http.errors import ApiError, ErrorKind

METACHAIN_SHARD = 4294967295


class Operation(StrEnum):
    """Every logical gateway call the client knows about."""

    NETWORK_CONFIG = "network_config"
    NETWORK_STATUS = "network_status"
    NETWORK_ECONOMICS = "network_economics"
    ACCOUNT = "account"
    ACCOUNT_STORAGE_KEY = "account_storage_key"
    ACCOUNT_TOKENS = "account_tokens"
    SEND_TRANSACTION = "send_transaction"
    SEND_TRANSACTIONS = "send_transactions"
    TRANSACTION_COST = "transaction_cost"
    TRANSACTION = "transaction"
    TRANSACTION_STATUS = "transaction_status"
    TOKEN = "token"
    VM_QUERY = "vm_query"
    HYPERBLOCK_BY_NONCE = "hyperblock_by_nonce"
    HYPERBLOCK_BY_HASH = "hyperblock_by_hash"
    SIMULATOR_GENERATE_BLOCKS = "simulator_generate_blocks"
    SIMULATOR_GENERATE_UNTIL_TX = "simulator_generate_until_tx"
    SIMULATOR_GENERATE_UNTIL_EPOCH = "simulator_generate_until_epoch"
    SIMULATOR_SET_STATE = "simulator_set_state"
    SIMULATOR_INITIAL_WALLETS = "simulator_initial_wallets"

    @property
    def simulator_only(self) -> bool:
        return self.value.startswith("simulator_")


@dataclass(frozen=True)
class Route:
    """A resolved request: method, path and query parameters."""

    method: str
    path: str
    query: Mapping[str, str] = field(default_factory=dict)


# (method, path template)
_V1: dict[Operation, tuple[str, str]] = {
    Operation.NETWORK_CONFIG: ("GET", "/network/config"),
    Operation.NETWORK_STATUS: ("GET", "/network/status/{shard}"),
    Operation.NETWORK_ECONOMICS: ("GET", "/network/economics"),
    Operation.ACCOUNT: ("GET", "/address/{address}"),
    Operation.ACCOUNT_STORAGE_KEY: ("GET", "/address/{address}/key/{key}"),
    Operation.ACCOUNT_TOKENS: ("GET", "/address/{address}/dcdt"),
    Operation.SEND_TRANSACTION: ("POST", "/transaction/send"),
    Operation.SEND_TRANSACTIONS: ("POST", "/transaction/send-multiple"),
    Operation.TRANSACTION_COST: ("POST", "/transaction/cost"),
    Operation.TRANSACTION: ("GET", "/transaction/{hash}"),
    Operation.TRANSACTION_STATUS: ("GET", "/transaction/{hash}/status"),
    Operation.TOKEN: ("GET", "/network/dcdt/token/{identifier}"),
    Operation.VM_QUERY: ("POST", "/vm-values/query"),
    Operation.HYPERBLOCK_BY_NONCE: ("GET", "/hyperblock/by-nonce/{nonce}"),
    Operation.HYPERBLOCK_BY_HASH: ("GET", "/hyperblock/by-hash/{hash}"),
    Operation.SIMULATOR_GENERATE_BLOCKS: ("POST", "/simulator/generate-blocks/{count}"),
    Operation.SIMULATOR_GENERATE_UNTIL_TX: (
        "POST",
        "/simulator/generate-blocks-until-transaction-processed/{hash}",
    ),
    Operation.SIMULATOR_GENERATE_UNTIL_EPOCH: (
        "POST",
        "/simulator/generate-blocks-until-epoch-reached/{epoch}",
    ),
    Operation.SIMULATOR_SET_STATE: ("POST", "/simulator/set-state"),
    Operation.SIMULATOR_INITIAL_WALLETS: ("GET", "/simulator/initial-wallets"),
}

_V2: dict[Operation, tuple[str, str]] = {
    **_V1,
    Operation.TRANSACTION_STATUS: ("GET", "/transaction/{hash}/process-status"),
    Operation.TOKEN: ("GET", "/tokens/{identifier}"),
}

API_VERSIONS: dict[str, dict[Operation, tuple[str, str]]] = {
    "v1": _V1,
    "v2": _V2,
}

DEFAULT_API_VERSION = "v1"


class EndpointCatalog:
    """Versioned operation table.

    Args:
        version: API version tag (a key of ``API_VERSIONS``).
        simulator: Whether simulator control operations may resolve.

    Raises:
        ApiError: FATAL if the version tag is unknown.
    """

    def __init__(self, version: str = DEFAULT_API_VERSION, *, simulator: bool = False) -> None:
        table = API_VERSIONS.get(version)
        if table is None:
            raise ApiError(
                kind=ErrorKind.FATAL,
                message=f"unknown API version {version!r} (known: {sorted(API_VERSIONS)})",
            )
        self._version = version
        self._table = table
        self._simulator = simulator

    @property
    def version(self) -> str:
        return self._version

    @property
    def simulator(self) -> bool:
        return self._simulator

    def resolve(
        self,
        operation: Operation | str,
        query: Mapping[str, str] | None = None,
        **params: object,
    ) -> Route:
        """Resolve an operation to a Route.

        Args:
            operation: Operation (or its string value).
            query: Query-string parameters passed through unchanged.
            **params: Values for the path template placeholders. Each
                is converted to str and URL-quoted.

        Raises:
            ApiError: FATAL for unknown operations, simulator operations
                on a production catalog, or missing path parameters.
        """
        try:
            op = Operation(operation)
        except ValueError:
            raise ApiError(
                kind=ErrorKind.FATAL, message=f"unknown operation {operation!r}"
            ) from None

        if op.simulator_only and not self._simulator:
            raise ApiError(
                kind=ErrorKind.FATAL,
                message=f"{op} is only available against a chain simulator",
            )

        method, template = self._table[op]
        placeholders = [name for _, name, _, _ in Formatter().parse(template) if name]
        missing = [name for name in placeholders if params.get(name) in (None, "")]
        if missing:
            raise ApiError(
                kind=ErrorKind.FATAL,
                message=f"{op} requires path parameter(s): {', '.join(missing)}",
            )

        path = template.format(
            **{name: quote(str(params[name]), safe="") for name in placeholders}
        )
        return Route(method=method, path=path, query=dict(query or {}))
