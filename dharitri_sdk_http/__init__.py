"""
Async HTTP client for Dharitri gateway nodes and the chain simulator.

Public API:

    Client:
        - ``ProxyClient`` — network config, accounts, tokens, transaction
          broadcast and lookup, VM queries, hyperblocks.
        - ``ProxyConfig`` — node URL, API version, timeout, retry policy,
          simulator flag.

    Finality:
        - ``TransactionPoller`` — polls a hash to a terminal ``PollResult``.

    Simulator (only with ``ProxyConfig(simulator=True)``):
        - ``SimulatorProxy`` — block generation, state seeding,
          send-and-confirm without wall-clock waits.

    Retry:
        - ``RetryPolicy`` — bounded exponential backoff with jitter.

    Errors:
        - ``ApiError`` / ``ErrorKind`` — the only error type raised for
          network-side failures.
        - ``classify()`` — transport outcome → ApiError.

    Transport:
        - ``HttpTransport`` — injectable single-attempt executor protocol.
        - ``HttpxTransport`` — default pooled httpx implementation.
"""

from dharitri_sdk_http.config import (
    DEVNET_GATEWAY,
    MAINNET_GATEWAY,
    SIMULATOR_GATEWAY,
    TESTNET_GATEWAY,
    ProxyConfig,
)
from dharitri_sdk_http.endpoints import (
    API_VERSIONS,
    METACHAIN_SHARD,
    EndpointCatalog,
    Operation,
    Route,
)
from dharitri_sdk_http.errors import ApiError, ErrorKind, classify
from dharitri_sdk_http.models import (
    DEFAULT_STATUS_TABLE,
    AccountInfo,
    HyperBlock,
    NetworkConfig,
    NetworkEconomics,
    StatusTable,
    TokenMetadata,
    TransactionCost,
    TransactionOnNetwork,
    TransactionRequest,
    TransactionStatus,
    VmQuery,
    VmQueryResult,
)
from dharitri_sdk_http.poller import (
    DEFAULT_POLL_POLICY,
    PollOutcome,
    PollResult,
    TransactionPoller,
)
from dharitri_sdk_http.proxy import ProxyClient
from dharitri_sdk_http.retry import DEFAULT_RETRY_POLICY, RetryPolicy
from dharitri_sdk_http.simulator import SimulatorProxy
from dharitri_sdk_http.transport import (
    FailureCause,
    HttpTransport,
    HttpxTransport,
    RawResponse,
    TransportFailure,
)

__all__ = [
    "API_VERSIONS",
    "AccountInfo",
    "ApiError",
    "DEFAULT_POLL_POLICY",
    "DEFAULT_RETRY_POLICY",
    "DEFAULT_STATUS_TABLE",
    "DEVNET_GATEWAY",
    "EndpointCatalog",
    "ErrorKind",
    "FailureCause",
    "HttpTransport",
    "HttpxTransport",
    "HyperBlock",
    "MAINNET_GATEWAY",
    "METACHAIN_SHARD",
    "NetworkConfig",
    "NetworkEconomics",
    "Operation",
    "PollOutcome",
    "PollResult",
    "ProxyClient",
    "ProxyConfig",
    "RawResponse",
    "RetryPolicy",
    "Route",
    "SIMULATOR_GATEWAY",
    "SimulatorProxy",
    "StatusTable",
    "TESTNET_GATEWAY",
    "TokenMetadata",
    "TransactionCost",
    "TransactionOnNetwork",
    "TransactionPoller",
    "TransactionRequest",
    "TransactionStatus",
    "TransportFailure",
    "VmQuery",
    "VmQueryResult",
    "classify",
]

__version__ = "0.1.0"
