"""
Gateway proxy client — the public façade.

Each operation resolves its route in the endpoint catalog, executes one
HTTP request through the injectable transport, classifies failures and
decodes the envelope into a typed value. Operations raise ``ApiError``
and nothing else for network-side trouble.

Retry rules:
    - Idempotent calls (every GET, plus the read-only POSTs: transaction
      cost and VM queries) retry TRANSIENT, RATE_LIMITED and TIMEOUT
      errors while the RetryPolicy allows, then raise TIMED_OUT.
    - ``send_transaction`` / ``send_transactions`` make exactly one
      transport call. A duplicate broadcast is a correctness hazard, so
      the classified error goes back to the caller, who knows the nonce.
    - FATAL and DECODE errors are raised immediately.

Response parsing lives at the bottom of the module as pure functions.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any
from urllib.parse import urlencode

from dharitri_sdk_http import schemas
from dharitri_sdk_http.config import ProxyConfig
from dharitri_sdk_http.endpoints import METACHAIN_SHARD, EndpointCatalog, Operation, Route
from dharitri_sdk_http.errors import ApiError, ErrorKind, classify, unwrap_envelope
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
from dharitri_sdk_http.retry import RetryPolicy, Sleep, pause
from dharitri_sdk_http.transport import HttpTransport, HttpxTransport, RawResponse, TransportFailure

logger = logging.getLogger(__name__)


class ProxyClient:
    """Async client for one gateway node.

    Args:
        config: Target node, API version, timeout and default retry policy.
        transport: Injectable HTTP executor. Defaults to an HttpxTransport
            owned (and closed) by this client. A shared transport passed
            in is never closed here.
        status_table: Node status string → TransactionStatus mapping.
        sleep: Awaitable sleep used between retries. Inject for tests.
        clock: Monotonic clock in seconds. Inject for tests.
    """

    def __init__(
        self,
        config: ProxyConfig | None = None,
        transport: HttpTransport | None = None,
        *,
        status_table: StatusTable = DEFAULT_STATUS_TABLE,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or ProxyConfig()
        self._owns_transport = transport is None
        self._transport: HttpTransport = transport or HttpxTransport(
            self._config.timeout, user_agent=self._config.user_agent
        )
        self._catalog = EndpointCatalog(
            self._config.api_version, simulator=self._config.simulator
        )
        self._status_table = status_table
        self._sleep = sleep
        self._clock = clock

    @property
    def config(self) -> ProxyConfig:
        return self._config

    @property
    def catalog(self) -> EndpointCatalog:
        return self._catalog

    @property
    def status_table(self) -> StatusTable:
        return self._status_table

    @property
    def sleep(self) -> Sleep:
        return self._sleep

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    async def aclose(self) -> None:
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            await self._transport.aclose()

    async def __aenter__(self) -> ProxyClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # -----------------------------------------------------------------
    # Network
    # -----------------------------------------------------------------

    async def get_network_config(
        self,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> NetworkConfig:
        """Fetch network parameters and the current metachain epoch/round.

        Two calls (config, then metachain status); if either fails the
        operation fails, no partially filled config is returned.
        """
        data = await self.call(Operation.NETWORK_CONFIG, policy=policy, cancel=cancel)
        schemas.validate(data, schemas.NETWORK_CONFIG, "network config")
        status = await self.get_network_status(METACHAIN_SHARD, policy=policy, cancel=cancel)
        return _parse_network_config(data["config"], status)

    async def get_network_status(
        self,
        shard: int = METACHAIN_SHARD,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """Fetch the raw status metrics of one shard."""
        data = await self.call(
            Operation.NETWORK_STATUS, params={"shard": shard}, policy=policy, cancel=cancel
        )
        schemas.validate(data, schemas.NETWORK_STATUS, "network status")
        status: dict[str, Any] = data["status"]
        return status

    async def get_network_economics(
        self,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> NetworkEconomics:
        data = await self.call(Operation.NETWORK_ECONOMICS, policy=policy, cancel=cancel)
        schemas.validate(data, schemas.NETWORK_ECONOMICS, "network economics")
        return _parse_network_economics(data["metrics"])

    # -----------------------------------------------------------------
    # Accounts
    # -----------------------------------------------------------------

    async def get_account(
        self,
        address: str,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AccountInfo:
        """Fetch a fresh snapshot of an account (balance, nonce, ...)."""
        _require("address", address)
        data = await self.call(
            Operation.ACCOUNT, params={"address": address}, policy=policy, cancel=cancel
        )
        schemas.validate(data, schemas.ACCOUNT, "account")
        return _parse_account(data["account"], address)

    async def get_account_storage_key(
        self,
        address: str,
        key: str,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Read one hex-encoded storage value of an account."""
        _require("address", address)
        _require("key", key)
        data = await self.call(
            Operation.ACCOUNT_STORAGE_KEY,
            params={"address": address, "key": key},
            policy=policy,
            cancel=cancel,
        )
        schemas.validate(data, schemas.STORAGE_VALUE, "storage value")
        value: str = data["value"]
        return value

    async def get_account_tokens(
        self,
        address: str,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """Token balances of an account, keyed by token identifier (raw)."""
        _require("address", address)
        data = await self.call(
            Operation.ACCOUNT_TOKENS, params={"address": address}, policy=policy, cancel=cancel
        )
        schemas.validate(data, schemas.ACCOUNT_TOKENS, "account tokens")
        tokens: dict[str, Any] = data["dcdts"]
        return tokens

    async def get_default_transaction_arguments(
        self,
        address: str,
        network_config: NetworkConfig | None = None,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """Baseline fields for a new transaction sent by ``address``.

        Returns the account's current nonce together with the network's
        chain id, minimum gas price/limit and transaction version, keyed
        the way the wire format names them. The upstream builder fills
        in receiver, value, data and the signature.
        """
        if network_config is None:
            network_config = await self.get_network_config(policy=policy, cancel=cancel)
        account = await self.get_account(address, policy=policy, cancel=cancel)
        return {
            "nonce": account.nonce,
            "value": "0",
            "sender": account.address,
            "receiver": account.address,
            "gasPrice": network_config.min_gas_price,
            "gasLimit": network_config.min_gas_limit,
            "chainID": network_config.chain_id,
            "version": network_config.min_transaction_version,
        }

    # -----------------------------------------------------------------
    # Transactions
    # -----------------------------------------------------------------

    async def send_transaction(
        self,
        request: TransactionRequest,
        *,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Broadcast one signed transaction and return its hash.

        Exactly one transport call; never retried.
        """
        data = await self.call(
            Operation.SEND_TRANSACTION,
            body=request.payload,
            idempotent=False,
            cancel=cancel,
        )
        schemas.validate(data, schemas.TX_HASH, "send transaction")
        tx_hash: str = data["txHash"]
        logger.debug("sent transaction %s from %s", tx_hash, request.sender)
        return tx_hash

    async def send_transactions(
        self,
        requests: Sequence[TransactionRequest],
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[str | None]:
        """Broadcast a batch in one call; never retried.

        Returns:
            Hashes aligned with ``requests``; None where the node did
            not accept the transaction.
        """
        if not requests:
            raise ValueError("requests must be non-empty")
        body = b"[" + b",".join(r.payload for r in requests) + b"]"
        data = await self.call(
            Operation.SEND_TRANSACTIONS, body=body, idempotent=False, cancel=cancel
        )
        schemas.validate(data, schemas.TX_HASHES, "send transactions")
        hashes: Mapping[str, str] = data["txsHashes"]
        accepted = [hashes.get(str(i)) for i in range(len(requests))]
        if data["numOfSentTxs"] != sum(h is not None for h in accepted):
            logger.warning(
                "node reported %d sent transactions but returned %d hashes",
                data["numOfSentTxs"],
                sum(h is not None for h in accepted),
            )
        return accepted

    async def request_transaction_cost(
        self,
        request: TransactionRequest,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> TransactionCost:
        """Estimate the gas a transaction would consume. Read-only."""
        data = await self.call(
            Operation.TRANSACTION_COST, body=request.payload, policy=policy, cancel=cancel
        )
        schemas.validate(data, schemas.TX_COST, "transaction cost")
        return TransactionCost(
            gas_units=data["txGasUnits"],
            return_message=data.get("returnMessage") or "",
        )

    async def get_transaction(
        self,
        tx_hash: str,
        with_results: bool = False,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> TransactionOnNetwork:
        """Fetch a transaction, optionally with smart-contract results."""
        _require("tx_hash", tx_hash)
        query = {"withResults": "true"} if with_results else None
        data = await self.call(
            Operation.TRANSACTION,
            params={"hash": tx_hash},
            query=query,
            policy=policy,
            cancel=cancel,
        )
        schemas.validate(data, schemas.TRANSACTION, "transaction")
        return _parse_transaction(data["transaction"], tx_hash, self._status_table)

    async def get_transaction_status(
        self,
        tx_hash: str,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> TransactionStatus:
        """Lightweight status-only query."""
        _require("tx_hash", tx_hash)
        data = await self.call(
            Operation.TRANSACTION_STATUS,
            params={"hash": tx_hash},
            policy=policy,
            cancel=cancel,
        )
        schemas.validate(data, schemas.TX_STATUS, "transaction status")
        return self._status_table.classify(data["status"])

    # -----------------------------------------------------------------
    # Tokens, VM, blocks
    # -----------------------------------------------------------------

    async def get_token(
        self,
        identifier: str,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> TokenMetadata:
        _require("identifier", identifier)
        data = await self.call(
            Operation.TOKEN, params={"identifier": identifier}, policy=policy, cancel=cancel
        )
        token = data.get("tokenData", data)
        schemas.validate(token, schemas.TOKEN, "token")
        return _parse_token(token)

    async def execute_vm_query(
        self,
        query: VmQuery,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> VmQueryResult:
        """Run a read-only contract call. Return data stays raw."""
        _require("sc_address", query.sc_address)
        _require("func_name", query.func_name)
        data = await self.call(
            Operation.VM_QUERY, body=_encode_json(query.to_dict()), policy=policy, cancel=cancel
        )
        schemas.validate(data, schemas.VM_QUERY, "vm query")
        result = data["data"]
        return VmQueryResult(
            return_data=tuple(result.get("returnData") or ()),
            return_code=result["returnCode"],
            return_message=result.get("returnMessage") or "",
            raw=result,
        )

    async def get_hyper_block_by_nonce(
        self,
        nonce: int,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> HyperBlock:
        if nonce < 0:
            raise ValueError(f"nonce must be >= 0, got: {nonce}")
        data = await self.call(
            Operation.HYPERBLOCK_BY_NONCE, params={"nonce": nonce}, policy=policy, cancel=cancel
        )
        schemas.validate(data, schemas.HYPERBLOCK, "hyperblock")
        return _parse_hyper_block(data["hyperblock"])

    async def get_hyper_block_by_hash(
        self,
        block_hash: str,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> HyperBlock:
        _require("block_hash", block_hash)
        data = await self.call(
            Operation.HYPERBLOCK_BY_HASH, params={"hash": block_hash}, policy=policy, cancel=cancel
        )
        schemas.validate(data, schemas.HYPERBLOCK, "hyperblock")
        return _parse_hyper_block(data["hyperblock"])

    async def get_latest_hyper_block_nonce(
        self,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> int:
        """Nonce of the latest metachain block."""
        status = await self.get_network_status(METACHAIN_SHARD, policy=policy, cancel=cancel)
        nonce = status.get("erd_nonce")
        if not isinstance(nonce, int) or isinstance(nonce, bool):
            raise ApiError(kind=ErrorKind.DECODE, message="network status has no erd_nonce")
        return nonce

    # -----------------------------------------------------------------
    # Generic call
    # -----------------------------------------------------------------

    async def call(
        self,
        operation: Operation | str,
        *,
        params: Mapping[str, object] | None = None,
        query: Mapping[str, str] | None = None,
        body: bytes | None = None,
        idempotent: bool = True,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """Perform one logical call and return the envelope ``data``.

        This is the single place where transport outcomes are classified
        and retries happen. Non-idempotent calls get one attempt no
        matter what policy is passed.

        Raises:
            ApiError: FATAL/DECODE at once; TIMED_OUT when the policy is
                exhausted on retryable errors; CANCELLED when ``cancel``
                fires, including while a request is in flight; the
                classified error itself for non-idempotent calls.
        """
        route = self._catalog.resolve(operation, query, **(params or {}))
        url = self._url(route)
        effective = policy or self._config.retry
        if not idempotent:
            effective = RetryPolicy.single()

        started = self._clock()
        attempt = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise _cancelled(operation, attempt)

            logger.debug("%s %s (attempt %d)", route.method, url, attempt + 1)
            outcome = await self._execute(route, url, body, cancel)
            attempt += 1
            if outcome is None:
                raise _cancelled(operation, attempt)

            if isinstance(outcome, RawResponse) and outcome.ok:
                try:
                    return unwrap_envelope(outcome)
                except ApiError as exc:
                    error = exc
            else:
                error = classify(outcome)
            error.attempts = attempt

            if not error.retryable or not idempotent:
                raise error

            elapsed = self._clock() - started
            delay = effective.next_delay(
                attempt - 1,
                elapsed=elapsed,
                rate_limited=error.kind is ErrorKind.RATE_LIMITED,
            )
            if delay is None:
                raise ApiError(
                    kind=ErrorKind.TIMED_OUT,
                    message=f"{operation} gave up after {attempt} attempt(s): {error.message}",
                    code=error.code,
                    http_status=error.http_status,
                    attempts=attempt,
                    last_error=error,
                )
            delay = _honor_retry_after(delay, error.retry_after, effective, elapsed)

            logger.warning(
                "%s failed (%s), retrying in %.2fs [attempt %d/%d]",
                operation,
                error,
                delay,
                attempt,
                effective.max_attempts,
            )
            if not await pause(delay, sleep=self._sleep, cancel=cancel):
                raise _cancelled(operation, attempt)

    async def _execute(
        self,
        route: Route,
        url: str,
        body: bytes | None,
        cancel: asyncio.Event | None,
    ) -> RawResponse | TransportFailure | None:
        """One transport call, abandoned if ``cancel`` fires first.

        Returns None when cancelled before the response arrived. A
        response that is already complete is kept even if the event
        fired at the same time.
        """
        request = self._transport.execute(
            route.method, url, body=body, timeout=self._config.timeout
        )
        if cancel is None:
            return await request

        task = asyncio.ensure_future(request)
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (task, waiter):
                if not pending.done():
                    pending.cancel()
        if task.cancelled() or not task.done():
            logger.debug("%s %s abandoned on cancel", route.method, url)
            return None
        return task.result()

    def _url(self, route: Route) -> str:
        url = f"{self._config.base_url}{route.path}"
        if route.query:
            url = f"{url}?{urlencode(route.query)}"
        return url


# =====================================================================
# Helpers
# =====================================================================


def _require(name: str, value: str) -> None:
    if not value:
        raise ValueError(f"{name} must be non-empty")


def _cancelled(operation: Operation | str, attempts: int) -> ApiError:
    return ApiError(
        kind=ErrorKind.CANCELLED,
        message=f"{operation} cancelled",
        attempts=attempts,
    )


def _honor_retry_after(
    delay: float,
    retry_after: float | None,
    policy: RetryPolicy,
    elapsed: float,
) -> float:
    if retry_after is None or retry_after <= delay:
        return delay
    if policy.deadline is not None:
        return max(delay, min(retry_after, policy.deadline - elapsed))
    return retry_after


def _encode_json(obj: Any) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode("utf-8")


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _parse_network_config(config: Mapping[str, Any], status: Mapping[str, Any]) -> NetworkConfig:
    return NetworkConfig(
        chain_id=config["erd_chain_id"],
        min_gas_price=config["erd_min_gas_price"],
        min_gas_limit=config["erd_min_gas_limit"],
        gas_per_data_byte=config["erd_gas_per_data_byte"],
        min_transaction_version=config["erd_min_transaction_version"],
        round_duration=config["erd_round_duration"],
        num_shards=config["erd_num_shards_without_meta"],
        denomination=config["erd_denomination"],
        current_epoch=status["erd_epoch_number"],
        current_round=status["erd_current_round"],
        raw=dict(config),
    )


def _parse_network_economics(metrics: Mapping[str, Any]) -> NetworkEconomics:
    def optional(key: str) -> str | None:
        value = metrics.get(key)
        return None if value is None else str(value)

    return NetworkEconomics(
        total_supply=metrics["erd_total_supply"],
        epoch=metrics["erd_epoch_for_economics_data"],
        total_fees=optional("erd_total_fees"),
        dev_rewards=optional("erd_dev_rewards"),
        total_base_staked_value=optional("erd_total_base_staked_value"),
        total_top_up_value=optional("erd_total_top_up_value"),
        inflation=optional("erd_inflation"),
        raw=dict(metrics),
    )


def _parse_account(account: Mapping[str, Any], requested_address: str) -> AccountInfo:
    """Decode an account payload.

    ``balance`` is copied as-is; it is never routed through int() so
    the string the caller sees is the string the node sent.
    """
    return AccountInfo(
        address=account.get("address") or requested_address,
        balance=account["balance"],
        nonce=account["nonce"],
        username=account.get("username") or None,
        code=account.get("code") or None,
        code_hash=account.get("codeHash") or None,
        owner_address=account.get("ownerAddress") or None,
        raw=dict(account),
    )


def _parse_transaction(
    tx: Mapping[str, Any],
    requested_hash: str,
    status_table: StatusTable,
) -> TransactionOnNetwork:
    raw_status: str = tx["status"]
    return TransactionOnNetwork(
        hash=tx.get("hash") or requested_hash,
        sender=tx["sender"],
        receiver=tx["receiver"],
        nonce=tx["nonce"],
        value=tx["value"],
        status=status_table.classify(raw_status),
        raw_status=raw_status,
        data=tx.get("data") or None,
        gas_limit=tx.get("gasLimit"),
        gas_price=tx.get("gasPrice"),
        block_nonce=tx.get("blockNonce"),
        block_hash=tx.get("blockHash") or None,
        round=tx.get("round"),
        epoch=tx.get("epoch"),
        logs=tx.get("logs"),
        smart_contract_results=tuple(tx.get("smartContractResults") or ()),
        raw=dict(tx),
    )


def _parse_token(token: Mapping[str, Any]) -> TokenMetadata:
    supply = token.get("supply")
    identifier: str = token["identifier"]
    return TokenMetadata(
        identifier=identifier,
        name=token["name"],
        ticker=token.get("ticker") or identifier.split("-", 1)[0],
        owner=token.get("owner") or None,
        decimals=token["decimals"],
        supply=None if supply is None else str(supply),
        raw=dict(token),
    )


def _parse_hyper_block(block: Mapping[str, Any]) -> HyperBlock:
    return HyperBlock(
        nonce=block["nonce"],
        round=block["round"],
        epoch=block["epoch"],
        hash=block["hash"],
        prev_block_hash=block["prevBlockHash"],
        num_txs=block["numTxs"],
        timestamp=block["timestamp"],
        shard_blocks=tuple(block.get("shardBlocks") or ()),
        transactions=tuple(block.get("transactions") or ()),
        raw=dict(block),
    )
