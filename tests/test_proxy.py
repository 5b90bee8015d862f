"""
Tests for ProxyClient — canned gateway responses, no network.

Uses a FakeTransport that replays a scripted sequence of outcomes and
records every request, plus a fake clock whose sleep advances time
instead of waiting.

Test plan:
- Reads: account (enveloped and bare payload), network config (two
  calls), economics, storage key, tokens, transaction (with results),
  status on v1/v2 paths, token, VM query, cost, hyperblocks
- Retry: transient errors retried on the policy schedule then TIMED_OUT,
  recovery after a transient error, rate-limit stretch and Retry-After,
  deadline clips the schedule, FATAL and DECODE never retried
- Broadcast: send is a single POST of the exact payload, never retried
  even on transient errors; batch send maps hashes by index
- Cancellation: before the first call, while a request hangs (read and
  send), and during a backoff wait
- Simulator routes rejected on a production client before any I/O
"""

import asyncio
import json
from typing import Any

import pytest

from dharitri_sdk_http.config import ProxyConfig
from dharitri_sdk_http.endpoints import Operation
from dharitri_sdk_http.errors import ApiError, ErrorKind
from dharitri_sdk_http.models import TransactionRequest, TransactionStatus, VmQuery
from dharitri_sdk_http.proxy import ProxyClient
from dharitri_sdk_http.retry import RetryPolicy
from dharitri_sdk_http.transport import FailureCause, RawResponse, TransportFailure

BASE = "https://gateway.test"
ALICE = "erd1qyu5wthldzr8wx5c9ucg8kjagg0jfs53s8nr3zpz3hypefsdd8ssycr6th"
BOB = "erd1spyavw0956vq68xj8y4tenjpq2wd5a9p2c6j8gsz7ztyrnpxrruqzu66jx"
TX_HASH = "a" * 64

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeTransport:
    """Replays scripted outcomes in order; the last one repeats."""

    def __init__(self, *outcomes: RawResponse | TransportFailure) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, str, bytes | None]] = []

    async def execute(
        self,
        method: str,
        url: str,
        *,
        body: bytes | None = None,
        timeout: float,
    ) -> RawResponse | TransportFailure:
        self.calls.append((method, url, body))
        if len(self._outcomes) > 1:
            return self._outcomes.pop(0)
        return self._outcomes[0]

    @property
    def urls(self) -> list[str]:
        return [url for _, url, _ in self.calls]


class HangingTransport:
    """Never answers until cancelled; records whether it was abandoned."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, bytes | None]] = []
        self.abandoned = False

    async def execute(
        self,
        method: str,
        url: str,
        *,
        body: bytes | None = None,
        timeout: float,
    ) -> RawResponse | TransportFailure:
        self.calls.append((method, url, body))
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.abandoned = True
            raise
        return RawResponse(200, b"{}")


class FakeClock:
    """Monotonic clock that only moves when sleep() is awaited."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self.on_sleep: asyncio.Event | None = None

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        if self.on_sleep is not None:
            self.on_sleep.set()


def ok(data: dict[str, Any]) -> RawResponse:
    body = {"data": data, "error": "", "code": "successful"}
    return RawResponse(200, json.dumps(body).encode())


def node_error(status: int, error: str, code: str = "bad_request", **headers: str) -> RawResponse:
    body = {"data": None, "error": error, "code": code}
    return RawResponse(status, json.dumps(body).encode(), headers=headers)


def unavailable() -> RawResponse:
    return RawResponse(503, b"service unavailable")


def _client(
    transport: FakeTransport,
    clock: FakeClock | None = None,
    **config: Any,
) -> ProxyClient:
    clock = clock or FakeClock()
    return ProxyClient(
        ProxyConfig(base_url=BASE, **config),
        transport,
        sleep=clock.sleep,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Canned payloads
# ---------------------------------------------------------------------------

NETWORK_CONFIG = {
    "config": {
        "erd_chain_id": "D",
        "erd_min_gas_price": 1000000000,
        "erd_min_gas_limit": 50000,
        "erd_gas_per_data_byte": 1500,
        "erd_min_transaction_version": 1,
        "erd_round_duration": 6000,
        "erd_num_shards_without_meta": 3,
        "erd_denomination": 18,
        "erd_adaptivity": "false",
    }
}

METACHAIN_STATUS = {
    "status": {"erd_current_round": 1200, "erd_epoch_number": 42, "erd_nonce": 1190}
}

TRANSACTION = {
    "transaction": {
        "type": "normal",
        "hash": TX_HASH,
        "nonce": 7,
        "value": "1000000000000000000",
        "receiver": BOB,
        "sender": ALICE,
        "gasPrice": 1000000000,
        "gasLimit": 50000,
        "data": "aGVsbG8=",
        "status": "success",
        "blockNonce": 1188,
        "blockHash": "b" * 64,
        "round": 1199,
        "epoch": 42,
        "smartContractResults": [{"hash": "c" * 64, "value": "0"}],
        "logs": {"address": BOB, "events": []},
    }
}

HYPERBLOCK = {
    "hyperblock": {
        "nonce": 1188,
        "round": 1199,
        "epoch": 42,
        "hash": "b" * 64,
        "prevBlockHash": "d" * 64,
        "numTxs": 1,
        "timestamp": 1700000000,
        "shardBlocks": [{"shard": 0, "nonce": 3000}],
        "transactions": [TRANSACTION["transaction"]],
    }
}


def _request() -> TransactionRequest:
    return TransactionRequest.from_mapping(
        {"nonce": 7, "value": "1", "receiver": BOB, "sender": ALICE, "signature": "ab" * 64}
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestAccounts:
    @pytest.mark.asyncio
    async def test_get_account_bare_payload(self) -> None:
        transport = FakeTransport(
            RawResponse(200, b'{"account":{"balance":"100","nonce":5}}')
        )
        account = await _client(transport).get_account(ALICE)

        assert account.address == ALICE
        assert account.balance == "100"
        assert account.nonce == 5
        assert transport.calls == [("GET", f"{BASE}/address/{ALICE}", None)]

    @pytest.mark.asyncio
    async def test_get_account_envelope(self) -> None:
        big = "123456789012345678901234567890"
        transport = FakeTransport(
            ok({"account": {"address": ALICE, "balance": big, "nonce": 0, "username": ""}})
        )
        account = await _client(transport).get_account(ALICE)

        assert account.balance == big
        assert account.username is None
        assert account.raw["username"] == ""

    @pytest.mark.asyncio
    async def test_get_account_empty_address(self) -> None:
        transport = FakeTransport(ok({}))
        with pytest.raises(ValueError, match="address"):
            await _client(transport).get_account("")
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_malformed_account_is_decode(self) -> None:
        transport = FakeTransport(ok({"account": {"balance": "100"}}))
        with pytest.raises(ApiError) as exc_info:
            await _client(transport).get_account(ALICE)
        assert exc_info.value.kind is ErrorKind.DECODE
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_storage_key(self) -> None:
        transport = FakeTransport(ok({"value": "0a"}))
        value = await _client(transport).get_account_storage_key(ALICE, "6b6579")

        assert value == "0a"
        assert transport.urls == [f"{BASE}/address/{ALICE}/key/6b6579"]

    @pytest.mark.asyncio
    async def test_account_tokens(self) -> None:
        tokens = {"WREWA-abc123": {"tokenIdentifier": "WREWA-abc123", "balance": "5"}}
        transport = FakeTransport(ok({"dcdts": tokens}))
        assert await _client(transport).get_account_tokens(ALICE) == tokens
        assert transport.urls == [f"{BASE}/address/{ALICE}/dcdt"]

    @pytest.mark.asyncio
    async def test_default_transaction_arguments(self) -> None:
        transport = FakeTransport(
            ok(NETWORK_CONFIG),
            ok(METACHAIN_STATUS),
            ok({"account": {"address": ALICE, "balance": "1", "nonce": 11}}),
        )
        args = await _client(transport).get_default_transaction_arguments(ALICE)

        assert args == {
            "nonce": 11,
            "value": "0",
            "sender": ALICE,
            "receiver": ALICE,
            "gasPrice": 1000000000,
            "gasLimit": 50000,
            "chainID": "D",
            "version": 1,
        }


class TestNetwork:
    @pytest.mark.asyncio
    async def test_network_config_two_calls(self) -> None:
        transport = FakeTransport(ok(NETWORK_CONFIG), ok(METACHAIN_STATUS))
        config = await _client(transport).get_network_config()

        assert config.chain_id == "D"
        assert config.min_gas_price == 1000000000
        assert config.min_gas_limit == 50000
        assert config.gas_per_data_byte == 1500
        assert config.num_shards == 3
        assert config.denomination == 18
        assert config.current_epoch == 42
        assert config.current_round == 1200
        assert config.raw["erd_adaptivity"] == "false"
        assert transport.urls == [
            f"{BASE}/network/config",
            f"{BASE}/network/status/4294967295",
        ]

    @pytest.mark.asyncio
    async def test_network_config_fails_if_status_fails(self) -> None:
        transport = FakeTransport(ok(NETWORK_CONFIG), node_error(400, "bad shard"))
        with pytest.raises(ApiError) as exc_info:
            await _client(transport).get_network_config()
        assert exc_info.value.kind is ErrorKind.FATAL

    @pytest.mark.asyncio
    async def test_network_economics(self) -> None:
        transport = FakeTransport(
            ok(
                {
                    "metrics": {
                        "erd_total_supply": "20000000000000000000000000",
                        "erd_epoch_for_economics_data": 41,
                        "erd_total_fees": "12345",
                        "erd_inflation": "0",
                    }
                }
            )
        )
        economics = await _client(transport).get_network_economics()

        assert economics.total_supply == "20000000000000000000000000"
        assert economics.epoch == 41
        assert economics.total_fees == "12345"
        assert economics.inflation == "0"
        assert economics.dev_rewards is None

    @pytest.mark.asyncio
    async def test_latest_hyper_block_nonce(self) -> None:
        transport = FakeTransport(ok(METACHAIN_STATUS))
        assert await _client(transport).get_latest_hyper_block_nonce() == 1190

    @pytest.mark.asyncio
    async def test_latest_hyper_block_nonce_missing(self) -> None:
        transport = FakeTransport(ok({"status": {"erd_current_round": 1, "erd_epoch_number": 0}}))
        with pytest.raises(ApiError) as exc_info:
            await _client(transport).get_latest_hyper_block_nonce()
        assert exc_info.value.kind is ErrorKind.DECODE


class TestTransactionsRead:
    @pytest.mark.asyncio
    async def test_get_transaction(self) -> None:
        transport = FakeTransport(ok(TRANSACTION))
        tx = await _client(transport).get_transaction(TX_HASH)

        assert tx.hash == TX_HASH
        assert tx.status is TransactionStatus.SUCCESS
        assert tx.raw_status == "success"
        assert tx.value == "1000000000000000000"
        assert tx.block_nonce == 1188
        assert tx.smart_contract_results == ({"hash": "c" * 64, "value": "0"},)
        assert tx.logs == {"address": BOB, "events": []}
        assert transport.urls == [f"{BASE}/transaction/{TX_HASH}"]

    @pytest.mark.asyncio
    async def test_get_transaction_with_results(self) -> None:
        transport = FakeTransport(ok(TRANSACTION))
        await _client(transport).get_transaction(TX_HASH, with_results=True)
        assert transport.urls == [f"{BASE}/transaction/{TX_HASH}?withResults=true"]

    @pytest.mark.asyncio
    async def test_unknown_status_is_pending(self) -> None:
        payload = {"transaction": {**TRANSACTION["transaction"], "status": "brand-new-state"}}
        transport = FakeTransport(ok(payload))
        tx = await _client(transport).get_transaction(TX_HASH)

        assert tx.status is TransactionStatus.PENDING
        assert tx.raw_status == "brand-new-state"
        assert not tx.is_terminal

    @pytest.mark.asyncio
    async def test_status_v1_path(self) -> None:
        transport = FakeTransport(ok({"status": "fail"}))
        status = await _client(transport).get_transaction_status(TX_HASH)

        assert status is TransactionStatus.FAILED
        assert transport.urls == [f"{BASE}/transaction/{TX_HASH}/status"]

    @pytest.mark.asyncio
    async def test_status_v2_path(self) -> None:
        transport = FakeTransport(ok({"status": "success"}))
        await _client(transport, api_version="v2").get_transaction_status(TX_HASH)
        assert transport.urls == [f"{BASE}/transaction/{TX_HASH}/process-status"]

    @pytest.mark.asyncio
    async def test_transaction_cost(self) -> None:
        transport = FakeTransport(ok({"txGasUnits": 57500, "returnMessage": ""}))
        request = _request()
        cost = await _client(transport).request_transaction_cost(request)

        assert cost.gas_units == 57500
        assert transport.calls == [("POST", f"{BASE}/transaction/cost", request.payload)]

    @pytest.mark.asyncio
    async def test_transaction_cost_is_retried(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(unavailable(), ok({"txGasUnits": 50000}))
        cost = await _client(transport, clock).request_transaction_cost(_request())

        assert cost.gas_units == 50000
        assert len(transport.calls) == 2


class TestTokensVmBlocks:
    @pytest.mark.asyncio
    async def test_token_wrapped(self) -> None:
        transport = FakeTransport(
            ok(
                {
                    "tokenData": {
                        "identifier": "WREWA-abc123",
                        "name": "WrappedRewa",
                        "ticker": "WREWA",
                        "owner": ALICE,
                        "decimals": 18,
                        "supply": "1000",
                    }
                }
            )
        )
        token = await _client(transport).get_token("WREWA-abc123")

        assert token.name == "WrappedRewa"
        assert token.decimals == 18
        assert token.supply == "1000"
        assert transport.urls == [f"{BASE}/network/dcdt/token/WREWA-abc123"]

    @pytest.mark.asyncio
    async def test_token_v2_bare_without_ticker(self) -> None:
        transport = FakeTransport(ok({"identifier": "USDC-1a2b3c", "name": "USD Coin", "decimals": 6}))
        token = await _client(transport, api_version="v2").get_token("USDC-1a2b3c")

        assert token.ticker == "USDC"
        assert token.owner is None
        assert token.supply is None
        assert transport.urls == [f"{BASE}/tokens/USDC-1a2b3c"]

    @pytest.mark.asyncio
    async def test_vm_query(self) -> None:
        transport = FakeTransport(
            ok({"data": {"returnData": ["Kg=="], "returnCode": "ok", "returnMessage": ""}})
        )
        result = await _client(transport).execute_vm_query(
            VmQuery(BOB, "getSum", ("01",), caller=ALICE)
        )

        assert result.return_data == ("Kg==",)
        assert result.return_code == "ok"
        method, url, body = transport.calls[0]
        assert (method, url) == ("POST", f"{BASE}/vm-values/query")
        assert json.loads(body or b"") == {
            "scAddress": BOB,
            "funcName": "getSum",
            "args": ["01"],
            "caller": ALICE,
        }

    @pytest.mark.asyncio
    async def test_hyper_block_by_nonce(self) -> None:
        transport = FakeTransport(ok(HYPERBLOCK))
        block = await _client(transport).get_hyper_block_by_nonce(1188)

        assert block.hash == "b" * 64
        assert block.prev_block_hash == "d" * 64
        assert block.num_txs == 1
        assert len(block.transactions) == 1
        assert transport.urls == [f"{BASE}/hyperblock/by-nonce/1188"]

    @pytest.mark.asyncio
    async def test_hyper_block_by_hash(self) -> None:
        transport = FakeTransport(ok(HYPERBLOCK))
        block = await _client(transport).get_hyper_block_by_hash("b" * 64)

        assert block.nonce == 1188
        assert transport.urls == [f"{BASE}/hyperblock/by-hash/{'b' * 64}"]

    @pytest.mark.asyncio
    async def test_hyper_block_negative_nonce(self) -> None:
        with pytest.raises(ValueError):
            await _client(FakeTransport(ok(HYPERBLOCK))).get_hyper_block_by_nonce(-1)


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


class TestRetry:
    @pytest.mark.asyncio
    async def test_all_transient_times_out_after_policy(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(unavailable())
        client = _client(transport, clock)
        policy = RetryPolicy(max_attempts=3, base_delay=0.1, multiplier=2.0)

        with pytest.raises(ApiError) as exc_info:
            await client.get_account(ALICE, policy=policy)

        error = exc_info.value
        assert error.kind is ErrorKind.TIMED_OUT
        assert error.attempts == 3
        assert error.last_error is not None
        assert error.last_error.kind is ErrorKind.TRANSIENT
        assert len(transport.calls) == 3
        assert clock.sleeps == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_config_policy_is_default(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(TransportFailure(FailureCause.CONNECTION, "reset"))
        client = _client(
            transport, clock, retry=RetryPolicy(max_attempts=2, base_delay=0.3)
        )

        with pytest.raises(ApiError) as exc_info:
            await client.get_account(ALICE)

        assert exc_info.value.kind is ErrorKind.TIMED_OUT
        assert len(transport.calls) == 2
        assert clock.sleeps == [0.3]

    @pytest.mark.asyncio
    async def test_recovers_after_transient(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(
            TransportFailure(FailureCause.TIMEOUT, "read timeout"),
            ok({"account": {"balance": "1", "nonce": 1}}),
        )
        account = await _client(transport, clock).get_account(ALICE)

        assert account.nonce == 1
        assert len(transport.calls) == 2
        assert clock.sleeps == [0.5]

    @pytest.mark.asyncio
    async def test_rate_limited_stretches_wait(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(RawResponse(429), ok({"account": {"balance": "1", "nonce": 1}}))
        policy = RetryPolicy(base_delay=0.1, rate_limit_factor=2.0)
        await _client(transport, clock).get_account(ALICE, policy=policy)

        assert clock.sleeps == pytest.approx([0.2])

    @pytest.mark.asyncio
    async def test_retry_after_honored(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(
            RawResponse(429, headers={"retry-after": "1.5"}),
            ok({"account": {"balance": "1", "nonce": 1}}),
        )
        policy = RetryPolicy(base_delay=0.1)
        await _client(transport, clock).get_account(ALICE, policy=policy)

        assert clock.sleeps == [1.5]

    @pytest.mark.asyncio
    async def test_retry_after_capped_by_deadline(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(
            RawResponse(429, headers={"retry-after": "60"}),
            ok({"account": {"balance": "1", "nonce": 1}}),
        )
        policy = RetryPolicy(base_delay=0.1, deadline=5.0)
        await _client(transport, clock).get_account(ALICE, policy=policy)

        assert clock.sleeps == [5.0]

    @pytest.mark.asyncio
    async def test_deadline_clips_schedule(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(unavailable())
        policy = RetryPolicy(max_attempts=10, base_delay=1.0, multiplier=1.0, deadline=2.5)

        with pytest.raises(ApiError) as exc_info:
            await _client(transport, clock).get_account(ALICE, policy=policy)

        assert exc_info.value.kind is ErrorKind.TIMED_OUT
        assert clock.sleeps == pytest.approx([1.0, 1.0, 0.5])
        assert len(transport.calls) == 4

    @pytest.mark.asyncio
    async def test_fatal_not_retried(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(RawResponse(404, b"404 page not found"))

        with pytest.raises(ApiError) as exc_info:
            await _client(transport, clock).get_transaction(TX_HASH)

        assert exc_info.value.kind is ErrorKind.FATAL
        assert exc_info.value.attempts == 1
        assert len(transport.calls) == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_decode_not_retried(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(RawResponse(200, b"<html>maintenance</html>"))

        with pytest.raises(ApiError) as exc_info:
            await _client(transport, clock).get_account(ALICE)

        assert exc_info.value.kind is ErrorKind.DECODE
        assert len(transport.calls) == 1
        assert clock.sleeps == []


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_send_transaction(self) -> None:
        transport = FakeTransport(ok({"txHash": TX_HASH}))
        request = _request()
        tx_hash = await _client(transport).send_transaction(request)

        assert tx_hash == TX_HASH
        assert transport.calls == [("POST", f"{BASE}/transaction/send", request.payload)]

    @pytest.mark.asyncio
    async def test_rejected_transaction_is_fatal_single_call(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(node_error(400, "insufficient funds", "invalid_transaction"))

        with pytest.raises(ApiError) as exc_info:
            await _client(transport, clock).send_transaction(_request())

        assert exc_info.value.kind is ErrorKind.FATAL
        assert exc_info.value.code == "invalid_transaction"
        assert len(transport.calls) == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_transient_send_not_retried(self) -> None:
        clock = FakeClock()
        transport = FakeTransport(unavailable(), ok({"txHash": TX_HASH}))

        with pytest.raises(ApiError) as exc_info:
            await _client(transport, clock).send_transaction(_request())

        assert exc_info.value.kind is ErrorKind.TRANSIENT
        assert len(transport.calls) == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_send_transactions_maps_by_index(self) -> None:
        transport = FakeTransport(
            ok({"numOfSentTxs": 2, "txsHashes": {"0": "h0", "2": "h2"}})
        )
        requests = [_request(), _request(), _request()]
        hashes = await _client(transport).send_transactions(requests)

        assert hashes == ["h0", None, "h2"]
        method, url, body = transport.calls[0]
        assert (method, url) == ("POST", f"{BASE}/transaction/send-multiple")
        assert len(json.loads(body or b"")) == 3

    @pytest.mark.asyncio
    async def test_send_transactions_empty(self) -> None:
        with pytest.raises(ValueError):
            await _client(FakeTransport(ok({}))).send_transactions([])


# ---------------------------------------------------------------------------
# Cancellation and gating
# ---------------------------------------------------------------------------


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_first_call(self) -> None:
        transport = FakeTransport(ok({"account": {"balance": "1", "nonce": 1}}))
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(ApiError) as exc_info:
            await _client(transport).get_account(ALICE, cancel=cancel)

        assert exc_info.value.kind is ErrorKind.CANCELLED
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_during_backoff(self) -> None:
        clock = FakeClock()
        clock.on_sleep = asyncio.Event()
        transport = FakeTransport(unavailable())

        with pytest.raises(ApiError) as exc_info:
            await _client(transport, clock).get_account(ALICE, cancel=clock.on_sleep)

        assert exc_info.value.kind is ErrorKind.CANCELLED
        assert exc_info.value.attempts == 1
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_cancelled_while_request_hangs(self) -> None:
        transport = HangingTransport()
        client = ProxyClient(ProxyConfig(base_url=BASE, timeout=60.0), transport)
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, cancel.set)

        with pytest.raises(ApiError) as exc_info:
            await asyncio.wait_for(
                client.get_account(ALICE, policy=RetryPolicy.single(), cancel=cancel),
                timeout=5.0,
            )

        assert exc_info.value.kind is ErrorKind.CANCELLED
        assert exc_info.value.attempts == 1
        assert len(transport.calls) == 1
        await asyncio.sleep(0.01)
        assert transport.abandoned

    @pytest.mark.asyncio
    async def test_send_cancelled_while_request_hangs(self) -> None:
        transport = HangingTransport()
        client = ProxyClient(ProxyConfig(base_url=BASE, timeout=60.0), transport)
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, cancel.set)

        with pytest.raises(ApiError) as exc_info:
            await asyncio.wait_for(client.send_transaction(_request(), cancel=cancel), timeout=5.0)

        assert exc_info.value.kind is ErrorKind.CANCELLED
        assert len(transport.calls) == 1


class TestGating:
    @pytest.mark.asyncio
    async def test_simulator_route_rejected_on_production_client(self) -> None:
        transport = FakeTransport(ok({}))

        with pytest.raises(ApiError) as exc_info:
            await _client(transport).call(
                Operation.SIMULATOR_GENERATE_BLOCKS, params={"count": 1}, idempotent=False
            )

        assert exc_info.value.kind is ErrorKind.FATAL
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_shared_transport_not_closed(self) -> None:
        transport = FakeTransport(ok({"account": {"balance": "1", "nonce": 1}}))
        async with _client(transport) as client:
            await client.get_account(ALICE)
        assert len(transport.calls) == 1
