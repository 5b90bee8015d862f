"""
Chain simulator adapter.

Wraps a ProxyClient that targets a chain simulator and adds the
simulator's control endpoints: block generation, state seeding and the
pre-funded wallets. Because blocks are produced on demand, a transaction
can be sent and confirmed without any wall-clock polling.

Activation is explicit: the wrapped client must be configured with
``simulator=True``. A production client builds a catalog that rejects
simulator routes, and this adapter refuses to wrap it, so block
generation can never be sent to a real network.

Block generation is a state change on the simulator, so it gets exactly
one attempt, like a broadcast.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from dharitri_sdk_http import schemas
from dharitri_sdk_http.config import ProxyConfig
from dharitri_sdk_http.endpoints import Operation
from dharitri_sdk_http.models import (
    AccountInfo,
    NetworkConfig,
    TransactionOnNetwork,
    TransactionRequest,
)
from dharitri_sdk_http.proxy import ProxyClient
from dharitri_sdk_http.retry import RetryPolicy
from dharitri_sdk_http.transport import HttpTransport

logger = logging.getLogger(__name__)


class SimulatorProxy:
    """Simulator capabilities layered over a ProxyClient.

    Args:
        proxy: Client configured with ``simulator=True``.

    Raises:
        ValueError: If the client is not configured for a simulator.
    """

    def __init__(self, proxy: ProxyClient) -> None:
        if not proxy.config.simulator:
            raise ValueError(
                "SimulatorProxy requires a client configured with simulator=True; "
                f"{proxy.config.base_url} is configured as a real network"
            )
        self._proxy = proxy

    @classmethod
    def from_config(
        cls,
        config: ProxyConfig,
        transport: HttpTransport | None = None,
    ) -> SimulatorProxy:
        return cls(ProxyClient(config, transport))

    @property
    def proxy(self) -> ProxyClient:
        """The wrapped client, for every read operation not mirrored here."""
        return self._proxy

    async def aclose(self) -> None:
        await self._proxy.aclose()

    async def __aenter__(self) -> SimulatorProxy:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # -----------------------------------------------------------------
    # Delegated operations
    # -----------------------------------------------------------------

    async def get_network_config(
        self,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> NetworkConfig:
        return await self._proxy.get_network_config(policy=policy, cancel=cancel)

    async def get_account(
        self,
        address: str,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AccountInfo:
        return await self._proxy.get_account(address, policy=policy, cancel=cancel)

    async def send_transaction(
        self,
        request: TransactionRequest,
        *,
        cancel: asyncio.Event | None = None,
    ) -> str:
        return await self._proxy.send_transaction(request, cancel=cancel)

    async def get_transaction(
        self,
        tx_hash: str,
        with_results: bool = False,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> TransactionOnNetwork:
        return await self._proxy.get_transaction(
            tx_hash, with_results, policy=policy, cancel=cancel
        )

    # -----------------------------------------------------------------
    # Simulator control
    # -----------------------------------------------------------------

    async def generate_blocks(
        self, count: int = 1, *, cancel: asyncio.Event | None = None
    ) -> None:
        """Produce ``count`` blocks immediately."""
        if count < 1:
            raise ValueError(f"count must be >= 1, got: {count}")
        await self._proxy.call(
            Operation.SIMULATOR_GENERATE_BLOCKS,
            params={"count": count},
            idempotent=False,
            cancel=cancel,
        )
        logger.debug("generated %d block(s)", count)

    async def generate_blocks_until_transaction_processed(
        self, tx_hash: str, *, cancel: asyncio.Event | None = None
    ) -> None:
        if not tx_hash:
            raise ValueError("tx_hash must be non-empty")
        await self._proxy.call(
            Operation.SIMULATOR_GENERATE_UNTIL_TX,
            params={"hash": tx_hash},
            idempotent=False,
            cancel=cancel,
        )

    async def generate_blocks_until_epoch_reached(
        self, epoch: int, *, cancel: asyncio.Event | None = None
    ) -> None:
        if epoch < 0:
            raise ValueError(f"epoch must be >= 0, got: {epoch}")
        await self._proxy.call(
            Operation.SIMULATOR_GENERATE_UNTIL_EPOCH,
            params={"epoch": epoch},
            idempotent=False,
            cancel=cancel,
        )

    async def set_state(
        self,
        accounts: Sequence[Mapping[str, Any]],
        *,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Overwrite account states (balances, nonces, storage, code)."""
        if not accounts:
            raise ValueError("accounts must be non-empty")
        body = json.dumps([dict(a) for a in accounts], separators=(",", ":")).encode("utf-8")
        await self._proxy.call(
            Operation.SIMULATOR_SET_STATE, body=body, idempotent=False, cancel=cancel
        )

    async def get_initial_wallets(
        self,
        *,
        policy: RetryPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """Pre-funded wallets the simulator started with (raw)."""
        data = await self._proxy.call(
            Operation.SIMULATOR_INITIAL_WALLETS, policy=policy, cancel=cancel
        )
        schemas.validate(data, schemas.INITIAL_WALLETS, "initial wallets")
        return data

    async def send_and_confirm(
        self,
        request: TransactionRequest,
        *,
        blocks: int = 1,
        with_results: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> TransactionOnNetwork:
        """Send, produce ``blocks`` blocks, then read the transaction once.

        No waiting on the wall clock: block production is driven here.
        The returned transaction may still be pending if ``blocks`` was
        not enough (cross-shard transfers need more than one).
        """
        tx_hash = await self._proxy.send_transaction(request, cancel=cancel)
        await self.generate_blocks(blocks, cancel=cancel)
        tx = await self._proxy.get_transaction(
            tx_hash, with_results, policy=RetryPolicy.single(), cancel=cancel
        )
        if not tx.is_terminal:
            logger.warning(
                "transaction %s still %s after %d generated block(s)",
                tx_hash,
                tx.raw_status,
                blocks,
            )
        return tx
