"""
JSON-Schema shapes of gateway ``data`` payloads.

Schemas only pin what the client reads: required fields and their types.
``additionalProperties`` is left open so new node fields pass through.
A payload that fails validation becomes ``ApiError(DECODE)``; missing
fields are never replaced by defaults.
"""

from __future__ import annotations

from typing import Any

import jsonschema  # type: ignore[import-untyped]

from dharitri_sdk_http.errors import ApiError, ErrorKind

_UINT = {"type": "integer", "minimum": 0}
_DECIMAL_STRING = {"type": "string", "pattern": "^[0-9]+$"}
_NUMBER_OR_STRING = {"type": ["integer", "string"]}

NETWORK_CONFIG = {
    "type": "object",
    "required": ["config"],
    "properties": {
        "config": {
            "type": "object",
            "required": [
                "erd_chain_id",
                "erd_min_gas_price",
                "erd_min_gas_limit",
                "erd_gas_per_data_byte",
                "erd_min_transaction_version",
                "erd_round_duration",
                "erd_num_shards_without_meta",
                "erd_denomination",
            ],
            "properties": {
                "erd_chain_id": {"type": "string", "minLength": 1},
                "erd_min_gas_price": _UINT,
                "erd_min_gas_limit": _UINT,
                "erd_gas_per_data_byte": _UINT,
                "erd_min_transaction_version": _UINT,
                "erd_round_duration": _UINT,
                "erd_num_shards_without_meta": _UINT,
                "erd_denomination": _UINT,
            },
        },
    },
}

NETWORK_STATUS = {
    "type": "object",
    "required": ["status"],
    "properties": {
        "status": {
            "type": "object",
            "required": ["erd_current_round", "erd_epoch_number"],
            "properties": {
                "erd_current_round": _UINT,
                "erd_epoch_number": _UINT,
                "erd_nonce": _UINT,
            },
        },
    },
}

NETWORK_ECONOMICS = {
    "type": "object",
    "required": ["metrics"],
    "properties": {
        "metrics": {
            "type": "object",
            "required": ["erd_total_supply", "erd_epoch_for_economics_data"],
            "properties": {
                "erd_total_supply": _DECIMAL_STRING,
                "erd_epoch_for_economics_data": _UINT,
            },
        },
    },
}

ACCOUNT = {
    "type": "object",
    "required": ["account"],
    "properties": {
        "account": {
            "type": "object",
            "required": ["balance", "nonce"],
            "properties": {
                "address": {"type": "string"},
                "balance": _DECIMAL_STRING,
                "nonce": _UINT,
                "username": {"type": ["string", "null"]},
                "code": {"type": ["string", "null"]},
                "codeHash": {"type": ["string", "null"]},
                "ownerAddress": {"type": ["string", "null"]},
            },
        },
    },
}

STORAGE_VALUE = {
    "type": "object",
    "required": ["value"],
    "properties": {"value": {"type": "string"}},
}

ACCOUNT_TOKENS = {
    "type": "object",
    "required": ["dcdts"],
    "properties": {"dcdts": {"type": "object"}},
}

TX_HASH = {
    "type": "object",
    "required": ["txHash"],
    "properties": {"txHash": {"type": "string", "minLength": 1}},
}

TX_HASHES = {
    "type": "object",
    "required": ["numOfSentTxs", "txsHashes"],
    "properties": {
        "numOfSentTxs": _UINT,
        "txsHashes": {"type": "object", "additionalProperties": {"type": "string"}},
    },
}

TX_COST = {
    "type": "object",
    "required": ["txGasUnits"],
    "properties": {
        "txGasUnits": _UINT,
        "returnMessage": {"type": "string"},
    },
}

TRANSACTION = {
    "type": "object",
    "required": ["transaction"],
    "properties": {
        "transaction": {
            "type": "object",
            "required": ["sender", "receiver", "nonce", "value", "status"],
            "properties": {
                "hash": {"type": "string"},
                "sender": {"type": "string"},
                "receiver": {"type": "string"},
                "nonce": _UINT,
                "value": _DECIMAL_STRING,
                "status": {"type": "string", "minLength": 1},
                "data": {"type": ["string", "null"]},
                "gasLimit": _UINT,
                "gasPrice": _UINT,
                "blockNonce": _UINT,
                "blockHash": {"type": "string"},
                "round": _UINT,
                "epoch": _UINT,
                "logs": {"type": ["object", "null"]},
                "smartContractResults": {"type": ["array", "null"]},
            },
        },
    },
}

TX_STATUS = {
    "type": "object",
    "required": ["status"],
    "properties": {"status": {"type": "string", "minLength": 1}},
}

TOKEN = {
    "type": "object",
    "required": ["identifier", "name", "decimals"],
    "properties": {
        "identifier": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "ticker": {"type": "string"},
        "owner": {"type": "string"},
        "decimals": _UINT,
        "supply": _NUMBER_OR_STRING,
    },
}

VM_QUERY = {
    "type": "object",
    "required": ["data"],
    "properties": {
        "data": {
            "type": "object",
            "required": ["returnCode"],
            "properties": {
                "returnData": {"type": ["array", "null"], "items": {"type": "string"}},
                "returnCode": {"type": "string"},
                "returnMessage": {"type": "string"},
            },
        },
    },
}

HYPERBLOCK = {
    "type": "object",
    "required": ["hyperblock"],
    "properties": {
        "hyperblock": {
            "type": "object",
            "required": [
                "nonce",
                "round",
                "epoch",
                "hash",
                "prevBlockHash",
                "numTxs",
                "timestamp",
            ],
            "properties": {
                "nonce": _UINT,
                "round": _UINT,
                "epoch": _UINT,
                "hash": {"type": "string"},
                "prevBlockHash": {"type": "string"},
                "numTxs": _UINT,
                "timestamp": _UINT,
                "shardBlocks": {"type": ["array", "null"]},
                "transactions": {"type": ["array", "null"]},
            },
        },
    },
}

INITIAL_WALLETS = {
    "type": "object",
    "required": ["balanceWallets"],
    "properties": {"balanceWallets": {"type": "object"}},
}


def validate(instance: Any, schema: dict[str, Any], what: str) -> None:
    """Validate a decoded payload.

    Raises:
        ApiError: DECODE, naming the payload and the failing path.
    """
    try:
        jsonschema.validate(instance=instance, schema=schema)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ApiError(
            kind=ErrorKind.DECODE,
            message=f"malformed {what} payload at {location}: {exc.message}",
        ) from None
