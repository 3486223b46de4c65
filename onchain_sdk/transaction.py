# SPDX-License-Identifier: Apache-2.0

"""
On-chain transactions built by the platform.

The platform returns each transaction with an ``unsigned_payload``: the JSON
encoding of the EIP-1559 fields, hex encoded. Transactions that must be signed
by an externally held key are decoded into an eth-account transaction
dictionary, signed by a TransactionSigner and carry their ``signed_payload``
until broadcast.

The unsigned payload is also the stable identity of a transaction that has not
been broadcast yet; StakingOperation relies on it to merge reloaded
transactions with locally signed ones.
"""

from __future__ import annotations

import json
import unittest
from enum import Enum
from typing import Any, Dict, Optional

from eth_utils import to_checksum_address

from .errors import AlreadySignedError, InternalError, InvalidUnsignedPayload
from .network import transaction_link
from .signer import LocalSigner, TransactionSigner


class TransactionStatus(Enum):
    PENDING = "pending"
    SIGNED = "signed"
    BROADCAST = "broadcast"
    COMPLETE = "complete"
    FAILED = "failed"
    UNSPECIFIED = "unspecified"

    @staticmethod
    def from_wire(value: Optional[str]) -> Optional[TransactionStatus]:
        try:
            return TransactionStatus(value)
        except ValueError:
            return None


TERMINAL_STATES = frozenset([TransactionStatus.COMPLETE, TransactionStatus.FAILED])

_INTEGER_FIELDS = ("chainId", "nonce", "maxPriorityFeePerGas", "maxFeePerGas", "gas", "value")


def parse_unsigned_payload(payload: str) -> Dict[str, Any]:
    """Decode a hex encoded JSON unsigned payload.

    :raises InvalidUnsignedPayload: If the payload is not hex or not JSON.
    """
    try:
        raw = bytes.fromhex(payload.removeprefix("0x"))
    except ValueError as error:
        raise InvalidUnsignedPayload("Unable to parse unsigned payload") from error
    try:
        parsed = json.loads(raw.decode("utf-8"))
    except ValueError as error:
        raise InvalidUnsignedPayload("Unable to decode unsigned payload JSON") from error
    if not isinstance(parsed, dict):
        raise InvalidUnsignedPayload("Unsigned payload is not a JSON object")
    return parsed


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 0)
    return int(value)


class Transaction:
    """A transaction of a Transfer, StakingOperation or faucet request."""

    model: Dict[str, Any]
    _raw: Optional[Dict[str, Any]]

    def __init__(self, model: Dict[str, Any]):
        if not model:
            raise InternalError("Transaction model cannot be empty")
        self.model = model
        self._raw = None

    @property
    def unsigned_payload(self) -> str:
        return self.model.get("unsigned_payload", "")

    @property
    def signed_payload(self) -> Optional[str]:
        return self.model.get("signed_payload")

    @property
    def transaction_hash(self) -> Optional[str]:
        return self.model.get("transaction_hash")

    @property
    def network_id(self) -> str:
        return self.model.get("network_id", "")

    @property
    def from_address_id(self) -> Optional[str]:
        return self.model.get("from_address_id")

    @property
    def to_address_id(self) -> Optional[str]:
        return self.model.get("to_address_id")

    def status(self) -> Optional[TransactionStatus]:
        return TransactionStatus.from_wire(self.model.get("status"))

    def is_terminal_state(self) -> bool:
        return self.status() in TERMINAL_STATES

    def is_signed(self) -> bool:
        return bool(self.signed_payload)

    def transaction_link(self) -> Optional[str]:
        return self.model.get("transaction_link") or transaction_link(
            self.network_id, self.transaction_hash
        )

    def raw_transaction(self) -> Dict[str, Any]:
        """
        The EIP-1559 transaction described by the unsigned payload.

        :raises InvalidUnsignedPayload: If the payload cannot be decoded.
        """
        if self._raw is not None:
            return self._raw
        parsed = parse_unsigned_payload(self.unsigned_payload)
        try:
            raw: Dict[str, Any] = {field: _to_int(parsed[field]) for field in _INTEGER_FIELDS}
            raw["to"] = to_checksum_address(parsed["to"])
        except (KeyError, ValueError, TypeError) as error:
            raise InvalidUnsignedPayload(
                f"Unsigned payload is missing or has invalid fields: {error}"
            ) from error
        raw["type"] = 2
        raw["data"] = parsed.get("input") or "0x"
        self._raw = raw
        return self._raw

    def sign(self, signer: TransactionSigner) -> str:
        """
        Sign the transaction and keep the signed payload for broadcast.

        :return: The hex signed payload, without 0x prefix.
        :raises AlreadySignedError: If the transaction already carries a signature.
        """
        if self.is_signed():
            raise AlreadySignedError()
        signed_payload = signer.sign_transaction(self.raw_transaction())
        self.model["signed_payload"] = signed_payload.removeprefix("0x")
        return self.model["signed_payload"]

    def __str__(self) -> str:
        status = self.status()
        return (
            f"Transaction {{ transactionHash: '{self.transaction_hash}', "
            f"status: '{status.value if status else None}' }}"
        )


def encode_unsigned_payload(fields: Dict[str, Any]) -> str:
    return json.dumps(fields).encode("utf-8").hex()


SAMPLE_PAYLOAD_FIELDS = {
    "chainId": "0x14a34",
    "nonce": "0x0",
    "maxPriorityFeePerGas": "0x59682f00",
    "maxFeePerGas": "0x59682f72",
    "gas": "0x5208",
    "to": "0x4d9e4f3f4d1a8b5f4f7b1f5b5e1b5f5f4d9e4f3f",
    "value": "0x5af3107a4000",
    "input": "0x",
}


class Test(unittest.TestCase):
    def test_raw_transaction(self):
        transaction = Transaction(
            {
                "network_id": "base-sepolia",
                "unsigned_payload": encode_unsigned_payload(SAMPLE_PAYLOAD_FIELDS),
                "status": "pending",
            }
        )

        raw = transaction.raw_transaction()

        self.assertEqual(raw["chainId"], 84532)
        self.assertEqual(raw["gas"], 21000)
        self.assertEqual(raw["value"], 100_000_000_000_000)
        self.assertEqual(raw["to"], to_checksum_address(SAMPLE_PAYLOAD_FIELDS["to"]))
        self.assertIs(raw, transaction.raw_transaction())

    def test_invalid_payload(self):
        with self.assertRaises(InvalidUnsignedPayload):
            Transaction({"unsigned_payload": "zz"}).raw_transaction()
        with self.assertRaises(InvalidUnsignedPayload):
            Transaction({"unsigned_payload": b"not json".hex()}).raw_transaction()
        with self.assertRaises(InvalidUnsignedPayload):
            Transaction(
                {"unsigned_payload": encode_unsigned_payload({"nonce": "0x0"})}
            ).raw_transaction()

    def test_sign(self):
        transaction = Transaction(
            {"unsigned_payload": encode_unsigned_payload(SAMPLE_PAYLOAD_FIELDS)}
        )
        self.assertFalse(transaction.is_signed())

        signed_payload = transaction.sign(LocalSigner.generate())

        self.assertTrue(transaction.is_signed())
        self.assertEqual(transaction.signed_payload, signed_payload)
        self.assertFalse(signed_payload.startswith("0x"))
        with self.assertRaises(AlreadySignedError):
            transaction.sign(LocalSigner.generate())

    def test_status(self):
        self.assertEqual(
            Transaction({"status": "broadcast"}).status(), TransactionStatus.BROADCAST
        )
        self.assertIsNone(Transaction({"status": "mystery"}).status())
        self.assertTrue(Transaction({"status": "failed"}).is_terminal_state())
        self.assertFalse(Transaction({"status": "signed"}).is_terminal_state())

    def test_transaction_link(self):
        transaction = Transaction(
            {"network_id": "base-sepolia", "transaction_hash": "0xabc"}
        )
        self.assertEqual(
            transaction.transaction_link(), "https://sepolia.basescan.org/tx/0xabc"
        )
        self.assertEqual(
            Transaction({"transaction_link": "https://x/0x1"}).transaction_link(),
            "https://x/0x1",
        )

    def test_empty_model(self):
        with self.assertRaises(InternalError):
            Transaction({})


if __name__ == "__main__":
    unittest.main()
