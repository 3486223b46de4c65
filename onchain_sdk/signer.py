# SPDX-License-Identifier: Apache-2.0

"""
Signing capabilities consumed by the SDK.

The SDK never manages key material itself. Domain objects receive a signer and
only ask it for signatures:

- Signer: signs a 32-byte hash, used for user operations and sponsored sends.
- TransactionSigner: signs a raw EIP-1559 transaction, used for transfers and
  staking operations built for an externally held key.

LocalSigner adapts an eth-account key to both interfaces. Any object with the
same shape (a hardware wallet bridge, a remote KMS client) can be passed
instead.

Examples:
    Local key::

        from onchain_sdk.signer import LocalSigner

        signer = LocalSigner("0x4c0883a69102937d6231471b5dbb6204fe512961708279f2e3e8a5d4b8e3e5d1")
        print(signer.address)

        signature = await signer.sign("0x" + "ab" * 32)
"""

from __future__ import annotations

import unittest
from typing import Any, Dict

from eth_account import Account
from eth_account.signers.local import LocalAccount
from typing_extensions import Protocol


class Signer(Protocol):
    """Signs raw hashes on behalf of ``address``."""

    address: str

    async def sign(self, hash: str) -> str:
        """
        Sign a 0x-prefixed 32-byte hash.

        :param hash: The hash to sign.
        :return: The 0x-prefixed 65-byte signature.
        """
        ...


class TransactionSigner(Protocol):
    """Signs raw transactions on behalf of ``address``."""

    address: str

    def sign_transaction(self, transaction: Dict[str, Any]) -> str:
        """
        Sign a transaction dictionary.

        :param transaction: EIP-1559 fields (chainId, nonce, maxFeePerGas, ...).
        :return: The 0x-prefixed signed serialized transaction.
        """
        ...


class LocalSigner:
    """Signer backed by a private key held in process memory."""

    account: LocalAccount

    def __init__(self, private_key: str):
        self.account = Account.from_key(private_key)

    @staticmethod
    def generate() -> LocalSigner:
        return LocalSigner("0x" + bytes(Account.create().key).hex())

    @property
    def address(self) -> str:
        return self.account.address

    async def sign(self, hash: str) -> str:
        signed = self.account.unsafe_sign_hash(bytes.fromhex(hash.removeprefix("0x")))
        return "0x" + bytes(signed.signature).hex()

    def sign_transaction(self, transaction: Dict[str, Any]) -> str:
        signed = self.account.sign_transaction(transaction)
        return "0x" + bytes(signed.raw_transaction).hex()

    def __str__(self) -> str:
        return f"LocalSigner({self.address})"


class Test(unittest.IsolatedAsyncioTestCase):
    private_key = "0x4c0883a69102937d6231471b5dbb6204fe512961708279f2e3e8a5d4b8e3e5d1"

    async def test_sign_hash(self):
        signer = LocalSigner(self.private_key)
        digest = "0x" + "ab" * 32

        signature = await signer.sign(digest)

        self.assertTrue(signature.startswith("0x"))
        self.assertEqual(len(signature), 2 + 65 * 2)
        self.assertEqual(signature, await signer.sign(digest))

    def test_sign_transaction(self):
        signer = LocalSigner(self.private_key)
        transaction = {
            "type": 2,
            "chainId": 84532,
            "nonce": 0,
            "maxPriorityFeePerGas": 1_000_000,
            "maxFeePerGas": 2_000_000,
            "gas": 21_000,
            "to": "0x1111111111111111111111111111111111111111",
            "value": 1,
            "data": "0x",
        }

        signed_payload = signer.sign_transaction(transaction)

        self.assertEqual(Account.recover_transaction(signed_payload), signer.address)

    def test_generate(self):
        self.assertNotEqual(LocalSigner.generate().address, LocalSigner.generate().address)


if __name__ == "__main__":
    unittest.main()
