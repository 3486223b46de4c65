# SPDX-License-Identifier: Apache-2.0

"""
Testnet faucet requests.

Examples:
    Fund an address on Base Sepolia and wait for the transfer to land::

        faucet_tx = await FaucetTransaction.request(api, "base-sepolia", address)
        await faucet_tx.wait()
        print(faucet_tx.transaction_link())
"""

from __future__ import annotations

import logging
import unittest
import unittest.mock
from enum import Enum
from typing import Any, Dict, Optional

from .api_client import ApiClient
from .errors import InternalError
from .network import transaction_link
from .transaction import Transaction, TransactionStatus
from .wait import Clock, FakeClock, WaitOptions
from .wait import wait as poll


class FaucetTransactionStatus(Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


TRANSACTION_STATUS: Dict[TransactionStatus, FaucetTransactionStatus] = {
    TransactionStatus.PENDING: FaucetTransactionStatus.PENDING,
    TransactionStatus.SIGNED: FaucetTransactionStatus.PENDING,
    TransactionStatus.BROADCAST: FaucetTransactionStatus.PENDING,
    TransactionStatus.COMPLETE: FaucetTransactionStatus.COMPLETE,
    TransactionStatus.FAILED: FaucetTransactionStatus.FAILED,
}


class FaucetTransaction:
    _api: ApiClient
    model: Dict[str, Any]
    transaction: Transaction

    def __init__(self, api: ApiClient, model: Dict[str, Any]):
        if not model or not model.get("transaction"):
            raise InternalError("FaucetTransaction model cannot be empty")
        self._api = api
        self.model = model
        self.transaction = Transaction(model["transaction"])

    @staticmethod
    async def request(
        api: ApiClient, network_id: str, address_id: str, asset_id: Optional[str] = None
    ) -> FaucetTransaction:
        """Request testnet funds, native asset unless ``asset_id`` is given."""
        model = await api.request_faucet_funds(network_id, address_id, asset_id)
        faucet_transaction = FaucetTransaction(api, model)
        logging.info(
            f"faucet sent {asset_id or 'native asset'} to {address_id}: "
            f"{faucet_transaction.transaction_hash}"
        )
        return faucet_transaction

    @property
    def transaction_hash(self) -> Optional[str]:
        return self.transaction.transaction_hash

    @property
    def network_id(self) -> str:
        return self.transaction.network_id

    @property
    def address_id(self) -> Optional[str]:
        return self.transaction.to_address_id

    def status(self) -> Optional[FaucetTransactionStatus]:
        transaction_status = self.transaction.status()
        if transaction_status is None:
            return None
        return TRANSACTION_STATUS.get(transaction_status)

    def is_terminal_state(self) -> bool:
        return self.status() in (
            FaucetTransactionStatus.COMPLETE,
            FaucetTransactionStatus.FAILED,
        )

    def transaction_link(self) -> Optional[str]:
        return transaction_link(self.network_id, self.transaction_hash)

    async def reload(self) -> FaucetTransaction:
        self.model = await self._api.get_faucet_transaction(
            self.network_id, self.address_id, self.transaction_hash
        )
        self.transaction = Transaction(self.model["transaction"])
        return self

    async def wait(
        self, options: Optional[WaitOptions] = None, *, clock: Optional[Clock] = None
    ) -> FaucetTransaction:
        return await poll(
            self.reload,
            lambda faucet_transaction: faucet_transaction.is_terminal_state(),
            options=options,
            clock=clock,
        )

    def __str__(self) -> str:
        return (
            f"FaucetTransaction{{transaction_hash: '{self.transaction_hash}', "
            f"transaction_link: '{self.transaction_link()}'}}"
        )


def faucet_model(status: str) -> Dict[str, Any]:
    return {
        "transaction_hash": "0xfaucet",
        "transaction": {
            "network_id": "base-sepolia",
            "to_address_id": "0xaddress",
            "transaction_hash": "0xfaucet",
            "status": status,
        },
    }


class Test(unittest.IsolatedAsyncioTestCase):
    async def test_request(self):
        api = unittest.mock.Mock(spec=ApiClient)
        api.request_faucet_funds = unittest.mock.AsyncMock(
            return_value=faucet_model("broadcast")
        )

        faucet_transaction = await FaucetTransaction.request(
            api, "base-sepolia", "0xaddress", "usdc"
        )

        api.request_faucet_funds.assert_awaited_once_with(
            "base-sepolia", "0xaddress", "usdc"
        )
        self.assertEqual(faucet_transaction.status(), FaucetTransactionStatus.PENDING)
        self.assertEqual(faucet_transaction.address_id, "0xaddress")
        self.assertEqual(
            faucet_transaction.transaction_link(),
            "https://sepolia.basescan.org/tx/0xfaucet",
        )

    def test_unmapped_status(self):
        faucet_transaction = FaucetTransaction(
            unittest.mock.Mock(spec=ApiClient), faucet_model("unspecified")
        )
        self.assertIsNone(faucet_transaction.status())

    def test_empty_model(self):
        with self.assertRaises(InternalError):
            FaucetTransaction(unittest.mock.Mock(spec=ApiClient), {})

    async def test_wait(self):
        api = unittest.mock.Mock(spec=ApiClient)
        api.get_faucet_transaction = unittest.mock.AsyncMock(
            side_effect=[faucet_model("broadcast"), faucet_model("complete")]
        )
        faucet_transaction = FaucetTransaction(api, faucet_model("pending"))
        clock = FakeClock()

        await faucet_transaction.wait(clock=clock)

        api.get_faucet_transaction.assert_awaited_with(
            "base-sepolia", "0xaddress", "0xfaucet"
        )
        self.assertEqual(api.get_faucet_transaction.await_count, 2)
        self.assertEqual(faucet_transaction.status(), FaucetTransactionStatus.COMPLETE)
        self.assertIn("0xfaucet", str(faucet_transaction))


if __name__ == "__main__":
    unittest.main()
