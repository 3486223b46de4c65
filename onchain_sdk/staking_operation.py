# SPDX-License-Identifier: Apache-2.0

"""
Staking operations: a server-built batch of transactions that stake, unstake
or claim rewards for an address.

An operation moves through ``initialized -> pending -> complete | failed``.
Operations built for an external address are signed locally and broadcast by
the caller, who can then poll them with ``wait``. Operations created for a
wallet address are driven by WalletAddress (see address.py) and cannot be
polled through ``wait``.

Transactions returned by a reload are merged with the local list by unsigned
payload. A transaction signed locally keeps its signed payload even when the
server still reports it unsigned, and the same transaction is never listed
twice.
"""

from __future__ import annotations

import base64
import logging
import unittest
import unittest.mock
from enum import Enum
from typing import Any, Dict, List, Optional

from .api_client import ApiClient, ClientConfig
from .errors import IllegalOperationError, InternalError, PollTimeoutError
from .signer import LocalSigner, TransactionSigner
from .transaction import SAMPLE_PAYLOAD_FIELDS, Transaction, encode_unsigned_payload
from .wait import Clock, FakeClock, WaitOptions
from .wait import wait as poll


class StakingOperationStatus(Enum):
    INITIALIZED = "initialized"
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"
    UNSPECIFIED = "unspecified"

    @staticmethod
    def from_wire(value: Optional[str]) -> Optional[StakingOperationStatus]:
        try:
            return StakingOperationStatus(value)
        except ValueError:
            return None


class StakingOperation:
    _api: ApiClient
    model: Dict[str, Any]
    transactions: List[Transaction]

    def __init__(self, api: ApiClient, model: Dict[str, Any]):
        if not model:
            raise InternalError("Staking operation model cannot be empty")
        self._api = api
        self.model = model
        self.transactions = []
        self._merge_transactions(model.get("transactions") or [])

    @staticmethod
    async def fetch(
        api: ApiClient,
        network_id: str,
        address_id: str,
        id: str,
        wallet_id: Optional[str] = None,
    ) -> StakingOperation:
        if wallet_id:
            model = await api.get_staking_operation(wallet_id, address_id, id)
        else:
            model = await api.get_external_staking_operation(network_id, address_id, id)
        return StakingOperation(api, model)

    @property
    def id(self) -> str:
        return self.model["id"]

    @property
    def network_id(self) -> str:
        return self.model["network_id"]

    @property
    def address_id(self) -> str:
        return self.model["address_id"]

    @property
    def wallet_id(self) -> Optional[str]:
        return self.model.get("wallet_id")

    def status(self) -> Optional[StakingOperationStatus]:
        return StakingOperationStatus.from_wire(self.model.get("status"))

    def is_terminal_state(self) -> bool:
        return self.is_complete_state() or self.is_failed_state()

    def is_complete_state(self) -> bool:
        return self.status() == StakingOperationStatus.COMPLETE

    def is_failed_state(self) -> bool:
        return self.status() == StakingOperationStatus.FAILED

    def signed_voluntary_exit_messages(self) -> List[str]:
        """Decoded voluntary exit messages of a native ETH unstake."""
        messages = []
        for metadata in self.model.get("metadata") or []:
            encoded = metadata.get("signed_voluntary_exit")
            if encoded:
                messages.append(base64.b64decode(encoded).decode("utf-8"))
        return messages

    def sign(self, signer: TransactionSigner):
        """Sign every transaction that is not signed yet."""
        for transaction in self.transactions:
            if not transaction.is_signed():
                transaction.sign(signer)

    def _merge_transactions(self, models: List[Dict[str, Any]]):
        by_payload = {tx.unsigned_payload: tx for tx in self.transactions}
        for model in models:
            existing = by_payload.get(model.get("unsigned_payload", ""))
            if existing is None:
                transaction = Transaction(model)
                self.transactions.append(transaction)
                by_payload[transaction.unsigned_payload] = transaction
                continue
            signed_payload = existing.signed_payload
            existing.model.update(model)
            if signed_payload and not existing.signed_payload:
                existing.model["signed_payload"] = signed_payload

    def update(self, model: Dict[str, Any]):
        """Replace the operation state, merging its transactions into the local list."""
        self.model = model
        self._merge_transactions(model.get("transactions") or [])

    async def reload(self) -> StakingOperation:
        if self.wallet_id:
            model = await self._api.get_staking_operation(
                self.wallet_id, self.address_id, self.id
            )
        else:
            model = await self._api.get_external_staking_operation(
                self.network_id, self.address_id, self.id
            )
        self.update(model)
        return self

    async def wait(
        self, options: Optional[WaitOptions] = None, *, clock: Optional[Clock] = None
    ) -> StakingOperation:
        """
        Poll an external address operation until it is complete or failed.

        :param options: Defaults to a 5 second interval and a one hour budget.
        :raises IllegalOperationError: If the operation belongs to a wallet.
        :raises PollTimeoutError: If the operation is still in flight after the timeout.
        """
        if self.wallet_id:
            raise IllegalOperationError(
                "cannot wait on staking operation for wallet address."
            )
        if options is None:
            config = self._api.client_config
            options = WaitOptions(
                interval_seconds=config.staking_poll_interval_in_seconds,
                timeout_seconds=config.staking_wait_in_seconds,
            )
        logging.info(f"waiting for staking operation {self.id}")
        return await poll(
            self.reload,
            lambda operation: operation.is_terminal_state(),
            options=options,
            clock=clock,
        )

    def __str__(self) -> str:
        status = self.status()
        return (
            f"StakingOperation {{ id: {self.id}, status: "
            f"{status.value if status else None}, network_id: {self.network_id}, "
            f"address_id: {self.address_id} }}"
        )


def unsigned_payload(nonce: int) -> str:
    return encode_unsigned_payload(dict(SAMPLE_PAYLOAD_FIELDS, nonce=hex(nonce)))


def staking_operation_model(status: str = "initialized", **kwargs: Any) -> Dict[str, Any]:
    model: Dict[str, Any] = {
        "id": "staking-op-1",
        "network_id": "ethereum-holesky",
        "address_id": "0xaddress",
        "status": status,
        "transactions": [],
    }
    model.update(kwargs)
    return model


class Test(unittest.IsolatedAsyncioTestCase):
    def api(self) -> unittest.mock.Mock:
        api = unittest.mock.Mock(spec=ApiClient)
        api.client_config = ClientConfig()
        return api

    def test_states(self):
        api = self.api()
        self.assertFalse(StakingOperation(api, staking_operation_model()).is_terminal_state())
        self.assertFalse(
            StakingOperation(api, staking_operation_model("pending")).is_terminal_state()
        )
        complete = StakingOperation(api, staking_operation_model("complete"))
        self.assertTrue(complete.is_terminal_state())
        self.assertTrue(complete.is_complete_state())
        failed = StakingOperation(api, staking_operation_model("failed"))
        self.assertTrue(failed.is_failed_state())
        self.assertIsNone(StakingOperation(api, staking_operation_model("odd")).status())

    def test_sign_is_idempotent(self):
        operation = StakingOperation(
            self.api(),
            staking_operation_model(
                transactions=[
                    {"unsigned_payload": unsigned_payload(0)},
                    {"unsigned_payload": unsigned_payload(1), "signed_payload": "02aa"},
                ]
            ),
        )
        signer = LocalSigner.generate()

        operation.sign(signer)
        first = [tx.signed_payload for tx in operation.transactions]
        operation.sign(signer)

        self.assertEqual([tx.signed_payload for tx in operation.transactions], first)
        self.assertEqual(first[1], "02aa")
        self.assertTrue(all(tx.is_signed() for tx in operation.transactions))

    async def test_reload_merges_transactions(self):
        api = self.api()
        api.get_external_staking_operation = unittest.mock.AsyncMock(
            return_value=staking_operation_model(
                "pending",
                transactions=[
                    {"unsigned_payload": unsigned_payload(0), "status": "pending"},
                    {"unsigned_payload": unsigned_payload(1), "status": "pending"},
                ],
            )
        )
        operation = StakingOperation(
            api,
            staking_operation_model(
                transactions=[{"unsigned_payload": unsigned_payload(0)}]
            ),
        )
        operation.sign(LocalSigner.generate())
        signed_payload = operation.transactions[0].signed_payload

        await operation.reload()

        api.get_external_staking_operation.assert_awaited_once_with(
            "ethereum-holesky", "0xaddress", "staking-op-1"
        )
        self.assertEqual(len(operation.transactions), 2)
        self.assertEqual(operation.transactions[0].signed_payload, signed_payload)
        self.assertEqual(operation.transactions[0].status().value, "pending")
        self.assertFalse(operation.transactions[1].is_signed())

    async def test_reload_wallet_operation(self):
        api = self.api()
        api.get_staking_operation = unittest.mock.AsyncMock(
            return_value=staking_operation_model("complete", wallet_id="wallet-1")
        )
        operation = StakingOperation(api, staking_operation_model(wallet_id="wallet-1"))

        await operation.reload()

        api.get_staking_operation.assert_awaited_once_with(
            "wallet-1", "0xaddress", "staking-op-1"
        )
        self.assertTrue(operation.is_complete_state())

    async def test_fetch(self):
        api = self.api()
        api.get_external_staking_operation = unittest.mock.AsyncMock(
            return_value=staking_operation_model("pending")
        )

        operation = await StakingOperation.fetch(
            api, "ethereum-holesky", "0xaddress", "staking-op-1"
        )

        self.assertEqual(operation.status(), StakingOperationStatus.PENDING)

    async def test_wait_rejects_wallet_operation(self):
        api = self.api()
        api.get_staking_operation = unittest.mock.AsyncMock()
        operation = StakingOperation(api, staking_operation_model(wallet_id="wallet-1"))

        with self.assertRaises(IllegalOperationError):
            await operation.wait()
        api.get_staking_operation.assert_not_awaited()

    async def test_wait(self):
        api = self.api()
        api.get_external_staking_operation = unittest.mock.AsyncMock(
            side_effect=[
                staking_operation_model("initialized"),
                staking_operation_model("pending"),
                staking_operation_model("complete"),
            ]
        )
        operation = StakingOperation(api, staking_operation_model())
        clock = FakeClock()

        result = await operation.wait(clock=clock)

        self.assertIs(result, operation)
        self.assertTrue(operation.is_complete_state())
        self.assertEqual(clock.sleeps, [5, 5])

    async def test_wait_timeout(self):
        api = self.api()
        api.get_external_staking_operation = unittest.mock.AsyncMock(
            return_value=staking_operation_model("pending")
        )
        operation = StakingOperation(api, staking_operation_model())

        with self.assertRaises(PollTimeoutError):
            await operation.wait(
                WaitOptions(interval_seconds=1, timeout_seconds=3), clock=FakeClock()
            )
        self.assertEqual(api.get_external_staking_operation.await_count, 3)

    def test_signed_voluntary_exit_messages(self):
        message = '{"message":{"epoch":"1"}}'
        operation = StakingOperation(
            self.api(),
            staking_operation_model(
                metadata=[
                    {
                        "signed_voluntary_exit": base64.b64encode(
                            message.encode("utf-8")
                        ).decode("ascii")
                    }
                ]
            ),
        )

        self.assertEqual(operation.signed_voluntary_exit_messages(), [message])


if __name__ == "__main__":
    unittest.main()
