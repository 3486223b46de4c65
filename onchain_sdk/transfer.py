# SPDX-License-Identifier: Apache-2.0

"""
Transfers of an asset from a wallet address to a destination.

A Transfer is backed by exactly one send delegate:

- a TransactionDelegate, when the sender signs and pays for a raw transaction;
- a SponsoredSendDelegate, when the transfer is gasless and the sender only
  signs an authorization that the platform submits.

The two resources have different status vocabularies, so a Transfer never
stores its own status. ``Transfer.status()`` derives it from the delegate
through a single table keyed by delegate kind and delegate status.

Examples:
    Self-signed transfer::

        transfer = await Transfer.create(
            api, wallet_id, address_id, Decimal("0.01"), "eth", destination, "base-sepolia"
        )
        await transfer.sign(signer)
        transfer = await transfer.broadcast()
        await transfer.wait(WaitOptions(timeout_seconds=60))
        print(transfer.status(), transfer.transaction_link())
"""

from __future__ import annotations

import logging
import unittest
import unittest.mock
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union, cast

from .api_client import ApiClient
from .asset import Amount, Asset, to_decimal
from .errors import ArgumentError, InternalError, NotSignedError
from .signer import LocalSigner, Signer, TransactionSigner
from .sponsored_send import SponsoredSend, SponsoredSendStatus
from .transaction import (
    SAMPLE_PAYLOAD_FIELDS,
    Transaction,
    TransactionStatus,
    encode_unsigned_payload,
)
from .wait import Clock, FakeClock, WaitOptions
from .wait import wait as poll


class TransferStatus(Enum):
    PENDING = "pending"
    BROADCAST = "broadcast"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class TransactionDelegate:
    transaction: Transaction
    kind: str = field(default="transaction", init=False)

    def signature(self) -> Optional[str]:
        return self.transaction.signed_payload

    def is_signed(self) -> bool:
        return self.transaction.is_signed()

    def transaction_hash(self) -> Optional[str]:
        return self.transaction.transaction_hash

    def transaction_link(self) -> Optional[str]:
        return self.transaction.transaction_link()


@dataclass
class SponsoredSendDelegate:
    sponsored_send: SponsoredSend
    kind: str = field(default="sponsored_send", init=False)

    def signature(self) -> Optional[str]:
        return self.sponsored_send.signature

    def is_signed(self) -> bool:
        return self.sponsored_send.is_signed()

    def transaction_hash(self) -> Optional[str]:
        return self.sponsored_send.transaction_hash

    def transaction_link(self) -> Optional[str]:
        return self.sponsored_send.transaction_link


SendTransactionDelegate = Union[TransactionDelegate, SponsoredSendDelegate]

STATUS_TABLE: Dict[str, Dict[Enum, TransferStatus]] = {
    "transaction": {
        TransactionStatus.PENDING: TransferStatus.PENDING,
        TransactionStatus.SIGNED: TransferStatus.PENDING,
        TransactionStatus.BROADCAST: TransferStatus.BROADCAST,
        TransactionStatus.COMPLETE: TransferStatus.COMPLETE,
        TransactionStatus.FAILED: TransferStatus.FAILED,
    },
    "sponsored_send": {
        SponsoredSendStatus.PENDING: TransferStatus.PENDING,
        SponsoredSendStatus.SIGNED: TransferStatus.PENDING,
        SponsoredSendStatus.SUBMITTED: TransferStatus.BROADCAST,
        SponsoredSendStatus.COMPLETE: TransferStatus.COMPLETE,
        SponsoredSendStatus.FAILED: TransferStatus.FAILED,
    },
}


def delegate_status(delegate: SendTransactionDelegate) -> Optional[Enum]:
    if isinstance(delegate, TransactionDelegate):
        return delegate.transaction.status()
    return delegate.sponsored_send.status()


def derive_transfer_status(
    delegate: Optional[SendTransactionDelegate],
) -> Optional[TransferStatus]:
    """Map a delegate's own status to the Transfer status, None when unmapped."""
    if delegate is None:
        return None
    status = delegate_status(delegate)
    if status is None:
        return None
    return STATUS_TABLE[delegate.kind].get(status)


def build_delegate(model: Dict[str, Any]) -> Optional[SendTransactionDelegate]:
    if model.get("transaction"):
        return TransactionDelegate(Transaction(model["transaction"]))
    if model.get("sponsored_send"):
        return SponsoredSendDelegate(SponsoredSend(model["sponsored_send"]))
    return None


class Transfer:
    """Moves an amount of an asset from a wallet address to a destination."""

    _api: ApiClient
    model: Dict[str, Any]
    _delegate: Optional[SendTransactionDelegate]

    def __init__(self, api: ApiClient, model: Dict[str, Any]):
        if not model:
            raise InternalError("Transfer model cannot be empty")
        self._api = api
        self._set_model(model)

    @staticmethod
    def from_model(api: ApiClient, model: Dict[str, Any]) -> Transfer:
        return Transfer(api, model)

    @staticmethod
    async def create(
        api: ApiClient,
        wallet_id: str,
        address_id: str,
        amount: Amount,
        asset_id: str,
        destination: str,
        network_id: str,
        gasless: bool = False,
    ) -> Transfer:
        """
        Create a transfer on the platform.

        :raises ArgumentError: If the amount is not strictly positive or is finer
            than the asset precision.
        :raises ApiError: If the API request fails.
        """
        value = to_decimal(amount)
        if value <= 0:
            raise ArgumentError("Amount required greater than zero.")
        asset = await Asset.fetch(api, network_id, asset_id)
        model = await api.create_transfer(
            wallet_id,
            address_id,
            {
                "amount": str(asset.to_atomic_amount(value)),
                "network_id": network_id,
                "asset_id": asset_id,
                "destination": destination,
                "gasless": gasless,
            },
        )
        return Transfer(api, model)

    def _set_model(self, model: Dict[str, Any]):
        self.model = model
        self._delegate = build_delegate(model)

    @property
    def id(self) -> str:
        return self.model["transfer_id"]

    @property
    def network_id(self) -> str:
        return self.model["network_id"]

    @property
    def wallet_id(self) -> str:
        return self.model["wallet_id"]

    @property
    def from_address_id(self) -> str:
        return self.model["address_id"]

    @property
    def destination_address_id(self) -> str:
        return self.model["destination"]

    @property
    def asset_id(self) -> str:
        return self.model["asset_id"]

    @property
    def amount(self) -> Decimal:
        asset = self.model.get("asset")
        if not asset:
            raise InternalError(f"Transfer {self.model.get('transfer_id')} has no asset")
        return Asset.from_model(asset).from_atomic_amount(self.model["amount"])

    def send_transaction_delegate(self) -> Optional[SendTransactionDelegate]:
        return self._delegate

    def transaction(self) -> Optional[Transaction]:
        if isinstance(self._delegate, TransactionDelegate):
            return self._delegate.transaction
        return None

    def sponsored_send(self) -> Optional[SponsoredSend]:
        if isinstance(self._delegate, SponsoredSendDelegate):
            return self._delegate.sponsored_send
        return None

    def transaction_hash(self) -> Optional[str]:
        return self._delegate.transaction_hash() if self._delegate else None

    def transaction_link(self) -> Optional[str]:
        return self._delegate.transaction_link() if self._delegate else None

    def status(self) -> Optional[TransferStatus]:
        return derive_transfer_status(self._delegate)

    def is_terminal_state(self) -> bool:
        return self.status() in (TransferStatus.COMPLETE, TransferStatus.FAILED)

    async def sign(self, signer: Union[Signer, TransactionSigner]) -> str:
        """
        Sign the active delegate.

        :param signer: Signs the raw transaction, or the typed data hash of a sponsored send.
        :return: The signature (or signed payload) required to broadcast.
        """
        if isinstance(self._delegate, TransactionDelegate):
            return self._delegate.transaction.sign(cast(TransactionSigner, signer))
        if isinstance(self._delegate, SponsoredSendDelegate):
            return await self._delegate.sponsored_send.sign(cast(Signer, signer))
        raise InternalError("Transfer has no transaction or sponsored send to sign")

    async def broadcast(self) -> Transfer:
        """
        Broadcast the signed transfer.

        :return: A new Transfer reflecting the broadcast state.
        :raises NotSignedError: If the delegate carries no signature.
        :raises ApiError: If the API request fails.
        """
        if self._delegate is None or not self._delegate.is_signed():
            raise NotSignedError("Cannot broadcast unsigned Transfer")
        model = await self._api.broadcast_transfer(
            self.wallet_id, self.from_address_id, self.id, self._delegate.signature()
        )
        logging.info(f"broadcast transfer {self.id}")
        return Transfer(self._api, model)

    async def reload(self) -> Transfer:
        model = await self._api.get_transfer(
            self.wallet_id, self.from_address_id, self.id
        )
        self._set_model(model)
        return self

    async def wait(
        self, options: Optional[WaitOptions] = None, *, clock: Optional[Clock] = None
    ) -> Transfer:
        """
        Poll until the transfer is complete or failed.

        :raises PollTimeoutError: If the transfer is still in flight after the timeout.
        """
        return await poll(
            self.reload,
            lambda transfer: transfer.is_terminal_state(),
            options=options,
            clock=clock,
        )

    def __str__(self) -> str:
        status = self.status()
        return (
            f"Transfer{{transferId: '{self.id}', networkId: '{self.network_id}', "
            f"fromAddressId: '{self.from_address_id}', "
            f"destinationAddressId: '{self.destination_address_id}', "
            f"assetId: '{self.asset_id}', amount: '{self.amount}', "
            f"transactionHash: '{self.transaction_hash()}', "
            f"transactionLink: '{self.transaction_link()}', "
            f"status: '{status.value if status else None}'}}"
        )


def transfer_model(**delegate: Any) -> Dict[str, Any]:
    model = {
        "transfer_id": "transfer-1",
        "network_id": "base-sepolia",
        "wallet_id": "wallet-1",
        "address_id": "0xfrom",
        "destination": "0xdest",
        "asset_id": "eth",
        "asset": {"network_id": "base-sepolia", "asset_id": "eth", "decimals": 18},
        "amount": "1500000000000000000",
    }
    model.update(delegate)
    return model


class Test(unittest.IsolatedAsyncioTestCase):
    def api(self) -> unittest.mock.Mock:
        return unittest.mock.Mock(spec=ApiClient)

    def test_status_table(self):
        for status, expected in STATUS_TABLE["transaction"].items():
            transfer = Transfer(
                self.api(), transfer_model(transaction={"status": status.value})
            )
            self.assertEqual(transfer.status(), expected)

        for status, expected in STATUS_TABLE["sponsored_send"].items():
            transfer = Transfer(
                self.api(),
                transfer_model(
                    sponsored_send={"status": status.value, "typed_data_hash": "0x1"}
                ),
            )
            self.assertEqual(transfer.status(), expected)

    def test_unmapped_status(self):
        self.assertIsNone(
            Transfer(
                self.api(), transfer_model(transaction={"status": "unspecified"})
            ).status()
        )
        self.assertIsNone(
            Transfer(
                self.api(), transfer_model(sponsored_send={"status": "broadcast"})
            ).status()
        )
        self.assertIsNone(Transfer(self.api(), transfer_model()).status())

    def test_delegate_kind(self):
        transfer = Transfer(
            self.api(), transfer_model(sponsored_send={"status": "pending"})
        )
        self.assertEqual(transfer.send_transaction_delegate().kind, "sponsored_send")
        self.assertIsNone(transfer.transaction())
        self.assertIsNotNone(transfer.sponsored_send())

    def test_amount(self):
        transfer = Transfer(self.api(), transfer_model())
        self.assertEqual(transfer.amount, Decimal("1.5"))
        self.assertIn("amount: '1.5", str(transfer))

    def test_amount_without_asset(self):
        model = transfer_model()
        del model["asset"]
        transfer = Transfer(self.api(), model)
        with self.assertRaises(InternalError):
            transfer.amount

    async def test_broadcast_unsigned(self):
        api = self.api()
        api.broadcast_transfer = unittest.mock.AsyncMock()
        transfer = Transfer(
            api,
            transfer_model(
                transaction={
                    "status": "pending",
                    "unsigned_payload": encode_unsigned_payload(SAMPLE_PAYLOAD_FIELDS),
                }
            ),
        )

        with self.assertRaises(NotSignedError):
            await transfer.broadcast()
        api.broadcast_transfer.assert_not_awaited()

    async def test_sign_and_broadcast(self):
        api = self.api()
        api.broadcast_transfer = unittest.mock.AsyncMock(
            return_value=transfer_model(
                transaction={"status": "broadcast", "transaction_hash": "0xhash"}
            )
        )
        transfer = Transfer(
            api,
            transfer_model(
                transaction={
                    "status": "pending",
                    "unsigned_payload": encode_unsigned_payload(SAMPLE_PAYLOAD_FIELDS),
                }
            ),
        )

        signed_payload = await transfer.sign(LocalSigner.generate())
        broadcast = await transfer.broadcast()

        api.broadcast_transfer.assert_awaited_once_with(
            "wallet-1", "0xfrom", "transfer-1", signed_payload
        )
        self.assertEqual(broadcast.status(), TransferStatus.BROADCAST)
        self.assertEqual(broadcast.transaction_hash(), "0xhash")

    async def test_sponsored_send_sign(self):
        transfer = Transfer(
            self.api(),
            transfer_model(
                sponsored_send={"status": "pending", "typed_data_hash": "0x" + "ab" * 32}
            ),
        )

        signature = await transfer.sign(LocalSigner.generate())

        self.assertEqual(transfer.sponsored_send().signature, signature)
        self.assertTrue(transfer.send_transaction_delegate().is_signed())

    async def test_reload_rebuilds_delegate(self):
        api = self.api()
        api.get_transfer = unittest.mock.AsyncMock(
            return_value=transfer_model(transaction={"status": "complete"})
        )
        transfer = Transfer(api, transfer_model(transaction={"status": "broadcast"}))

        await transfer.reload()

        api.get_transfer.assert_awaited_once_with("wallet-1", "0xfrom", "transfer-1")
        self.assertEqual(transfer.status(), TransferStatus.COMPLETE)

    async def test_wait(self):
        api = self.api()
        api.get_transfer = unittest.mock.AsyncMock(
            side_effect=[
                transfer_model(transaction={"status": "broadcast"}),
                transfer_model(transaction={"status": "failed"}),
            ]
        )
        transfer = Transfer(api, transfer_model(transaction={"status": "broadcast"}))
        clock = FakeClock()

        result = await transfer.wait(clock=clock)

        self.assertIs(result, transfer)
        self.assertEqual(transfer.status(), TransferStatus.FAILED)
        self.assertEqual(clock.sleeps, [0.2])

    async def test_create(self):
        api = self.api()
        api.get_asset = unittest.mock.AsyncMock(
            return_value={"network_id": "base-sepolia", "asset_id": "usdc", "decimals": 6}
        )
        api.create_transfer = unittest.mock.AsyncMock(
            return_value=transfer_model(sponsored_send={"status": "pending"})
        )

        await Transfer.create(
            api, "wallet-1", "0xfrom", "2.5", "usdc", "0xdest", "base-sepolia", True
        )

        api.create_transfer.assert_awaited_once_with(
            "wallet-1",
            "0xfrom",
            {
                "amount": "2500000",
                "network_id": "base-sepolia",
                "asset_id": "usdc",
                "destination": "0xdest",
                "gasless": True,
            },
        )

    async def test_create_rejects_non_positive_amount(self):
        api = self.api()
        api.get_asset = unittest.mock.AsyncMock()
        with self.assertRaises(ArgumentError):
            await Transfer.create(
                api, "wallet-1", "0xfrom", 0, "eth", "0xdest", "base-sepolia"
            )
        api.get_asset.assert_not_awaited()

    async def test_create_rejects_amount_below_precision(self):
        api = self.api()
        api.get_asset = unittest.mock.AsyncMock(
            return_value={"network_id": "base-sepolia", "asset_id": "usdc", "decimals": 6}
        )
        api.create_transfer = unittest.mock.AsyncMock()
        with self.assertRaises(ArgumentError):
            await Transfer.create(
                api, "wallet-1", "0xfrom", "0.0000001", "usdc", "0xdest", "base-sepolia"
            )
        api.create_transfer.assert_not_awaited()


if __name__ == "__main__":
    unittest.main()
