# SPDX-License-Identifier: Apache-2.0

"""
Smart wallets: contract accounts owned by a single signer.

Examples:
    Create a wallet and send from it on Base Sepolia::

        async with ApiClient(ClientConfig.from_env()) as api:
            wallet = await create_smart_wallet(api, LocalSigner.generate())
            wallet = wallet.use_network(84532)
            result = await wallet.send_user_operation(api, [RawCall(to=dest, value=1)])
            await wallet.wait_for_user_operation(api, result.id)

    Reattach to an existing wallet::

        wallet = to_smart_wallet("0x...", signer)
"""

from __future__ import annotations

import dataclasses
import logging
import unittest
import unittest.mock
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .api_client import ApiClient, ClientConfig
from .errors import InvalidConfiguration
from .network import Network, create_network
from .signer import LocalSigner, Signer
from .user_operation import (
    Call,
    RawCall,
    UserOperationResult,
    send_user_operation,
    wait_for_user_operation,
)
from .wait import Clock, WaitOptions


@dataclass(frozen=True)
class SmartWallet:
    address: str
    owners: List[Signer]
    network: Optional[Network] = None
    paymaster_url: Optional[str] = None

    def __post_init__(self):
        if len(self.owners) != 1:
            raise InvalidConfiguration("Smart wallets support exactly one owner")

    def use_network(
        self, chain_id: int, paymaster_url: Optional[str] = None
    ) -> SmartWallet:
        """Return a copy of this wallet scoped to a network.

        :raises ArgumentError: If the chain is not supported.
        """
        return dataclasses.replace(
            self, network=create_network(chain_id), paymaster_url=paymaster_url
        )

    async def send_user_operation(
        self,
        api: ApiClient,
        calls: Sequence[Call],
        chain_id: Optional[int] = None,
        paymaster_url: Optional[str] = None,
    ) -> UserOperationResult:
        return await send_user_operation(api, self, calls, chain_id, paymaster_url)

    async def wait_for_user_operation(
        self,
        api: ApiClient,
        id: str,
        options: Optional[WaitOptions] = None,
        *,
        clock: Optional[Clock] = None,
    ) -> UserOperationResult:
        return await wait_for_user_operation(
            api, id, self.address, options, clock=clock
        )


def to_smart_wallet(smart_wallet_address: str, signer: Signer) -> SmartWallet:
    return SmartWallet(address=smart_wallet_address, owners=[signer])


async def create_smart_wallet(api: ApiClient, signer: Signer) -> SmartWallet:
    """Register a new smart wallet owned by ``signer``."""
    model = await api.create_smart_wallet(signer.address)
    logging.info(f"created smart wallet {model['address']} owned by {signer.address}")
    return to_smart_wallet(model["address"], signer)


class Test(unittest.IsolatedAsyncioTestCase):
    async def test_create(self):
        signer = LocalSigner.generate()
        api = unittest.mock.Mock(spec=ApiClient)
        api.create_smart_wallet = unittest.mock.AsyncMock(
            return_value={"address": "0xsmart", "owners": [signer.address]}
        )

        wallet = await create_smart_wallet(api, signer)

        api.create_smart_wallet.assert_awaited_once_with(signer.address)
        self.assertEqual(wallet.address, "0xsmart")
        self.assertEqual(wallet.owners, [signer])
        self.assertIsNone(wallet.network)

    def test_use_network(self):
        wallet = to_smart_wallet("0xsmart", LocalSigner.generate())

        scoped = wallet.use_network(84532, "https://paymaster")

        self.assertIsNone(wallet.network)
        self.assertEqual(scoped.network, Network(84532, "base-sepolia"))
        self.assertEqual(scoped.paymaster_url, "https://paymaster")
        self.assertEqual(scoped.address, wallet.address)

    def test_single_owner(self):
        with self.assertRaises(InvalidConfiguration):
            SmartWallet("0xsmart", [LocalSigner.generate(), LocalSigner.generate()])

    async def test_send_and_wait(self):
        api = unittest.mock.Mock(spec=ApiClient)
        api.client_config = ClientConfig()
        api.create_user_operation = unittest.mock.AsyncMock(
            return_value={"id": "op-1", "unsigned_payload": "0x" + "cd" * 32}
        )
        api.broadcast_user_operation = unittest.mock.AsyncMock(
            return_value={"id": "op-1", "status": "broadcast"}
        )
        api.get_user_operation = unittest.mock.AsyncMock(
            return_value={"id": "op-1", "status": "complete", "transaction_hash": "0x1"}
        )
        wallet = to_smart_wallet("0xsmart", LocalSigner.generate()).use_network(8453)

        sent = await wallet.send_user_operation(api, [RawCall(to="0xdest")])
        done = await wallet.wait_for_user_operation(api, sent.id)

        self.assertEqual(api.create_user_operation.await_args.args[1], "base-mainnet")
        self.assertEqual(done.transaction_hash, "0x1")
        api.get_user_operation.assert_awaited_once_with("0xsmart", "op-1")


if __name__ == "__main__":
    unittest.main()
