# SPDX-License-Identifier: Apache-2.0

"""
Addresses that stake.

Every staking action is checked locally before anything is built:

1. the amount must be finite and strictly positive;
2. claiming stake of ``eth`` in native mode is rejected outright;
3. the amount must be a whole number of the asset's atomic units;
4. the amount must fit the matching staking context balance (stakeable for
   stake, unstakeable for unstake, claimable for claim_stake).

Only then is the atomic amount sent to the platform.

ExternalAddress builds operations for a key the caller holds; the caller signs
and broadcasts them. WalletAddress creates operations through the wallet
endpoints and drives them to completion itself::

    address = WalletAddress(api, wallet_id, address_id, "ethereum-holesky", signer)
    operation = await address.create_stake(Decimal("32"), "eth", StakeMode.NATIVE)
"""

from __future__ import annotations

import logging
import unittest
import unittest.mock
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .api_client import ApiClient, ClientConfig
from .asset import Amount, Asset, to_decimal
from .errors import ArgumentError, IllegalOperationError, PollTimeoutError
from .signer import LocalSigner, TransactionSigner
from .staking_operation import (
    StakingOperation,
    staking_operation_model,
    unsigned_payload,
)
from .wait import Clock, FakeClock, WaitOptions
from .wait import wait as poll


class StakeMode(Enum):
    DEFAULT = "default"
    PARTIAL = "partial"
    NATIVE = "native"


BALANCE_BY_ACTION = {
    "stake": "stakeable_balance",
    "unstake": "unstakeable_balance",
    "claim_stake": "claimable_balance",
}

ACTION_DESCRIPTION = {
    "stake": "stake",
    "unstake": "unstake",
    "claim_stake": "claim stake",
}


def staking_options(
    asset_id: str, mode: StakeMode, options: Optional[Dict[str, str]] = None
) -> Dict[str, str]:
    """Copy the caller's options and resolve the staking mode into them."""
    resolved = dict(options or {})
    if mode != StakeMode.DEFAULT:
        resolved["mode"] = mode.value
    elif asset_id == "eth":
        resolved["mode"] = StakeMode.PARTIAL.value
    return resolved


class Address:
    _api: ApiClient
    network_id: str
    address_id: str

    def __init__(self, api: ApiClient, network_id: str, address_id: str):
        self._api = api
        self.network_id = network_id
        self.address_id = address_id

    async def staking_balances(
        self,
        asset_id: str,
        mode: StakeMode = StakeMode.DEFAULT,
        options: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Decimal]:
        """Stakeable, unstakeable and claimable balances in whole units."""
        asset = await Asset.fetch(self._api, self.network_id, asset_id)
        return await self._staking_balances(
            asset, staking_options(asset_id, mode, options)
        )

    async def stakeable_balance(
        self,
        asset_id: str,
        mode: StakeMode = StakeMode.DEFAULT,
        options: Optional[Dict[str, str]] = None,
    ) -> Decimal:
        return (await self.staking_balances(asset_id, mode, options))["stakeable_balance"]

    async def unstakeable_balance(
        self,
        asset_id: str,
        mode: StakeMode = StakeMode.DEFAULT,
        options: Optional[Dict[str, str]] = None,
    ) -> Decimal:
        return (await self.staking_balances(asset_id, mode, options))["unstakeable_balance"]

    async def claimable_balance(
        self,
        asset_id: str,
        mode: StakeMode = StakeMode.DEFAULT,
        options: Optional[Dict[str, str]] = None,
    ) -> Decimal:
        return (await self.staking_balances(asset_id, mode, options))["claimable_balance"]

    async def _staking_balances(
        self, asset: Asset, options: Dict[str, str]
    ) -> Dict[str, Decimal]:
        response = await self._api.get_staking_context(
            self.network_id, asset.asset_id, self.address_id, options
        )
        context = response["context"]
        return {
            key: asset.from_atomic_amount(context.get(key) or 0)
            for key in BALANCE_BY_ACTION.values()
        }

    async def _validate(
        self,
        action: str,
        amount: Amount,
        asset_id: str,
        mode: StakeMode,
        options: Optional[Dict[str, str]],
    ) -> Tuple[Asset, Dict[str, str]]:
        """
        Check an action against the staking context.

        :return: The asset and the resolved options, amount included in atomic units.
        :raises ArgumentError: If the amount is not positive, finer than the
            asset precision or exceeds the balance.
        :raises IllegalOperationError: On a native mode ETH claim stake.
        """
        value = to_decimal(amount)
        if value <= 0:
            raise ArgumentError("Amount required greater than zero.")
        if action == "claim_stake" and asset_id == "eth" and mode == StakeMode.NATIVE:
            raise IllegalOperationError(
                "Claiming stake for ETH is not supported in native mode."
            )

        asset = await Asset.fetch(self._api, self.network_id, asset_id)
        atomic_amount = asset.to_atomic_amount(value)
        resolved = staking_options(asset_id, mode, options)
        available = (await self._staking_balances(asset, resolved))[
            BALANCE_BY_ACTION[action]
        ]
        if available < value:
            raise ArgumentError(
                f"Insufficient funds {amount} requested to "
                f"{ACTION_DESCRIPTION[action]}, only {available.normalize():f} available."
            )

        return asset, dict(resolved, amount=str(atomic_amount))

    def __str__(self) -> str:
        return f"Address {{ network_id: '{self.network_id}', address_id: '{self.address_id}' }}"


class ExternalAddress(Address):
    """An address whose key is held by the caller."""

    async def build_stake_operation(
        self,
        amount: Amount,
        asset_id: str,
        mode: StakeMode = StakeMode.DEFAULT,
        options: Optional[Dict[str, str]] = None,
    ) -> StakingOperation:
        return await self._build("stake", amount, asset_id, mode, options)

    async def build_unstake_operation(
        self,
        amount: Amount,
        asset_id: str,
        mode: StakeMode = StakeMode.DEFAULT,
        options: Optional[Dict[str, str]] = None,
    ) -> StakingOperation:
        return await self._build("unstake", amount, asset_id, mode, options)

    async def build_claim_stake_operation(
        self,
        amount: Amount,
        asset_id: str,
        mode: StakeMode = StakeMode.DEFAULT,
        options: Optional[Dict[str, str]] = None,
    ) -> StakingOperation:
        return await self._build("claim_stake", amount, asset_id, mode, options)

    async def _build(
        self,
        action: str,
        amount: Amount,
        asset_id: str,
        mode: StakeMode,
        options: Optional[Dict[str, str]],
    ) -> StakingOperation:
        asset, resolved = await self._validate(action, amount, asset_id, mode, options)
        model = await self._api.build_staking_operation(
            self.network_id, asset.asset_id, self.address_id, action, resolved
        )
        logging.info(f"built {action} operation {model.get('id')} for {self.address_id}")
        return StakingOperation(self._api, model)


class WalletAddress(Address):
    """An address of a platform wallet, with a local key signing its transactions."""

    wallet_id: str
    signer: TransactionSigner

    def __init__(
        self,
        api: ApiClient,
        wallet_id: str,
        address_id: str,
        network_id: str,
        signer: TransactionSigner,
    ):
        super().__init__(api, network_id, address_id)
        self.wallet_id = wallet_id
        self.signer = signer

    async def create_stake(
        self,
        amount: Amount,
        asset_id: str,
        mode: StakeMode = StakeMode.DEFAULT,
        options: Optional[Dict[str, str]] = None,
        wait_options: Optional[WaitOptions] = None,
        *,
        clock: Optional[Clock] = None,
    ) -> StakingOperation:
        return await self._create(
            "stake", amount, asset_id, mode, options, wait_options, clock
        )

    async def create_unstake(
        self,
        amount: Amount,
        asset_id: str,
        mode: StakeMode = StakeMode.DEFAULT,
        options: Optional[Dict[str, str]] = None,
        wait_options: Optional[WaitOptions] = None,
        *,
        clock: Optional[Clock] = None,
    ) -> StakingOperation:
        return await self._create(
            "unstake", amount, asset_id, mode, options, wait_options, clock
        )

    async def create_claim_stake(
        self,
        amount: Amount,
        asset_id: str,
        mode: StakeMode = StakeMode.DEFAULT,
        options: Optional[Dict[str, str]] = None,
        wait_options: Optional[WaitOptions] = None,
        *,
        clock: Optional[Clock] = None,
    ) -> StakingOperation:
        return await self._create(
            "claim_stake", amount, asset_id, mode, options, wait_options, clock
        )

    async def _create(
        self,
        action: str,
        amount: Amount,
        asset_id: str,
        mode: StakeMode,
        options: Optional[Dict[str, str]],
        wait_options: Optional[WaitOptions],
        clock: Optional[Clock],
    ) -> StakingOperation:
        """
        Create an operation, then sign and broadcast its transactions as they
        appear until it reaches a terminal state.

        :param wait_options: Defaults to a 0.2 second interval and a 600 second budget.
        :raises PollTimeoutError: If the operation is still in flight after the timeout.
        """
        asset, resolved = await self._validate(action, amount, asset_id, mode, options)
        model = await self._api.create_staking_operation(
            self.wallet_id,
            self.address_id,
            {
                "network_id": self.network_id,
                "asset_id": asset.asset_id,
                "action": action,
                "options": resolved,
            },
        )
        operation = StakingOperation(self._api, model)
        logging.info(f"created {action} operation {operation.id} for {self.address_id}")

        async def sign_broadcast_reload() -> StakingOperation:
            for index, transaction in enumerate(list(operation.transactions)):
                if transaction.is_signed():
                    continue
                signed_payload = transaction.sign(self.signer)
                operation.update(
                    await self._api.broadcast_staking_operation(
                        self.wallet_id,
                        self.address_id,
                        operation.id,
                        signed_payload,
                        index,
                    )
                )
            return await operation.reload()

        return await poll(
            sign_broadcast_reload,
            lambda operation: operation.is_terminal_state(),
            options=wait_options or WaitOptions(interval_seconds=0.2, timeout_seconds=600),
            clock=clock,
        )


def eth_context(stakeable: str = "0", unstakeable: str = "0", claimable: str = "0"):
    return {
        "context": {
            "stakeable_balance": stakeable,
            "unstakeable_balance": unstakeable,
            "claimable_balance": claimable,
        }
    }


class Test(unittest.IsolatedAsyncioTestCase):
    def api(self, context: Dict[str, Any]) -> unittest.mock.Mock:
        api = unittest.mock.Mock(spec=ApiClient)
        api.client_config = ClientConfig()
        api.get_asset = unittest.mock.AsyncMock(
            return_value={"network_id": "ethereum-holesky", "asset_id": "eth", "decimals": 18}
        )
        api.get_staking_context = unittest.mock.AsyncMock(return_value=context)
        api.build_staking_operation = unittest.mock.AsyncMock(
            return_value=staking_operation_model()
        )
        return api

    async def test_stake_exceeding_balance(self):
        api = self.api(eth_context(stakeable="3000000000000000000"))
        address = ExternalAddress(api, "ethereum-holesky", "0xaddress")

        with self.assertRaises(ArgumentError) as context:
            await address.build_stake_operation(Decimal("3.1"), "eth")

        self.assertEqual(
            str(context.exception),
            "Insufficient funds 3.1 requested to stake, only 3 available.",
        )
        api.build_staking_operation.assert_not_awaited()

    async def test_unstake_exceeding_balance(self):
        api = self.api(eth_context(unstakeable="1000000000000000000"))
        address = ExternalAddress(api, "ethereum-holesky", "0xaddress")

        with self.assertRaises(ArgumentError) as context:
            await address.build_unstake_operation("2", "eth")

        self.assertIn("requested to unstake", str(context.exception))
        api.build_staking_operation.assert_not_awaited()

    async def test_non_positive_amount(self):
        api = self.api(eth_context(stakeable="3000000000000000000"))
        address = ExternalAddress(api, "ethereum-holesky", "0xaddress")

        for amount in (0, "-1"):
            with self.assertRaises(ArgumentError):
                await address.build_stake_operation(amount, "eth")
        api.get_staking_context.assert_not_awaited()
        api.build_staking_operation.assert_not_awaited()

    async def test_amount_below_asset_precision(self):
        api = self.api(eth_context(stakeable="3000000000000000000"))
        address = ExternalAddress(api, "ethereum-holesky", "0xaddress")

        for amount in (Decimal("1e-19"), "NaN", "Infinity"):
            with self.assertRaises(ArgumentError):
                await address.build_stake_operation(amount, "eth")
        api.get_staking_context.assert_not_awaited()
        api.build_staking_operation.assert_not_awaited()

    async def test_native_eth_claim_stake(self):
        api = self.api(eth_context(claimable="5000000000000000000"))
        address = ExternalAddress(api, "ethereum-holesky", "0xaddress")

        with self.assertRaises(IllegalOperationError):
            await address.build_claim_stake_operation(1, "eth", StakeMode.NATIVE)
        api.build_staking_operation.assert_not_awaited()

    async def test_build_stake(self):
        api = self.api(eth_context(stakeable="3000000000000000000"))
        address = ExternalAddress(api, "ethereum-holesky", "0xaddress")

        operation = await address.build_stake_operation("1.5", "eth")

        api.get_staking_context.assert_awaited_once_with(
            "ethereum-holesky", "eth", "0xaddress", {"mode": "partial"}
        )
        api.build_staking_operation.assert_awaited_once_with(
            "ethereum-holesky",
            "eth",
            "0xaddress",
            "stake",
            {"mode": "partial", "amount": "1500000000000000000"},
        )
        self.assertEqual(operation.id, "staking-op-1")

    async def test_build_claim_stake_native_mode_option(self):
        api = self.api(eth_context(claimable="2000000"))
        api.get_asset = unittest.mock.AsyncMock(
            return_value={"network_id": "ethereum-holesky", "asset_id": "usdc", "decimals": 6}
        )
        address = ExternalAddress(api, "ethereum-holesky", "0xaddress")

        await address.build_claim_stake_operation(
            1, "usdc", StakeMode.NATIVE, {"validator": "v1"}
        )

        self.assertEqual(
            api.build_staking_operation.await_args.args[4],
            {"validator": "v1", "mode": "native", "amount": "1000000"},
        )

    async def test_balances(self):
        api = self.api(eth_context("1", "2000000000000000000", "500000000000000000"))
        address = ExternalAddress(api, "ethereum-holesky", "0xaddress")

        self.assertEqual(await address.unstakeable_balance("eth"), Decimal(2))
        self.assertEqual(await address.claimable_balance("eth"), Decimal("0.5"))
        self.assertEqual(await address.stakeable_balance("eth"), Decimal("1E-18"))

    async def test_wallet_create_stake(self):
        api = self.api(eth_context(stakeable="3000000000000000000"))
        transactions = [
            {"unsigned_payload": unsigned_payload(0), "status": "pending"},
            {"unsigned_payload": unsigned_payload(1), "status": "pending"},
        ]
        api.create_staking_operation = unittest.mock.AsyncMock(
            return_value=staking_operation_model(
                wallet_id="wallet-1", transactions=transactions
            )
        )
        api.broadcast_staking_operation = unittest.mock.AsyncMock(
            return_value=staking_operation_model(
                "pending", wallet_id="wallet-1", transactions=transactions
            )
        )
        api.get_staking_operation = unittest.mock.AsyncMock(
            return_value=staking_operation_model("complete", wallet_id="wallet-1")
        )
        address = WalletAddress(
            api, "wallet-1", "0xaddress", "ethereum-holesky", LocalSigner.generate()
        )

        operation = await address.create_stake(1, "eth", clock=FakeClock())

        api.create_staking_operation.assert_awaited_once_with(
            "wallet-1",
            "0xaddress",
            {
                "network_id": "ethereum-holesky",
                "asset_id": "eth",
                "action": "stake",
                "options": {"mode": "partial", "amount": "1000000000000000000"},
            },
        )
        calls = api.broadcast_staking_operation.await_args_list
        self.assertEqual([call.args[4] for call in calls], [0, 1])
        self.assertEqual(
            [call.args[3] for call in calls],
            [tx.signed_payload for tx in operation.transactions],
        )
        self.assertTrue(operation.is_complete_state())

    async def test_wallet_create_timeout(self):
        api = self.api(eth_context(unstakeable="3000000000000000000"))
        api.create_staking_operation = unittest.mock.AsyncMock(
            return_value=staking_operation_model(wallet_id="wallet-1")
        )
        api.broadcast_staking_operation = unittest.mock.AsyncMock()
        api.get_staking_operation = unittest.mock.AsyncMock(
            return_value=staking_operation_model("pending", wallet_id="wallet-1")
        )
        address = WalletAddress(
            api, "wallet-1", "0xaddress", "ethereum-holesky", LocalSigner.generate()
        )

        with self.assertRaises(PollTimeoutError):
            await address.create_unstake(
                1,
                "eth",
                wait_options=WaitOptions(interval_seconds=1, timeout_seconds=5),
                clock=FakeClock(),
            )
        api.broadcast_staking_operation.assert_not_awaited()
        self.assertEqual(api.get_staking_operation.await_count, 5)


if __name__ == "__main__":
    unittest.main()
