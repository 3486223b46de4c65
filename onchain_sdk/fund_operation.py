# SPDX-License-Identifier: Apache-2.0

"""Fiat to crypto funding of a wallet address."""

from __future__ import annotations

import logging
import unittest
import unittest.mock
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .api_client import ApiClient
from .asset import Amount, Asset, to_decimal
from .errors import ArgumentError, InternalError, PollTimeoutError
from .wait import Clock, FakeClock, WaitOptions
from .wait import wait as poll


class FundOperationStatus(Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


WIRE_STATUS: Dict[str, FundOperationStatus] = {
    "pending": FundOperationStatus.PENDING,
    "complete": FundOperationStatus.COMPLETE,
    "failed": FundOperationStatus.FAILED,
}


class FundOperation:
    _api: ApiClient
    model: Dict[str, Any]

    def __init__(self, api: ApiClient, model: Dict[str, Any]):
        if not model:
            raise InternalError("Fund operation model cannot be empty")
        self._api = api
        self.model = model

    @staticmethod
    async def create(
        api: ApiClient,
        wallet_id: str,
        address_id: str,
        amount: Amount,
        asset_id: str,
        network_id: str,
        fund_quote_id: Optional[str] = None,
    ) -> FundOperation:
        """
        Start funding an address with ``amount`` of ``asset_id``.

        :raises ArgumentError: If the amount is not strictly positive or is finer
            than the asset precision.
        :raises ApiError: If the API request fails.
        """
        value = to_decimal(amount)
        if value <= 0:
            raise ArgumentError("Amount required greater than zero.")
        asset = await Asset.fetch(api, network_id, asset_id)
        request: Dict[str, Any] = {
            "amount": str(asset.to_atomic_amount(value)),
            "asset_id": asset_id,
        }
        if fund_quote_id:
            request["fund_quote_id"] = fund_quote_id
        model = await api.create_fund_operation(wallet_id, address_id, request)
        logging.info(f"created fund operation {model.get('fund_operation_id')}")
        return FundOperation(api, model)

    @staticmethod
    async def list(
        api: ApiClient,
        wallet_id: str,
        address_id: str,
        limit: Optional[int] = None,
        page: Optional[str] = None,
    ) -> Tuple[List[FundOperation], bool, Optional[str]]:
        """One page of fund operations.

        :return: The operations, whether more pages exist, and the cursor of the next page.
        """
        response = await api.list_fund_operations(wallet_id, address_id, limit, page)
        operations = [FundOperation(api, model) for model in response.get("data") or []]
        has_more = bool(response.get("has_more"))
        next_page = response.get("next_page") if has_more else None
        return operations, has_more, next_page or None

    @property
    def id(self) -> str:
        return self.model["fund_operation_id"]

    @property
    def network_id(self) -> str:
        return self.model["network_id"]

    @property
    def wallet_id(self) -> str:
        return self.model["wallet_id"]

    @property
    def address_id(self) -> str:
        return self.model["address_id"]

    @property
    def asset(self) -> Asset:
        return Asset.from_model(self.model["crypto_amount"]["asset"])

    @property
    def amount(self) -> Decimal:
        return self.asset.from_atomic_amount(self.model["crypto_amount"]["amount"])

    @property
    def fiat_amount(self) -> Decimal:
        return Decimal(str(self.model["fiat_amount"]["amount"]))

    @property
    def fiat_currency(self) -> str:
        return self.model["fiat_amount"]["currency"]

    def status(self) -> Optional[FundOperationStatus]:
        return WIRE_STATUS.get(self.model.get("status"))

    def is_terminal_state(self) -> bool:
        return self.status() in (FundOperationStatus.COMPLETE, FundOperationStatus.FAILED)

    async def reload(self) -> FundOperation:
        self.model = await self._api.get_fund_operation(
            self.wallet_id, self.address_id, self.id
        )
        return self

    async def wait(
        self, options: Optional[WaitOptions] = None, *, clock: Optional[Clock] = None
    ) -> FundOperation:
        return await poll(
            self.reload,
            lambda operation: operation.is_terminal_state(),
            options=options,
            clock=clock,
        )

    def __str__(self) -> str:
        status = self.status()
        return (
            f"FundOperation {{ id: '{self.id}', network_id: '{self.network_id}', "
            f"address_id: '{self.address_id}', amount: '{self.amount}', "
            f"asset_id: '{self.asset.asset_id}', "
            f"status: '{status.value if status else None}' }}"
        )


def fund_operation_model(status: str = "pending", **kwargs: Any) -> Dict[str, Any]:
    model: Dict[str, Any] = {
        "fund_operation_id": "fund-1",
        "network_id": "base-mainnet",
        "wallet_id": "wallet-1",
        "address_id": "0xaddress",
        "crypto_amount": {
            "amount": "2500000",
            "asset": {"network_id": "base-mainnet", "asset_id": "usdc", "decimals": 6},
        },
        "fiat_amount": {"amount": "2.51", "currency": "usd"},
        "status": status,
    }
    model.update(kwargs)
    return model


class Test(unittest.IsolatedAsyncioTestCase):
    def test_properties(self):
        operation = FundOperation(unittest.mock.Mock(spec=ApiClient), fund_operation_model())

        self.assertEqual(operation.amount, Decimal("2.5"))
        self.assertEqual(operation.fiat_amount, Decimal("2.51"))
        self.assertEqual(operation.fiat_currency, "usd")
        self.assertEqual(operation.status(), FundOperationStatus.PENDING)
        self.assertFalse(operation.is_terminal_state())
        self.assertIsNone(
            FundOperation(
                unittest.mock.Mock(spec=ApiClient), fund_operation_model("unknown")
            ).status()
        )

    async def test_create(self):
        api = unittest.mock.Mock(spec=ApiClient)
        api.get_asset = unittest.mock.AsyncMock(
            return_value={"network_id": "base-mainnet", "asset_id": "usdc", "decimals": 6}
        )
        api.create_fund_operation = unittest.mock.AsyncMock(
            return_value=fund_operation_model()
        )

        operation = await FundOperation.create(
            api, "wallet-1", "0xaddress", "2.5", "usdc", "base-mainnet", "quote-1"
        )

        api.create_fund_operation.assert_awaited_once_with(
            "wallet-1",
            "0xaddress",
            {"amount": "2500000", "asset_id": "usdc", "fund_quote_id": "quote-1"},
        )
        self.assertEqual(operation.id, "fund-1")

    async def test_create_rejects_amount_below_precision(self):
        api = unittest.mock.Mock(spec=ApiClient)
        api.get_asset = unittest.mock.AsyncMock(
            return_value={"network_id": "base-mainnet", "asset_id": "usdc", "decimals": 6}
        )
        api.create_fund_operation = unittest.mock.AsyncMock()

        with self.assertRaises(ArgumentError):
            await FundOperation.create(
                api, "wallet-1", "0xaddress", "1e-7", "usdc", "base-mainnet"
            )
        api.create_fund_operation.assert_not_awaited()

    async def test_list(self):
        api = unittest.mock.Mock(spec=ApiClient)
        api.list_fund_operations = unittest.mock.AsyncMock(
            return_value={
                "data": [fund_operation_model(), fund_operation_model("complete")],
                "has_more": True,
                "next_page": "cursor-2",
            }
        )

        operations, has_more, next_page = await FundOperation.list(
            api, "wallet-1", "0xaddress", limit=2
        )

        api.list_fund_operations.assert_awaited_once_with("wallet-1", "0xaddress", 2, None)
        self.assertEqual(len(operations), 2)
        self.assertTrue(has_more)
        self.assertEqual(next_page, "cursor-2")

    async def test_wait(self):
        api = unittest.mock.Mock(spec=ApiClient)
        api.get_fund_operation = unittest.mock.AsyncMock(
            side_effect=[fund_operation_model(), fund_operation_model("complete")]
        )
        operation = FundOperation(api, fund_operation_model())
        clock = FakeClock()

        await operation.wait(clock=clock)

        api.get_fund_operation.assert_awaited_with("wallet-1", "0xaddress", "fund-1")
        self.assertEqual(operation.status(), FundOperationStatus.COMPLETE)
        self.assertEqual(clock.sleeps, [0.2])

    async def test_wait_timeout(self):
        api = unittest.mock.Mock(spec=ApiClient)
        api.get_fund_operation = unittest.mock.AsyncMock(
            return_value=fund_operation_model()
        )
        clock = FakeClock()

        with self.assertRaises(PollTimeoutError):
            await FundOperation(api, fund_operation_model()).wait(clock=clock)
        self.assertGreaterEqual(clock.now, 10)


if __name__ == "__main__":
    unittest.main()
