# SPDX-License-Identifier: Apache-2.0

"""
Assets and atomic amount conversion.

Amounts on the wire are integers in the asset's smallest unit. Domain objects
expose whole-unit Decimals, converting with the asset's decimal count::

    asset = await Asset.fetch(api, "base-sepolia", "eth")
    asset.to_atomic_amount(Decimal("0.5"))   # 500000000000000000
    asset.from_atomic_amount(10**18)          # Decimal("1")
"""

from __future__ import annotations

import unittest
import unittest.mock
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from .api_client import ApiClient
from .errors import ArgumentError

Amount = Union[int, float, str, Decimal]


def to_decimal(amount: Amount) -> Decimal:
    """Convert a user supplied amount without float rounding artefacts."""
    if isinstance(amount, Decimal):
        value = amount
    else:
        try:
            value = Decimal(str(amount))
        except ArithmeticError as error:
            raise ArgumentError(f"Invalid amount: {amount}") from error
    if not value.is_finite():
        raise ArgumentError(f"Invalid amount: {amount}")
    return value


@dataclass(frozen=True)
class Asset:
    network_id: str
    asset_id: str
    decimals: int
    contract_address: Optional[str] = None

    @staticmethod
    def from_model(model: Dict[str, Any]) -> Asset:
        return Asset(
            network_id=model["network_id"],
            asset_id=model["asset_id"],
            decimals=int(model.get("decimals") or 0),
            contract_address=model.get("contract_address"),
        )

    @staticmethod
    async def fetch(api: ApiClient, network_id: str, asset_id: str) -> Asset:
        return Asset.from_model(await api.get_asset(network_id, asset_id))

    def to_atomic_amount(self, amount: Amount) -> int:
        """
        Scale an amount to the asset's smallest unit. Amounts finer than the
        asset's precision are rejected instead of being rounded.
        """
        scaled = to_decimal(amount).scaleb(self.decimals)
        if scaled != scaled.to_integral_value():
            raise ArgumentError(
                f"Amount {amount} exceeds the {self.decimals} decimal precision of {self.asset_id}"
            )
        return int(scaled)

    def from_atomic_amount(self, atomic_amount: Union[int, str]) -> Decimal:
        return Decimal(str(atomic_amount)).scaleb(-self.decimals)


class Test(unittest.IsolatedAsyncioTestCase):
    def test_conversion(self):
        eth = Asset("base-sepolia", "eth", 18)
        self.assertEqual(eth.to_atomic_amount("3.1"), 3_100_000_000_000_000_000)
        self.assertEqual(eth.to_atomic_amount(0.1), 100_000_000_000_000_000)
        self.assertEqual(eth.from_atomic_amount("3000000000000000000"), Decimal(3))

        usdc = Asset("base-sepolia", "usdc", 6)
        self.assertEqual(usdc.from_atomic_amount(1_500_000), Decimal("1.5"))

    def test_invalid_amount(self):
        with self.assertRaises(ArgumentError):
            to_decimal("one")

    def test_non_finite_amount(self):
        for amount in ("NaN", "Infinity", "-Infinity", Decimal("NaN"), float("inf")):
            with self.assertRaises(ArgumentError):
                to_decimal(amount)

    def test_amount_below_precision(self):
        eth = Asset("base-sepolia", "eth", 18)
        with self.assertRaises(ArgumentError):
            eth.to_atomic_amount(Decimal("1e-19"))

        usdc = Asset("base-sepolia", "usdc", 6)
        with self.assertRaises(ArgumentError):
            usdc.to_atomic_amount("1.0000001")
        self.assertEqual(usdc.to_atomic_amount("1.000001"), 1_000_001)

    async def test_fetch(self):
        api = unittest.mock.Mock(spec=ApiClient)
        api.get_asset = unittest.mock.AsyncMock(
            return_value={
                "network_id": "base-sepolia",
                "asset_id": "usdc",
                "decimals": 6,
                "contract_address": "0x036c",
            }
        )

        asset = await Asset.fetch(api, "base-sepolia", "usdc")

        api.get_asset.assert_awaited_once_with("base-sepolia", "usdc")
        self.assertEqual(asset.decimals, 6)
        self.assertEqual(asset.contract_address, "0x036c")


if __name__ == "__main__":
    unittest.main()
