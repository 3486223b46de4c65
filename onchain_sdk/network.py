# SPDX-License-Identifier: Apache-2.0

"""Chain identifiers, platform network identifiers and block explorer links."""

from __future__ import annotations

import unittest
from dataclasses import dataclass
from typing import Dict, Optional

from .errors import ArgumentError

BASE_MAINNET = "base-mainnet"
BASE_SEPOLIA = "base-sepolia"
ETHEREUM_MAINNET = "ethereum-mainnet"
ETHEREUM_HOLESKY = "ethereum-holesky"
POLYGON_MAINNET = "polygon-mainnet"
ARBITRUM_MAINNET = "arbitrum-mainnet"

# Only smart wallet chains are listed here.
CHAIN_ID_TO_NETWORK_ID: Dict[int, str] = {
    8453: BASE_MAINNET,
    84532: BASE_SEPOLIA,
}

EXPLORER_TRANSACTION_URLS: Dict[str, str] = {
    BASE_MAINNET: "https://basescan.org/tx/{transaction_hash}",
    BASE_SEPOLIA: "https://sepolia.basescan.org/tx/{transaction_hash}",
    ETHEREUM_MAINNET: "https://etherscan.io/tx/{transaction_hash}",
    ETHEREUM_HOLESKY: "https://holesky.etherscan.io/tx/{transaction_hash}",
    POLYGON_MAINNET: "https://polygonscan.com/tx/{transaction_hash}",
    ARBITRUM_MAINNET: "https://arbiscan.io/tx/{transaction_hash}",
}


@dataclass(frozen=True)
class Network:
    chain_id: int
    network_id: str


def create_network(chain_id: int) -> Network:
    """Resolve a supported chain ID into a Network.

    :raises ArgumentError: If the chain is not supported.
    """
    network_id = CHAIN_ID_TO_NETWORK_ID.get(chain_id)
    if network_id is None:
        raise ArgumentError(f"Unsupported chain ID: {chain_id}")
    return Network(chain_id, network_id)


def transaction_link(network_id: str, transaction_hash: Optional[str]) -> Optional[str]:
    """Block explorer URL of a transaction, or None when either part is unknown."""
    template = EXPLORER_TRANSACTION_URLS.get(network_id)
    if template is None or not transaction_hash:
        return None
    return template.format(transaction_hash=transaction_hash)


class Test(unittest.TestCase):
    def test_create_network(self):
        self.assertEqual(create_network(84532), Network(84532, BASE_SEPOLIA))
        with self.assertRaises(ArgumentError):
            create_network(1)

    def test_transaction_link(self):
        self.assertEqual(
            transaction_link(BASE_SEPOLIA, "0xabc"),
            "https://sepolia.basescan.org/tx/0xabc",
        )
        self.assertEqual(
            transaction_link(ETHEREUM_MAINNET, "0xdef"),
            "https://etherscan.io/tx/0xdef",
        )
        self.assertIsNone(transaction_link("unknown-network", "0xabc"))
        self.assertIsNone(transaction_link(BASE_MAINNET, None))


if __name__ == "__main__":
    unittest.main()
