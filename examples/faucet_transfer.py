# SPDX-License-Identifier: Apache-2.0

"""
Faucet and transfer example.

Funds the wallet address from the Base Sepolia faucet, then sends a small ETH
transfer from it to a fresh address, signing the transaction locally.

Requires ONCHAIN_WALLET_ID, ONCHAIN_WALLET_ADDRESS and the ONCHAIN_PRIVATE_KEY
owning that address::

    python -m examples.faucet_transfer
"""

import asyncio
from decimal import Decimal

from onchain_sdk.api_client import ApiClient
from onchain_sdk.faucet_transaction import FaucetTransaction
from onchain_sdk.signer import LocalSigner
from onchain_sdk.transfer import Transfer
from onchain_sdk.wait import WaitOptions

from .common import CLIENT_CONFIG, WALLET_ADDRESS, WALLET_ID, load_signer

NETWORK_ID = "base-sepolia"


async def main():
    assert WALLET_ID and WALLET_ADDRESS, "ONCHAIN_WALLET_ID and ONCHAIN_WALLET_ADDRESS are required"

    async with ApiClient(CLIENT_CONFIG) as api:
        signer = load_signer()

        faucet_tx = await FaucetTransaction.request(api, NETWORK_ID, WALLET_ADDRESS)
        await faucet_tx.wait(WaitOptions(timeout_seconds=60))
        print("\n=== Faucet ===")
        print(faucet_tx)

        destination = LocalSigner.generate().address
        transfer = await Transfer.create(
            api,
            WALLET_ID,
            WALLET_ADDRESS,
            Decimal("0.00001"),
            "eth",
            destination,
            NETWORK_ID,
        )
        await transfer.sign(signer)
        transfer = await transfer.broadcast()
        await transfer.wait(WaitOptions(timeout_seconds=60))

        print("\n=== Transfer ===")
        print(transfer)


if __name__ == "__main__":
    asyncio.run(main())
