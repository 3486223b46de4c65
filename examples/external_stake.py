# SPDX-License-Identifier: Apache-2.0

"""
External address staking example.

Checks the stakeable balance of the signer's address, builds a partial ETH
stake, signs every transaction locally and waits for the operation.
Broadcasting the signed payloads to the network is left to the caller's own
node connection; the example prints them.

    ONCHAIN_PRIVATE_KEY=0x... python -m examples.external_stake
"""

import asyncio
from decimal import Decimal

from onchain_sdk.address import ExternalAddress
from onchain_sdk.api_client import ApiClient
from onchain_sdk.errors import ArgumentError, PollTimeoutError

from .common import CLIENT_CONFIG, STAKING_NETWORK, load_signer

AMOUNT = Decimal("0.005")


async def main():
    async with ApiClient(CLIENT_CONFIG) as api:
        signer = load_signer()
        address = ExternalAddress(api, STAKING_NETWORK, signer.address)

        print("\n=== Balances ===")
        for name, balance in (await address.staking_balances("eth")).items():
            print(f"{name}: {balance}")

        try:
            operation = await address.build_stake_operation(AMOUNT, "eth")
        except ArgumentError as error:
            print(error)
            return

        operation.sign(signer)
        print("\n=== Signed transactions ===")
        for transaction in operation.transactions:
            print(transaction.signed_payload)

        try:
            await operation.wait()
        except PollTimeoutError as error:
            print(error)
            return
        print(f"\nFinal status: {operation.status()}")


if __name__ == "__main__":
    asyncio.run(main())
