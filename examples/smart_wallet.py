# SPDX-License-Identifier: Apache-2.0

"""
Smart wallet example: create a wallet owned by a local key and send a batch of
two calls on Base Sepolia, one raw value transfer and one ERC-20 transfer.

Examples:
    Run with a funded owner key::

        ONCHAIN_PRIVATE_KEY=0x... python -m examples.smart_wallet

    Expected output::

        === Smart wallet ===
        Address: 0x...
        === User operation ===
        Broadcast: op-...
        Final status: complete (0x...)
"""

import asyncio

from onchain_sdk.api_client import ApiClient
from onchain_sdk.errors import PollTimeoutError
from onchain_sdk.network import transaction_link
from onchain_sdk.smart_wallet import create_smart_wallet
from onchain_sdk.user_operation import ContractCall, RawCall
from onchain_sdk.wait import WaitOptions

from .common import CLIENT_CONFIG, load_signer

BASE_SEPOLIA_CHAIN_ID = 84532
USDC = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"

ERC20_ABI = [
    {
        "type": "function",
        "name": "transfer",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    }
]


async def main():
    async with ApiClient(CLIENT_CONFIG) as api:
        owner = load_signer()
        wallet = await create_smart_wallet(api, owner)
        wallet = wallet.use_network(BASE_SEPOLIA_CHAIN_ID)

        print("\n=== Smart wallet ===")
        print(f"Address: {wallet.address}")

        recipient = load_signer().address
        sent = await wallet.send_user_operation(
            api,
            [
                RawCall(to=recipient, value=1),
                ContractCall(
                    to=USDC,
                    abi=ERC20_ABI,
                    function_name="transfer",
                    args=[recipient, 10],
                ),
            ],
        )
        print("\n=== User operation ===")
        print(f"Broadcast: {sent.id}")

        try:
            result = await wallet.wait_for_user_operation(
                api, sent.id, WaitOptions(timeout_seconds=60)
            )
        except PollTimeoutError as error:
            print(error)
            return
        print(f"Final status: {result.status.value} ({result.transaction_hash})")
        if result.transaction_hash:
            print(transaction_link("base-sepolia", result.transaction_hash))


if __name__ == "__main__":
    asyncio.run(main())
