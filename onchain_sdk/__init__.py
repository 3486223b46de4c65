# SPDX-License-Identifier: Apache-2.0

"""
onchain-sdk - Asynchronous operation lifecycles for an EVM wallet platform.

Every write to the platform (a user operation, a staking operation, a
transfer, a fund operation, a faucet request) is created remotely, often
signed locally, and then completes asynchronously on chain. This package
models each of those lifecycles on top of one bounded polling primitive.

Core Features:
- **Polling**: ``wait`` reloads a resource until it is terminal or a time budget runs out
- **User Operations**: Batched calls from a single-owner smart wallet
- **Staking**: Balance-checked stake, unstake and claim operations
- **Transfers**: Self-signed or gasless sends with a derived status
- **Funding**: Fiat funding operations and testnet faucet transactions

Quick Start:
    Send a user operation and wait for it::

        import asyncio
        from onchain_sdk.api_client import ApiClient, ClientConfig
        from onchain_sdk.signer import LocalSigner
        from onchain_sdk.smart_wallet import to_smart_wallet
        from onchain_sdk.user_operation import RawCall

        async def main():
            async with ApiClient(ClientConfig.from_env()) as api:
                wallet = to_smart_wallet("0x...", LocalSigner("0x...")).use_network(84532)
                sent = await wallet.send_user_operation(api, [RawCall(to="0x...", value=1)])
                result = await wallet.wait_for_user_operation(api, sent.id)
                print(result.status, result.transaction_hash)

        asyncio.run(main())

Module Organization:
    - wait: Generic terminal-state poller and its Clock abstraction
    - api_client: ClientConfig and the httpx based platform client
    - errors: Exceptions raised across the package
    - signer: Signer protocols and the eth-account backed LocalSigner
    - network, asset: Chain/network identifiers and atomic amount conversion
    - transaction, sponsored_send: Signable on-chain payloads
    - user_operation, smart_wallet: Smart wallet batches
    - staking_operation, address: Staking
    - transfer, fund_operation, faucet_transaction: Value movements

Configuration:
    ``ClientConfig.from_env()`` reads ONCHAIN_API_URL and ONCHAIN_API_KEY.
    Default wait budgets per resource live on ClientConfig as well.

Note:
    A PollTimeoutError only means polling stopped. The remote operation was
    not cancelled and may still succeed; reload it or wait again with a
    longer timeout.
"""
