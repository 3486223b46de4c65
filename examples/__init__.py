"""
onchain-sdk examples.

Runnable scripts showing each asynchronous operation from creation to a
terminal state:

    - common.py: Shared configuration read from the environment
    - faucet_transfer.py: Fund an address from the faucet, then transfer from a wallet
    - smart_wallet.py: Create a smart wallet and send a batched user operation
    - external_stake.py: Build, sign, broadcast and wait on a staking operation

Run them as modules::

    ONCHAIN_API_KEY=... python -m examples.smart_wallet

All examples default to test networks.
"""
