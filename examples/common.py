# SPDX-License-Identifier: Apache-2.0

"""
Common configuration for the onchain-sdk examples.

Environment Variables:
    ONCHAIN_API_URL: Root URL of the platform API
    ONCHAIN_API_KEY: Bearer token sent with every request
    ONCHAIN_PRIVATE_KEY: Hex private key of the signer, a fresh key is generated when unset
    ONCHAIN_WALLET_ID: Platform wallet used by the transfer example
    ONCHAIN_WALLET_ADDRESS: Address of that wallet, owned by ONCHAIN_PRIVATE_KEY
    ONCHAIN_STAKING_NETWORK: Network used by the staking example (default: ethereum-holesky)
"""

import os

from onchain_sdk.api_client import ClientConfig
from onchain_sdk.signer import LocalSigner

# :!:>section_1
CLIENT_CONFIG = ClientConfig.from_env()

PRIVATE_KEY = os.getenv("ONCHAIN_PRIVATE_KEY")

WALLET_ID = os.getenv("ONCHAIN_WALLET_ID")

WALLET_ADDRESS = os.getenv("ONCHAIN_WALLET_ADDRESS")

STAKING_NETWORK = os.getenv("ONCHAIN_STAKING_NETWORK", "ethereum-holesky")
# <:!:section_1


def load_signer() -> LocalSigner:
    if PRIVATE_KEY:
        return LocalSigner(PRIVATE_KEY)
    return LocalSigner.generate()
