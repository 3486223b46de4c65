# SPDX-License-Identifier: Apache-2.0

"""
SDK identification sent with every platform API request.

The header lets the platform attribute traffic to this SDK and its version::

    x-onchain-client: onchain-python-sdk/0.1.0
"""

import importlib.metadata as metadata

# Package name constant for metadata lookup
PACKAGE_NAME = "onchain-sdk"


class Metadata:
    CLIENT_HEADER = "x-onchain-client"

    @staticmethod
    def get_client_header_val() -> str:
        """Header value in the format ``onchain-python-sdk/{version}``.

        Source checkouts that were never installed report version 0.0.0.
        """
        try:
            version = metadata.version(PACKAGE_NAME)
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        return f"onchain-python-sdk/{version}"
