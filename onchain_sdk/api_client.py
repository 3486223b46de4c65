# SPDX-License-Identifier: Apache-2.0

"""
Asynchronous client for the onchain platform REST API.

The platform owns key custody, transaction construction, broadcasting and
staking infrastructure. This module only marshals requests and returns the
decoded JSON models; domain objects in the rest of the SDK (StakingOperation,
Transfer, FundOperation, ...) receive an ApiClient explicitly and turn those
models into typed objects.

Resources:
    - Smart wallets and user operations
    - Staking context, external and wallet staking operations
    - Transfers
    - Assets
    - Faucet transactions
    - Fund operations

Examples:
    Client from the environment::

        from onchain_sdk.api_client import ApiClient, ClientConfig

        async with ApiClient(ClientConfig.from_env()) as api:
            asset = await api.get_asset("base-sepolia", "eth")

    Explicit configuration::

        config = ClientConfig(
            base_url="https://api.example.com/platform",
            api_key="your-api-key",
            user_operation_wait_in_seconds=60,
        )
        api = ApiClient(config)
        ...
        await api.close()

Error Handling:
    - ApiError: any response with status >= 400
    - NotFoundError: 404 responses

    Errors are never retried by the client; retry policy belongs to the caller.
"""

from __future__ import annotations

import json
import logging
import os
import unittest
import unittest.mock
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .errors import ApiError, NotFoundError
from .metadata import Metadata

DEFAULT_BASE_URL = "https://api.cdp.coinbase.com/platform"


@dataclass
class ClientConfig:
    """Connection settings and wait budgets.

    Attributes:
        base_url: Root URL of the platform API.
        api_key: Optional bearer token sent with every request.
        http2: Enable HTTP/2 (default: True).
        timeout: Per-request timeout in seconds (default: 60).
        user_operation_wait_in_seconds: Default wait budget for user operations (default: 30).
        staking_wait_in_seconds: Default wait budget for staking operations (default: 3600).
        staking_poll_interval_in_seconds: Default polling interval for staking operations (default: 5).
    """

    base_url: str = DEFAULT_BASE_URL
    api_key: Optional[str] = None
    http2: bool = True
    timeout: float = 60.0
    user_operation_wait_in_seconds: float = 30
    staking_wait_in_seconds: float = 3600
    staking_poll_interval_in_seconds: float = 5

    @staticmethod
    def from_env() -> ClientConfig:
        """Build a configuration from ONCHAIN_API_URL and ONCHAIN_API_KEY."""
        return ClientConfig(
            base_url=os.getenv("ONCHAIN_API_URL", DEFAULT_BASE_URL),
            api_key=os.getenv("ONCHAIN_API_KEY"),
        )


class ApiClient:
    """Thin async wrapper over the platform endpoints the SDK consumes."""

    client: httpx.AsyncClient
    client_config: ClientConfig
    base_url: str

    def __init__(
        self,
        client_config: ClientConfig = ClientConfig(),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = client_config.base_url.rstrip("/")
        # Default timeouts but do not set a pool timeout, since pollers wait on
        # connections as long as progress is being made.
        timeout = httpx.Timeout(client_config.timeout, pool=None)
        headers = {Metadata.CLIENT_HEADER: Metadata.get_client_header_val()}
        self.client = httpx.AsyncClient(
            http2=client_config.http2,
            limits=httpx.Limits(),
            timeout=timeout,
            headers=headers,
            transport=transport,
        )
        self.client_config = client_config
        if client_config.api_key:
            self.client.headers["Authorization"] = f"Bearer {client_config.api_key}"

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    #
    # Smart wallets
    #

    async def create_smart_wallet(self, owner: str) -> Dict[str, Any]:
        response = await self._post("v1/smart_wallets", data={"owner": owner})
        return self._parse(response, "smart wallet")

    async def create_user_operation(
        self,
        smart_wallet_address: str,
        network_id: str,
        calls: List[Dict[str, str]],
        paymaster_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create an unsigned user operation for a batch of calls.

        :return: The user operation model, including the ``unsigned_payload`` hash to sign.
        """
        data: Dict[str, Any] = {"calls": calls}
        if paymaster_url:
            data["paymaster_url"] = paymaster_url
        response = await self._post(
            f"v1/smart_wallets/{smart_wallet_address}/networks/{network_id}/user_operations",
            data=data,
        )
        return self._parse(response, f"{smart_wallet_address}")

    async def broadcast_user_operation(
        self, smart_wallet_address: str, user_operation_id: str, signature: str
    ) -> Dict[str, Any]:
        response = await self._post(
            f"v1/smart_wallets/{smart_wallet_address}/user_operations/{user_operation_id}/broadcast",
            data={"signature": signature},
        )
        return self._parse(response, user_operation_id)

    async def get_user_operation(
        self, smart_wallet_address: str, user_operation_id: str
    ) -> Optional[Dict[str, Any]]:
        response = await self._get(
            f"v1/smart_wallets/{smart_wallet_address}/user_operations/{user_operation_id}"
        )
        return self._parse(response, user_operation_id)

    #
    # Staking
    #

    async def get_staking_context(
        self,
        network_id: str,
        asset_id: str,
        address_id: str,
        options: Dict[str, str],
    ) -> Dict[str, Any]:
        """
        Fetch the staking context of an address.

        :return: A model whose ``context`` holds ``stakeable_balance``,
            ``unstakeable_balance`` and ``claimable_balance`` in atomic units.
        """
        response = await self._post(
            "v1/stake/context",
            data={
                "network_id": network_id,
                "asset_id": asset_id,
                "address_id": address_id,
                "options": options,
            },
        )
        return self._parse(response, address_id)

    async def build_staking_operation(
        self,
        network_id: str,
        asset_id: str,
        address_id: str,
        action: str,
        options: Dict[str, str],
    ) -> Dict[str, Any]:
        response = await self._post(
            "v1/stake/build",
            data={
                "network_id": network_id,
                "asset_id": asset_id,
                "address_id": address_id,
                "action": action,
                "options": options,
            },
        )
        return self._parse(response, address_id)

    async def get_external_staking_operation(
        self, network_id: str, address_id: str, staking_operation_id: str
    ) -> Dict[str, Any]:
        response = await self._get(
            f"v1/networks/{network_id}/addresses/{address_id}/staking_operations/{staking_operation_id}"
        )
        return self._parse(response, staking_operation_id)

    async def create_staking_operation(
        self, wallet_id: str, address_id: str, request: Dict[str, Any]
    ) -> Dict[str, Any]:
        response = await self._post(
            f"v1/wallets/{wallet_id}/addresses/{address_id}/staking_operations",
            data=request,
        )
        return self._parse(response, address_id)

    async def broadcast_staking_operation(
        self,
        wallet_id: str,
        address_id: str,
        staking_operation_id: str,
        signed_payload: str,
        transaction_index: int,
    ) -> Dict[str, Any]:
        response = await self._post(
            f"v1/wallets/{wallet_id}/addresses/{address_id}/staking_operations/{staking_operation_id}/broadcast",
            data={
                "signed_payload": signed_payload,
                "transaction_index": transaction_index,
            },
        )
        return self._parse(response, staking_operation_id)

    async def get_staking_operation(
        self, wallet_id: str, address_id: str, staking_operation_id: str
    ) -> Dict[str, Any]:
        response = await self._get(
            f"v1/wallets/{wallet_id}/addresses/{address_id}/staking_operations/{staking_operation_id}"
        )
        return self._parse(response, staking_operation_id)

    #
    # Transfers
    #

    async def create_transfer(
        self, wallet_id: str, address_id: str, request: Dict[str, Any]
    ) -> Dict[str, Any]:
        response = await self._post(
            f"v1/wallets/{wallet_id}/addresses/{address_id}/transfers", data=request
        )
        return self._parse(response, address_id)

    async def broadcast_transfer(
        self, wallet_id: str, address_id: str, transfer_id: str, signed_payload: str
    ) -> Dict[str, Any]:
        response = await self._post(
            f"v1/wallets/{wallet_id}/addresses/{address_id}/transfers/{transfer_id}/broadcast",
            data={"signed_payload": signed_payload},
        )
        return self._parse(response, transfer_id)

    async def get_transfer(
        self, wallet_id: str, address_id: str, transfer_id: str
    ) -> Dict[str, Any]:
        response = await self._get(
            f"v1/wallets/{wallet_id}/addresses/{address_id}/transfers/{transfer_id}"
        )
        return self._parse(response, transfer_id)

    #
    # Assets and faucet
    #

    async def get_asset(self, network_id: str, asset_id: str) -> Dict[str, Any]:
        response = await self._get(f"v1/networks/{network_id}/assets/{asset_id}")
        return self._parse(response, asset_id)

    async def request_faucet_funds(
        self, network_id: str, address_id: str, asset_id: Optional[str] = None
    ) -> Dict[str, Any]:
        response = await self._post(
            f"v1/networks/{network_id}/addresses/{address_id}/faucet",
            params={"asset_id": asset_id},
        )
        return self._parse(response, address_id)

    async def get_faucet_transaction(
        self, network_id: str, address_id: str, transaction_hash: str
    ) -> Dict[str, Any]:
        response = await self._get(
            f"v1/networks/{network_id}/addresses/{address_id}/faucet/{transaction_hash}"
        )
        return self._parse(response, transaction_hash)

    #
    # Fund operations
    #

    async def create_fund_operation(
        self, wallet_id: str, address_id: str, request: Dict[str, Any]
    ) -> Dict[str, Any]:
        response = await self._post(
            f"v1/wallets/{wallet_id}/addresses/{address_id}/fund_operations",
            data=request,
        )
        return self._parse(response, address_id)

    async def get_fund_operation(
        self, wallet_id: str, address_id: str, fund_operation_id: str
    ) -> Dict[str, Any]:
        response = await self._get(
            f"v1/wallets/{wallet_id}/addresses/{address_id}/fund_operations/{fund_operation_id}"
        )
        return self._parse(response, fund_operation_id)

    async def list_fund_operations(
        self,
        wallet_id: str,
        address_id: str,
        limit: Optional[int] = None,
        page: Optional[str] = None,
    ) -> Dict[str, Any]:
        response = await self._get(
            f"v1/wallets/{wallet_id}/addresses/{address_id}/fund_operations",
            params={"limit": limit, "page": page},
        )
        return self._parse(response, address_id)

    def _parse(self, response: httpx.Response, resource: str) -> Any:
        if response.status_code == 404:
            raise NotFoundError(f"{response.text} - {resource}", resource)
        if response.status_code >= 400:
            raise ApiError(f"{response.text} - {resource}", response.status_code)
        if not response.content:
            return None
        return response.json()

    async def _post(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        # format params:
        params = {} if params is None else params
        params = {key: val for key, val in params.items() if val is not None}
        logging.debug(f"POST {endpoint}")
        return await self.client.post(
            url=f"{self.base_url}/{endpoint}",
            params=params,
            json=data,
        )

    async def _get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        # format params:
        params = {} if params is None else params
        params = {key: val for key, val in params.items() if val is not None}
        logging.debug(f"GET {endpoint}")
        return await self.client.get(
            url=f"{self.base_url}/{endpoint}",
            params=params,
        )


class Test(unittest.IsolatedAsyncioTestCase):
    def client(self, handler) -> ApiClient:
        config = ClientConfig(base_url="https://api.test/platform/", api_key="secret")
        return ApiClient(config, transport=httpx.MockTransport(handler))

    async def test_request_shape(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "op-1", "status": "broadcast"})

        async with self.client(handler) as api:
            result = await api.broadcast_user_operation("0xabc", "op-1", "0xsig")

        self.assertEqual(result["status"], "broadcast")
        request = seen[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(
            str(request.url),
            "https://api.test/platform/v1/smart_wallets/0xabc/user_operations/op-1/broadcast",
        )
        self.assertEqual(json.loads(request.content), {"signature": "0xsig"})
        self.assertEqual(request.headers["Authorization"], "Bearer secret")
        self.assertTrue(
            request.headers[Metadata.CLIENT_HEADER].startswith("onchain-python-sdk/")
        )

    async def test_none_params_dropped(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": [], "has_more": False})

        async with self.client(handler) as api:
            await api.list_fund_operations("w", "a", limit=5)

        self.assertEqual(dict(seen[0].url.params), {"limit": "5"})

    async def test_errors(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("missing"):
                return httpx.Response(404, text="not found")
            return httpx.Response(429, text="slow down")

        async with self.client(handler) as api:
            with self.assertRaises(NotFoundError) as not_found:
                await api.get_transfer("w", "a", "missing")
            with self.assertRaises(ApiError) as rate_limited:
                await api.get_transfer("w", "a", "other")

        self.assertEqual(not_found.exception.status_code, 404)
        self.assertEqual(not_found.exception.resource, "missing")
        self.assertEqual(rate_limited.exception.status_code, 429)
        self.assertNotIsInstance(rate_limited.exception, NotFoundError)

    async def test_empty_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200)

        async with self.client(handler) as api:
            self.assertIsNone(await api.get_user_operation("0xabc", "op-1"))

    def test_config_from_env(self):
        with unittest.mock.patch.dict(
            os.environ, {"ONCHAIN_API_URL": "https://x", "ONCHAIN_API_KEY": "k"}
        ):
            config = ClientConfig.from_env()
        self.assertEqual(config.base_url, "https://x")
        self.assertEqual(config.api_key, "k")
        self.assertEqual(config.staking_wait_in_seconds, 3600)


if __name__ == "__main__":
    unittest.main()
