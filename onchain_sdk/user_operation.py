# SPDX-License-Identifier: Apache-2.0

"""
Batched calls executed by a smart wallet.

A user operation groups one or more calls, each reduced to a ``{to, data,
value}`` triple:

- ContractCall carries a contract ABI, a function name and its arguments, and
  is ABI encoded into ``data``.
- RawCall carries pre-encoded ``data`` (``0x`` when omitted, i.e. a plain value
  transfer).

The platform turns the batch into an unsigned user operation hash, the smart
wallet's owner signs it, and the signature is broadcast. Completion is then
observed with ``wait_for_user_operation``.

Examples:
    Send an ERC-20 transfer and wait for it::

        result = await send_user_operation(
            api,
            wallet,
            [ContractCall(to=usdc, abi=ERC20_ABI, function_name="transfer", args=[dest, 10**6])],
            chain_id=84532,
        )
        final = await wait_for_user_operation(api, result.id, result.smart_wallet_address)
        print(final.status, final.transaction_hash)
"""

from __future__ import annotations

import logging
import unittest
import unittest.mock
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

from eth_abi import encode
from eth_utils import function_abi_to_4byte_selector
from eth_utils.abi import collapse_if_tuple

from .api_client import ApiClient, ClientConfig
from .errors import (
    ArgumentError,
    InternalError,
    InvalidConfiguration,
    NotFoundError,
    PollTimeoutError,
)
from .network import create_network
from .signer import LocalSigner
from .wait import Clock, FakeClock, WaitOptions, wait

if TYPE_CHECKING:
    from .smart_wallet import SmartWallet


class UserOperationStatus(Enum):
    PENDING = "pending"
    SIGNED = "signed"
    BROADCAST = "broadcast"
    COMPLETE = "complete"
    FAILED = "failed"

    @staticmethod
    def from_wire(value: Optional[str]) -> Optional[UserOperationStatus]:
        try:
            return UserOperationStatus(value)
        except ValueError:
            return None


TERMINAL_STATES = frozenset([UserOperationStatus.COMPLETE, UserOperationStatus.FAILED])


@dataclass
class ContractCall:
    to: str
    abi: List[Dict[str, Any]]
    function_name: str
    args: Sequence[Any] = field(default_factory=list)
    value: int = 0


@dataclass
class RawCall:
    to: str
    data: str = "0x"
    value: int = 0


Call = Union[ContractCall, RawCall]


@dataclass
class UserOperationResult:
    id: str
    smart_wallet_address: str
    status: Optional[UserOperationStatus]
    transaction_hash: Optional[str] = None


def encode_function_data(
    abi: List[Dict[str, Any]], function_name: str, args: Sequence[Any]
) -> str:
    """ABI encode a function call: 4-byte selector followed by the encoded arguments.

    :raises ArgumentError: If the ABI has no function of that name and arity.
    """
    for entry in abi:
        if entry.get("type", "function") != "function":
            continue
        if entry.get("name") != function_name:
            continue
        inputs = entry.get("inputs", [])
        if len(inputs) != len(args):
            continue
        types = [collapse_if_tuple(item) for item in inputs]
        selector = function_abi_to_4byte_selector(entry)
        return "0x" + (selector + encode(types, list(args))).hex()
    raise ArgumentError(
        f"Function {function_name} with {len(args)} arguments not found in ABI"
    )


def encode_call(call: Call) -> Dict[str, str]:
    if isinstance(call, ContractCall):
        data = encode_function_data(call.abi, call.function_name, call.args)
    else:
        data = call.data or "0x"
    return {"to": call.to, "data": data, "value": str(call.value or 0)}


async def send_user_operation(
    api: ApiClient,
    wallet: SmartWallet,
    calls: Sequence[Call],
    chain_id: Optional[int] = None,
    paymaster_url: Optional[str] = None,
) -> UserOperationResult:
    """
    Create, sign and broadcast a user operation.

    :param wallet: The smart wallet executing the calls.
    :param calls: At least one call.
    :param chain_id: Target chain, defaults to the network selected with ``use_network``.
    :param paymaster_url: Optional paymaster sponsoring the gas.
    :return: A result in the broadcast state.
    :raises ArgumentError: If ``calls`` is empty.
    :raises InvalidConfiguration: If no network was provided or selected.
    :raises ApiError: If an API request fails.
    """
    if not calls:
        raise ArgumentError("Calls list cannot be empty")

    if chain_id is not None:
        network = create_network(chain_id)
    elif wallet.network is not None:
        network = wallet.network
    else:
        raise InvalidConfiguration("Network not set - call use_network(chain_id) first")

    encoded_calls = [encode_call(call) for call in calls]
    created = await api.create_user_operation(
        wallet.address,
        network.network_id,
        encoded_calls,
        paymaster_url or wallet.paymaster_url,
    )
    if not created:
        raise InternalError("Failed to create user operation")

    signature = await wallet.owners[0].sign(created["unsigned_payload"])
    broadcast = await api.broadcast_user_operation(
        wallet.address, created["id"], signature
    )
    if not broadcast or not broadcast.get("status"):
        raise InternalError("Failed to broadcast user operation")

    logging.info(
        f"broadcast user operation {broadcast['id']} for {wallet.address} "
        f"on {network.network_id}"
    )
    return UserOperationResult(
        id=broadcast["id"],
        smart_wallet_address=wallet.address,
        status=UserOperationStatus.BROADCAST,
        transaction_hash=broadcast.get("transaction_hash"),
    )


async def wait_for_user_operation(
    api: ApiClient,
    id: str,
    smart_wallet_address: str,
    options: Optional[WaitOptions] = None,
    *,
    clock: Optional[Clock] = None,
) -> UserOperationResult:
    """
    Poll a user operation until it is complete or failed.

    :param options: Defaults to the configured user operation budget (30 seconds).
    :raises NotFoundError: If the operation cannot be loaded.
    :raises PollTimeoutError: If the operation is still in flight after the timeout.
    """
    if options is None:
        options = WaitOptions(
            timeout_seconds=api.client_config.user_operation_wait_in_seconds
        )

    async def reload() -> Dict[str, Any]:
        operation = await api.get_user_operation(smart_wallet_address, id)
        if not operation:
            raise NotFoundError(f"User operation {id} not found", id)
        return operation

    def is_terminal(operation: Dict[str, Any]) -> bool:
        return UserOperationStatus.from_wire(operation.get("status")) in TERMINAL_STATES

    def transform(operation: Dict[str, Any]) -> UserOperationResult:
        return UserOperationResult(
            id=operation.get("id", id),
            smart_wallet_address=smart_wallet_address,
            status=UserOperationStatus.from_wire(operation.get("status")),
            transaction_hash=operation.get("transaction_hash") or None,
        )

    return await wait(reload, is_terminal, transform, options, clock=clock)


ERC20_TRANSFER_ABI = [
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


class Test(unittest.IsolatedAsyncioTestCase):
    recipient = "0x1111111111111111111111111111111111111111"

    def api(self) -> unittest.mock.Mock:
        api = unittest.mock.Mock(spec=ApiClient)
        api.client_config = ClientConfig()
        api.create_user_operation = unittest.mock.AsyncMock(
            return_value={"id": "op-1", "unsigned_payload": "0x" + "ab" * 32}
        )
        api.broadcast_user_operation = unittest.mock.AsyncMock(
            return_value={"id": "op-1", "status": "broadcast"}
        )
        return api

    def wallet(self):
        from .smart_wallet import to_smart_wallet

        return to_smart_wallet("0xsmart", LocalSigner.generate())

    def test_encode_contract_call(self):
        encoded = encode_call(
            ContractCall(
                to="0xtoken",
                abi=ERC20_TRANSFER_ABI,
                function_name="transfer",
                args=[self.recipient, 1000],
            )
        )

        self.assertEqual(
            encoded["data"],
            "0xa9059cbb"
            + "0" * 24
            + "11" * 20
            + format(1000, "064x"),
        )
        self.assertEqual(encoded["value"], "0")
        self.assertEqual(encoded["to"], "0xtoken")

    def test_encode_raw_call(self):
        self.assertEqual(
            encode_call(RawCall(to=self.recipient, value=10**18)),
            {"to": self.recipient, "data": "0x", "value": "1000000000000000000"},
        )

    def test_encode_unknown_function(self):
        with self.assertRaises(ArgumentError):
            encode_function_data(ERC20_TRANSFER_ABI, "approve", [self.recipient, 1])

    async def test_send(self):
        api = self.api()
        wallet = self.wallet()

        result = await send_user_operation(
            api, wallet, [RawCall(to=self.recipient, value=1)], chain_id=84532
        )

        api.create_user_operation.assert_awaited_once_with(
            "0xsmart",
            "base-sepolia",
            [{"to": self.recipient, "data": "0x", "value": "1"}],
            None,
        )
        signature = api.broadcast_user_operation.await_args.args[2]
        self.assertEqual(signature, await wallet.owners[0].sign("0x" + "ab" * 32))
        self.assertEqual(result.status, UserOperationStatus.BROADCAST)
        self.assertEqual(result.id, "op-1")

    async def test_send_uses_selected_network(self):
        api = self.api()
        wallet = self.wallet().use_network(8453, paymaster_url="https://paymaster")

        await send_user_operation(api, wallet, [RawCall(to=self.recipient)])

        api.create_user_operation.assert_awaited_once_with(
            "0xsmart",
            "base-mainnet",
            [{"to": self.recipient, "data": "0x", "value": "0"}],
            "https://paymaster",
        )

    async def test_send_empty_calls(self):
        api = self.api()
        with self.assertRaises(ArgumentError):
            await send_user_operation(api, self.wallet(), [], chain_id=84532)
        api.create_user_operation.assert_not_awaited()

    async def test_send_without_network(self):
        api = self.api()
        with self.assertRaises(InvalidConfiguration) as context:
            await send_user_operation(api, self.wallet(), [RawCall(to=self.recipient)])
        self.assertIn("use_network", str(context.exception))
        api.create_user_operation.assert_not_awaited()

    async def test_wait_complete(self):
        api = self.api()
        api.get_user_operation = unittest.mock.AsyncMock(
            side_effect=[
                {"id": "op-1", "status": "pending"},
                {"id": "op-1", "status": "broadcast"},
                {"id": "op-1", "status": "complete", "transaction_hash": "0xhash"},
            ]
        )
        clock = FakeClock()

        result = await wait_for_user_operation(api, "op-1", "0xsmart", clock=clock)

        self.assertEqual(api.get_user_operation.await_count, 3)
        self.assertEqual(result.status, UserOperationStatus.COMPLETE)
        self.assertEqual(result.transaction_hash, "0xhash")

    async def test_wait_failed_has_no_hash(self):
        api = self.api()
        api.get_user_operation = unittest.mock.AsyncMock(
            return_value={"id": "op-1", "status": "failed"}
        )

        result = await wait_for_user_operation(api, "op-1", "0xsmart", clock=FakeClock())

        self.assertEqual(result.status, UserOperationStatus.FAILED)
        self.assertIsNone(result.transaction_hash)

    async def test_wait_default_timeout(self):
        api = self.api()
        api.get_user_operation = unittest.mock.AsyncMock(
            return_value={"id": "op-1", "status": "pending"}
        )
        clock = FakeClock()

        with self.assertRaises(PollTimeoutError) as context:
            await wait_for_user_operation(api, "op-1", "0xsmart", clock=clock)

        self.assertIn("30", str(context.exception))
        self.assertGreaterEqual(clock.now, 30)

    async def test_wait_not_found(self):
        api = self.api()
        api.get_user_operation = unittest.mock.AsyncMock(return_value=None)

        with self.assertRaises(NotFoundError):
            await wait_for_user_operation(api, "op-1", "0xsmart", clock=FakeClock())
        api.get_user_operation.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
