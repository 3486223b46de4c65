# SPDX-License-Identifier: Apache-2.0

"""Gasless sends: the sender signs an EIP-3009 authorization, the platform pays gas."""

from __future__ import annotations

import json
import unittest
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InternalError
from .signer import LocalSigner, Signer


class SponsoredSendStatus(Enum):
    PENDING = "pending"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    COMPLETE = "complete"
    FAILED = "failed"

    @staticmethod
    def from_wire(value: Optional[str]) -> Optional[SponsoredSendStatus]:
        try:
            return SponsoredSendStatus(value)
        except ValueError:
            return None


class SponsoredSend:
    model: Dict[str, Any]

    def __init__(self, model: Dict[str, Any]):
        if not model:
            raise InternalError("Sponsored send model cannot be empty")
        self.model = model

    @property
    def typed_data_hash(self) -> str:
        """Keccak256 hash of the typed data the sender must sign."""
        return self.model["typed_data_hash"]

    def raw_typed_data(self) -> Any:
        return json.loads(bytes.fromhex(self.model["raw_typed_data"]).decode("utf-8"))

    @property
    def signature(self) -> Optional[str]:
        return self.model.get("signature")

    @property
    def transaction_hash(self) -> Optional[str]:
        return self.model.get("transaction_hash")

    @property
    def transaction_link(self) -> Optional[str]:
        return self.model.get("transaction_link")

    def status(self) -> Optional[SponsoredSendStatus]:
        return SponsoredSendStatus.from_wire(self.model.get("status"))

    def is_signed(self) -> bool:
        return bool(self.signature)

    def is_terminal_state(self) -> bool:
        return self.status() in (SponsoredSendStatus.COMPLETE, SponsoredSendStatus.FAILED)

    async def sign(self, signer: Signer) -> str:
        signature = await signer.sign(self.typed_data_hash)
        self.model["signature"] = signature
        return signature

    def __str__(self) -> str:
        status = self.status()
        return (
            f"SponsoredSend {{ transactionHash: '{self.transaction_hash}', "
            f"status: '{status.value if status else None}', "
            f"typedDataHash: '{self.typed_data_hash}', signature: {self.signature}, "
            f"transactionLink: {self.transaction_link} }}"
        )


class Test(unittest.IsolatedAsyncioTestCase):
    def model(self) -> Dict[str, Any]:
        return {
            "to_address_id": "0xdest",
            "raw_typed_data": json.dumps({"primaryType": "TransferWithAuthorization"})
            .encode("utf-8")
            .hex(),
            "typed_data_hash": "0x" + "12" * 32,
            "status": "pending",
        }

    async def test_sign(self):
        sponsored_send = SponsoredSend(self.model())
        self.assertFalse(sponsored_send.is_signed())

        signature = await sponsored_send.sign(LocalSigner.generate())

        self.assertTrue(sponsored_send.is_signed())
        self.assertEqual(sponsored_send.signature, signature)

    def test_status(self):
        sponsored_send = SponsoredSend(self.model())
        self.assertEqual(sponsored_send.status(), SponsoredSendStatus.PENDING)
        self.assertFalse(sponsored_send.is_terminal_state())

        sponsored_send.model["status"] = "complete"
        self.assertTrue(sponsored_send.is_terminal_state())

        sponsored_send.model["status"] = "bogus"
        self.assertIsNone(sponsored_send.status())

    def test_raw_typed_data(self):
        self.assertEqual(
            SponsoredSend(self.model()).raw_typed_data(),
            {"primaryType": "TransferWithAuthorization"},
        )


if __name__ == "__main__":
    unittest.main()
