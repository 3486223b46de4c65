import typing
import unittest.mock

from behave import given, then, use_step_matcher

from onchain_sdk.api_client import ApiClient
from onchain_sdk.transfer import Transfer, transfer_model

# Use regular expressions
use_step_matcher("re")


@given(r"a transfer backed by a (?P<kind>\S+) with status (?P<status>\S+)")
def given_transfer(context: typing.Any, kind: str, status: str):
    delegate = {"status": status, "typed_data_hash": "0x00"}
    context.transfer = Transfer(
        unittest.mock.Mock(spec=ApiClient), transfer_model(**{kind: delegate})
    )


@then(r"the transfer status should be (?P<expected>\S+)")
def then_transfer_status(context: typing.Any, expected: str):
    status = context.transfer.status()
    actual = status.value if status else "none"
    assert actual == expected, f"{actual} != {expected}"
