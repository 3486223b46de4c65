import asyncio
import typing

from behave import given, then, use_step_matcher, when

from onchain_sdk.errors import PollTimeoutError
from onchain_sdk.wait import FakeClock, WaitOptions, wait

# Use regular expressions
use_step_matcher("re")


@given(r"reload results \[(?P<values>.*)]")
def given_reload_results(context: typing.Any, values: str):
    context.results = [value.strip() for value in values.split(",")]
    context.repeat_last = False


@given(r"reload results forever (?P<value>\S+)")
def given_reload_forever(context: typing.Any, value: str):
    context.results = [value]
    context.repeat_last = True


@when(
    r"waiting until (?P<terminal>\S+) with interval (?P<interval>[0-9.]+) "
    r"and timeout (?P<timeout>[0-9.]+)"
)
def when_waiting(context: typing.Any, terminal: str, interval: str, timeout: str):
    context.calls = 0
    context.clock = FakeClock()
    context.error = None

    async def reload() -> str:
        index = context.calls
        context.calls += 1
        if context.repeat_last:
            return context.results[-1]
        return context.results[index]

    try:
        context.output = asyncio.run(
            wait(
                reload,
                lambda value: value == terminal,
                options=WaitOptions(float(interval), float(timeout)),
                clock=context.clock,
            )
        )
    except PollTimeoutError as error:
        context.error = error


@then(r"the result should be (?P<expected>\S+)")
def then_result(context: typing.Any, expected: str):
    assert context.error is None, f"unexpected error {context.error}"
    assert context.output == expected, f"{context.output} != {expected}"


@then(r"a timeout error should be raised")
def then_timeout(context: typing.Any):
    assert isinstance(context.error, PollTimeoutError)
    assert "may still succeed" in str(context.error)


@then(r"reload should have been called (?P<count>\d+) times")
def then_reload_count(context: typing.Any, count: str):
    assert context.calls == int(count), f"{context.calls} != {count}"


@then(r"the clock should have slept (?P<count>\d+) times")
def then_sleep_count(context: typing.Any, count: str):
    assert len(context.clock.sleeps) == int(count), context.clock.sleeps


@then(r"the elapsed time should be at least (?P<seconds>[0-9.]+) seconds")
def then_elapsed(context: typing.Any, seconds: str):
    assert context.clock.now >= float(seconds), context.clock.now
