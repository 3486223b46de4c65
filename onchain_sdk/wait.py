# SPDX-License-Identifier: Apache-2.0

"""
Bounded polling until a remote resource reaches a terminal state.

Every asynchronous platform resource (user operations, staking operations,
transfers, fund operations, faucet transactions) is driven to completion the
same way: reload the latest state from the API, test it with a terminal-state
predicate, and sleep for a fixed interval until the predicate holds or the
time budget runs out.

Guarantees:
- ``reload`` is awaited at least once, even with a zero timeout or an abort
  already requested. No sleep happens when the first state is terminal.
- Consecutive reloads never overlap: each one starts after the previous result
  was examined.
- A failing ``reload`` propagates immediately; only the "not yet terminal"
  condition is retried.
- ``reload`` is never called after ``wait`` returns or raises.
- Reaching the deadline raises PollTimeoutError. Polling only stops locally,
  nothing is cancelled server side, so the operation may still succeed.

Examples:
    Poll a status endpoint::

        from onchain_sdk.wait import WaitOptions, wait

        async def reload():
            return (await api.get_user_operation(address, op_id))["status"]

        status = await wait(
            reload,
            lambda status: status in ("complete", "failed"),
            options=WaitOptions(timeout_seconds=30),
        )

    Stop early from another task::

        abort = asyncio.Event()
        task = asyncio.create_task(wait(reload, is_terminal, abort=abort))
        ...
        abort.set()  # task raises WaitAbortedError before its next reload
"""

from __future__ import annotations

import asyncio
import logging
import time
import unittest
import unittest.mock
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, TypeVar

from typing_extensions import Protocol

from .errors import PollTimeoutError, WaitAbortedError

T = TypeVar("T")
K = TypeVar("K")

DEFAULT_INTERVAL_SECONDS = 0.2
DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass
class WaitOptions:
    """Polling cadence and time budget.

    Attributes:
        interval_seconds: Delay between two reload attempts.
        timeout_seconds: Wall-clock budget measured from the first attempt.
    """

    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


class Clock(Protocol):
    """Time source used by the poller, replaceable with simulated time in tests."""

    def monotonic(self) -> float:
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


def timeout_message(timeout_seconds: float) -> str:
    return (
        f"Operation has not reached a terminal state after {timeout_seconds} seconds "
        "and may still succeed. Retry with a longer timeout using the "
        "timeout_seconds option."
    )


async def wait(
    reload: Callable[[], Awaitable[T]],
    is_terminal: Callable[[T], bool],
    transform: Optional[Callable[[T], K]] = None,
    options: Optional[WaitOptions] = None,
    *,
    clock: Optional[Clock] = None,
    abort: Optional[asyncio.Event] = None,
):
    """Poll ``reload`` until ``is_terminal`` accepts its result.

    :param reload: Coroutine function fetching the latest state of the resource.
    :param is_terminal: Predicate recognising a terminal state.
    :param transform: Maps the terminal state to the returned value, identity by default.
    :param options: Interval and timeout, defaults to 0.2s / 10s.
    :param clock: Time source, defaults to the system monotonic clock.
    :param abort: Optional event checked before every reload after the first.
    :return: ``transform(state)`` for the first terminal state observed.
    :raises PollTimeoutError: If no terminal state was observed within the timeout.
    :raises WaitAbortedError: If ``abort`` was set between two attempts.
    """
    options = options or WaitOptions()
    clock = clock or SystemClock()

    start_time = clock.monotonic()
    attempt = 0
    while True:
        attempt += 1
        updated = await reload()
        if is_terminal(updated):
            logging.debug(f"terminal state reached after {attempt} attempts")
            return transform(updated) if transform else updated

        if clock.monotonic() - start_time >= options.timeout_seconds:
            break
        logging.debug(f"attempt {attempt} not terminal, next in {options.interval_seconds}s")
        await clock.sleep(options.interval_seconds)
        if clock.monotonic() - start_time >= options.timeout_seconds:
            break
        if abort is not None and abort.is_set():
            raise WaitAbortedError(f"Polling aborted after {attempt} attempts")

    logging.warning(
        f"Gave up polling after {options.timeout_seconds} seconds ({attempt} attempts)"
    )
    raise PollTimeoutError(
        timeout_message(options.timeout_seconds), options.timeout_seconds
    )


class FakeClock:
    """Simulated clock: sleeping advances time instantly."""

    def __init__(self, now: float = 0.0):
        self.now = now
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class Test(unittest.IsolatedAsyncioTestCase):
    async def test_terminal_on_first_reload(self):
        clock = FakeClock()
        reload = unittest.mock.AsyncMock(return_value="COMPLETED")

        result = await wait(reload, lambda s: s == "COMPLETED", clock=clock)

        self.assertEqual(result, "COMPLETED")
        self.assertEqual(reload.await_count, 1)
        self.assertEqual(clock.sleeps, [])

    async def test_polls_until_terminal(self):
        clock = FakeClock()
        reload = unittest.mock.AsyncMock(
            side_effect=["PENDING", "PROCESSING", "COMPLETED"]
        )

        result = await wait(
            reload,
            lambda s: s == "COMPLETED",
            options=WaitOptions(interval_seconds=0.01),
            clock=clock,
        )

        self.assertEqual(result, "COMPLETED")
        self.assertEqual(reload.await_count, 3)
        self.assertEqual(clock.sleeps, [0.01, 0.01])

    async def test_terminal_at_index_k(self):
        for k in range(5):
            states = ["pending"] * k + ["done"] + ["pending"] * 3
            reload = unittest.mock.AsyncMock(side_effect=states)

            result = await wait(
                reload,
                lambda s: s == "done",
                transform=lambda s: s.upper(),
                clock=FakeClock(),
            )

            self.assertEqual(result, "DONE")
            self.assertEqual(reload.await_count, k + 1)

    async def test_transform(self):
        reload = unittest.mock.AsyncMock(return_value="COMPLETED")

        result = await wait(
            reload,
            lambda s: s == "COMPLETED",
            lambda s: {"status": s},
            clock=FakeClock(),
        )

        self.assertEqual(result, {"status": "COMPLETED"})

    async def test_timeout(self):
        clock = FakeClock()
        reload = unittest.mock.AsyncMock(return_value="PENDING")

        with self.assertRaises(PollTimeoutError) as context:
            await wait(
                reload,
                lambda s: s == "COMPLETED",
                options=WaitOptions(interval_seconds=0.2, timeout_seconds=1),
                clock=clock,
            )

        self.assertIsInstance(context.exception, TimeoutError)
        self.assertIn("after 1 seconds", str(context.exception))
        self.assertIn("may still succeed", str(context.exception))
        self.assertGreaterEqual(reload.await_count, 4)
        self.assertLessEqual(reload.await_count, 6)
        self.assertGreaterEqual(clock.now, 1)

    async def test_reload_failure_propagates(self):
        clock = FakeClock()
        reload = unittest.mock.AsyncMock(side_effect=RuntimeError("Network error"))

        with self.assertRaises(RuntimeError):
            await wait(reload, lambda s: s == "COMPLETED", clock=clock)

        self.assertEqual(reload.await_count, 1)
        self.assertEqual(clock.sleeps, [])

    async def test_abort(self):
        abort = asyncio.Event()
        clock = FakeClock()

        async def reload():
            abort.set()
            return "PENDING"

        with self.assertRaises(WaitAbortedError):
            await wait(reload, lambda s: False, clock=clock, abort=abort)
        self.assertEqual(len(clock.sleeps), 1)

    async def test_abort_already_set(self):
        abort = asyncio.Event()
        abort.set()

        reload = unittest.mock.AsyncMock(return_value="COMPLETED")
        result = await wait(
            reload, lambda s: s == "COMPLETED", clock=FakeClock(), abort=abort
        )
        self.assertEqual(result, "COMPLETED")
        self.assertEqual(reload.await_count, 1)

        reload = unittest.mock.AsyncMock(return_value="PENDING")
        with self.assertRaises(WaitAbortedError):
            await wait(reload, lambda s: False, clock=FakeClock(), abort=abort)
        self.assertEqual(reload.await_count, 1)

    async def test_zero_timeout(self):
        clock = FakeClock()
        reload = unittest.mock.AsyncMock(return_value="COMPLETED")

        result = await wait(
            reload,
            lambda s: s == "COMPLETED",
            options=WaitOptions(timeout_seconds=0),
            clock=clock,
        )

        self.assertEqual(result, "COMPLETED")
        self.assertEqual(reload.await_count, 1)

        reload = unittest.mock.AsyncMock(return_value="PENDING")
        with self.assertRaises(PollTimeoutError):
            await wait(
                reload,
                lambda s: s == "COMPLETED",
                options=WaitOptions(timeout_seconds=0),
                clock=clock,
            )
        self.assertEqual(reload.await_count, 1)
        self.assertEqual(clock.sleeps, [])

    async def test_system_clock(self):
        reload = unittest.mock.AsyncMock(side_effect=["PENDING", "COMPLETED"])

        result = await wait(
            reload,
            lambda s: s == "COMPLETED",
            options=WaitOptions(interval_seconds=0.001, timeout_seconds=5),
        )

        self.assertEqual(result, "COMPLETED")


if __name__ == "__main__":
    unittest.main()
