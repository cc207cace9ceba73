# /*
# Copyright 2026 The hcp-e2e Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Cancellable contexts and the convergence poller.

A predicate has the shape ``fn(ctx) -> (done, err)``:

* ``(True, None)``  - converged, polling stops successfully.
* ``(False, None)`` - not there yet (e.g. object not found), keep polling.
* ``(False, err)``  - transient failure, logged, keep polling.
* ``(True, err)``   - terminal failure, polling stops unsuccessfully.

A predicate that raises aborts polling and the exception propagates.
"""

from __future__ import annotations

import threading
import time
import weakref
from collections.abc import Callable
from dataclasses import dataclass

from tenacity import Retrying, retry_if_result, stop_after_delay, stop_when_event_set, wait_fixed

from hcp_e2e import logger
from hcp_e2e.errors import ConvergenceCancelled, ConvergenceTimeout, HarnessError

Predicate = Callable[["Context"], "tuple[bool, Exception | None]"]


class Context:
    """Cancellation scope shared by everything one scenario does.

    Cancelling a context cancels all contexts derived from it with
    :meth:`child`. A context created without a parent is independent, which
    is what teardown uses so that aborting validation never leaks clusters.
    """

    def __init__(self, parent: Context | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()
        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: Context) -> None:
        with self._lock:
            self._children.add(child)
            cancelled = self._event.is_set()
        if cancelled:
            child.cancel()

    @property
    def event(self) -> threading.Event:
        return self._event

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def child(self) -> Context:
        return Context(parent=self)

    def cancel(self) -> None:
        self._event.set()
        with self._lock:
            children = list(self._children)
        for child in children:
            child.cancel()

    def sleep(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return False if woken by cancellation."""
        return not self._event.wait(seconds)


@dataclass(frozen=True)
class Condition:
    """A named, side-effect free predicate over observed state."""

    description: str
    check: Predicate

    def __call__(self, ctx: Context) -> tuple[bool, Exception | None]:
        return self.check(ctx)


@dataclass(frozen=True)
class PollResult:
    """Outcome of one polling run.

    Attributes:
        success: True if the predicate reported ``done`` without an error.
        last_error: Most recent error reported by the predicate, if any.
        elapsed: Wall-clock seconds spent polling.
        attempts: Number of predicate evaluations.
        cancelled: True if the context was cancelled before success.
        terminal: True if the predicate reported a terminal error.
    """

    success: bool
    last_error: Exception | None
    elapsed: float
    attempts: int
    cancelled: bool = False
    terminal: bool = False


def _describe(predicate: Predicate, description: str | None) -> str:
    return description or getattr(predicate, "description", None) or getattr(predicate, "__name__", "condition")


def poll_until(
    predicate: Predicate,
    *,
    interval: float,
    timeout: float,
    ctx: Context,
    description: str | None = None,
) -> PollResult:
    """Evaluate *predicate* every *interval* seconds until it converges.

    The first evaluation happens immediately. Polling ends when the predicate
    reports done, when *timeout* elapses, or when *ctx* is cancelled;
    cancellation interrupts the inter-attempt sleep.

    Args:
        predicate: Condition to evaluate, see the module docstring.
        interval: Seconds between evaluations.
        timeout: Seconds after which polling gives up.
        ctx: Cancellation scope.
        description: Human readable name used in logs.

    Returns:
        The polling outcome; never raises for timeout or cancellation.
    """
    what = _describe(predicate, description)
    attempts = 0
    last_error: Exception | None = None
    terminal = False
    start = time.monotonic()

    def _attempt() -> bool:
        nonlocal attempts, last_error, terminal
        if ctx.cancelled:
            return False
        attempts += 1
        done, err = predicate(ctx)
        if err is None:
            return done
        last_error = err
        if done:
            terminal = True
            return True
        logger.debug("Waiting for %s (attempt %d): %s", what, attempts, err)
        return False

    retrying = Retrying(
        stop=stop_after_delay(timeout) | stop_when_event_set(ctx.event),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda done: not done),
        retry_error_callback=lambda _state: False,
        sleep=ctx.sleep,
    )
    converged = retrying(_attempt)
    elapsed = time.monotonic() - start
    success = bool(converged) and not terminal
    return PollResult(
        success=success,
        last_error=last_error,
        elapsed=elapsed,
        attempts=attempts,
        cancelled=not success and ctx.cancelled,
        terminal=terminal,
    )


def wait_for(
    predicate: Predicate,
    *,
    interval: float,
    timeout: float,
    ctx: Context,
    description: str | None = None,
) -> PollResult:
    """Like :func:`poll_until`, but failure to converge raises.

    Raises:
        ConvergenceCancelled: If *ctx* was cancelled first.
        ConvergenceTimeout: If *timeout* elapsed first.
        HarnessError: If the predicate reported a terminal error.
    """
    what = _describe(predicate, description)
    result = poll_until(predicate, interval=interval, timeout=timeout, ctx=ctx, description=what)
    if result.success:
        logger.debug("%s converged after %.1fs (%d attempts)", what, result.elapsed, result.attempts)
        return result

    detail = f" (last error: {result.last_error})" if result.last_error else ""
    if result.terminal:
        raise HarnessError(f"{what} failed after {result.elapsed:.1f}s: {result.last_error}") from result.last_error
    if result.cancelled:
        raise ConvergenceCancelled(
            f"cancelled after {result.elapsed:.1f}s waiting for {what}"
            f" ({result.attempts} attempts){detail}"
        )
    raise ConvergenceTimeout(
        f"timed out after {result.elapsed:.1f}s (limit {timeout:.0f}s) waiting for {what}"
        f" ({result.attempts} attempts){detail}"
    )
