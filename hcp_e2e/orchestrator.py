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

"""Run scenarios as parallel, isolated units and report on them."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any

from rich.panel import Panel

from hcp_e2e import console, logger
from hcp_e2e.config import HarnessConfig
from hcp_e2e.constants import DEFAULT_MAX_PARALLEL_SCENARIOS
from hcp_e2e.errors import ScenarioSkipped
from hcp_e2e.kube import KubeClient
from hcp_e2e.lifecycle import Outcome
from hcp_e2e.poller import Context
from hcp_e2e.scenarios import run_scenario

# ============================================================================
# Internal helpers
# ============================================================================


def _run_parallel(
    tasks: dict[str, Callable[[], Any]],
    max_workers: int,
    on_interrupt: Callable[[], None] | None = None,
) -> dict[str, Any]:
    """Run tasks in parallel, printing each task's output as a clean block.

    Args:
        tasks: Mapping of task name to callable.
        max_workers: Upper bound on concurrently running tasks.
        on_interrupt: Called when the caller is interrupted, before waiting
            for running tasks to wind down.

    Returns:
        Mapping of task name to its return value, or to the exception it raised.
    """
    if not tasks:
        return {}

    outputs: dict[str, str] = {}
    results: dict[str, Any] = {}
    lock = threading.Lock()

    def _run_task(name: str, fn: Callable[[], Any]) -> Any:
        with console.buffered(title=name) as buf:
            try:
                return fn()
            finally:
                with lock:
                    outputs[name] = buf.getvalue()

    with ThreadPoolExecutor(max_workers=min(len(tasks), max_workers)) as executor:
        futures = {executor.submit(_run_task, name, fn): name for name, fn in tasks.items()}
        try:
            for future in as_completed(futures):
                name = futures[future]
                try:
                    results[name] = future.result()
                except Exception as err:
                    logger.error("%s raised %s: %s", name, type(err).__name__, err)
                    results[name] = err
        except KeyboardInterrupt:
            if on_interrupt is not None:
                on_interrupt()
            raise

    for name in tasks:
        if outputs.get(name):
            console.out(outputs[name], end="", highlight=False)
    return results


# ============================================================================
# Public API
# ============================================================================


@dataclass
class RunReport:
    """What happened to every requested scenario.

    Attributes:
        outcomes: Outcomes of scenarios that ran.
        skipped: Reason per scenario the configuration could not support.
        errors: Error per scenario that could not be started.
    """

    outcomes: dict[str, Outcome] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return not self.errors and all(o.passed for o in self.outcomes.values())


def run_scenarios(
    names: list[str],
    config: HarnessConfig,
    mgmt: KubeClient,
    ctx: Context | None = None,
    *,
    max_parallel: int = DEFAULT_MAX_PARALLEL_SCENARIOS,
) -> RunReport:
    """Run the named scenarios concurrently.

    Every scenario gets its own child of *ctx*, so cancelling *ctx* (or an
    interrupt) stops all of them; each still tears its cluster down.

    Args:
        names: Scenario names, see ``hcp_e2e.scenarios.SCENARIOS``.
        config: Shared, frozen harness configuration.
        mgmt: Management cluster client, shared read-mostly.
        ctx: Root cancellation scope, or None for a fresh one.
        max_parallel: Upper bound on concurrently running scenarios.

    Returns:
        The report; scenarios that raised are listed under ``errors``.
    """
    ctx = ctx or Context()

    def _run_one(name: str) -> Outcome | ScenarioSkipped:
        try:
            return run_scenario(name, config, mgmt, ctx.child())
        except ScenarioSkipped as skip:
            return skip

    tasks: dict[str, Callable[[], Any]] = {name: (lambda n=name: _run_one(n)) for name in names}
    console.print(Panel.fit(f"Running {len(tasks)} scenario(s)", style="bold blue"))
    results = _run_parallel(tasks, max_parallel, on_interrupt=ctx.cancel)

    report = RunReport()
    for name in names:
        result = results.get(name)
        if isinstance(result, Outcome):
            report.outcomes[name] = result
        elif isinstance(result, ScenarioSkipped):
            report.skipped[name] = str(result)
        else:
            report.errors[name] = f"{type(result).__name__}: {result}"
    return report


def display_report(report: RunReport) -> None:
    """Print a per-scenario summary of *report*."""
    console.print(Panel.fit("Results", style="bold blue"))
    for name, outcome in report.outcomes.items():
        if outcome.passed:
            console.print(f"[green]\u2705 {name}[/green]")
        else:
            console.print(f"[red]\u274c {name}[/red]")
            for failure in outcome.failures:
                console.print(f"    {failure}")
            for err in outcome.teardown_errors:
                console.print(f"    [yellow]teardown: {err}[/yellow]")
        for note in outcome.notes:
            console.print(f"    [yellow]\u2139\ufe0f  {note}[/yellow]")
    for name, reason in report.skipped.items():
        console.print(f"[yellow]\u26a0\ufe0f  {name} skipped: {reason}[/yellow]")
    for name, err in report.errors.items():
        console.print(f"[red]\u274c {name}: {err}[/red]")
