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

"""Hosted cluster lifecycle: create, converge, validate, tear down.

``ClusterTest.execute`` drives one cluster through::

    Requested -> Provisioning -> Ready -> Validating -> TearingDown -> Done

with ``Errored`` reachable when the create request itself is rejected.
Teardown runs exactly once for every cluster that was created, whatever
happened during readiness or validation.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from rich.panel import Panel

from hcp_e2e import console, logger
from hcp_e2e.conditions import (
    hosted_cluster_conditions,
    no_crashing_pods,
    node_pools_ready,
    nodes_ready,
    object_deleted,
    rollout_complete,
)
from hcp_e2e.config import (
    AvailabilityPolicy,
    ClusterHandle,
    ClusterRequest,
    EndpointAccess,
    HarnessConfig,
    Platform,
)
from hcp_e2e.constants import (
    COND_AVAILABLE,
    CONTROL_PLANE_CONDITIONS,
    HA_MIN_ZONES,
    KIND_HOSTED_CLUSTER,
    KIND_NAMESPACE,
    KIND_NODE_POOL,
    KIND_SECRET,
)
from hcp_e2e.errors import HarnessError, KubeError, NotFoundError, PreconditionError, ScenarioFailed, StepFatal
from hcp_e2e.guest import wait_for_guest_client
from hcp_e2e.kube import KubeClient, ObjectRef
from hcp_e2e.manifests import (
    generate_name,
    hosted_cluster,
    namespace_manifest,
    node_pools,
    pull_secret,
    signing_key_secret,
)
from hcp_e2e.poller import Context, wait_for


class Phase(str, Enum):
    REQUESTED = "Requested"
    PROVISIONING = "Provisioning"
    READY = "Ready"
    VALIDATING = "Validating"
    TEARING_DOWN = "TearingDown"
    DONE = "Done"
    ERRORED = "Errored"


# ============================================================================
# Outcome
# ============================================================================

@dataclass
class Outcome:
    """Result of one scenario execution.

    Attributes:
        name: Scenario name.
        handle: Cluster identity, once one was allocated.
        phases: Every phase entered, in order.
        failures: Validation and readiness failures.
        teardown_errors: Cleanup failures, kept apart from ``failures``.
        notes: Policy decisions taken on the scenario's behalf.
    """

    name: str
    handle: ClusterHandle | None = None
    phases: list[Phase] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)
    teardown_errors: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def phase(self) -> Phase | None:
        return self.phases[-1] if self.phases else None

    @property
    def passed(self) -> bool:
        return not self.failures and not self.teardown_errors

    def advance(self, phase: Phase) -> None:
        logger.debug("%s: %s -> %s", self.name, self.phase.value if self.phase else "-", phase.value)
        self.phases.append(phase)

    def raise_for_failure(self) -> None:
        """Raise ScenarioFailed if anything went wrong; validation failures first."""
        if self.passed:
            return
        lines = [*self.failures, *(f"teardown: {e}" for e in self.teardown_errors)]
        raise ScenarioFailed(f"{self.name} failed:\n  " + "\n  ".join(lines))


# ============================================================================
# Validation context
# ============================================================================

class GuestClientCache:
    """Resolves the guest client on first use and keeps it until closed."""

    def __init__(self, resolve: Callable[[], KubeClient]) -> None:
        self._resolve = resolve
        self._client: KubeClient | None = None
        self._lock = threading.Lock()

    @property
    def resolved(self) -> bool:
        return self._client is not None

    def get(self) -> KubeClient:
        with self._lock:
            if self._client is None:
                self._client = self._resolve()
            return self._client

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None


class Step:
    """Test step handed to validation callbacks.

    Failures recorded with :meth:`error` let the step continue; :meth:`fatal`
    records and aborts the step. Subtests started with :meth:`run` fail
    independently of one another.
    """

    def __init__(self, name: str, ctx: Context, outcome: Outcome, guest: GuestClientCache | None = None) -> None:
        self.name = name
        self.ctx = ctx
        self._outcome = outcome
        self._guest = guest
        self._failed = False

    @property
    def failed(self) -> bool:
        return self._failed

    def log(self, msg: str, *args: Any) -> None:
        logger.info(f"[{self.name}] {msg}", *args)

    def error(self, msg: str) -> None:
        self._failed = True
        self._outcome.failures.append(f"{self.name}: {msg}")
        logger.error("[%s] %s", self.name, msg)

    def fatal(self, msg: str) -> None:
        self.error(msg)
        raise StepFatal(msg)

    def run(self, name: str, fn: Callable[[Step, Expect], None]) -> bool:
        """Run *fn* as a named subtest; return True if it passed."""
        sub = Step(f"{self.name}/{name}", self.ctx, self._outcome, self._guest)
        sub.log("started")
        _guarded(sub, lambda: fn(sub, Expect(sub)))
        if sub.failed:
            self._failed = True
            console.print(f"[red]\u274c {sub.name}[/red]")
        else:
            console.print(f"[green]\u2705 {sub.name}[/green]")
        return not sub.failed

    def guest_client(self) -> KubeClient:
        """Guest client for the cluster under test, resolved once on demand."""
        if self._guest is None:
            self.fatal("no guest client is available for this cluster")
        try:
            return self._guest.get()
        except HarnessError as err:
            self.fatal(f"guest client unavailable: {err}")
            raise


class Expect:
    """Assertions bound to a step; a failed assertion is fatal for it."""

    def __init__(self, t: Step) -> None:
        self._t = t

    def equal(self, actual: Any, expected: Any, what: str = "value") -> None:
        if actual != expected:
            self._t.fatal(f"{what}: expected {expected!r}, got {actual!r}")

    def true(self, condition: bool, what: str) -> None:
        if not condition:
            self._t.fatal(f"expected {what}")

    def not_empty(self, value: Any, what: str) -> None:
        if not value:
            self._t.fatal(f"{what} is empty")

    def no_error(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Call *fn* and return its result; a harness error is fatal."""
        try:
            return fn(*args, **kwargs)
        except StepFatal:
            raise
        except HarnessError as err:
            self._t.fatal(str(err))
            raise


def _guarded(t: Step, fn: Callable[[], None]) -> None:
    """Run *fn*, turning any ordinary exception into a recorded failure."""
    try:
        fn()
    except StepFatal:
        pass
    except AssertionError as err:
        t.error(f"assertion failed: {err}")
    except HarnessError as err:
        t.error(str(err))
    except Exception as err:
        logger.exception("[%s] unexpected error", t.name)
        t.error(f"unexpected {type(err).__name__}: {err}")


ValidateFn = Callable[[Step, Expect, KubeClient, ClusterHandle], None]


# ============================================================================
# Topology & readiness
# ============================================================================

def resolve_topology(request: ClusterRequest) -> tuple[ClusterRequest, list[str]]:
    """Downgrade requests the available zones cannot satisfy.

    Highly-available infrastructure needs one zone per replica. With fewer
    zones the request falls back to a single replica in the first zone.

    Returns:
        The request to create and a note for every downgrade applied.
    """
    if request.infrastructure_availability is not AvailabilityPolicy.HIGHLY_AVAILABLE:
        return request, []
    if len(request.zones) >= HA_MIN_ZONES:
        return request, []
    note = (
        f"HighlyAvailable infrastructure needs at least {HA_MIN_ZONES} zones, "
        f"got {len(request.zones)}; downgrading to SingleReplica"
    )
    logger.warning(note)
    return replace(
        request,
        infrastructure_availability=AvailabilityPolicy.SINGLE_REPLICA,
        zones=request.zones[:1],
    ), [note]


@dataclass(frozen=True)
class ReadinessProfile:
    """What "ready" means for one platform/exposure combination.

    Attributes:
        name: Profile key.
        conditions: HostedCluster conditions that must be True.
        node_pools: Wait for NodePools to report their replicas from the management side.
        guest: Resolve a guest client and wait for its nodes.
        rollout: Wait for the release rollout to complete.
        crash_check: Fail on crash looping control plane pods.
    """

    name: str
    conditions: tuple[str, ...]
    node_pools: bool = False
    guest: bool = False
    rollout: bool = False
    crash_check: bool = False


READINESS_PROFILES: dict[str, ReadinessProfile] = {
    "cloud": ReadinessProfile("cloud", (COND_AVAILABLE,), guest=True, rollout=True, crash_check=True),
    "none": ReadinessProfile("none", CONTROL_PLANE_CONDITIONS),
    "private": ReadinessProfile("private", (COND_AVAILABLE,), node_pools=True),
}


def readiness_profile(request: ClusterRequest) -> ReadinessProfile:
    if request.platform is Platform.NONE:
        return READINESS_PROFILES["none"]
    if request.endpoint_access is EndpointAccess.PRIVATE:
        return READINESS_PROFILES["private"]
    return READINESS_PROFILES["cloud"]


# ============================================================================
# Orchestrator
# ============================================================================

class ClusterTest:
    """One hosted cluster scenario.

    Args:
        name: Scenario name, used for logs and the artifact subdirectory.
        mgmt: Management cluster client; may be shared between scenarios.
        validate: Callback run once the cluster is ready, or None.
        config: Harness configuration (timeouts, pull secret, namespace prefix).
    """

    def __init__(self, name: str, mgmt: KubeClient, validate: ValidateFn | None, config: HarnessConfig) -> None:
        self.name = name
        self.mgmt = mgmt
        self.validate = validate
        self.config = config

    def execute(
        self,
        request: ClusterRequest,
        platform: Platform,
        artifact_dir: Path | None,
        signing_key: bytes | None,
        ctx: Context | None = None,
    ) -> Outcome:
        """Create the cluster, wait for it, validate it, and tear it down.

        Args:
            request: What to create.
            platform: Platform the cluster runs on.
            artifact_dir: Where to write the final HostedCluster, or None.
            signing_key: Service account signing key, or None.
            ctx: Cancellation scope; cancelling it aborts readiness and
                validation but never teardown.

        Returns:
            The outcome; inspect ``passed`` or call ``raise_for_failure``.
        """
        ctx = ctx or Context()
        outcome = Outcome(self.name)
        outcome.advance(Phase.REQUESTED)
        if request.platform is not platform:
            request = replace(request, platform=platform)
        request, notes = resolve_topology(request)
        outcome.notes.extend(notes)

        handle = ClusterHandle(generate_name(self.config.namespace_prefix), generate_name(request.name_prefix))
        outcome.handle = handle
        console.print(Panel.fit(f"{self.name}: creating {handle.namespace}/{handle.name}", style="bold blue"))

        try:
            self._create(request, handle, signing_key)
        except PreconditionError as err:
            outcome.failures.append(f"{self.name}: {err}")
            outcome.advance(Phase.ERRORED)
            console.print(f"[red]\u274c {self.name}: {err}[/red]")
            self._discard_namespace(handle, outcome)
            return outcome

        outcome.advance(Phase.PROVISIONING)
        guest = GuestClientCache(lambda: wait_for_guest_client(
            ctx, self.mgmt, handle, interval=self.config.poll_interval, timeout=self.config.guest_timeout,
        ))
        step = Step(self.name, ctx, outcome, guest)
        try:
            _guarded(step, lambda: self._provision_and_validate(step, request, handle, outcome))
        finally:
            guest.close()
            outcome.advance(Phase.TEARING_DOWN)
            self._teardown(handle, artifact_dir, outcome)
            outcome.advance(Phase.DONE)

        if outcome.passed:
            console.print(f"[green]\u2705 {self.name} passed[/green]")
        else:
            console.print(f"[red]\u274c {self.name} failed[/red]")
        return outcome

    # -- provisioning --

    def _create(self, request: ClusterRequest, handle: ClusterHandle, signing_key: bytes | None) -> None:
        """Create everything up to and including the HostedCluster.

        Raises:
            PreconditionError: If anything was rejected; the HostedCluster
                does not exist in that case.
        """
        try:
            self.mgmt.create(KIND_NAMESPACE, namespace_manifest(handle.namespace))
            pull = self.config.pull_secret()
            if pull:
                self.mgmt.create(KIND_SECRET, pull_secret(handle, pull))
            if signing_key:
                self.mgmt.create(KIND_SECRET, signing_key_secret(handle, signing_key))
            manifest = hosted_cluster(
                request, handle, with_pull_secret=bool(pull), with_signing_key=bool(signing_key),
            )
            self.mgmt.create(KIND_HOSTED_CLUSTER, manifest)
        except (KubeError, OSError, ValueError) as err:
            raise PreconditionError(f"create request rejected: {err}") from err

    def _provision_and_validate(
        self, step: Step, request: ClusterRequest, handle: ClusterHandle, outcome: Outcome,
    ) -> None:
        for pool in node_pools(request, handle):
            self.mgmt.create(KIND_NODE_POOL, pool)

        self._await_ready(step, request, handle)
        outcome.advance(Phase.READY)
        console.print(f"[green]\u2705 {self.name}: cluster ready[/green]")

        if self.validate is None:
            step.log("no validation for this scenario")
            return
        outcome.advance(Phase.VALIDATING)
        self.validate(step, Expect(step), self.mgmt, handle)

    def _await_ready(self, step: Step, request: ClusterRequest, handle: ClusterHandle) -> None:
        profile = readiness_profile(request)
        interval, timeout = self.config.poll_interval, self.config.provision_timeout
        step.log("waiting for readiness (%s profile)", profile.name)

        wait_for(hosted_cluster_conditions(self.mgmt, handle, profile.conditions),
                 interval=interval, timeout=timeout, ctx=step.ctx)
        if profile.node_pools and request.has_workers:
            wait_for(node_pools_ready(self.mgmt, handle), interval=interval, timeout=timeout, ctx=step.ctx)
        if profile.guest:
            guest = step.guest_client()
            if request.has_workers:
                wait_for(nodes_ready(guest, request.expected_nodes),
                         interval=interval, timeout=timeout, ctx=step.ctx)
            else:
                step.log("skipping guest node check: no workers requested")
        else:
            step.log("guest API is not checked for the %s profile", profile.name)
        if profile.rollout and request.has_workers:
            wait_for(rollout_complete(self.mgmt, handle), interval=interval, timeout=timeout, ctx=step.ctx)
        elif profile.rollout:
            step.log("skipping rollout check: the rollout is never reported without workers")
        else:
            step.log("skipping rollout check: no workload rollout signal for the %s profile", profile.name)
        if profile.crash_check:
            wait_for(no_crashing_pods(self.mgmt, handle), interval=interval, timeout=timeout, ctx=step.ctx)
        else:
            step.log("skipping crashing pod check for the %s profile", profile.name)

    # -- teardown --

    def _teardown(self, handle: ClusterHandle, artifact_dir: Path | None, outcome: Outcome) -> None:
        console.print(f"[yellow]\u2139\ufe0f  {self.name}: tearing down {handle.namespace}/{handle.name}[/yellow]")
        target = artifact_dir / self.name if artifact_dir is not None else None
        outcome.teardown_errors.extend(destroy_cluster(
            self.mgmt, handle,
            interval=self.config.poll_interval, timeout=self.config.teardown_timeout, artifact_dir=target,
        ))
        if outcome.teardown_errors:
            console.print(f"[yellow]\u26a0\ufe0f  {self.name}: teardown incomplete[/yellow]")

    def _discard_namespace(self, handle: ClusterHandle, outcome: Outcome) -> None:
        err = _delete_namespace(self.mgmt, handle)
        if err:
            outcome.teardown_errors.append(err)


# ============================================================================
# Teardown
# ============================================================================

def _delete_if_present(mgmt: KubeClient, ref: ObjectRef) -> None:
    try:
        mgmt.delete(ref.kind, ref.name, ref.namespace)
    except NotFoundError:
        logger.debug("%s already gone", ref)


def _delete_namespace(mgmt: KubeClient, handle: ClusterHandle) -> str | None:
    try:
        _delete_if_present(mgmt, ObjectRef(KIND_NAMESPACE, handle.namespace))
    except KubeError as err:
        return f"delete namespace {handle.namespace}: {err}"
    return None


def dump_hosted_cluster(mgmt: KubeClient, handle: ClusterHandle, target: Path) -> Path | None:
    """Write the HostedCluster as YAML under *target*; None if it is gone."""
    try:
        hc = mgmt.get(KIND_HOSTED_CLUSTER, handle.name, handle.namespace)
    except NotFoundError:
        return None
    target.mkdir(parents=True, exist_ok=True)
    path = target / "hostedcluster.yaml"
    path.write_text(yaml.safe_dump(hc, sort_keys=False))
    return path


def destroy_cluster(
    mgmt: KubeClient,
    handle: ClusterHandle,
    *,
    interval: float,
    timeout: float,
    artifact_dir: Path | None = None,
) -> list[str]:
    """Delete a hosted cluster, its node pools, and its test namespace.

    Runs in its own cleanup context so that a cancelled scenario still
    releases what it created. Every step is attempted even if an earlier
    one failed.

    Args:
        mgmt: Management cluster client.
        handle: Cluster to delete.
        interval: Seconds between disappearance checks.
        timeout: Seconds the HostedCluster is given to disappear.
        artifact_dir: Where to dump the final HostedCluster, or None.

    Returns:
        A description of every step that failed; empty on success.
    """
    cleanup = Context()
    errors: list[str] = []

    if artifact_dir is not None:
        try:
            dump_hosted_cluster(mgmt, handle, artifact_dir)
        except (KubeError, OSError) as err:
            errors.append(f"dump HostedCluster: {err}")

    try:
        for pool in mgmt.list(KIND_NODE_POOL, namespace=handle.namespace):
            if (pool.get("spec") or {}).get("clusterName") == handle.name:
                _delete_if_present(mgmt, ObjectRef(KIND_NODE_POOL, pool["metadata"]["name"], handle.namespace))
        _delete_if_present(mgmt, handle.ref)
        wait_for(object_deleted(mgmt, handle.ref), interval=interval, timeout=timeout, ctx=cleanup)
    except HarnessError as err:
        errors.append(f"delete HostedCluster: {err}")

    err = _delete_namespace(mgmt, handle)
    if err:
        errors.append(err)
    return errors
