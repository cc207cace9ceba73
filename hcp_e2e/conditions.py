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

"""Named convergence conditions over management and guest cluster state.

Every factory returns a fresh :class:`~hcp_e2e.poller.Condition`. Evaluating
one only reads state, so the poller can retry it freely.
"""

from __future__ import annotations

import warnings
from collections.abc import Callable, Iterable

import requests
import urllib3

from hcp_e2e.config import ClusterHandle, EndpointAccess
from hcp_e2e.constants import (
    API_PROBE_PATH,
    API_PROBE_TIMEOUT_SECONDS,
    COND_AVAILABLE,
    COND_NODE_READY,
    CRASH_LOOP_REASON,
    KIND_NAMESPACE,
    KIND_NODE,
    KIND_NODE_POOL,
    KIND_POD,
    KIND_SECRET,
    RESTARTS_CRASH_THRESHOLD,
    ROLLOUT_COMPLETED,
)
from hcp_e2e.errors import HarnessError, KubeError, NotFoundError
from hcp_e2e.kube import ObjectRef
from hcp_e2e.poller import Condition, Context

Probe = Callable[[str], bool]


# ============================================================================
# Status helpers
# ============================================================================

def find_condition(obj: dict, cond_type: str) -> dict | None:
    """Return the status condition of the given type, if present."""
    for cond in (obj.get("status") or {}).get("conditions") or []:
        if cond.get("type") == cond_type:
            return cond
    return None


def condition_true(obj: dict, cond_type: str) -> bool:
    cond = find_condition(obj, cond_type)
    return cond is not None and cond.get("status") == "True"


def endpoint_access_of(hosted_cluster: dict) -> str | None:
    """Read ``spec.platform.aws.endpointAccess`` from a HostedCluster."""
    aws = ((hosted_cluster.get("spec") or {}).get("platform") or {}).get("aws") or {}
    return aws.get("endpointAccess")


def api_endpoint_url(hosted_cluster: dict) -> str | None:
    """Public API server URL advertised in the HostedCluster status."""
    endpoint = (hosted_cluster.get("status") or {}).get("controlPlaneEndpoint") or {}
    host = endpoint.get("host")
    if not host:
        return None
    return f"https://{host}:{endpoint.get('port') or 443}"


def probe_endpoint(url: str) -> bool:
    """Return True if anything answers HTTP at *url*.

    Any response counts, including 401 and 403: the question is whether the
    endpoint is routable from here, not whether we are authorised.
    """
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", urllib3.exceptions.InsecureRequestWarning)
        try:
            requests.get(f"{url}{API_PROBE_PATH}", timeout=API_PROBE_TIMEOUT_SECONDS, verify=False)
        except requests.RequestException:
            return False
    return True


def _read(client, ref: ObjectRef) -> tuple[dict | None, Exception | None]:
    """Read *ref*, mapping "not found yet" to ``(None, None)``."""
    try:
        return client.get(ref.kind, ref.name, ref.namespace), None
    except NotFoundError:
        return None, None
    except KubeError as err:
        return None, err


# ============================================================================
# Management-side conditions
# ============================================================================

def hosted_cluster_conditions(mgmt, handle: ClusterHandle, cond_types: Iterable[str]) -> Condition:
    """All listed HostedCluster status conditions report True."""
    wanted = tuple(cond_types)

    def check(_ctx: Context) -> tuple[bool, Exception | None]:
        hc, err = _read(mgmt, handle.ref)
        if hc is None:
            return False, err
        pending = [t for t in wanted if not condition_true(hc, t)]
        if pending:
            return False, HarnessError(f"conditions not yet True: {', '.join(pending)}")
        return True, None

    return Condition(f"HostedCluster {handle.name} conditions {', '.join(wanted)}", check)


def rollout_complete(mgmt, handle: ClusterHandle) -> Condition:
    """The most recent release rollout is reported as completed."""

    def check(_ctx: Context) -> tuple[bool, Exception | None]:
        hc, err = _read(mgmt, handle.ref)
        if hc is None:
            return False, err
        history = ((hc.get("status") or {}).get("version") or {}).get("history") or []
        if not history:
            return False, None
        return history[0].get("state") == ROLLOUT_COMPLETED, None

    return Condition(f"HostedCluster {handle.name} rollout", check)


def node_pools_ready(mgmt, handle: ClusterHandle) -> Condition:
    """Every NodePool of the cluster has all desired replicas ready."""

    def check(_ctx: Context) -> tuple[bool, Exception | None]:
        try:
            pools = mgmt.list(KIND_NODE_POOL, namespace=handle.namespace)
        except KubeError as err:
            return False, err
        pending = [
            p["metadata"]["name"]
            for p in pools
            if (p.get("spec") or {}).get("clusterName") == handle.name
            and ((p.get("status") or {}).get("replicas") or 0) < ((p.get("spec") or {}).get("replicas") or 0)
        ]
        if pending:
            return False, HarnessError(f"node pools not ready: {', '.join(pending)}")
        return True, None

    return Condition(f"NodePools of {handle.name} ready", check)


def no_crashing_pods(mgmt, handle: ClusterHandle) -> Condition:
    """No control plane pod is crash looping or restarting repeatedly.

    A crash is terminal rather than something to wait out.
    """

    def check(_ctx: Context) -> tuple[bool, Exception | None]:
        try:
            pods = mgmt.list(KIND_POD, namespace=handle.control_plane_namespace)
        except KubeError as err:
            return False, err
        crashing = []
        for pod in pods:
            for status in (pod.get("status") or {}).get("containerStatuses") or []:
                waiting = (status.get("state") or {}).get("waiting") or {}
                if waiting.get("reason") == CRASH_LOOP_REASON or \
                        (status.get("restartCount") or 0) > RESTARTS_CRASH_THRESHOLD:
                    crashing.append(f"{pod['metadata']['name']}/{status.get('name')}")
        if crashing:
            return True, HarnessError(f"crashing containers: {', '.join(crashing)}")
        return True, None

    return Condition(f"no crashing pods in {handle.control_plane_namespace}", check)


def secret_populated(mgmt, name: str, namespace: str, keys: Iterable[str]) -> Condition:
    """A secret exists and carries non-empty values for all *keys*."""
    wanted = tuple(keys)
    ref = ObjectRef(KIND_SECRET, name, namespace)

    def check(_ctx: Context) -> tuple[bool, Exception | None]:
        secret, err = _read(mgmt, ref)
        if secret is None:
            return False, err
        data = secret.get("data") or {}
        return all(data.get(k) for k in wanted), None

    return Condition(f"secret {namespace}/{name} populated", check)


def object_deleted(client, ref: ObjectRef) -> Condition:
    """The object can no longer be read."""

    def check(_ctx: Context) -> tuple[bool, Exception | None]:
        obj, err = _read(client, ref)
        if err is not None:
            return False, err
        return obj is None, None

    return Condition(f"{ref} deleted", check)


def endpoint_access_converged(mgmt, handle: ClusterHandle, access: EndpointAccess) -> Condition:
    """The HostedCluster carries *access* and reports Available again."""

    def check(_ctx: Context) -> tuple[bool, Exception | None]:
        hc, err = _read(mgmt, handle.ref)
        if hc is None:
            return False, err
        if endpoint_access_of(hc) != access.value:
            return False, HarnessError(f"endpointAccess is {endpoint_access_of(hc)}")
        return condition_true(hc, COND_AVAILABLE), None

    return Condition(f"HostedCluster {handle.name} {access.value} and available", check)


def api_endpoint_reachability(mgmt, handle: ClusterHandle, reachable: bool, probe: Probe = probe_endpoint) -> Condition:
    """The advertised API endpoint is (or is no longer) reachable from here."""
    want = "reachable" if reachable else "unreachable"

    def check(_ctx: Context) -> tuple[bool, Exception | None]:
        hc, err = _read(mgmt, handle.ref)
        if hc is None:
            return False, err
        url = api_endpoint_url(hc)
        if url is None:
            # Nothing advertised counts as unreachable.
            return not reachable, None
        return probe(url) == reachable, None

    return Condition(f"API endpoint of {handle.name} {want}", check)


# ============================================================================
# Guest-side conditions
# ============================================================================

def guest_api_available(guest) -> Condition:
    """The guest API server answers an authenticated request."""

    def check(_ctx: Context) -> tuple[bool, Exception | None]:
        try:
            guest.list(KIND_NAMESPACE)
        except KubeError as err:
            return False, err
        return True, None

    return Condition("guest API available", check)


def nodes_ready(guest, expected: int) -> Condition:
    """At least *expected* guest nodes report Ready."""

    def check(_ctx: Context) -> tuple[bool, Exception | None]:
        try:
            nodes = guest.list(KIND_NODE)
        except KubeError as err:
            return False, err
        ready = sum(1 for n in nodes if condition_true(n, COND_NODE_READY))
        if ready < expected:
            return False, HarnessError(f"{ready}/{expected} nodes ready")
        return True, None

    return Condition(f"{expected} guest nodes ready", check)
