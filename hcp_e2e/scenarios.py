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

"""Named cluster scenarios.

A scenario builds its own request from the shared configuration and
supplies the validation run against the ready cluster. Scenarios whose
requirements the configuration does not meet raise ScenarioSkipped.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace

from hcp_e2e import logger
from hcp_e2e.conditions import condition_true
from hcp_e2e.config import (
    AvailabilityPolicy,
    ClusterHandle,
    ClusterRequest,
    EndpointAccess,
    HarnessConfig,
    Platform,
    ServingTopology,
)
from hcp_e2e.constants import (
    CONTROL_PLANE_CONDITIONS,
    CONTROL_PLANE_NODE_LABEL,
    CORE_API_VERSION,
    HA_MIN_ZONES,
    KIND_HOSTED_CLUSTER,
    KIND_NAMESPACE,
    KIND_NODE,
    KIND_NODE_POOL,
    KIND_POD,
    PSA_CHECK_NAMESPACE,
    PSA_ENFORCE_LABEL,
    PSA_EXEMPT_NAMESPACES,
    PSA_EXEMPT_PREFIXES,
    PSA_PRIVILEGED,
    REQUEST_SERVING_LABEL,
)
from hcp_e2e.errors import ConflictError, KubeError, ScenarioSkipped, UnauthorizedError
from hcp_e2e.guest import break_glass_client, verify_break_glass_identity
from hcp_e2e.kube import KubeClient
from hcp_e2e.lifecycle import ClusterTest, Expect, Outcome, Step, ValidateFn
from hcp_e2e.poller import Context
from hcp_e2e.transitions import endpoint_access_round_trip


@dataclass(frozen=True)
class Scenario:
    """A request plus the validation to run once it is ready."""

    name: str
    request: ClusterRequest
    validate: ValidateFn | None


ScenarioBuilder = Callable[[HarnessConfig], Scenario]

SCENARIOS: dict[str, ScenarioBuilder] = {}


def scenario(name: str) -> Callable[[ScenarioBuilder], ScenarioBuilder]:
    """Register a scenario builder under *name*."""

    def register(fn: ScenarioBuilder) -> ScenarioBuilder:
        SCENARIOS[name] = fn
        return fn

    return register


def describe(name: str) -> str:
    """First line of a scenario builder's docstring."""
    doc = SCENARIOS[name].__doc__ or ""
    return doc.strip().splitlines()[0] if doc.strip() else ""


def _require_aws(config: HarnessConfig, name: str) -> None:
    if config.platform is not Platform.AWS:
        raise ScenarioSkipped(f"{name} requires the AWS platform, configured platform is {config.platform.value}")


# ============================================================================
# Validations
# ============================================================================

def _check_break_glass(config: HarnessConfig) -> ValidateFn:
    def validate(t: Step, _g: Expect, mgmt: KubeClient, handle: ClusterHandle) -> None:
        def check(st: Step, sg: Expect) -> None:
            with break_glass_client(st.ctx, mgmt, handle, guest_timeout=config.guest_timeout) as guest:
                user = sg.no_error(verify_break_glass_identity, guest)
            st.log("break-glass identity %s", user.get("username"))

        t.run("EnsureBreakGlassCredentials", check)

    return validate


def placement_violations(pods: list[dict], nodes: list[dict]) -> list[str]:
    """Control plane pods scheduled where the dedicated topology forbids.

    Request-serving pods must run on request-serving nodes, request-serving
    nodes must run nothing else, and no control plane pod may run on a node
    that is not labelled for the control plane.
    """
    labels_by_node = {n["metadata"]["name"]: (n["metadata"].get("labels") or {}) for n in nodes}
    violations = []
    for pod in pods:
        node = (pod.get("spec") or {}).get("nodeName")
        if not node:
            continue
        pod_name = pod["metadata"]["name"]
        serving_pod = (pod["metadata"].get("labels") or {}).get(REQUEST_SERVING_LABEL) == "true"
        node_labels = labels_by_node.get(node, {})
        serving_node = node_labels.get(REQUEST_SERVING_LABEL) == "true"
        if serving_pod and not serving_node:
            violations.append(f"request-serving pod {pod_name} runs on non request-serving node {node}")
        elif serving_node and not serving_pod:
            violations.append(f"pod {pod_name} runs on request-serving node {node}")
        if node_labels.get(CONTROL_PLANE_NODE_LABEL) != "true":
            violations.append(f"pod {pod_name} runs on default node {node}")
    return violations


def _check_request_serving_placement(t: Step, g: Expect, mgmt: KubeClient, handle: ClusterHandle) -> None:
    guest = t.guest_client()
    g.not_empty(g.no_error(guest.list, KIND_NODE), "guest node list")

    def check(st: Step, sg: Expect) -> None:
        pods = sg.no_error(mgmt.list, KIND_POD, namespace=handle.control_plane_namespace)
        nodes = sg.no_error(mgmt.list, KIND_NODE)
        for violation in placement_violations(pods, nodes):
            st.error(violation)

    t.run("EnsureControlPlanePodPlacement", check)


def privileged_namespaces(namespaces: list[dict]) -> list[str]:
    """Workload namespaces whose enforced pod security level is privileged.

    The default, kube-* and openshift* namespaces are exempt.
    """
    found = []
    for ns in namespaces:
        meta = ns["metadata"]
        name = meta["name"]
        if name in PSA_EXEMPT_NAMESPACES or name.startswith(PSA_EXEMPT_PREFIXES):
            continue
        if (meta.get("labels") or {}).get(PSA_ENFORCE_LABEL) == PSA_PRIVILEGED:
            found.append(name)
    return found


def _privileged_pod() -> dict:
    return {
        "apiVersion": CORE_API_VERSION,
        "kind": KIND_POD,
        "metadata": {"name": "privileged-pod", "namespace": PSA_CHECK_NAMESPACE},
        "spec": {
            "containers": [{
                "name": "busybox",
                "image": "busybox",
                "securityContext": {"privileged": True},
            }],
        },
    }


def _check_psa_not_privileged(t: Step, _g: Expect, _mgmt: KubeClient, _handle: ClusterHandle) -> None:
    guest = t.guest_client()

    def check(st: Step, sg: Expect) -> None:
        for name in privileged_namespaces(sg.no_error(guest.list, KIND_NAMESPACE)):
            st.error(f"namespace {name} enforces the {PSA_PRIVILEGED} pod security level")
        try:
            guest.create(KIND_NAMESPACE, {
                "apiVersion": CORE_API_VERSION, "kind": KIND_NAMESPACE, "metadata": {"name": PSA_CHECK_NAMESPACE},
            })
        except ConflictError:
            st.log("namespace %s already exists", PSA_CHECK_NAMESPACE)
        try:
            guest.create(KIND_POD, _privileged_pod())
        except UnauthorizedError as err:
            if err.status != 403:
                st.error(f"privileged pod admission failed with an unexpected error: {err}")
        except KubeError as err:
            st.error(f"privileged pod admission failed with an unexpected error: {err}")
        else:
            st.error(f"privileged pod was admitted in {PSA_CHECK_NAMESPACE}, rejection was expected")
        finally:
            try:
                guest.delete(KIND_NAMESPACE, PSA_CHECK_NAMESPACE)
            except KubeError as err:
                logger.warning("Could not delete namespace %s: %s", PSA_CHECK_NAMESPACE, err)

    t.run("EnsurePSANotPrivileged", check)


def _check_request_serving(t: Step, g: Expect, mgmt: KubeClient, handle: ClusterHandle) -> None:
    _check_psa_not_privileged(t, g, mgmt, handle)
    _check_request_serving_placement(t, g, mgmt, handle)


def _check_encryption(config: HarnessConfig) -> ValidateFn:
    def validate(t: Step, g: Expect, mgmt: KubeClient, handle: ClusterHandle) -> None:
        hc = g.no_error(mgmt.get, KIND_HOSTED_CLUSTER, handle.name, handle.namespace)
        aws = (((hc.get("spec") or {}).get("secretEncryption") or {}).get("kms") or {}).get("aws") or {}
        g.equal((aws.get("activeKey") or {}).get("arn"), config.kms_key_arn, "active KMS key ARN")
        g.not_empty(((aws.get("auth") or {}).get("awsKms") or {}).get("roleARN"), "KMS role ARN")
        guest = t.guest_client()
        g.not_empty(g.no_error(guest.list, KIND_NAMESPACE), "guest namespace list")

    return validate


def _check_control_plane_health(t: Step, g: Expect, mgmt: KubeClient, handle: ClusterHandle) -> None:
    hc = g.no_error(mgmt.get, KIND_HOSTED_CLUSTER, handle.name, handle.namespace)
    for cond_type in CONTROL_PLANE_CONDITIONS:
        g.true(condition_true(hc, cond_type), f"condition {cond_type} to be True")
    pools = g.no_error(mgmt.list, KIND_NODE_POOL, namespace=handle.namespace)
    g.equal([p["metadata"]["name"] for p in pools], [], "node pools of a None platform cluster")


# ============================================================================
# Scenarios
# ============================================================================

@scenario("create")
def create_cluster(config: HarnessConfig) -> Scenario:
    """Highly-available infrastructure across the configured zones; checks break-glass access."""
    zones = config.zone_list
    base = config.default_request("create-cluster")
    request = replace(
        base,
        zones=zones,
        infrastructure_availability=AvailabilityPolicy.HIGHLY_AVAILABLE,
        node_pool_replicas=1 if len(zones) >= HA_MIN_ZONES else base.node_pool_replicas,
    )
    return Scenario("create", request, _check_break_glass(config))


@scenario("create-request-serving-isolation")
def create_request_serving_isolation(config: HarnessConfig) -> Scenario:
    """Dedicated request-serving nodes; checks pod security and control plane pod placement."""
    if not config.request_serving_isolation:
        raise ScenarioSkipped("request serving isolation is not enabled")
    _require_aws(config, "create-request-serving-isolation")
    request = replace(
        config.default_request("request-serving-isolation"),
        control_plane_availability=AvailabilityPolicy.HIGHLY_AVAILABLE,
        request_serving=ServingTopology.DEDICATED,
    )
    zones = config.zone_list
    if len(zones) >= HA_MIN_ZONES:
        logger.info("%d zones available, using HighlyAvailable infrastructure", len(zones))
        request = replace(
            request,
            zones=zones,
            infrastructure_availability=AvailabilityPolicy.HIGHLY_AVAILABLE,
            node_pool_replicas=1,
            node_selector=(f"{CONTROL_PLANE_NODE_LABEL}=true",),
        )
    return Scenario("create-request-serving-isolation", request, _check_request_serving)


@scenario("create-custom-config")
def create_custom_config(config: HarnessConfig) -> Scenario:
    """KMS secret encryption; checks the encryption settings on the cluster."""
    _require_aws(config, "create-custom-config")
    if not config.kms_key_arn or not config.kms_role_arn:
        raise ScenarioSkipped("create-custom-config needs both a KMS key ARN and a KMS role ARN")
    request = replace(
        config.default_request("custom-config"),
        kms_key_arn=config.kms_key_arn,
        kms_role_arn=config.kms_role_arn,
    )
    return Scenario("create-custom-config", request, _check_encryption(config))


@scenario("create-none")
def create_none(config: HarnessConfig) -> Scenario:
    """None platform without workers; checks control plane health only."""
    request = config.default_request("none", platform=Platform.NONE)
    return Scenario("create-none", request, _check_control_plane_health)


@scenario("create-proxy")
def create_proxy(config: HarnessConfig) -> Scenario:
    """Cluster egressing through an HTTP proxy; readiness is the whole check."""
    _require_aws(config, "create-proxy")
    if not config.proxy_url:
        raise ScenarioSkipped("create-proxy needs a proxy URL")
    request = replace(
        config.default_request("proxy"),
        proxy_url=config.proxy_url,
        control_plane_availability=AvailabilityPolicy.SINGLE_REPLICA,
    )
    return Scenario("create-proxy", request, None)


@scenario("create-private")
def create_private(config: HarnessConfig) -> Scenario:
    """Private API endpoint; switches to public and back."""
    _require_aws(config, "create-private")
    request = replace(
        config.default_request("private"),
        control_plane_availability=AvailabilityPolicy.SINGLE_REPLICA,
        endpoint_access=EndpointAccess.PRIVATE,
    )
    return Scenario("create-private", request, endpoint_access_round_trip(config))


# ============================================================================
# Running
# ============================================================================

def run_scenario(name: str, config: HarnessConfig, mgmt: KubeClient, ctx: Context | None = None) -> Outcome:
    """Build and execute one scenario.

    Raises:
        KeyError: If no scenario is registered under *name*.
        ScenarioSkipped: If the configuration does not support the scenario.
    """
    built = SCENARIOS[name](config)
    logger.info("Running %s (platform %s)", name, built.request.platform.value)
    test = ClusterTest(name, mgmt, built.validate, config)
    return test.execute(built.request, built.request.platform, config.artifact_dir, config.signing_key(), ctx=ctx)
