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

"""Harness configuration, cluster request model, and config resolution/display."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from hcp_e2e import console, logger
from hcp_e2e.constants import (
    DEFAULT_ARTIFACT_DIR,
    DEFAULT_AWS_REGION,
    DEFAULT_BASE_DOMAIN,
    DEFAULT_GUEST_TIMEOUT_SECONDS,
    DEFAULT_INSTANCE_TYPE,
    DEFAULT_NAMESPACE_PREFIX,
    DEFAULT_NODE_POOL_REPLICAS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_PROVISION_TIMEOUT_SECONDS,
    DEFAULT_RELEASE_IMAGE,
    DEFAULT_TEARDOWN_TIMEOUT_SECONDS,
    DEFAULT_TRANSITION_TIMEOUT_SECONDS,
    DEFAULT_ZONES,
    KIND_HOSTED_CLUSTER,
)
from hcp_e2e.kube import ObjectRef


# ============================================================================
# Enumerations
# ============================================================================

class Platform(str, Enum):
    """Infrastructure platform hosting the cluster's workers."""

    AWS = "AWS"
    NONE = "None"


class AvailabilityPolicy(str, Enum):
    """Replica policy for control plane or infrastructure components."""

    SINGLE_REPLICA = "SingleReplica"
    HIGHLY_AVAILABLE = "HighlyAvailable"


class EndpointAccess(str, Enum):
    """Network exposure of the hosted API server."""

    PUBLIC = "Public"
    PUBLIC_AND_PRIVATE = "PublicAndPrivate"
    PRIVATE = "Private"


class ServingTopology(str, Enum):
    """Placement of request-serving control plane components."""

    SHARED = "shared"
    DEDICATED = "dedicated-request-serving-components"


# ============================================================================
# Configuration classes
# ============================================================================

class HarnessConfig(BaseSettings):
    """Process-wide harness configuration, auto-loaded from E2E_* env vars.

    Built once per process and passed by reference to every scenario; it is
    frozen so no scenario can change what another one sees.

    Attributes:
        platform: Platform used by scenarios that do not pin one.
        kubeconfig: Management cluster kubeconfig, or None for the default.
        artifact_dir: Directory receiving per-scenario artifacts.
        service_account_signing_key_file: PEM key file for service account tokens.
        pull_secret_file: Docker config JSON for release image pulls.
        zones: Comma separated list of availability zones.
        base_domain: DNS base domain for hosted clusters.
        release_image: Release image the clusters are created from.
        aws_region: AWS region for the AWS platform.
        instance_type: Worker instance type for AWS node pools.
        node_pool_replicas: Worker replicas per node pool.
        request_serving_isolation: Whether request-serving node pools are available.
        kms_key_arn: ARN of the KMS key used for etcd encryption scenarios.
        kms_role_arn: IAM role ARN granting the control plane use of the KMS key.
        proxy_url: HTTP(S) proxy for the proxy scenario.
        namespace_prefix: Prefix of the per-scenario test namespaces.
        poll_interval: Seconds between readiness evaluations.
        provision_timeout: Seconds allowed for a cluster to become ready.
        guest_timeout: Seconds allowed for guest credentials to appear.
        transition_timeout: Seconds allowed for an endpoint-access switch.
        teardown_timeout: Seconds allowed for a cluster to disappear.
    """

    model_config = SettingsConfigDict(env_prefix="E2E_", extra="ignore", frozen=True)

    platform: Platform = Platform.AWS
    kubeconfig: Path | None = None
    artifact_dir: Path = Path(DEFAULT_ARTIFACT_DIR)
    service_account_signing_key_file: Path | None = None
    pull_secret_file: Path | None = None
    zones: str = DEFAULT_ZONES
    base_domain: str = DEFAULT_BASE_DOMAIN
    release_image: str = DEFAULT_RELEASE_IMAGE
    aws_region: str = DEFAULT_AWS_REGION
    instance_type: str = DEFAULT_INSTANCE_TYPE
    node_pool_replicas: int = Field(default=DEFAULT_NODE_POOL_REPLICAS, ge=0, le=50)
    request_serving_isolation: bool = False
    kms_key_arn: str | None = None
    kms_role_arn: str | None = None
    proxy_url: str | None = None
    namespace_prefix: str = Field(default=DEFAULT_NAMESPACE_PREFIX, pattern=r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, gt=0)
    provision_timeout: float = Field(default=DEFAULT_PROVISION_TIMEOUT_SECONDS, gt=0)
    guest_timeout: float = Field(default=DEFAULT_GUEST_TIMEOUT_SECONDS, gt=0)
    transition_timeout: float = Field(default=DEFAULT_TRANSITION_TIMEOUT_SECONDS, gt=0)
    teardown_timeout: float = Field(default=DEFAULT_TEARDOWN_TIMEOUT_SECONDS, gt=0)

    @property
    def zone_list(self) -> tuple[str, ...]:
        """Configured zones with blanks removed."""
        return tuple(z.strip() for z in self.zones.split(",") if z.strip())

    def signing_key(self) -> bytes | None:
        """Read the service account signing key, if one is configured."""
        if self.service_account_signing_key_file is None:
            return None
        return self.service_account_signing_key_file.read_bytes()

    def pull_secret(self) -> bytes | None:
        """Read the pull secret, if one is configured."""
        if self.pull_secret_file is None:
            return None
        return self.pull_secret_file.read_bytes()

    def default_request(self, name_prefix: str, platform: Platform | None = None) -> ClusterRequest:
        """Build the baseline request every scenario starts from.

        Args:
            name_prefix: Prefix for the generated cluster name.
            platform: Platform override, or None for the configured one.

        Returns:
            A single-zone, single-replica, public cluster request.
        """
        zones = self.zone_list
        return ClusterRequest(
            platform=platform or self.platform,
            name_prefix=name_prefix,
            release_image=self.release_image,
            base_domain=self.base_domain,
            zones=zones[:1],
            node_pool_replicas=self.node_pool_replicas,
            aws_region=self.aws_region,
            instance_type=self.instance_type,
        )


# ============================================================================
# Cluster request & handle
# ============================================================================

@dataclass(frozen=True)
class ClusterRequest:
    """Immutable description of the hosted cluster to create.

    Attributes:
        platform: Platform hosting the workers.
        name_prefix: Prefix for the generated cluster name.
        release_image: Release image to install.
        base_domain: DNS base domain.
        zones: Availability zones used for node pools.
        node_pool_replicas: Worker replicas per node pool.
        control_plane_availability: Control plane replica policy.
        infrastructure_availability: Infrastructure replica policy.
        request_serving: Placement of request-serving components.
        endpoint_access: API server exposure.
        annotations: Extra ``key=value`` annotations for the HostedCluster.
        node_selector: ``key=value`` node selector for control plane pods.
        kms_key_arn: KMS key used for secret encryption, or None.
        kms_role_arn: IAM role the control plane assumes to use the KMS key.
        proxy_url: HTTP(S) proxy the cluster egresses through, or None.
        aws_region: AWS region for the AWS platform.
        instance_type: Worker instance type for AWS node pools.
    """

    platform: Platform
    name_prefix: str = "example"
    release_image: str = DEFAULT_RELEASE_IMAGE
    base_domain: str = DEFAULT_BASE_DOMAIN
    zones: tuple[str, ...] = ()
    node_pool_replicas: int = DEFAULT_NODE_POOL_REPLICAS
    control_plane_availability: AvailabilityPolicy = AvailabilityPolicy.SINGLE_REPLICA
    infrastructure_availability: AvailabilityPolicy = AvailabilityPolicy.SINGLE_REPLICA
    request_serving: ServingTopology = ServingTopology.SHARED
    endpoint_access: EndpointAccess = EndpointAccess.PUBLIC
    annotations: tuple[str, ...] = ()
    node_selector: tuple[str, ...] = ()
    kms_key_arn: str | None = None
    kms_role_arn: str | None = None
    proxy_url: str | None = None
    aws_region: str = DEFAULT_AWS_REGION
    instance_type: str = DEFAULT_INSTANCE_TYPE

    @property
    def has_workers(self) -> bool:
        return self.platform is not Platform.NONE and self.node_pool_replicas > 0

    @property
    def expected_nodes(self) -> int:
        """Worker nodes across all node pools (one pool per zone)."""
        if not self.has_workers:
            return 0
        return self.node_pool_replicas * max(1, len(self.zones))


@dataclass(frozen=True)
class ClusterHandle:
    """Stable identity of a provisioned HostedCluster.

    Attributes:
        namespace: Namespace holding the HostedCluster object.
        name: HostedCluster name.
    """

    namespace: str
    name: str

    @property
    def control_plane_namespace(self) -> str:
        """Namespace where the hosted control plane components run."""
        return f"{self.namespace}-{self.name}".replace(".", "-")

    @property
    def ref(self) -> ObjectRef:
        return ObjectRef(KIND_HOSTED_CLUSTER, self.name, self.namespace)


# ============================================================================
# Config resolution
# ============================================================================

def resolve_config(**overrides: Any) -> HarnessConfig:
    """Merge CLI overrides, environment variables, and defaults.

    Resolution priority: CLI arguments > E2E_* environment variables > defaults.
    Overrides whose value is None are ignored.

    Args:
        **overrides: HarnessConfig field values supplied on the command line.

    Returns:
        The resolved, frozen configuration.
    """
    cfg = HarnessConfig()
    update = {key: value for key, value in overrides.items() if value is not None}
    if update:
        cfg = HarnessConfig.model_validate({**cfg.model_dump(), **update})

    if cfg.request_serving_isolation and cfg.platform is not Platform.AWS:
        logger.warning("request serving isolation is only exercised on the AWS platform")
    if cfg.platform is Platform.AWS and cfg.pull_secret_file is None:
        logger.warning("no pull secret configured; hosted clusters will fail to pull the release image")
    return cfg


# ============================================================================
# Display
# ============================================================================

def display_config(cfg: HarnessConfig, scenarios: list[str]) -> None:
    """Print the configuration relevant to the requested scenarios.

    Args:
        cfg: Resolved harness configuration.
        scenarios: Names of the scenarios about to run.
    """
    console.print(Panel.fit("Configuration", style="bold blue"))
    console.print("[yellow]Harness:[/yellow]")
    console.print(f"  scenarios       : {', '.join(scenarios)}")
    console.print(f"  platform        : {cfg.platform.value}")
    console.print(f"  artifact_dir    : {cfg.artifact_dir}")
    console.print(f"  release_image   : {cfg.release_image}")
    console.print(f"  zones           : {', '.join(cfg.zone_list) or '(none)'}")
    console.print(f"  replicas        : {cfg.node_pool_replicas}")

    if cfg.platform is Platform.AWS:
        console.print("[yellow]AWS:[/yellow]")
        console.print(f"  region          : {cfg.aws_region}")
        console.print(f"  instance_type   : {cfg.instance_type}")
        console.print(f"  kms_key_arn     : {cfg.kms_key_arn or '(unset)'}")
        console.print(f"  req. isolation  : {cfg.request_serving_isolation}")

    console.print("[yellow]Timeouts (s):[/yellow]")
    console.print(f"  provision       : {cfg.provision_timeout:.0f}")
    console.print(f"  guest           : {cfg.guest_timeout:.0f}")
    console.print(f"  transition      : {cfg.transition_timeout:.0f}")
    console.print(f"  teardown        : {cfg.teardown_timeout:.0f}")
