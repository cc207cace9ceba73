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

"""Manifests for the objects a scenario creates on the management cluster."""

from __future__ import annotations

import base64
import secrets

from hcp_e2e.config import ClusterHandle, ClusterRequest, Platform, ServingTopology
from hcp_e2e.constants import (
    CORE_API_VERSION,
    E2E_NAMESPACE_LABEL,
    HYPERSHIFT_API_VERSION,
    KIND_HOSTED_CLUSTER,
    KIND_NAMESPACE,
    KIND_NODE_POOL,
    KIND_SECRET,
    PULL_SECRET_KEY,
    SIGNING_KEY_SECRET_KEY,
    TOPOLOGY_ANNOTATION,
)

CLUSTER_NETWORK_CIDR = "10.132.0.0/14"
SERVICE_NETWORK_CIDR = "172.31.0.0/16"
NETWORK_TYPE = "OVNKubernetes"


def generate_name(prefix: str) -> str:
    """Append a short random suffix, keeping the result DNS-label safe."""
    return f"{prefix.lower()}-{secrets.token_hex(3)}"


def parse_pairs(pairs: tuple[str, ...]) -> dict[str, str]:
    """Turn ``("k=v", ...)`` into a dict.

    Raises:
        ValueError: If an entry has no ``=``.
    """
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"expected key=value, got '{pair}'")
        result[key] = value
    return result


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def pull_secret_name(handle: ClusterHandle) -> str:
    return f"{handle.name}-pull-secret"


def signing_key_secret_name(handle: ClusterHandle) -> str:
    return f"{handle.name}-sa-signing-key"


def node_pool_name(handle: ClusterHandle, zone: str | None) -> str:
    return f"{handle.name}-{zone}" if zone else handle.name


# ============================================================================
# Namespace & secrets
# ============================================================================

def namespace_manifest(name: str) -> dict:
    return {
        "apiVersion": CORE_API_VERSION,
        "kind": KIND_NAMESPACE,
        "metadata": {"name": name, "labels": {E2E_NAMESPACE_LABEL: "true"}},
    }


def pull_secret(handle: ClusterHandle, data: bytes) -> dict:
    return {
        "apiVersion": CORE_API_VERSION,
        "kind": KIND_SECRET,
        "type": "kubernetes.io/dockerconfigjson",
        "metadata": {"name": pull_secret_name(handle), "namespace": handle.namespace},
        "data": {PULL_SECRET_KEY: _b64(data)},
    }


def signing_key_secret(handle: ClusterHandle, key: bytes) -> dict:
    return {
        "apiVersion": CORE_API_VERSION,
        "kind": KIND_SECRET,
        "type": "Opaque",
        "metadata": {"name": signing_key_secret_name(handle), "namespace": handle.namespace},
        "data": {SIGNING_KEY_SECRET_KEY: _b64(key)},
    }


# ============================================================================
# HostedCluster
# ============================================================================

def _platform_spec(request: ClusterRequest) -> dict:
    if request.platform is Platform.NONE:
        return {"type": Platform.NONE.value}
    return {
        "type": Platform.AWS.value,
        "aws": {
            "region": request.aws_region,
            "endpointAccess": request.endpoint_access.value,
        },
    }


def _services(request: ClusterRequest) -> list[dict]:
    api_strategy = "LoadBalancer" if request.platform is Platform.AWS else "Route"
    return [
        {"service": "APIServer", "servicePublishingStrategy": {"type": api_strategy}},
        {"service": "OAuthServer", "servicePublishingStrategy": {"type": "Route"}},
        {"service": "Konnectivity", "servicePublishingStrategy": {"type": "Route"}},
        {"service": "Ignition", "servicePublishingStrategy": {"type": "Route"}},
    ]


def _secret_encryption(request: ClusterRequest) -> dict:
    aws: dict = {"activeKey": {"arn": request.kms_key_arn}, "region": request.aws_region}
    if request.kms_role_arn:
        aws["auth"] = {"awsKms": {"roleARN": request.kms_role_arn}}
    return {"type": "kms", "kms": {"provider": "AWS", "aws": aws}}


def hosted_cluster(
    request: ClusterRequest,
    handle: ClusterHandle,
    *,
    with_pull_secret: bool,
    with_signing_key: bool,
) -> dict:
    """Render the HostedCluster for *request*.

    Args:
        request: What to create.
        handle: Name and namespace to create it under.
        with_pull_secret: Whether a pull secret was created for the cluster.
        with_signing_key: Whether a signing key secret was created for the cluster.

    Returns:
        The HostedCluster manifest.
    """
    annotations = parse_pairs(request.annotations)
    if request.request_serving is ServingTopology.DEDICATED:
        annotations[TOPOLOGY_ANNOTATION] = ServingTopology.DEDICATED.value

    spec: dict = {
        "release": {"image": request.release_image},
        "dns": {"baseDomain": request.base_domain},
        "networking": {
            "clusterNetwork": [{"cidr": CLUSTER_NETWORK_CIDR}],
            "serviceNetwork": [{"cidr": SERVICE_NETWORK_CIDR}],
            "networkType": NETWORK_TYPE,
        },
        "controllerAvailabilityPolicy": request.control_plane_availability.value,
        "infrastructureAvailabilityPolicy": request.infrastructure_availability.value,
        "platform": _platform_spec(request),
        "services": _services(request),
    }
    if with_pull_secret:
        spec["pullSecret"] = {"name": pull_secret_name(handle)}
    if with_signing_key:
        spec["serviceAccountSigningKey"] = {"name": signing_key_secret_name(handle)}
    if request.node_selector:
        spec["nodeSelector"] = parse_pairs(request.node_selector)
    if request.kms_key_arn:
        spec["secretEncryption"] = _secret_encryption(request)
    if request.proxy_url:
        spec["configuration"] = {
            "proxy": {"httpProxy": request.proxy_url, "httpsProxy": request.proxy_url},
        }

    metadata: dict = {"name": handle.name, "namespace": handle.namespace}
    if annotations:
        metadata["annotations"] = annotations
    return {
        "apiVersion": HYPERSHIFT_API_VERSION,
        "kind": KIND_HOSTED_CLUSTER,
        "metadata": metadata,
        "spec": spec,
    }


# ============================================================================
# NodePools
# ============================================================================

def node_pools(request: ClusterRequest, handle: ClusterHandle) -> list[dict]:
    """Render one NodePool per zone, or none for worker-less platforms."""
    if not request.has_workers:
        return []

    zones: tuple[str | None, ...] = request.zones or (None,)
    pools = []
    for zone in zones:
        platform: dict = {"type": request.platform.value}
        if request.platform is Platform.AWS:
            platform["aws"] = {"instanceType": request.instance_type}
        pools.append({
            "apiVersion": HYPERSHIFT_API_VERSION,
            "kind": KIND_NODE_POOL,
            "metadata": {"name": node_pool_name(handle, zone), "namespace": handle.namespace},
            "spec": {
                "clusterName": handle.name,
                "replicas": request.node_pool_replicas,
                "management": {"upgradeType": "Replace", "autoRepair": False},
                "release": {"image": request.release_image},
                "platform": platform,
            },
        })
    return pools
