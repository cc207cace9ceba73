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

"""API kinds, well-known names, condition types, and harness defaults."""

from __future__ import annotations

# -- API groups --
HYPERSHIFT_API_VERSION = "hypershift.openshift.io/v1beta1"
CORE_API_VERSION = "v1"
AUTHENTICATION_API_VERSION = "authentication.k8s.io/v1"

# -- Kinds: name -> (apiVersion, namespaced) --
KIND_HOSTED_CLUSTER = "HostedCluster"
KIND_NODE_POOL = "NodePool"
KIND_SECRET = "Secret"
KIND_NAMESPACE = "Namespace"
KIND_POD = "Pod"
KIND_NODE = "Node"
KIND_SELF_SUBJECT_REVIEW = "SelfSubjectReview"

KINDS: dict[str, tuple[str, bool]] = {
    KIND_HOSTED_CLUSTER: (HYPERSHIFT_API_VERSION, True),
    KIND_NODE_POOL: (HYPERSHIFT_API_VERSION, True),
    KIND_SECRET: (CORE_API_VERSION, True),
    KIND_NAMESPACE: (CORE_API_VERSION, False),
    KIND_POD: (CORE_API_VERSION, True),
    KIND_NODE: (CORE_API_VERSION, False),
    KIND_SELF_SUBJECT_REVIEW: (AUTHENTICATION_API_VERSION, False),
}

# -- HostedCluster condition types --
COND_AVAILABLE = "Available"
COND_ETCD_AVAILABLE = "EtcdAvailable"
COND_KAS_AVAILABLE = "KubeAPIServerAvailable"
COND_INFRASTRUCTURE_READY = "InfrastructureReady"
COND_NODE_READY = "Ready"

CONTROL_PLANE_CONDITIONS = (COND_ETCD_AVAILABLE, COND_KAS_AVAILABLE, COND_AVAILABLE)

ROLLOUT_COMPLETED = "Completed"

# -- Secrets --
KUBECONFIG_SECRET_KEY = "kubeconfig"
PULL_SECRET_KEY = ".dockerconfigjson"
SIGNING_KEY_SECRET_KEY = "key"
BREAK_GLASS_SECRET_NAME = "customer-system-admin-client-cert-key"
TLS_CERT_KEY = "tls.crt"
TLS_KEY_KEY = "tls.key"

# -- Break-glass identity --
BREAK_GLASS_GROUP = "system:masters"
BREAK_GLASS_USERNAME_PREFIX = "customer-break-glass-"

# -- Annotations & labels --
TOPOLOGY_ANNOTATION = "hypershift.openshift.io/topology"
REQUEST_SERVING_LABEL = "hypershift.openshift.io/request-serving-component"
CONTROL_PLANE_NODE_LABEL = "hypershift.openshift.io/control-plane"
E2E_NAMESPACE_LABEL = "hcp-e2e.openshift.io/test"

# -- Pod security admission --
PSA_ENFORCE_LABEL = "pod-security.kubernetes.io/enforce"
PSA_PRIVILEGED = "privileged"
PSA_CHECK_NAMESPACE = "e2e-psa-check"
PSA_EXEMPT_NAMESPACES = ("default", "kube-system", "kube-public", "kube-node-lease")
PSA_EXEMPT_PREFIXES = ("openshift",)

# -- Topology --
HA_MIN_ZONES = 3
RESTARTS_CRASH_THRESHOLD = 3
CRASH_LOOP_REASON = "CrashLoopBackOff"

# -- Endpoint probe --
API_PROBE_PATH = "/healthz"
API_PROBE_TIMEOUT_SECONDS = 5

# -- Defaults --
DEFAULT_ZONES = "us-east-1a"
DEFAULT_BASE_DOMAIN = "example.hypershift.devcluster.openshift.com"
DEFAULT_RELEASE_IMAGE = "quay.io/openshift-release-dev/ocp-release:4.17.0-multi"
DEFAULT_AWS_REGION = "us-east-1"
DEFAULT_NAMESPACE_PREFIX = "e2e-clusters"
DEFAULT_NODE_POOL_REPLICAS = 2
DEFAULT_INSTANCE_TYPE = "m5.large"
DEFAULT_ARTIFACT_DIR = "_artifacts"

# -- Poll intervals & timeouts (seconds) --
DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_PROVISION_TIMEOUT_SECONDS = 30 * 60
DEFAULT_GUEST_TIMEOUT_SECONDS = 10 * 60
DEFAULT_TEARDOWN_TIMEOUT_SECONDS = 15 * 60
DEFAULT_TRANSITION_TIMEOUT_SECONDS = 10 * 60
BREAK_GLASS_POLL_INTERVAL_SECONDS = 1.0
BREAK_GLASS_TIMEOUT_SECONDS = 3 * 60

# -- Object mutation --
UPDATE_MAX_ATTEMPTS = 5
UPDATE_RETRY_WAIT_SECONDS = 0.2

# -- Parallelism --
DEFAULT_MAX_PARALLEL_SCENARIOS = 6
