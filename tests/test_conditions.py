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

"""Tests for the readiness condition library."""

from __future__ import annotations

import pytest
import requests

from hcp_e2e import conditions
from hcp_e2e.conditions import (
    api_endpoint_reachability,
    api_endpoint_url,
    endpoint_access_converged,
    hosted_cluster_conditions,
    no_crashing_pods,
    node_pools_ready,
    nodes_ready,
    object_deleted,
    probe_endpoint,
    rollout_complete,
    secret_populated,
)
from hcp_e2e.config import ClusterHandle, EndpointAccess
from hcp_e2e.constants import (
    COND_AVAILABLE,
    COND_ETCD_AVAILABLE,
    KIND_HOSTED_CLUSTER,
    KIND_NODE_POOL,
    KIND_POD,
    KIND_SECRET,
)
from hcp_e2e.errors import KubeError
from hcp_e2e.poller import Context
from tests.fakes import FakeKube, guest_cluster

HANDLE = ClusterHandle("clusters", "hc")


def _hosted_cluster(status: dict | None = None, access: str = "Public") -> dict:
    return {
        "metadata": {"name": "hc", "namespace": "clusters"},
        "spec": {"platform": {"aws": {"endpointAccess": access}}},
        "status": status or {},
    }


def _true(*types: str) -> list[dict]:
    return [{"type": t, "status": "True"} for t in types]


@pytest.fixture
def fake() -> FakeKube:
    return FakeKube()


class TestHostedClusterConditions:
    def test_not_found_keeps_polling(self, fake: FakeKube, ctx: Context) -> None:
        assert hosted_cluster_conditions(fake, HANDLE, [COND_AVAILABLE])(ctx) == (False, None)

    def test_pending_conditions_reported(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_HOSTED_CLUSTER, _hosted_cluster({"conditions": _true(COND_AVAILABLE)}))
        done, err = hosted_cluster_conditions(fake, HANDLE, [COND_AVAILABLE, COND_ETCD_AVAILABLE])(ctx)
        assert not done
        assert COND_ETCD_AVAILABLE in str(err)

    def test_all_true(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_HOSTED_CLUSTER, _hosted_cluster({"conditions": _true(COND_AVAILABLE, COND_ETCD_AVAILABLE)}))
        assert hosted_cluster_conditions(fake, HANDLE, [COND_AVAILABLE, COND_ETCD_AVAILABLE])(ctx) == (True, None)

    def test_api_error_is_transient(self, fake: FakeKube, ctx: Context) -> None:
        fake.fail("get", KIND_HOSTED_CLUSTER, KubeError("etcdserver: request timed out", 500))
        done, err = hosted_cluster_conditions(fake, HANDLE, [COND_AVAILABLE])(ctx)
        assert not done
        assert isinstance(err, KubeError)

    def test_evaluation_does_not_write(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_HOSTED_CLUSTER, _hosted_cluster())
        condition = hosted_cluster_conditions(fake, HANDLE, [COND_AVAILABLE])
        for _ in range(3):
            condition(ctx)
        assert {op for op, _, _ in fake.calls} == {"get"}


class TestRolloutAndPools:
    def test_rollout_waits_for_history(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_HOSTED_CLUSTER, _hosted_cluster({"version": {"history": []}}))
        assert rollout_complete(fake, HANDLE)(ctx) == (False, None)

    def test_rollout_complete(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_HOSTED_CLUSTER, _hosted_cluster({"version": {"history": [{"state": "Completed"}]}}))
        assert rollout_complete(fake, HANDLE)(ctx) == (True, None)

    def test_node_pools_ready_ignores_other_clusters(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_NODE_POOL, {
            "metadata": {"name": "other", "namespace": "clusters"},
            "spec": {"clusterName": "other", "replicas": 3},
        })
        fake.put(KIND_NODE_POOL, {
            "metadata": {"name": "hc-a", "namespace": "clusters"},
            "spec": {"clusterName": "hc", "replicas": 2},
            "status": {"replicas": 1},
        })
        done, err = node_pools_ready(fake, HANDLE)(ctx)
        assert not done
        assert "hc-a" in str(err)
        assert "other" not in str(err)


class TestNoCrashingPods:
    def _pod(self, name: str, restarts: int = 0, waiting: str | None = None) -> dict:
        state = {"waiting": {"reason": waiting}} if waiting else {"running": {}}
        return {
            "metadata": {"name": name, "namespace": HANDLE.control_plane_namespace},
            "status": {"containerStatuses": [{"name": "main", "restartCount": restarts, "state": state}]},
        }

    def test_healthy_pods_pass(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_POD, self._pod("kube-apiserver-0", restarts=1))
        assert no_crashing_pods(fake, HANDLE)(ctx) == (True, None)

    def test_crash_loop_is_terminal(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_POD, self._pod("etcd-0", waiting="CrashLoopBackOff"))
        done, err = no_crashing_pods(fake, HANDLE)(ctx)
        assert done
        assert "etcd-0/main" in str(err)

    def test_repeated_restarts_are_terminal(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_POD, self._pod("oauth-0", restarts=7))
        done, err = no_crashing_pods(fake, HANDLE)(ctx)
        assert done and err is not None


class TestSecretsAndDeletion:
    def test_missing_secret_keeps_polling(self, fake: FakeKube, ctx: Context) -> None:
        assert secret_populated(fake, "s", "ns", ["tls.crt"])(ctx) == (False, None)

    def test_partially_populated_secret_keeps_polling(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_SECRET, {"metadata": {"name": "s", "namespace": "ns"}, "data": {"tls.crt": "eA=="}})
        assert secret_populated(fake, "s", "ns", ["tls.crt", "tls.key"])(ctx) == (False, None)

    def test_populated_secret(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_SECRET, {
            "metadata": {"name": "s", "namespace": "ns"},
            "data": {"tls.crt": "eA==", "tls.key": "eQ=="},
        })
        assert secret_populated(fake, "s", "ns", ["tls.crt", "tls.key"])(ctx) == (True, None)

    def test_object_deleted(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_HOSTED_CLUSTER, _hosted_cluster())
        condition = object_deleted(fake, HANDLE.ref)
        assert condition(ctx) == (False, None)
        fake.delete(KIND_HOSTED_CLUSTER, "hc", "clusters")
        assert condition(ctx) == (True, None)


class TestEndpointAccess:
    def test_converged_requires_access_and_availability(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_HOSTED_CLUSTER, _hosted_cluster({"conditions": _true(COND_AVAILABLE)}, access="Private"))
        done, err = endpoint_access_converged(fake, HANDLE, EndpointAccess.PUBLIC_AND_PRIVATE)(ctx)
        assert not done
        assert "Private" in str(err)
        assert endpoint_access_converged(fake, HANDLE, EndpointAccess.PRIVATE)(ctx) == (True, None)

    def test_api_endpoint_url(self) -> None:
        hc = _hosted_cluster({"controlPlaneEndpoint": {"host": "api.hc.example.com", "port": 6443}})
        assert api_endpoint_url(hc) == "https://api.hc.example.com:6443"
        assert api_endpoint_url(_hosted_cluster()) is None

    def test_reachability_uses_probe(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_HOSTED_CLUSTER, _hosted_cluster({"controlPlaneEndpoint": {"host": "api.hc", "port": 443}}))
        probed = []

        def probe(url: str) -> bool:
            probed.append(url)
            return True

        assert api_endpoint_reachability(fake, HANDLE, True, probe)(ctx) == (True, None)
        assert api_endpoint_reachability(fake, HANDLE, False, probe)(ctx) == (False, None)
        assert probed == ["https://api.hc:443", "https://api.hc:443"]

    def test_unadvertised_endpoint_is_unreachable(self, fake: FakeKube, ctx: Context) -> None:
        fake.put(KIND_HOSTED_CLUSTER, _hosted_cluster())
        assert api_endpoint_reachability(fake, HANDLE, False, lambda _url: True)(ctx) == (True, None)

    def test_probe_endpoint_any_response_counts(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(conditions.requests, "get", lambda *a, **kw: requests.Response())
        assert probe_endpoint("https://api.hc:443") is True

    def test_probe_endpoint_connection_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def refuse(*_a, **_kw):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr(conditions.requests, "get", refuse)
        assert probe_endpoint("https://api.hc:443") is False


class TestGuestConditions:
    def test_nodes_ready(self, ctx: Context) -> None:
        guest = guest_cluster(ready_nodes=2)
        assert nodes_ready(guest, 2)(ctx) == (True, None)
        done, err = nodes_ready(guest, 3)(ctx)
        assert not done
        assert "2/3" in str(err)
