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

"""Tests for the command line interface."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from hcp_e2e.cli import app
from hcp_e2e.commands import cluster_cmd, scenarios_cmd
from hcp_e2e.errors import TeardownError
from hcp_e2e.lifecycle import Outcome
from hcp_e2e.orchestrator import RunReport
from tests.fakes import FakeKube

runner = CliRunner()


@pytest.fixture
def kube(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    client_cls = MagicMock()
    monkeypatch.setattr(scenarios_cmd, "KubeClient", client_cls)
    monkeypatch.setattr(cluster_cmd, "KubeClient", client_cls)
    return client_cls


@pytest.fixture
def run_scenarios(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    mock = MagicMock(return_value=RunReport(outcomes={"create": Outcome("create")}))
    monkeypatch.setattr(scenarios_cmd, "run_scenarios", mock)
    return mock


class TestScenariosCommand:
    def test_list(self) -> None:
        result = runner.invoke(app, ["scenarios", "list"])
        assert result.exit_code == 0
        assert "create-private" in result.output

    def test_run_selected(self, kube: MagicMock, run_scenarios: MagicMock) -> None:
        result = runner.invoke(app, [
            "scenarios", "run", "create", "--zones", "a,b,c", "--parallel", "2", "--kubeconfig", "/tmp/kubeconfig",
        ])
        assert result.exit_code == 0, result.output
        names, cfg, mgmt = run_scenarios.call_args.args
        assert names == ["create"]
        assert cfg.zone_list == ("a", "b", "c")
        assert run_scenarios.call_args.kwargs == {"max_parallel": 2}
        kube.from_kubeconfig.assert_called_once()
        assert str(kube.from_kubeconfig.call_args.args[0]) == "/tmp/kubeconfig"
        mgmt.close.assert_called_once()

    def test_run_defaults_to_all(self, kube: MagicMock, run_scenarios: MagicMock) -> None:
        result = runner.invoke(app, ["scenarios", "run"])
        assert result.exit_code == 0, result.output
        assert "create-none" in run_scenarios.call_args.args[0]

    def test_unknown_scenario(self, kube: MagicMock, run_scenarios: MagicMock) -> None:
        result = runner.invoke(app, ["scenarios", "run", "create-everything"])
        assert result.exit_code == 2
        run_scenarios.assert_not_called()

    def test_failed_report_exits_non_zero(self, kube: MagicMock, run_scenarios: MagicMock) -> None:
        run_scenarios.return_value = RunReport(outcomes={"create": Outcome("create", failures=["create: boom"])})
        result = runner.invoke(app, ["scenarios", "run", "create"])
        assert result.exit_code == 1


class TestClusterCommand:
    def test_list(self, kube: MagicMock) -> None:
        fake = FakeKube()
        fake.put("Namespace", {"metadata": {"name": "e2e-1", "labels": {"hcp-e2e.openshift.io/test": "true"}}})
        fake.put("HostedCluster", {"metadata": {"name": "hc", "namespace": "e2e-1"}})
        kube.from_kubeconfig.return_value = fake
        result = runner.invoke(app, ["cluster", "list"])
        assert result.exit_code == 0, result.output
        assert "e2e-1/hc" in result.output
        assert fake.closed

    def test_delete(self, kube: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        destroy = MagicMock(return_value=[])
        monkeypatch.setattr(cluster_cmd, "destroy_cluster", destroy)
        result = runner.invoke(app, ["cluster", "delete", "--namespace", "e2e-1", "--name", "hc"])
        assert result.exit_code == 0, result.output
        handle = destroy.call_args.args[1]
        assert (handle.namespace, handle.name) == ("e2e-1", "hc")

    def test_delete_failure(self, kube: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cluster_cmd, "destroy_cluster", MagicMock(return_value=["delete namespace e2e-1: forbidden"]))
        result = runner.invoke(app, ["cluster", "delete", "--namespace", "e2e-1", "--name", "hc"])
        assert result.exit_code == 1
        assert isinstance(result.exception, TeardownError)
