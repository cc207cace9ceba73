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

"""Shared fixtures: a fast configuration and fake management/guest clusters."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from hcp_e2e.config import HarnessConfig
from hcp_e2e.kube import KubeClient
from hcp_e2e.poller import Context
from tests.fakes import FakeKube, guest_cluster, ready_management_cluster


class GuestResolverSpy:
    """Replacement for ``wait_for_guest_client`` that counts its calls."""

    def __init__(self, guest: FakeKube) -> None:
        self.guest = guest
        self.calls = 0

    def __call__(self, ctx: Context, mgmt: KubeClient, handle, **_kwargs) -> FakeKube:
        self.calls += 1
        return self.guest


@pytest.fixture(autouse=True)
def _isolated_env(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep E2E_* variables from the caller's shell out of unit tests."""
    if request.node.get_closest_marker("e2e"):
        return
    for key in list(os.environ):
        if key.startswith("E2E_"):
            monkeypatch.delenv(key)


@pytest.fixture
def config(tmp_path: Path) -> HarnessConfig:
    return HarnessConfig(
        artifact_dir=tmp_path / "artifacts",
        zones="us-east-1a",
        poll_interval=0.01,
        provision_timeout=2,
        guest_timeout=2,
        transition_timeout=2,
        teardown_timeout=2,
    )


@pytest.fixture
def ctx() -> Context:
    return Context()


@pytest.fixture
def mgmt() -> FakeKube:
    return ready_management_cluster()


@pytest.fixture
def guest_resolver(monkeypatch: pytest.MonkeyPatch) -> GuestResolverSpy:
    spy = GuestResolverSpy(guest_cluster())
    monkeypatch.setattr("hcp_e2e.lifecycle.wait_for_guest_client", spy)
    return spy
