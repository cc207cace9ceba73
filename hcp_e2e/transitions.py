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

"""Endpoint-access transitions on a running hosted cluster.

Each switch is a mutate / converge / assert cycle against the existing
cluster; nothing is re-provisioned.
"""

from __future__ import annotations

from hcp_e2e.conditions import Probe, api_endpoint_reachability, endpoint_access_converged, probe_endpoint
from hcp_e2e.config import ClusterHandle, EndpointAccess, HarnessConfig
from hcp_e2e.constants import KIND_NAMESPACE
from hcp_e2e.errors import HarnessError
from hcp_e2e.guest import guest_session
from hcp_e2e.kube import KubeClient
from hcp_e2e.lifecycle import Expect, Step, ValidateFn
from hcp_e2e.mutator import update_object
from hcp_e2e.poller import wait_for


def _set_endpoint_access(access: EndpointAccess):
    def mutate(hc: dict) -> None:
        aws = hc.setdefault("spec", {}).setdefault("platform", {}).setdefault("aws", {})
        aws["endpointAccess"] = access.value

    return mutate


def _switch(t: Step, g: Expect, mgmt: KubeClient, handle: ClusterHandle, access: EndpointAccess,
            config: HarnessConfig) -> None:
    t.log("setting endpointAccess to %s", access.value)
    g.no_error(update_object, t.ctx, mgmt, handle.ref, _set_endpoint_access(access))
    g.no_error(
        wait_for, endpoint_access_converged(mgmt, handle, access),
        interval=config.poll_interval, timeout=config.transition_timeout, ctx=t.ctx,
    )


def switch_to_public(t: Step, g: Expect, mgmt: KubeClient, handle: ClusterHandle, config: HarnessConfig,
                     probe: Probe = probe_endpoint) -> None:
    """Expose the API publicly and check it can be reached and used.

    Args:
        t: Step to record failures on.
        g: Assertions bound to *t*.
        mgmt: Management cluster client.
        handle: Cluster to switch.
        config: Supplies poll interval and timeouts.
        probe: Reachability check for the advertised endpoint URL.
    """
    _switch(t, g, mgmt, handle, EndpointAccess.PUBLIC_AND_PRIVATE, config)
    g.no_error(
        wait_for, api_endpoint_reachability(mgmt, handle, True, probe),
        interval=config.poll_interval, timeout=config.transition_timeout, ctx=t.ctx,
    )
    try:
        with guest_session(t.ctx, mgmt, handle, interval=config.poll_interval,
                           timeout=config.guest_timeout) as guest:
            namespaces = guest.list(KIND_NAMESPACE)
    except HarnessError as err:
        t.fatal(f"guest client unusable after switching to public: {err}")
        raise
    g.not_empty(namespaces, "guest namespace list")
    t.log("cluster is reachable publicly")


def switch_to_private(t: Step, g: Expect, mgmt: KubeClient, handle: ClusterHandle, config: HarnessConfig,
                      probe: Probe = probe_endpoint) -> None:
    """Withdraw public exposure and check the public endpoint goes away.

    The guest API is not reachable from here afterwards, so only
    management-side state is checked.
    """
    _switch(t, g, mgmt, handle, EndpointAccess.PRIVATE, config)
    g.no_error(
        wait_for, api_endpoint_reachability(mgmt, handle, False, probe),
        interval=config.poll_interval, timeout=config.transition_timeout, ctx=t.ctx,
    )
    t.log("public endpoint unreachable; guest client resolution skipped")


def endpoint_access_round_trip(config: HarnessConfig, probe: Probe = probe_endpoint) -> ValidateFn:
    """Validation that switches a private cluster to public and back."""

    def validate(t: Step, _g: Expect, mgmt: KubeClient, handle: ClusterHandle) -> None:
        t.run("SwitchFromPrivateToPublic", lambda st, sg: switch_to_public(st, sg, mgmt, handle, config, probe))
        t.run("SwitchFromPublicToPrivate", lambda st, sg: switch_to_private(st, sg, mgmt, handle, config, probe))

    return validate
