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

"""Cluster subcommands (list, delete) for clusters left behind by scenarios."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel

from hcp_e2e import console
from hcp_e2e.config import ClusterHandle, resolve_config
from hcp_e2e.constants import E2E_NAMESPACE_LABEL, KIND_HOSTED_CLUSTER, KIND_NAMESPACE
from hcp_e2e.errors import TeardownError
from hcp_e2e.kube import KubeClient
from hcp_e2e.lifecycle import destroy_cluster

app = typer.Typer(help="Inspect and delete hosted clusters created by the harness.")


@app.command("list")
def list_clusters(
    kubeconfig: Path | None = typer.Option(None, "--kubeconfig", help="Management cluster kubeconfig"),
) -> None:
    """List hosted clusters in harness-owned namespaces."""
    cfg = resolve_config(kubeconfig=kubeconfig)
    mgmt = KubeClient.from_kubeconfig(cfg.kubeconfig)
    try:
        console.print(Panel.fit("Harness clusters", style="bold blue"))
        namespaces = mgmt.list(KIND_NAMESPACE, label_selector=f"{E2E_NAMESPACE_LABEL}=true")
        found = 0
        for ns in namespaces:
            for hc in mgmt.list(KIND_HOSTED_CLUSTER, namespace=ns["metadata"]["name"]):
                found += 1
                console.print(f"  {hc['metadata']['namespace']}/{hc['metadata']['name']}")
        if not found:
            console.print("[green]\u2705 No harness clusters found[/green]")
    finally:
        mgmt.close()


@app.command("delete")
def delete_cluster(
    namespace: str = typer.Option(..., "--namespace", help="Namespace holding the HostedCluster"),
    name: str = typer.Option(..., "--name", help="HostedCluster name"),
    kubeconfig: Path | None = typer.Option(None, "--kubeconfig", help="Management cluster kubeconfig"),
    artifact_dir: Path | None = typer.Option(
        None, "--artifact-dir", help="Dump the HostedCluster here before deleting it"),
) -> None:
    """Delete a hosted cluster, its node pools, and its namespace."""
    cfg = resolve_config(kubeconfig=kubeconfig)
    mgmt = KubeClient.from_kubeconfig(cfg.kubeconfig)
    console.print(f"[yellow]\u2139\ufe0f  Deleting {namespace}/{name}...[/yellow]")
    try:
        errors = destroy_cluster(
            mgmt, ClusterHandle(namespace, name),
            interval=cfg.poll_interval, timeout=cfg.teardown_timeout, artifact_dir=artifact_dir,
        )
    finally:
        mgmt.close()
    if errors:
        raise TeardownError("; ".join(errors))
    console.print(f"[green]\u2705 Deleted {namespace}/{name}[/green]")
