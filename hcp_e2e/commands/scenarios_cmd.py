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

"""Scenario subcommands (list, run)."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel

from hcp_e2e import console
from hcp_e2e.config import Platform, display_config, resolve_config
from hcp_e2e.constants import DEFAULT_MAX_PARALLEL_SCENARIOS
from hcp_e2e.kube import KubeClient
from hcp_e2e.orchestrator import display_report, run_scenarios
from hcp_e2e.scenarios import SCENARIOS, describe

app = typer.Typer(help="List and run hosted cluster scenarios.")


@app.command("list")
def list_scenarios() -> None:
    """Show every registered scenario."""
    console.print(Panel.fit("Scenarios", style="bold blue"))
    for name in SCENARIOS:
        console.print(f"  [bold]{name:<34}[/bold] {describe(name)}")


@app.command()
def run(
    names: list[str] | None = typer.Argument(
        None, help="Scenarios to run (default: all)"),
    platform: Platform | None = typer.Option(
        None, "--platform", help="Platform for scenarios that do not pin one (overrides E2E_PLATFORM)"),
    kubeconfig: Path | None = typer.Option(
        None, "--kubeconfig", help="Management cluster kubeconfig"),
    zones: str | None = typer.Option(
        None, "--zones", help="Comma separated availability zones"),
    release_image: str | None = typer.Option(
        None, "--release-image", help="Release image to install"),
    base_domain: str | None = typer.Option(
        None, "--base-domain", help="DNS base domain"),
    node_pool_replicas: int | None = typer.Option(
        None, "--node-pool-replicas", help="Worker replicas per node pool"),
    artifact_dir: Path | None = typer.Option(
        None, "--artifact-dir", help="Directory for per-scenario artifacts"),
    pull_secret_file: Path | None = typer.Option(
        None, "--pull-secret", help="Pull secret file"),
    signing_key_file: Path | None = typer.Option(
        None, "--service-account-signing-key", help="Service account signing key file"),
    request_serving_isolation: bool | None = typer.Option(
        None, "--request-serving-isolation/--no-request-serving-isolation",
        help="Whether dedicated request-serving nodes are available"),
    kms_key_arn: str | None = typer.Option(
        None, "--kms-key-arn", help="KMS key for secret encryption"),
    kms_role_arn: str | None = typer.Option(
        None, "--kms-role-arn", help="IAM role for KMS access"),
    proxy_url: str | None = typer.Option(
        None, "--proxy-url", help="HTTP(S) proxy for the proxy scenario"),
    parallel: int = typer.Option(
        DEFAULT_MAX_PARALLEL_SCENARIOS, "--parallel", min=1, help="Scenarios running at once"),
) -> None:
    """Run scenarios in parallel, each on its own hosted cluster.

    Exits non-zero if any scenario failed or could not be started.
    """
    selected = list(names) if names else list(SCENARIOS)
    unknown = [n for n in selected if n not in SCENARIOS]
    if unknown:
        raise typer.BadParameter(
            f"unknown scenario(s): {', '.join(unknown)}; choose from {', '.join(SCENARIOS)}",
            param_hint="NAMES",
        )

    cfg = resolve_config(
        platform=platform,
        kubeconfig=kubeconfig,
        zones=zones,
        release_image=release_image,
        base_domain=base_domain,
        node_pool_replicas=node_pool_replicas,
        artifact_dir=artifact_dir,
        pull_secret_file=pull_secret_file,
        service_account_signing_key_file=signing_key_file,
        request_serving_isolation=request_serving_isolation,
        kms_key_arn=kms_key_arn,
        kms_role_arn=kms_role_arn,
        proxy_url=proxy_url,
    )
    display_config(cfg, selected)

    mgmt = KubeClient.from_kubeconfig(cfg.kubeconfig)
    try:
        report = run_scenarios(selected, cfg, mgmt, max_parallel=parallel)
    finally:
        mgmt.close()

    display_report(report)
    if not report.passed:
        raise typer.Exit(code=1)
