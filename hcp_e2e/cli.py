#!/usr/bin/env python3
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

"""
cli.py - Command line entry point for the hosted cluster e2e harness.

Subcommands:
    scenarios  List and run hosted cluster scenarios
    cluster    Inspect and delete clusters left behind by scenarios

Examples:
    # Show the available scenarios
    hcp-e2e scenarios list

    # Run every scenario the configuration supports
    hcp-e2e scenarios run

    # Run two scenarios on three zones
    hcp-e2e scenarios run create create-private --zones us-east-1a,us-east-1b,us-east-1c

    # Delete a cluster a cancelled run could not clean up
    hcp-e2e cluster delete --namespace e2e-clusters-1a2b3c --name create-cluster-4d5e6f

Every option can also be set through an E2E_* environment variable
(e.g. E2E_RELEASE_IMAGE). For detailed usage information, run: hcp-e2e --help
"""

from __future__ import annotations

import logging
import sys

import typer

from hcp_e2e import console
from hcp_e2e.commands import cluster_cmd, scenarios_cmd

app = typer.Typer(
    help="Hosted cluster lifecycle test harness.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(scenarios_cmd.app, name="scenarios")
app.add_typer(cluster_cmd.app, name="cluster")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
