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

"""Harness exception hierarchy."""

from __future__ import annotations


class HarnessError(RuntimeError):
    """Base class for every error raised by the harness."""


class PreconditionError(HarnessError):
    """A request needed before anything exists was rejected."""


class ConvergenceTimeout(HarnessError):
    """A condition did not become true within its timeout."""


class ConvergenceCancelled(HarnessError):
    """Polling stopped because its context was cancelled."""


class KubeError(HarnessError):
    """An API call failed.

    Attributes:
        status: HTTP status code returned by the API server, if any.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(KubeError):
    """The requested object does not exist (yet)."""


class ConflictError(KubeError):
    """The write was based on a stale resourceVersion."""


class UnauthorizedError(KubeError):
    """The API server rejected the caller's credentials."""


class AuthenticationError(HarnessError):
    """Client credentials are missing, malformed, or refused."""


class IdentityMismatch(HarnessError):
    """An authenticated identity does not carry the expected privileges."""


class StepFatal(HarnessError):
    """Raised by ``Step.fatal`` to abort the current step."""


class ScenarioSkipped(HarnessError):
    """A scenario's preconditions are not met by the configuration."""


class ScenarioFailed(HarnessError):
    """A scenario finished with validation or teardown failures."""


class TeardownError(HarnessError):
    """Cleanup of a provisioned cluster did not complete."""
