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

"""Read-modify-write updates with optimistic conflict retry."""

from __future__ import annotations

import copy
from collections.abc import Callable

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from hcp_e2e import logger
from hcp_e2e.constants import UPDATE_MAX_ATTEMPTS, UPDATE_RETRY_WAIT_SECONDS
from hcp_e2e.errors import ConflictError, ConvergenceCancelled
from hcp_e2e.kube import ObjectRef
from hcp_e2e.poller import Context


def update_object(
    ctx: Context,
    client,
    ref: ObjectRef,
    mutate: Callable[[dict], None],
    *,
    attempts: int = UPDATE_MAX_ATTEMPTS,
    wait: float = UPDATE_RETRY_WAIT_SECONDS,
) -> dict:
    """Apply *mutate* to the latest version of *ref* and write it back.

    Each attempt re-reads the object, so a competing writer's changes are
    kept and the mutation is re-applied on top of them. The write carries
    the resourceVersion that was read, which makes the API server reject it
    with a conflict if anything changed in between.

    Args:
        ctx: Cancellation scope; a cancelled context stops retrying.
        client: Object client used for get/update.
        ref: Object to update.
        mutate: Callback editing the freshly read object in place.
        attempts: Maximum read-modify-write cycles.
        wait: Seconds between conflicting attempts.

    Returns:
        The object as stored by the API server.

    Raises:
        ConflictError: If every attempt conflicted.
        ConvergenceCancelled: If *ctx* was cancelled before the write landed.
        KubeError: On any non-conflict API failure, without retry.
    """

    def _attempt() -> dict:
        if ctx.cancelled:
            raise ConvergenceCancelled(f"cancelled while updating {ref}")
        current = client.get(ref.kind, ref.name, ref.namespace)
        desired = copy.deepcopy(current)
        mutate(desired)
        try:
            return client.update(ref.kind, desired)
        except ConflictError:
            logger.debug("Conflict updating %s, re-reading", ref)
            raise

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(wait),
        retry=retry_if_exception_type(ConflictError),
        sleep=ctx.sleep,
        reraise=True,
    )
    return retrying(_attempt)
