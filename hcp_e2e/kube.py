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

"""Object client over the kubernetes dynamic client.

Every object crosses this boundary as a plain ``dict`` so custom resources
(HostedCluster, NodePool) and core kinds share one code path, and so tests can
substitute an in-memory store with the same five methods.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

import urllib3
from kubernetes import client, config, dynamic
from kubernetes.client.exceptions import ApiException

from hcp_e2e import logger
from hcp_e2e.constants import KINDS
from hcp_e2e.errors import ConflictError, KubeError, NotFoundError, UnauthorizedError


@dataclass(frozen=True)
class ObjectRef:
    """Kind, name and (for namespaced kinds) namespace of an API object."""

    kind: str
    name: str
    namespace: str | None = None

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind} {self.namespace}/{self.name}"
        return f"{self.kind} {self.name}"


def ref_for(obj: dict) -> ObjectRef:
    """Build the reference of an object from its kind and metadata."""
    meta = obj.get("metadata", {})
    return ObjectRef(obj["kind"], meta["name"], meta.get("namespace"))


def _error_for_status(status: int | None, message: str) -> KubeError:
    if status == 404:
        return NotFoundError(message, status)
    if status == 409:
        return ConflictError(message, status)
    if status in (401, 403):
        return UnauthorizedError(message, status)
    return KubeError(message, status)


@contextmanager
def _translated(action: str, what: str) -> Iterator[None]:
    """Translate kubernetes client errors into harness errors."""
    try:
        yield
    except ApiException as err:
        raise _error_for_status(err.status, f"{action} {what}: {err.reason}") from err
    except (urllib3.exceptions.HTTPError, OSError) as err:
        raise KubeError(f"{action} {what}: {err}") from err


class KubeClient:
    """Typed create/read/update/delete/list client for the harness kinds.

    Args:
        api_client: Configured kubernetes ``ApiClient``.
    """

    def __init__(self, api_client: client.ApiClient) -> None:
        self._api_client = api_client
        self._dynamic: dynamic.DynamicClient | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_kubeconfig(cls, path: Path | None = None, context: str | None = None) -> KubeClient:
        """Build a client from a kubeconfig file, or the default loading rules."""
        api_client = config.new_client_from_config(
            config_file=str(path) if path else None, context=context,
        )
        return cls(api_client)

    @classmethod
    def from_configuration(cls, configuration: client.Configuration) -> KubeClient:
        return cls(client.ApiClient(configuration))

    @property
    def _resources(self):
        # Discovery talks to the server, so defer it until the first call.
        with self._lock:
            if self._dynamic is None:
                with _translated("discover", "API resources"):
                    self._dynamic = dynamic.DynamicClient(self._api_client)
            return self._dynamic.resources

    def _resource(self, kind: str):
        try:
            api_version, _ = KINDS[kind]
        except KeyError:
            raise ValueError(f"Unsupported kind '{kind}'") from None
        with _translated("discover", kind):
            return self._resources.get(api_version=api_version, kind=kind)

    @staticmethod
    def _namespace(kind: str, namespace: str | None) -> str | None:
        namespaced = KINDS[kind][1]
        if namespaced and not namespace:
            raise ValueError(f"{kind} is namespaced; a namespace is required")
        return namespace if namespaced else None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def get(self, kind: str, name: str, namespace: str | None = None) -> dict:
        """Read one object.

        Raises:
            NotFoundError: If the object does not exist.
            KubeError: On any other API failure.
        """
        resource = self._resource(kind)
        ns = self._namespace(kind, namespace)
        with _translated("get", str(ObjectRef(kind, name, ns))):
            return resource.get(name=name, namespace=ns).to_dict()

    def list(
        self,
        kind: str,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict]:
        """List objects of a kind, optionally scoped to a namespace and selector."""
        resource = self._resource(kind)
        kwargs: dict[str, Any] = {}
        if namespace and KINDS[kind][1]:
            kwargs["namespace"] = namespace
        if label_selector:
            kwargs["label_selector"] = label_selector
        with _translated("list", kind):
            return resource.get(**kwargs).to_dict().get("items") or []

    def create(self, kind: str, body: dict) -> dict:
        """Create an object and return the stored version."""
        resource = self._resource(kind)
        meta = body.get("metadata", {})
        ns = self._namespace(kind, meta.get("namespace"))
        with _translated("create", str(ObjectRef(kind, meta.get("name", "<generated>"), ns))):
            return resource.create(body=body, namespace=ns).to_dict()

    def update(self, kind: str, body: dict) -> dict:
        """Replace an object; the body's resourceVersion guards the write.

        Raises:
            ConflictError: If the object changed since it was read.
        """
        resource = self._resource(kind)
        meta = body["metadata"]
        ns = self._namespace(kind, meta.get("namespace"))
        with _translated("update", str(ObjectRef(kind, meta["name"], ns))):
            return resource.replace(body=body, namespace=ns).to_dict()

    def delete(self, kind: str, name: str, namespace: str | None = None) -> None:
        """Request deletion of an object.

        Raises:
            NotFoundError: If the object is already gone.
        """
        resource = self._resource(kind)
        ns = self._namespace(kind, namespace)
        with _translated("delete", str(ObjectRef(kind, name, ns))):
            resource.delete(name=name, namespace=ns, body={"propagationPolicy": "Background"})
        logger.debug("Requested deletion of %s", ObjectRef(kind, name, ns))

    def close(self) -> None:
        self._api_client.close()
