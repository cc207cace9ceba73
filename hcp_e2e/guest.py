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

"""Clients scoped to a hosted cluster's own API server.

Two flavours:

* the guest client, authenticated with the admin kubeconfig the product
  publishes as a secret next to the HostedCluster;
* the break-glass client, authenticated with the customer system-admin
  client certificate published in the control plane namespace.
"""

from __future__ import annotations

import base64
import ssl
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import yaml
from kubernetes import client, config

from hcp_e2e import logger
from hcp_e2e.conditions import guest_api_available, secret_populated
from hcp_e2e.config import ClusterHandle
from hcp_e2e.constants import (
    AUTHENTICATION_API_VERSION,
    BREAK_GLASS_GROUP,
    BREAK_GLASS_POLL_INTERVAL_SECONDS,
    BREAK_GLASS_SECRET_NAME,
    BREAK_GLASS_TIMEOUT_SECONDS,
    BREAK_GLASS_USERNAME_PREFIX,
    DEFAULT_GUEST_TIMEOUT_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    KIND_SECRET,
    KIND_SELF_SUBJECT_REVIEW,
    KUBECONFIG_SECRET_KEY,
    TLS_CERT_KEY,
    TLS_KEY_KEY,
)
from hcp_e2e.errors import AuthenticationError, HarnessError, IdentityMismatch, KubeError, NotFoundError, UnauthorizedError
from hcp_e2e.kube import KubeClient
from hcp_e2e.poller import Condition, Context, wait_for

PEM_MARKER = b"-----BEGIN"


def _decode(value: str | None) -> bytes:
    return base64.b64decode(value) if value else b""


# ============================================================================
# Kubeconfig
# ============================================================================

def _kubeconfig_secret_name(mgmt, handle: ClusterHandle) -> str | None:
    hc = mgmt.get(handle.ref.kind, handle.name, handle.namespace)
    return ((hc.get("status") or {}).get("kubeconfig") or {}).get("name")


def guest_kubeconfig_available(mgmt, handle: ClusterHandle) -> Condition:
    """The HostedCluster references a kubeconfig secret that has data."""

    def check(_ctx: Context) -> tuple[bool, Exception | None]:
        try:
            name = _kubeconfig_secret_name(mgmt, handle)
            if not name:
                return False, None
            secret = mgmt.get(KIND_SECRET, name, handle.namespace)
        except NotFoundError:
            return False, None
        except KubeError as err:
            return False, err
        return bool((secret.get("data") or {}).get(KUBECONFIG_SECRET_KEY)), None

    return Condition(f"kubeconfig of {handle.name}", check)


def wait_for_guest_kubeconfig(
    ctx: Context,
    mgmt,
    handle: ClusterHandle,
    *,
    interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    timeout: float = DEFAULT_GUEST_TIMEOUT_SECONDS,
) -> bytes:
    """Wait for the guest admin kubeconfig and return its raw payload.

    Raises:
        ConvergenceTimeout: If the secret is not published in time.
    """
    wait_for(guest_kubeconfig_available(mgmt, handle), interval=interval, timeout=timeout, ctx=ctx)
    name = _kubeconfig_secret_name(mgmt, handle)
    secret = mgmt.get(KIND_SECRET, name, handle.namespace)
    return _decode(secret["data"][KUBECONFIG_SECRET_KEY])


def configuration_from_kubeconfig(payload: bytes) -> client.Configuration:
    """Parse a kubeconfig payload into a REST configuration.

    Raises:
        HarnessError: If the payload is not a usable kubeconfig.
    """
    try:
        data = yaml.safe_load(payload)
    except yaml.YAMLError as err:
        raise HarnessError(f"guest kubeconfig is not valid YAML: {err}") from err
    if not isinstance(data, dict):
        raise HarnessError("guest kubeconfig is empty")
    configuration = client.Configuration()
    try:
        config.load_kube_config_from_dict(data, client_configuration=configuration, persist_config=False)
    except config.ConfigException as err:
        raise HarnessError(f"could not load guest kubeconfig: {err}") from err
    return configuration


def _client_for(configuration: client.Configuration) -> KubeClient:
    return KubeClient.from_configuration(configuration)


def wait_for_guest_client(
    ctx: Context,
    mgmt,
    handle: ClusterHandle,
    *,
    interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    timeout: float = DEFAULT_GUEST_TIMEOUT_SECONDS,
) -> KubeClient:
    """Resolve a client for the hosted cluster's API server.

    Waits for the kubeconfig secret, builds a client from it, then waits
    until the guest API answers.

    Raises:
        ConvergenceTimeout: If the kubeconfig or the API never becomes available.
    """
    logger.info("Waiting for guest client of %s/%s", handle.namespace, handle.name)
    payload = wait_for_guest_kubeconfig(ctx, mgmt, handle, interval=interval, timeout=timeout)
    guest = _client_for(configuration_from_kubeconfig(payload))
    try:
        wait_for(guest_api_available(guest), interval=interval, timeout=timeout, ctx=ctx)
    except BaseException:
        guest.close()
        raise
    return guest


@contextmanager
def guest_session(
    ctx: Context,
    mgmt,
    handle: ClusterHandle,
    *,
    interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    timeout: float = DEFAULT_GUEST_TIMEOUT_SECONDS,
) -> Iterator[KubeClient]:
    """Guest client whose connections are released on exit."""
    guest = wait_for_guest_client(ctx, mgmt, handle, interval=interval, timeout=timeout)
    try:
        yield guest
    finally:
        guest.close()


# ============================================================================
# Break-glass credential
# ============================================================================

def wait_for_break_glass_credential(
    ctx: Context,
    mgmt,
    handle: ClusterHandle,
    *,
    interval: float = BREAK_GLASS_POLL_INTERVAL_SECONDS,
    timeout: float = BREAK_GLASS_TIMEOUT_SECONDS,
) -> tuple[bytes, bytes]:
    """Wait for the break-glass certificate secret and return (cert, key).

    A missing secret keeps the poll going; only the timeout is fatal.
    """
    namespace = handle.control_plane_namespace
    wait_for(
        secret_populated(mgmt, BREAK_GLASS_SECRET_NAME, namespace, (TLS_CERT_KEY, TLS_KEY_KEY)),
        interval=interval, timeout=timeout, ctx=ctx,
    )
    data = mgmt.get(KIND_SECRET, BREAK_GLASS_SECRET_NAME, namespace).get("data") or {}
    return _decode(data.get(TLS_CERT_KEY)), _decode(data.get(TLS_KEY_KEY))


def build_break_glass_configuration(
    guest_configuration: client.Configuration,
    cert: bytes,
    key: bytes,
    workdir: Path,
) -> client.Configuration:
    """Anonymous copy of *guest_configuration* authenticated by a client cert.

    Only the server address and trust settings are carried over; the
    kubeconfig's own credentials are dropped.

    Raises:
        AuthenticationError: If the certificate or key is absent or malformed.
    """
    if not cert or not key:
        raise AuthenticationError("break-glass certificate or key is empty")
    if PEM_MARKER not in cert or PEM_MARKER not in key:
        raise AuthenticationError("break-glass certificate or key is not PEM encoded")

    cert_file = workdir / TLS_CERT_KEY
    key_file = workdir / TLS_KEY_KEY
    cert_file.write_bytes(cert)
    key_file.write_bytes(key)
    key_file.chmod(0o600)
    try:
        ssl.create_default_context().load_cert_chain(str(cert_file), str(key_file))
    except ssl.SSLError as err:
        raise AuthenticationError(f"break-glass certificate and key do not form a valid pair: {err}") from err

    configuration = client.Configuration()
    configuration.host = guest_configuration.host
    configuration.ssl_ca_cert = guest_configuration.ssl_ca_cert
    configuration.verify_ssl = guest_configuration.verify_ssl
    configuration.cert_file = str(cert_file)
    configuration.key_file = str(key_file)
    return configuration


@contextmanager
def break_glass_client(
    ctx: Context,
    mgmt,
    handle: ClusterHandle,
    *,
    interval: float = BREAK_GLASS_POLL_INTERVAL_SECONDS,
    timeout: float = BREAK_GLASS_TIMEOUT_SECONDS,
    guest_timeout: float = DEFAULT_GUEST_TIMEOUT_SECONDS,
) -> Iterator[KubeClient]:
    """Client authenticated as the break-glass identity.

    Certificate material lives in a private temporary directory that is
    removed when the context exits.
    """
    cert, key = wait_for_break_glass_credential(ctx, mgmt, handle, interval=interval, timeout=timeout)
    payload = wait_for_guest_kubeconfig(ctx, mgmt, handle, interval=interval, timeout=guest_timeout)
    guest_configuration = configuration_from_kubeconfig(payload)
    with tempfile.TemporaryDirectory(prefix="break-glass-") as workdir:
        configuration = build_break_glass_configuration(guest_configuration, cert, key, Path(workdir))
        guest = _client_for(configuration)
        try:
            yield guest
        finally:
            guest.close()


def check_break_glass_identity(user_info: dict) -> None:
    """Assert that *user_info* is the elevated break-glass identity.

    Raises:
        IdentityMismatch: If the group or username prefix is wrong.
    """
    groups = set(user_info.get("groups") or [])
    username = user_info.get("username") or ""
    if BREAK_GLASS_GROUP not in groups or not username.startswith(BREAK_GLASS_USERNAME_PREFIX):
        raise IdentityMismatch(
            f"unexpected break-glass identity: username={username!r} groups={sorted(groups)}; "
            f"want group {BREAK_GLASS_GROUP!r} and username prefix {BREAK_GLASS_USERNAME_PREFIX!r}"
        )


def verify_break_glass_identity(guest: KubeClient) -> dict:
    """Ask the guest API who we are and check the answer.

    Returns:
        The ``userInfo`` reported by the SelfSubjectReview.

    Raises:
        AuthenticationError: If the API refuses the credential.
        IdentityMismatch: If the identity is not the break-glass one.
    """
    body = {"apiVersion": AUTHENTICATION_API_VERSION, "kind": KIND_SELF_SUBJECT_REVIEW, "metadata": {}}
    try:
        review = guest.create(KIND_SELF_SUBJECT_REVIEW, body)
    except UnauthorizedError as err:
        raise AuthenticationError(f"break-glass credential rejected: {err}") from err
    user_info = (review.get("status") or {}).get("userInfo") or {}
    check_break_glass_identity(user_info)
    logger.info("Authenticated as %s", user_info.get("username"))
    return user_info
