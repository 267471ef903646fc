# src/governance_cli/adapters/kubernetes/collector.py
"""
Kubernetes cluster collector built on the official `kubernetes` client.

The kubeconfig context is loaded into its own ApiClient rather than the
module-global default configuration, so several collectors can coexist in one
process. Pod security settings are resolved per container: a container-level
securityContext value overrides the pod-level one.
"""

import logging
from typing import Any, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from governance_cli.core.base_collector import ClusterCollector
from governance_cli.core.exceptions import ClusterConnectionError, CollectionError
from governance_cli.core.inventory import (
    ClusterData,
    ContainerData,
    NamespaceData,
    NodeData,
    PodData,
    ServiceAccountData,
    ServiceData,
)

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_ACCOUNT = "default"

_DECIMAL_SUFFIXES = {"n": 1e-9, "u": 1e-6, "m": 1e-3, "": 1, "k": 1e3, "M": 1e6, "G": 1e9, "T": 1e12}


def parse_cpu_millis(quantity: Optional[str]) -> int:
    """
    Convert a CPU quantity ("2", "500m", "1.5", "250000000n") to millicores.
    Unparseable values count as 0.
    """
    if not quantity:
        return 0
    value = str(quantity).strip()
    suffix = value[-1] if value[-1].isalpha() else ""
    number = value[: -len(suffix)] if suffix else value
    if suffix not in _DECIMAL_SUFFIXES:
        return 0
    try:
        return int(round(float(number) * _DECIMAL_SUFFIXES[suffix] * 1000))
    except ValueError:
        return 0


def _first_set(*values):
    for v in values:
        if v is not None:
            return v
    return None


def _has_request(resources: Any, name: str) -> bool:
    requests = getattr(resources, "requests", None) or {}
    quantity = requests.get(name)
    if quantity is None:
        return False
    # "0" and "0m" are explicit zero requests and count as missing.
    return str(quantity).strip("0m.") != ""


def to_container(container: Any, pod_security: Any) -> ContainerData:
    sc = container.security_context
    capabilities = getattr(sc, "capabilities", None) if sc else None
    seccomp = _first_set(
        getattr(sc, "seccomp_profile", None) if sc else None,
        getattr(pod_security, "seccomp_profile", None) if pod_security else None,
    )
    return ContainerData(
        name=container.name,
        privileged=bool(sc and sc.privileged),
        has_cpu_request=_has_request(container.resources, "cpu"),
        has_memory_request=_has_request(container.resources, "memory"),
        run_as_non_root=_first_set(
            sc.run_as_non_root if sc else None,
            pod_security.run_as_non_root if pod_security else None,
        ),
        run_as_user=_first_set(
            sc.run_as_user if sc else None,
            pod_security.run_as_user if pod_security else None,
        ),
        added_capabilities=list(getattr(capabilities, "add", None) or []),
        seccomp_profile_type=(seccomp.type if seccomp is not None else "") or "",
    )


def to_pod(pod: Any) -> PodData:
    spec = pod.spec
    return PodData(
        name=pod.metadata.name,
        namespace=pod.metadata.namespace,
        host_network=bool(spec.host_network),
        host_pid=bool(spec.host_pid),
        host_ipc=bool(spec.host_ipc),
        service_account_name=spec.service_account_name or DEFAULT_SERVICE_ACCOUNT,
        containers=[to_container(c, spec.security_context) for c in spec.containers or []],
    )


def to_node(node: Any) -> NodeData:
    status = node.status
    return NodeData(
        name=node.metadata.name,
        cpu_capacity_millis=parse_cpu_millis((status.capacity or {}).get("cpu")),
        allocatable_cpu_millis=parse_cpu_millis((status.allocatable or {}).get("cpu")),
        provider_id=node.spec.provider_id or "",
        labels=dict(node.metadata.labels or {}),
    )


class KubeClusterCollector(ClusterCollector):

    def __init__(self, kubeconfig: Optional[str] = None):
        self.kubeconfig = kubeconfig

    def collect(self, context_name: str) -> ClusterData:
        api_client, effective_context, server = self._connect(context_name)
        core = client.CoreV1Api(api_client=api_client)
        cluster = ClusterData(context_name=effective_context, server=server)

        try:
            cluster.nodes = [to_node(n) for n in core.list_node().items]
            cluster.namespaces = self._namespaces(core)
            cluster.pods = [to_pod(p) for p in core.list_pod_for_all_namespaces().items]
            cluster.services = [
                ServiceData(
                    name=s.metadata.name,
                    namespace=s.metadata.namespace,
                    type=s.spec.type or "ClusterIP",
                    annotations=dict(s.metadata.annotations or {}),
                )
                for s in core.list_service_for_all_namespaces().items
            ]
            cluster.service_accounts = [
                ServiceAccountData(
                    name=sa.metadata.name,
                    namespace=sa.metadata.namespace,
                    automount_token=sa.automount_service_account_token,
                    annotations=dict(sa.metadata.annotations or {}),
                )
                for sa in core.list_service_account_for_all_namespaces().items
            ]
        except ApiException as e:
            raise CollectionError(f"{e.status} {e.reason}") from e
        except urllib3.exceptions.HTTPError as e:
            raise ClusterConnectionError(f"API server for context {effective_context!r} unreachable: {e}") from e
        finally:
            api_client.close()

        return cluster

    def resolve_context(self, context_name: str) -> str:
        api_client, effective_context, _ = self._connect(context_name)
        api_client.close()
        return effective_context

    def ping(self, context_name: str) -> None:
        api_client, effective_context, _ = self._connect(context_name)
        try:
            client.CoreV1Api(api_client=api_client).list_namespace(limit=1)
        except ApiException as e:
            raise CollectionError(f"{e.status} {e.reason}") from e
        except urllib3.exceptions.HTTPError as e:
            raise ClusterConnectionError(f"API server for context {effective_context!r} unreachable: {e}") from e
        finally:
            api_client.close()

    def _connect(self, context_name: str) -> tuple[client.ApiClient, str, str]:
        try:
            contexts, active = config.list_kube_config_contexts(config_file=self.kubeconfig)
            effective = context_name or (active or {}).get("name", "")
            if context_name and context_name not in {c["name"] for c in contexts}:
                raise ClusterConnectionError(f"context {context_name!r} not found in kubeconfig")
            api_client = config.new_client_from_config(config_file=self.kubeconfig, context=effective or None)
        except ConfigException as e:
            raise ClusterConnectionError(f"load kubeconfig: {e}") from e

        server = api_client.configuration.host or ""
        logger.debug("connected to context %s (%s)", effective, server)
        return api_client, effective, server

    @staticmethod
    def _namespaces(core: client.CoreV1Api) -> list[NamespaceData]:
        with_limits = {lr.metadata.namespace for lr in core.list_limit_range_for_all_namespaces().items}
        return [
            NamespaceData(
                name=ns.metadata.name,
                has_limit_range=ns.metadata.name in with_limits,
                labels=dict(ns.metadata.labels or {}),
            )
            for ns in core.list_namespace().items
        ]
