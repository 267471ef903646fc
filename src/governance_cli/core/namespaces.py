# src/governance_cli/core/namespaces.py
"""
Namespace scope classification for Kubernetes findings.

Every finding is tagged with metadata.namespace_type:
  system  : resolved namespace is one of config.SYSTEM_NAMESPACES
  workload: any other resolved namespace
  cluster : no namespace (nodes, the cluster itself, EKS control plane)

exclude_system_findings() must run before correlation so that risk chains
and attack paths are computed on the final finding set.
"""

from typing import Iterable

from governance_cli.config import SYSTEM_NAMESPACES
from governance_cli.core.models import Finding, NamespaceType, ResourceType


def resolve_namespace(finding: Finding) -> str:
    """Namespace a finding belongs to, or "" when it is cluster-scoped."""
    if finding.resource_type == ResourceType.K8S_NAMESPACE:
        return finding.resource_id
    if finding.metadata is not None and finding.metadata.namespace:
        return finding.metadata.namespace
    return ""


def classify_scope(finding: Finding) -> NamespaceType:
    namespace = resolve_namespace(finding)
    if not namespace:
        return NamespaceType.CLUSTER
    if namespace in SYSTEM_NAMESPACES:
        return NamespaceType.SYSTEM
    return NamespaceType.WORKLOAD


def annotate_namespace_type(findings: Iterable[Finding]) -> None:
    for f in findings:
        f.ensure_metadata().namespace_type = classify_scope(f)


def exclude_system_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Drop system-namespace findings; cluster and workload findings are always kept."""
    return [f for f in findings if classify_scope(f) != NamespaceType.SYSTEM]
