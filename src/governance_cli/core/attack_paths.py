# src/governance_cli/core/attack_paths.py
"""
Attack-path builder.

An attack path is a multi-layer compromise scenario assembled from findings
that span network exposure, workload privilege, identity and governance.

  path                       score  scope
  External Compromise         98    per namespace
  Identity Escalation         92    per namespace
  Governance Collapse         90    cluster
  EKS Control Plane Exposure  94    cluster

Two indexes are built from the same findings and never mixed:

  DetectionIndex : every rule ID on a finding, merged IDs included. Decides
                    whether a path fires.
  CollectionIndex: primary rule ID only. Decides which finding IDs become
                    the path's evidence.

A finding whose primary rule is unrelated but which carries a relevant rule
through merging can therefore trigger a path without being listed in it.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from governance_cli.core.models import AttackPath, Finding
from governance_cli.core.namespaces import resolve_namespace
from governance_cli.core.rules import ids

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Indexes
# ---------------------------------------------------------------------------

@dataclass
class DetectionIndex:
    namespaces: dict[str, set[str]] = field(default_factory=dict)
    cluster: set[str] = field(default_factory=set)

    @classmethod
    def build(cls, findings: Iterable[Finding]) -> "DetectionIndex":
        index = cls()
        for f in findings:
            rule_ids = f.all_rule_ids
            index.cluster.update(rule_ids)
            namespace = resolve_namespace(f)
            if namespace:
                index.namespaces.setdefault(namespace, set()).update(rule_ids)
        return index

    def namespace_has_any(self, namespace: str, *rule_ids: str) -> bool:
        present = self.namespaces.get(namespace, ())
        return any(r in present for r in rule_ids)

    def cluster_has_any(self, *rule_ids: str) -> bool:
        return any(r in self.cluster for r in rule_ids)


@dataclass
class CollectionIndex:
    namespaces: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    cluster: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def build(cls, findings: Iterable[Finding]) -> "CollectionIndex":
        index = cls()
        for f in findings:
            index.cluster.setdefault(f.rule_id, []).append(f.id)
            namespace = resolve_namespace(f)
            if namespace:
                by_rule = index.namespaces.setdefault(namespace, {})
                by_rule.setdefault(f.rule_id, []).append(f.id)
        return index

    def in_namespace(self, namespace: str, rule_ids: Iterable[str]) -> list[str]:
        by_rule = self.namespaces.get(namespace, {})
        return [fid for r in rule_ids for fid in by_rule.get(r, [])]

    def in_cluster(self, rule_ids: Iterable[str]) -> list[str]:
        return [fid for r in rule_ids for fid in self.cluster.get(r, [])]


def _dedupe(finding_ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(finding_ids))


# ---------------------------------------------------------------------------
# Path definitions
# ---------------------------------------------------------------------------

_PRIVILEGE = (ids.K8S_POD_RUN_AS_ROOT, ids.K8S_POD_CAP_SYS_ADMIN)
_WEAK_IDENTITY = (ids.EKS_SERVICEACCOUNT_NO_IRSA, ids.K8S_DEFAULT_SERVICEACCOUNT_USED)

_EXTERNAL_COMPROMISE_RULES = (
    ids.K8S_SERVICE_PUBLIC_LOADBALANCER,
    *_PRIVILEGE,
    *_WEAK_IDENTITY,
)
_IDENTITY_ESCALATION_RULES = (
    ids.K8S_DEFAULT_SERVICEACCOUNT_USED,
    ids.K8S_SERVICEACCOUNT_TOKEN_AUTOMOUNT,
    ids.EKS_SERVICEACCOUNT_NO_IRSA,
)
_GOVERNANCE_COLLAPSE_RULES = (
    ids.EKS_ENCRYPTION_DISABLED,
    ids.EKS_CONTROL_PLANE_LOGGING_DISABLED,
    ids.K8S_CLUSTER_SINGLE_NODE,
)
_CONTROL_PLANE_IAM_RULES = (ids.EKS_NODE_ROLE_OVERPERMISSIVE, ids.EKS_IAM_WILDCARD_POLICY)
_CONTROL_PLANE_EXPOSURE_RULES = (
    ids.EKS_PUBLIC_ENDPOINT_ENABLED,
    *_CONTROL_PLANE_IAM_RULES,
    ids.EKS_CONTROL_PLANE_LOGGING_DISABLED,
)


def _external_compromise(
    namespace: str, detect: DetectionIndex, collect: CollectionIndex,
) -> Optional[AttackPath]:
    if not (
        detect.namespace_has_any(namespace, ids.K8S_SERVICE_PUBLIC_LOADBALANCER)
        and detect.namespace_has_any(namespace, *_PRIVILEGE)
        and detect.namespace_has_any(namespace, *_WEAK_IDENTITY)
    ):
        return None

    layers = ["Network Exposure", "Workload Privilege", "Identity Weakness"]
    finding_ids = collect.in_namespace(namespace, _EXTERNAL_COMPROMISE_RULES)
    if detect.cluster_has_any(ids.EKS_NODE_ROLE_OVERPERMISSIVE):
        layers.append("IAM Over-permission")
        finding_ids += collect.in_cluster([ids.EKS_NODE_ROLE_OVERPERMISSIVE])

    return AttackPath(
        score=98,
        layers=layers,
        finding_ids=_dedupe(finding_ids),
        description="Externally exposed privileged workload with weak identity isolation.",
    )


def _identity_escalation(
    namespace: str, detect: DetectionIndex, collect: CollectionIndex,
) -> Optional[AttackPath]:
    if not (
        all(detect.namespace_has_any(namespace, r) for r in _IDENTITY_ESCALATION_RULES)
        and detect.cluster_has_any(ids.EKS_OIDC_PROVIDER_NOT_ASSOCIATED)
    ):
        return None

    finding_ids = collect.in_namespace(namespace, _IDENTITY_ESCALATION_RULES)
    finding_ids += collect.in_cluster([ids.EKS_OIDC_PROVIDER_NOT_ASSOCIATED])
    return AttackPath(
        score=92,
        layers=["Service Account Usage", "Token Exposure", "Identity Federation Missing"],
        finding_ids=_dedupe(finding_ids),
        description="Service account token misuse combined with missing IRSA and OIDC.",
    )


def _governance_collapse(detect: DetectionIndex, collect: CollectionIndex) -> Optional[AttackPath]:
    if not all(detect.cluster_has_any(r) for r in _GOVERNANCE_COLLAPSE_RULES):
        return None
    return AttackPath(
        score=90,
        layers=["Encryption Disabled", "Logging Disabled", "No Redundancy"],
        finding_ids=_dedupe(collect.in_cluster(_GOVERNANCE_COLLAPSE_RULES)),
        description="Cluster governance protections disabled with no redundancy.",
    )


def _control_plane_exposure(detect: DetectionIndex, collect: CollectionIndex) -> Optional[AttackPath]:
    if not (
        detect.cluster_has_any(ids.EKS_PUBLIC_ENDPOINT_ENABLED)
        and detect.cluster_has_any(*_CONTROL_PLANE_IAM_RULES)
        and detect.cluster_has_any(ids.EKS_CONTROL_PLANE_LOGGING_DISABLED)
    ):
        return None
    return AttackPath(
        score=94,
        layers=["Public Control Plane", "IAM Over-permission", "Audit Logging Disabled"],
        finding_ids=_dedupe(collect.in_cluster(_CONTROL_PLANE_EXPOSURE_RULES)),
        description="Publicly reachable EKS control plane with over-permissive IAM and no audit trail.",
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_attack_paths(findings: Optional[list[Finding]]) -> list[AttackPath]:
    """Detect every attack path in the finding set, highest score first."""
    if not findings:
        return []

    detect = DetectionIndex.build(findings)
    collect = CollectionIndex.build(findings)
    paths: list[AttackPath] = []

    for namespace in sorted(detect.namespaces):
        for builder in (_external_compromise, _identity_escalation):
            path = builder(namespace, detect, collect)
            if path is not None:
                paths.append(path)

    for builder in (_governance_collapse, _control_plane_exposure):
        path = builder(detect, collect)
        if path is not None:
            paths.append(path)

    paths.sort(key=lambda p: -p.score)
    logger.debug("built %d attack path(s)", len(paths))
    return paths
