# src/governance_cli/core/correlation.py
"""
Risk-chain correlation for Kubernetes findings.

A risk chain is a compound pattern: two signals that are each bad on their
own and much worse together. Namespace-scoped chains need both signals in the
same namespace; cluster-scoped chains need them anywhere in the finding set.

  #  score  scope      condition
  1   80    namespace  public LoadBalancer + (run-as-root | CAP_SYS_ADMIN)
  2   60    namespace  default ServiceAccount used + token automount
  3   50    cluster    single node + any CRITICAL finding
  4   90    cluster    overpermissive node IAM role + public LoadBalancer
  5   85    namespace  ServiceAccount without IRSA + default ServiceAccount used
  6   95    cluster    OIDC provider not associated + any HIGH finding

Each participating finding gets the highest-scoring chain it takes part in.
Chains are checked in the order above and a later chain only replaces an
earlier one with a strictly greater score, so ties keep the first match.

Rule IDs are matched against every ID merged into a finding, not only its
primary rule.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, NamedTuple

from governance_cli.core.models import Finding, RiskChain, Severity
from governance_cli.core.namespaces import resolve_namespace
from governance_cli.core.rules import ids

logger = logging.getLogger(__name__)


@dataclass
class CorrelationIndex:
    """Lookup structures built once per correlate_risk_chains() call."""
    namespaces: dict[str, set[str]] = field(default_factory=dict)
    global_rules: set[str] = field(default_factory=set)
    severities: set[Severity] = field(default_factory=set)

    @classmethod
    def build(cls, findings: Iterable[Finding]) -> "CorrelationIndex":
        index = cls()
        for f in findings:
            rule_ids = f.all_rule_ids
            index.global_rules.update(rule_ids)
            index.severities.add(f.severity)
            namespace = resolve_namespace(f)
            if namespace:
                index.namespaces.setdefault(namespace, set()).update(rule_ids)
        return index

    def namespace_has(self, namespace: str, *rule_ids: str) -> bool:
        present = self.namespaces.get(namespace, ())
        return any(r in present for r in rule_ids)

    def has_rule(self, rule_id: str) -> bool:
        return rule_id in self.global_rules

    def has_severity(self, severity: Severity) -> bool:
        return severity in self.severities


def build_namespace_rule_index(findings: Iterable[Finding]) -> dict[str, set[str]]:
    """namespace -> every rule ID (primary and merged) present in it."""
    return CorrelationIndex.build(findings).namespaces


# ---------------------------------------------------------------------------
# Chain predicates: (finding, its rule IDs, its namespace, index) -> bool
# ---------------------------------------------------------------------------

_PRIVILEGED = (ids.K8S_POD_RUN_AS_ROOT, ids.K8S_POD_CAP_SYS_ADMIN)


def _paired_in_namespace(first: tuple[str, ...], second: tuple[str, ...]):
    """Finding carries one side and its namespace carries the other."""
    def check(f: Finding, rule_ids: list[str], namespace: str, index: CorrelationIndex) -> bool:
        if not namespace:
            return False
        is_first = any(r in rule_ids for r in first)
        is_second = any(r in rule_ids for r in second)
        return (
            (is_first and index.namespace_has(namespace, *second))
            or (is_second and index.namespace_has(namespace, *first))
        )
    return check


def _single_node_with_critical(f, rule_ids, namespace, index) -> bool:
    is_single_node = ids.K8S_CLUSTER_SINGLE_NODE in rule_ids
    is_critical = f.severity == Severity.CRITICAL
    return (
        (is_single_node and index.has_severity(Severity.CRITICAL))
        or (is_critical and index.has_rule(ids.K8S_CLUSTER_SINGLE_NODE))
    )


def _node_role_with_public_lb(f, rule_ids, namespace, index) -> bool:
    participates = (
        ids.EKS_NODE_ROLE_OVERPERMISSIVE in rule_ids
        or ids.K8S_SERVICE_PUBLIC_LOADBALANCER in rule_ids
    )
    return (
        participates
        and index.has_rule(ids.EKS_NODE_ROLE_OVERPERMISSIVE)
        and index.has_rule(ids.K8S_SERVICE_PUBLIC_LOADBALANCER)
    )


def _oidc_missing_with_high(f, rule_ids, namespace, index) -> bool:
    participates = (
        ids.EKS_OIDC_PROVIDER_NOT_ASSOCIATED in rule_ids
        or f.severity == Severity.HIGH
    )
    return (
        participates
        and index.has_rule(ids.EKS_OIDC_PROVIDER_NOT_ASSOCIATED)
        and index.has_severity(Severity.HIGH)
    )


class ChainDefinition(NamedTuple):
    score: int
    reason: str
    matches: Callable[[Finding, list[str], str, CorrelationIndex], bool]


# Evaluation order is significant for tie-breaking.
RISK_CHAINS: list[ChainDefinition] = [
    ChainDefinition(
        80,
        "Public service exposes privileged workload",
        _paired_in_namespace((ids.K8S_SERVICE_PUBLIC_LOADBALANCER,), _PRIVILEGED),
    ),
    ChainDefinition(
        60,
        "Default service account with auto-mounted token",
        _paired_in_namespace(
            (ids.K8S_DEFAULT_SERVICEACCOUNT_USED,),
            (ids.K8S_SERVICEACCOUNT_TOKEN_AUTOMOUNT,),
        ),
    ),
    ChainDefinition(
        50,
        "Single-node cluster with critical pod security violation",
        _single_node_with_critical,
    ),
    ChainDefinition(
        90,
        "Public service exposed in cluster with over-permissive node IAM role.",
        _node_role_with_public_lb,
    ),
    ChainDefinition(
        85,
        "Default service account used without IRSA.",
        _paired_in_namespace(
            (ids.EKS_SERVICEACCOUNT_NO_IRSA,),
            (ids.K8S_DEFAULT_SERVICEACCOUNT_USED,),
        ),
    ),
    ChainDefinition(
        95,
        "Cluster lacks OIDC provider and has high-risk workload findings.",
        _oidc_missing_with_high,
    ),
]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def correlate_risk_chains(findings: list[Finding]) -> None:
    """
    Annotate findings in place with metadata.risk_chain_score / risk_chain_reason.

    Must run after merge, namespace annotation and the optional system filter.
    Severity and ordering are left untouched.
    """
    if not findings:
        return

    index = CorrelationIndex.build(findings)
    annotated = 0

    for f in findings:
        rule_ids = f.all_rule_ids
        namespace = resolve_namespace(f)

        best_score = 0
        best_reason = ""
        for chain in RISK_CHAINS:
            if chain.score > best_score and chain.matches(f, rule_ids, namespace, index):
                best_score = chain.score
                best_reason = chain.reason

        if best_score > 0:
            meta = f.ensure_metadata()
            meta.risk_chain_score = best_score
            meta.risk_chain_reason = best_reason
            annotated += 1

    logger.debug("risk-chain correlation annotated %d of %d findings", annotated, len(findings))


def get_risk_score(finding: Finding) -> int:
    if finding.metadata is None or finding.metadata.risk_chain_score is None:
        return 0
    return finding.metadata.risk_chain_score


def max_risk_score(findings: Iterable[Finding]) -> int:
    return max((get_risk_score(f) for f in findings), default=0)


def filter_by_min_risk_score(findings: Iterable[Finding], minimum: int) -> list[Finding]:
    """Keep findings whose chain score is >= minimum. Unscored findings count as 0."""
    return [f for f in findings if get_risk_score(f) >= minimum]


def group_chains(findings: Iterable[Finding]) -> list[RiskChain]:
    """
    One RiskChain per distinct (score, reason) pair, highest score first,
    reason as tie-break. Unannotated findings are skipped.
    """
    groups: dict[tuple[int, str], RiskChain] = {}
    for f in findings:
        score = get_risk_score(f)
        if score <= 0:
            continue
        reason = f.metadata.risk_chain_reason or ""
        chain = groups.setdefault((score, reason), RiskChain(score=score, reason=reason))
        chain.finding_ids.append(f.id)

    return sorted(groups.values(), key=lambda c: (-c.score, c.reason))
