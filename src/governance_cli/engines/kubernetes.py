# src/governance_cli/engines/kubernetes.py
"""
Kubernetes audit engine.

Pipeline (order matters):
  1. collect the cluster snapshot for the kube context
  2. detect the provider (eks / gke / aks / unknown) from the nodes
  3. on EKS, collect control-plane data; failure is logged and the audit
     continues without it
  4. evaluate core rules, plus EKS rules on EKS clusters
  5. stamp domain, merge per resource
  6. tag namespace scope, optionally drop system-namespace findings
  7. correlate risk chains and build attack paths on the remaining set
  8. risk score = highest attack-path score, else highest chain score
  9. drop findings under min_risk_score (when > 0)
 10. apply the "kubernetes" policy, then sort and summarise

The risk score is computed before the min_risk_score filter so it reflects
the whole cluster. Policy runs last: disabling or re-grading a rule changes
what is reported, never which chains and attack paths are detected.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from governance_cli import config
from governance_cli.core.attack_paths import build_attack_paths
from governance_cli.core.base_collector import ClusterCollector, EKSCollector
from governance_cli.core.base_rule import RuleContext
from governance_cli.core.correlation import (
    correlate_risk_chains,
    filter_by_min_risk_score,
    group_chains,
    max_risk_score,
)
from governance_cli.core.exceptions import ClusterConnectionError, CollectionError, GovernanceError
from governance_cli.core.inventory import ClusterData, NodeData
from governance_cli.core.merge import compute_summary, merge_findings, sort_findings, stamp_domain
from governance_cli.core.models import AuditReport, Domain
from governance_cli.core.namespaces import annotate_namespace_type, exclude_system_findings
from governance_cli.core.registry import RuleRegistry
from governance_cli.core.rules.eks import eks_rules
from governance_cli.core.rules.kubernetes import kubernetes_core_rules
from governance_cli.engines.base import AuditType
from governance_cli.policy.config import PolicyConfig
from governance_cli.policy.engine import apply_policy, should_fail
from governance_cli.utils.utility import generate_report_id

logger = logging.getLogger(__name__)


@dataclass
class KubernetesAuditOptions:
    context_name: str = ""
    show_risk_chains: bool = False
    exclude_system: bool = False
    min_risk_score: int = 0


# ---------------------------------------------------------------------------
# Provider detection
# ---------------------------------------------------------------------------

def detect_cluster_provider(nodes: Sequence[NodeData]) -> str:
    """First node with a recognisable provider ID prefix or label decides."""
    for node in nodes:
        for prefix, provider in config.PROVIDER_ID_PREFIXES.items():
            if node.provider_id.startswith(prefix):
                return provider
        for label, provider in config.PROVIDER_NODE_LABELS.items():
            if label in node.labels:
                return provider
    return "unknown"


def _region_from_provider_id(provider_id: str) -> str:
    # aws:///us-east-1a/i-0abc -> us-east-1
    if not provider_id.startswith("aws://"):
        return ""
    zone = provider_id[len("aws://"):].lstrip("/").split("/", 1)[0]
    if len(zone) <= 1:
        return ""
    return zone[:-1]


def extract_eks_info(nodes: Sequence[NodeData]) -> tuple[str, str]:
    """(cluster_name, region) from EKS node labels, falling back to the provider-ID zone for the region."""
    cluster_name = ""
    region = ""
    for node in nodes:
        cluster_name = node.labels.get(config.EKS_CLUSTER_NAME_LABEL) or cluster_name
        region = node.labels.get(config.TOPOLOGY_REGION_LABEL) or region
        if not region:
            region = _region_from_provider_id(node.provider_id)
        if cluster_name and region:
            break
    return cluster_name, region


def inspect_cluster(collector: ClusterCollector, context_name: str = "") -> ClusterData:
    """Snapshot the cluster and detect its provider, without evaluating any rule."""
    try:
        cluster = collector.collect(context_name)
    except ClusterConnectionError as err:
        raise ClusterConnectionError(f"connect to cluster: {err}") from err
    except CollectionError as err:
        raise CollectionError(f"collect cluster data: {err}") from err
    cluster.cluster_provider = detect_cluster_provider(cluster.nodes)
    return cluster


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class KubernetesEngine:

    def __init__(
        self,
        collector: ClusterCollector,
        eks_collector: Optional[EKSCollector] = None,
        policy: Optional[PolicyConfig] = None,
        core_registry: Optional[RuleRegistry] = None,
        eks_registry: Optional[RuleRegistry] = None,
    ):
        self.collector = collector
        self.eks_collector = eks_collector
        self.policy = policy
        self.core_registry = core_registry if core_registry is not None else RuleRegistry(kubernetes_core_rules())
        self.eks_registry = eks_registry if eks_registry is not None else RuleRegistry(eks_rules())

    def run_audit(self, opts: KubernetesAuditOptions) -> AuditReport:
        cluster = inspect_cluster(self.collector, opts.context_name)
        logger.info(
            "cluster %s: provider=%s nodes=%d namespaces=%d pods=%d",
            cluster.context_name, cluster.cluster_provider, cluster.node_count,
            len(cluster.namespaces), len(cluster.pods),
        )
        if cluster.cluster_provider == "eks":
            cluster.eks = self._collect_eks(cluster)

        ctx = RuleContext(cluster=cluster, policy=self.policy)
        raw = self.core_registry.evaluate_all(ctx)
        if cluster.cluster_provider == "eks":
            raw.extend(self.eks_registry.evaluate_all(ctx))
        stamp_domain(raw, Domain.KUBERNETES)

        findings = merge_findings(raw)
        annotate_namespace_type(findings)
        if opts.exclude_system:
            findings = exclude_system_findings(findings)

        correlate_risk_chains(findings)
        attack_paths = build_attack_paths(findings)
        risk_score = attack_paths[0].score if attack_paths else max_risk_score(findings)

        if opts.min_risk_score > 0:
            findings = filter_by_min_risk_score(findings, opts.min_risk_score)
        findings = apply_policy(findings, Domain.KUBERNETES.value, self.policy)
        sort_findings(findings)

        summary = compute_summary(findings)
        summary.risk_score = risk_score
        summary.attack_paths = attack_paths
        if opts.show_risk_chains:
            summary.risk_chains = group_chains(findings)

        enforced = [Domain.KUBERNETES.value] if should_fail(Domain.KUBERNETES.value, findings, self.policy) else []
        return AuditReport(
            report_id=generate_report_id("k8s"),
            audit_type=AuditType.KUBERNETES.value,
            profile=cluster.context_name,
            regions=[cluster.context_name],
            findings=findings,
            summary=summary,
            cluster_provider=cluster.cluster_provider,
            enforced_domains=enforced,
        )

    def _collect_eks(self, cluster: ClusterData):
        if self.eks_collector is None:
            return None
        cluster_name, region = extract_eks_info(cluster.nodes)
        if not cluster_name or not region:
            logger.warning("EKS cluster detected but cluster name or region could not be derived from node labels")
            return None
        try:
            return self.eks_collector.collect_eks_data(cluster_name, region)
        except GovernanceError as err:
            logger.warning("EKS data collection for %s (%s) failed, EKS control-plane rules skipped: %s",
                           cluster_name, region, err)
            return None
