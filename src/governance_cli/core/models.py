# src/governance_cli/core/models.py
"""
Report-level data model shared by rules, the pipeline stages and renderers.

Findings carry a typed FindingMetadata instead of an open dict: the set of
keys the pipeline itself reads and writes is small and fixed, and anything
rule-specific goes into `extra`.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        """Sort rank: lower number means more severe (CRITICAL=0 ... INFO=4)."""
        return _SEVERITY_RANK[self]

    def outranks(self, other: "Severity") -> bool:
        return self.rank < other.rank

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Severity"]:
        """Case-insensitive lookup. Returns None for blank or unknown strings."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
    Severity.INFO: 4,
}


class Domain(str, Enum):
    COST = "cost"
    SECURITY = "security"
    DATAPROTECTION = "dataprotection"
    KUBERNETES = "kubernetes"


class ResourceType(str, Enum):
    EC2_INSTANCE = "EC2_INSTANCE"
    EBS_VOLUME = "EBS_VOLUME"
    NAT_GATEWAY = "NAT_GATEWAY"
    RDS_INSTANCE = "RDS_INSTANCE"
    LOAD_BALANCER = "LOAD_BALANCER"
    SAVINGS_PLAN = "SAVINGS_PLAN"
    S3_BUCKET = "S3_BUCKET"
    SECURITY_GROUP = "SECURITY_GROUP"
    IAM_USER = "IAM_USER"
    ROOT_ACCOUNT = "ROOT_ACCOUNT"
    K8S_CLUSTER = "K8S_CLUSTER"
    K8S_NODE = "K8S_NODE"
    K8S_NAMESPACE = "K8S_NAMESPACE"
    K8S_POD = "K8S_POD"
    K8S_SERVICE = "K8S_SERVICE"
    K8S_SERVICEACCOUNT = "K8S_SERVICEACCOUNT"
    EKS_NODEGROUP = "EKS_NODEGROUP"


class NamespaceType(str, Enum):
    SYSTEM = "system"
    WORKLOAD = "workload"
    CLUSTER = "cluster"


# ---------------------------------------------------------------------------
# Findings
# ---------------------------------------------------------------------------

@dataclass
class FindingMetadata:
    """
    Pipeline-owned metadata on a Finding.

    namespace        : written by Kubernetes rules for namespaced resources.
    rules            : every rule ID that fired on the resource, primary first.
                        Owned by the merge stage; empty until a merge runs.
    namespace_type   : written by the scope classifier.
    risk_chain_score : written by the risk-chain correlator.
    risk_chain_reason: written together with risk_chain_score.
    extra            : rule-specific context (instance type, CPU, ...).
    """
    namespace: Optional[str] = None
    rules: list[str] = field(default_factory=list)
    namespace_type: Optional[NamespaceType] = None
    risk_chain_score: Optional[int] = None
    risk_chain_reason: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def copy(self) -> "FindingMetadata":
        return FindingMetadata(
            namespace=self.namespace,
            rules=list(self.rules),
            namespace_type=self.namespace_type,
            risk_chain_score=self.risk_chain_score,
            risk_chain_reason=self.risk_chain_reason,
            extra=dict(self.extra),
        )

    def absorb(self, other: Optional["FindingMetadata"]) -> None:
        """Copy every field of `other` that is still unset here (first writer wins)."""
        if other is None:
            return
        if self.namespace is None:
            self.namespace = other.namespace
        if self.namespace_type is None:
            self.namespace_type = other.namespace_type
        if self.risk_chain_score is None and other.risk_chain_score is not None:
            self.risk_chain_score = other.risk_chain_score
            self.risk_chain_reason = other.risk_chain_reason
        for key, value in other.extra.items():
            self.extra.setdefault(key, value)


@dataclass
class Finding:
    id: str
    rule_id: str
    resource_id: str
    resource_type: ResourceType
    region: str
    severity: Severity
    explanation: str = ""
    recommendation: str = ""
    account_id: str = ""
    profile: str = ""
    domain: Optional[Domain] = None
    estimated_monthly_savings: float = 0.0
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Optional[FindingMetadata] = field(default_factory=FindingMetadata)

    def ensure_metadata(self) -> FindingMetadata:
        if self.metadata is None:
            self.metadata = FindingMetadata()
        return self.metadata

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.namespace if self.metadata else None

    @property
    def all_rule_ids(self) -> list[str]:
        """Primary rule ID followed by every merged rule ID, without duplicates."""
        ids = [self.rule_id]
        if self.metadata:
            ids.extend(r for r in self.metadata.rules if r not in ids)
        return ids


# ---------------------------------------------------------------------------
# Correlation output
# ---------------------------------------------------------------------------

@dataclass
class RiskChain:
    score: int
    reason: str
    finding_ids: list[str] = field(default_factory=list)


@dataclass
class AttackPath:
    score: int
    layers: list[str]
    finding_ids: list[str]
    description: str


# ---------------------------------------------------------------------------
# Cost Explorer
# ---------------------------------------------------------------------------

@dataclass
class ServiceCost:
    service: str
    cost_usd: float


@dataclass
class CostSummary:
    period_start: str = ""
    period_end: str = ""
    total_cost_usd: float = 0.0
    service_breakdown: list[ServiceCost] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

@dataclass
class AuditSummary:
    total_findings: int = 0
    critical_findings: int = 0
    high_findings: int = 0
    medium_findings: int = 0
    low_findings: int = 0
    total_estimated_monthly_savings: float = 0.0
    risk_score: int = 0
    risk_chains: list[RiskChain] = field(default_factory=list)
    attack_paths: list[AttackPath] = field(default_factory=list)


@dataclass
class AuditReport:
    report_id: str
    audit_type: str
    profile: str = ""
    account_id: str = ""
    regions: list[str] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    summary: AuditSummary = field(default_factory=AuditSummary)
    cost_summary: Optional[CostSummary] = None
    cluster_provider: str = ""
    enforced_domains: list[str] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
