# src/governance_cli/core/base_rule.py
"""
Abstract base class for all governance rules.

Design principles:
  - Rules are pure: evaluate() inspects the RuleContext and nothing else.
    No boto3, no kubernetes client, no network, no clock other than the
    detection timestamp.
  - Rules are stateless, so one instance can be shared across threads that
    evaluate different profiles concurrently.
  - evaluate() returns list[Finding]: always a list, never a single Finding or None.
  - A rule that lacks the data it needs (e.g. EKS data on a GKE cluster)
    returns an empty list.

Adding a new rule:
  1. Subclass BaseRule in the relevant pack (e.g. core/rules/kubernetes.py).
  2. Declare `rule_id`, `name`, `domain` and `default_severity`.
  3. Implement `evaluate(ctx) -> list[Finding]`.
  4. Add the class to the pack's factory function so registries pick it up.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from governance_cli.core.inventory import ClusterData, RegionData, SecurityData
from governance_cli.core.models import CostSummary, Domain, Finding, FindingMetadata, Severity
from governance_cli.policy.config import PolicyConfig
from governance_cli.utils.utility import generate_finding_id


@dataclass
class RuleContext:
    """
    Everything a rule may read.

    AWS cost and data-protection audits build one context per region. Security
    audits, S3 checks and Kubernetes audits build a single global context.
    """
    account_id: str = ""
    profile: str = ""
    region_data: Optional[RegionData] = None
    cost_summary: Optional[CostSummary] = None
    security: Optional[SecurityData] = None
    cluster: Optional[ClusterData] = None
    policy: Optional[PolicyConfig] = None


class BaseRule(ABC):
    """
    Abstract base for a single governance rule.

    Subclasses must set class-level attributes:
        rule_id         : stable identifier, e.g. "EC2_LOW_CPU". Policies refer to rules by it.
        name            : short human-readable name.
        domain          : the audit domain the rule belongs to.
        default_severity: severity used when the rule does not grade its findings.
    """

    # ------------------------------------------------------------------
    # Class-level attributes, declared by every subclass
    # ------------------------------------------------------------------
    rule_id: str = ""
    name: str = ""
    domain: Domain
    default_severity: Severity = Severity.MEDIUM

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------
    @abstractmethod
    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        """
        Inspect the context and return zero or more findings.

        Returns:
            A list of Finding objects. Empty list means nothing was detected.
            Must NEVER return None.
        """
        ...

    # ------------------------------------------------------------------
    # Convenience helpers available to all rules
    # ------------------------------------------------------------------
    def _no_findings(self) -> list[Finding]:
        return []

    def _finding(
        self,
        ctx: RuleContext,
        resource_id: str,
        region: str,
        *,
        id_key: str = "",
        namespace: Optional[str] = None,
        extra: Optional[dict] = None,
        **fields,
    ) -> Finding:
        """
        Build a Finding stamped with this rule's ID and the context's account/profile.

        id_key distinguishes several findings on one resource from the same rule
        (e.g. one per container in a pod); it defaults to resource_id.
        """
        fields.setdefault("severity", self.default_severity)
        return Finding(
            id=generate_finding_id(self.rule_id, id_key or resource_id, region),
            rule_id=self.rule_id,
            resource_id=resource_id,
            region=region,
            account_id=ctx.account_id,
            profile=ctx.profile,
            metadata=FindingMetadata(namespace=namespace, extra=dict(extra or {})),
            **fields,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.rule_id!r} domain={self.domain.value!r}>"
