# src/governance_cli/core/rules/eks.py
"""
EKS-specific Kubernetes rules.

Registered only when the cluster provider is detected as "eks". Control-plane
rules read ctx.cluster.eks and return nothing when EKS data could not be
collected, so a failed DescribeCluster never fails the audit. Cluster-level
findings use the EKS cluster name as resource_id and the AWS region as region.
"""

from governance_cli import config
from governance_cli.core.base_rule import BaseRule, RuleContext
from governance_cli.core.models import Domain, Finding, ResourceType, Severity
from governance_cli.core.rules import ids
from governance_cli.core.rules.kubernetes import namespaced_id

_OPEN_CIDR = "0.0.0.0/0"


class _EKSRule(BaseRule):
    domain = Domain.KUBERNETES

    def _cluster_finding(self, ctx: RuleContext, **fields) -> Finding:
        eks = ctx.cluster.eks
        extra = {"cluster_name": eks.cluster_name}
        extra.update(fields.pop("extra", {}))
        return self._finding(
            ctx, eks.cluster_name, eks.region,
            resource_type=ResourceType.K8S_CLUSTER,
            extra=extra,
            **fields,
        )


def _has_eks(ctx: RuleContext) -> bool:
    return ctx.cluster is not None and ctx.cluster.eks is not None


class PublicEndpointEnabledRule(_EKSRule):
    """CRITICAL when the public endpoint accepts 0.0.0.0/0, HIGH when it is CIDR-restricted."""
    rule_id = ids.EKS_PUBLIC_ENDPOINT_ENABLED
    name = "EKS Public API Endpoint Enabled"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if not _has_eks(ctx) or not ctx.cluster.eks.endpoint_public_access:
            return self._no_findings()

        cidrs = ctx.cluster.eks.public_access_cidrs
        wide_open = not cidrs or _OPEN_CIDR in cidrs
        return [self._cluster_finding(
            ctx,
            severity=Severity.CRITICAL if wide_open else self.default_severity,
            explanation=(
                "EKS API server endpoint is reachable from the internet"
                + (" (0.0.0.0/0)." if wide_open else f" from {', '.join(cidrs)}.")
            ),
            recommendation="Disable public endpoint access or restrict publicAccessCidrs to trusted ranges.",
            extra={"public_access_cidrs": list(cidrs)},
        )]


class EncryptionDisabledRule(_EKSRule):
    rule_id = ids.EKS_ENCRYPTION_DISABLED
    name = "EKS Secrets Encryption Disabled"
    default_severity = Severity.CRITICAL

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if not _has_eks(ctx) or ctx.cluster.eks.encryption_key_arn:
            return self._no_findings()
        return [self._cluster_finding(
            ctx,
            explanation=f"EKS cluster {ctx.cluster.eks.cluster_name!r} does not encrypt Kubernetes Secrets with KMS.",
            recommendation="Configure envelope encryption for Secrets with an AWS KMS key.",
        )]


class ControlPlaneLoggingDisabledRule(_EKSRule):
    rule_id = ids.EKS_CONTROL_PLANE_LOGGING_DISABLED
    name = "EKS Control Plane Logging Incomplete"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if not _has_eks(ctx):
            return self._no_findings()
        enabled = set(ctx.cluster.eks.enabled_log_types)
        missing = [t for t in config.EKS_REQUIRED_LOG_TYPES if t not in enabled]
        if not missing:
            return self._no_findings()
        return [self._cluster_finding(
            ctx,
            explanation=f"EKS control plane log types not enabled: {', '.join(missing)}.",
            recommendation=(
                f"Enable the {', '.join(config.EKS_REQUIRED_LOG_TYPES)} log types to capture "
                f"authentication and authorisation events."
            ),
            extra={"missing_log_types": missing},
        )]


class OIDCProviderNotAssociatedRule(_EKSRule):
    rule_id = ids.EKS_OIDC_PROVIDER_NOT_ASSOCIATED
    name = "EKS OIDC Provider Not Associated"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if not _has_eks(ctx) or ctx.cluster.eks.oidc_provider_arn:
            return self._no_findings()
        return [self._cluster_finding(
            ctx,
            explanation="No IAM OIDC identity provider is associated with the cluster, so IRSA cannot be used.",
            recommendation="Associate an IAM OIDC provider (eksctl utils associate-iam-oidc-provider).",
            extra={"oidc_issuer": ctx.cluster.eks.oidc_issuer},
        )]


class ServiceAccountNoIRSARule(_EKSRule):
    """
    Only needs the ServiceAccounts, so it still runs when EKS control-plane data
    is missing; the kube context name then stands in for the region.
    """
    rule_id = ids.EKS_SERVICEACCOUNT_NO_IRSA
    name = "ServiceAccount Without IRSA"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        region = ctx.cluster.eks.region if ctx.cluster.eks else ctx.cluster.context_name
        return [
            self._finding(
                ctx, namespaced_id(sa.namespace, sa.name), region,
                namespace=sa.namespace,
                resource_type=ResourceType.K8S_SERVICEACCOUNT,
                explanation=f"ServiceAccount {sa.name!r} has no {config.IRSA_ROLE_ANNOTATION} annotation.",
                recommendation="Create a least-privilege IAM role and annotate the ServiceAccount with it.",
                extra={"service_account": sa.name},
            )
            for sa in ctx.cluster.service_accounts
            if not sa.annotations.get(config.IRSA_ROLE_ANNOTATION)
        ]


class NodeRoleOverpermissiveRule(_EKSRule):
    rule_id = ids.EKS_NODE_ROLE_OVERPERMISSIVE
    name = "EKS Node Role Over-permissive"
    default_severity = Severity.CRITICAL

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if not _has_eks(ctx):
            return self._no_findings()
        policies = ctx.cluster.eks.node_role_overpermissive_policies
        if not policies:
            return self._no_findings()
        return [self._cluster_finding(
            ctx,
            explanation=f"Node IAM role has over-permissive managed policies attached: {', '.join(policies)}.",
            recommendation="Detach broad policies and keep only what node bootstrap needs.",
            extra={"policies": list(policies)},
        )]


class IAMWildcardPolicyRule(_EKSRule):
    rule_id = ids.EKS_IAM_WILDCARD_POLICY
    name = "EKS Node Role Wildcard Policy"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if not _has_eks(ctx):
            return self._no_findings()
        policies = ctx.cluster.eks.node_role_wildcard_policies
        if not policies:
            return self._no_findings()
        return [self._cluster_finding(
            ctx,
            explanation=f"Node IAM role policies grant wildcard actions: {', '.join(policies)}.",
            recommendation="Replace \"Action\": \"*\" statements with explicit actions.",
            extra={"policies": list(policies)},
        )]


class NodegroupIMDSv2NotEnforcedRule(_EKSRule):
    rule_id = ids.EKS_NODEGROUP_IMDSV2_NOT_ENFORCED
    name = "EKS Node Group Without IMDSv2"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if not _has_eks(ctx):
            return self._no_findings()
        eks = ctx.cluster.eks
        return [
            self._finding(
                ctx, ng.name, eks.region,
                resource_type=ResourceType.EKS_NODEGROUP,
                explanation=f"Node group {ng.name!r} does not require IMDSv2 tokens.",
                recommendation="Set httpTokens: required in the node group's launch template.",
                extra={"cluster_name": eks.cluster_name, "http_tokens": ng.http_tokens},
            )
            for ng in eks.node_groups
            if ng.http_tokens != "required"
        ]


def eks_rules() -> list[BaseRule]:
    return [
        PublicEndpointEnabledRule(),
        EncryptionDisabledRule(),
        ControlPlaneLoggingDisabledRule(),
        OIDCProviderNotAssociatedRule(),
        ServiceAccountNoIRSARule(),
        NodeRoleOverpermissiveRule(),
        IAMWildcardPolicyRule(),
        NodegroupIMDSv2NotEnforcedRule(),
    ]
