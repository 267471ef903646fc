# src/governance_cli/core/rules/security.py
"""
Security rules: account-level AWS posture.

All rules read ctx.security and run once per profile in the global context.
S3, IAM and root findings use region "global"; security group findings keep
the region the group lives in.
"""

from governance_cli.core.base_rule import BaseRule, RuleContext
from governance_cli.core.models import Domain, Finding, ResourceType, Severity
from governance_cli.core.rules import ids

GLOBAL_REGION = "global"

_REMOTE_ADMIN_PORTS = (22, 3389)
_OPEN_CIDRS = ("0.0.0.0/0", "::/0")


class _SecurityRule(BaseRule):
    domain = Domain.SECURITY


class RootAccessKeyRule(_SecurityRule):
    rule_id = ids.ROOT_ACCESS_KEY
    name = "Root Account Has Active Access Keys"
    default_severity = Severity.CRITICAL

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.security is None or not ctx.security.root.has_access_keys:
            return self._no_findings()
        return [self._finding(
            ctx, ctx.account_id or "root", GLOBAL_REGION,
            resource_type=ResourceType.ROOT_ACCOUNT,
            explanation="The AWS root account has active access keys.",
            recommendation="Delete all root access keys and use IAM roles with least-privilege policies instead.",
        )]


class S3PublicBucketRule(_SecurityRule):
    rule_id = ids.S3_PUBLIC_BUCKET
    name = "S3 Bucket With Public Access"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.security is None:
            return self._no_findings()
        return [
            self._finding(
                ctx, bucket.name, GLOBAL_REGION,
                resource_type=ResourceType.S3_BUCKET,
                explanation=f"S3 bucket {bucket.name!r} does not have all Block Public Access settings enabled.",
                recommendation="Enable all four S3 Block Public Access settings at the bucket or account level.",
            )
            for bucket in ctx.security.buckets
            if bucket.public
        ]


class SecurityGroupOpenSSHRule(_SecurityRule):
    """One finding per group, however many open SSH/RDP rules it has."""
    rule_id = ids.SG_OPEN_SSH
    name = "Security Group With Open Remote Admin Access"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.security is None:
            return self._no_findings()

        seen: set[str] = set()
        findings = []
        for rule in ctx.security.security_group_rules:
            if rule.port not in _REMOTE_ADMIN_PORTS or rule.cidr not in _OPEN_CIDRS:
                continue
            if rule.group_id in seen:
                continue
            seen.add(rule.group_id)
            findings.append(self._finding(
                ctx, rule.group_id, rule.region,
                resource_type=ResourceType.SECURITY_GROUP,
                explanation=(
                    f"Security group {rule.group_id} allows remote admin access "
                    f"(port {rule.port}) from {rule.cidr}."
                ),
                recommendation="Restrict SSH/RDP to trusted ranges or use Systems Manager Session Manager.",
                extra={"open_cidr": rule.cidr, "port": rule.port},
            ))
        return findings


class IAMUserNoMFARule(_SecurityRule):
    """Only console users are checked; API-only users have no login profile."""
    rule_id = ids.IAM_USER_NO_MFA
    name = "IAM Console User Without MFA"
    default_severity = Severity.MEDIUM

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.security is None:
            return self._no_findings()
        return [
            self._finding(
                ctx, user.user_name, GLOBAL_REGION,
                resource_type=ResourceType.IAM_USER,
                explanation=f"IAM user {user.user_name!r} has console access but no MFA device.",
                recommendation="Enable MFA for every IAM user with console access.",
            )
            for user in ctx.security.iam_users
            if user.has_login_profile and not user.mfa_enabled
        ]


def security_rules() -> list[BaseRule]:
    return [
        RootAccessKeyRule(),
        S3PublicBucketRule(),
        SecurityGroupOpenSSHRule(),
        IAMUserNoMFARule(),
    ]
