# src/governance_cli/core/rules/dataprotection.py
"""
Data-protection rules: encryption at rest.

RDS and EBS rules run per region against ctx.region_data. The S3 rule runs
in the global context against ctx.security.buckets.
"""

from governance_cli.core.base_rule import BaseRule, RuleContext
from governance_cli.core.models import Domain, Finding, ResourceType, Severity
from governance_cli.core.rules import ids
from governance_cli.core.rules.security import GLOBAL_REGION


class _DataProtectionRule(BaseRule):
    domain = Domain.DATAPROTECTION


class RDSUnencryptedRule(_DataProtectionRule):
    rule_id = ids.RDS_UNENCRYPTED
    name = "RDS Instance Without Storage Encryption"
    default_severity = Severity.CRITICAL

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.region_data is None:
            return self._no_findings()
        return [
            self._finding(
                ctx, db.db_instance_id, ctx.region_data.region,
                resource_type=ResourceType.RDS_INSTANCE,
                explanation=f"RDS instance {db.db_instance_id} does not have storage encryption enabled.",
                recommendation=(
                    "Encryption can only be set at creation: snapshot the instance, copy the "
                    "snapshot with encryption enabled and restore from it."
                ),
                extra={
                    "engine": db.engine,
                    "db_instance_class": db.db_instance_class,
                    "status": db.status,
                },
            )
            for db in ctx.region_data.rds_instances
            if not db.storage_encrypted
        ]


class EBSUnencryptedRule(_DataProtectionRule):
    rule_id = ids.EBS_UNENCRYPTED
    name = "EBS Volume Without Encryption"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.region_data is None:
            return self._no_findings()
        return [
            self._finding(
                ctx, vol.volume_id, ctx.region_data.region,
                resource_type=ResourceType.EBS_VOLUME,
                explanation=f"EBS volume {vol.volume_id} is not encrypted at rest.",
                recommendation=(
                    "Turn on EBS encryption by default for the region and re-create existing "
                    "volumes from an encrypted snapshot."
                ),
                extra={"volume_type": vol.volume_type, "size_gb": vol.size_gb, "state": vol.state},
            )
            for vol in ctx.region_data.ebs_volumes
            if not vol.encrypted
        ]


class S3DefaultEncryptionMissingRule(_DataProtectionRule):
    rule_id = ids.S3_DEFAULT_ENCRYPTION_MISSING
    name = "S3 Bucket Without Default Encryption"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.security is None:
            return self._no_findings()
        return [
            self._finding(
                ctx, bucket.name, GLOBAL_REGION,
                resource_type=ResourceType.S3_BUCKET,
                explanation=f"S3 bucket {bucket.name!r} has no default server-side encryption.",
                recommendation="Enable default encryption (SSE-S3 or SSE-KMS) on the bucket.",
            )
            for bucket in ctx.security.buckets
            if not bucket.default_encryption_enabled
        ]


def dataprotection_rules() -> list[BaseRule]:
    return [
        RDSUnencryptedRule(),
        EBSUnencryptedRule(),
        S3DefaultEncryptionMissingRule(),
    ]
