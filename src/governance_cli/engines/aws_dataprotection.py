# src/governance_cli/engines/aws_dataprotection.py
"""
Data-protection audit engine.

Reuses the cost collector for RDS/EBS inventory (with a one-day lookback,
since only current encryption state matters) and the security collector for
S3 buckets. RDS and EBS rules see one context per region; the S3 rule sees
one global context.
"""

import logging
import threading
from typing import Optional

from governance_cli import config
from governance_cli.core.base_collector import (
    AWSClientProvider,
    AWSProfile,
    CostCollector,
    SecurityCollector,
)
from governance_cli.core.base_rule import RuleContext
from governance_cli.core.exceptions import CollectionError, GovernanceError
from governance_cli.core.models import Domain
from governance_cli.core.registry import RuleRegistry
from governance_cli.core.rules.packs import dataprotection_registry
from governance_cli.engines.base import (
    AuditOptions,
    AWSDomainEngine,
    FailurePolicy,
    ProfileAudit,
    evaluate_contexts,
    resolve_regions,
)
from governance_cli.policy.config import PolicyConfig

logger = logging.getLogger(__name__)


class AWSDataProtectionEngine(AWSDomainEngine):
    domain = Domain.DATAPROTECTION
    default_failure_policy = FailurePolicy.BEST_EFFORT

    def __init__(
        self,
        provider: AWSClientProvider,
        cost_collector: CostCollector,
        security_collector: SecurityCollector,
        registry: Optional[RuleRegistry] = None,
        policy: Optional[PolicyConfig] = None,
        failure_policy: Optional[FailurePolicy] = None,
        max_concurrent: int = config.MAX_CONCURRENT_PROFILES,
    ):
        if registry is None:
            registry = dataprotection_registry()
        super().__init__(provider, registry, policy, failure_policy, max_concurrent)
        self.cost_collector = cost_collector
        self.security_collector = security_collector

    def _audit_profile(
        self,
        profile: AWSProfile,
        opts: AuditOptions,
        cancelled: Optional[threading.Event] = None,
    ) -> ProfileAudit:
        regions = resolve_regions(self.provider, profile, opts.regions)

        try:
            collection = self.cost_collector.collect_all(
                profile, regions, config.DATAPROTECTION_DAYS_BACK, cancelled=cancelled)
        except GovernanceError as err:
            raise CollectionError(f"collect region data for profile {profile.name!r}: {err}") from err
        try:
            security = self.security_collector.collect_all(profile, regions, cancelled=cancelled)
        except GovernanceError as err:
            raise CollectionError(f"collect security data for profile {profile.name!r}: {err}") from err

        contexts = [
            RuleContext(
                account_id=profile.account_id,
                profile=profile.name,
                region_data=region_data,
                policy=self.policy,
            )
            for region_data in collection.regions
        ]
        contexts.append(RuleContext(
            account_id=profile.account_id,
            profile=profile.name,
            security=security,
            policy=self.policy,
        ))
        findings = self._finalise(evaluate_contexts(self.registry, contexts))
        logger.debug("profile %s: %d data-protection finding(s)", profile.name, len(findings))
        return ProfileAudit(profile, regions, findings)
