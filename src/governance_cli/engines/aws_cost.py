# src/governance_cli/engines/aws_cost.py
"""
Cost audit engine.

One RuleContext per collected region, each carrying the account-level Cost
Explorer summary. Multi-profile cost audits are fail-fast by default.
"""

import logging
import threading
from typing import Optional

from governance_cli import config
from governance_cli.core.base_collector import AWSClientProvider, AWSProfile, CostCollector
from governance_cli.core.base_rule import RuleContext
from governance_cli.core.exceptions import CollectionError, GovernanceError
from governance_cli.core.models import Domain
from governance_cli.core.registry import RuleRegistry
from governance_cli.core.rules.packs import cost_registry
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


class AWSCostEngine(AWSDomainEngine):
    domain = Domain.COST
    default_failure_policy = FailurePolicy.FAIL_FAST

    def __init__(
        self,
        provider: AWSClientProvider,
        collector: CostCollector,
        registry: Optional[RuleRegistry] = None,
        policy: Optional[PolicyConfig] = None,
        failure_policy: Optional[FailurePolicy] = None,
        max_concurrent: int = config.MAX_CONCURRENT_PROFILES,
    ):
        if registry is None:
            registry = cost_registry()
        super().__init__(provider, registry, policy, failure_policy, max_concurrent)
        self.collector = collector

    def _audit_profile(
        self,
        profile: AWSProfile,
        opts: AuditOptions,
        cancelled: Optional[threading.Event] = None,
    ) -> ProfileAudit:
        days_back = opts.days_back if opts.days_back > 0 else config.DEFAULT_DAYS_BACK
        regions = resolve_regions(self.provider, profile, opts.regions)

        try:
            collection = self.collector.collect_all(profile, regions, days_back, cancelled=cancelled)
        except GovernanceError as err:
            raise CollectionError(f"collect data for profile {profile.name!r}: {err}") from err

        contexts = [
            RuleContext(
                account_id=profile.account_id,
                profile=profile.name,
                region_data=region_data,
                cost_summary=collection.cost_summary,
                policy=self.policy,
            )
            for region_data in collection.regions
        ]
        findings = self._finalise(evaluate_contexts(self.registry, contexts))
        logger.debug("profile %s: %d cost finding(s) across %d region(s)", profile.name, len(findings), len(regions))
        return ProfileAudit(profile, regions, findings, collection.cost_summary)
