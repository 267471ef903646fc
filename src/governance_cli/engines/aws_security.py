# src/governance_cli/engines/aws_security.py
"""
Security audit engine.

Security data is account-level, so each profile is evaluated in a single
global RuleContext. Security groups are collected per region and keep their
own region on the finding.
"""

import logging
import threading
from typing import Optional

from governance_cli import config
from governance_cli.core.base_collector import AWSClientProvider, AWSProfile, SecurityCollector
from governance_cli.core.base_rule import RuleContext
from governance_cli.core.exceptions import CollectionError, GovernanceError
from governance_cli.core.models import Domain
from governance_cli.core.registry import RuleRegistry
from governance_cli.core.rules.packs import security_registry
from governance_cli.engines.base import (
    AuditOptions,
    AWSDomainEngine,
    FailurePolicy,
    ProfileAudit,
    resolve_regions,
)
from governance_cli.policy.config import PolicyConfig

logger = logging.getLogger(__name__)


class AWSSecurityEngine(AWSDomainEngine):
    domain = Domain.SECURITY
    default_failure_policy = FailurePolicy.BEST_EFFORT

    def __init__(
        self,
        provider: AWSClientProvider,
        collector: SecurityCollector,
        registry: Optional[RuleRegistry] = None,
        policy: Optional[PolicyConfig] = None,
        failure_policy: Optional[FailurePolicy] = None,
        max_concurrent: int = config.MAX_CONCURRENT_PROFILES,
    ):
        if registry is None:
            registry = security_registry()
        super().__init__(provider, registry, policy, failure_policy, max_concurrent)
        self.collector = collector

    def _audit_profile(
        self,
        profile: AWSProfile,
        opts: AuditOptions,
        cancelled: Optional[threading.Event] = None,
    ) -> ProfileAudit:
        regions = resolve_regions(self.provider, profile, opts.regions)

        try:
            security = self.collector.collect_all(profile, regions, cancelled=cancelled)
        except GovernanceError as err:
            raise CollectionError(f"collect security data for profile {profile.name!r}: {err}") from err

        ctx = RuleContext(
            account_id=profile.account_id,
            profile=profile.name,
            security=security,
            policy=self.policy,
        )
        findings = self._finalise(self.registry.evaluate_all(ctx))
        logger.debug("profile %s: %d security finding(s)", profile.name, len(findings))
        return ProfileAudit(profile, regions, findings)
