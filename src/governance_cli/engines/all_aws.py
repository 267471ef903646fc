# src/governance_cli/engines/all_aws.py
"""
Runs the cost, security and data-protection engines in sequence and combines
their reports.

Findings are concatenated, never merged across domains: a volume that is
both unattached (cost, MEDIUM) and unencrypted (dataprotection, HIGH) stays
two findings, each with its own severity. Enforcement is decided per domain
on that domain's own findings.
"""

import logging
from typing import Optional

from governance_cli import config
from governance_cli.core.exceptions import AuditError, GovernanceError
from governance_cli.core.merge import compute_summary, sort_findings
from governance_cli.core.models import AuditReport, Domain
from governance_cli.engines.aws_cost import AWSCostEngine
from governance_cli.engines.aws_dataprotection import AWSDataProtectionEngine
from governance_cli.engines.aws_security import AWSSecurityEngine
from governance_cli.engines.base import AuditOptions, AuditType, dedupe_regions
from governance_cli.policy.config import PolicyConfig
from governance_cli.policy.engine import should_fail
from governance_cli.utils.utility import generate_report_id

logger = logging.getLogger(__name__)


class AllAWSEngine:

    def __init__(
        self,
        cost: AWSCostEngine,
        security: AWSSecurityEngine,
        dataprotection: AWSDataProtectionEngine,
        policy: Optional[PolicyConfig] = None,
    ):
        self.cost = cost
        self.security = security
        self.dataprotection = dataprotection
        self.policy = policy

    def run_audit(self, opts: AuditOptions) -> AuditReport:
        days_back = opts.days_back if opts.days_back > 0 else config.DEFAULT_DAYS_BACK
        steps = [
            (Domain.COST, self.cost, AuditType.COST, days_back),
            (Domain.SECURITY, self.security, AuditType.SECURITY, 0),
            (Domain.DATAPROTECTION, self.dataprotection, AuditType.DATAPROTECTION, 0),
        ]

        reports = []
        for domain, engine, audit_type, domain_days in steps:
            domain_opts = AuditOptions(
                audit_type=audit_type,
                profile=opts.profile,
                all_profiles=opts.all_profiles,
                regions=list(opts.regions),
                days_back=domain_days,
            )
            try:
                reports.append((domain, engine.run_audit(domain_opts)))
            except GovernanceError as err:
                raise AuditError(f"{domain.value} audit: {err}") from err
            logger.info("%s audit finished with %d finding(s)", domain.value, len(reports[-1][1].findings))

        enforced = [
            domain.value for domain, report in reports
            if should_fail(domain.value, report.findings, self.policy)
        ]

        findings = [f for _, report in reports for f in report.findings]
        sort_findings(findings)
        cost_report = reports[0][1]
        return AuditReport(
            report_id=generate_report_id("all"),
            audit_type=AuditType.ALL.value,
            profile=cost_report.profile,
            account_id=cost_report.account_id,
            regions=dedupe_regions([report.regions for _, report in reports]),
            findings=findings,
            summary=compute_summary(findings),
            cost_summary=cost_report.cost_summary,
            enforced_domains=enforced,
        )
