# src/governance_cli/policy/engine.py
"""
Policy application and enforcement.

All three entry points accept cfg=None and then behave as if no policy file
exists: findings pass through unchanged, nothing fails, defaults are used.
Unknown severity strings are ignored here; validate_policy() reports them.
"""

import logging
from dataclasses import replace
from typing import Iterable, Optional

from governance_cli.core.models import Finding, Severity
from governance_cli.policy.config import PolicyConfig

logger = logging.getLogger(__name__)


def apply_policy(findings: list[Finding], domain: str, cfg: Optional[PolicyConfig]) -> list[Finding]:
    """
    Filter and re-grade findings for one domain.

    Order per finding: rule disabled -> dropped; severity override applied;
    then the domain minimum severity is enforced, so an override can lift a
    finding over the minimum or push it under.
    """
    if cfg is None:
        return findings

    domain_cfg = cfg.domains.get(domain)
    if domain_cfg is not None and not domain_cfg.enabled:
        logger.debug("domain %s disabled by policy; dropping %d finding(s)", domain, len(findings))
        return []

    min_severity = Severity.parse(domain_cfg.min_severity) if domain_cfg else None

    result = []
    for f in findings:
        rule_cfg = cfg.rules.get(f.rule_id)
        if rule_cfg is not None:
            if rule_cfg.enabled is False:
                continue
            override = Severity.parse(rule_cfg.severity)
            if override is not None:
                f = replace(f, severity=override)

        if min_severity is not None and f.severity.rank > min_severity.rank:
            continue
        result.append(f)
    return result


def should_fail(domain: str, findings: Iterable[Finding], cfg: Optional[PolicyConfig]) -> bool:
    """True when any finding is at or above the domain's fail_on_severity."""
    if cfg is None:
        return False
    enforcement = cfg.enforcement.get(domain)
    if enforcement is None:
        return False
    threshold = Severity.parse(enforcement.fail_on_severity)
    if threshold is None:
        return False
    return any(f.severity.rank <= threshold.rank for f in findings)


def get_threshold(rule_id: str, key: str, default: float, cfg: Optional[PolicyConfig]) -> float:
    """Numeric rule parameter from the policy, falling back to `default` at every level."""
    if cfg is None:
        return default
    rule_cfg = cfg.rules.get(rule_id)
    if rule_cfg is None or key not in rule_cfg.params:
        return default
    return float(rule_cfg.params[key])
