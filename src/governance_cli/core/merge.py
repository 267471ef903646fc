# src/governance_cli/core/merge.py
"""
Finding merge engine.

Raw rule output can contain several findings for the same resource (an EBS
volume that is both unattached and gp2, a pod that runs as root and has no
seccomp profile). merge_findings() collapses them to one finding per
(resource_id, region):

  - the first finding seen for the key is the base; its metadata is copied,
    never mutated in place
  - severity only ever moves up (CRITICAL=0 ... INFO=4)
  - estimated savings are summed
  - metadata fields are filled first-writer-wins
  - metadata.rules lists every rule that fired, base rule first

sort_findings() then produces the presentation order and compute_summary()
the aggregate counts.
"""

from dataclasses import replace
from typing import Iterable, Optional

from governance_cli.core.models import AuditSummary, Domain, Finding, FindingMetadata, Severity


def merge_findings(raw: Optional[Iterable[Finding]]) -> list[Finding]:
    """Collapse findings sharing (resource_id, region). Groups keep first-seen order."""
    if not raw:
        return []

    groups: dict[tuple[str, str], Finding] = {}
    rule_ids: dict[tuple[str, str], list[str]] = {}

    for f in raw:
        key = (f.resource_id, f.region)
        base = groups.get(key)

        if base is None:
            base_meta = f.metadata.copy() if f.metadata is not None else FindingMetadata()
            groups[key] = replace(f, metadata=base_meta)
            rule_ids[key] = [f.rule_id]
            continue

        rule_ids[key].append(f.rule_id)
        if f.severity.outranks(base.severity):
            base.severity = f.severity
        base.estimated_monthly_savings += f.estimated_monthly_savings
        base.metadata.absorb(f.metadata)

    merged = []
    for key, finding in groups.items():
        finding.metadata.rules = rule_ids[key]
        merged.append(finding)
    return merged


def sort_findings(findings: list[Finding]) -> None:
    """
    Sort in place: severity (CRITICAL first), then estimated savings descending.

    list.sort is stable, so findings equal on both keys keep their relative
    order. Resource, region, rule and finding IDs break the remaining ties so
    the output is identical for any permutation of the input.
    """
    findings.sort(key=lambda f: (
        f.severity.rank,
        -f.estimated_monthly_savings,
        f.resource_id,
        f.region,
        f.rule_id,
        f.id,
    ))


def compute_summary(findings: Iterable[Finding]) -> AuditSummary:
    """Severity bucket counts and total savings. INFO only counts toward the total."""
    summary = AuditSummary()
    for f in findings:
        summary.total_findings += 1
        summary.total_estimated_monthly_savings += f.estimated_monthly_savings
        if f.severity == Severity.CRITICAL:
            summary.critical_findings += 1
        elif f.severity == Severity.HIGH:
            summary.high_findings += 1
        elif f.severity == Severity.MEDIUM:
            summary.medium_findings += 1
        elif f.severity == Severity.LOW:
            summary.low_findings += 1
    return summary


def stamp_domain(findings: Iterable[Finding], domain: Domain) -> None:
    for f in findings:
        f.domain = domain
