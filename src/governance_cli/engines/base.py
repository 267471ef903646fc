# src/governance_cli/engines/base.py
"""
Shared orchestration for the AWS domain engines.

Flow for one profile:
    load profile -> resolve regions -> collect -> evaluate -> stamp domain -> merge

Flow for --all-profiles:
    load all profiles -> run_profiles() fan-out -> concatenate per-profile results

and finally, for both:
    apply policy -> sort -> summarise -> AuditReport

Findings are merged per profile, never across profiles: two accounts can
legitimately own resources with the same ID (IAM user "admin", a region-level
Savings Plan entry) and those must stay separate findings.

Concurrency:
    run_profiles() audits profiles on a ThreadPoolExecutor. A BoundedSemaphore
    caps how many profiles are in flight (config.MAX_CONCURRENT_PROFILES,
    independent of how many profiles exist), a threading.Event is the shared
    cancellation signal and a Lock guards the shared accumulators. Each worker
    owns its findings until it hands them over under the lock.

    FailurePolicy.FAIL_FAST  : the first profile error sets the event; profiles
                                not yet started are never started, in-flight
                                profiles stop at their next region boundary and
                                the error is raised once they return.
    FailurePolicy.BEST_EFFORT: failing profiles are logged and skipped; the
                                caller fails only when no profile succeeded.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence, TypeVar

from governance_cli import config
from governance_cli.core.base_collector import AWSClientProvider, AWSProfile
from governance_cli.core.base_rule import RuleContext
from governance_cli.core.exceptions import AuditError, CollectionError, GovernanceError, ProfileLoadError
from governance_cli.core.merge import compute_summary, merge_findings, sort_findings, stamp_domain
from governance_cli.core.models import AuditReport, CostSummary, Domain, Finding, ServiceCost
from governance_cli.core.registry import RuleRegistry
from governance_cli.policy.config import PolicyConfig
from governance_cli.policy.engine import apply_policy, should_fail
from governance_cli.utils.utility import generate_report_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

MULTI_PROFILE = "multi"


class FailurePolicy(str, Enum):
    FAIL_FAST = "fail_fast"
    BEST_EFFORT = "best_effort"


class AuditType(str, Enum):
    COST = "cost"
    SECURITY = "security"
    DATAPROTECTION = "dataprotection"
    ALL = "all"
    KUBERNETES = "kubernetes"


@dataclass
class AuditOptions:
    audit_type: AuditType
    profile: str = ""
    all_profiles: bool = False
    regions: list[str] = field(default_factory=list)
    days_back: int = 0  # <= 0 means config.DEFAULT_DAYS_BACK


@dataclass
class ProfileAudit:
    """Everything one profile contributed to a report."""
    profile: AWSProfile
    regions: list[str]
    findings: list[Finding]
    cost_summary: Optional[CostSummary] = None


# ---------------------------------------------------------------------------
# Bounded fan-out
# ---------------------------------------------------------------------------

def run_profiles(
    profiles: Sequence[AWSProfile],
    audit_one: Callable[[AWSProfile, threading.Event], T],
    failure_policy: FailurePolicy,
    max_concurrent: int = config.MAX_CONCURRENT_PROFILES,
) -> list[T]:
    """
    Run audit_one for every profile, at most max_concurrent at a time.

    audit_one receives the shared cancellation event and should hand it to
    its collectors, which check it between regions. Returns the successful
    results in profile order, so reports do not depend on thread scheduling.
    Only GovernanceError is treated as a profile failure; anything else is a
    bug: it cancels the remaining work and propagates.
    """
    semaphore = threading.BoundedSemaphore(max(1, max_concurrent))
    cancelled = threading.Event()
    lock = threading.Lock()
    results: dict[int, T] = {}
    first_error: list[GovernanceError] = []

    def worker(index: int, profile: AWSProfile) -> None:
        try:
            if cancelled.is_set():
                return
            result = audit_one(profile, cancelled)
            with lock:
                results[index] = result
        except GovernanceError as err:
            if failure_policy == FailurePolicy.FAIL_FAST:
                with lock:
                    if not first_error:
                        first_error.append(err)
                cancelled.set()
            else:
                logger.warning("skipping profile %s: %s", profile.name, err)
        except Exception:
            cancelled.set()
            raise
        finally:
            semaphore.release()

    futures = []
    with ThreadPoolExecutor(max_workers=max(1, max_concurrent), thread_name_prefix="profile") as pool:
        for index, profile in enumerate(profiles):
            # Blocks while max_concurrent profiles are in flight.
            semaphore.acquire()
            if cancelled.is_set():
                semaphore.release()
                logger.debug("cancelled before starting profile %s", profile.name)
                break
            futures.append(pool.submit(worker, index, profile))

    for future in futures:
        future.result()

    if first_error:
        raise first_error[0]
    return [results[i] for i in sorted(results)]


# ---------------------------------------------------------------------------
# Aggregation helpers
# ---------------------------------------------------------------------------

def resolve_regions(provider: AWSClientProvider, profile: AWSProfile, explicit: Sequence[str]) -> list[str]:
    """The explicit list when given, otherwise the account's active regions."""
    if explicit:
        return list(explicit)
    try:
        return provider.get_active_regions(profile)
    except GovernanceError as err:
        raise CollectionError(f"resolve regions for profile {profile.name!r}: {err}") from err


def dedupe_regions(region_lists: Sequence[Sequence[str]]) -> list[str]:
    """Flatten, keeping the first occurrence of each region."""
    return list(dict.fromkeys(r for regions in region_lists for r in regions))


def aggregate_cost_summaries(summaries: Sequence[CostSummary]) -> Optional[CostSummary]:
    """
    Sum totals, take the earliest start and latest end, and total each
    service across summaries (breakdown sorted by service name).
    """
    if not summaries:
        return None

    result = CostSummary(period_start=summaries[0].period_start, period_end=summaries[0].period_end)
    service_totals: dict[str, float] = {}
    for s in summaries:
        result.total_cost_usd += s.total_cost_usd
        if s.period_start and (not result.period_start or s.period_start < result.period_start):
            result.period_start = s.period_start
        if s.period_end and s.period_end > result.period_end:
            result.period_end = s.period_end
        for svc in s.service_breakdown:
            service_totals[svc.service] = service_totals.get(svc.service, 0.0) + svc.cost_usd

    result.service_breakdown = [ServiceCost(service=name, cost_usd=service_totals[name]) for name in sorted(service_totals)]
    return result


def evaluate_contexts(registry: RuleRegistry, contexts: Sequence[RuleContext]) -> list[Finding]:
    findings: list[Finding] = []
    for ctx in contexts:
        findings.extend(registry.evaluate_all(ctx))
    return findings


# ---------------------------------------------------------------------------
# Domain engine base
# ---------------------------------------------------------------------------

class AWSDomainEngine(ABC):
    """
    Base for the cost, security and data-protection engines.

    Subclasses set `domain` and `default_failure_policy` and implement
    _audit_profile(); profile loading, fan-out and report assembly are shared.
    """

    domain: Domain
    default_failure_policy: FailurePolicy = FailurePolicy.BEST_EFFORT

    def __init__(
        self,
        provider: AWSClientProvider,
        registry: RuleRegistry,
        policy: Optional[PolicyConfig] = None,
        failure_policy: Optional[FailurePolicy] = None,
        max_concurrent: int = config.MAX_CONCURRENT_PROFILES,
    ):
        self.provider = provider
        self.registry = registry
        self.policy = policy
        self.failure_policy = failure_policy or self.default_failure_policy
        self.max_concurrent = max_concurrent

    @abstractmethod
    def _audit_profile(
        self,
        profile: AWSProfile,
        opts: AuditOptions,
        cancelled: Optional[threading.Event] = None,
    ) -> ProfileAudit:
        """
        Collect and evaluate one profile. Findings come back stamped and merged.
        `cancelled` is set when a multi-profile run is being abandoned.
        """
        ...

    def run_audit(self, opts: AuditOptions) -> AuditReport:
        if opts.audit_type.value != self.domain.value:
            raise AuditError(f"unsupported audit type: {opts.audit_type.value!r}")
        if opts.all_profiles:
            return self._run_all_profiles(opts)
        return self._run_single_profile(opts)

    def _run_single_profile(self, opts: AuditOptions) -> AuditReport:
        try:
            profile = self.provider.load_profile(opts.profile)
        except GovernanceError as err:
            raise ProfileLoadError(f"load profile {opts.profile!r}: {err}") from err

        logger.info("running %s audit for profile %s", self.domain.value, profile.name)
        audit = self._audit_profile(profile, opts)
        return self._build_report(
            profile.name, profile.account_id, audit.regions, audit.findings, audit.cost_summary,
        )

    def _run_all_profiles(self, opts: AuditOptions) -> AuditReport:
        try:
            profiles = self.provider.load_all_profiles()
        except GovernanceError as err:
            raise ProfileLoadError(f"load all profiles: {err}") from err
        if not profiles:
            raise AuditError("no AWS profiles found")

        logger.info(
            "running %s audit across %d profile(s) (%s)",
            self.domain.value, len(profiles), self.failure_policy.value,
        )
        audits = run_profiles(
            profiles,
            lambda p, cancelled: self._audit_profile(p, opts, cancelled),
            self.failure_policy,
            self.max_concurrent,
        )
        if not audits:
            raise AuditError(f"all profiles failed; no {self.domain.value} data collected")

        findings = [f for a in audits for f in a.findings]
        regions = dedupe_regions([a.regions for a in audits])
        cost_summary = aggregate_cost_summaries([a.cost_summary for a in audits if a.cost_summary is not None])
        return self._build_report(MULTI_PROFILE, "", regions, findings, cost_summary)

    def _finalise(self, raw: list[Finding]) -> list[Finding]:
        stamp_domain(raw, self.domain)
        return merge_findings(raw)

    def _build_report(
        self,
        profile: str,
        account_id: str,
        regions: list[str],
        findings: list[Finding],
        cost_summary: Optional[CostSummary],
    ) -> AuditReport:
        findings = apply_policy(findings, self.domain.value, self.policy)
        sort_findings(findings)
        enforced = [self.domain.value] if should_fail(self.domain.value, findings, self.policy) else []
        return AuditReport(
            report_id=generate_report_id("audit"),
            audit_type=self.domain.value,
            profile=profile,
            account_id=account_id,
            regions=regions,
            findings=findings,
            summary=compute_summary(findings),
            cost_summary=cost_summary,
            enforced_domains=enforced,
        )
