# src/governance_cli/engines/doctor.py
"""
Environment diagnostics behind `governance-cli doctor`.

Each check records its outcome instead of raising, so one broken area never
hides the state of the others:

    AWS        : load profile (credentials + account ID) -> active regions
    Kubernetes : resolve kubeconfig context -> list one namespace
    Policy     : locate the policy file -> load -> validate (file is optional)

The environment is healthy when every AWS and Kubernetes step passed and the
policy file, when present, is valid.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from governance_cli.core.base_collector import AWSClientProvider, ClusterCollector
from governance_cli.core.exceptions import GovernanceError
from governance_cli.core.rules.packs import known_rule_ids
from governance_cli.policy.loader import find_policy_file, load_policy
from governance_cli.policy.validator import validate_policy

logger = logging.getLogger(__name__)


@dataclass
class AWSCheck:
    profile: str = ""
    credentials_ok: bool = False
    account_id: str = ""
    regions_ok: bool = False
    error: str = ""


@dataclass
class KubernetesCheck:
    kubeconfig_ok: bool = False
    context: str = ""
    api_reachable: bool = False
    error: str = ""


@dataclass
class PolicyCheck:
    path: str = ""
    present: bool = False
    valid: bool = False
    errors: list[str] = field(default_factory=list)


@dataclass
class DoctorResult:
    aws: AWSCheck
    kubernetes: KubernetesCheck
    policy: PolicyCheck
    overall_healthy: bool = False


def check_aws(provider: AWSClientProvider, profile_name: str = "") -> AWSCheck:
    check = AWSCheck(profile=profile_name)
    try:
        profile = provider.load_profile(profile_name)
    except GovernanceError as err:
        check.error = str(err)
        return check
    check.credentials_ok = True
    check.account_id = profile.account_id

    try:
        provider.get_active_regions(profile)
    except GovernanceError as err:
        check.error = str(err)
        return check
    check.regions_ok = True
    return check


def check_kubernetes(collector: ClusterCollector, context_name: str = "") -> KubernetesCheck:
    check = KubernetesCheck()
    try:
        check.context = collector.resolve_context(context_name)
    except GovernanceError as err:
        check.error = str(err)
        return check
    check.kubeconfig_ok = True

    try:
        collector.ping(context_name)
    except GovernanceError as err:
        check.error = str(err)
        return check
    check.api_reachable = True
    return check


def check_policy(explicit_path: Optional[str] = None) -> PolicyCheck:
    """An explicit path that cannot be read counts as present and invalid."""
    path = find_policy_file(explicit_path)
    if path is None:
        return PolicyCheck()

    check = PolicyCheck(path=path, present=True)
    try:
        cfg = load_policy(path)
    except GovernanceError as err:
        check.errors = [str(err)]
        return check

    check.errors = [str(e) for e in validate_policy(cfg, known_rule_ids())]
    check.valid = not check.errors
    return check


def run_doctor(
    provider: AWSClientProvider,
    cluster_collector: ClusterCollector,
    profile_name: str = "",
    context_name: str = "",
    policy_path: Optional[str] = None,
) -> DoctorResult:
    result = DoctorResult(
        aws=check_aws(provider, profile_name),
        kubernetes=check_kubernetes(cluster_collector, context_name),
        policy=check_policy(policy_path),
    )
    result.overall_healthy = (
        result.aws.credentials_ok
        and result.aws.regions_ok
        and result.kubernetes.kubeconfig_ok
        and result.kubernetes.api_reachable
        and (not result.policy.present or result.policy.valid)
    )
    logger.debug("doctor finished: healthy=%s", result.overall_healthy)
    return result
