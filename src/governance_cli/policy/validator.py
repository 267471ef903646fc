# src/governance_cli/policy/validator.py
"""
Explicit policy validation.

validate_policy() never raises and never stops at the first problem: it
returns one PolicyValidationError per issue so the CLI can print them all.
Blank severity strings are valid and mean "no override" / "no filter".
"""

from typing import Iterable, Optional

from governance_cli.core.exceptions import PolicyValidationError
from governance_cli.core.models import Severity
from governance_cli.policy.config import SUPPORTED_VERSION, VALID_DOMAINS, PolicyConfig

_VALID_SEVERITIES = ", ".join(s.value for s in Severity)
_VALID_DOMAINS = ", ".join(VALID_DOMAINS)


def _invalid_severity(value: str) -> bool:
    return bool(value.strip()) and Severity.parse(value) is None


def validate_policy(cfg: Optional[PolicyConfig], known_rule_ids: Iterable[str]) -> list[PolicyValidationError]:
    if cfg is None:
        return [PolicyValidationError("no policy loaded")]

    known = set(known_rule_ids)
    errors: list[PolicyValidationError] = []

    if cfg.version != SUPPORTED_VERSION:
        errors.append(PolicyValidationError(
            f"version: unsupported value {cfg.version}; must be {SUPPORTED_VERSION}"
        ))

    for name, domain_cfg in cfg.domains.items():
        if name not in VALID_DOMAINS:
            errors.append(PolicyValidationError(
                f"domains.{name}: unknown domain; valid values: {_VALID_DOMAINS}"
            ))
        if _invalid_severity(domain_cfg.min_severity):
            errors.append(PolicyValidationError(
                f"domains.{name}.min_severity: invalid value {domain_cfg.min_severity!r}; "
                f"valid values: {_VALID_SEVERITIES}"
            ))

    for rule_id, rule_cfg in cfg.rules.items():
        if rule_id not in known:
            errors.append(PolicyValidationError(f"rules.{rule_id}: unknown rule ID"))
        if _invalid_severity(rule_cfg.severity):
            errors.append(PolicyValidationError(
                f"rules.{rule_id}.severity: invalid value {rule_cfg.severity!r}; "
                f"valid values: {_VALID_SEVERITIES}"
            ))

    for name, enforcement in cfg.enforcement.items():
        if name not in VALID_DOMAINS:
            errors.append(PolicyValidationError(
                f"enforcement.{name}: unknown domain; valid values: {_VALID_DOMAINS}"
            ))
        if _invalid_severity(enforcement.fail_on_severity):
            errors.append(PolicyValidationError(
                f"enforcement.{name}.fail_on_severity: invalid value {enforcement.fail_on_severity!r}; "
                f"valid values: {_VALID_SEVERITIES}"
            ))

    return errors
