# src/governance_cli/policy/loader.py
"""
Policy file loading (YAML).

load_policy() only parses and type-converts. Unknown domains, rules and
severity strings are left for validate_policy() so that a typo never turns
into a silent no-op but also never blocks an audit.
"""

import logging
import os
from typing import Any, Optional

import yaml

from governance_cli.config import POLICY_FILE
from governance_cli.core.exceptions import PolicyError
from governance_cli.policy.config import (
    SUPPORTED_VERSION,
    DomainPolicy,
    EnforcementPolicy,
    PolicyConfig,
    RulePolicy,
)

logger = logging.getLogger(__name__)


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise PolicyError(f"policy section {name!r} must be a mapping")
    return value


def _entry(section: str, key: str, value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PolicyError(f"{section}.{key} must be a mapping")
    return value


def parse_policy(raw: Optional[dict[str, Any]]) -> PolicyConfig:
    """Build a PolicyConfig from an already-decoded YAML/JSON document."""
    raw = raw or {}
    if not isinstance(raw, dict):
        raise PolicyError("policy document must be a mapping")

    version = raw.get("version")
    if version != SUPPORTED_VERSION:
        raise PolicyError(f"unsupported policy version: {version!r}")

    domains = {}
    for name, value in _section(raw, "domains").items():
        entry = _entry("domains", name, value)
        domains[str(name)] = DomainPolicy(
            enabled=bool(entry.get("enabled", True)),
            min_severity=str(entry.get("min_severity") or ""),
        )

    rules = {}
    for rule_id, value in _section(raw, "rules").items():
        entry = _entry("rules", rule_id, value)
        enabled = entry.get("enabled")
        try:
            params = {str(k): float(v) for k, v in (entry.get("params") or {}).items()}
        except (TypeError, ValueError, AttributeError) as err:
            raise PolicyError(f"rules.{rule_id}.params must map names to numbers") from err
        rules[str(rule_id)] = RulePolicy(
            enabled=None if enabled is None else bool(enabled),
            severity=str(entry.get("severity") or ""),
            params=params,
        )

    enforcement = {}
    for name, value in _section(raw, "enforcement").items():
        entry = _entry("enforcement", name, value)
        enforcement[str(name)] = EnforcementPolicy(
            fail_on_severity=str(entry.get("fail_on_severity") or ""),
        )

    return PolicyConfig(version=version, domains=domains, rules=rules, enforcement=enforcement)


def load_policy(path: str) -> PolicyConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as err:
        raise PolicyError(f"read policy file {path!r}: {err}") from err
    except yaml.YAMLError as err:
        raise PolicyError(f"parse policy file {path!r}: {err}") from err

    cfg = parse_policy(raw)
    logger.debug(
        "loaded policy %s: %d domain(s), %d rule(s), %d enforcement entr(ies)",
        path, len(cfg.domains), len(cfg.rules), len(cfg.enforcement),
    )
    return cfg


def find_policy_file(explicit: Optional[str] = None) -> Optional[str]:
    """The explicit path if given, else the default policy file when it exists in the cwd."""
    if explicit:
        return explicit
    if os.path.exists(POLICY_FILE):
        return POLICY_FILE
    return None


def load_policy_file(explicit: Optional[str] = None) -> Optional[PolicyConfig]:
    path = find_policy_file(explicit)
    if path is None:
        return None
    return load_policy(path)
