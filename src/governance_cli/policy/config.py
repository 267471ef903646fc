# src/governance_cli/policy/config.py
"""
Policy file schema (dp.yaml).

    version: 1
    domains:
      cost:
        enabled: true
        min_severity: MEDIUM
    rules:
      EC2_LOW_CPU:
        enabled: true
        severity: HIGH
        params:
          cpu_threshold: 15
    enforcement:
      security:
        fail_on_severity: HIGH

Severity strings are kept as written; they are upper-cased where compared.
"""

from dataclasses import dataclass, field
from typing import Optional

SUPPORTED_VERSION = 1

VALID_DOMAINS: tuple[str, ...] = ("cost", "security", "dataprotection", "kubernetes")


@dataclass
class DomainPolicy:
    enabled: bool = True
    min_severity: str = ""


@dataclass
class RulePolicy:
    enabled: Optional[bool] = None  # None means "not configured", which keeps the rule on
    severity: str = ""
    params: dict[str, float] = field(default_factory=dict)


@dataclass
class EnforcementPolicy:
    fail_on_severity: str = ""


@dataclass
class PolicyConfig:
    version: int = SUPPORTED_VERSION
    domains: dict[str, DomainPolicy] = field(default_factory=dict)
    rules: dict[str, RulePolicy] = field(default_factory=dict)
    enforcement: dict[str, EnforcementPolicy] = field(default_factory=dict)
