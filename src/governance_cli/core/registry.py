# src/governance_cli/core/registry.py
"""
Ordered rule registry.
Engines receive a registry instead of importing rule packs directly, so tests
can register a handful of fake rules.
"""

import logging
from typing import Iterable

from governance_cli.core.base_rule import BaseRule, RuleContext
from governance_cli.core.models import Finding

logger = logging.getLogger(__name__)


class RuleRegistry:
    """Rules are evaluated in registration order. Duplicate IDs are rejected."""

    def __init__(self, rules: Iterable[BaseRule] = ()):
        self._rules: list[BaseRule] = []
        self._ids: set[str] = set()
        for rule in rules:
            self.register(rule)

    def register(self, rule: BaseRule) -> None:
        if rule.rule_id in self._ids:
            raise ValueError(f"duplicate rule ID: {rule.rule_id!r}")
        self._rules.append(rule)
        self._ids.add(rule.rule_id)

    def all(self) -> list[BaseRule]:
        return list(self._rules)

    def rule_ids(self) -> list[str]:
        return [r.rule_id for r in self._rules]

    def evaluate_all(self, ctx: RuleContext) -> list[Finding]:
        """Run every rule against ctx sequentially and concatenate the results."""
        findings: list[Finding] = []
        for rule in self._rules:
            produced = rule.evaluate(ctx)
            if produced:
                logger.debug("%s produced %d finding(s)", rule.rule_id, len(produced))
                findings.extend(produced)
        return findings

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._ids
