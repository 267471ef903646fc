# src/governance_cli/core/rules/packs.py
"""Rule pack assembly: one registry per audit domain."""

from governance_cli.core.registry import RuleRegistry
from governance_cli.core.rules.cost import cost_rules
from governance_cli.core.rules.dataprotection import dataprotection_rules
from governance_cli.core.rules.eks import eks_rules
from governance_cli.core.rules.kubernetes import kubernetes_core_rules
from governance_cli.core.rules.security import security_rules


def cost_registry() -> RuleRegistry:
    return RuleRegistry(cost_rules())


def security_registry() -> RuleRegistry:
    return RuleRegistry(security_rules())


def dataprotection_registry() -> RuleRegistry:
    return RuleRegistry(dataprotection_rules())


def kubernetes_registry(include_eks: bool = False) -> RuleRegistry:
    rules = kubernetes_core_rules()
    if include_eks:
        rules += eks_rules()
    return RuleRegistry(rules)


def known_rule_ids() -> list[str]:
    """Every rule ID shipped with the tool, used to validate policy files."""
    all_rules = (
        cost_rules()
        + security_rules()
        + dataprotection_rules()
        + kubernetes_core_rules()
        + eks_rules()
    )
    return [r.rule_id for r in all_rules]
