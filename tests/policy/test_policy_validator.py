import unittest

from governance_cli.core.exceptions import PolicyValidationError
from governance_cli.policy.config import DomainPolicy, EnforcementPolicy, PolicyConfig, RulePolicy
from governance_cli.policy.validator import validate_policy

KNOWN = ["EC2_LOW_CPU", "EBS_GP2_LEGACY"]


class TestValidatePolicy(unittest.TestCase):
    def test_minimal_policy_is_valid(self):
        self.assertEqual(validate_policy(PolicyConfig(), KNOWN), [])

    def test_blank_and_mixed_case_severities_are_valid(self):
        cfg = PolicyConfig(
            domains={"cost": DomainPolicy(min_severity="")},
            rules={"EC2_LOW_CPU": RulePolicy(severity="high")},
            enforcement={"kubernetes": EnforcementPolicy(fail_on_severity="Critical")},
        )
        self.assertEqual(validate_policy(cfg, KNOWN), [])

    def test_whitespace_only_severity_counts_as_blank(self):
        cfg = PolicyConfig(
            domains={"cost": DomainPolicy(min_severity="   ")},
            rules={"EC2_LOW_CPU": RulePolicy(severity="\t")},
            enforcement={"kubernetes": EnforcementPolicy(fail_on_severity=" ")},
        )
        self.assertEqual(validate_policy(cfg, KNOWN), [])

    def test_reports_every_problem(self):
        cfg = PolicyConfig(
            version=2,
            domains={"billing": DomainPolicy(min_severity="SEVERE")},
            rules={"NOT_A_RULE": RulePolicy(severity="urgent")},
            enforcement={"cost": EnforcementPolicy(fail_on_severity="LOUD")},
        )
        errors = validate_policy(cfg, KNOWN)
        messages = [str(e) for e in errors]

        self.assertEqual(len(errors), 6)
        self.assertTrue(all(isinstance(e, PolicyValidationError) for e in errors))
        self.assertTrue(messages[0].startswith("version:"))
        self.assertTrue(any(m.startswith("domains.billing:") for m in messages))
        self.assertTrue(any(m.startswith("domains.billing.min_severity:") for m in messages))
        self.assertTrue(any(m.startswith("rules.NOT_A_RULE:") for m in messages))
        self.assertTrue(any(m.startswith("rules.NOT_A_RULE.severity:") for m in messages))
        self.assertTrue(any(m.startswith("enforcement.cost.fail_on_severity:") for m in messages))

    def test_never_mutates(self):
        cfg = PolicyConfig(rules={"NOT_A_RULE": RulePolicy(severity="urgent")})
        validate_policy(cfg, KNOWN)
        self.assertEqual(cfg.rules["NOT_A_RULE"].severity, "urgent")

    def test_none_policy(self):
        self.assertEqual(len(validate_policy(None, KNOWN)), 1)


if __name__ == '__main__':
    unittest.main()
