import unittest

from governance_cli.core.models import Finding, ResourceType, Severity
from governance_cli.policy.config import DomainPolicy, EnforcementPolicy, PolicyConfig, RulePolicy
from governance_cli.policy.engine import apply_policy, get_threshold, should_fail


class TestApplyPolicy(unittest.TestCase):
    @staticmethod
    def make_finding(rule_id, severity):
        return Finding(
            id=f"{rule_id}-id",
            rule_id=rule_id,
            resource_id="r-1",
            resource_type=ResourceType.EC2_INSTANCE,
            region="us-east-1",
            severity=severity,
        )

    def setUp(self):
        self.findings = [
            self.make_finding("EC2_LOW_CPU", Severity.MEDIUM),
            self.make_finding("EBS_GP2_LEGACY", Severity.LOW),
            self.make_finding("NAT_LOW_TRAFFIC", Severity.HIGH),
        ]

    def test_no_policy_is_identity(self):
        result = apply_policy(self.findings, "cost", None)
        self.assertIs(result, self.findings)
        self.assertEqual([f.severity for f in result], [Severity.MEDIUM, Severity.LOW, Severity.HIGH])

    def test_disabled_domain_drops_everything(self):
        cfg = PolicyConfig(domains={"cost": DomainPolicy(enabled=False)})
        self.assertEqual(apply_policy(self.findings, "cost", cfg), [])
        self.assertEqual(len(apply_policy(self.findings, "security", cfg)), 3)

    def test_disabled_rule(self):
        cfg = PolicyConfig(rules={"EBS_GP2_LEGACY": RulePolicy(enabled=False)})
        result = apply_policy(self.findings, "cost", cfg)
        self.assertEqual([f.rule_id for f in result], ["EC2_LOW_CPU", "NAT_LOW_TRAFFIC"])

    def test_min_severity(self):
        cfg = PolicyConfig(domains={"cost": DomainPolicy(min_severity="medium")})
        result = apply_policy(self.findings, "cost", cfg)
        self.assertEqual([f.rule_id for f in result], ["EC2_LOW_CPU", "NAT_LOW_TRAFFIC"])

    def test_override_applies_before_min_severity(self):
        cfg = PolicyConfig(
            domains={"cost": DomainPolicy(min_severity="HIGH")},
            rules={
                "EBS_GP2_LEGACY": RulePolicy(severity="CRITICAL"),
                "NAT_LOW_TRAFFIC": RulePolicy(severity="LOW"),
            },
        )
        result = apply_policy(self.findings, "cost", cfg)

        self.assertEqual([(f.rule_id, f.severity) for f in result], [("EBS_GP2_LEGACY", Severity.CRITICAL)])
        # Inputs are never re-graded in place.
        self.assertEqual(self.findings[1].severity, Severity.LOW)

    def test_unknown_severity_strings_are_ignored(self):
        cfg = PolicyConfig(
            domains={"cost": DomainPolicy(min_severity="SEVERE")},
            rules={"EC2_LOW_CPU": RulePolicy(severity="urgent")},
        )
        result = apply_policy(self.findings, "cost", cfg)

        self.assertEqual(len(result), 3)
        self.assertEqual(result[0].severity, Severity.MEDIUM)


class TestShouldFail(unittest.TestCase):
    def test_threshold(self):
        findings = [TestApplyPolicy.make_finding("NAT_LOW_TRAFFIC", Severity.HIGH)]
        high = PolicyConfig(enforcement={"cost": EnforcementPolicy(fail_on_severity="HIGH")})
        critical = PolicyConfig(enforcement={"cost": EnforcementPolicy(fail_on_severity="CRITICAL")})

        self.assertTrue(should_fail("cost", findings, high))
        self.assertFalse(should_fail("cost", findings, critical))
        self.assertFalse(should_fail("security", findings, high))
        self.assertFalse(should_fail("cost", findings, None))
        self.assertFalse(should_fail("cost", [], high))


class TestGetThreshold(unittest.TestCase):
    def test_layered_fallback(self):
        cfg = PolicyConfig(rules={
            "EC2_LOW_CPU": RulePolicy(params={"cpu_threshold": 15.0}),
            "RDS_LOW_CPU": RulePolicy(severity="HIGH", params={"other": 1.0}),
        })

        self.assertEqual(get_threshold("EC2_LOW_CPU", "cpu_threshold", 10.0, cfg), 15.0)
        self.assertEqual(get_threshold("RDS_LOW_CPU", "cpu_threshold", 10.0, cfg), 10.0)
        self.assertEqual(get_threshold("NAT_LOW_TRAFFIC", "cpu_threshold", 10.0, cfg), 10.0)
        self.assertEqual(get_threshold("EC2_LOW_CPU", "cpu_threshold", 10.0, None), 10.0)


if __name__ == '__main__':
    unittest.main()
