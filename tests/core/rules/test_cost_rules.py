import unittest

from governance_cli.core.base_rule import RuleContext
from governance_cli.core.inventory import (
    EBSVolume,
    EC2Instance,
    NATGateway,
    RDSInstance,
    RegionData,
    SavingsPlanCoverage,
)
from governance_cli.core.models import Severity
from governance_cli.core.rules.cost import (
    EBSGP2LegacyRule,
    EBSUnattachedRule,
    EC2LowCPURule,
    NATLowTrafficRule,
    RDSLowCPURule,
    SavingsPlanUnderutilizedRule,
)
from governance_cli.policy.config import PolicyConfig, RulePolicy


class TestEBSRules(unittest.TestCase):
    @staticmethod
    def make_ctx(*volumes):
        return RuleContext(account_id="111111111111", profile="dev",
                           region_data=RegionData(region="us-east-1", ebs_volumes=list(volumes)))

    def test_unattached_volume_priced_by_type(self):
        ctx = self.make_ctx(
            EBSVolume("vol-1", "us-east-1", volume_type="gp3", size_gb=100, state="available"),
            EBSVolume("vol-2", "us-east-1", volume_type="gp3", size_gb=100, state="in-use", attached=True),
        )
        findings = EBSUnattachedRule().evaluate(ctx)

        self.assertEqual(len(findings), 1)
        self.assertEqual(findings[0].resource_id, "vol-1")
        self.assertEqual(findings[0].severity, Severity.MEDIUM)
        self.assertAlmostEqual(findings[0].estimated_monthly_savings, 8.0)
        self.assertEqual(findings[0].account_id, "111111111111")
        self.assertEqual(findings[0].profile, "dev")

    def test_unknown_volume_type_uses_gp2_price(self):
        ctx = self.make_ctx(EBSVolume("vol-1", "us-east-1", volume_type="exotic", size_gb=10, state="available"))
        self.assertAlmostEqual(EBSUnattachedRule().evaluate(ctx)[0].estimated_monthly_savings, 1.0)

    def test_gp2_legacy_savings(self):
        ctx = self.make_ctx(
            EBSVolume("vol-1", "us-east-1", volume_type="gp2", size_gb=500, state="in-use", attached=True),
            EBSVolume("vol-2", "us-east-1", volume_type="gp3", size_gb=500),
        )
        findings = EBSGP2LegacyRule().evaluate(ctx)

        self.assertEqual([f.resource_id for f in findings], ["vol-1"])
        self.assertEqual(findings[0].severity, Severity.LOW)
        self.assertAlmostEqual(findings[0].estimated_monthly_savings, 10.0)

    def test_no_region_data(self):
        self.assertEqual(EBSUnattachedRule().evaluate(RuleContext()), [])
        self.assertEqual(EBSGP2LegacyRule().evaluate(RuleContext()), [])


class TestEC2LowCPURule(unittest.TestCase):
    @staticmethod
    def make_ctx(cpu, policy=None, cost=100.0, state="running"):
        inst = EC2Instance("i-1", "us-east-1", instance_type="m5.large", state=state,
                           avg_cpu_percent=cpu, monthly_cost_usd=cost)
        return RuleContext(region_data=RegionData(region="us-east-1", ec2_instances=[inst]), policy=policy)

    def test_default_threshold(self):
        findings = EC2LowCPURule().evaluate(self.make_ctx(5.0))

        self.assertEqual(len(findings), 1)
        self.assertAlmostEqual(findings[0].estimated_monthly_savings, 30.0)
        self.assertEqual(EC2LowCPURule().evaluate(self.make_ctx(12.0)), [])

    def test_policy_raises_threshold(self):
        policy = PolicyConfig(rules={"EC2_LOW_CPU": RulePolicy(params={"cpu_threshold": 15.0})})
        self.assertEqual(len(EC2LowCPURule().evaluate(self.make_ctx(12.0, policy))), 1)

    def test_missing_metrics_or_cost_are_skipped(self):
        self.assertEqual(EC2LowCPURule().evaluate(self.make_ctx(0.0)), [])
        self.assertEqual(EC2LowCPURule().evaluate(self.make_ctx(2.0, cost=0.0)), [])
        self.assertEqual(EC2LowCPURule().evaluate(self.make_ctx(2.0, state="stopped")), [])


class TestRDSLowCPURule(unittest.TestCase):
    @staticmethod
    def make_ctx(cpu):
        db = RDSInstance("db-1", "us-east-1", db_instance_class="db.m5.large", status="available",
                         avg_cpu_percent=cpu, monthly_cost_usd=200.0)
        return RuleContext(region_data=RegionData(region="us-east-1", rds_instances=[db]))

    def test_severity_grading(self):
        self.assertEqual(RDSLowCPURule().evaluate(self.make_ctx(3.0))[0].severity, Severity.HIGH)
        self.assertEqual(RDSLowCPURule().evaluate(self.make_ctx(7.0))[0].severity, Severity.MEDIUM)
        self.assertEqual(RDSLowCPURule().evaluate(self.make_ctx(25.0)), [])

    def test_savings(self):
        self.assertAlmostEqual(RDSLowCPURule().evaluate(self.make_ctx(3.0))[0].estimated_monthly_savings, 60.0)


class TestNATLowTrafficRule(unittest.TestCase):
    def test_low_traffic_gateway(self):
        region = RegionData(region="us-east-1", nat_gateways=[
            NATGateway("nat-1", "us-east-1", state="available", bytes_processed_gb=0.2),
            NATGateway("nat-2", "us-east-1", state="available", bytes_processed_gb=500.0),
            NATGateway("nat-3", "us-east-1", state="deleted", bytes_processed_gb=0.0),
        ])
        findings = NATLowTrafficRule().evaluate(RuleContext(region_data=region))

        self.assertEqual([f.resource_id for f in findings], ["nat-1"])
        self.assertEqual(findings[0].severity, Severity.HIGH)
        self.assertAlmostEqual(findings[0].estimated_monthly_savings, 32.85)


class TestSavingsPlanUnderutilizedRule(unittest.TestCase):
    @staticmethod
    def evaluate(coverage, on_demand):
        region = RegionData(region="eu-west-1", savings_plan_coverage=[
            SavingsPlanCoverage("eu-west-1", coverage_percent=coverage, on_demand_cost_usd=on_demand),
        ])
        return SavingsPlanUnderutilizedRule().evaluate(RuleContext(region_data=region))

    def test_grading(self):
        high = self.evaluate(20.0, 1000.0)
        self.assertEqual(high[0].severity, Severity.HIGH)
        self.assertEqual(high[0].resource_id, "savings-plan-eu-west-1")
        self.assertAlmostEqual(high[0].estimated_monthly_savings, 100.0)

        self.assertEqual(self.evaluate(50.0, 1000.0)[0].severity, Severity.MEDIUM)

    def test_good_coverage_or_tiny_spend_is_ignored(self):
        self.assertEqual(self.evaluate(80.0, 1000.0), [])
        self.assertEqual(self.evaluate(10.0, 5.0), [])


if __name__ == '__main__':
    unittest.main()
