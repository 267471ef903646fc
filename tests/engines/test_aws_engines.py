import threading
import unittest

from governance_cli.core.base_collector import (
    AWSClientProvider,
    AWSProfile,
    CostCollection,
    CostCollector,
    SecurityCollector,
)
from governance_cli.core.exceptions import AuditError, CollectionError, ProfileLoadError
from governance_cli.core.inventory import (
    EBSVolume,
    EC2Instance,
    IAMUser,
    RDSInstance,
    RegionData,
    S3Bucket,
    SecurityData,
    SecurityGroupRule,
)
from governance_cli.core.models import CostSummary, Domain, Severity
from governance_cli.engines.aws_cost import AWSCostEngine
from governance_cli.engines.aws_dataprotection import AWSDataProtectionEngine
from governance_cli.engines.aws_security import AWSSecurityEngine
from governance_cli.engines.base import AuditOptions, AuditType, FailurePolicy
from governance_cli.policy.config import EnforcementPolicy, PolicyConfig, RulePolicy


class FakeProvider(AWSClientProvider):
    def __init__(self, names=("dev",), broken=()):
        self.names = list(names)
        self.broken = set(broken)

    def load_profile(self, name):
        if name in self.broken:
            raise ProfileLoadError(f"no credentials for {name}")
        return AWSProfile(name=name or "default", account_id=f"acct-{name or 'default'}", region="us-east-1")

    def load_all_profiles(self):
        return [self.load_profile(n) for n in self.names if n not in self.broken]

    def get_active_regions(self, profile):
        return ["us-east-1", "eu-west-1"]


class FakeCostCollector(CostCollector):
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []
        self.events = []

    def collect_all(self, profile, regions, days_back, cancelled=None):
        self.calls.append((profile.name, tuple(regions), days_back))
        self.events.append(cancelled)
        if profile.name in self.failing:
            raise CollectionError("AccessDenied")
        data = []
        for region in regions:
            data.append(RegionData(
                region=region,
                ec2_instances=[EC2Instance("i-idle", region, instance_type="m5.large", state="running",
                                           avg_cpu_percent=2.0, monthly_cost_usd=100.0)],
                ebs_volumes=[EBSVolume("vol-1", region, volume_type="gp2", size_gb=100, state="available")],
                rds_instances=[RDSInstance("db-1", region)],
            ))
        summary = CostSummary("2024-05-01", "2024-05-31", 250.0)
        return CostCollection(regions=data, cost_summary=summary)


class FakeSecurityCollector(SecurityCollector):
    def __init__(self, failing=()):
        self.failing = set(failing)

    def collect_all(self, profile, regions, cancelled=None):
        if profile.name in self.failing:
            raise CollectionError("AccessDenied")
        return SecurityData(
            buckets=[S3Bucket("public-assets", public=True, default_encryption_enabled=False)],
            security_group_rules=[SecurityGroupRule("sg-1", 22, "0.0.0.0/0", regions[0])],
            iam_users=[IAMUser("admin", mfa_enabled=False, has_login_profile=True)],
        )


class TestAWSCostEngine(unittest.TestCase):
    def test_single_profile(self):
        collector = FakeCostCollector()
        engine = AWSCostEngine(FakeProvider(), collector)

        report = engine.run_audit(AuditOptions(AuditType.COST, profile="dev", regions=["us-east-1"]))

        self.assertEqual(report.audit_type, "cost")
        self.assertEqual(report.profile, "dev")
        self.assertEqual(report.account_id, "acct-dev")
        self.assertEqual(report.regions, ["us-east-1"])
        self.assertTrue(report.report_id.startswith("audit-"))
        self.assertEqual(collector.calls, [("dev", ("us-east-1",), 30)])
        # vol-1 is unattached and gp2: two rules, one merged finding.
        vol = [f for f in report.findings if f.resource_id == "vol-1"]
        self.assertEqual(len(vol), 1)
        self.assertEqual(vol[0].metadata.rules, ["EBS_UNATTACHED", "EBS_GP2_LEGACY"])
        self.assertAlmostEqual(vol[0].estimated_monthly_savings, 12.0)
        self.assertTrue(all(f.domain == Domain.COST for f in report.findings))
        self.assertEqual(report.cost_summary.total_cost_usd, 250.0)
        self.assertEqual(report.enforced_domains, [])

    def test_regions_resolved_from_account(self):
        report = AWSCostEngine(FakeProvider(), FakeCostCollector()).run_audit(AuditOptions(AuditType.COST))
        self.assertEqual(report.regions, ["us-east-1", "eu-west-1"])

    def test_days_back_forwarded(self):
        collector = FakeCostCollector()
        AWSCostEngine(FakeProvider(), collector).run_audit(
            AuditOptions(AuditType.COST, profile="dev", regions=["us-east-1"], days_back=7))
        self.assertEqual(collector.calls[0][2], 7)

    def test_policy_and_enforcement(self):
        policy = PolicyConfig(
            rules={"EC2_LOW_CPU": RulePolicy(severity="CRITICAL")},
            enforcement={"cost": EnforcementPolicy(fail_on_severity="CRITICAL")},
        )
        report = AWSCostEngine(FakeProvider(), FakeCostCollector(), policy=policy).run_audit(
            AuditOptions(AuditType.COST, profile="dev", regions=["us-east-1"]))

        self.assertEqual(report.findings[0].rule_id, "EC2_LOW_CPU")
        self.assertEqual(report.findings[0].severity, Severity.CRITICAL)
        self.assertEqual(report.enforced_domains, ["cost"])

    def test_profile_load_failure(self):
        engine = AWSCostEngine(FakeProvider(broken={"ghost"}), FakeCostCollector())
        with self.assertRaises(ProfileLoadError) as cm:
            engine.run_audit(AuditOptions(AuditType.COST, profile="ghost"))
        self.assertIn("ghost", str(cm.exception))

    def test_wrong_audit_type(self):
        engine = AWSCostEngine(FakeProvider(), FakeCostCollector())
        with self.assertRaises(AuditError):
            engine.run_audit(AuditOptions(AuditType.SECURITY))

    def test_multi_profile_keeps_findings_per_profile(self):
        engine = AWSCostEngine(FakeProvider(names=("dev", "prod")), FakeCostCollector())
        report = engine.run_audit(AuditOptions(AuditType.COST, all_profiles=True, regions=["us-east-1"]))

        self.assertEqual(report.profile, "multi")
        self.assertEqual(report.account_id, "")
        self.assertEqual(report.regions, ["us-east-1"])
        idle = [f for f in report.findings if f.resource_id == "i-idle"]
        self.assertEqual(sorted(f.profile for f in idle), ["dev", "prod"])
        self.assertAlmostEqual(report.cost_summary.total_cost_usd, 500.0)

    def test_multi_profile_cost_is_fail_fast(self):
        engine = AWSCostEngine(FakeProvider(names=("dev", "prod")), FakeCostCollector(failing={"prod"}))
        with self.assertRaises(CollectionError) as cm:
            engine.run_audit(AuditOptions(AuditType.COST, all_profiles=True, regions=["us-east-1"]))
        self.assertIn("prod", str(cm.exception))

    def test_failure_policy_is_configurable(self):
        engine = AWSCostEngine(
            FakeProvider(names=("dev", "prod")),
            FakeCostCollector(failing={"prod"}),
            failure_policy=FailurePolicy.BEST_EFFORT,
        )
        report = engine.run_audit(AuditOptions(AuditType.COST, all_profiles=True, regions=["us-east-1"]))
        self.assertEqual({f.profile for f in report.findings}, {"dev"})

    def test_multi_profile_shares_one_cancellation_event(self):
        collector = FakeCostCollector()
        AWSCostEngine(FakeProvider(names=("dev", "prod")), collector).run_audit(
            AuditOptions(AuditType.COST, all_profiles=True, regions=["us-east-1"]))

        self.assertEqual(len(collector.events), 2)
        self.assertIsInstance(collector.events[0], threading.Event)
        self.assertIs(collector.events[0], collector.events[1])
        self.assertFalse(collector.events[0].is_set())

        single = FakeCostCollector()
        AWSCostEngine(FakeProvider(), single).run_audit(AuditOptions(AuditType.COST, profile="dev"))
        self.assertEqual(single.events, [None])

    def test_no_profiles(self):
        engine = AWSCostEngine(FakeProvider(names=()), FakeCostCollector())
        with self.assertRaises(AuditError):
            engine.run_audit(AuditOptions(AuditType.COST, all_profiles=True))


class TestAWSSecurityEngine(unittest.TestCase):
    def test_single_profile(self):
        report = AWSSecurityEngine(FakeProvider(), FakeSecurityCollector()).run_audit(
            AuditOptions(AuditType.SECURITY, profile="dev", regions=["eu-west-1"]))

        by_rule = {f.rule_id: f for f in report.findings}
        self.assertEqual(set(by_rule), {"S3_PUBLIC_BUCKET", "SG_OPEN_SSH", "IAM_USER_NO_MFA"})
        self.assertEqual(by_rule["SG_OPEN_SSH"].region, "eu-west-1")
        self.assertEqual(report.findings[0].severity, Severity.HIGH)
        self.assertEqual(report.findings[-1].rule_id, "IAM_USER_NO_MFA")

    def test_multi_profile_best_effort(self):
        engine = AWSSecurityEngine(FakeProvider(names=("dev", "prod")), FakeSecurityCollector(failing={"dev"}))
        report = engine.run_audit(AuditOptions(AuditType.SECURITY, all_profiles=True, regions=["us-east-1"]))

        self.assertEqual({f.profile for f in report.findings}, {"prod"})

    def test_multi_profile_all_failing(self):
        engine = AWSSecurityEngine(FakeProvider(names=("dev",)), FakeSecurityCollector(failing={"dev"}))
        with self.assertRaises(AuditError):
            engine.run_audit(AuditOptions(AuditType.SECURITY, all_profiles=True, regions=["us-east-1"]))

    def test_collection_error_is_wrapped(self):
        engine = AWSSecurityEngine(FakeProvider(), FakeSecurityCollector(failing={"dev"}))
        with self.assertRaises(CollectionError) as cm:
            engine.run_audit(AuditOptions(AuditType.SECURITY, profile="dev", regions=["us-east-1"]))
        self.assertIn("collect security data for profile 'dev'", str(cm.exception))


class TestAWSDataProtectionEngine(unittest.TestCase):
    def test_region_and_global_contexts(self):
        cost = FakeCostCollector()
        engine = AWSDataProtectionEngine(FakeProvider(), cost, FakeSecurityCollector())

        report = engine.run_audit(AuditOptions(AuditType.DATAPROTECTION, profile="dev", regions=["us-east-1"]))

        rules = sorted(f.rule_id for f in report.findings)
        self.assertEqual(rules, ["EBS_UNENCRYPTED", "RDS_UNENCRYPTED", "S3_DEFAULT_ENCRYPTION_MISSING"])
        self.assertEqual(report.findings[0].rule_id, "RDS_UNENCRYPTED")
        self.assertEqual(cost.calls[0][2], 1)
        self.assertTrue(all(f.domain == Domain.DATAPROTECTION for f in report.findings))
        self.assertIsNone(report.cost_summary)


if __name__ == '__main__':
    unittest.main()
