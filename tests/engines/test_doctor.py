import os
import tempfile
import unittest

from governance_cli.core.base_collector import AWSClientProvider, AWSProfile, ClusterCollector
from governance_cli.core.exceptions import ClusterConnectionError, CollectionError, ProfileLoadError
from governance_cli.core.inventory import ClusterData
from governance_cli.engines.doctor import check_aws, check_kubernetes, check_policy, run_doctor


class FakeProvider(AWSClientProvider):
    def __init__(self, profile_error=None, regions_error=None):
        self.profile_error = profile_error
        self.regions_error = regions_error

    def load_profile(self, name):
        if self.profile_error:
            raise self.profile_error
        return AWSProfile(name=name or "default", account_id="123456789012")

    def load_all_profiles(self):
        return [self.load_profile("")]

    def get_active_regions(self, profile):
        if self.regions_error:
            raise self.regions_error
        return ["us-east-1"]


class FakeCluster(ClusterCollector):
    def __init__(self, context_error=None, ping_error=None):
        self.context_error = context_error
        self.ping_error = ping_error

    def collect(self, context_name):
        return ClusterData(context_name=context_name or "current")

    def resolve_context(self, context_name):
        if self.context_error:
            raise self.context_error
        return context_name or "current"

    def ping(self, context_name):
        if self.ping_error:
            raise self.ping_error


class TestDoctorChecks(unittest.TestCase):
    def setUp(self):
        # The default policy file is looked up in the working directory.
        cwd = os.getcwd()
        self.workdir = tempfile.TemporaryDirectory()
        os.chdir(self.workdir.name)
        self.addCleanup(self.workdir.cleanup)
        self.addCleanup(os.chdir, cwd)

    def write(self, name, content):
        with open(name, "w", encoding="utf-8") as f:
            f.write(content)
        return name

    def test_aws_steps(self):
        check = check_aws(FakeProvider(), "ops")
        self.assertTrue(check.credentials_ok)
        self.assertTrue(check.regions_ok)
        self.assertEqual(check.account_id, "123456789012")
        self.assertEqual(check.profile, "ops")

        check = check_aws(FakeProvider(profile_error=ProfileLoadError("no credentials for profile 'ops'")), "ops")
        self.assertFalse(check.credentials_ok)
        self.assertFalse(check.regions_ok)
        self.assertIn("no credentials", check.error)

        check = check_aws(FakeProvider(regions_error=CollectionError("describe regions: AccessDenied")))
        self.assertTrue(check.credentials_ok)
        self.assertFalse(check.regions_ok)
        self.assertIn("AccessDenied", check.error)

    def test_kubernetes_steps(self):
        check = check_kubernetes(FakeCluster(), "")
        self.assertTrue(check.kubeconfig_ok)
        self.assertTrue(check.api_reachable)
        self.assertEqual(check.context, "current")

        check = check_kubernetes(FakeCluster(context_error=ClusterConnectionError("load kubeconfig: missing")))
        self.assertFalse(check.kubeconfig_ok)
        self.assertFalse(check.api_reachable)
        self.assertEqual(check.context, "")

        check = check_kubernetes(FakeCluster(ping_error=ClusterConnectionError("unreachable")), "prod")
        self.assertTrue(check.kubeconfig_ok)
        self.assertEqual(check.context, "prod")
        self.assertFalse(check.api_reachable)
        self.assertEqual(check.error, "unreachable")

    def test_policy_is_optional(self):
        check = check_policy()
        self.assertFalse(check.present)
        self.assertFalse(check.valid)

    def test_default_policy_file_is_validated(self):
        self.write("dp.yaml", "version: 1\nrules:\n  NOT_A_RULE:\n    severity: urgent\n")
        check = check_policy()

        self.assertTrue(check.present)
        self.assertEqual(check.path, "dp.yaml")
        self.assertFalse(check.valid)
        self.assertEqual(len(check.errors), 2)

    def test_explicit_policy_path(self):
        path = self.write("team.yaml", "version: 1\ndomains:\n  cost:\n    min_severity: medium\n")
        self.assertTrue(check_policy(path).valid)

        check = check_policy("missing.yaml")
        self.assertTrue(check.present)
        self.assertFalse(check.valid)
        self.assertIn("missing.yaml", check.errors[0])

    def test_overall_health(self):
        self.assertTrue(run_doctor(FakeProvider(), FakeCluster()).overall_healthy)

        self.write("dp.yaml", "version: 2\n")
        result = run_doctor(FakeProvider(), FakeCluster())
        self.assertTrue(result.aws.regions_ok)
        self.assertTrue(result.kubernetes.api_reachable)
        self.assertFalse(result.overall_healthy)

    def test_one_failing_area_does_not_hide_the_others(self):
        result = run_doctor(FakeProvider(profile_error=ProfileLoadError("expired token")), FakeCluster(), "ops", "prod")

        self.assertFalse(result.overall_healthy)
        self.assertFalse(result.aws.credentials_ok)
        self.assertTrue(result.kubernetes.api_reachable)
        self.assertEqual(result.kubernetes.context, "prod")


if __name__ == '__main__':
    unittest.main()
