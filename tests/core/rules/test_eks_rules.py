import unittest

from governance_cli.core.base_rule import RuleContext
from governance_cli.core.inventory import ClusterData, EKSData, EKSNodeGroupData, ServiceAccountData
from governance_cli.core.models import Severity
from governance_cli.core.rules.eks import (
    ControlPlaneLoggingDisabledRule,
    EncryptionDisabledRule,
    IAMWildcardPolicyRule,
    NodegroupIMDSv2NotEnforcedRule,
    NodeRoleOverpermissiveRule,
    OIDCProviderNotAssociatedRule,
    PublicEndpointEnabledRule,
    ServiceAccountNoIRSARule,
    eks_rules,
)


class TestEKSRules(unittest.TestCase):
    @staticmethod
    def make_ctx(eks=None, **cluster_fields):
        return RuleContext(cluster=ClusterData(context_name="arn:aws:eks:ctx", eks=eks, **cluster_fields))

    @staticmethod
    def hardened_eks(**overrides):
        data = EKSData(
            cluster_name="prod",
            region="eu-west-1",
            endpoint_public_access=False,
            encryption_key_arn="arn:aws:kms:eu-west-1:1:key/abc",
            enabled_log_types=["api", "audit", "authenticator"],
            oidc_issuer="https://oidc.eks.eu-west-1.amazonaws.com/id/ABC",
            oidc_provider_arn="arn:aws:iam::1:oidc-provider/oidc.eks.eu-west-1.amazonaws.com/id/ABC",
            node_groups=[EKSNodeGroupData("ng-1", http_tokens="required")],
        )
        for key, value in overrides.items():
            setattr(data, key, value)
        return data

    def test_hardened_cluster_is_clean(self):
        ctx = self.make_ctx(self.hardened_eks())
        for rule in eks_rules():
            self.assertEqual(rule.evaluate(ctx), [], rule.rule_id)

    def test_missing_eks_data_yields_nothing(self):
        ctx = self.make_ctx(None)
        for rule in eks_rules():
            if isinstance(rule, ServiceAccountNoIRSARule):
                continue
            self.assertEqual(rule.evaluate(ctx), [], rule.rule_id)

    def test_public_endpoint_severity(self):
        open_ctx = self.make_ctx(self.hardened_eks(endpoint_public_access=True, public_access_cidrs=["0.0.0.0/0"]))
        empty_ctx = self.make_ctx(self.hardened_eks(endpoint_public_access=True, public_access_cidrs=[]))
        narrow_ctx = self.make_ctx(self.hardened_eks(endpoint_public_access=True, public_access_cidrs=["203.0.113.0/24"]))

        self.assertEqual(PublicEndpointEnabledRule().evaluate(open_ctx)[0].severity, Severity.CRITICAL)
        self.assertEqual(PublicEndpointEnabledRule().evaluate(empty_ctx)[0].severity, Severity.CRITICAL)
        narrow = PublicEndpointEnabledRule().evaluate(narrow_ctx)[0]
        self.assertEqual(narrow.severity, Severity.HIGH)
        self.assertEqual(narrow.resource_id, "prod")
        self.assertEqual(narrow.region, "eu-west-1")

    def test_encryption_and_oidc(self):
        ctx = self.make_ctx(self.hardened_eks(encryption_key_arn="", oidc_provider_arn=""))

        self.assertEqual(EncryptionDisabledRule().evaluate(ctx)[0].severity, Severity.CRITICAL)
        oidc = OIDCProviderNotAssociatedRule().evaluate(ctx)
        self.assertEqual(oidc[0].metadata.extra["oidc_issuer"], "https://oidc.eks.eu-west-1.amazonaws.com/id/ABC")

    def test_logging_lists_missing_types(self):
        ctx = self.make_ctx(self.hardened_eks(enabled_log_types=["api", "scheduler"]))
        findings = ControlPlaneLoggingDisabledRule().evaluate(ctx)

        self.assertEqual(findings[0].metadata.extra["missing_log_types"], ["audit", "authenticator"])

    def test_node_role_policies(self):
        ctx = self.make_ctx(self.hardened_eks(
            node_role_overpermissive_policies=["AdministratorAccess"],
            node_role_wildcard_policies=["inline-all"],
        ))

        self.assertEqual(NodeRoleOverpermissiveRule().evaluate(ctx)[0].severity, Severity.CRITICAL)
        self.assertEqual(IAMWildcardPolicyRule().evaluate(ctx)[0].metadata.extra["policies"], ["inline-all"])

    def test_imdsv2(self):
        ctx = self.make_ctx(self.hardened_eks(node_groups=[
            EKSNodeGroupData("ng-ok", http_tokens="required"),
            EKSNodeGroupData("ng-optional", http_tokens="optional"),
            EKSNodeGroupData("ng-unknown"),
        ]))
        findings = NodegroupIMDSv2NotEnforcedRule().evaluate(ctx)

        self.assertEqual([f.resource_id for f in findings], ["ng-optional", "ng-unknown"])

    def test_irsa_region_falls_back_to_context(self):
        accounts = [
            ServiceAccountData("default", "app"),
            ServiceAccountData("web", "app", annotations={"eks.amazonaws.com/role-arn": "arn:aws:iam::1:role/web"}),
        ]
        with_eks = ServiceAccountNoIRSARule().evaluate(self.make_ctx(self.hardened_eks(), service_accounts=accounts))
        without_eks = ServiceAccountNoIRSARule().evaluate(self.make_ctx(None, service_accounts=accounts))

        self.assertEqual([f.resource_id for f in with_eks], ["app/default"])
        self.assertEqual(with_eks[0].region, "eu-west-1")
        self.assertEqual(without_eks[0].region, "arn:aws:eks:ctx")
        self.assertEqual(without_eks[0].namespace, "app")


if __name__ == '__main__':
    unittest.main()
