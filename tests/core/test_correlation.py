import unittest

from governance_cli.core.correlation import (
    correlate_risk_chains,
    filter_by_min_risk_score,
    get_risk_score,
    group_chains,
    max_risk_score,
)
from governance_cli.core.models import Finding, FindingMetadata, ResourceType, Severity
from governance_cli.core.rules import ids


class TestRiskChains(unittest.TestCase):
    @staticmethod
    def make_finding(fid, rule_id, namespace=None, severity=Severity.MEDIUM,
                     resource_type=ResourceType.K8S_POD, merged=()):
        meta = FindingMetadata(namespace=namespace)
        if merged:
            meta.rules = [rule_id, *merged]
        return Finding(
            id=fid,
            rule_id=rule_id,
            resource_id=fid,
            resource_type=resource_type,
            region="kind-dev",
            severity=severity,
            metadata=meta,
        )

    def test_public_lb_with_root_pod_in_same_namespace(self):
        lb = self.make_finding("lb", ids.K8S_SERVICE_PUBLIC_LOADBALANCER, "app", resource_type=ResourceType.K8S_SERVICE)
        root = self.make_finding("root", ids.K8S_POD_RUN_AS_ROOT, "app")
        findings = [lb, root]

        correlate_risk_chains(findings)

        for f in findings:
            self.assertEqual(f.metadata.risk_chain_score, 80)
            self.assertEqual(f.metadata.risk_chain_reason, "Public service exposes privileged workload")

    def test_namespace_chain_needs_same_namespace(self):
        lb = self.make_finding("lb", ids.K8S_SERVICE_PUBLIC_LOADBALANCER, "a", resource_type=ResourceType.K8S_SERVICE)
        root = self.make_finding("root", ids.K8S_POD_RUN_AS_ROOT, "b")

        correlate_risk_chains([lb, root])

        self.assertIsNone(lb.metadata.risk_chain_score)
        self.assertIsNone(root.metadata.risk_chain_score)

    def test_merged_rule_ids_participate(self):
        lb = self.make_finding("lb", ids.K8S_SERVICE_PUBLIC_LOADBALANCER, "app", resource_type=ResourceType.K8S_SERVICE)
        pod = self.make_finding("pod", ids.K8S_POD_NO_SECCOMP, "app", merged=(ids.K8S_POD_CAP_SYS_ADMIN,))

        correlate_risk_chains([lb, pod])

        self.assertEqual(get_risk_score(pod), 80)

    def test_single_node_with_critical(self):
        node = self.make_finding("cluster", ids.K8S_CLUSTER_SINGLE_NODE, resource_type=ResourceType.K8S_CLUSTER)
        priv = self.make_finding("priv", ids.K8S_PRIVILEGED_CONTAINER, "app", severity=Severity.CRITICAL)
        other = self.make_finding("other", ids.K8S_POD_NO_SECCOMP, "app", severity=Severity.LOW)

        correlate_risk_chains([node, priv, other])

        self.assertEqual(get_risk_score(node), 50)
        self.assertEqual(get_risk_score(priv), 50)
        self.assertEqual(get_risk_score(other), 0)

    def test_highest_chain_wins(self):
        oidc = self.make_finding("oidc", ids.EKS_OIDC_PROVIDER_NOT_ASSOCIATED,
                                 severity=Severity.HIGH, resource_type=ResourceType.K8S_CLUSTER)
        lb = self.make_finding("lb", ids.K8S_SERVICE_PUBLIC_LOADBALANCER, "app",
                               severity=Severity.HIGH, resource_type=ResourceType.K8S_SERVICE)
        root = self.make_finding("root", ids.K8S_POD_RUN_AS_ROOT, "app", severity=Severity.HIGH)

        correlate_risk_chains([oidc, lb, root])

        for f in (oidc, lb, root):
            self.assertEqual(f.metadata.risk_chain_score, 95)
            self.assertEqual(f.metadata.risk_chain_reason,
                             "Cluster lacks OIDC provider and has high-risk workload findings.")

    def test_node_role_with_public_lb_anywhere(self):
        role = self.make_finding("role", ids.EKS_NODE_ROLE_OVERPERMISSIVE, resource_type=ResourceType.K8S_CLUSTER)
        lb = self.make_finding("lb", ids.K8S_SERVICE_PUBLIC_LOADBALANCER, "web", resource_type=ResourceType.K8S_SERVICE)

        correlate_risk_chains([role, lb])

        self.assertEqual(get_risk_score(role), 90)
        self.assertEqual(get_risk_score(lb), 90)

    def test_default_sa_without_irsa(self):
        sa = self.make_finding("sa", ids.EKS_SERVICEACCOUNT_NO_IRSA, "app", resource_type=ResourceType.K8S_SERVICEACCOUNT)
        pod = self.make_finding("pod", ids.K8S_DEFAULT_SERVICEACCOUNT_USED, "app")
        token = self.make_finding("token", ids.K8S_SERVICEACCOUNT_TOKEN_AUTOMOUNT, "app",
                                  resource_type=ResourceType.K8S_SERVICEACCOUNT)

        correlate_risk_chains([sa, pod, token])

        self.assertEqual(get_risk_score(sa), 85)
        self.assertEqual(get_risk_score(pod), 85)
        self.assertEqual(get_risk_score(token), 60)

    def test_empty_and_none_metadata(self):
        correlate_risk_chains([])
        f = Finding(id="x", rule_id=ids.K8S_POD_NO_SECCOMP, resource_id="x", resource_type=ResourceType.K8S_POD,
                    region="kind-dev", severity=Severity.LOW, metadata=None)
        correlate_risk_chains([f])
        self.assertEqual(get_risk_score(f), 0)


class TestChainHelpers(unittest.TestCase):
    @staticmethod
    def scored(fid, score, reason):
        return Finding(
            id=fid, rule_id="R", resource_id=fid, resource_type=ResourceType.K8S_POD,
            region="kind-dev", severity=Severity.HIGH,
            metadata=FindingMetadata(risk_chain_score=score, risk_chain_reason=reason),
        )

    def test_group_chains_sorted_by_score_then_reason(self):
        findings = [
            self.scored("a", 60, "b-reason"),
            self.scored("b", 80, "z-reason"),
            self.scored("c", 60, "a-reason"),
            self.scored("d", 60, "b-reason"),
            self.scored("e", None, None),
        ]
        chains = group_chains(findings)

        self.assertEqual([(c.score, c.reason) for c in chains],
                         [(80, "z-reason"), (60, "a-reason"), (60, "b-reason")])
        self.assertEqual(chains[2].finding_ids, ["a", "d"])

    def test_min_risk_score_filter_and_max(self):
        findings = [self.scored("a", 90, "x"), self.scored("b", 50, "y"), self.scored("c", None, None)]

        self.assertEqual([f.id for f in filter_by_min_risk_score(findings, 60)], ["a"])
        self.assertEqual(len(filter_by_min_risk_score(findings, 0)), 3)
        self.assertEqual(max_risk_score(findings), 90)
        self.assertEqual(max_risk_score([]), 0)


if __name__ == '__main__':
    unittest.main()
