import unittest
from types import SimpleNamespace as NS
from unittest import mock

from kubernetes.client.rest import ApiException

from governance_cli.adapters.kubernetes.collector import (
    KubeClusterCollector,
    parse_cpu_millis,
    to_container,
    to_node,
    to_pod,
)
from governance_cli.core.exceptions import ClusterConnectionError, CollectionError


def security_context(**kwargs):
    values = dict(privileged=None, capabilities=None, seccomp_profile=None, run_as_non_root=None, run_as_user=None)
    values.update(kwargs)
    return NS(**values)


def container(name="app", sc=None, requests=None):
    return NS(name=name, security_context=sc, resources=NS(requests=requests))


def pod(name, namespace, containers, sa=None, pod_sc=None, host_network=None):
    return NS(
        metadata=NS(name=name, namespace=namespace),
        spec=NS(
            host_network=host_network, host_pid=None, host_ipc=None,
            service_account_name=sa, security_context=pod_sc, containers=containers,
        ),
    )


class TestParseCpuMillis(unittest.TestCase):
    def test_quantities(self):
        self.assertEqual(parse_cpu_millis("500m"), 500)
        self.assertEqual(parse_cpu_millis("2"), 2000)
        self.assertEqual(parse_cpu_millis("1.5"), 1500)
        self.assertEqual(parse_cpu_millis("250000000n"), 250)

    def test_invalid_is_zero(self):
        for value in (None, "", "abc", "xm", "2Gi"):
            self.assertEqual(parse_cpu_millis(value), 0, value)


class TestConversions(unittest.TestCase):
    def test_container_overrides_pod_security(self):
        pod_sc = security_context(run_as_non_root=True, run_as_user=1000,
                                  seccomp_profile=NS(type="RuntimeDefault"))
        c = container(sc=security_context(run_as_user=0, privileged=True,
                                          capabilities=NS(add=["NET_ADMIN"])),
                      requests={"cpu": "100m", "memory": "0"})

        data = to_container(c, pod_sc)

        self.assertTrue(data.privileged)
        self.assertTrue(data.run_as_non_root)
        self.assertEqual(data.run_as_user, 0)
        self.assertEqual(data.added_capabilities, ["NET_ADMIN"])
        self.assertEqual(data.seccomp_profile_type, "RuntimeDefault")
        self.assertTrue(data.has_cpu_request)
        self.assertFalse(data.has_memory_request)

    def test_container_without_security_context(self):
        data = to_container(container(), None)
        self.assertFalse(data.privileged)
        self.assertIsNone(data.run_as_non_root)
        self.assertIsNone(data.run_as_user)
        self.assertEqual(data.seccomp_profile_type, "")
        self.assertFalse(data.has_cpu_request)

    def test_pod_defaults_service_account(self):
        data = to_pod(pod("web", "app", [container("a"), container("b")], host_network=True))
        self.assertEqual(data.service_account_name, "default")
        self.assertTrue(data.host_network)
        self.assertFalse(data.host_pid)
        self.assertEqual([c.name for c in data.containers], ["a", "b"])

    def test_node(self):
        node = NS(
            metadata=NS(name="n1", labels={"eks.amazonaws.com/nodegroup": "ng"}),
            status=NS(capacity={"cpu": "4"}, allocatable={"cpu": "3920m"}),
            spec=NS(provider_id=None),
        )
        data = to_node(node)
        self.assertEqual((data.cpu_capacity_millis, data.allocatable_cpu_millis), (4000, 3920))
        self.assertEqual(data.provider_id, "")
        self.assertEqual(data.labels, {"eks.amazonaws.com/nodegroup": "ng"})


class TestKubeClusterCollector(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch("governance_cli.adapters.kubernetes.collector.config")
        self.config = patcher.start()
        self.addCleanup(patcher.stop)
        self.config.list_kube_config_contexts.return_value = ([{"name": "dev"}, {"name": "prod"}], {"name": "dev"})
        self.api_client = self.config.new_client_from_config.return_value
        self.api_client.configuration.host = "https://k8s.example"

    def test_unknown_context(self):
        with self.assertRaises(ClusterConnectionError):
            KubeClusterCollector().collect("staging")

    def test_api_error_becomes_collection_error(self):
        with mock.patch("governance_cli.adapters.kubernetes.collector.client.CoreV1Api") as core_cls:
            core_cls.return_value.list_node.side_effect = ApiException(status=403, reason="Forbidden")
            with self.assertRaises(CollectionError) as cm:
                KubeClusterCollector().collect("")
        self.assertIn("403", str(cm.exception))
        self.config.new_client_from_config.assert_called_with(config_file=None, context="dev")
        self.api_client.close.assert_called_once()

    def test_collects_snapshot(self):
        with mock.patch("governance_cli.adapters.kubernetes.collector.client.CoreV1Api") as core_cls:
            core = core_cls.return_value
            core.list_node.return_value = NS(items=[])
            core.list_limit_range_for_all_namespaces.return_value = NS(items=[NS(metadata=NS(namespace="app"))])
            core.list_namespace.return_value = NS(items=[
                NS(metadata=NS(name="app", labels=None)), NS(metadata=NS(name="default", labels={"a": "b"})),
            ])
            core.list_pod_for_all_namespaces.return_value = NS(items=[pod("web", "app", [container()], sa="web")])
            core.list_service_for_all_namespaces.return_value = NS(items=[
                NS(metadata=NS(name="lb", namespace="app", annotations=None), spec=NS(type="LoadBalancer")),
            ])
            core.list_service_account_for_all_namespaces.return_value = NS(items=[
                NS(metadata=NS(name="web", namespace="app", annotations=None), automount_service_account_token=False),
            ])

            cluster = KubeClusterCollector().collect("prod")

        self.assertEqual(cluster.context_name, "prod")
        self.assertEqual(cluster.server, "https://k8s.example")
        self.assertEqual([(n.name, n.has_limit_range) for n in cluster.namespaces], [("app", True), ("default", False)])
        self.assertEqual(cluster.pods[0].service_account_name, "web")
        self.assertEqual(cluster.services[0].type, "LoadBalancer")
        self.assertFalse(cluster.service_accounts[0].automount_token)

    def test_resolve_context_does_not_call_the_api(self):
        with mock.patch("governance_cli.adapters.kubernetes.collector.client.CoreV1Api") as core_cls:
            self.assertEqual(KubeClusterCollector().resolve_context(""), "dev")
            self.assertEqual(KubeClusterCollector().resolve_context("prod"), "prod")
        core_cls.assert_not_called()
        with self.assertRaises(ClusterConnectionError):
            KubeClusterCollector().resolve_context("staging")

    def test_ping_lists_a_single_namespace(self):
        with mock.patch("governance_cli.adapters.kubernetes.collector.client.CoreV1Api") as core_cls:
            KubeClusterCollector().ping("prod")
            core_cls.return_value.list_namespace.assert_called_once_with(limit=1)

            core_cls.return_value.list_namespace.side_effect = ApiException(status=401, reason="Unauthorized")
            with self.assertRaises(CollectionError) as cm:
                KubeClusterCollector().ping("prod")
        self.assertIn("401", str(cm.exception))
        self.assertEqual(self.api_client.close.call_count, 2)


if __name__ == '__main__':
    unittest.main()
