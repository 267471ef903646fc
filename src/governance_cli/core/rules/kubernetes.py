# src/governance_cli/core/rules/kubernetes.py
"""
Cloud-agnostic Kubernetes rules.

Every rule reads ctx.cluster and uses the kube context name as the finding
region. Namespaced resources (pods, services, service accounts) use
"<namespace>/<name>" as resource_id so that same-named objects in different
namespaces never merge, and record the namespace in metadata.namespace.
Container-level rules emit one finding per container; the merge stage folds
them into one finding per pod.

Pack order follows severity: CRITICAL, then HIGH, then MEDIUM.
"""

from typing import Optional

from governance_cli import config
from governance_cli.core.base_rule import BaseRule, RuleContext
from governance_cli.core.inventory import ClusterData, ContainerData, PodData
from governance_cli.core.models import Domain, Finding, ResourceType, Severity
from governance_cli.core.rules import ids


def namespaced_id(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


class _KubernetesRule(BaseRule):
    domain = Domain.KUBERNETES

    def _pod_finding(self, ctx: RuleContext, pod: PodData, container: Optional[ContainerData] = None, **fields) -> Finding:
        cluster = ctx.cluster
        resource_id = namespaced_id(pod.namespace, pod.name)
        extra = {"pod": pod.name}
        id_key = resource_id
        if container is not None:
            extra["container"] = container.name
            id_key = f"{resource_id}/{container.name}"
        extra.update(fields.pop("extra", {}))
        return self._finding(
            ctx, resource_id, cluster.context_name,
            id_key=id_key,
            namespace=pod.namespace,
            resource_type=ResourceType.K8S_POD,
            extra=extra,
            **fields,
        )


def _containers(cluster: ClusterData):
    for pod in cluster.pods:
        for container in pod.containers:
            yield pod, container


# ---------------------------------------------------------------------------
# CRITICAL
# ---------------------------------------------------------------------------

class PrivilegedContainerRule(_KubernetesRule):
    """Pod-level signal: at least one container in the pod is privileged."""
    rule_id = ids.K8S_PRIVILEGED_CONTAINER
    name = "Pod Runs Privileged Container"
    default_severity = Severity.CRITICAL

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        findings = []
        for pod in ctx.cluster.pods:
            privileged = [c.name for c in pod.containers if c.privileged]
            if not privileged:
                continue
            findings.append(self._pod_finding(
                ctx, pod,
                explanation=f"Pod {pod.name!r} runs privileged container(s): {', '.join(privileged)}.",
                recommendation="Remove privileged: true from the pod's containers.",
                extra={"containers": privileged},
            ))
        return findings


class PSSPrivilegedContainerRule(_KubernetesRule):
    rule_id = ids.K8S_POD_PRIVILEGED_CONTAINER
    name = "Privileged Container (Pod Security Standards)"
    default_severity = Severity.CRITICAL

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        return [
            self._pod_finding(
                ctx, pod, container,
                explanation=(
                    f"Container {container.name!r} in pod {pod.name!r} runs privileged, "
                    f"giving it full access to the host."
                ),
                recommendation="Drop the privileged flag and grant only the specific capabilities required.",
            )
            for pod, container in _containers(ctx.cluster)
            if container.privileged
        ]


# ---------------------------------------------------------------------------
# HIGH
# ---------------------------------------------------------------------------

class ClusterSingleNodeRule(_KubernetesRule):
    rule_id = ids.K8S_CLUSTER_SINGLE_NODE
    name = "Kubernetes Cluster Has Single Node"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None or ctx.cluster.node_count != 1:
            return self._no_findings()
        context = ctx.cluster.context_name
        return [self._finding(
            ctx, context, context,
            resource_type=ResourceType.K8S_CLUSTER,
            explanation="Cluster has only 1 node; scheduled workloads have no redundancy.",
            recommendation="Add at least 2 more nodes to make workloads highly available.",
        )]


class NodeOverallocatedRule(_KubernetesRule):
    rule_id = ids.K8S_NODE_OVERALLOCATED
    name = "Kubernetes Node CPU Overallocated"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()

        threshold = config.NODE_OVERALLOCATED_THRESHOLD_PERCENT
        findings = []
        for node in ctx.cluster.nodes:
            # No reported capacity; nothing to compare against.
            if node.cpu_capacity_millis == 0:
                continue
            allocatable_percent = node.allocatable_cpu_millis / node.cpu_capacity_millis * 100.0
            if allocatable_percent >= threshold:
                continue
            findings.append(self._finding(
                ctx, node.name, ctx.cluster.context_name,
                resource_type=ResourceType.K8S_NODE,
                explanation=(
                    f"Node {node.name!r} has only {allocatable_percent:.1f}% of its CPU allocatable "
                    f"(threshold: {threshold:.0f}%)."
                ),
                recommendation="Add nodes or reduce system reservations to restore scheduling headroom.",
                extra={"allocatable_percent": round(allocatable_percent, 1)},
            ))
        return findings


class ServicePublicLoadBalancerRule(_KubernetesRule):
    rule_id = ids.K8S_SERVICE_PUBLIC_LOADBALANCER
    name = "Service Exposed Through Public LoadBalancer"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        findings = []
        for svc in ctx.cluster.services:
            if svc.type != "LoadBalancer" or is_internal_load_balancer(svc.annotations):
                continue
            findings.append(self._finding(
                ctx, namespaced_id(svc.namespace, svc.name), ctx.cluster.context_name,
                namespace=svc.namespace,
                resource_type=ResourceType.K8S_SERVICE,
                explanation=f"Service {svc.name!r} is exposed to the internet through a LoadBalancer.",
                recommendation="Use an internal LoadBalancer or put the service behind an ingress with authentication.",
                extra={"service": svc.name},
            ))
        return findings


def is_internal_load_balancer(annotations: dict[str, str]) -> bool:
    for key, internal_value in config.INTERNAL_LB_ANNOTATIONS.items():
        if annotations.get(key, "").lower() == internal_value:
            return True
    return False


class PSSHostNetworkRule(_KubernetesRule):
    rule_id = ids.K8S_POD_HOST_NETWORK
    name = "Pod Uses Host Network"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        return [
            self._pod_finding(
                ctx, pod,
                explanation=f"Pod {pod.name!r} shares the node's network namespace (hostNetwork: true).",
                recommendation="Disable hostNetwork unless the workload needs direct node networking.",
            )
            for pod in ctx.cluster.pods
            if pod.host_network
        ]


class PSSHostPIDOrIPCRule(_KubernetesRule):
    rule_id = ids.K8S_POD_HOST_PID_OR_IPC
    name = "Pod Shares Host PID or IPC Namespace"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        findings = []
        for pod in ctx.cluster.pods:
            shared = [name for name, on in (("hostPID", pod.host_pid), ("hostIPC", pod.host_ipc)) if on]
            if not shared:
                continue
            findings.append(self._pod_finding(
                ctx, pod,
                explanation=f"Pod {pod.name!r} shares host namespaces: {', '.join(shared)}.",
                recommendation="Disable hostPID and hostIPC unless explicitly required.",
                extra={"shared": shared},
            ))
        return findings


class PSSRunAsRootRule(_KubernetesRule):
    rule_id = ids.K8S_POD_RUN_AS_ROOT
    name = "Container May Run As Root"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        findings = []
        for pod, container in _containers(ctx.cluster):
            root_uid = container.run_as_user == 0
            if container.run_as_non_root and not root_uid:
                continue
            reason = "runAsUser is 0 (root UID)" if root_uid else "runAsNonRoot is not set or is false"
            findings.append(self._pod_finding(
                ctx, pod, container,
                explanation=f"Container {container.name!r} in pod {pod.name!r} may run as root: {reason}.",
                recommendation="Set runAsNonRoot: true and a non-zero runAsUser in the security context.",
                extra={"reason": reason},
            ))
        return findings


class PSSCapSysAdminRule(_KubernetesRule):
    rule_id = ids.K8S_POD_CAP_SYS_ADMIN
    name = "Container Adds CAP_SYS_ADMIN"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        return [
            self._pod_finding(
                ctx, pod, container,
                explanation=f"Container {container.name!r} in pod {pod.name!r} adds the SYS_ADMIN capability.",
                recommendation="Remove SYS_ADMIN from capabilities.add.",
            )
            for pod, container in _containers(ctx.cluster)
            if "SYS_ADMIN" in container.added_capabilities
        ]


class PodSecurityAdmissionNotEnforcedRule(_KubernetesRule):
    """Cluster-level: no namespace at all carries the PSA enforce label."""
    rule_id = ids.K8S_POD_SECURITY_ADMISSION_NOT_ENFORCED
    name = "Pod Security Admission Not Enforced"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        if any(config.PSA_ENFORCE_LABEL in ns.labels for ns in ctx.cluster.namespaces):
            return self._no_findings()
        context = ctx.cluster.context_name
        return [self._finding(
            ctx, context, context,
            resource_type=ResourceType.K8S_CLUSTER,
            explanation="No namespace enforces Pod Security Admission.",
            recommendation=f"Label workload namespaces with {config.PSA_ENFORCE_LABEL}: restricted (or baseline).",
        )]


# ---------------------------------------------------------------------------
# MEDIUM
# ---------------------------------------------------------------------------

class NamespaceWithoutLimitsRule(_KubernetesRule):
    rule_id = ids.K8S_NAMESPACE_WITHOUT_LIMITS
    name = "Namespace Without LimitRange"
    default_severity = Severity.MEDIUM

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        return [
            self._finding(
                ctx, ns.name, ctx.cluster.context_name,
                namespace=ns.name,
                resource_type=ResourceType.K8S_NAMESPACE,
                explanation=f"Namespace {ns.name!r} has no LimitRange; pods may consume unbounded CPU and memory.",
                recommendation=f"Add a LimitRange to namespace {ns.name!r} to set default limits.",
            )
            for ns in ctx.cluster.namespaces
            if not ns.has_limit_range
        ]


class PodNoResourceRequestsRule(_KubernetesRule):
    rule_id = ids.K8S_POD_NO_RESOURCE_REQUESTS
    name = "Container Without Resource Requests"
    default_severity = Severity.MEDIUM

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        findings = []
        for pod, container in _containers(ctx.cluster):
            missing = [
                name for name, present in (("cpu", container.has_cpu_request), ("memory", container.has_memory_request))
                if not present
            ]
            if not missing:
                continue
            findings.append(self._pod_finding(
                ctx, pod, container,
                explanation=(
                    f"Container {container.name!r} in pod {pod.name!r} has no "
                    f"{' or '.join(missing)} request."
                ),
                recommendation="Set CPU and memory requests so the scheduler can place the pod safely.",
                extra={"missing_requests": missing},
            ))
        return findings


class PSSNoSeccompRule(_KubernetesRule):
    rule_id = ids.K8S_POD_NO_SECCOMP
    name = "Container Without Seccomp Profile"
    default_severity = Severity.MEDIUM

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        return [
            self._pod_finding(
                ctx, pod, container,
                explanation=(
                    f"Container {container.name!r} in pod {pod.name!r} has no RuntimeDefault "
                    f"or Localhost seccomp profile."
                ),
                recommendation="Set seccompProfile.type: RuntimeDefault in the pod or container security context.",
                extra={"seccomp_profile_type": container.seccomp_profile_type},
            )
            for pod, container in _containers(ctx.cluster)
            if container.seccomp_profile_type not in config.CONFINED_SECCOMP_PROFILES
        ]


class NamespacePSSNotSetRule(_KubernetesRule):
    rule_id = ids.K8S_NAMESPACE_PSS_NOT_SET
    name = "Namespace Without Pod Security Standard"
    default_severity = Severity.MEDIUM

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        return [
            self._finding(
                ctx, ns.name, ctx.cluster.context_name,
                namespace=ns.name,
                resource_type=ResourceType.K8S_NAMESPACE,
                explanation=f"Namespace {ns.name!r} has no {config.PSA_ENFORCE_LABEL} label.",
                recommendation=f"Label namespace {ns.name!r} with a restricted or baseline enforce level.",
            )
            for ns in ctx.cluster.namespaces
            if config.PSA_ENFORCE_LABEL not in ns.labels
        ]


class ServiceAccountTokenAutomountRule(_KubernetesRule):
    """An unset automount flag defaults to mounting, so only an explicit False passes."""
    rule_id = ids.K8S_SERVICEACCOUNT_TOKEN_AUTOMOUNT
    name = "ServiceAccount Auto-Mounts API Token"
    default_severity = Severity.MEDIUM

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        return [
            self._finding(
                ctx, namespaced_id(sa.namespace, sa.name), ctx.cluster.context_name,
                namespace=sa.namespace,
                resource_type=ResourceType.K8S_SERVICEACCOUNT,
                explanation=f"ServiceAccount {sa.name!r} automatically mounts its API token into pods.",
                recommendation="Set automountServiceAccountToken: false and mount tokens only where needed.",
                extra={"service_account": sa.name},
            )
            for sa in ctx.cluster.service_accounts
            if sa.automount_token is not False
        ]


class DefaultServiceAccountUsedRule(_KubernetesRule):
    rule_id = ids.K8S_DEFAULT_SERVICEACCOUNT_USED
    name = "Pod Uses Default ServiceAccount"
    default_severity = Severity.MEDIUM

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.cluster is None:
            return self._no_findings()
        return [
            self._pod_finding(
                ctx, pod,
                explanation=f"Pod {pod.name!r} runs under the namespace's default ServiceAccount.",
                recommendation=f"Create a dedicated ServiceAccount for pod {pod.name!r} with only the permissions it needs.",
                extra={"service_account": "default"},
            )
            for pod in ctx.cluster.pods
            if pod.service_account_name in ("", "default")
        ]


def kubernetes_core_rules() -> list[BaseRule]:
    return [
        PrivilegedContainerRule(),
        PSSPrivilegedContainerRule(),
        ClusterSingleNodeRule(),
        NodeOverallocatedRule(),
        ServicePublicLoadBalancerRule(),
        PSSHostNetworkRule(),
        PSSHostPIDOrIPCRule(),
        PSSRunAsRootRule(),
        PSSCapSysAdminRule(),
        PodSecurityAdmissionNotEnforcedRule(),
        NamespaceWithoutLimitsRule(),
        PodNoResourceRequestsRule(),
        PSSNoSeccompRule(),
        NamespacePSSNotSetRule(),
        ServiceAccountTokenAutomountRule(),
        DefaultServiceAccountUsedRule(),
    ]
