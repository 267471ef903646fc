# src/governance_cli/core/inventory.py
"""
Provider-neutral inventory snapshots.

Collectors in adapters/ translate SDK responses into these dataclasses; rules
only ever see these types, never boto3 or kubernetes client objects.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


# ---------------------------------------------------------------------------
# AWS: cost-relevant resources (one RegionData per audited region)
# ---------------------------------------------------------------------------

@dataclass
class EC2Instance:
    instance_id: str
    region: str
    instance_type: str = ""
    state: str = ""
    launch_time: Optional[datetime] = None
    avg_cpu_percent: float = 0.0
    monthly_cost_usd: float = 0.0
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class EBSVolume:
    volume_id: str
    region: str
    volume_type: str = ""
    size_gb: int = 0
    state: str = ""
    attached: bool = False
    encrypted: bool = False
    instance_id: str = ""
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class NATGateway:
    nat_gateway_id: str
    region: str
    state: str = ""
    vpc_id: str = ""
    subnet_id: str = ""
    bytes_processed_gb: float = 0.0
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class RDSInstance:
    db_instance_id: str
    region: str
    db_instance_class: str = ""
    engine: str = ""
    multi_az: bool = False
    status: str = ""
    storage_encrypted: bool = False
    avg_cpu_percent: float = 0.0
    monthly_cost_usd: float = 0.0
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class LoadBalancer:
    load_balancer_arn: str
    load_balancer_name: str
    region: str
    type: str = ""  # application | network | classic
    state: str = ""
    request_count: int = 0
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class SavingsPlanCoverage:
    region: str
    coverage_percent: float = 0.0
    on_demand_cost_usd: float = 0.0
    covered_cost_usd: float = 0.0


@dataclass
class RegionData:
    region: str
    ec2_instances: list[EC2Instance] = field(default_factory=list)
    ebs_volumes: list[EBSVolume] = field(default_factory=list)
    nat_gateways: list[NATGateway] = field(default_factory=list)
    rds_instances: list[RDSInstance] = field(default_factory=list)
    load_balancers: list[LoadBalancer] = field(default_factory=list)
    savings_plan_coverage: list[SavingsPlanCoverage] = field(default_factory=list)


# ---------------------------------------------------------------------------
# AWS: security posture (account-level, security groups carry their region)
# ---------------------------------------------------------------------------

@dataclass
class S3Bucket:
    name: str
    public: bool = False
    default_encryption_enabled: bool = False


@dataclass
class SecurityGroupRule:
    group_id: str
    port: int
    cidr: str
    region: str


@dataclass
class IAMUser:
    user_name: str
    mfa_enabled: bool = False
    has_login_profile: bool = False


@dataclass
class RootAccountInfo:
    has_access_keys: bool = False


@dataclass
class SecurityData:
    buckets: list[S3Bucket] = field(default_factory=list)
    security_group_rules: list[SecurityGroupRule] = field(default_factory=list)
    iam_users: list[IAMUser] = field(default_factory=list)
    root: RootAccountInfo = field(default_factory=RootAccountInfo)


# ---------------------------------------------------------------------------
# Kubernetes
# ---------------------------------------------------------------------------

@dataclass
class NodeData:
    name: str
    cpu_capacity_millis: int = 0
    allocatable_cpu_millis: int = 0
    provider_id: str = ""
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class NamespaceData:
    name: str
    has_limit_range: bool = False
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class ContainerData:
    name: str
    privileged: bool = False
    has_cpu_request: bool = False
    has_memory_request: bool = False
    run_as_non_root: Optional[bool] = None
    run_as_user: Optional[int] = None
    added_capabilities: list[str] = field(default_factory=list)
    seccomp_profile_type: str = ""


@dataclass
class PodData:
    name: str
    namespace: str
    host_network: bool = False
    host_pid: bool = False
    host_ipc: bool = False
    service_account_name: str = ""
    containers: list[ContainerData] = field(default_factory=list)


@dataclass
class ServiceData:
    name: str
    namespace: str
    type: str = "ClusterIP"
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class ServiceAccountData:
    name: str
    namespace: str
    automount_token: Optional[bool] = None
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class EKSNodeGroupData:
    name: str
    version: str = ""
    http_tokens: str = ""  # "required" enforces IMDSv2


@dataclass
class EKSData:
    cluster_name: str
    region: str
    control_plane_version: str = ""
    endpoint_public_access: bool = False
    public_access_cidrs: list[str] = field(default_factory=list)
    encryption_key_arn: str = ""
    enabled_log_types: list[str] = field(default_factory=list)
    oidc_issuer: str = ""
    oidc_provider_arn: str = ""
    node_role_overpermissive_policies: list[str] = field(default_factory=list)
    node_role_wildcard_policies: list[str] = field(default_factory=list)
    node_groups: list[EKSNodeGroupData] = field(default_factory=list)


@dataclass
class ClusterData:
    context_name: str
    server: str = ""
    cluster_provider: str = "unknown"
    nodes: list[NodeData] = field(default_factory=list)
    namespaces: list[NamespaceData] = field(default_factory=list)
    pods: list[PodData] = field(default_factory=list)
    services: list[ServiceData] = field(default_factory=list)
    service_accounts: list[ServiceAccountData] = field(default_factory=list)
    eks: Optional[EKSData] = None

    @property
    def node_count(self) -> int:
        return len(self.nodes)
