# src/governance_cli/core/rules/ids.py
"""Rule identifiers referenced outside their own rule pack (correlation, attack paths, tests)."""

# ---------------------------------------------------------------------------
# Kubernetes core
# ---------------------------------------------------------------------------
K8S_PRIVILEGED_CONTAINER = "K8S_PRIVILEGED_CONTAINER"
K8S_POD_PRIVILEGED_CONTAINER = "K8S_POD_PRIVILEGED_CONTAINER"
K8S_CLUSTER_SINGLE_NODE = "K8S_CLUSTER_SINGLE_NODE"
K8S_NODE_OVERALLOCATED = "K8S_NODE_OVERALLOCATED"
K8S_SERVICE_PUBLIC_LOADBALANCER = "K8S_SERVICE_PUBLIC_LOADBALANCER"
K8S_POD_HOST_NETWORK = "K8S_POD_HOST_NETWORK"
K8S_POD_HOST_PID_OR_IPC = "K8S_POD_HOST_PID_OR_IPC"
K8S_POD_RUN_AS_ROOT = "K8S_POD_RUN_AS_ROOT"
K8S_POD_CAP_SYS_ADMIN = "K8S_POD_CAP_SYS_ADMIN"
K8S_POD_SECURITY_ADMISSION_NOT_ENFORCED = "K8S_POD_SECURITY_ADMISSION_NOT_ENFORCED"
K8S_NAMESPACE_WITHOUT_LIMITS = "K8S_NAMESPACE_WITHOUT_LIMITS"
K8S_POD_NO_RESOURCE_REQUESTS = "K8S_POD_NO_RESOURCE_REQUESTS"
K8S_POD_NO_SECCOMP = "K8S_POD_NO_SECCOMP"
K8S_NAMESPACE_PSS_NOT_SET = "K8S_NAMESPACE_PSS_NOT_SET"
K8S_SERVICEACCOUNT_TOKEN_AUTOMOUNT = "K8S_SERVICEACCOUNT_TOKEN_AUTOMOUNT"
K8S_DEFAULT_SERVICEACCOUNT_USED = "K8S_DEFAULT_SERVICEACCOUNT_USED"

# ---------------------------------------------------------------------------
# EKS
# ---------------------------------------------------------------------------
EKS_PUBLIC_ENDPOINT_ENABLED = "EKS_PUBLIC_ENDPOINT_ENABLED"
EKS_ENCRYPTION_DISABLED = "EKS_ENCRYPTION_DISABLED"
EKS_CONTROL_PLANE_LOGGING_DISABLED = "EKS_CONTROL_PLANE_LOGGING_DISABLED"
EKS_OIDC_PROVIDER_NOT_ASSOCIATED = "EKS_OIDC_PROVIDER_NOT_ASSOCIATED"
EKS_SERVICEACCOUNT_NO_IRSA = "EKS_SERVICEACCOUNT_NO_IRSA"
EKS_NODE_ROLE_OVERPERMISSIVE = "EKS_NODE_ROLE_OVERPERMISSIVE"
EKS_IAM_WILDCARD_POLICY = "EKS_IAM_WILDCARD_POLICY"
EKS_NODEGROUP_IMDSV2_NOT_ENFORCED = "EKS_NODEGROUP_IMDSV2_NOT_ENFORCED"

# ---------------------------------------------------------------------------
# AWS
# ---------------------------------------------------------------------------
EC2_LOW_CPU = "EC2_LOW_CPU"
RDS_LOW_CPU = "RDS_LOW_CPU"
EBS_UNATTACHED = "EBS_UNATTACHED"
EBS_GP2_LEGACY = "EBS_GP2_LEGACY"
NAT_LOW_TRAFFIC = "NAT_LOW_TRAFFIC"
SAVINGS_PLAN_UNDERUTILIZED = "SAVINGS_PLAN_UNDERUTILIZED"

ROOT_ACCESS_KEY = "ROOT_ACCESS_KEY"
S3_PUBLIC_BUCKET = "S3_PUBLIC_BUCKET"
SG_OPEN_SSH = "SG_OPEN_SSH"
IAM_USER_NO_MFA = "IAM_USER_NO_MFA"

RDS_UNENCRYPTED = "RDS_UNENCRYPTED"
EBS_UNENCRYPTED = "EBS_UNENCRYPTED"
S3_DEFAULT_ENCRYPTION_MISSING = "S3_DEFAULT_ENCRYPTION_MISSING"
