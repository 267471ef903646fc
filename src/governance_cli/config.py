# src/governance_cli/config.py
"""
Central configuration for Governance CLI.
All environment variables, thresholds, and constants live here.
"""

import os
from dotenv import load_dotenv

load_dotenv()


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("GOVERNANCE_LOG_LEVEL", "WARNING").upper()
DEFAULT_REGION: str = os.getenv("GOVERNANCE_DEFAULT_REGION", "us-east-1")
POLICY_FILE: str = os.getenv("GOVERNANCE_POLICY_FILE", "dp.yaml")

# ---------------------------------------------------------------------------
# Multi-profile orchestration
# The cap is fixed per process, independent of how many profiles exist.
# ---------------------------------------------------------------------------
MAX_CONCURRENT_PROFILES: int = int(os.getenv("GOVERNANCE_MAX_CONCURRENT_PROFILES", "3"))
DEFAULT_DAYS_BACK: int = int(os.getenv("GOVERNANCE_DEFAULT_DAYS_BACK", "30"))

# Data-protection audits only need current resource state, not utilisation.
DATAPROTECTION_DAYS_BACK: int = 1

# ---------------------------------------------------------------------------
# Severity display order (highest first)
# ---------------------------------------------------------------------------
SEVERITY_DISPLAY_ORDER: list[str] = ["CRITICAL", "HIGH", "MEDIUM", "LOW", "INFO"]

# ---------------------------------------------------------------------------
# Cost rule defaults
# Each can be overridden per rule through the policy file `params` block.
# ---------------------------------------------------------------------------
EC2_LOW_CPU_THRESHOLD: float = 10.0
EC2_LOW_CPU_SAVINGS_FRACTION: float = 0.30

RDS_LOW_CPU_THRESHOLD: float = 10.0
RDS_LOW_CPU_HIGH_THRESHOLD: float = 5.0
RDS_LOW_CPU_SAVINGS_FRACTION: float = 0.30

NAT_LOW_TRAFFIC_THRESHOLD_GB: float = 1.0
NAT_GATEWAY_MONTHLY_COST: float = 32.85

SAVINGS_PLAN_COVERAGE_THRESHOLD: float = 60.0
SAVINGS_PLAN_COVERAGE_HIGH_THRESHOLD: float = 40.0
SAVINGS_PLAN_SAVINGS_FRACTION: float = 0.10

# Regions with less On-Demand spend than this are not worth a Savings Plan finding.
SAVINGS_PLAN_MIN_ON_DEMAND_USD: float = 10.0

# ---------------------------------------------------------------------------
# EBS Fallback Prices (per GB / month, in USD)
# ---------------------------------------------------------------------------
EBS_FALLBACK_PRICES: dict[str, float] = {
    "gp2": 0.10,
    "gp3": 0.08,
    "io1": 0.125,
    "io2": 0.125,
    "st1": 0.045,
    "sc1": 0.025,
    "standard": 0.05,
}

# ---------------------------------------------------------------------------
# Kubernetes
# ---------------------------------------------------------------------------
SYSTEM_NAMESPACES: frozenset[str] = frozenset({
    "kube-system",
    "kube-public",
    "kube-node-lease",
})

NODE_OVERALLOCATED_THRESHOLD_PERCENT: float = 20.0

PSA_ENFORCE_LABEL: str = "pod-security.kubernetes.io/enforce"
IRSA_ROLE_ANNOTATION: str = "eks.amazonaws.com/role-arn"

# Provider ID prefix on node.spec.providerID -> cluster provider
PROVIDER_ID_PREFIXES: dict[str, str] = {
    "aws://": "eks",
    "gce://": "gke",
    "azure://": "aks",
}

# Node label presence -> cluster provider
PROVIDER_NODE_LABELS: dict[str, str] = {
    "eks.amazonaws.com/nodegroup": "eks",
    "cloud.google.com/gke-nodepool": "gke",
    "kubernetes.azure.com/cluster": "aks",
}

EKS_CLUSTER_NAME_LABEL: str = "eks.amazonaws.com/cluster-name"
TOPOLOGY_REGION_LABEL: str = "topology.kubernetes.io/region"

# Control-plane log types that must all be enabled on an EKS cluster.
EKS_REQUIRED_LOG_TYPES: list[str] = ["api", "audit", "authenticator"]

# Managed policies considered overpermissive when attached to a node role.
EKS_OVERPERMISSIVE_POLICIES: list[str] = [
    "AdministratorAccess",
    "PowerUserAccess",
    "IAMFullAccess",
]

# Service annotations that keep a LoadBalancer Service off the public internet.
INTERNAL_LB_ANNOTATIONS: dict[str, str] = {
    "service.beta.kubernetes.io/aws-load-balancer-internal": "true",
    "service.beta.kubernetes.io/aws-load-balancer-scheme": "internal",
    "networking.gke.io/load-balancer-type": "internal",
    "service.beta.kubernetes.io/azure-load-balancer-internal": "true",
}

# Seccomp profile types that count as confined.
CONFINED_SECCOMP_PROFILES: frozenset[str] = frozenset({"RuntimeDefault", "Localhost"})
