# src/governance_cli/core/base_collector.py
"""
Abstract collector interfaces.

Engines depend only on these interfaces; the boto3 and kubernetes
implementations live under adapters/.

┌──────────────────────────────────────────────────────────────┐
│                    CLI (governance_cli.cli)                  │
└───────────────────────────────┬──────────────────────────────┘
                                │  builds
                                ▼
                   ┌─────────────────────────┐
                   │  engines/ (orchestrate) │
                   └─────────────────────────┘
                      │ uses              │ uses
                      ▼                   ▼
        ┌───────────────────────┐   ┌──────────────────────┐
        │ AWSClientProvider     │   │ ClusterCollector     │
        │ CostCollector         │   │ EKSCollector         │
        │ SecurityCollector     │   │                      │
        └───────────────────────┘   └──────────────────────┘
                      ▲                   ▲
           implements │                   │ implements
        ┌───────────────────────┐   ┌──────────────────────┐
        │ adapters/aws/*        │   │ adapters/kubernetes/ │
        │ (boto3)               │   │ adapters/aws/eks_*   │
        └───────────────────────┘   └──────────────────────┘

Collectors translate SDK responses into core.inventory dataclasses. They
raise the typed errors from core.exceptions for failures that should stop an
audit (profile cannot be loaded, cluster unreachable) and log-and-continue
for per-service permission problems.

Tests implement these interfaces with small in-memory fakes.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from governance_cli.core.exceptions import AuditCancelledError
from governance_cli.core.inventory import ClusterData, EKSData, RegionData, SecurityData
from governance_cli.core.models import CostSummary


@dataclass
class AWSProfile:
    """A resolved AWS profile. `session` is the boto3 Session in production, anything in tests."""
    name: str
    account_id: str = ""
    region: str = ""
    session: Any = None


@dataclass
class CostCollection:
    regions: list[RegionData] = field(default_factory=list)
    cost_summary: Optional[CostSummary] = None


def raise_if_cancelled(cancelled: Optional[threading.Event], profile: AWSProfile, region: str) -> None:
    """Region-boundary check used by collectors that fan out over regions."""
    if cancelled is not None and cancelled.is_set():
        raise AuditCancelledError(f"profile {profile.name!r}: cancelled before region {region}")


# ---------------------------------------------------------------------------
# AWS
# ---------------------------------------------------------------------------

class AWSClientProvider(ABC):
    """Credential and region management for every AWS collector."""

    @abstractmethod
    def load_profile(self, name: str) -> AWSProfile:
        """
        Resolve one named profile ("" means the default credential chain).

        Raises:
            ProfileLoadError: credentials are missing or the identity call fails.
        """
        ...

    @abstractmethod
    def load_all_profiles(self) -> list[AWSProfile]:
        """Every profile in ~/.aws/config and ~/.aws/credentials that resolves."""
        ...

    @abstractmethod
    def get_active_regions(self, profile: AWSProfile) -> list[str]:
        """Regions enabled for the profile's account."""
        ...


class CostCollector(ABC):

    @abstractmethod
    def collect_all(
        self,
        profile: AWSProfile,
        regions: list[str],
        days_back: int,
        cancelled: Optional[threading.Event] = None,
    ) -> CostCollection:
        """
        Per-region resource inventory plus the account-level Cost Explorer summary.
        Once `cancelled` is set no further region is started.

        Raises:
            CollectionError: the collection cannot produce any usable data.
            AuditCancelledError: `cancelled` was set mid-collection.
        """
        ...


class SecurityCollector(ABC):

    @abstractmethod
    def collect_all(
        self,
        profile: AWSProfile,
        regions: list[str],
        cancelled: Optional[threading.Event] = None,
    ) -> SecurityData:
        """
        Account-level posture (S3, IAM, root) plus security groups in `regions`.
        Once `cancelled` is set no further region is started.
        """
        ...


# ---------------------------------------------------------------------------
# Kubernetes
# ---------------------------------------------------------------------------

class ClusterCollector(ABC):

    @abstractmethod
    def collect(self, context_name: str) -> ClusterData:
        """
        Connect to the cluster behind a kubeconfig context and snapshot it.
        An empty context name means the current context.

        Raises:
            ClusterConnectionError: kubeconfig or API server unreachable.
            CollectionError: a list call failed after connecting.
        """
        ...

    def resolve_context(self, context_name: str) -> str:
        """
        The context name an audit of `context_name` would use, without
        calling the API server. Raises ClusterConnectionError for kubeconfig
        problems.
        """
        return context_name

    def ping(self, context_name: str) -> None:
        """Cheapest call proving the API server answers. Raises like collect()."""
        self.collect(context_name)


class EKSCollector(ABC):

    @abstractmethod
    def collect_eks_data(self, cluster_name: str, region: str) -> EKSData:
        """
        Control-plane and node-group data from the EKS API.

        Any exception is treated as non-fatal by the Kubernetes engine: the
        audit continues without EKS data.
        """
        ...
