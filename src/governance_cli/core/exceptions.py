# src/governance_cli/core/exceptions.py
"""
Exception hierarchy.

Everything the CLI is expected to report cleanly derives from GovernanceError.
Orchestrators wrap lower-level failures with `raise ... from err` so the
message names the profile, cluster or domain that failed.
"""


class GovernanceError(Exception):
    """Base class for all expected failures."""


class ProfileLoadError(GovernanceError):
    """An AWS profile could not be loaded or its identity resolved."""


class CollectionError(GovernanceError):
    """Inventory collection failed for a profile, region or cluster."""


class ClusterConnectionError(GovernanceError):
    """The Kubernetes API server could not be reached for the chosen context."""


class AuditError(GovernanceError):
    """An orchestrator could not produce a report."""


class PolicyError(GovernanceError):
    """A policy file could not be loaded or declares an unsupported version."""


class PolicyValidationError(GovernanceError):
    """A single problem found while validating a policy. Validators return a list of these."""


class AuditCancelledError(GovernanceError):
    """A multi-profile audit was cancelled while this profile was still collecting."""
