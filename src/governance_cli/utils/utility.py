# src/governance_cli/utils/utility.py
import hashlib
import time


def generate_finding_id(rule_id: str, resource_id: str, region: str) -> str:
    """Stable 16-hex-char ID: the same rule on the same resource always gets the same ID."""
    key = "|".join((rule_id, resource_id, region))
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def generate_report_id(prefix: str) -> str:
    # e.g. "audit-1718000000000000000"
    return f"{prefix}-{time.time_ns()}"
