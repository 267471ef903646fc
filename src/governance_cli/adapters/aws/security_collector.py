# src/governance_cli/adapters/aws/security_collector.py
"""
boto3 security collector: S3 bucket posture, security group ingress, IAM
console users and root account keys.

IAM and S3 are global; only security groups are collected per region.
Per-bucket and per-user lookups that fail are logged at debug level and the
resource gets the conservative value for the failing attribute. A listing
that is denied is skipped with a warning; any other listing failure raises
CollectionError and fails the profile.
"""

import logging
import threading
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from governance_cli.adapters.aws.session import client_for
from governance_cli.core.base_collector import AWSProfile, SecurityCollector, raise_if_cancelled
from governance_cli.core.exceptions import CollectionError
from governance_cli.core.inventory import IAMUser, RootAccountInfo, S3Bucket, SecurityData, SecurityGroupRule

logger = logging.getLogger(__name__)

REMOTE_ADMIN_PORTS = (22, 3389)

_PUBLIC_ACCESS_BLOCK_SETTINGS = (
    "BlockPublicAcls",
    "IgnorePublicAcls",
    "BlockPublicPolicy",
    "RestrictPublicBuckets",
)


def _error_code(e: ClientError) -> str:
    return e.response["Error"]["Code"]


# ---------------------------------------------------------------------------
# S3
# ---------------------------------------------------------------------------

def bucket_is_public(s3, name: str) -> bool:
    """A bucket counts as public unless all four Block Public Access settings are on."""
    try:
        response = s3.get_public_access_block(Bucket=name)
    except ClientError as e:
        if _error_code(e) != "NoSuchPublicAccessBlockConfiguration":
            logger.debug("public access block for %s unavailable: %s", name, e)
        return True
    settings = response.get("PublicAccessBlockConfiguration", {})
    return not all(settings.get(key) for key in _PUBLIC_ACCESS_BLOCK_SETTINGS)


def bucket_has_default_encryption(s3, name: str) -> bool:
    try:
        response = s3.get_bucket_encryption(Bucket=name)
    except ClientError as e:
        if _error_code(e) != "ServerSideEncryptionConfigurationNotFoundError":
            logger.debug("bucket encryption for %s unavailable: %s", name, e)
        return False
    return bool(response.get("ServerSideEncryptionConfiguration", {}).get("Rules"))


def collect_s3_buckets(s3) -> list[S3Bucket]:
    response = s3.list_buckets()
    return [
        S3Bucket(
            name=b["Name"],
            public=bucket_is_public(s3, b["Name"]),
            default_encryption_enabled=bucket_has_default_encryption(s3, b["Name"]),
        )
        for b in response.get("Buckets", [])
    ]


# ---------------------------------------------------------------------------
# EC2 security groups
# ---------------------------------------------------------------------------

def _admin_ports_covered(permission: dict) -> list[int]:
    if permission.get("IpProtocol") == "-1":
        return list(REMOTE_ADMIN_PORTS)
    from_port = permission.get("FromPort")
    to_port = permission.get("ToPort", from_port)
    if from_port is None:
        return []
    return [p for p in REMOTE_ADMIN_PORTS if from_port <= p <= to_port]


def collect_security_group_rules(ec2, region: str) -> list[SecurityGroupRule]:
    """One row per (group, remote-admin port, source CIDR) that the ingress rules allow."""
    rules = []
    for page in ec2.get_paginator("describe_security_groups").paginate():
        for sg in page.get("SecurityGroups", []):
            for perm in sg.get("IpPermissions", []):
                ports = _admin_ports_covered(perm)
                if not ports:
                    continue
                cidrs = [r["CidrIp"] for r in perm.get("IpRanges", []) if "CidrIp" in r]
                cidrs += [r["CidrIpv6"] for r in perm.get("Ipv6Ranges", []) if "CidrIpv6" in r]
                for port in ports:
                    for cidr in cidrs:
                        rules.append(SecurityGroupRule(group_id=sg["GroupId"], port=port, cidr=cidr, region=region))
    return rules


# ---------------------------------------------------------------------------
# IAM
# ---------------------------------------------------------------------------

def _has_login_profile(iam, user_name: str) -> bool:
    try:
        iam.get_login_profile(UserName=user_name)
        return True
    except ClientError as e:
        if _error_code(e) != "NoSuchEntity":
            logger.debug("login profile for %s unavailable: %s", user_name, e)
        return False


def _has_mfa(iam, user_name: str) -> bool:
    try:
        return bool(iam.list_mfa_devices(UserName=user_name).get("MFADevices"))
    except ClientError as e:
        logger.debug("MFA devices for %s unavailable: %s", user_name, e)
        return False


def collect_iam_users(iam) -> list[IAMUser]:
    users = []
    for page in iam.get_paginator("list_users").paginate():
        for user in page.get("Users", []):
            name = user["UserName"]
            users.append(IAMUser(
                user_name=name,
                mfa_enabled=_has_mfa(iam, name),
                has_login_profile=_has_login_profile(iam, name),
            ))
    return users


def collect_root_account_info(iam) -> RootAccountInfo:
    summary = iam.get_account_summary().get("SummaryMap", {})
    return RootAccountInfo(has_access_keys=summary.get("AccountAccessKeysPresent", 0) > 0)


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------

class Boto3SecurityCollector(SecurityCollector):

    def collect_all(
        self,
        profile: AWSProfile,
        regions: list[str],
        cancelled: Optional[threading.Event] = None,
    ) -> SecurityData:
        s3 = client_for(profile, "s3")
        iam = client_for(profile, "iam")
        data = SecurityData()

        data.buckets = self._guarded("S3 buckets", "global", lambda: collect_s3_buckets(s3), [])
        data.iam_users = self._guarded("IAM users", "global", lambda: collect_iam_users(iam), [])
        data.root = self._guarded(
            "root account summary", "global", lambda: collect_root_account_info(iam), RootAccountInfo(),
        )
        for region in regions:
            raise_if_cancelled(cancelled, profile, region)
            ec2 = client_for(profile, "ec2", region)
            data.security_group_rules.extend(self._guarded(
                "security groups", region, lambda: collect_security_group_rules(ec2, region), [],
            ))

        logger.info(
            "profile %s: %d buckets, %d IAM users, %d open admin ingress rules",
            profile.name, len(data.buckets), len(data.iam_users), len(data.security_group_rules),
        )
        return data

    @staticmethod
    def _guarded(label: str, region: str, fetch, denied_default):
        try:
            return fetch()
        except ClientError as e:
            code = _error_code(e)
            if code in ("AccessDenied", "AccessDeniedException", "UnauthorizedOperation"):
                logger.warning("%s check skipped in %s: missing permission (%s)", label, region, code)
                return denied_default
            raise CollectionError(f"collect {label} in {region}: {e}") from e
        except BotoCoreError as e:
            raise CollectionError(f"collect {label} in {region}: {e}") from e
