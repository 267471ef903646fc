# src/governance_cli/adapters/aws/eks_collector.py
"""
boto3 EKS collector.

DescribeCluster is the only call that must succeed; OIDC provider lookup,
node-group details, node-role policies and launch-template metadata options
are best-effort and leave their field empty on failure.
"""

import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from governance_cli import config
from governance_cli.core.base_collector import EKSCollector
from governance_cli.core.exceptions import CollectionError
from governance_cli.core.inventory import EKSData, EKSNodeGroupData

logger = logging.getLogger(__name__)

_AWS_ERRORS = (ClientError, BotoCoreError)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def has_wildcard_action(document: dict) -> bool:
    """True when any Allow statement grants Action "*"."""
    for statement in _as_list(document.get("Statement")):
        if statement.get("Effect") != "Allow":
            continue
        if "*" in _as_list(statement.get("Action")):
            return True
    return False


def find_oidc_provider_arn(iam, issuer: str) -> str:
    if not issuer:
        return ""
    provider_url = issuer.removeprefix("https://")
    try:
        providers = iam.list_open_id_connect_providers().get("OpenIDConnectProviderList", [])
    except _AWS_ERRORS as e:
        logger.debug("list OIDC providers failed: %s", e)
        return ""
    for provider in providers:
        arn = provider.get("Arn", "")
        if arn.endswith("/" + provider_url):
            return arn
    return ""


def _role_name(role_arn: str) -> str:
    return role_arn.rsplit("/", 1)[-1]


def overpermissive_managed_policies(iam, role_name: str) -> list[str]:
    try:
        attached = iam.list_attached_role_policies(RoleName=role_name).get("AttachedPolicies", [])
    except _AWS_ERRORS as e:
        logger.debug("attached policies for role %s unavailable: %s", role_name, e)
        return []
    return [p["PolicyName"] for p in attached if p.get("PolicyName") in config.EKS_OVERPERMISSIVE_POLICIES]


def wildcard_inline_policies(iam, role_name: str) -> list[str]:
    try:
        names = iam.list_role_policies(RoleName=role_name).get("PolicyNames", [])
    except _AWS_ERRORS as e:
        logger.debug("inline policies for role %s unavailable: %s", role_name, e)
        return []

    wildcard = []
    for name in names:
        try:
            # boto3 returns the URL-decoded document already parsed into a dict.
            document = iam.get_role_policy(RoleName=role_name, PolicyName=name)["PolicyDocument"]
        except _AWS_ERRORS as e:
            logger.debug("inline policy %s on role %s unavailable: %s", name, role_name, e)
            continue
        if has_wildcard_action(document):
            wildcard.append(name)
    return wildcard


def launch_template_http_tokens(ec2, launch_template: Optional[dict]) -> str:
    """HttpTokens from the node group's launch template; "" when unknown or no template."""
    if not launch_template or not launch_template.get("id"):
        return ""
    kwargs = {"LaunchTemplateId": launch_template["id"]}
    if launch_template.get("version"):
        kwargs["Versions"] = [str(launch_template["version"])]
    try:
        versions = ec2.describe_launch_template_versions(**kwargs).get("LaunchTemplateVersions", [])
    except _AWS_ERRORS as e:
        logger.debug("launch template %s unavailable: %s", launch_template["id"], e)
        return ""
    if not versions:
        return ""
    return versions[0].get("LaunchTemplateData", {}).get("MetadataOptions", {}).get("HttpTokens", "")


class Boto3EKSCollector(EKSCollector):

    def __init__(self, profile_name: Optional[str] = None):
        self.profile_name = profile_name

    def collect_eks_data(self, cluster_name: str, region: str) -> EKSData:
        session = boto3.Session(profile_name=self.profile_name, region_name=region)
        eks = session.client("eks")
        try:
            cluster = eks.describe_cluster(name=cluster_name)["cluster"]
        except _AWS_ERRORS as e:
            raise CollectionError(f"describe EKS cluster {cluster_name!r}: {e}") from e
        return self._build(session, eks, cluster_name, region, cluster)

    def _build(self, session, eks, cluster_name: str, region: str, cluster: dict) -> EKSData:
        iam = session.client("iam")
        ec2 = session.client("ec2")
        vpc = cluster.get("resourcesVpcConfig", {})

        data = EKSData(
            cluster_name=cluster_name,
            region=region,
            control_plane_version=cluster.get("version", ""),
            endpoint_public_access=bool(vpc.get("endpointPublicAccess")),
            public_access_cidrs=list(vpc.get("publicAccessCidrs", [])),
            oidc_issuer=cluster.get("identity", {}).get("oidc", {}).get("issuer", ""),
        )

        for entry in cluster.get("encryptionConfig", []):
            key_arn = entry.get("provider", {}).get("keyArn")
            if key_arn and "secrets" in entry.get("resources", []):
                data.encryption_key_arn = key_arn
                break

        for setup in cluster.get("logging", {}).get("clusterLogging", []):
            if setup.get("enabled"):
                data.enabled_log_types.extend(setup.get("types", []))

        data.oidc_provider_arn = find_oidc_provider_arn(iam, data.oidc_issuer)

        seen_roles: set[str] = set()
        for ng_name in self._nodegroup_names(eks, cluster_name):
            try:
                ng = eks.describe_nodegroup(clusterName=cluster_name, nodegroupName=ng_name)["nodegroup"]
            except _AWS_ERRORS as e:
                logger.debug("describe node group %s failed: %s", ng_name, e)
                continue

            data.node_groups.append(EKSNodeGroupData(
                name=ng_name,
                version=ng.get("version", ""),
                http_tokens=launch_template_http_tokens(ec2, ng.get("launchTemplate")),
            ))

            role_name = _role_name(ng.get("nodeRole", ""))
            if not role_name or role_name in seen_roles:
                continue
            seen_roles.add(role_name)
            data.node_role_overpermissive_policies.extend(overpermissive_managed_policies(iam, role_name))
            data.node_role_wildcard_policies.extend(wildcard_inline_policies(iam, role_name))

        logger.info(
            "EKS cluster %s (%s): version=%s public=%s node_groups=%d",
            cluster_name, region, data.control_plane_version, data.endpoint_public_access, len(data.node_groups),
        )
        return data

    @staticmethod
    def _nodegroup_names(eks, cluster_name: str) -> list[str]:
        names = []
        try:
            for page in eks.get_paginator("list_nodegroups").paginate(clusterName=cluster_name):
                names.extend(page.get("nodegroups", []))
        except _AWS_ERRORS as e:
            logger.warning("node groups for EKS cluster %s unavailable: %s", cluster_name, e)
        return names
