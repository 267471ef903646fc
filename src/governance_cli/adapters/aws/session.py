# src/governance_cli/adapters/aws/session.py
"""
boto3 implementation of AWSClientProvider.

Each AWSProfile carries its own boto3.Session so collectors never touch the
process-wide default session; that keeps concurrent profile audits isolated.
"""

import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, ProfileNotFound

from governance_cli import config
from governance_cli.core.base_collector import AWSClientProvider, AWSProfile
from governance_cli.core.exceptions import CollectionError, ProfileLoadError

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_NAME = "default"

# Regions the account can actually use.
_ACTIVE_OPT_IN_STATUSES = ["opt-in-not-required", "opted-in"]


def client_for(profile: AWSProfile, service: str, region: Optional[str] = None):
    """A boto3 client bound to the profile's session, falling back to the default session in tests."""
    session = profile.session or boto3.Session()
    return session.client(service, region_name=region or profile.region or config.DEFAULT_REGION)


class Boto3ClientProvider(AWSClientProvider):

    def load_profile(self, name: str) -> AWSProfile:
        display = name or DEFAULT_PROFILE_NAME
        try:
            session = boto3.Session(profile_name=name or None)
            region = session.region_name or config.DEFAULT_REGION
            identity = session.client("sts", region_name=region).get_caller_identity()
        except ProfileNotFound as e:
            raise ProfileLoadError(f"profile {display!r} not found in AWS config") from e
        except NoCredentialsError as e:
            raise ProfileLoadError(f"no credentials for profile {display!r}") from e
        except ClientError as e:
            code = e.response["Error"]["Code"]
            raise ProfileLoadError(f"resolve account ID for profile {display!r}: {code}") from e
        except BotoCoreError as e:
            raise ProfileLoadError(f"load profile {display!r}: {e}") from e

        logger.debug("loaded profile %s (account %s, region %s)", display, identity["Account"], region)
        return AWSProfile(name=display, account_id=identity["Account"], region=region, session=session)

    def load_all_profiles(self) -> list[AWSProfile]:
        """Profiles that fail to load are skipped so one bad profile does not block the rest."""
        names = boto3.Session().available_profiles
        profiles = []
        for name in names:
            try:
                profiles.append(self.load_profile("" if name == DEFAULT_PROFILE_NAME else name))
            except ProfileLoadError as e:
                logger.warning("skipping AWS profile %s: %s", name, e)
        return profiles

    def get_active_regions(self, profile: AWSProfile) -> list[str]:
        ec2 = client_for(profile, "ec2")
        try:
            response = ec2.describe_regions(
                Filters=[{"Name": "opt-in-status", "Values": _ACTIVE_OPT_IN_STATUSES}],
            )
        except (ClientError, BotoCoreError) as e:
            raise CollectionError(f"describe regions for profile {profile.name!r}: {e}") from e
        return sorted(r["RegionName"] for r in response.get("Regions", []))
