# src/governance_cli/adapters/aws/cost_collector.py
"""
boto3 cost collector.

Per region: EC2 instances (+ CloudWatch CPU), EBS volumes, NAT gateways
(+ BytesOutToDestination), RDS instances (+ CPU) and ELBv2 load balancers
(+ ALB RequestCount). Per account: Cost Explorer spend by service, per-instance
EC2/RDS spend and Savings Plans coverage by region.

Failure handling:
  - A resource listing that fails with anything but AccessDenied fails the
    region, and the region failure fails the profile (CollectionError).
  - AccessDenied on a listing is logged and the resource type is left empty.
  - CloudWatch and Cost Explorer are enrichment only: any failure leaves the
    metric at 0, which rules read as "no data", not "idle".
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from governance_cli import config
from governance_cli.adapters.aws.session import client_for
from governance_cli.core.base_collector import AWSProfile, CostCollection, CostCollector, raise_if_cancelled
from governance_cli.core.exceptions import CollectionError
from governance_cli.core.inventory import (
    EBSVolume,
    EC2Instance,
    LoadBalancer,
    NATGateway,
    RDSInstance,
    RegionData,
    SavingsPlanCoverage,
)
from governance_cli.core.models import CostSummary, ServiceCost

logger = logging.getLogger(__name__)

# Cost Explorer is a global API served from us-east-1.
COST_EXPLORER_REGION = "us-east-1"
MAX_CONCURRENT_REGIONS = 5
_DAY_SECONDS = 86400


def _tags(raw: Optional[list]) -> dict[str, str]:
    return {t["Key"]: t["Value"] for t in raw or [] if "Key" in t and "Value" in t}


def _effective_days(days_back: int) -> int:
    return days_back if days_back > 0 else config.DEFAULT_DAYS_BACK


def billing_date_range(days_back: int, now: Optional[datetime] = None) -> tuple[str, str]:
    """(start, end) as YYYY-MM-DD strings, end exclusive as Cost Explorer expects."""
    end = (now or datetime.now(timezone.utc)).date()
    start = end - timedelta(days=_effective_days(days_back))
    return start.isoformat(), end.isoformat()


def _listing_denied(e: ClientError, what: str, region: str) -> bool:
    """True (and logged) when the error is a permission gap we tolerate."""
    code = e.response["Error"]["Code"]
    if code in ("AccessDenied", "AccessDeniedException", "UnauthorizedOperation"):
        logger.warning("%s skipped in %s: missing permission (%s)", what, region, code)
        return True
    return False


# ---------------------------------------------------------------------------
# CloudWatch
# ---------------------------------------------------------------------------

def _metric_datapoints(cw, namespace: str, metric: str, dimension: tuple[str, str],
                       statistic: str, start: datetime, end: datetime) -> list[float]:
    try:
        response = cw.get_metric_statistics(
            Namespace=namespace,
            MetricName=metric,
            Dimensions=[{"Name": dimension[0], "Value": dimension[1]}],
            StartTime=start,
            EndTime=end,
            Period=_DAY_SECONDS,
            Statistics=[statistic],
        )
    except (ClientError, BotoCoreError) as e:
        logger.debug("CloudWatch %s/%s for %s unavailable: %s", namespace, metric, dimension[1], e)
        return []
    return [dp[statistic] for dp in response.get("Datapoints", []) if statistic in dp]


def average_metric(cw, namespace: str, metric: str, dimension: tuple[str, str],
                   start: datetime, end: datetime) -> float:
    points = _metric_datapoints(cw, namespace, metric, dimension, "Average", start, end)
    return sum(points) / len(points) if points else 0.0


def sum_metric(cw, namespace: str, metric: str, dimension: tuple[str, str],
               start: datetime, end: datetime) -> float:
    return sum(_metric_datapoints(cw, namespace, metric, dimension, "Sum", start, end))


# ---------------------------------------------------------------------------
# Cost Explorer
# ---------------------------------------------------------------------------

def _paged_cost_and_usage(ce, **kwargs):
    token = None
    while True:
        if token:
            kwargs["NextPageToken"] = token
        response = ce.get_cost_and_usage(**kwargs)
        for result in response.get("ResultsByTime", []):
            yield from result.get("Groups", [])
        token = response.get("NextPageToken")
        if not token:
            return


def _group_totals(groups) -> dict[str, float]:
    totals: dict[str, float] = {}
    for group in groups:
        keys = group.get("Keys") or []
        metric = group.get("Metrics", {}).get("UnblendedCost")
        if not keys or metric is None:
            continue
        totals[keys[0]] = totals.get(keys[0], 0.0) + float(metric.get("Amount") or 0)
    return totals


def collect_cost_summary(ce, start: str, end: str) -> CostSummary:
    """Spend grouped by SERVICE. Zero-cost services are dropped; breakdown is most expensive first."""
    totals = _group_totals(_paged_cost_and_usage(
        ce,
        TimePeriod={"Start": start, "End": end},
        Granularity="MONTHLY",
        Metrics=["UnblendedCost"],
        GroupBy=[{"Type": "DIMENSION", "Key": "SERVICE"}],
    ))
    breakdown = sorted(
        (ServiceCost(service=s, cost_usd=c) for s, c in totals.items() if c > 0),
        key=lambda sc: sc.cost_usd,
        reverse=True,
    )
    return CostSummary(
        period_start=start,
        period_end=end,
        total_cost_usd=sum(totals.values()),
        service_breakdown=breakdown,
    )


def collect_resource_costs(ce, service: str, start: str, end: str) -> dict[str, float]:
    """Per-resource spend for one CE service dimension. Empty when resource-level data is not enabled."""
    try:
        return _group_totals(_paged_cost_and_usage(
            ce,
            TimePeriod={"Start": start, "End": end},
            Granularity="MONTHLY",
            Metrics=["UnblendedCost"],
            Filter={"Dimensions": {"Key": "SERVICE", "Values": [service]}},
            GroupBy=[{"Type": "DIMENSION", "Key": "RESOURCE_ID"}],
        ))
    except (ClientError, BotoCoreError) as e:
        logger.debug("per-resource costs for %s unavailable: %s", service, e)
        return {}


def collect_savings_plan_coverage(ce, start: str, end: str) -> dict[str, SavingsPlanCoverage]:
    on_demand: dict[str, float] = {}
    covered: dict[str, float] = {}
    token = None
    while True:
        kwargs = {
            "TimePeriod": {"Start": start, "End": end},
            "GroupBy": [{"Type": "DIMENSION", "Key": "REGION"}],
            "Granularity": "MONTHLY",
        }
        if token:
            kwargs["NextToken"] = token
        response = ce.get_savings_plans_coverage(**kwargs)
        for item in response.get("SavingsPlansCoverages", []):
            attrs = item.get("Attributes", {})
            region = attrs.get("REGION") or attrs.get("region")
            coverage = item.get("Coverage")
            if not region or not coverage:
                continue
            on_demand[region] = on_demand.get(region, 0.0) + float(coverage.get("OnDemandCost") or 0)
            covered[region] = covered.get(region, 0.0) + float(coverage.get("SpendCoveredBySavingsPlans") or 0)
        token = response.get("NextToken")
        if not token:
            break

    result = {}
    for region, od in on_demand.items():
        total = od + covered[region]
        result[region] = SavingsPlanCoverage(
            region=region,
            coverage_percent=(covered[region] / total * 100) if total > 0 else 0.0,
            on_demand_cost_usd=od,
            covered_cost_usd=covered[region],
        )
    return result


# ---------------------------------------------------------------------------
# Region resources
# ---------------------------------------------------------------------------

def collect_ec2_instances(ec2, cw, region: str, start: datetime, end: datetime) -> list[EC2Instance]:
    instances = []
    paginator = ec2.get_paginator("describe_instances")
    for page in paginator.paginate(Filters=[{"Name": "instance-state-name", "Values": ["running", "stopped"]}]):
        for reservation in page.get("Reservations", []):
            for inst in reservation.get("Instances", []):
                instances.append(EC2Instance(
                    instance_id=inst["InstanceId"],
                    region=region,
                    instance_type=inst.get("InstanceType", ""),
                    state=inst.get("State", {}).get("Name", ""),
                    launch_time=inst.get("LaunchTime"),
                    tags=_tags(inst.get("Tags")),
                ))

    # Stopped instances publish no CPU metric.
    for inst in instances:
        if inst.state == "running":
            inst.avg_cpu_percent = average_metric(
                cw, "AWS/EC2", "CPUUtilization", ("InstanceId", inst.instance_id), start, end,
            )
    return instances


def collect_ebs_volumes(ec2, region: str) -> list[EBSVolume]:
    volumes = []
    for page in ec2.get_paginator("describe_volumes").paginate():
        for vol in page.get("Volumes", []):
            attachments = vol.get("Attachments") or []
            volumes.append(EBSVolume(
                volume_id=vol["VolumeId"],
                region=region,
                volume_type=vol.get("VolumeType", ""),
                size_gb=vol.get("Size", 0),
                state=vol.get("State", ""),
                attached=vol.get("State") == "in-use",
                encrypted=bool(vol.get("Encrypted")),
                instance_id=attachments[0].get("InstanceId", "") if attachments else "",
                tags=_tags(vol.get("Tags")),
            ))
    return volumes


def collect_nat_gateways(ec2, cw, region: str, start: datetime, end: datetime) -> list[NATGateway]:
    gateways = []
    paginator = ec2.get_paginator("describe_nat_gateways")
    for page in paginator.paginate(Filters=[{"Name": "state", "Values": ["available"]}]):
        for ng in page.get("NatGateways", []):
            gateways.append(NATGateway(
                nat_gateway_id=ng["NatGatewayId"],
                region=region,
                state=ng.get("State", ""),
                vpc_id=ng.get("VpcId", ""),
                subnet_id=ng.get("SubnetId", ""),
                tags=_tags(ng.get("Tags")),
            ))

    for ng in gateways:
        total_bytes = sum_metric(
            cw, "AWS/NATGateway", "BytesOutToDestination", ("NatGatewayId", ng.nat_gateway_id), start, end,
        )
        ng.bytes_processed_gb = total_bytes / (1024 ** 3)
    return gateways


def collect_rds_instances(rds, cw, region: str, start: datetime, end: datetime) -> list[RDSInstance]:
    instances = []
    for page in rds.get_paginator("describe_db_instances").paginate():
        for db in page.get("DBInstances", []):
            instances.append(RDSInstance(
                db_instance_id=db["DBInstanceIdentifier"],
                region=region,
                db_instance_class=db.get("DBInstanceClass", ""),
                engine=db.get("Engine", ""),
                multi_az=bool(db.get("MultiAZ")),
                status=db.get("DBInstanceStatus", ""),
                storage_encrypted=bool(db.get("StorageEncrypted")),
                tags=_tags(db.get("TagList")),
            ))

    for db in instances:
        if db.status == "available":
            db.avg_cpu_percent = average_metric(
                cw, "AWS/RDS", "CPUUtilization", ("DBInstanceIdentifier", db.db_instance_id), start, end,
            )
    return instances


def collect_load_balancers(elbv2, cw, region: str, start: datetime, end: datetime) -> list[LoadBalancer]:
    lbs = []
    for page in elbv2.get_paginator("describe_load_balancers").paginate():
        for lb in page.get("LoadBalancers", []):
            lbs.append(LoadBalancer(
                load_balancer_arn=lb["LoadBalancerArn"],
                load_balancer_name=lb.get("LoadBalancerName", ""),
                region=region,
                type=lb.get("Type", ""),
                state=lb.get("State", {}).get("Code", ""),
            ))

    marker = ":loadbalancer/"
    for lb in lbs:
        if lb.type != "application" or marker not in lb.load_balancer_arn:
            continue
        dimension = lb.load_balancer_arn.split(marker, 1)[1]
        lb.request_count = int(sum_metric(
            cw, "AWS/ApplicationELB", "RequestCount", ("LoadBalancer", dimension), start, end,
        ))
    return lbs


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------

class Boto3CostCollector(CostCollector):

    def __init__(self, max_concurrent_regions: int = MAX_CONCURRENT_REGIONS):
        self.max_concurrent_regions = max_concurrent_regions

    def collect_all(
        self,
        profile: AWSProfile,
        regions: list[str],
        days_back: int,
        cancelled: Optional[threading.Event] = None,
    ) -> CostCollection:
        start, end = billing_date_range(days_back)
        ce = client_for(profile, "ce", COST_EXPLORER_REGION)

        cost_summary = None
        try:
            cost_summary = collect_cost_summary(ce, start, end)
        except (ClientError, BotoCoreError) as e:
            logger.warning("Cost Explorer summary unavailable for profile %s: %s", profile.name, e)

        coverage: dict[str, SavingsPlanCoverage] = {}
        try:
            coverage = collect_savings_plan_coverage(ce, start, end)
        except (ClientError, BotoCoreError) as e:
            logger.warning("Savings Plans coverage unavailable for profile %s: %s", profile.name, e)

        ec2_costs = collect_resource_costs(ce, "Amazon Elastic Compute Cloud - Compute", start, end)
        rds_costs = collect_resource_costs(ce, "Amazon Relational Database Service", start, end)

        def collect(region: str) -> RegionData:
            raise_if_cancelled(cancelled, profile, region)
            rd = self.collect_region(profile, region, days_back)
            for inst in rd.ec2_instances:
                inst.monthly_cost_usd = ec2_costs.get(inst.instance_id, 0.0)
            for db in rd.rds_instances:
                db.monthly_cost_usd = rds_costs.get(db.db_instance_id, 0.0)
            if region in coverage:
                rd.savings_plan_coverage = [coverage[region]]
            return rd

        with ThreadPoolExecutor(max_workers=max(1, self.max_concurrent_regions),
                                thread_name_prefix="region") as pool:
            # map() re-raises the first region failure and keeps region order.
            region_data = list(pool.map(collect, regions))

        return CostCollection(regions=region_data, cost_summary=cost_summary)

    def collect_region(self, profile: AWSProfile, region: str, days_back: int) -> RegionData:
        end = datetime.now(timezone.utc)
        start = end - timedelta(days=_effective_days(days_back))
        ec2 = client_for(profile, "ec2", region)
        cw = client_for(profile, "cloudwatch", region)
        rds = client_for(profile, "rds", region)
        elbv2 = client_for(profile, "elbv2", region)

        rd = RegionData(region=region)
        steps = [
            ("EC2 instances", "ec2_instances", lambda: collect_ec2_instances(ec2, cw, region, start, end)),
            ("EBS volumes", "ebs_volumes", lambda: collect_ebs_volumes(ec2, region)),
            ("NAT gateways", "nat_gateways", lambda: collect_nat_gateways(ec2, cw, region, start, end)),
            ("RDS instances", "rds_instances", lambda: collect_rds_instances(rds, cw, region, start, end)),
            ("load balancers", "load_balancers", lambda: collect_load_balancers(elbv2, cw, region, start, end)),
        ]
        for label, attr, fetch in steps:
            try:
                setattr(rd, attr, fetch())
            except ClientError as e:
                if not _listing_denied(e, label, region):
                    raise CollectionError(f"collect {label} in {region}: {e}") from e
            except BotoCoreError as e:
                raise CollectionError(f"collect {label} in {region}: {e}") from e
        return rd
