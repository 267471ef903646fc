# src/governance_cli/core/rules/cost.py
"""
Cost rules: wasted or overprovisioned AWS spend.

Rules in this module (evaluated once per region):
  - EBS_UNATTACHED             (MEDIUM): volume in "available" state
  - EBS_GP2_LEGACY             (LOW):    gp2 volume that could be gp3
  - EC2_LOW_CPU                (MEDIUM): running instance below the CPU threshold
  - NAT_LOW_TRAFFIC            (HIGH):   NAT gateway processing almost nothing
  - SAVINGS_PLAN_UNDERUTILIZED  (HIGH/MEDIUM): low Savings Plan coverage
  - RDS_LOW_CPU                (HIGH/MEDIUM): available DB instance below the CPU threshold

EC2_LOW_CPU and RDS_LOW_CPU read `cpu_threshold` from the policy params.
"""

from governance_cli import config
from governance_cli.core.base_rule import BaseRule, RuleContext
from governance_cli.core.models import Domain, Finding, ResourceType, Severity
from governance_cli.core.rules import ids
from governance_cli.policy.engine import get_threshold


class _CostRule(BaseRule):
    domain = Domain.COST


# ---------------------------------------------------------------------------
# 1. EBS
# ---------------------------------------------------------------------------

class EBSUnattachedRule(_CostRule):
    rule_id = ids.EBS_UNATTACHED
    name = "Unattached EBS Volume"
    default_severity = Severity.MEDIUM

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.region_data is None:
            return self._no_findings()

        findings = []
        for vol in ctx.region_data.ebs_volumes:
            if vol.attached or vol.state != "available":
                continue
            price = config.EBS_FALLBACK_PRICES.get(vol.volume_type, config.EBS_FALLBACK_PRICES["gp2"])
            findings.append(self._finding(
                ctx, vol.volume_id, vol.region,
                resource_type=ResourceType.EBS_VOLUME,
                severity=self.default_severity,
                estimated_monthly_savings=round(vol.size_gb * price, 2),
                explanation=f"EBS volume {vol.volume_id} ({vol.size_gb} GB {vol.volume_type}) is not attached to any instance.",
                recommendation="Snapshot the volume if the data is still needed, then delete it.",
                extra={"volume_type": vol.volume_type, "size_gb": vol.size_gb},
            ))
        return findings


class EBSGP2LegacyRule(_CostRule):
    rule_id = ids.EBS_GP2_LEGACY
    name = "Legacy gp2 EBS Volume"
    default_severity = Severity.LOW

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.region_data is None:
            return self._no_findings()

        per_gb = config.EBS_FALLBACK_PRICES["gp2"] - config.EBS_FALLBACK_PRICES["gp3"]
        findings = []
        for vol in ctx.region_data.ebs_volumes:
            if vol.volume_type != "gp2":
                continue
            findings.append(self._finding(
                ctx, vol.volume_id, vol.region,
                resource_type=ResourceType.EBS_VOLUME,
                severity=self.default_severity,
                estimated_monthly_savings=round(vol.size_gb * per_gb, 2),
                explanation="gp2 volumes are legacy and more expensive than gp3.",
                recommendation="Modify the volume type to gp3; the change is online and needs no downtime.",
                extra={"volume_type": vol.volume_type, "size_gb": vol.size_gb},
            ))
        return findings


# ---------------------------------------------------------------------------
# 2. Compute and databases
# ---------------------------------------------------------------------------

class EC2LowCPURule(_CostRule):
    rule_id = ids.EC2_LOW_CPU
    name = "Low CPU EC2 Instance"
    default_severity = Severity.MEDIUM

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.region_data is None:
            return self._no_findings()

        threshold = get_threshold(self.rule_id, "cpu_threshold", config.EC2_LOW_CPU_THRESHOLD, ctx.policy)
        findings = []
        for inst in ctx.region_data.ec2_instances:
            # 0% means CloudWatch returned no datapoints, not an idle instance.
            if inst.state != "running" or inst.avg_cpu_percent == 0 or inst.monthly_cost_usd == 0:
                continue
            if inst.avg_cpu_percent >= threshold:
                continue
            findings.append(self._finding(
                ctx, inst.instance_id, inst.region,
                resource_type=ResourceType.EC2_INSTANCE,
                severity=self.default_severity,
                estimated_monthly_savings=round(inst.monthly_cost_usd * config.EC2_LOW_CPU_SAVINGS_FRACTION, 2),
                explanation=(
                    f"Instance {inst.instance_id} ({inst.instance_type}) averaged "
                    f"{inst.avg_cpu_percent:.1f}% CPU, below the {threshold:.0f}% threshold."
                ),
                recommendation="Review instance sizing and consider downsizing or a Savings Plan.",
                extra={
                    "instance_type": inst.instance_type,
                    "avg_cpu_percent": inst.avg_cpu_percent,
                    "monthly_cost_usd": inst.monthly_cost_usd,
                },
            ))
        return findings


class RDSLowCPURule(_CostRule):
    rule_id = ids.RDS_LOW_CPU
    name = "Low CPU RDS Instance"
    default_severity = Severity.MEDIUM

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.region_data is None:
            return self._no_findings()

        threshold = get_threshold(self.rule_id, "cpu_threshold", config.RDS_LOW_CPU_THRESHOLD, ctx.policy)
        findings = []
        for db in ctx.region_data.rds_instances:
            if db.status != "available" or db.avg_cpu_percent == 0 or db.monthly_cost_usd == 0:
                continue
            if db.avg_cpu_percent >= threshold:
                continue
            severity = Severity.HIGH if db.avg_cpu_percent < config.RDS_LOW_CPU_HIGH_THRESHOLD else Severity.MEDIUM
            findings.append(self._finding(
                ctx, db.db_instance_id, db.region,
                resource_type=ResourceType.RDS_INSTANCE,
                severity=severity,
                estimated_monthly_savings=round(db.monthly_cost_usd * config.RDS_LOW_CPU_SAVINGS_FRACTION, 2),
                explanation=(
                    f"RDS instance {db.db_instance_id} ({db.db_instance_class}) averaged "
                    f"{db.avg_cpu_percent:.1f}% CPU."
                ),
                recommendation="Consider downsizing to a smaller DB instance class.",
                extra={"avg_cpu_percent": db.avg_cpu_percent, "monthly_cost_usd": db.monthly_cost_usd},
            ))
        return findings


# ---------------------------------------------------------------------------
# 3. Networking
# ---------------------------------------------------------------------------

class NATLowTrafficRule(_CostRule):
    rule_id = ids.NAT_LOW_TRAFFIC
    name = "Low Traffic NAT Gateway"
    default_severity = Severity.HIGH

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.region_data is None:
            return self._no_findings()

        threshold = get_threshold(self.rule_id, "traffic_gb", config.NAT_LOW_TRAFFIC_THRESHOLD_GB, ctx.policy)
        findings = []
        for nat in ctx.region_data.nat_gateways:
            if nat.state != "available" or nat.bytes_processed_gb >= threshold:
                continue
            findings.append(self._finding(
                ctx, nat.nat_gateway_id, nat.region,
                resource_type=ResourceType.NAT_GATEWAY,
                severity=self.default_severity,
                estimated_monthly_savings=config.NAT_GATEWAY_MONTHLY_COST,
                explanation=f"NAT gateway processed {nat.bytes_processed_gb:.2f} GB over the lookback window.",
                recommendation="Delete the NAT gateway or consolidate egress through a shared NAT.",
                extra={"bytes_processed_gb": nat.bytes_processed_gb, "vpc_id": nat.vpc_id},
            ))
        return findings


# ---------------------------------------------------------------------------
# 4. Commitments
# ---------------------------------------------------------------------------

class SavingsPlanUnderutilizedRule(_CostRule):
    rule_id = ids.SAVINGS_PLAN_UNDERUTILIZED
    name = "Low Savings Plan Coverage"
    default_severity = Severity.MEDIUM

    def evaluate(self, ctx: RuleContext) -> list[Finding]:
        if ctx.region_data is None:
            return self._no_findings()

        findings = []
        for cov in ctx.region_data.savings_plan_coverage:
            if cov.coverage_percent >= config.SAVINGS_PLAN_COVERAGE_THRESHOLD:
                continue
            if cov.on_demand_cost_usd <= config.SAVINGS_PLAN_MIN_ON_DEMAND_USD:
                continue
            if cov.coverage_percent < config.SAVINGS_PLAN_COVERAGE_HIGH_THRESHOLD:
                severity = Severity.HIGH
            else:
                severity = Severity.MEDIUM
            findings.append(self._finding(
                ctx, f"savings-plan-{cov.region}", cov.region,
                resource_type=ResourceType.SAVINGS_PLAN,
                severity=severity,
                estimated_monthly_savings=round(cov.on_demand_cost_usd * config.SAVINGS_PLAN_SAVINGS_FRACTION, 2),
                explanation=f"Savings Plan coverage in {cov.region} is {cov.coverage_percent:.1f}%.",
                recommendation="Evaluate Compute Savings Plans or Reserved Instances to reduce On-Demand cost.",
                extra={"coverage_percent": cov.coverage_percent, "on_demand_cost_usd": cov.on_demand_cost_usd},
            ))
        return findings


def cost_rules() -> list[BaseRule]:
    return [
        EBSUnattachedRule(),
        EBSGP2LegacyRule(),
        EC2LowCPURule(),
        NATLowTrafficRule(),
        SavingsPlanUnderutilizedRule(),
        RDSLowCPURule(),
    ]
