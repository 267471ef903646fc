# src/governance_cli/cli.py
"""
Command line interface built on click and rich.

    governance-cli aws cost|security|dataprotection|all [options]
    governance-cli kubernetes audit [options] [--explain SCORE]
    governance-cli kubernetes inspect [--context NAME]
    governance-cli policy validate [PATH]
    governance-cli doctor [options]
    governance-cli interactive

Exit codes: 0 success, 1 audit or policy error (or an unhealthy doctor run),
2 policy enforcement failed.
"""

import json
import logging
import sys
from typing import Optional

import click
import questionary
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from governance_cli import config
from governance_cli.adapters.aws.cost_collector import Boto3CostCollector
from governance_cli.adapters.aws.eks_collector import Boto3EKSCollector
from governance_cli.adapters.aws.security_collector import Boto3SecurityCollector
from governance_cli.adapters.aws.session import Boto3ClientProvider
from governance_cli.adapters.kubernetes.collector import KubeClusterCollector
from governance_cli.core.exceptions import GovernanceError
from governance_cli.core.models import AuditReport
from governance_cli.core.rules.packs import known_rule_ids
from governance_cli.engines.all_aws import AllAWSEngine
from governance_cli.engines.aws_cost import AWSCostEngine
from governance_cli.engines.aws_dataprotection import AWSDataProtectionEngine
from governance_cli.engines.aws_security import AWSSecurityEngine
from governance_cli.engines.base import AuditOptions, AuditType
from governance_cli.engines.doctor import run_doctor
from governance_cli.engines.kubernetes import KubernetesAuditOptions, KubernetesEngine, inspect_cluster
from governance_cli.policy.config import PolicyConfig
from governance_cli.policy.loader import find_policy_file, load_policy, load_policy_file
from governance_cli.policy.validator import validate_policy
from governance_cli.utils.formatters import (
    THEME,
    cluster_inspect_to_dict,
    find_path_by_score,
    format_as_json,
    format_doctor_json,
    format_explain_json,
    render_attack_path_explanation,
    render_attack_paths,
    render_cluster_inspect,
    render_doctor,
    render_report_table,
    render_risk_chains,
    render_summary,
)

EXIT_ERROR = 1
EXIT_ENFORCEMENT_FAILED = 2

console = Console(theme=THEME)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True, theme=THEME), show_path=False)],
        force=True,
    )
    # botocore is chatty at DEBUG and drowns out our own records.
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def fail(message: str) -> None:
    console.print(f"[error]Error:[/] {escape(message)}")
    sys.exit(EXIT_ERROR)


# ---------------------------------------------------------------------------
# Engine construction (patched in tests)
# ---------------------------------------------------------------------------

def build_aws_provider():
    return Boto3ClientProvider()


def build_cluster_collector(kubeconfig: Optional[str]):
    return KubeClusterCollector(kubeconfig=kubeconfig)


def build_aws_engine(audit_type: AuditType, policy: Optional[PolicyConfig]):
    provider = build_aws_provider()
    cost_collector = Boto3CostCollector()
    security_collector = Boto3SecurityCollector()

    cost = AWSCostEngine(provider, cost_collector, policy=policy)
    security = AWSSecurityEngine(provider, security_collector, policy=policy)
    dataprotection = AWSDataProtectionEngine(provider, cost_collector, security_collector, policy=policy)
    engines = {
        AuditType.COST: cost,
        AuditType.SECURITY: security,
        AuditType.DATAPROTECTION: dataprotection,
    }
    if audit_type == AuditType.ALL:
        return AllAWSEngine(cost, security, dataprotection, policy=policy)
    return engines[audit_type]


def build_kubernetes_engine(policy: Optional[PolicyConfig], kubeconfig: Optional[str], aws_profile: Optional[str]):
    return KubernetesEngine(
        build_cluster_collector(kubeconfig),
        Boto3EKSCollector(profile_name=aws_profile),
        policy=policy,
    )


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def _render_table(report: AuditReport, target: Console, summary_only: bool) -> None:
    if not summary_only:
        render_report_table(report, target)
    render_summary(report, target)
    render_attack_paths(report.summary.attack_paths, target)
    render_risk_chains(report.summary.risk_chains, target)


def emit_report(report: AuditReport, fmt: str, summary_only: bool, output: Optional[str]) -> None:
    if fmt == "json":
        content = format_as_json(report)
        if output:
            with open(output, "w", encoding="utf-8") as f:
                f.write(content)
            console.print(f"[success]Report saved to {output}[/]")
        else:
            click.echo(content)
    else:
        _render_table(report, console, summary_only)
        if output:
            with open(output, "w", encoding="utf-8") as f:
                _render_table(report, Console(file=f, theme=THEME, width=160, no_color=True), summary_only)
            console.print(f"[success]Report saved to {output}[/]")

    if report.enforced_domains:
        console.print(f"[error]Policy enforcement failed:[/] {', '.join(report.enforced_domains)}")
        sys.exit(EXIT_ENFORCEMENT_FAILED)


def emit_explanation(report: AuditReport, score: int, fmt: str) -> None:
    """Print one attack path instead of the report. Enforcement still decides the exit code."""
    path = find_path_by_score(report.summary.attack_paths, score)
    if fmt == "json":
        click.echo(format_explain_json(path, score))
        if path is None:
            sys.exit(EXIT_ERROR)
    elif path is None:
        fail(f"no attack path found with score {score}")
    else:
        render_attack_path_explanation(path, report.findings, console)

    if report.enforced_domains:
        console.print(f"[error]Policy enforcement failed:[/] {', '.join(report.enforced_domains)}")
        sys.exit(EXIT_ENFORCEMENT_FAILED)


def _load_policy_or_fail(path: Optional[str]) -> Optional[PolicyConfig]:
    try:
        return load_policy_file(path)
    except GovernanceError as e:
        fail(str(e))


def output_options(func):
    func = click.option("--policy", "policy_path", type=click.Path(dir_okay=False),
                        help=f"Policy file (default: ./{config.POLICY_FILE} when present).")(func)
    func = click.option("--output", "-o", help="Save the report to this file.")(func)
    func = click.option("--summary", "summary_only", is_flag=True, help="Print only the summary.")(func)
    func = click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table",
                        show_default=True, help="Output format.")(func)
    return func


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose):
    """Governance CLI: cost, security, data-protection and Kubernetes audits."""
    setup_logging(verbose)


@cli.group()
def aws():
    """Audit AWS accounts."""


def run_aws_audit(audit_type: AuditType, profile, all_profiles, regions, days, fmt, summary_only, output, policy_path):
    policy = _load_policy_or_fail(policy_path)
    opts = AuditOptions(
        audit_type=audit_type,
        profile=profile or "",
        all_profiles=all_profiles,
        regions=list(regions),
        days_back=days or 0,
    )
    engine = build_aws_engine(audit_type, policy)
    try:
        with console.status(f"[info]Running {audit_type.value} audit...[/]"):
            report = engine.run_audit(opts)
    except GovernanceError as e:
        fail(str(e))
    emit_report(report, fmt, summary_only, output)


def aws_options(func):
    func = output_options(func)
    func = click.option("--region", "-r", "regions", multiple=True,
                        help="Region to audit (repeatable). Default: every active region.")(func)
    func = click.option("--all-profiles", is_flag=True, help="Audit every profile in the AWS config.")(func)
    func = click.option("--profile", "-p", default="", help="AWS profile name (default credential chain if omitted).")(func)
    return func


@aws.command()
@aws_options
@click.option("--days", type=int, default=config.DEFAULT_DAYS_BACK, show_default=True,
              help="Utilisation and billing lookback window.")
def cost(profile, all_profiles, regions, fmt, summary_only, output, policy_path, days):
    """Find idle and over-provisioned resources."""
    run_aws_audit(AuditType.COST, profile, all_profiles, regions, days, fmt, summary_only, output, policy_path)


@aws.command()
@aws_options
def security(profile, all_profiles, regions, fmt, summary_only, output, policy_path):
    """Check account-level security posture."""
    run_aws_audit(AuditType.SECURITY, profile, all_profiles, regions, 0, fmt, summary_only, output, policy_path)


@aws.command()
@aws_options
def dataprotection(profile, all_profiles, regions, fmt, summary_only, output, policy_path):
    """Check encryption at rest for RDS, EBS and S3."""
    run_aws_audit(AuditType.DATAPROTECTION, profile, all_profiles, regions, 0, fmt, summary_only, output, policy_path)


@aws.command(name="all")
@aws_options
@click.option("--days", type=int, default=config.DEFAULT_DAYS_BACK, show_default=True,
              help="Lookback window for the cost audit.")
def all_domains(profile, all_profiles, regions, fmt, summary_only, output, policy_path, days):
    """Run cost, security and data-protection audits together."""
    run_aws_audit(AuditType.ALL, profile, all_profiles, regions, days, fmt, summary_only, output, policy_path)


@cli.group()
def kubernetes():
    """Audit Kubernetes clusters."""


@kubernetes.command()
@output_options
@click.option("--context", "context_name", default="", help="kubeconfig context (default: current context).")
@click.option("--kubeconfig", type=click.Path(dir_okay=False), help="Path to the kubeconfig file.")
@click.option("--aws-profile", help="AWS profile used for EKS control-plane checks.")
@click.option("--show-risk-chains", is_flag=True, help="Group findings by correlated risk chain.")
@click.option("--exclude-system", is_flag=True, help="Drop findings in system namespaces.")
@click.option("--min-risk-score", type=click.IntRange(0, 100), default=0,
              help="Only report findings in a risk chain scoring at least this.")
@click.option("--explain", type=int, metavar="SCORE",
              help="Print the breakdown of the attack path with this score instead of the report.")
def audit(fmt, summary_only, output, policy_path, context_name, kubeconfig, aws_profile,
          show_risk_chains, exclude_system, min_risk_score, explain):
    """Audit the cluster behind a kubeconfig context."""
    policy = _load_policy_or_fail(policy_path)
    engine = build_kubernetes_engine(policy, kubeconfig, aws_profile)
    opts = KubernetesAuditOptions(
        context_name=context_name,
        show_risk_chains=show_risk_chains,
        exclude_system=exclude_system,
        min_risk_score=min_risk_score,
    )
    try:
        with console.status("[info]Auditing cluster...[/]"):
            report = engine.run_audit(opts)
    except GovernanceError as e:
        fail(str(e))
    if explain is not None:
        emit_explanation(report, explain, fmt)
        return
    emit_report(report, fmt, summary_only, output)


@kubernetes.command()
@click.option("--context", "context_name", default="", help="kubeconfig context (default: current context).")
@click.option("--kubeconfig", type=click.Path(dir_okay=False), help="Path to the kubeconfig file.")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table",
              show_default=True, help="Output format.")
def inspect(context_name, kubeconfig, fmt):
    """Show what the cluster behind a context looks like, without auditing it."""
    try:
        with console.status("[info]Inspecting cluster...[/]"):
            cluster = inspect_cluster(build_cluster_collector(kubeconfig), context_name)
    except GovernanceError as e:
        fail(str(e))
    if fmt == "json":
        click.echo(json.dumps(cluster_inspect_to_dict(cluster), indent=2))
    else:
        render_cluster_inspect(cluster, console)


@cli.group()
def policy():
    """Work with policy files."""


@policy.command()
@click.argument("path", required=False, type=click.Path(dir_okay=False))
def validate(path):
    """Validate a policy file and print every problem found."""
    resolved = find_policy_file(path)
    if resolved is None:
        fail(f"no policy file given and ./{config.POLICY_FILE} not found")
    try:
        cfg = load_policy(resolved)
    except GovernanceError as e:
        fail(str(e))

    errors = validate_policy(cfg, known_rule_ids())
    if errors:
        console.print(f"[error]{resolved}: {len(errors)} problem(s)[/]")
        for err in errors:
            console.print(f"  - {escape(str(err))}")
        sys.exit(EXIT_ERROR)
    console.print(f"[success]{resolved} is valid[/]")


@cli.command()
@click.option("--profile", "-p", default="", help="AWS profile name (default credential chain if omitted).")
@click.option("--context", "context_name", default="", help="kubeconfig context (default: current context).")
@click.option("--kubeconfig", type=click.Path(dir_okay=False), help="Path to the kubeconfig file.")
@click.option("--policy", "policy_path", type=click.Path(dir_okay=False),
              help=f"Policy file (default: ./{config.POLICY_FILE} when present).")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table",
              show_default=True, help="Output format.")
def doctor(profile, context_name, kubeconfig, policy_path, fmt):
    """Check that audits can run from this environment."""
    with console.status("[info]Running diagnostics...[/]"):
        result = run_doctor(build_aws_provider(), build_cluster_collector(kubeconfig),
                            profile, context_name, policy_path)
    if fmt == "json":
        click.echo(format_doctor_json(result))
    else:
        render_doctor(result, console)
    if not result.overall_healthy:
        sys.exit(EXIT_ERROR)


@cli.command()
@click.pass_context
def interactive(ctx):
    """Choose an audit through prompts."""
    console.print(Panel.fit("[bold white]Welcome to Governance CLI[/]", border_style="blue"))

    target = questionary.select(
        "What do you want to audit?",
        choices=["aws cost", "aws security", "aws dataprotection", "aws all", "kubernetes"],
        default="aws cost",
    ).ask()
    if target is None:
        return

    fmt = questionary.select("Output format?", choices=["table", "json"], default="table").ask()
    output = questionary.text("Output file (leave blank for console):").ask() or None

    if target == "kubernetes":
        context_name = questionary.text("kubeconfig context (blank for current):").ask() or ""
        show_chains = questionary.confirm("Show risk chains?", default=True).ask()
        exclude_system = questionary.confirm("Exclude system namespaces?", default=False).ask()
        ctx.invoke(
            audit, fmt=fmt, summary_only=False, output=output, policy_path=None,
            context_name=context_name, kubeconfig=None, aws_profile=None,
            show_risk_chains=show_chains, exclude_system=exclude_system, min_risk_score=0, explain=None,
        )
        return

    all_profiles = questionary.confirm("Audit all AWS profiles?", default=False).ask()
    profile = "" if all_profiles else (questionary.text("AWS profile (blank for default):").ask() or "")
    regions_raw = questionary.text("Regions, comma separated (blank for all active):").ask() or ""
    regions = [r.strip() for r in regions_raw.split(",") if r.strip()]

    audit_type = AuditType(target.split(" ", 1)[1])
    days = config.DEFAULT_DAYS_BACK if audit_type in (AuditType.COST, AuditType.ALL) else 0
    run_aws_audit(audit_type, profile, all_profiles, regions, days, fmt, False, output, None)


def main():
    cli()


if __name__ == "__main__":
    main()
