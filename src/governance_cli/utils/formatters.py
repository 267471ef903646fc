# src/governance_cli/utils/formatters.py
"""
Report rendering: JSON for automation, rich tables for humans.

Nothing here changes a report; renderers only read AuditReport values.
The CLI's diagnostic views are rendered here as well.
"""

import json
from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from governance_cli.core.inventory import ClusterData
from governance_cli.core.models import AttackPath, AuditReport, Finding, RiskChain
from governance_cli.engines.doctor import DoctorResult

# Shared by the CLI console so renderers can use the severity styles by name.
THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "domain": "bold blue",
    "severity.critical": "bold white on red",
    "severity.high": "bold red",
    "severity.medium": "bold yellow",
    "severity.low": "dim white",
    "severity.info": "dim",
})

TOP_SAVINGS_COUNT = 5


def _severity_markup(value: str) -> str:
    return f"[severity.{value.lower()}]{value}[/]"


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def _plain(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if is_dataclass(obj):
        return {f.name: _plain(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, dict):
        return {str(k): _plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain(v) for v in obj]
    return obj


def finding_to_dict(f: Finding) -> dict[str, Any]:
    """A finding with metadata flattened: pipeline keys first, rule-specific extras after, unset keys omitted."""
    data = {name: _plain(getattr(f, name)) for name in (
        "id", "rule_id", "resource_id", "resource_type", "region", "severity",
        "explanation", "recommendation", "account_id", "profile", "domain",
        "estimated_monthly_savings", "detected_at",
    )}

    metadata: dict[str, Any] = {}
    meta = f.metadata
    if meta is not None:
        for key in ("namespace", "namespace_type", "risk_chain_score", "risk_chain_reason"):
            value = getattr(meta, key)
            if value is not None:
                metadata[key] = _plain(value)
        if meta.rules:
            metadata["rules"] = list(meta.rules)
        for key, value in meta.extra.items():
            metadata.setdefault(key, _plain(value))
    data["metadata"] = metadata
    return data


def report_to_dict(report: AuditReport) -> dict[str, Any]:
    return {
        "report_id": report.report_id,
        "audit_type": report.audit_type,
        "profile": report.profile,
        "account_id": report.account_id,
        "regions": list(report.regions),
        "generated_at": report.generated_at.isoformat(),
        "cluster_provider": report.cluster_provider,
        "enforced_domains": list(report.enforced_domains),
        "summary": _plain(report.summary),
        "cost_summary": _plain(report.cost_summary),
        "findings": [finding_to_dict(f) for f in report.findings],
    }


def format_as_json(report: AuditReport) -> str:
    return json.dumps(report_to_dict(report), indent=2)


# ---------------------------------------------------------------------------
# Rich tables
# ---------------------------------------------------------------------------

def render_report_table(report: AuditReport, console: Console) -> None:
    if not report.findings:
        console.print("[success]No findings discovered.[/]")
        return

    table = Table(title=f"{report.audit_type.upper()} findings ({len(report.findings)})", padding=(0, 1))
    table.add_column("Severity", no_wrap=True)
    table.add_column("Rule", style="cyan")
    table.add_column("Resource")
    table.add_column("Region", style="dim")
    table.add_column("Savings/mo", justify="right")
    table.add_column("Explanation")

    show_profile = len({f.profile for f in report.findings}) > 1
    if show_profile:
        table.add_column("Profile", style="dim")

    for f in report.findings:
        rules = ", ".join(f.all_rule_ids)
        savings = f"${f.estimated_monthly_savings:,.2f}" if f.estimated_monthly_savings > 0 else ""
        row = [_severity_markup(f.severity.value), rules, escape(f.resource_id), f.region, savings, escape(f.explanation)]
        if show_profile:
            row.append(f.profile)
        table.add_row(*row)

    console.print(table)


def render_summary(report: AuditReport, console: Console) -> None:
    s = report.summary
    lines = [
        f"[bold white]Audit:[/] [domain]{report.audit_type}[/]   "
        f"[bold white]Profile:[/] [cyan]{report.profile or '-'}[/]"
        + (f" [dim]({report.account_id})[/]" if report.account_id else ""),
        f"[bold white]Findings:[/] {s.total_findings}   "
        f"{_severity_markup('CRITICAL')} {s.critical_findings}   "
        f"{_severity_markup('HIGH')} {s.high_findings}   "
        f"{_severity_markup('MEDIUM')} {s.medium_findings}   "
        f"{_severity_markup('LOW')} {s.low_findings}",
    ]
    if s.total_estimated_monthly_savings > 0:
        lines.append(f"[success]Estimated monthly savings: ${s.total_estimated_monthly_savings:,.2f}[/]")
    if report.cost_summary is not None:
        cs = report.cost_summary
        lines.append(
            f"[bold white]Spend {cs.period_start} to {cs.period_end}:[/] ${cs.total_cost_usd:,.2f}"
        )
    if report.cluster_provider:
        lines.append(f"[bold white]Cluster provider:[/] {report.cluster_provider}   "
                     f"[bold white]Risk score:[/] {s.risk_score}/100")
    if report.enforced_domains:
        lines.append(f"[error]Policy enforcement failed for: {', '.join(report.enforced_domains)}[/]")

    console.print(Panel("\n".join(lines), title="[bold blue]Governance Summary[/]", expand=False))

    top = sorted(
        (f for f in report.findings if f.estimated_monthly_savings > 0),
        key=lambda f: f.estimated_monthly_savings,
        reverse=True,
    )[:TOP_SAVINGS_COUNT]
    if not top:
        return

    table = Table(title="Top savings opportunities", box=None, padding=(0, 2))
    table.add_column("Resource", style="cyan")
    table.add_column("Rule")
    table.add_column("Savings/mo", justify="right", style="green")
    for f in top:
        table.add_row(f.resource_id, f.rule_id, f"${f.estimated_monthly_savings:,.2f}")
    console.print(table)


def render_attack_paths(paths: Iterable[AttackPath], console: Console) -> None:
    paths = list(paths)
    if not paths:
        return
    for path in paths:
        console.print(Panel(
            f"{path.description}\n"
            f"[bold white]Layers:[/] {' -> '.join(path.layers)}\n"
            f"[dim]Findings: {', '.join(path.finding_ids)}[/]",
            title=f"[error]Attack path (score {path.score})[/]",
            border_style="red",
            expand=False,
        ))


def render_risk_chains(chains: Iterable[RiskChain], console: Console) -> None:
    chains = list(chains)
    if not chains:
        return
    table = Table(title="Risk chains", padding=(0, 1))
    table.add_column("Score", justify="right", style="bold red")
    table.add_column("Reason")
    table.add_column("Findings", justify="right")
    for chain in chains:
        table.add_row(str(chain.score), chain.reason, str(len(chain.finding_ids)))
    console.print(table)


# ---------------------------------------------------------------------------
# Attack path explanation
# ---------------------------------------------------------------------------

def find_path_by_score(paths: Iterable[AttackPath], score: int) -> Optional[AttackPath]:
    """First path with exactly this score, or None."""
    for path in paths:
        if path.score == score:
            return path
    return None


def render_attack_path_explanation(path: AttackPath, findings: Iterable[Finding], console: Console) -> None:
    """
    Break one attack path down by rule.

    Only findings whose IDs the path references are listed, grouped by
    primary rule ID with rule IDs sorted. The count in the header is the
    number of IDs on the path, so findings removed by filters still count.
    """
    by_id = {f.id: f for f in findings}
    grouped: dict[str, list[Finding]] = {}
    for finding_id in path.finding_ids:
        f = by_id.get(finding_id)
        if f is not None:
            grouped.setdefault(f.rule_id, []).append(f)

    console.print(f"[error]ATTACK PATH (Score: {path.score})[/]")
    console.print(f"[bold white]Description:[/] {escape(path.description)}")
    console.print(f"[bold white]Layers:[/] {' -> '.join(path.layers)}")
    console.print()
    console.print(f"[bold white]Findings ({len(path.finding_ids)}):[/]")
    for rule_id in sorted(grouped):
        console.print()
        console.print(f"  [success]✓[/] [cyan]{rule_id}[/]")
        for f in grouped[rule_id]:
            namespace = f.metadata.namespace if f.metadata is not None else None
            suffix = f" ({namespace})" if namespace else ""
            console.print(f"    - {escape(f.resource_id + suffix)}")


def explain_to_dict(path: Optional[AttackPath], score: int) -> dict[str, Any]:
    if path is None:
        return {"error": f"No attack path found with score {score}"}
    return {"attack_path": _plain(path)}


def format_explain_json(path: Optional[AttackPath], score: int) -> str:
    return json.dumps(explain_to_dict(path, score), indent=2)


# ---------------------------------------------------------------------------
# Cluster inspection and diagnostics
# ---------------------------------------------------------------------------

def cluster_inspect_to_dict(cluster: ClusterData) -> dict[str, Any]:
    return {
        "context": cluster.context_name,
        "server": cluster.server,
        "cluster_provider": cluster.cluster_provider,
        "nodes": cluster.node_count,
        "namespaces": len(cluster.namespaces),
        "pods": len(cluster.pods),
    }


def render_cluster_inspect(cluster: ClusterData, console: Console) -> None:
    table = Table(box=None, show_header=False, padding=(0, 2))
    table.add_column(style="bold white", no_wrap=True)
    table.add_column()
    table.add_row("Context:", escape(cluster.context_name or "-"))
    table.add_row("API Server:", escape(cluster.server or "-"))
    table.add_row("Provider:", cluster.cluster_provider)
    table.add_row("Nodes:", str(cluster.node_count))
    table.add_row("Namespaces:", str(len(cluster.namespaces)))
    table.add_row("Pods:", str(len(cluster.pods)))
    console.print(table)


def format_doctor_json(result: DoctorResult) -> str:
    return json.dumps(_plain(result), indent=2)


def _check_line(console: Console, label: str, ok: bool, detail: str = "") -> None:
    status = "[success]OK[/]" if ok else "[error]FAIL[/]"
    suffix = f" ({escape(detail)})" if detail else ""
    console.print(f"  {label}: {status}{suffix}")


def render_doctor(result: DoctorResult, console: Console) -> None:
    console.print("[bold white]Environment Diagnostics[/]")

    aws = result.aws
    console.print()
    console.print(f"[domain]AWS (profile: {escape(aws.profile)}):[/]" if aws.profile else "[domain]AWS:[/]")
    if not aws.credentials_ok:
        _check_line(console, "Credentials", False, aws.error)
        _check_line(console, "STS Identity", False, "skipped")
        _check_line(console, "Regions API", False, "skipped")
    else:
        _check_line(console, "Credentials", True)
        _check_line(console, "STS Identity", True, f"Account: {aws.account_id}")
        _check_line(console, "Regions API", aws.regions_ok, "" if aws.regions_ok else aws.error)

    k8s = result.kubernetes
    console.print()
    console.print("[domain]Kubernetes:[/]")
    if not k8s.kubeconfig_ok:
        _check_line(console, "Kubeconfig", False, k8s.error)
        _check_line(console, "Current Context", False, "skipped")
        _check_line(console, "API Reachable", False, "skipped")
    else:
        _check_line(console, "Kubeconfig", True)
        _check_line(console, "Current Context", True, k8s.context)
        _check_line(console, "API Reachable", k8s.api_reachable, "" if k8s.api_reachable else k8s.error)

    pol = result.policy
    console.print()
    console.print("[domain]Policy:[/]")
    if not pol.present:
        console.print("  Policy file present: [dim]Not found (optional)[/]")
    else:
        console.print(f"  Policy file present: [success]YES[/] ({escape(pol.path)})")
        if pol.valid:
            _check_line(console, "Policy valid", True)
        for err in pol.errors:
            _check_line(console, "Policy valid", False, err)

    console.print()
    if result.overall_healthy:
        console.print("[success]Environment healthy[/]")
    else:
        console.print("[error]Environment has problems[/]")
