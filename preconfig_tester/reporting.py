"""Console output for a run, rendered with rich."""

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .models import Candidate, RunSummary, RunVerdict, TrialRecord, TrialVerdict
from .orchestrator import TrialListener
from .preflight import PreflightReport, PreflightVerdict

SEPARATOR = "-" * 48

_PREFLIGHT_TEXT = {
    PreflightVerdict.NO_DPI: "DPI not found, site available directly",
    PreflightVerdict.DPI_DETECTED: "DPI LOCKING FOUND",
    PreflightVerdict.ISP_BLOCKED: "SITE LOCKED BY YOUR INTERNET PROVIDER",
    PreflightVerdict.NO_CONNECTION: "No connection with site",
    PreflightVerdict.UNCLEAR: "Check result is unclear",
}

_PREFLIGHT_STYLE = {
    PreflightVerdict.NO_DPI: "green",
    PreflightVerdict.DPI_DETECTED: "bold red",
    PreflightVerdict.ISP_BLOCKED: "bold red",
    PreflightVerdict.NO_CONNECTION: "yellow",
    PreflightVerdict.UNCLEAR: "yellow",
}

_VERDICT_STYLE = {
    TrialVerdict.PASS: "green",
    TrialVerdict.FAIL: "red",
    TrialVerdict.SKIP: "yellow",
}


def describe_preflight(verdict: PreflightVerdict) -> str:
    return _PREFLIGHT_TEXT[verdict]


class Reporter(TrialListener):
    """Prints live progress and the final summary."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def start(self, target: str) -> None:
        self.console.print(f"\nStarting testing domain: [bold]{target}[/bold]")
        self.console.print(SEPARATOR)

    def preflight_finished(self, report: PreflightReport) -> None:
        style = _PREFLIGHT_STYLE[report.verdict]
        self.console.print(
            f"Checking result: [{style}]{describe_preflight(report.verdict)}[/{style}]"
        )
        if report.probe.detail:
            self.console.print(f"[dim]{escape(report.probe.detail)}[/dim]")
        if report.verdict is PreflightVerdict.NO_DPI:
            self.console.print("Using DPI spoofer not required.")
        elif report.verdict is PreflightVerdict.NO_CONNECTION:
            self.console.print("Check internet connection and if domain is correct.")
        else:
            self.console.print(SEPARATOR)
            self.console.print("Testing pre-configs...")

    def trial_started(self, candidate: Candidate) -> None:
        self.console.print(f"\nRunning pre-config: [cyan]{escape(str(candidate.path))}[/cyan]")

    def trial_finished(self, record: TrialRecord) -> None:
        if record.verdict is TrialVerdict.PASS:
            self.console.print(
                f"[bold green][SUCCESS] It seems, this pre-config is suitable for you - "
                f"{escape(record.candidate.name)}[/bold green]"
            )
        elif record.verdict is TrialVerdict.SKIP:
            self.console.print(f"[yellow][SKIP] {escape(record.candidate.name)}: {escape(record.reason)}[/yellow]")
        else:
            self.console.print(
                f"[red][FAIL] Failed to establish connection using pre-config: "
                f"{escape(str(record.candidate.path))} ({escape(record.reason)})[/red]"
            )

    def summary(self, summary: RunSummary) -> None:
        if summary.records:
            table = Table(title=f"Pre-configs tested for {summary.target}")
            table.add_column("#", justify="right", style="dim")
            table.add_column("Pre-config", style="cyan")
            table.add_column("Verdict", style="bold")
            table.add_column("Reason")
            table.add_column("Time (s)", justify="right", style="magenta")
            for index, record in enumerate(summary.records, 1):
                style = _VERDICT_STYLE[record.verdict]
                reason = escape(record.reason) + (" [dim](unclassified error)[/dim]" if record.unclassified else "")
                table.add_row(
                    str(index),
                    escape(record.candidate.name),
                    f"[{style}]{record.verdict.value.upper()}[/{style}]",
                    reason,
                    f"{record.duration:.1f}",
                )
            self.console.print()
            self.console.print(table)

        unclassified = summary.unclassified_records
        if unclassified:
            names = escape(", ".join(r.candidate.name for r in unclassified))
            self.console.print(
                f"[yellow]Transport errors of unknown kind were counted as resets for: {names}[/yellow]"
            )

        self.console.print(self._closing_panel(summary))

    def _closing_panel(self, summary: RunSummary) -> Panel:
        if summary.verdict is RunVerdict.SUCCESS:
            return Panel(
                f"[bold green]Working pre-config: {escape(summary.winner.name)}[/bold green]\n"
                f"[dim]{escape(str(summary.winner.path))}[/dim]",
                title="Success",
                border_style="green",
            )
        if summary.verdict is RunVerdict.NO_CONFIG_NEEDED:
            return Panel(
                f"[green]{summary.target} is reachable directly. No pre-config needed.[/green]",
                title="No DPI",
                border_style="green",
            )
        if summary.verdict is RunVerdict.NETWORK_UNAVAILABLE:
            return Panel(
                f"[yellow]No connection with {summary.target}.[/yellow]\n"
                "Check internet connection and if domain is correct.",
                title="No connection",
                border_style="yellow",
            )
        return Panel(
            "[red]Unfortunately, not found pre-config we can establish connection with :([/red]\n"
            "Try to run BLOCKCHECK, to find necessary parameters for BAT file.",
            title="Nothing worked",
            border_style="red",
        )
