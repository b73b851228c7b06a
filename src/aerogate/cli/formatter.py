# src/aerogate/cli/formatter.py
import json
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from aerogate.core.engine import AdmissionResult

# Shared console so that progress bars and panels interleave cleanly
console = Console()


class AdmissionFormatter:
    """
    AdmissionFormatter: renders admission verdicts, scan tables and
    summaries for the terminal.
    """

    def show_result(self, result: AdmissionResult, file_name: str):
        """One panel per verdict: green when admitted, red when rejected."""
        if result.allowed:
            body = "[bold green]ADMITTED[/bold green]"
            border = "green"
        else:
            body = (
                f"[bold red]REJECTED[/bold red] ([yellow]{result.reason.value}[/yellow])\n\n"
                f"[white]{result.message}[/white]"
            )
            if result.field_path:
                body += f"\n\n[dim]field:[/dim] {result.field_path}"
            if result.bound is not None:
                body += f"\n[dim]safe bound:[/dim] [bold cyan]{result.bound}[/bold cyan]"
            border = "red"

        console.print(Panel(body, title=f"Admission: {file_name}", border_style=border, expand=False))
        self.show_warnings(result.warnings)

    def show_warnings(self, warnings: List[str]):
        for warning in warnings:
            console.print(f"[bold yellow]⚠  Warning:[/bold yellow] {warning}")

    def show_json(self, result: AdmissionResult):
        console.print_json(json.dumps(result.to_dict()))

    def print_scan_table(self, reports: List[Dict[str, Any]]):
        """Builds the table shown at the end of a directory scan."""
        table = Table(title="AeroGate Admission Report", show_lines=True, header_style="bold magenta")
        table.add_column("File Path", style="cyan")
        table.add_column("Status", style="bold")
        table.add_column("Reason")
        table.add_column("Message", overflow="fold")

        for r in reports:
            status = r.get("status", "REJECTED")
            color = "green" if status == "ADMITTED" else "yellow" if status == "UNREADABLE" else "red"
            table.add_row(
                str(r.get("file_path")),
                f"[{color}]{status}[/{color}]",
                str(r.get("reason") or ""),
                r.get("message") or "",
            )
        console.print(table)

    def print_summary(self, summary: Dict[str, Any]):
        console.print(Panel(
            f"[bold white]Summary Report[/bold white]\n"
            f"════════════════════════════════════════\n"
            f"Total Files:  {summary['total_files']}\n"
            f"Admitted:     [green]{summary['admitted']}[/green]\n"
            f"Rejected:     [red]{summary['rejected']}[/red]\n"
            f"Unreadable:   [yellow]{summary['unreadable']}[/yellow]",
            border_style="dim"
        ))
