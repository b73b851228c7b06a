#!/usr/bin/env python3
"""
AEROGATE CLI
------------
Command-line front end for the admission engine:

    aerogate check NEW [--old OLD] [--status STATUS]   one admission decision
    aerogate scan PATH                                 creation check per manifest
    aerogate image-version IMAGE                       resolved server version

Author: AeroGate Team
Date: 2026-10-18
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    BarColumn,
    TaskProgressColumn
)

from aerogate.cli.formatter import AdmissionFormatter, console
from aerogate.core.engine import AdmissionOrchestrator
from aerogate.core.errors import AdmissionError
from aerogate.core.settings import DEFAULT_SETTINGS, EngineSettings, load_settings
from aerogate.core.versions import get_image_version

__version__ = "1.0.0"

EXIT_ADMITTED = 0
EXIT_REJECTED = 1
EXIT_UNREADABLE = 2


class AeroGateCLI:
    """
    CLI wrapper that translates user commands into engine calls and
    renders the verdicts.
    """

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="aerogate",
            description="AeroGate - admission checks for rack-aware database cluster descriptors",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.formatter = AdmissionFormatter()
        self._setup_args()

    def _setup_args(self):
        """Configures the command-line flags and subcommands."""
        self.parser.add_argument("--version", action="version", version=f"aerogate v{__version__}")
        common = argparse.ArgumentParser(add_help=False)
        common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
        common.add_argument("--config", help="YAML file with engine setting overrides")
        subparsers = self.parser.add_subparsers(dest="command", metavar="Command")

        check_parser = subparsers.add_parser("check", parents=[common], help="Admit or reject one descriptor")
        check_parser.add_argument("new", help="Incoming cluster manifest")
        check_parser.add_argument("--old", help="Previously accepted manifest (makes this an update)")
        check_parser.add_argument("--status", help="Last-observed status manifest")
        check_parser.add_argument("--json", action="store_true", help="Print the verdict as JSON")

        scan_parser = subparsers.add_parser("scan", parents=[common],
                                            help="Run creation checks on every manifest under PATH")
        scan_parser.add_argument("path", help="File or directory to scan")
        scan_parser.add_argument("--ext", default=".yaml", help="File extension filter (default: .yaml)")

        version_parser = subparsers.add_parser("image-version", help="Print the server version of an image")
        version_parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
        version_parser.add_argument("image", help="Container image reference")

    def print_header(self, subtitle: str):
        console.print(Panel.fit(
            f"[bold cyan]AeroGate v{__version__}[/bold cyan]",
            title=f"[bold white]{subtitle}[/bold white]",
            border_style="cyan"
        ))

    def _settings(self, path: Optional[str]) -> EngineSettings:
        if not path:
            return DEFAULT_SETTINGS
        return load_settings(path)

    def _run_check(self, args: argparse.Namespace, engine: AdmissionOrchestrator) -> int:
        try:
            result = engine.admit_files(
                Path(args.new),
                Path(args.old) if args.old else None,
                Path(args.status) if args.status else None,
            )
        except (ValueError, OSError) as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            return EXIT_UNREADABLE

        if args.json:
            self.formatter.show_json(result)
        else:
            self.formatter.show_result(result, Path(args.new).name)
        return EXIT_ADMITTED if result.allowed else EXIT_REJECTED

    def _run_scan(self, args: argparse.Namespace, engine: AdmissionOrchestrator) -> int:
        input_path = Path(args.path).resolve()
        if not input_path.exists():
            console.print(f"[bold red]Error:[/bold red] Path '{args.path}' not found.")
            return EXIT_UNREADABLE

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(bar_width=40),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console
        ) as progress:
            task_id = progress.add_task("Checking manifests...", total=None)

            def advance(done: int, total: int):
                progress.update(task_id, completed=done, total=total)

            reports = engine.review_directory(input_path, args.ext, progress_callback=advance)

        if not reports:
            console.print("\n[bold yellow]⚠  No manifests found.[/bold yellow]")
            return EXIT_ADMITTED

        self.formatter.print_scan_table(reports)
        summary = engine.generate_summary(reports)
        self.formatter.print_summary(summary)

        if summary["unreadable"]:
            return EXIT_UNREADABLE
        return EXIT_REJECTED if summary["rejected"] else EXIT_ADMITTED

    def _run_image_version(self, args: argparse.Namespace) -> int:
        try:
            console.print(get_image_version(args.image))
        except AdmissionError as e:
            console.print(f"[bold red]Error:[/bold red] {e.message}")
            return EXIT_REJECTED
        return EXIT_ADMITTED

    def run(self, argv=None) -> int:
        """Primary routing entry point; returns the process exit code."""
        args = self.parser.parse_args(argv)
        if not args.command:
            self.print_header("Cluster Admission Checks")
            self.parser.print_help()
            return EXIT_ADMITTED

        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )

        if args.command == "image-version":
            return self._run_image_version(args)

        try:
            settings = self._settings(args.config)
        except (ValueError, OSError) as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            return EXIT_UNREADABLE
        engine = AdmissionOrchestrator(settings)

        if args.command == "check":
            return self._run_check(args, engine)
        if args.command == "scan":
            self.print_header("Admission Scan")
            return self._run_scan(args, engine)

        self.parser.print_help()
        return EXIT_ADMITTED


def main():
    """Application entry point with interrupt handling."""
    try:
        sys.exit(AeroGateCLI().run())
    except KeyboardInterrupt:
        console.print("\n[bold red]Terminated by user.[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
