#!/usr/bin/env python3
"""
KYC/KYB Compliance Lifecycle Engine

Loads a JSON data set into the in-memory entity store and runs the engine
against it: ownership resolution, risk assessment and the periodic review
sweep.

Usage:
    python main.py --data test_cases/holding_group.json --party 1 --ownership
    python main.py --data test_cases/holding_group.json --party 1 --assess
    python main.py --data test_cases/holding_group.json --reviews --as-of 2026-01-01T00:00:00+00:00
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Load .env file before other imports
from config import get_config

from engine import ComplianceEngine
from errors import KYCBError
from logger import setup_logging
from store import load_store_from_json


console = Console(force_terminal=True, legacy_windows=True)

RISK_COLORS = {
    "LOW": "green",
    "MEDIUM": "yellow",
    "HIGH": "red",
    "EXTREME": "bold red",
}


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="kycb-engine",
        description="KYC/KYB Compliance Lifecycle Engine - ownership, risk and review lifecycle.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --data test_cases/holding_group.json --party 1 --ownership
    %(prog)s --data test_cases/holding_group.json --party 1 --assess
    %(prog)s --data test_cases/holding_group.json --reviews --as-of 2026-01-01T00:00:00+00:00

Data set format:
    {"CorporateStructure": [{"partyId": 1, "parentEntityId": 2, ...}], "AmlMatch": [...], ...}
        """
    )

    parser.add_argument(
        "--data",
        required=True,
        help="Path to a JSON data set keyed by entity type"
    )

    parser.add_argument(
        "--party",
        type=int,
        help="Party identifier for --ownership / --assess"
    )

    parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        help="Reference instant, ISO 8601 with offset (default: now)"
    )

    parser.add_argument(
        "--ownership",
        action="store_true",
        help="Resolve the party's ownership graph"
    )

    parser.add_argument(
        "--assess",
        action="store_true",
        help="Run a risk assessment for the party"
    )

    parser.add_argument(
        "--reviews",
        action="store_true",
        help="Run the periodic review sweep"
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress progress output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    return parser


def display_ownership(result):
    """Display ancestors and beneficial owners of a party."""
    flags = []
    if result.cycle_detected:
        flags.append("[bold red]cycle detected[/bold red]")
    if result.max_depth_exceeded:
        flags.append("[bold red]max depth exceeded[/bold red]")
    if result.complex_structure:
        flags.append("[yellow]complex structure[/yellow]")

    console.print(Panel(
        f"[bold]Party {result.party_id}[/bold]\n"
        f"As of: {result.as_of.isoformat()}\n"
        f"Ultimate parents: {', '.join(map(str, result.ultimate_parents)) or 'none'}\n"
        f"Flags: {', '.join(flags) or 'none'}",
        title="Ownership Graph",
        border_style="blue"
    ))

    if result.ancestors:
        table = Table(title="Ancestors")
        table.add_column("Entity", style="cyan")
        table.add_column("Effective %", justify="right")
        table.add_column("Paths", justify="right")
        table.add_column("Min depth", justify="right")
        table.add_column("Ultimate", style="dim")
        for a in result.ancestors:
            table.add_row(
                str(a.entity_id), f"{a.effective_percentage:.2f}",
                str(a.path_count), str(a.min_depth), "yes" if a.is_ultimate_parent else "",
            )
        console.print(table)

    if result.beneficial_owners:
        table = Table(title="Beneficial Owners")
        table.add_column("Person", style="cyan")
        table.add_column("Effective %", justify="right")
        table.add_column("Via", style="dim")
        table.add_column("Reportable")
        for owner in result.beneficial_owners:
            table.add_row(
                str(owner.natural_person_id), f"{owner.effective_percentage:.2f}",
                ", ".join(map(str, owner.via_entities)),
                "[bold]yes[/bold]" if owner.reportable else "no",
            )
        console.print(table)


def display_assessment(assessment):
    """Display a risk assessment and its factors."""
    level = assessment.risk_level.value
    color = RISK_COLORS.get(level, "white")
    lines = [
        f"[bold]Party {assessment.party_id}[/bold]",
        f"Risk Level: [{color}]{level}[/{color}] ({assessment.risk_score} pts)",
        f"Category: {assessment.risk_category.value}",
        f"EDD Required: {'[bold red]yes[/bold red]' if assessment.enhanced_due_diligence else 'no'}",
        f"Next Assessment: {assessment.next_assessment_date.date().isoformat()}",
    ]
    if assessment.edd_reasons:
        lines.append(f"EDD Reasons: {', '.join(r.value for r in assessment.edd_reasons)}")
    if assessment.manual_review_required:
        lines.append("[bold red]Manual review required (ownership anomaly)[/bold red]")

    console.print(Panel("\n".join(lines), title="Risk Assessment", border_style="blue"))

    if assessment.risk_factors:
        table = Table(title="Risk Factors")
        table.add_column("Factor", style="cyan")
        table.add_column("Points", justify="right")
        table.add_column("Category", style="dim")
        for rf in assessment.risk_factors:
            table.add_row(rf.factor, str(rf.points), rf.category)
        console.print(table)


def display_reviews(results):
    """Display the changes made by a periodic review sweep."""
    if not results:
        console.print("[green]No reviews due.[/green]")
        return
    table = Table(title="Periodic Review Sweep")
    table.add_column("Entity", style="cyan")
    table.add_column("ID", justify="right")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Triggered", style="dim")
    for r in results:
        table.add_row(r.entity_type, str(r.entity_id), r.from_state or "", r.to_state, ", ".join(r.triggered))
    console.print(table)


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()
    verbose = not args.quiet
    if args.quiet:
        setup_logging(level="WARNING")

    if not (args.ownership or args.assess or args.reviews):
        console.print("[bold red]Error:[/bold red] Provide --ownership, --assess or --reviews.")
        return 1
    if (args.ownership or args.assess) and args.party is None:
        console.print("[bold red]Error:[/bold red] --ownership and --assess require --party.")
        return 1

    data_path = Path(args.data)
    if not data_path.exists():
        console.print(f"[bold red]Error:[/bold red] Data set not found: {args.data}")
        return 1

    if verbose:
        console.print(Panel.fit(
            "[bold blue]KYC/KYB Compliance Lifecycle Engine[/bold blue]\n"
            f"Jurisdiction: {get_config().jurisdiction}",
            border_style="blue"
        ))

    try:
        engine = ComplianceEngine(load_store_from_json(data_path))

        if args.ownership:
            display_ownership(engine.resolve_ownership(args.party, args.as_of))
        if args.assess:
            display_assessment(engine.assess_risk(args.party, args.as_of, agent="cli"))
        if args.reviews:
            display_reviews(engine.run_periodic_reviews(args.as_of))
        return 0

    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        return 130

    except KYCBError as e:
        console.print(f"\n[bold red]{e.error_type}:[/bold red] {e.message}")
        if e.details and verbose:
            console.print(e.details)
        return 1


if __name__ == "__main__":
    sys.exit(main())
