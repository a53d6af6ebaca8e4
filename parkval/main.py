"""Mobile Home Park Valuation Wizard — CLI entry point."""

from __future__ import annotations

import sys
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from parkval.utils import project as project_mgr

console = Console()

BANNER = """
[bold blue]╔══════════════════════════════════════════════╗
║   Mobile Home Park Valuation Wizard          ║
║   Inputs • Provider Auto-fill • Report       ║
╚══════════════════════════════════════════════╝[/bold blue]
"""


def show_menu() -> str:
    console.print(BANNER)

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", width=4)
    table.add_column()
    table.add_column(style="dim")

    table.add_row("1", "New Project", "Create a project and load template defaults")
    table.add_row("2", "Auto-fill", "Fetch parcel + tax data from a provider")
    table.add_row("3", "Edit Inputs", "Set a field value by hand")
    table.add_row("4", "Export Report", "Write inputs into the template workbook")
    table.add_row("5", "Group P&L", "Group income and expense line items with Gemini")
    table.add_row("", "", "")
    table.add_row("P", "Project Manager", "List / select / view projects")
    table.add_row("Q", "Quit", "")

    console.print(table)
    return Prompt.ask("\nSelect", choices=["1", "2", "3", "4", "5", "p", "P", "q", "Q"], default="1")


def project_manager_menu() -> Path | None:
    """Browse and select existing projects."""
    projects = project_mgr.list_projects()
    if not projects:
        console.print("[yellow]No projects found. Create one first.[/yellow]")
        return None

    console.print("\n[bold]Existing Projects[/bold]")
    table = Table()
    table.add_column("#", justify="right", width=4)
    table.add_column("Name", style="cyan")
    table.add_column("Address")
    table.add_column("Created")
    table.add_column("Report", justify="center")

    for i, p in enumerate(projects, 1):
        meta = project_mgr.load_project(p)
        table.add_row(
            str(i),
            meta.get("name", p.name),
            meta.get("address", ""),
            meta.get("created_at", "")[:10],
            "[green]✓[/green]" if meta.get("report_status") == "exported" else "—",
        )

    console.print(table)
    choice = Prompt.ask("Select project number (or 'back')", default="back")
    if choice.lower() == "back":
        return None

    try:
        idx = int(choice) - 1
    except ValueError:
        return None
    if 0 <= idx < len(projects):
        return projects[idx]
    return None


def show_inputs(pdir: Path) -> None:
    from parkval.utils.merge import form_discrepancies

    inputs = project_mgr.load_state(pdir, "inputs")
    flags = form_discrepancies(
        inputs,
        project_mgr.load_state(pdir, "pdf_values"),
        project_mgr.load_state(pdir, "api_values"),
    )
    table = Table(title="Inputs")
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_column("Discrepancy", style="yellow")
    for key, value in sorted(inputs.items()):
        f = flags.get(key, {})
        note = "; ".join(
            f"{label}: {f[src]}" for src, label in (("pdf", "document"), ("api", "provider")) if f.get(src)
        )
        table.add_row(key, str(value), note)
    console.print(table)


def show_grouped_pnl(grouped: dict) -> None:
    table = Table(title="Grouped P&L")
    table.add_column("Category", style="cyan")
    table.add_column("Total", justify="right")
    for heading, key in (("Income", "pnl_grouped_income"), ("Expenses", "pnl_grouped_expenses")):
        table.add_row(f"[bold]{heading}[/bold]", "")
        for row in grouped.get(key, []):
            table.add_row(f"  {row['category']}", f"${row['total']:,.2f}")
    console.print(table)


def new_project() -> Path:
    from parkval.products.template import load_template_defaults

    name = Prompt.ask("Park name")
    address = Prompt.ask("Park address", default="")
    pdir = project_mgr.create_project(name, address)
    result = load_template_defaults(pdir)
    if result["loaded"]:
        console.print(f"[green]✓ Template defaults loaded:[/green] {len(result['default_values'])} fields")
    else:
        console.print("[yellow]No template workbook found; starting blank.[/yellow]")
    console.print(f"[dim]{pdir}[/dim]")
    return pdir


def edit_inputs(pdir: Path) -> None:
    inputs = project_mgr.load_state(pdir, "inputs")
    key = Prompt.ask("Field key")
    value = Prompt.ask(f"Value for {key}", default=str(inputs.get(key, "")))
    if value.strip():
        inputs[key] = value
    else:
        inputs.pop(key, None)
    project_mgr.save_state(pdir, "inputs", inputs)
    console.print(f"[green]✓ Saved[/green] {key}")


def main():
    """Main CLI loop."""
    selected: Path | None = None

    while True:
        choice = show_menu()

        if choice.lower() == "q":
            console.print("[dim]Goodbye![/dim]")
            sys.exit(0)

        if choice.lower() == "p":
            selected = project_manager_menu()
            if selected:
                meta = project_mgr.load_project(selected)
                console.print(f"\n[green]Selected:[/green] {meta.get('name', '')}")
                show_inputs(selected)
            continue

        try:
            if choice == "1":
                selected = new_project()
                continue

            if selected is None:
                selected = project_manager_menu()
                if selected is None:
                    continue

            if choice == "2":
                from parkval.products.autofill import run_autofill
                run_autofill(selected)

            elif choice == "3":
                edit_inputs(selected)

            elif choice == "4":
                from parkval.products.report import export_report
                result = export_report(selected)
                console.print(f"[green]✓ Report saved:[/green] {result['xlsx']}")
                if result["discrepancies"]:
                    console.print(f"[yellow]⚠ {len(result['discrepancies'])} fields disagree with reference values[/yellow]")

            elif choice == "5":
                from parkval.products.pnl import group_project_pnl
                grouped = group_project_pnl(selected)
                show_grouped_pnl(grouped)

        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted.[/yellow]")
        except SystemExit as e:
            console.print(f"\n[red]{e}[/red]")
        except Exception as e:
            console.print(f"\n[red]Error: {e}[/red]")
            console.print_exception()

        console.print("\n" + "─" * 50 + "\n")

        if not Confirm.ask("Return to main menu?", default=True):
            console.print("[dim]Goodbye![/dim]")
            break


if __name__ == "__main__":
    main()
