"""Output formatting for diagnostics and programmatic use."""

import json
from typing import Any

from pydantic import BaseModel
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .data_store import JSONEncoder


def as_data(key: str, value: BaseModel | list[BaseModel]) -> dict[str, Any]:
    """Wrap a model (or list of models) in the payload shape output() expects."""
    if isinstance(value, list):
        dumped: Any = [v.model_dump(mode="json") for v in value]
    else:
        dumped = value.model_dump(mode="json")
    return {"success": True, "data": {key: dumped}}


class OutputFormatter:
    """Formats output for both Rich terminal and JSON modes."""

    def __init__(self, json_mode: bool = False):
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode
        self.console = Console()

    def output(self, data: dict[str, Any], message: str = "") -> None:
        """Output data in appropriate format.

        Args:
            data: Data to output
            message: Optional message for Rich mode
        """
        if self.json_mode:
            self._output_json(data)
        else:
            self._output_rich(data, message)

    def _output_json(self, data: dict[str, Any]) -> None:
        """Output as JSON to stdout."""
        print(json.dumps(data, cls=JSONEncoder, indent=2))

    def _output_rich(self, data: dict[str, Any], message: str) -> None:
        """Output with Rich formatting."""
        if message:
            self.console.print(f"[green]✓[/green] {message}")

        payload = data.get("data", {})
        if "statistics" in payload:
            self._render_statistics(payload["statistics"])
        elif "context" in payload:
            self._render_context(payload["context"])
        elif "slots" in payload:
            self._render_slots(payload["slots"])
        elif "substitutes" in payload:
            self._render_substitutes(payload["substitutes"])
        elif "run_statistics" in payload:
            self._render_run_statistics(payload["run_statistics"])

    def _render_statistics(self, stats: dict) -> None:
        """Render overall statistics across stores."""
        items = stats["items"]
        substitutions = stats["substitutions"]
        runs = stats["runs"]

        panel = Panel(
            f"""[bold]Items[/bold]
Tracked: {items["total_tracked"]}
Recently bought: {items["recent_items"]}
High-confidence cadences: {items["high_confidence_cadence"]}

[bold]Substitutions[/bold]
Total: {substitutions["total"]}
Acceptance rate: {substitutions["acceptance_rate"]:.0%}

[bold]Runs[/bold]
Total: {runs["total"]}
Success rate: {runs["success_rate"]:.0%}
Average duration: {runs["avg_duration_ms"] / 1000:.1f}s""",
            title="Household Memory",
            border_style="green",
        )
        self.console.print(panel)

    def _render_context(self, context: dict) -> None:
        """Render a household context snapshot."""
        prefs = context["preferences"]
        self.console.print(f"\n[bold]Household: {context['household_id']}[/bold]")
        if prefs["dietary_restrictions"]:
            self.console.print(f"Diet: {', '.join(prefs['dietary_restrictions'])}")
        if prefs["allergies"]:
            allergies = ", ".join(f"{a['allergen']} ({a['severity']})" for a in prefs["allergies"])
            self.console.print(f"[red]Allergies:[/red] {allergies}")
        if prefs["preferred_brands"]:
            self.console.print(f"Preferred brands: {', '.join(prefs['preferred_brands'])}")
        if prefs["avoided_brands"]:
            self.console.print(f"Avoided brands: {', '.join(prefs['avoided_brands'])}")

        frequent = context["frequent_items"]
        if frequent:
            table = Table(title="Frequent Items", show_header=True, header_style="bold cyan")
            table.add_column("Item", style="cyan")
            table.add_column("Per Month", justify="right")
            table.add_column("Avg Qty", justify="right", style="magenta")
            for entry in frequent:
                table.add_row(
                    entry["item"]["name"],
                    f"{entry['purchase_frequency']:.1f}",
                    f"{entry['average_quantity']:g}",
                )
            self.console.print(table)
        else:
            self.console.print("[dim]No purchase history yet[/dim]")

        insights = context["substitution_insights"]
        self.console.print(
            f"Substitution acceptance: {insights['acceptance_rate']:.0%} "
            f"(tolerates up to {insights['price_delta_tolerance']:.0f}% more)"
        )

        last_run = context.get("last_run_summary")
        if last_run:
            self.console.print(
                f"Last run: {last_run['run_id']} - {last_run['outcome']} "
                f"({last_run['items_in_cart']} items)"
            )

    def _render_slots(self, slots: list[dict]) -> None:
        """Render ranked delivery slots."""
        if not slots:
            self.console.print("[dim]No delivery slots to rank[/dim]")
            return

        table = Table(title="Delivery Slots", show_header=True, header_style="bold cyan")
        table.add_column("#", justify="right")
        table.add_column("Date", style="cyan")
        table.add_column("Time", style="green")
        table.add_column("Score", justify="right", style="magenta")
        table.add_column("Why", style="yellow")

        for ranked in slots:
            slot = ranked["slot"]
            table.add_row(
                str(ranked["rank"]),
                slot["date"],
                f"{slot['start_time'][:5]}-{slot['end_time'][:5]}",
                f"{ranked['score']['overall']:.2f}",
                ranked["reason"],
            )
        self.console.print(table)

    def _render_substitutes(self, substitutes: list[dict]) -> None:
        """Render ranked substitute candidates."""
        if not substitutes:
            self.console.print("[dim]No substitutes found[/dim]")
            return

        table = Table(title="Substitutes", show_header=True, header_style="bold cyan")
        table.add_column("#", justify="right")
        table.add_column("Product", style="cyan")
        table.add_column("Price Δ", justify="right")
        table.add_column("Score", justify="right", style="magenta")
        table.add_column("Why", style="yellow")

        for ranked in substitutes:
            delta = ranked.get("price_delta")
            table.add_row(
                str(ranked["rank"]),
                ranked["candidate"]["name"],
                f"{delta:+.2f}" if delta is not None else "-",
                f"{ranked['score']['overall']:.2f}",
                ranked["reason"],
            )
        self.console.print(table)

    def _render_run_statistics(self, stats: dict) -> None:
        """Render run statistics."""
        self.console.print("\n[bold]Runs[/bold]")
        self.console.print(
            f"Total: {stats['total_runs']}  "
            f"[green]Succeeded: {stats['successful_runs']}[/green]  "
            f"[red]Failed: {stats['failed_runs']}[/red]"
        )
        self.console.print(f"Success rate: {stats['success_rate']:.0%}")
        self.console.print(f"Average items added: {stats['avg_items_added']:.1f}")
        self.console.print(
            f"Substitution acceptance: {stats['substitution_acceptance_rate']:.0%}"
        )

    def error(self, message: str, error_code: str | None = None) -> None:
        """Output error message.

        Args:
            message: Error message
            error_code: Optional error code
        """
        if self.json_mode:
            output = {"success": False, "error": message}
            if error_code:
                output["error_code"] = error_code
            print(json.dumps(output))
        else:
            self.console.print(f"[red]✗ Error:[/red] {message}")

    def success(self, message: str, data: dict | None = None) -> None:
        """Output success message.

        Args:
            message: Success message
            data: Optional data to include
        """
        if self.json_mode:
            output: dict[str, Any] = {"success": True, "message": message}
            if data:
                output["data"] = data
            print(json.dumps(output, cls=JSONEncoder))
        else:
            self.console.print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        if self.json_mode:
            print(json.dumps({"warning": message}))
        else:
            self.console.print(f"[yellow]⚠[/yellow] {message}")
