"""Tests for output formatting."""

import json
import re
from datetime import date, datetime, time, timezone
from io import StringIO

from rich.console import Console

from household_memory.models import (
    AllergySummary,
    DeliverySlot,
    FrequentItem,
    HouseholdContext,
    ItemIdentifier,
    ItemOverview,
    OverallStatistics,
    PreferencesSummary,
    RunOutcome,
    RunOverview,
    RunStatistics,
    RunSummary,
    SlotStatus,
    SubstituteCandidate,
    SubstitutionOverview,
)
from household_memory.output_formatter import OutputFormatter, as_data
from household_memory.scoring import rank_slots, rank_substitutes


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text."""
    ansi_escape = re.compile(r"\x1b\[[0-9;]*m")
    return ansi_escape.sub("", text)


def rich_formatter(width: int = 120) -> tuple[OutputFormatter, Console]:
    console = Console(file=StringIO(), force_terminal=True, width=width)
    formatter = OutputFormatter(json_mode=False)
    formatter.console = console
    return formatter, console


def sample_statistics() -> OverallStatistics:
    return OverallStatistics(
        items=ItemOverview(total_tracked=12, recent_items=4, high_confidence_cadence=3),
        substitutions=SubstitutionOverview(total=10, acceptance_rate=0.7),
        runs=RunOverview(total=5, success_rate=0.8, avg_duration_ms=45000),
    )


class TestAsData:
    """Tests for the as_data payload helper."""

    def test_single_model(self):
        """A model is dumped under its key."""
        payload = as_data("statistics", sample_statistics())

        assert payload["success"] is True
        assert payload["data"]["statistics"]["items"]["total_tracked"] == 12

    def test_model_list(self):
        """A list of models becomes a list of dicts."""
        payload = as_data("substitutes", [SubstituteCandidate(name="Agros Milk", unit_price=0.79)])

        assert payload["data"]["substitutes"] == [
            {
                "name": "Agros Milk",
                "brand": None,
                "size": None,
                "unit_price": 0.79,
                "category": None,
                "product_url": None,
            }
        ]


class TestOutputFormatterJSON:
    """Tests for JSON output mode."""

    def test_json_output(self, capsys):
        """JSON mode prints the payload as JSON."""
        formatter = OutputFormatter(json_mode=True)
        formatter.output(as_data("statistics", sample_statistics()))
        captured = capsys.readouterr()
        data = json.loads(captured.out)
        assert data["data"]["statistics"]["substitutions"]["acceptance_rate"] == 0.7

    def test_json_output_encodes_dates(self, capsys):
        """Raw dates and datetimes are ISO encoded."""
        formatter = OutputFormatter(json_mode=True)
        formatter.output(
            {
                "success": True,
                "data": {
                    "day": date(2026, 10, 20),
                    "at": datetime(2026, 10, 20, 9, 30, tzinfo=timezone.utc),
                },
            }
        )
        data = json.loads(capsys.readouterr().out)
        assert data["data"]["day"] == "2026-10-20"
        assert data["data"]["at"].startswith("2026-10-20T09:30:00")

    def test_json_error(self, capsys):
        """JSON error output."""
        formatter = OutputFormatter(json_mode=True)
        formatter.error("Run not found", error_code="RUN_NOT_FOUND")
        captured = capsys.readouterr()
        data = json.loads(captured.out)
        assert data["success"] is False
        assert data["error"] == "Run not found"
        assert data["error_code"] == "RUN_NOT_FOUND"

    def test_json_success(self, capsys):
        """JSON success output."""
        formatter = OutputFormatter(json_mode=True)
        formatter.success("Imported purchases", data={"count": 5})
        captured = capsys.readouterr()
        data = json.loads(captured.out)
        assert data["success"] is True
        assert data["message"] == "Imported purchases"
        assert data["data"]["count"] == 5

    def test_json_warning(self, capsys):
        """JSON warning output."""
        formatter = OutputFormatter(json_mode=True)
        formatter.warning("Schema migrated")
        captured = capsys.readouterr()
        data = json.loads(captured.out)
        assert data["warning"] == "Schema migrated"


class TestOutputFormatterRich:
    """Tests for Rich output mode."""

    def test_rich_mode_initialized(self):
        """Rich mode initializes console."""
        formatter = OutputFormatter(json_mode=False)
        assert formatter.console is not None

    def test_rich_messages(self):
        """Error, success and warning messages are printed."""
        formatter, console = rich_formatter(width=80)

        formatter.error("Test error message")
        formatter.success("Test success message")
        formatter.warning("Test warning message")

        output = strip_ansi(console.file.getvalue())
        assert "Error: Test error message" in output
        assert "Test success message" in output
        assert "Test warning message" in output

    def test_render_statistics(self):
        """Renders overall statistics."""
        formatter, console = rich_formatter()

        formatter.output(as_data("statistics", sample_statistics()), message="Loaded")

        output = strip_ansi(console.file.getvalue())
        assert "Loaded" in output
        assert "Tracked: 12" in output
        assert "Acceptance rate: 70%" in output
        assert "Average duration: 45.0s" in output

    def test_render_context(self):
        """Renders a household context."""
        formatter, console = rich_formatter()
        context = HouseholdContext(
            household_id="casa-silva",
            preferences=PreferencesSummary(
                dietary_restrictions=["vegetarian"],
                allergies=[AllergySummary(allergen="peanuts", severity="severe")],
                preferred_brands=["Mimosa"],
            ),
            frequent_items=[
                FrequentItem(
                    item=ItemIdentifier(name="Leite Mimosa"),
                    purchase_frequency=4.3,
                    average_quantity=2,
                )
            ],
            last_run_summary=RunSummary(
                run_id="run-7",
                completed_at=datetime(2026, 10, 18, tzinfo=timezone.utc),
                outcome=RunOutcome.SUCCESS,
                items_in_cart=14,
            ),
        )

        formatter.output(as_data("context", context))

        output = strip_ansi(console.file.getvalue())
        assert "Household: casa-silva" in output
        assert "Diet: vegetarian" in output
        assert "peanuts (severe)" in output
        assert "Preferred brands: Mimosa" in output
        assert "Leite Mimosa" in output
        assert "4.3" in output
        assert "Last run: run-7 - success (14 items)" in output

    def test_render_empty_context(self):
        """A household without history says so."""
        formatter, console = rich_formatter()
        context = HouseholdContext(household_id="empty", preferences=PreferencesSummary())

        formatter.output(as_data("context", context))

        output = strip_ansi(console.file.getvalue())
        assert "No purchase history yet" in output
        assert "Last run" not in output

    def test_render_slots(self):
        """Renders ranked delivery slots."""
        formatter, console = rich_formatter()
        ranked = rank_slots(
            [
                DeliverySlot(
                    slot_id="tuesday",
                    date=date(2026, 10, 20),
                    start_time=time(9),
                    end_time=time(11),
                    status=SlotStatus.AVAILABLE,
                    delivery_cost=0.0,
                )
            ],
            today=date(2026, 10, 19),
        )

        formatter.output(as_data("slots", ranked))

        output = strip_ansi(console.file.getvalue())
        assert "Delivery Slots" in output
        assert "2026-10-20" in output
        assert "09:00-11:00" in output

    def test_render_no_slots(self):
        """An empty ranking prints a note."""
        formatter, console = rich_formatter()
        formatter.output({"success": True, "data": {"slots": []}})
        assert "No delivery slots to rank" in strip_ansi(console.file.getvalue())

    def test_render_substitutes(self):
        """Renders ranked substitutes with their price delta."""
        formatter, console = rich_formatter()
        original = SubstituteCandidate(name="Mimosa Milk", brand="Mimosa", unit_price=1.0)
        ranked = rank_substitutes(
            [SubstituteCandidate(name="Agros Milk", brand="Agros", unit_price=1.2)], original
        )

        formatter.output(as_data("substitutes", ranked))

        output = strip_ansi(console.file.getvalue())
        assert "Agros Milk" in output
        assert "+0.20" in output

    def test_render_run_statistics(self):
        """Renders run statistics."""
        formatter, console = rich_formatter()
        stats = RunStatistics(
            total_runs=4,
            successful_runs=3,
            failed_runs=1,
            success_rate=0.75,
            avg_items_added=12.5,
            substitution_acceptance_rate=0.5,
        )

        formatter.output(as_data("run_statistics", stats))

        output = strip_ansi(console.file.getvalue())
        assert "Succeeded: 3" in output
        assert "Failed: 1" in output
        assert "Success rate: 75%" in output
        assert "Average items added: 12.5" in output
