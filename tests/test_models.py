"""Tests for data models."""

from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from household_memory.models import (
    SCHEMA_VERSION,
    EpisodicMemoryDocument,
    ItemIdentifier,
    ItemSignal,
    PurchaseRecord,
    RunPhase,
    SubstitutionHistoryDocument,
    SubstitutionOutcome,
    Weekday,
    average_quantity,
    purchase_frequency,
    reference_time,
    typical_price,
)


def utc(year, month, day, hour=0):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


class TestItemIdentifier:
    """Tests for ItemIdentifier model."""

    def test_create_minimal(self):
        """Create identifier with just a name."""
        item = ItemIdentifier(name="Milk")
        assert item.name == "Milk"
        assert item.sku is None
        assert item.barcode is None
        assert item.category is None

    def test_empty_name_rejected(self):
        """Names must not be empty."""
        with pytest.raises(ValidationError):
            ItemIdentifier(name="")

    def test_camel_case_dump(self):
        """JSON keys are camelCase, attributes snake_case."""
        record = PurchaseRecord(date=utc(2026, 1, 1), order_id="o-1")
        dumped = record.model_dump(by_alias=True)
        assert "orderId" in dumped
        assert record.order_id == "o-1"

    def test_populate_by_alias(self):
        """Models accept camelCase keys."""
        record = PurchaseRecord.model_validate({"date": "2026-01-01", "orderId": "o-2"})
        assert record.order_id == "o-2"


class TestUtcCoercion:
    """Tests for timestamp coercion."""

    def test_naive_datetime_becomes_utc(self):
        """Naive datetimes are taken as UTC."""
        record = PurchaseRecord(date=datetime(2026, 1, 1, 12, 0))
        assert record.date.tzinfo is not None
        assert record.date == utc(2026, 1, 1, 12)

    def test_plain_date_becomes_midnight(self):
        """Plain dates become UTC midnight."""
        record = PurchaseRecord(date=date(2026, 3, 5))
        assert record.date == utc(2026, 3, 5)

    def test_offset_converted_to_utc(self):
        """Aware datetimes are converted to UTC."""
        plus_two = timezone(timedelta(hours=2))
        record = PurchaseRecord(date=datetime(2026, 1, 1, 12, 0, tzinfo=plus_two))
        assert record.date == utc(2026, 1, 1, 10)

    def test_reference_time(self):
        """Reference times are aware UTC, defaulting to now."""
        assert reference_time(datetime(2026, 1, 1, 12, 0)) == utc(2026, 1, 1, 12)
        assert reference_time(utc(2026, 1, 1)).tzinfo is not None
        assert reference_time().tzinfo is not None

    def test_iso_string_with_z(self):
        """ISO strings with a Z suffix parse as UTC."""
        record = PurchaseRecord(date="2026-01-01T10:00:00Z")
        assert record.date == utc(2026, 1, 1, 10)


class TestPurchaseRecord:
    """Tests for PurchaseRecord model."""

    def test_defaults(self):
        """Quantity defaults to 1."""
        record = PurchaseRecord(date=utc(2026, 1, 1))
        assert record.quantity == 1.0
        assert record.price is None

    def test_frozen(self):
        """Purchase records cannot be modified."""
        record = PurchaseRecord(date=utc(2026, 1, 1))
        with pytest.raises(ValidationError):
            record.quantity = 3

    def test_negative_quantity_rejected(self):
        """Quantity must not be negative."""
        with pytest.raises(ValidationError):
            PurchaseRecord(date=utc(2026, 1, 1), quantity=-1)


class TestDerivedSignals:
    """Tests for the pure derivation functions."""

    def test_average_quantity(self):
        """Mean quantity over all purchases."""
        history = [
            PurchaseRecord(date=utc(2026, 1, 1), quantity=1),
            PurchaseRecord(date=utc(2026, 1, 8), quantity=3),
        ]
        assert average_quantity(history) == 2.0
        assert average_quantity([]) is None

    def test_typical_price_odd(self):
        """Median of an odd number of prices."""
        history = [
            PurchaseRecord(date=utc(2026, 1, d), price=p)
            for d, p in [(1, 1.0), (2, 3.0), (3, 2.0)]
        ]
        assert typical_price(history) == 2.0

    def test_typical_price_even_uses_upper_median(self):
        """Even counts use the upper middle value."""
        history = [
            PurchaseRecord(date=utc(2026, 1, d), price=p)
            for d, p in [(1, 1.0), (2, 2.0), (3, 3.0), (4, 4.0)]
        ]
        assert typical_price(history) == 3.0

    def test_typical_price_uses_recent_five(self):
        """Only the five most recent purchases count."""
        history = [PurchaseRecord(date=utc(2026, 1, 1), price=100.0)] + [
            PurchaseRecord(date=utc(2026, 2, d), price=2.0) for d in range(1, 6)
        ]
        assert typical_price(history) == 2.0

    def test_typical_price_skips_missing(self):
        """Records without a price are ignored."""
        history = [
            PurchaseRecord(date=utc(2026, 1, 1)),
            PurchaseRecord(date=utc(2026, 1, 2), price=4.5),
        ]
        assert typical_price(history) == 4.5
        assert typical_price([PurchaseRecord(date=utc(2026, 1, 1))]) is None

    def test_purchase_frequency(self):
        """Purchases per 30 days across the history span."""
        history = [
            PurchaseRecord(date=utc(2026, 1, 1)),
            PurchaseRecord(date=utc(2026, 1, 31)),
        ]
        assert purchase_frequency(history) == pytest.approx(2.0)

    def test_purchase_frequency_needs_span(self):
        """One record or a zero span gives no frequency."""
        same_day = [PurchaseRecord(date=utc(2026, 1, 1)), PurchaseRecord(date=utc(2026, 1, 1))]
        assert purchase_frequency(same_day) is None
        assert purchase_frequency(same_day[:1]) is None


class TestItemSignal:
    """Tests for ItemSignal model."""

    def test_history_sorted_newest_first(self):
        """Purchase history is ordered most recent first on creation."""
        signal = ItemSignal(
            item=ItemIdentifier(name="Milk"),
            purchase_history=[
                PurchaseRecord(date=utc(2026, 1, 1)),
                PurchaseRecord(date=utc(2026, 3, 1)),
                PurchaseRecord(date=utc(2026, 2, 1)),
            ],
        )
        dates = [p.date for p in signal.purchase_history]
        assert dates == sorted(dates, reverse=True)
        assert signal.last_purchased_at == utc(2026, 3, 1)

    def test_empty_signal(self):
        """Derived fields are None without history."""
        signal = ItemSignal(item=ItemIdentifier(name="Milk"))
        assert signal.average_quantity is None
        assert signal.typical_price is None
        assert signal.purchase_frequency is None
        assert signal.last_purchased_at is None

    def test_derived_fields_dumped_with_aliases(self):
        """Computed fields appear in the camelCase dump."""
        signal = ItemSignal(
            item=ItemIdentifier(name="Milk"),
            purchase_history=[PurchaseRecord(date=utc(2026, 1, 1), quantity=2, price=0.89)],
        )
        dumped = signal.model_dump(by_alias=True)
        assert dumped["averageQuantity"] == 2.0
        assert dumped["typicalPrice"] == 0.89
        assert "lastPurchasedAt" in dumped
        assert "purchaseHistory" in dumped

    def test_round_trip_ignores_derived_keys(self):
        """Dumped signals validate back, derived keys included."""
        signal = ItemSignal(
            item=ItemIdentifier(name="Milk"),
            purchase_history=[PurchaseRecord(date=utc(2026, 1, 1), quantity=2)],
        )
        restored = ItemSignal.model_validate(signal.model_dump(mode="json", by_alias=True))
        assert restored.average_quantity == 2.0
        assert restored.purchase_history == signal.purchase_history


class TestEnums:
    """Tests for enum helpers."""

    def test_run_phase_order(self):
        """Phases are ordered as a run moves through them."""
        assert RunPhase.INIT.order < RunPhase.CART_BUILD.order < RunPhase.COMPLETE.order
        assert RunPhase.ERROR.order > RunPhase.COMPLETE.order

    def test_substitution_outcome_accepted(self):
        """Auto-approved counts as accepted."""
        assert SubstitutionOutcome.ACCEPTED.is_accepted
        assert SubstitutionOutcome.AUTO_APPROVED.is_accepted
        assert not SubstitutionOutcome.REJECTED.is_accepted

    def test_weekday_index(self):
        """Weekday index matches date.weekday()."""
        assert Weekday.MONDAY.index == 0
        assert Weekday.SUNDAY.index == 6
        assert Weekday.SATURDAY.index == date(2026, 10, 24).weekday()


class TestDocuments:
    """Tests for store document models."""

    def test_document_defaults(self):
        """Documents start at the current schema version."""
        doc = SubstitutionHistoryDocument(household_id="h1")
        assert doc.version == SCHEMA_VERSION
        assert doc.records == []

    def test_duplicate_substitution_ids_rejected(self):
        """Substitution record ids must be unique."""
        record = {
            "id": "same",
            "originalItem": {"name": "A"},
            "substituteItem": {"name": "B"},
            "reason": "out of stock",
            "outcome": "accepted",
            "sameBrand": False,
            "sameCategory": True,
        }
        with pytest.raises(ValidationError, match="duplicate"):
            SubstitutionHistoryDocument.model_validate(
                {"householdId": "h1", "records": [record, record]}
            )

    def test_duplicate_run_ids_rejected(self):
        """Run ids must be unique."""
        run = {"runId": "r1", "householdId": "h1"}
        with pytest.raises(ValidationError, match="duplicate"):
            EpisodicMemoryDocument.model_validate({"householdId": "h1", "records": [run, run]})
