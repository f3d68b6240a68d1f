"""Household memory: the stores of one household behind a single handle.

A HouseholdMemory is created by the caller and passed to whatever needs
household data. It owns one instance of each store, feeds imported orders
into them and assembles the read-only context snapshot used for planning.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Any

from .cadence import CadenceStore
from .config import CadenceConfig, ConfigManager, RetentionConfig, ScoringConfig
from .data_store import BaseStore
from .episodic_memory import EpisodicMemoryStore
from .item_matching import item_key, same_brand
from .item_signals import ItemSignalStore
from .models import (
    AllergySummary,
    BrandPreferenceLevel,
    DeliverySlot,
    EpisodicMemoryRecord,
    FrequentItem,
    HouseholdContext,
    ItemIdentifier,
    ItemOverview,
    ItemSignal,
    OrderImport,
    OverallStatistics,
    PreferencesSummary,
    PurchaseRecord,
    RankedSlot,
    RankedSubstitute,
    RecentItem,
    RunOutcome,
    RunOverview,
    RunPhase,
    RunSummary,
    SubstituteCandidate,
    SubstitutionInsights,
    SubstitutionOutcome,
    SubstitutionOverview,
    SubstitutionRecord,
    reference_time,
)
from .preferences import HouseholdPreferencesStore
from .scoring import rank_slots, rank_substitutes
from .substitution_history import SubstitutionHistoryStore, price_delta

logger = logging.getLogger(__name__)

BRAND_TOLERANCE_LIMIT = 10


class HouseholdMemory:
    """All persistent memory of one household."""

    def __init__(
        self,
        household_id: str,
        data_dir: Path | None = None,
        scoring: ScoringConfig | None = None,
        cadence: CadenceConfig | None = None,
        retention: RetentionConfig | None = None,
    ):
        """Initialize household memory.

        Args:
            household_id: Household whose data is managed
            data_dir: Root data directory. Defaults to ./data
            scoring: Scoring weights and thresholds
            cadence: Restock cadence settings
            retention: History retention settings
        """
        self.household_id = household_id
        self.scoring_config = scoring or ScoringConfig()
        self.cadence_config = cadence or CadenceConfig()
        self.retention = retention or RetentionConfig()

        self.preferences = HouseholdPreferencesStore(household_id, data_dir)
        self.item_signals = ItemSignalStore(household_id, data_dir)
        self.cadence = CadenceStore(household_id, data_dir)
        self.substitutions = SubstitutionHistoryStore(household_id, data_dir)
        self.episodes = EpisodicMemoryStore(household_id, data_dir)

    @property
    def stores(self) -> tuple[BaseStore, ...]:
        return (
            self.preferences,
            self.item_signals,
            self.cadence,
            self.substitutions,
            self.episodes,
        )

    # --- Import ---

    def import_purchase_history(self, orders: Iterable[OrderImport | dict[str, Any]]) -> int:
        """Feed imported orders into item signals and cadences.

        Every order line becomes a purchase record. Purchase dates are then
        grouped per item (by SKU, else name) to learn cadences.

        Args:
            orders: OrderImport objects or equivalent dicts

        Returns:
            Number of purchase records imported
        """
        parsed = [o if isinstance(o, OrderImport) else OrderImport.model_validate(o) for o in orders]

        entries: list[tuple[ItemIdentifier, PurchaseRecord]] = []
        items: dict[str, ItemIdentifier] = {}
        dates: dict[str, list[datetime]] = {}
        for order in parsed:
            for line in order.items:
                entries.append(
                    (
                        line.item,
                        PurchaseRecord(
                            date=order.date,
                            quantity=line.quantity,
                            price=line.price,
                            order_id=order.order_id,
                        ),
                    )
                )
                key = item_key(line.item)
                items.setdefault(key, line.item)
                dates.setdefault(key, []).append(order.date)

        count = self.item_signals.bulk_add_purchases(entries)
        self.cadence.learn_from_purchase_history(
            (items[key], item_dates) for key, item_dates in dates.items()
        )
        logger.info("Imported %d orders (%d purchases)", len(parsed), count)
        return count

    # --- Context ---

    def load_household_context(self, now: datetime | None = None) -> HouseholdContext:
        """Assemble the snapshot decision-makers read household data from.

        Args:
            now: Reference time for the recent-items window

        Returns:
            HouseholdContext built from every store
        """
        prefs = self.preferences.get_preferences()
        summary = PreferencesSummary(
            dietary_restrictions=[r.value for r in prefs.dietary_restrictions],
            allergies=[
                AllergySummary(allergen=a.allergen, severity=a.severity.value)
                for a in prefs.allergies
            ],
            preferred_brands=[
                b.brand
                for b in prefs.brand_preferences
                if b.preference == BrandPreferenceLevel.PREFERRED
            ],
            avoided_brands=[
                b.brand for b in prefs.brand_preferences if b.preference == BrandPreferenceLevel.AVOID
            ],
            budget_constraints=prefs.budget_constraints,
            delivery_preferences=prefs.delivery_preferences,
        )

        recent = self.item_signals.get_recent_items(self.retention.recent_item_days, now=now)
        frequent = self.item_signals.get_frequent_items(self.retention.frequent_item_limit)

        stats = self.substitutions.get_statistics()
        tolerance = self.substitutions.get_price_delta_tolerance()
        brands = self.substitutions.get_brand_tolerance_scores()

        return HouseholdContext(
            household_id=self.household_id,
            preferences=summary,
            recent_items=[self._recent_item(s) for s in recent],
            frequent_items=[
                FrequentItem(
                    item=s.item,
                    purchase_frequency=s.purchase_frequency or 0.0,
                    average_quantity=s.average_quantity or 1.0,
                )
                for s in frequent
            ],
            substitution_insights=SubstitutionInsights(
                acceptance_rate=stats.acceptance_rate,
                price_delta_tolerance=tolerance.max_accepted_percent,
                brand_tolerance=brands[:BRAND_TOLERANCE_LIMIT],
            ),
            last_run_summary=self._run_summary(self.episodes.get_last_completed_run()),
        )

    @staticmethod
    def _recent_item(signal: ItemSignal) -> RecentItem:
        return RecentItem(
            item=signal.item,
            last_purchased=signal.last_purchased_at,
            typical_quantity=signal.average_quantity or 1.0,
            typical_price=signal.typical_price,
        )

    @staticmethod
    def _run_summary(run: EpisodicMemoryRecord | None) -> RunSummary | None:
        if run is None:
            return None
        return RunSummary(
            run_id=run.run_id,
            completed_at=run.completed_at or run.started_at,
            outcome=run.outcome,
            items_in_cart=run.final_cart_item_count or 0,
            user_approved=run.user_approved,
        )

    # --- Decisions ---

    def find_item_signal(self, item: ItemIdentifier) -> ItemSignal | None:
        """Resolve an item by identity, then by similarity."""
        return self.item_signals.find_signal(item, self.scoring_config.similarity_threshold)

    def items_due_for_restock(self, now: datetime | None = None) -> list[ItemSignal]:
        """Tracked items whose cadence says they are due again."""
        reference = reference_time(now)
        due = []
        for signal in self.item_signals.get_all_signals():
            if signal.last_purchased_at is None:
                continue
            days = (reference - signal.last_purchased_at).total_seconds() / 86400
            if self.cadence.is_due_for_restock(
                signal.item, days, threshold=self.cadence_config.restock_threshold
            ):
                due.append(signal)
        return due

    def rank_delivery_slots(
        self, slots: Iterable[DeliverySlot], today: date | None = None
    ) -> list[RankedSlot]:
        """Rank slots against this household's delivery preferences."""
        preferences = self.preferences.get_slot_preferences(self.scoring_config.max_delivery_cost)
        return rank_slots(slots, preferences, self.scoring_config.slot_weights, today)

    def rank_substitutes(
        self, candidates: Iterable[SubstituteCandidate], original: SubstituteCandidate
    ) -> list[RankedSubstitute]:
        """Rank substitutes, adjusted by past decisions on the same pairs."""
        return rank_substitutes(
            candidates,
            original,
            self.scoring_config.substitute_weights,
            self.substitutions.get_substitution_patterns(),
        )

    # --- Feedback ---

    def record_substitution(
        self,
        original_item: ItemIdentifier,
        substitute_item: ItemIdentifier,
        *,
        reason: str,
        outcome: SubstitutionOutcome,
        original_price: float | None = None,
        substitute_price: float | None = None,
        user_feedback: str | None = None,
        similar_quality: bool | None = None,
        run_id: str | None = None,
    ) -> SubstitutionRecord:
        """Record the outcome of a substitution.

        Price delta, brand and category flags are derived from the items.

        Returns:
            The stored SubstitutionRecord
        """
        delta, percent = price_delta(original_price, substitute_price)
        record = SubstitutionRecord(
            original_item=original_item,
            substitute_item=substitute_item,
            reason=reason,
            original_price=original_price,
            substitute_price=substitute_price,
            price_delta=delta,
            price_delta_percent=percent,
            outcome=outcome,
            user_feedback=user_feedback,
            same_brand=same_brand(original_item, substitute_item),
            same_category=original_item.category == substitute_item.category,
            similar_quality=similar_quality,
            run_id=run_id,
        )
        return self.substitutions.add_record(record)

    def start_run(self, run_id: str, agent_version: str | None = None) -> EpisodicMemoryRecord:
        return self.episodes.start_run(run_id, agent_version)

    def complete_run(
        self, run_id: str, outcome: RunOutcome, final_phase: RunPhase
    ) -> EpisodicMemoryRecord:
        return self.episodes.complete_run(run_id, outcome, final_phase)

    # --- Maintenance ---

    def get_overall_statistics(self, now: datetime | None = None) -> OverallStatistics:
        """Headline numbers across all stores."""
        substitution_stats = self.substitutions.get_statistics()
        run_stats = self.episodes.get_statistics()

        return OverallStatistics(
            items=ItemOverview(
                total_tracked=len(self.item_signals.get_all_signals()),
                recent_items=len(
                    self.item_signals.get_recent_items(self.retention.recent_item_days, now=now)
                ),
                high_confidence_cadence=len(
                    self.cadence.get_high_confidence_items(self.cadence_config.high_confidence)
                ),
            ),
            substitutions=SubstitutionOverview(
                total=substitution_stats.total_substitutions,
                acceptance_rate=substitution_stats.acceptance_rate,
            ),
            runs=RunOverview(
                total=run_stats.total_runs,
                success_rate=run_stats.success_rate,
                avg_duration_ms=run_stats.avg_duration_ms,
            ),
        )

    def cleanup(
        self,
        keep_item_purchases: int | None = None,
        keep_substitution_days: int | None = None,
        keep_episodic_days: int | None = None,
    ) -> dict[str, int]:
        """Trim old history in every store.

        Unset limits fall back to the retention configuration.

        Returns:
            Number of entries removed per store
        """
        removed = {
            "purchases": self.item_signals.cleanup_old_purchases(
                _or_default(keep_item_purchases, self.retention.keep_item_purchases)
            ),
            "substitutions": self.substitutions.cleanup_old_records(
                _or_default(keep_substitution_days, self.retention.keep_substitution_days)
            ),
            "runs": self.episodes.cleanup_old_records(
                _or_default(keep_episodic_days, self.retention.keep_episodic_days)
            ),
        }
        logger.info("Cleanup for household %s: %s", self.household_id, removed)
        return removed

    def reload_all(self) -> None:
        """Reload every store that has been loaded."""
        for store in self.stores:
            if store.is_loaded:
                store.reload()


def _or_default(value: int | None, default: int) -> int:
    return default if value is None else value


def create_memory(config: ConfigManager | None = None, household_id: str | None = None) -> HouseholdMemory:
    """Create a HouseholdMemory from configuration.

    Args:
        config: ConfigManager to use. Loads the default one if not provided
        household_id: Overrides the configured household

    Returns:
        Configured HouseholdMemory
    """
    config = config or ConfigManager()
    return HouseholdMemory(
        household_id or config.data.household_id,
        data_dir=config.data.storage_dir,
        scoring=config.scoring,
        cadence=config.cadence,
        retention=config.retention,
    )
