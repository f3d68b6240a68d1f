"""Restock cadence inference and the cadence store."""

import logging
import math
from collections.abc import Iterable
from datetime import date, datetime
from statistics import mean

from .data_store import BaseStore
from .item_matching import normalize_name
from .models import (
    CadenceEstimate,
    CadenceSignalsDocument,
    CadenceSource,
    CadenceStatistics,
    CategoryCadence,
    EffectiveCadence,
    ItemCadence,
    ItemIdentifier,
    coerce_utc,
)
from .scoring import clamp_unit, consistency_factor, sample_factor

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
MIN_DATES = 2
LOW_CONFIDENCE = 0.3
HIGH_CONFIDENCE = 0.7
OVERRIDE_TOLERANCE = 0.2
DEFAULT_RESTOCK_THRESHOLD = 0.8


def _round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


def calculate_cadence(dates: Iterable[datetime | date]) -> CadenceEstimate:
    """Infer a restock interval from purchase dates.

    Intervals are measured in fractional days between consecutive dates.
    Confidence grows with the number of intervals (saturating at 10) and
    shrinks with their coefficient of variation.

    Args:
        dates: Purchase dates in any order

    Returns:
        CadenceEstimate; all zeros when fewer than two dates are given
    """
    ordered = sorted(coerce_utc(d) for d in dates)
    if len(ordered) < MIN_DATES:
        return CadenceEstimate()

    intervals = [
        (later - earlier).total_seconds() / SECONDS_PER_DAY
        for earlier, later in zip(ordered, ordered[1:])
    ]
    confidence = sample_factor(len(intervals)) * consistency_factor(intervals)

    return CadenceEstimate(
        typical=_round_half_up(mean(intervals)),
        min=_round_half_up(min(intervals)),
        max=_round_half_up(max(intervals)),
        confidence=clamp_unit(confidence),
        interval_count=len(intervals),
    )


class CadenceStore(BaseStore[CadenceSignalsDocument]):
    """Stores learned restock cadences per item and per category."""

    file_name = "cadence-signals.json"
    document_model = CadenceSignalsDocument

    # --- Read Operations ---

    def get_all_category_cadences(self) -> list[CategoryCadence]:
        return self.ensure_loaded().category_cadences

    def get_all_item_cadences(self) -> list[ItemCadence]:
        return self.ensure_loaded().item_cadences

    def get_category_cadence(self, category: str) -> CategoryCadence | None:
        """Get cadence for a category (case-insensitive)."""
        key = normalize_name(category)
        for cadence in self.ensure_loaded().category_cadences:
            if normalize_name(cadence.category) == key:
                return cadence
        return None

    def get_item_cadence(self, item: ItemIdentifier) -> ItemCadence | None:
        """Get cadence for an item by SKU, barcode or name."""
        cadences = self.ensure_loaded().item_cadences

        if item.sku:
            for cadence in cadences:
                if cadence.item.sku == item.sku:
                    return cadence

        if item.barcode:
            for cadence in cadences:
                if cadence.item.barcode == item.barcode:
                    return cadence

        name = normalize_name(item.name)
        for cadence in cadences:
            if normalize_name(cadence.item.name) == name:
                return cadence
        return None

    def get_effective_cadence(self, item: ItemIdentifier) -> EffectiveCadence:
        """Resolve the cadence to use for an item.

        Item-level cadence wins, then the item's category cadence.

        Returns:
            EffectiveCadence with source item, category or none
        """
        item_cadence = self.get_item_cadence(item)
        if item_cadence is not None:
            return EffectiveCadence(
                typical_restock_days=item_cadence.typical_restock_days,
                min_restock_days=item_cadence.min_restock_days,
                max_restock_days=item_cadence.max_restock_days,
                confidence=item_cadence.confidence,
                source=CadenceSource.ITEM,
            )

        if item.category:
            category_cadence = self.get_category_cadence(item.category)
            if category_cadence is not None:
                return EffectiveCadence(
                    typical_restock_days=category_cadence.typical_restock_days,
                    min_restock_days=category_cadence.min_restock_days,
                    max_restock_days=category_cadence.max_restock_days,
                    confidence=category_cadence.confidence,
                    source=CadenceSource.CATEGORY,
                )

        return EffectiveCadence()

    def is_due_for_restock(
        self,
        item: ItemIdentifier,
        days_since_last_purchase: float,
        threshold: float = DEFAULT_RESTOCK_THRESHOLD,
    ) -> bool:
        """Decide whether an item should be restocked.

        Without a trustworthy cadence the answer is always True, so an item
        is never suppressed on thin evidence.

        Args:
            item: Item to check
            days_since_last_purchase: Days since the item was last bought
            threshold: Fraction of the typical interval that counts as due

        Returns:
            True if the item is due
        """
        cadence = self.get_effective_cadence(item)
        if cadence.source == CadenceSource.NONE or cadence.confidence < LOW_CONFIDENCE:
            return True
        return days_since_last_purchase >= cadence.typical_restock_days * threshold

    def get_high_confidence_items(
        self, min_confidence: float = HIGH_CONFIDENCE
    ) -> list[ItemCadence]:
        """Item cadences at or above min_confidence, most confident first."""
        items = [c for c in self.ensure_loaded().item_cadences if c.confidence >= min_confidence]
        items.sort(key=lambda c: c.confidence, reverse=True)
        return items

    def get_statistics(self) -> CadenceStatistics:
        document = self.ensure_loaded()
        categories = document.category_cadences
        items = document.item_cadences
        return CadenceStatistics(
            total_categories=len(categories),
            total_items=len(items),
            avg_category_confidence=mean(c.confidence for c in categories) if categories else 0.0,
            avg_item_confidence=mean(c.confidence for c in items) if items else 0.0,
            high_confidence_items_count=sum(1 for c in items if c.confidence >= HIGH_CONFIDENCE),
        )

    # --- Write Operations ---

    def _set_category_cadence(self, category: str, dates: list[datetime | date]) -> CategoryCadence:
        estimate = calculate_cadence(dates)
        cadence = CategoryCadence(
            category=category,
            typical_restock_days=estimate.typical,
            min_restock_days=estimate.min,
            max_restock_days=estimate.max,
            sample_size=len(dates),
            confidence=estimate.confidence,
            last_purchased_at=max(coerce_utc(d) for d in dates) if dates else None,
        )
        cadences = self.document.category_cadences
        key = normalize_name(category)
        for index, existing in enumerate(cadences):
            if normalize_name(existing.category) == key:
                cadences[index] = cadence
                break
        else:
            cadences.append(cadence)
        return cadence

    def _set_item_cadence(self, item: ItemIdentifier, dates: list[datetime | date]) -> ItemCadence:
        estimate = calculate_cadence(dates)

        overrides = False
        if item.category:
            category_cadence = self.get_category_cadence(item.category)
            if category_cadence is not None:
                difference = abs(estimate.typical - category_cadence.typical_restock_days)
                overrides = difference > category_cadence.typical_restock_days * OVERRIDE_TOLERANCE

        cadence = ItemCadence(
            item=item,
            typical_restock_days=estimate.typical,
            min_restock_days=estimate.min,
            max_restock_days=estimate.max,
            sample_size=len(dates),
            confidence=estimate.confidence,
            last_purchased_at=max(coerce_utc(d) for d in dates) if dates else None,
            overrides_category_default=overrides,
        )
        existing = self.get_item_cadence(item)
        cadences = self.document.item_cadences
        if existing is not None:
            cadences[cadences.index(existing)] = cadence
        else:
            cadences.append(cadence)
        return cadence

    def update_category_cadence(
        self, category: str, dates: Iterable[datetime | date]
    ) -> CategoryCadence:
        """Recompute and store the cadence of a category.

        Args:
            category: Category name
            dates: All known purchase dates in the category

        Returns:
            The stored CategoryCadence
        """
        self.ensure_loaded()
        cadence = self._set_category_cadence(category, list(dates))
        self.save()
        return cadence

    def update_item_cadence(self, item: ItemIdentifier, dates: Iterable[datetime | date]) -> ItemCadence:
        """Recompute and store the cadence of an item.

        The cadence is flagged as overriding its category default when its
        typical interval differs from the category's by more than 20%.

        Args:
            item: Item the dates belong to
            dates: All known purchase dates of the item

        Returns:
            The stored ItemCadence
        """
        self.ensure_loaded()
        cadence = self._set_item_cadence(item, list(dates))
        self.save()
        return cadence

    def learn_from_purchase_history(
        self, history: Iterable[tuple[ItemIdentifier, list[datetime | date]]]
    ) -> int:
        """Update item and category cadences from imported purchase dates.

        Category dates are pooled across their items. Categories are updated
        before items so override flags compare against fresh category data.
        Groups with fewer than two dates are skipped. Saves once.

        Args:
            history: (item, purchase dates) pairs

        Returns:
            Number of cadences updated
        """
        self.ensure_loaded()
        entries = [(item, list(dates)) for item, dates in history]

        category_dates: dict[str, list[datetime | date]] = {}
        category_names: dict[str, str] = {}
        for item, dates in entries:
            if item.category:
                key = normalize_name(item.category)
                category_names.setdefault(key, item.category)
                category_dates.setdefault(key, []).extend(dates)

        updated = 0
        for key, dates in category_dates.items():
            if len(dates) >= MIN_DATES:
                self._set_category_cadence(category_names[key], dates)
                updated += 1

        for item, dates in entries:
            if len(dates) >= MIN_DATES:
                self._set_item_cadence(item, dates)
                updated += 1

        self.save()
        logger.info("Learned %d cadences for household %s", updated, self.household_id)
        return updated
