"""Item signal store: per-item purchase ledger with derived signals."""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from .data_store import BaseStore
from .item_matching import calculate_item_similarity, normalize_name
from .models import (
    ItemIdentifier,
    ItemSignal,
    ItemSignalsDocument,
    PurchaseRecord,
    SimilarSignal,
    sort_history,
    reference_time,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.7
DEFAULT_KEEP_COUNT = 50


def _learn_identifiers(signal: ItemSignal, item: ItemIdentifier) -> None:
    """Record a SKU or barcode the stored identifier is missing."""
    update = {}
    if item.sku and not signal.item.sku:
        update["sku"] = item.sku
    if item.barcode and not signal.item.barcode:
        update["barcode"] = item.barcode
    if update:
        logger.debug("Learned %s for '%s'", ", ".join(update), signal.item.name)
        signal.item = signal.item.model_copy(update=update)


class ItemSignalStore(BaseStore[ItemSignalsDocument]):
    """Stores purchase history and derived signals for each item."""

    file_name = "item-signals.json"
    document_model = ItemSignalsDocument

    # --- Read Operations ---

    def get_all_signals(self) -> list[ItemSignal]:
        """Get all item signals."""
        return self.ensure_loaded().signals

    def find_exact_signal(self, item: ItemIdentifier) -> ItemSignal | None:
        """Find the signal for an item by exact identity.

        Matches by SKU first, then barcode, then case-insensitive name.

        Args:
            item: Item to look up

        Returns:
            Matching ItemSignal, or None
        """
        signals = self.ensure_loaded().signals

        if item.sku:
            for signal in signals:
                if signal.item.sku == item.sku:
                    return signal

        if item.barcode:
            for signal in signals:
                if signal.item.barcode == item.barcode:
                    return signal

        name = normalize_name(item.name)
        for signal in signals:
            if normalize_name(signal.item.name) == name:
                return signal

        return None

    def find_similar_signals(
        self, item: ItemIdentifier, threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    ) -> list[SimilarSignal]:
        """Find signals whose similarity to item is at least threshold.

        Args:
            item: Item to compare against
            threshold: Minimum similarity in [0, 1]

        Returns:
            Matches sorted by similarity, highest first
        """
        matches = []
        for signal in self.ensure_loaded().signals:
            similarity = calculate_item_similarity(item, signal.item)
            if similarity >= threshold:
                matches.append(SimilarSignal(signal=signal, similarity=similarity))
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches

    def find_signal(
        self, item: ItemIdentifier, threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    ) -> ItemSignal | None:
        """Resolve an item to a stored signal, falling back to fuzzy matching.

        Returns:
            The exact match, else the most similar signal at or above threshold
        """
        signal = self.find_exact_signal(item)
        if signal is not None:
            return signal
        similar = self.find_similar_signals(item, threshold)
        return similar[0].signal if similar else None

    def get_purchase_history(self, item: ItemIdentifier) -> list[PurchaseRecord]:
        signal = self.find_exact_signal(item)
        return list(signal.purchase_history) if signal else []

    def get_average_quantity(self, item: ItemIdentifier) -> float | None:
        signal = self.find_exact_signal(item)
        return signal.average_quantity if signal else None

    def get_typical_price(self, item: ItemIdentifier) -> float | None:
        signal = self.find_exact_signal(item)
        return signal.typical_price if signal else None

    def get_purchase_frequency(self, item: ItemIdentifier) -> float | None:
        """Purchases per month for an item, if known."""
        signal = self.find_exact_signal(item)
        return signal.purchase_frequency if signal else None

    def get_recent_items(self, days: int, now: datetime | None = None) -> list[ItemSignal]:
        """Get items last purchased within the given number of days.

        Args:
            days: Look-back window in days
            now: Reference time. Defaults to the current UTC time

        Returns:
            Signals purchased on or after the cutoff
        """
        cutoff = reference_time(now) - timedelta(days=days)
        return [
            s
            for s in self.ensure_loaded().signals
            if s.last_purchased_at is not None and s.last_purchased_at >= cutoff
        ]

    def get_frequent_items(self, limit: int = 50) -> list[ItemSignal]:
        """Get the most frequently purchased items.

        Args:
            limit: Maximum number of signals to return

        Returns:
            Signals with a known, positive frequency, highest first
        """
        signals = [
            s
            for s in self.ensure_loaded().signals
            if s.purchase_frequency is not None and s.purchase_frequency > 0
        ]
        signals.sort(key=lambda s: s.purchase_frequency or 0.0, reverse=True)
        return signals[:limit]

    # --- Write Operations ---

    def _find_or_create(self, item: ItemIdentifier) -> ItemSignal:
        signal = self.find_exact_signal(item)
        if signal is None:
            signal = ItemSignal(item=item)
            self.document.signals.append(signal)
            logger.debug("Tracking new item '%s'", item.name)
        else:
            _learn_identifiers(signal, item)
        return signal

    def _record(self, item: ItemIdentifier, purchase: PurchaseRecord) -> ItemSignal:
        signal = self._find_or_create(item)
        signal.purchase_history = sort_history([*signal.purchase_history, purchase])
        signal.updated_at = utc_now()
        return signal

    def add_purchase(self, item: ItemIdentifier, purchase: PurchaseRecord) -> ItemSignal:
        """Record a purchase of an item and save.

        Args:
            item: Item purchased
            purchase: The purchase record

        Returns:
            The updated ItemSignal
        """
        self.ensure_loaded()
        signal = self._record(item, purchase)
        self.save()
        return signal

    def bulk_add_purchases(
        self, entries: Iterable[tuple[ItemIdentifier, PurchaseRecord]]
    ) -> int:
        """Record many purchases with a single save.

        Records are appended as given; they are not de-duplicated against
        history that is already stored.

        Args:
            entries: (item, purchase) pairs

        Returns:
            Number of purchases recorded
        """
        self.ensure_loaded()
        count = 0
        for item, purchase in entries:
            self._record(item, purchase)
            count += 1
        self.save()
        logger.info("Recorded %d purchases for household %s", count, self.household_id)
        return count

    def merge_signal(self, new_signal: ItemSignal) -> ItemSignal:
        """Merge a signal into the store.

        If the item is already known its purchase history is combined with
        new_signal's, keeping one record per (date, order_id) pair.
        Otherwise new_signal is added as is.

        Returns:
            The stored signal
        """
        self.ensure_loaded()
        existing = self.find_exact_signal(new_signal.item)
        if existing is None:
            self.document.signals.append(new_signal)
            self.save()
            return new_signal

        unique: dict[tuple[datetime, str | None], PurchaseRecord] = {}
        for record in [*existing.purchase_history, *new_signal.purchase_history]:
            unique[(record.date, record.order_id)] = record
        _learn_identifiers(existing, new_signal.item)
        existing.purchase_history = sort_history(list(unique.values()))
        if new_signal.preferred_variant and not existing.preferred_variant:
            existing.preferred_variant = new_signal.preferred_variant
        existing.updated_at = utc_now()
        self.save()
        return existing

    def set_preferred_variant(self, item: ItemIdentifier, variant: str) -> bool:
        """Set the preferred variant for a known item.

        Returns:
            True if the item was found and updated
        """
        signal = self.find_exact_signal(item)
        if signal is None:
            return False
        signal.preferred_variant = variant
        signal.updated_at = utc_now()
        self.save()
        return True

    def cleanup_old_purchases(self, keep_count: int = DEFAULT_KEEP_COUNT) -> int:
        """Truncate every purchase history to its newest keep_count records.

        Returns:
            Number of purchase records removed
        """
        removed = 0
        for signal in self.ensure_loaded().signals:
            if len(signal.purchase_history) > keep_count:
                removed += len(signal.purchase_history) - keep_count
                signal.purchase_history = signal.purchase_history[:keep_count]
                signal.updated_at = utc_now()
        if removed:
            logger.info("Removed %d old purchase records", removed)
        self.save()
        return removed
