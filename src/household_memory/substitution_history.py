"""Substitution history store: ledger of substitution outcomes."""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from statistics import mean
from uuid import uuid4

from .data_store import BaseStore, RecordNotFoundError
from .item_matching import brand_token, normalize_name
from .models import (
    BrandToleranceScore,
    ItemIdentifier,
    PriceDeltaTolerance,
    SubstitutionHistoryDocument,
    SubstitutionOutcome,
    SubstitutionPattern,
    SubstitutionRecord,
    SubstitutionStatistics,
    reference_time,
)

logger = logging.getLogger(__name__)

DEFAULT_KEEP_DAYS = 365


def price_delta(original_price: float | None, substitute_price: float | None) -> tuple[float | None, float | None]:
    """Absolute and percentage price difference of a substitute.

    Returns:
        (delta, percent); each None when it cannot be computed
    """
    if original_price is None or substitute_price is None:
        return None, None
    delta = round(substitute_price - original_price, 2)
    percent = round(delta / original_price * 100, 2) if original_price else None
    return delta, percent


class SubstitutionHistoryStore(BaseStore[SubstitutionHistoryDocument]):
    """Stores substitution outcomes and mines them for tolerances."""

    file_name = "substitution-history.json"
    document_model = SubstitutionHistoryDocument

    def migrate(
        self, document: SubstitutionHistoryDocument, from_version: str
    ) -> SubstitutionHistoryDocument:
        """Fill in price deltas that older documents did not record."""
        filled = 0
        for index, record in enumerate(document.records):
            if record.price_delta is None:
                delta, percent = price_delta(record.original_price, record.substitute_price)
                if delta is not None:
                    document.records[index] = record.model_copy(
                        update={"price_delta": delta, "price_delta_percent": percent}
                    )
                    filled += 1
        if filled:
            logger.info("Filled price deltas on %d substitution records", filled)
        return document

    # --- Read Operations ---

    def get_all_records(self) -> list[SubstitutionRecord]:
        return self.ensure_loaded().records

    def get_record(self, record_id: str) -> SubstitutionRecord | None:
        for record in self.ensure_loaded().records:
            if record.id == record_id:
                return record
        return None

    def get_records_for_item(self, item: ItemIdentifier) -> list[SubstitutionRecord]:
        """Get records whose original item matches by name, SKU or barcode."""
        name = normalize_name(item.name)
        return [
            r
            for r in self.ensure_loaded().records
            if normalize_name(r.original_item.name) == name
            or (item.sku and r.original_item.sku == item.sku)
            or (item.barcode and r.original_item.barcode == item.barcode)
        ]

    def get_records_by_outcome(self, outcome: SubstitutionOutcome) -> list[SubstitutionRecord]:
        return [r for r in self.ensure_loaded().records if r.outcome == outcome]

    def get_recent_substitutions(self, days: int, now: datetime | None = None) -> list[SubstitutionRecord]:
        """Get records from the last N days."""
        cutoff = reference_time(now) - timedelta(days=days)
        return [r for r in self.ensure_loaded().records if r.timestamp >= cutoff]

    def get_substitution_patterns(self) -> list[SubstitutionPattern]:
        """Aggregate records per (original, substitute) pair.

        Names are compared case-insensitively. Auto-approved outcomes count
        as accepted.

        Returns:
            One SubstitutionPattern per pair, most recent first
        """
        groups: dict[tuple[str, str], list[SubstitutionRecord]] = defaultdict(list)
        for record in self.ensure_loaded().records:
            key = (
                normalize_name(record.original_item.name),
                normalize_name(record.substitute_item.name),
            )
            groups[key].append(record)

        patterns = []
        for records in groups.values():
            accepted = sum(1 for r in records if r.outcome.is_accepted)
            rejected = sum(1 for r in records if r.outcome == SubstitutionOutcome.REJECTED)
            total = accepted + rejected
            deltas = [r.price_delta for r in records if r.price_delta is not None]
            latest = max(records, key=lambda r: r.timestamp)
            patterns.append(
                SubstitutionPattern(
                    original_item=latest.original_item,
                    substitute_item=latest.substitute_item,
                    times_accepted=accepted,
                    times_rejected=rejected,
                    acceptance_rate=accepted / total if total else 0.0,
                    avg_price_delta=mean(deltas) if deltas else 0.0,
                    last_substituted_at=latest.timestamp,
                )
            )

        patterns.sort(key=lambda p: p.last_substituted_at, reverse=True)
        return patterns

    def get_pattern(
        self, original_item: ItemIdentifier, substitute_item: ItemIdentifier
    ) -> SubstitutionPattern | None:
        original = normalize_name(original_item.name)
        substitute = normalize_name(substitute_item.name)
        for pattern in self.get_substitution_patterns():
            if (
                normalize_name(pattern.original_item.name) == original
                and normalize_name(pattern.substitute_item.name) == substitute
            ):
                return pattern
        return None

    def get_brand_tolerance_scores(self) -> list[BrandToleranceScore]:
        """Acceptance rate of cross-brand substitutes, per substitute brand.

        The brand is taken to be the first word of the substitute's name.

        Returns:
            Scores sorted by sample size, largest first
        """
        counts: dict[str, list[int]] = defaultdict(lambda: [0, 0])
        for record in self.ensure_loaded().records:
            if record.same_brand:
                continue
            brand = brand_token(record.substitute_item.name)
            if not brand:
                continue
            if record.outcome.is_accepted:
                counts[brand][0] += 1
            elif record.outcome == SubstitutionOutcome.REJECTED:
                counts[brand][1] += 1

        scores = [
            BrandToleranceScore(
                brand=brand, acceptance_rate=accepted / (accepted + rejected), sample_size=accepted + rejected
            )
            for brand, (accepted, rejected) in counts.items()
            if accepted + rejected > 0
        ]
        scores.sort(key=lambda s: s.sample_size, reverse=True)
        return scores

    def get_price_delta_tolerance(self) -> PriceDeltaTolerance:
        """Price differences the household has accepted and rejected."""
        records = [r for r in self.ensure_loaded().records if r.price_delta is not None]
        accepted = [r for r in records if r.outcome.is_accepted]
        rejected = [r for r in records if r.outcome == SubstitutionOutcome.REJECTED]
        accepted_percents = [
            r.price_delta_percent for r in accepted if r.price_delta_percent is not None
        ]

        return PriceDeltaTolerance(
            avg_accepted_delta=mean(r.price_delta for r in accepted) if accepted else 0.0,
            avg_rejected_delta=mean(r.price_delta for r in rejected) if rejected else 0.0,
            max_accepted_delta=max(r.price_delta for r in accepted) if accepted else 0.0,
            max_accepted_percent=max(accepted_percents) if accepted_percents else 0.0,
        )

    def has_been_accepted_before(
        self, original_item: ItemIdentifier, substitute_item: ItemIdentifier
    ) -> bool:
        pattern = self.get_pattern(original_item, substitute_item)
        return pattern is not None and pattern.times_accepted > 0

    def get_statistics(self) -> SubstitutionStatistics:
        records = self.ensure_loaded().records
        total = len(records)
        accepted = sum(1 for r in records if r.outcome.is_accepted)
        rejected = sum(1 for r in records if r.outcome == SubstitutionOutcome.REJECTED)
        deltas = [r.price_delta for r in records if r.price_delta is not None]
        same_brand = sum(1 for r in records if r.same_brand)

        return SubstitutionStatistics(
            total_substitutions=total,
            accepted_count=accepted,
            rejected_count=rejected,
            acceptance_rate=accepted / total if total else 0.0,
            avg_price_delta=mean(deltas) if deltas else 0.0,
            same_brand_rate=same_brand / total if total else 0.0,
        )

    # --- Write Operations ---

    def add_record(self, record: SubstitutionRecord) -> SubstitutionRecord:
        """Add a substitution record and save.

        A record whose id is already taken gets a new one.

        Returns:
            The stored record
        """
        document = self.ensure_loaded()
        if any(r.id == record.id for r in document.records):
            record = record.model_copy(update={"id": uuid4().hex})
        document.records.insert(0, record)
        document.records.sort(key=lambda r: r.timestamp, reverse=True)
        self.save()
        logger.debug(
            "Recorded %s substitution '%s' -> '%s'",
            record.outcome.value,
            record.original_item.name,
            record.substitute_item.name,
        )
        return record

    def update_record_outcome(
        self,
        record_id: str,
        outcome: SubstitutionOutcome,
        user_feedback: str | None = None,
    ) -> SubstitutionRecord:
        """Amend the outcome of an existing record.

        Raises:
            RecordNotFoundError: If no record has this id
        """
        record = self.get_record(record_id)
        if record is None:
            raise RecordNotFoundError(record_id, kind="Substitution record")
        record.outcome = outcome
        if user_feedback is not None:
            record.user_feedback = user_feedback
        self.save()
        return record

    def cleanup_old_records(self, keep_days: int = DEFAULT_KEEP_DAYS, now: datetime | None = None) -> int:
        """Remove records older than keep_days.

        Returns:
            Number of records removed
        """
        document = self.ensure_loaded()
        cutoff = reference_time(now) - timedelta(days=keep_days)
        before = len(document.records)
        document.records = [r for r in document.records if r.timestamp >= cutoff]
        removed = before - len(document.records)
        if removed:
            logger.info("Removed %d substitution records older than %d days", removed, keep_days)
        self.save()
        return removed
