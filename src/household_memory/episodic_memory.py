"""Episodic memory store: one record per planning run."""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from statistics import mean
from typing import Any

from .data_store import BaseStore, MemoryStoreError, RecordNotFoundError
from .models import (
    ActionKind,
    EpisodicMemoryDocument,
    EpisodicMemoryRecord,
    ErrorCount,
    ItemAction,
    LearningInsights,
    PhasePerformance,
    RunError,
    RunOutcome,
    RunPhase,
    RunStatistics,
    reference_time,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_KEEP_DAYS = 180

# Fields update_run may change. Counters, actions and identity are excluded.
UPDATABLE_FIELDS = frozenset(
    {
        "selected_slot",
        "final_cart_item_count",
        "final_cart_total",
        "user_feedback",
        "agent_version",
        "metadata",
    }
)

_FAILED_OUTCOMES = (RunOutcome.ERROR, RunOutcome.TIMEOUT)


class RunNotFoundError(RecordNotFoundError):
    """Raised when a write targets an unknown run."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(run_id, kind="Run")


class DuplicateRunError(MemoryStoreError):
    """Raised when starting a run whose id is already recorded."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run '{run_id}' already exists")


class InvalidPhaseTransitionError(MemoryStoreError):
    """Raised when a run would move back to an earlier phase."""

    def __init__(self, run_id: str, current: RunPhase, requested: RunPhase):
        self.run_id = run_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Run '{run_id}' cannot move from phase '{current.value}' back to '{requested.value}'"
        )


class RunAlreadyCompletedError(MemoryStoreError):
    """Raised when modifying the progress of a completed run."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run '{run_id}' is already completed")


def _flag(action: ItemAction, key: str) -> bool:
    return action.metadata.get(key) is True


def count_actions(actions: list[ItemAction]) -> dict[str, int]:
    """Counter values implied by a list of actions."""
    return {
        "items_added": sum(1 for a in actions if a.action == ActionKind.ADDED),
        "items_removed": sum(1 for a in actions if a.action == ActionKind.REMOVED),
        "substitutions_made": sum(1 for a in actions if a.action == ActionKind.SUBSTITUTED),
        "substitutions_accepted": sum(
            1 for a in actions if a.action == ActionKind.SUBSTITUTED and _flag(a, "accepted")
        ),
        "substitutions_rejected": sum(
            1 for a in actions if a.action == ActionKind.SUBSTITUTED and _flag(a, "rejected")
        ),
        "items_pruned": sum(1 for a in actions if a.action == ActionKind.PRUNED),
    }


class EpisodicMemoryStore(BaseStore[EpisodicMemoryDocument]):
    """Stores run records and aggregates them into statistics."""

    file_name = "episodic-memory.json"
    document_model = EpisodicMemoryDocument

    def migrate(self, document: EpisodicMemoryDocument, from_version: str) -> EpisodicMemoryDocument:
        """Recompute run counters from their recorded actions."""
        for record in document.records:
            for name, value in count_actions(record.actions).items():
                setattr(record, name, value)
        return document

    def _get_run(self, run_id: str) -> EpisodicMemoryRecord:
        record = self.get_run_by_id(run_id)
        if record is None:
            raise RunNotFoundError(run_id)
        return record

    def _get_open_run(self, run_id: str) -> EpisodicMemoryRecord:
        record = self._get_run(run_id)
        if record.is_completed:
            raise RunAlreadyCompletedError(run_id)
        return record

    # --- Read Operations ---

    def get_all_records(self) -> list[EpisodicMemoryRecord]:
        return self.ensure_loaded().records

    def get_run_by_id(self, run_id: str) -> EpisodicMemoryRecord | None:
        for record in self.ensure_loaded().records:
            if record.run_id == run_id:
                return record
        return None

    def get_recent_runs(self, limit: int = 10) -> list[EpisodicMemoryRecord]:
        """Most recently started runs, newest first."""
        records = sorted(self.ensure_loaded().records, key=lambda r: r.started_at, reverse=True)
        return records[:limit]

    def get_runs_in_date_range(self, start: datetime, end: datetime) -> list[EpisodicMemoryRecord]:
        """Runs started between start and end, inclusive. Naive bounds are taken as UTC."""
        start, end = reference_time(start), reference_time(end)
        return [r for r in self.ensure_loaded().records if start <= r.started_at <= end]

    def get_runs_by_outcome(self, outcome: RunOutcome) -> list[EpisodicMemoryRecord]:
        return [r for r in self.ensure_loaded().records if r.outcome == outcome]

    def get_successful_runs(self) -> list[EpisodicMemoryRecord]:
        return self.get_runs_by_outcome(RunOutcome.SUCCESS)

    def get_failed_runs(self) -> list[EpisodicMemoryRecord]:
        """Runs that ended in an error or timed out."""
        return [r for r in self.ensure_loaded().records if r.outcome in _FAILED_OUTCOMES]

    def get_approved_runs(self) -> list[EpisodicMemoryRecord]:
        return [r for r in self.ensure_loaded().records if r.user_approved is True]

    def get_last_successful_run(self) -> EpisodicMemoryRecord | None:
        runs = [r for r in self.get_successful_runs() if r.is_completed]
        return max(runs, key=lambda r: r.completed_at, default=None)

    def get_last_completed_run(self) -> EpisodicMemoryRecord | None:
        runs = [r for r in self.ensure_loaded().records if r.is_completed]
        return max(runs, key=lambda r: r.completed_at, default=None)

    # --- Statistics ---

    def get_statistics(self, days: int | None = None, now: datetime | None = None) -> RunStatistics:
        """Aggregate run statistics.

        Args:
            days: Only include runs started in the last N days
            now: Reference time for the days window

        Returns:
            RunStatistics over the selected runs
        """
        records = self.ensure_loaded().records
        if days is not None:
            cutoff = reference_time(now) - timedelta(days=days)
            records = [r for r in records if r.started_at >= cutoff]

        total = len(records)
        if total == 0:
            return RunStatistics()

        successful = sum(1 for r in records if r.outcome == RunOutcome.SUCCESS)
        durations = [r.duration_ms for r in records if r.duration_ms is not None]
        accepted = sum(r.substitutions_accepted for r in records)
        rejected = sum(r.substitutions_rejected for r in records)

        return RunStatistics(
            total_runs=total,
            successful_runs=successful,
            failed_runs=sum(1 for r in records if r.outcome in _FAILED_OUTCOMES),
            success_rate=successful / total,
            avg_duration_ms=mean(durations) if durations else 0.0,
            avg_items_added=mean(r.items_added for r in records),
            avg_items_removed=mean(r.items_removed for r in records),
            avg_substitutions=mean(r.substitutions_made for r in records),
            total_substitutions_accepted=accepted,
            total_substitutions_rejected=rejected,
            substitution_acceptance_rate=accepted / (accepted + rejected) if accepted + rejected else 0.0,
        )

    def get_phase_performance(self) -> list[PhasePerformance]:
        """Outcome figures grouped by the phase runs ended in, in phase order."""
        groups: dict[RunPhase, list[EpisodicMemoryRecord]] = defaultdict(list)
        for record in self.ensure_loaded().records:
            groups[record.final_phase].append(record)

        performance = []
        for phase in sorted(groups, key=lambda p: p.order):
            records = groups[phase]
            performance.append(
                PhasePerformance(
                    phase=phase,
                    total_runs=len(records),
                    successful_runs=sum(1 for r in records if r.outcome == RunOutcome.SUCCESS),
                    avg_duration_ms=sum(r.duration_ms or 0.0 for r in records) / len(records),
                    error_count=sum(1 for r in records for e in r.errors if e.phase == phase),
                )
            )
        return performance

    def get_most_common_errors(self, limit: int = 10) -> list[ErrorCount]:
        counts = Counter(e.error for r in self.ensure_loaded().records for e in r.errors)
        return [ErrorCount(error=error, count=count) for error, count in counts.most_common(limit)]

    def get_learning_insights(self, limit: int = 30) -> LearningInsights:
        """Patterns mined from the most recent runs.

        Args:
            limit: Number of recent runs to examine

        Returns:
            Average cart size and total, the three most common slot times,
            the five most rejected substitutes and the approval rate
        """
        runs = self.get_recent_runs(limit)
        if not runs:
            return LearningInsights()

        sizes = [r.final_cart_item_count for r in runs if r.final_cart_item_count]
        totals = [r.final_cart_total for r in runs if r.final_cart_total]
        slot_times = Counter(r.selected_slot.time_range for r in runs if r.selected_slot)
        rejected = Counter(
            a.item.name
            for r in runs
            for a in r.actions
            if a.action == ActionKind.SUBSTITUTED and _flag(a, "rejected")
        )

        return LearningInsights(
            avg_cart_size=mean(sizes) if sizes else 0.0,
            avg_cart_total=mean(totals) if totals else 0.0,
            most_common_slot_times=[t for t, _ in slot_times.most_common(3)],
            top_rejected_substitutions=[name for name, _ in rejected.most_common(5)],
            user_approval_rate=sum(1 for r in runs if r.user_approved is True) / len(runs),
        )

    # --- Write Operations ---

    def start_run(self, run_id: str, agent_version: str | None = None) -> EpisodicMemoryRecord:
        """Create the record for a new run in phase init.

        Raises:
            DuplicateRunError: If run_id is already recorded
        """
        document = self.ensure_loaded()
        if self.get_run_by_id(run_id) is not None:
            raise DuplicateRunError(run_id)

        record = EpisodicMemoryRecord(
            run_id=run_id, household_id=self.household_id, agent_version=agent_version
        )
        document.records.insert(0, record)
        self.save()
        logger.debug("Started run %s", run_id)
        return record

    def add_action(self, run_id: str, action: ItemAction) -> EpisodicMemoryRecord:
        """Append an action to a run and bump the matching counter.

        Each action kind has one counter. A substituted action always bumps
        substitutions_made, and additionally substitutions_accepted or
        substitutions_rejected when its metadata flags the outcome.

        Raises:
            RunNotFoundError: If the run is unknown
            RunAlreadyCompletedError: If the run has completed
        """
        record = self._get_open_run(run_id)
        record.actions.append(action)

        if action.action == ActionKind.ADDED:
            record.items_added += 1
        elif action.action == ActionKind.REMOVED:
            record.items_removed += 1
        elif action.action == ActionKind.SUBSTITUTED:
            record.substitutions_made += 1
            if _flag(action, "accepted"):
                record.substitutions_accepted += 1
            if _flag(action, "rejected"):
                record.substitutions_rejected += 1
        elif action.action == ActionKind.PRUNED:
            record.items_pruned += 1

        self.save()
        return record

    def add_error(self, run_id: str, phase: RunPhase, error: str) -> EpisodicMemoryRecord:
        """Record an error raised in a phase. The outcome is left alone."""
        record = self._get_open_run(run_id)
        record.errors.append(RunError(phase=phase, error=error))
        self.save()
        logger.debug("Run %s error in %s: %s", run_id, phase.value, error)
        return record

    def advance_phase(self, run_id: str, phase: RunPhase) -> EpisodicMemoryRecord:
        """Move a run forward to phase.

        Raises:
            InvalidPhaseTransitionError: If phase comes before the current one
        """
        record = self._get_open_run(run_id)
        if phase.order < record.final_phase.order:
            raise InvalidPhaseTransitionError(run_id, record.final_phase, phase)
        record.final_phase = phase
        self.save()
        return record

    def complete_run(
        self, run_id: str, outcome: RunOutcome, final_phase: RunPhase
    ) -> EpisodicMemoryRecord:
        """Close a run with its outcome and final phase.

        Sets completed_at and duration_ms. A run can be completed only once.

        Raises:
            RunNotFoundError: If the run is unknown
            RunAlreadyCompletedError: If the run was already completed
            InvalidPhaseTransitionError: If final_phase is behind the current phase
        """
        record = self._get_open_run(run_id)
        if final_phase.order < record.final_phase.order:
            raise InvalidPhaseTransitionError(run_id, record.final_phase, final_phase)

        completed_at = utc_now()
        record.outcome = outcome
        record.final_phase = final_phase
        record.completed_at = completed_at
        record.duration_ms = max((completed_at - record.started_at).total_seconds() * 1000, 0.0)
        self.save()
        logger.info("Run %s completed: %s at %s", run_id, outcome.value, final_phase.value)
        return record

    def set_user_approval(
        self, run_id: str, approved: bool, feedback: str | None = None
    ) -> EpisodicMemoryRecord:
        record = self._get_run(run_id)
        record.user_approved = approved
        if feedback is not None:
            record.user_feedback = feedback
        self.save()
        return record

    def update_run(self, run_id: str, /, **fields: Any) -> EpisodicMemoryRecord:
        """Update descriptive fields of a run.

        Args:
            run_id: Run to update
            **fields: Any of selected_slot, final_cart_item_count,
                final_cart_total, user_feedback, agent_version, metadata

        Raises:
            RunNotFoundError: If the run is unknown
            ValueError: If a field may not be updated this way
        """
        record = self._get_run(run_id)
        rejected = sorted(set(fields) - UPDATABLE_FIELDS)
        if rejected:
            raise ValueError(f"Cannot update run fields: {', '.join(rejected)}")

        updated = EpisodicMemoryRecord.model_validate({**record.model_dump(), **fields})
        records = self.document.records
        records[next(i for i, r in enumerate(records) if r is record)] = updated
        self.save()
        return updated

    def cleanup_old_records(self, keep_days: int = DEFAULT_KEEP_DAYS, now: datetime | None = None) -> int:
        """Remove runs started more than keep_days ago.

        Returns:
            Number of runs removed
        """
        document = self.ensure_loaded()
        cutoff = reference_time(now) - timedelta(days=keep_days)
        before = len(document.records)
        document.records = [r for r in document.records if r.started_at >= cutoff]
        removed = before - len(document.records)
        if removed:
            logger.info("Removed %d runs older than %d days", removed, keep_days)
        self.save()
        return removed
