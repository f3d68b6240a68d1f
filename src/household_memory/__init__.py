"""Household Memory - Learned grocery signals and decision scoring for a household."""

from .cadence import CadenceStore, calculate_cadence
from .config import ConfigManager
from .data_store import (
    BaseStore,
    MemoryStoreError,
    RecordNotFoundError,
    SchemaIssue,
    SchemaValidationError,
    StoreNotLoadedError,
)
from .episodic_memory import (
    DuplicateRunError,
    EpisodicMemoryStore,
    InvalidPhaseTransitionError,
    RunAlreadyCompletedError,
    RunNotFoundError,
)
from .item_matching import calculate_item_similarity
from .item_signals import ItemSignalStore
from .memory import HouseholdMemory, create_memory
from .models import (
    SCHEMA_VERSION,
    ActionKind,
    DeliverySlot,
    EpisodicMemoryRecord,
    HouseholdContext,
    HouseholdPreferences,
    ItemAction,
    ItemIdentifier,
    ItemSignal,
    OrderImport,
    OrderLine,
    PurchaseRecord,
    RunOutcome,
    RunPhase,
    SlotPreferences,
    SubstituteCandidate,
    SubstitutionOutcome,
    SubstitutionRecord,
)
from .output_formatter import OutputFormatter
from .preferences import HouseholdPreferencesStore
from .scoring import rank_slots, rank_substitutes, score_slot, score_substitute
from .substitution_history import SubstitutionHistoryStore

__version__ = "0.1.0"

__all__ = [
    "ActionKind",
    "BaseStore",
    "CadenceStore",
    "calculate_cadence",
    "calculate_item_similarity",
    "ConfigManager",
    "create_memory",
    "DeliverySlot",
    "DuplicateRunError",
    "EpisodicMemoryRecord",
    "EpisodicMemoryStore",
    "HouseholdContext",
    "HouseholdMemory",
    "HouseholdPreferences",
    "HouseholdPreferencesStore",
    "InvalidPhaseTransitionError",
    "ItemAction",
    "ItemIdentifier",
    "ItemSignal",
    "ItemSignalStore",
    "MemoryStoreError",
    "OrderImport",
    "OrderLine",
    "OutputFormatter",
    "PurchaseRecord",
    "rank_slots",
    "rank_substitutes",
    "RecordNotFoundError",
    "RunAlreadyCompletedError",
    "RunNotFoundError",
    "RunOutcome",
    "RunPhase",
    "SCHEMA_VERSION",
    "SchemaIssue",
    "SchemaValidationError",
    "score_slot",
    "score_substitute",
    "SlotPreferences",
    "StoreNotLoadedError",
    "SubstituteCandidate",
    "SubstitutionHistoryStore",
    "SubstitutionOutcome",
    "SubstitutionRecord",
]
