"""Core data models for Household Memory."""

from datetime import date, datetime, time, timezone
from enum import Enum
from statistics import mean
from typing import Annotated, Any
from uuid import uuid4

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = "1.1.0"

TYPICAL_PRICE_WINDOW = 5


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def coerce_utc(value: Any) -> Any:
    """Coerce dates, naive datetimes and ISO strings to aware UTC datetimes."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return value


def reference_time(now: datetime | None = None) -> datetime:
    """Aware UTC reference time. Naive values are taken to be UTC."""
    if now is None:
        return utc_now()
    return coerce_utc(now)


UtcDatetime = Annotated[datetime, BeforeValidator(coerce_utc)]


class MemoryModel(BaseModel):
    """Base for persisted models: snake_case attributes, camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Identity ---


class ItemIdentifier(MemoryModel):
    """Identity of a grocery item as seen by the store website."""

    name: str = Field(min_length=1)
    sku: str | None = None
    barcode: str | None = None
    category: str | None = None


# --- Item Signals ---


class PurchaseRecord(MemoryModel):
    """A single purchase of an item. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    date: UtcDatetime
    quantity: float = Field(default=1.0, ge=0)
    price: float | None = None
    order_id: str | None = None


def sort_history(history: list[PurchaseRecord]) -> list[PurchaseRecord]:
    """Return purchase history ordered most-recent-first."""
    return sorted(history, key=lambda p: p.date, reverse=True)


def average_quantity(history: list[PurchaseRecord]) -> float | None:
    """Mean quantity over all purchases."""
    if not history:
        return None
    return mean(p.quantity for p in history)


def typical_price(history: list[PurchaseRecord]) -> float | None:
    """Median of the known prices among the most recent purchases.

    For an even number of prices the upper middle value is used.
    """
    prices = sorted(
        p.price for p in sort_history(history)[:TYPICAL_PRICE_WINDOW] if p.price is not None
    )
    if not prices:
        return None
    return prices[len(prices) // 2]


def purchase_frequency(history: list[PurchaseRecord]) -> float | None:
    """Purchases per month over the span between oldest and newest purchase."""
    if len(history) < 2:
        return None
    dates = [p.date for p in history]
    span_days = (max(dates) - min(dates)).total_seconds() / 86400
    months = span_days / 30
    if months <= 0:
        return None
    return len(history) / months


class ItemSignal(MemoryModel):
    """Purchase ledger for one distinct item with derived signals."""

    item: ItemIdentifier
    purchase_history: list[PurchaseRecord] = Field(default_factory=list)
    preferred_variant: str | None = None
    updated_at: UtcDatetime = Field(default_factory=utc_now)

    @field_validator("purchase_history")
    @classmethod
    def _newest_first(cls, value: list[PurchaseRecord]) -> list[PurchaseRecord]:
        return sort_history(value)

    @computed_field(alias="averageQuantity")  # type: ignore[prop-decorator]
    @property
    def average_quantity(self) -> float | None:
        """Mean quantity per purchase."""
        return average_quantity(self.purchase_history)

    @computed_field(alias="typicalPrice")  # type: ignore[prop-decorator]
    @property
    def typical_price(self) -> float | None:
        """Median recent price."""
        return typical_price(self.purchase_history)

    @computed_field(alias="purchaseFrequency")  # type: ignore[prop-decorator]
    @property
    def purchase_frequency(self) -> float | None:
        """Purchases per month."""
        return purchase_frequency(self.purchase_history)

    @computed_field(alias="lastPurchasedAt")  # type: ignore[prop-decorator]
    @property
    def last_purchased_at(self) -> datetime | None:
        """Date of the newest purchase."""
        if not self.purchase_history:
            return None
        return self.purchase_history[0].date


class SimilarSignal(BaseModel):
    """An item signal matched by fuzzy similarity."""

    signal: ItemSignal
    similarity: float


# --- Cadence ---


class CategoryCadence(MemoryModel):
    """Learned restock interval for a whole category."""

    category: str
    typical_restock_days: float = Field(ge=0)
    min_restock_days: float = Field(ge=0)
    max_restock_days: float = Field(ge=0)
    sample_size: int = Field(ge=0)
    confidence: float = Field(ge=0, le=1)
    last_purchased_at: UtcDatetime | None = None
    updated_at: UtcDatetime = Field(default_factory=utc_now)


class ItemCadence(MemoryModel):
    """Learned restock interval for a single item."""

    item: ItemIdentifier
    typical_restock_days: float = Field(ge=0)
    min_restock_days: float = Field(ge=0)
    max_restock_days: float = Field(ge=0)
    sample_size: int = Field(ge=0)
    confidence: float = Field(ge=0, le=1)
    last_purchased_at: UtcDatetime | None = None
    overrides_category_default: bool = False
    updated_at: UtcDatetime = Field(default_factory=utc_now)


class CadenceEstimate(BaseModel):
    """Result of inferring a restock interval from purchase dates."""

    typical: float = 0
    min: float = 0
    max: float = 0
    confidence: float = 0
    interval_count: int = 0


class CadenceSource(str, Enum):
    """Where an effective cadence came from."""

    ITEM = "item"
    CATEGORY = "category"
    NONE = "none"


class EffectiveCadence(BaseModel):
    """Cadence resolved for an item, falling back to its category."""

    typical_restock_days: float = 0
    min_restock_days: float = 0
    max_restock_days: float = 0
    confidence: float = 0
    source: CadenceSource = CadenceSource.NONE


class CadenceStatistics(BaseModel):
    """Summary of the cadence store."""

    total_categories: int
    total_items: int
    avg_category_confidence: float
    avg_item_confidence: float
    high_confidence_items_count: int


# --- Substitution History ---


class SubstitutionOutcome(str, Enum):
    """Household decision on a proposed substitute."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    AUTO_APPROVED = "auto-approved"

    @property
    def is_accepted(self) -> bool:
        return self in (SubstitutionOutcome.ACCEPTED, SubstitutionOutcome.AUTO_APPROVED)


class SubstitutionRecord(MemoryModel):
    """One substitution offered for an unavailable item and its outcome."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: UtcDatetime = Field(default_factory=utc_now)
    original_item: ItemIdentifier
    substitute_item: ItemIdentifier
    reason: str
    original_price: float | None = None
    substitute_price: float | None = None
    price_delta: float | None = None
    price_delta_percent: float | None = None
    outcome: SubstitutionOutcome
    user_feedback: str | None = None
    same_brand: bool
    same_category: bool
    similar_quality: bool | None = None
    run_id: str | None = None


class SubstitutionPattern(BaseModel):
    """Aggregated accept/reject history for one (original, substitute) pair."""

    original_item: ItemIdentifier
    substitute_item: ItemIdentifier
    times_accepted: int = 0
    times_rejected: int = 0
    acceptance_rate: float = 0.0
    avg_price_delta: float = 0.0
    last_substituted_at: datetime

    @property
    def sample_size(self) -> int:
        return self.times_accepted + self.times_rejected


class BrandToleranceScore(BaseModel):
    """How readily substitutes of a given brand are accepted."""

    brand: str
    acceptance_rate: float
    sample_size: int


class PriceDeltaTolerance(BaseModel):
    """Observed price-difference bounds for accepted and rejected substitutes."""

    avg_accepted_delta: float = 0.0
    avg_rejected_delta: float = 0.0
    max_accepted_delta: float = 0.0
    max_accepted_percent: float = 0.0


class SubstitutionStatistics(BaseModel):
    """Summary of the substitution ledger."""

    total_substitutions: int
    accepted_count: int
    rejected_count: int
    acceptance_rate: float
    avg_price_delta: float
    same_brand_rate: float


# --- Episodic Memory ---


class RunPhase(str, Enum):
    """Phases of a planning run, in the order a run moves through them."""

    INIT = "init"
    LOGIN = "login"
    CART_BUILD = "cart-build"
    SUBSTITUTION = "substitution"
    STOCK_PRUNE = "stock-prune"
    SLOT_SCOUT = "slot-scout"
    REVIEW = "review"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def order(self) -> int:
        return list(RunPhase).index(self)


class RunOutcome(str, Enum):
    """How a run ended."""

    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial-success"
    USER_CANCELLED = "user-cancelled"
    ERROR = "error"
    TIMEOUT = "timeout"


class ActionKind(str, Enum):
    """Kinds of cart actions recorded during a run."""

    ADDED = "added"
    REMOVED = "removed"
    QUANTITY_CHANGED = "quantity-changed"
    SUBSTITUTED = "substituted"
    PRUNED = "pruned"


class ItemAction(MemoryModel):
    """A single cart action taken during a run."""

    item: ItemIdentifier
    action: ActionKind
    reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RunError(MemoryModel):
    """An error raised during a run phase."""

    phase: RunPhase
    error: str
    timestamp: UtcDatetime = Field(default_factory=utc_now)


class SelectedSlot(MemoryModel):
    """Delivery slot chosen at the end of a run."""

    date: str
    time_range: str
    price: float | None = None


class EpisodicMemoryRecord(MemoryModel):
    """Durable log entry for one planning run."""

    run_id: str = Field(min_length=1)
    household_id: str = Field(min_length=1)
    started_at: UtcDatetime = Field(default_factory=utc_now)
    completed_at: UtcDatetime | None = None
    duration_ms: float | None = None
    outcome: RunOutcome = RunOutcome.SUCCESS
    final_phase: RunPhase = RunPhase.INIT
    items_added: int = Field(default=0, ge=0)
    items_removed: int = Field(default=0, ge=0)
    substitutions_made: int = Field(default=0, ge=0)
    substitutions_accepted: int = Field(default=0, ge=0)
    substitutions_rejected: int = Field(default=0, ge=0)
    items_pruned: int = Field(default=0, ge=0)
    actions: list[ItemAction] = Field(default_factory=list)
    selected_slot: SelectedSlot | None = None
    final_cart_item_count: int | None = None
    final_cart_total: float | None = None
    user_approved: bool | None = None
    user_feedback: str | None = None
    errors: list[RunError] = Field(default_factory=list)
    agent_version: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class RunStatistics(BaseModel):
    """Aggregate statistics over stored runs."""

    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    success_rate: float = 0.0
    avg_duration_ms: float = 0.0
    avg_items_added: float = 0.0
    avg_items_removed: float = 0.0
    avg_substitutions: float = 0.0
    total_substitutions_accepted: int = 0
    total_substitutions_rejected: int = 0
    substitution_acceptance_rate: float = 0.0


class PhasePerformance(BaseModel):
    """Outcome figures for runs that ended in a given phase."""

    phase: RunPhase
    total_runs: int
    successful_runs: int
    avg_duration_ms: float
    error_count: int


class ErrorCount(BaseModel):
    """How often an error message was recorded."""

    error: str
    count: int


class LearningInsights(BaseModel):
    """Patterns mined from recent runs."""

    avg_cart_size: float = 0.0
    avg_cart_total: float = 0.0
    most_common_slot_times: list[str] = Field(default_factory=list)
    top_rejected_substitutions: list[str] = Field(default_factory=list)
    user_approval_rate: float = 0.0


# --- Household Preferences ---


class DietaryRestriction(str, Enum):
    """Dietary restrictions a household can declare."""

    VEGETARIAN = "vegetarian"
    VEGAN = "vegan"
    GLUTEN_FREE = "gluten-free"
    LACTOSE_INTOLERANT = "lactose-intolerant"
    KOSHER = "kosher"
    HALAL = "halal"
    NUT_FREE = "nut-free"
    SHELLFISH_FREE = "shellfish-free"
    OTHER = "other"


class AllergySeverity(str, Enum):
    """Allergy severity levels."""

    SEVERE = "severe"
    MODERATE = "moderate"
    MILD = "mild"


class Allergy(MemoryModel):
    """A household member allergy."""

    allergen: str
    severity: AllergySeverity
    notes: str | None = None


class BrandPreferenceLevel(str, Enum):
    """Household stance towards a brand."""

    PREFERRED = "preferred"
    ACCEPTABLE = "acceptable"
    AVOID = "avoid"


class BrandPreference(MemoryModel):
    """Preference recorded for a brand."""

    brand: str
    preference: BrandPreferenceLevel
    reason: str | None = None
    updated_at: UtcDatetime = Field(default_factory=utc_now)


class BudgetConstraints(MemoryModel):
    """Spending limits for a shop."""

    max_total_spend: float | None = None
    max_item_price: float | None = None
    prioritize_deals: bool = False


class QualityPreferences(MemoryModel):
    """Product quality leanings."""

    prefer_organic: bool = False
    prefer_local_products: bool = False
    prefer_fresh_over_frozen: bool = False


class Weekday(str, Enum):
    """Days of the week, Monday first as in date.weekday()."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def index(self) -> int:
        return list(Weekday).index(self)


class DeliveryPreferences(MemoryModel):
    """When the household likes deliveries to arrive."""

    preferred_days: list[Weekday] = Field(default_factory=list)
    preferred_time_slots: list[str] = Field(default_factory=list)  # "HH:MM-HH:MM"
    avoid_weekends: bool = False


# --- Store Documents ---


class StoreDocument(MemoryModel):
    """Fields shared by every persisted store document."""

    version: str = SCHEMA_VERSION
    household_id: str = Field(min_length=1)
    updated_at: UtcDatetime = Field(default_factory=utc_now)


class ItemSignalsDocument(StoreDocument):
    """Persisted item signals for a household."""

    signals: list[ItemSignal] = Field(default_factory=list)


class CadenceSignalsDocument(StoreDocument):
    """Persisted cadence signals for a household."""

    category_cadences: list[CategoryCadence] = Field(default_factory=list)
    item_cadences: list[ItemCadence] = Field(default_factory=list)


class SubstitutionHistoryDocument(StoreDocument):
    """Persisted substitution ledger for a household."""

    records: list[SubstitutionRecord] = Field(default_factory=list)

    @field_validator("records")
    @classmethod
    def _unique_ids(cls, value: list[SubstitutionRecord]) -> list[SubstitutionRecord]:
        seen: set[str] = set()
        for record in value:
            if record.id in seen:
                raise ValueError(f"duplicate substitution record id '{record.id}'")
            seen.add(record.id)
        return value


class EpisodicMemoryDocument(StoreDocument):
    """Persisted run history for a household."""

    records: list[EpisodicMemoryRecord] = Field(default_factory=list)

    @field_validator("records")
    @classmethod
    def _unique_run_ids(cls, value: list[EpisodicMemoryRecord]) -> list[EpisodicMemoryRecord]:
        seen: set[str] = set()
        for record in value:
            if record.run_id in seen:
                raise ValueError(f"duplicate run id '{record.run_id}'")
            seen.add(record.run_id)
        return value


class HouseholdPreferences(StoreDocument):
    """Household configuration: diet, allergies, brands, budget and delivery."""

    created_at: UtcDatetime = Field(default_factory=utc_now)
    dietary_restrictions: list[DietaryRestriction] = Field(default_factory=list)
    allergies: list[Allergy] = Field(default_factory=list)
    brand_preferences: list[BrandPreference] = Field(default_factory=list)
    budget_constraints: BudgetConstraints | None = None
    quality_preferences: QualityPreferences | None = None
    delivery_preferences: DeliveryPreferences | None = None
    notes: str | None = None


# --- Order Import ---


class OrderLine(MemoryModel):
    """One item line of an imported order."""

    item: ItemIdentifier
    quantity: float = Field(default=1.0, ge=0)
    price: float | None = None


class OrderImport(MemoryModel):
    """An order handed in by the order-history importer."""

    order_id: str
    date: UtcDatetime
    items: list[OrderLine] = Field(default_factory=list)


# --- Delivery Slot Scoring ---


class SlotStatus(str, Enum):
    """Availability of a delivery slot."""

    AVAILABLE = "available"
    LIMITED = "limited"
    FULL = "full"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class DeliveryType(str, Enum):
    """Kind of delivery offered by a slot."""

    STANDARD = "standard"
    EXPRESS = "express"
    PICKUP = "pickup"
    UNKNOWN = "unknown"


class DeliverySlot(BaseModel):
    """A delivery slot offered by the store."""

    slot_id: str | None = None
    date: date
    start_time: time
    end_time: time
    status: SlotStatus = SlotStatus.UNKNOWN
    delivery_cost: float | None = None
    free_above_threshold: bool = False
    free_delivery_threshold: float | None = None
    delivery_type: DeliveryType = DeliveryType.STANDARD
    note: str | None = None

    @property
    def day_of_week(self) -> int:
        """Weekday index, Monday = 0."""
        return self.date.weekday()

    @property
    def time_range(self) -> str:
        return f"{self.start_time:%H:%M}-{self.end_time:%H:%M}"


class TimeWindow(BaseModel):
    """Acceptable delivery window within a day."""

    earliest: time = time(8, 0)
    latest: time = time(20, 0)


class SlotPreferences(BaseModel):
    """Preferences a slot is scored against."""

    preferred_days: list[int] = Field(default_factory=list)  # Monday = 0
    avoid_days: list[int] = Field(default_factory=list)
    time_window: TimeWindow | None = None
    prefer_morning: bool = False
    prefer_evening: bool = False
    max_days_ahead: int = Field(default=14, gt=0)
    prefer_free_delivery: bool = True
    max_delivery_cost: float | None = None


class SlotWeights(BaseModel):
    """Weights combining slot sub-scores. Expected to sum to 1.0."""

    day: float = 0.20
    time: float = 0.25
    cost: float = 0.20
    availability: float = 0.15
    urgency: float = 0.20


class SlotScore(BaseModel):
    """Score breakdown for a delivery slot."""

    day_score: float
    time_score: float
    cost_score: float
    availability_score: float
    urgency_score: float
    overall: float


class RankedSlot(BaseModel):
    """A scored slot with its position in the ranking."""

    slot: DeliverySlot
    score: SlotScore
    reason: str
    rank: int


# --- Substitute Scoring ---


class SubstituteCandidate(BaseModel):
    """A product offered as replacement for an unavailable item."""

    name: str
    brand: str | None = None
    size: str | None = None
    unit_price: float | None = None
    category: str | None = None
    product_url: str | None = None


class SubstituteWeights(BaseModel):
    """Weights combining substitute sub-scores. Expected to sum to 1.0."""

    brand: float = 0.3
    size: float = 0.2
    price: float = 0.3
    category: float = 0.2


class SubstituteScore(BaseModel):
    """Score breakdown for a substitute candidate."""

    brand_similarity: float
    size_similarity: float
    price_similarity: float
    category_match: float
    history_adjustment: float = 0.0
    overall: float


class RankedSubstitute(BaseModel):
    """A scored substitute with its position in the ranking."""

    candidate: SubstituteCandidate
    score: SubstituteScore
    reason: str
    price_delta: float | None = None
    rank: int


# --- Household Context ---


class AllergySummary(BaseModel):
    allergen: str
    severity: str


class PreferencesSummary(BaseModel):
    """Preference fields decision-makers need."""

    dietary_restrictions: list[str] = Field(default_factory=list)
    allergies: list[AllergySummary] = Field(default_factory=list)
    preferred_brands: list[str] = Field(default_factory=list)
    avoided_brands: list[str] = Field(default_factory=list)
    budget_constraints: BudgetConstraints | None = None
    delivery_preferences: DeliveryPreferences | None = None


class RecentItem(BaseModel):
    item: ItemIdentifier
    last_purchased: datetime
    typical_quantity: float
    typical_price: float | None = None


class FrequentItem(BaseModel):
    item: ItemIdentifier
    purchase_frequency: float
    average_quantity: float


class SubstitutionInsights(BaseModel):
    acceptance_rate: float = 0.0
    price_delta_tolerance: float = 0.0
    brand_tolerance: list[BrandToleranceScore] = Field(default_factory=list)


class RunSummary(BaseModel):
    run_id: str
    completed_at: datetime
    outcome: RunOutcome
    items_in_cart: int = 0
    user_approved: bool | None = None


class HouseholdContext(BaseModel):
    """Read-only snapshot of everything known about a household."""

    household_id: str
    preferences: PreferencesSummary
    recent_items: list[RecentItem] = Field(default_factory=list)
    frequent_items: list[FrequentItem] = Field(default_factory=list)
    substitution_insights: SubstitutionInsights = Field(default_factory=SubstitutionInsights)
    last_run_summary: RunSummary | None = None


class ItemOverview(BaseModel):
    total_tracked: int = 0
    recent_items: int = 0
    high_confidence_cadence: int = 0


class SubstitutionOverview(BaseModel):
    total: int = 0
    acceptance_rate: float = 0.0


class RunOverview(BaseModel):
    total: int = 0
    success_rate: float = 0.0
    avg_duration_ms: float = 0.0


class OverallStatistics(BaseModel):
    """Headline figures across all stores."""

    items: ItemOverview
    substitutions: SubstitutionOverview
    runs: RunOverview
