"""Decision scoring for delivery slots and substitute products.

All functions here are pure. Every sub-score lies in [0, 1], where 1 is
ideal, 0 is disqualifying and 0.5 is neutral or unknown. Absent or invalid
inputs degrade to neutral scores instead of raising.
"""

import logging
import math
import re
from collections.abc import Iterable, Sequence
from datetime import date, time

from .item_matching import name_tokens, normalize_name
from .models import (
    DeliveryPreferences,
    DeliverySlot,
    RankedSlot,
    RankedSubstitute,
    SlotPreferences,
    SlotScore,
    SlotStatus,
    SlotWeights,
    SubstituteCandidate,
    SubstituteScore,
    SubstituteWeights,
    SubstitutionPattern,
    TimeWindow,
)

logger = logging.getLogger(__name__)

NEUTRAL = 0.5
MORNING_ENDS = time(12, 0)
EVENING_STARTS = time(17, 0)
DEFAULT_MAX_COST_FREE_PREFERRED = 10.0
DEFAULT_MAX_COST = 15.0
MAX_HISTORY_ADJUSTMENT = 0.15
WEEKEND_DAYS = (5, 6)

_AVAILABILITY_SCORES = {
    SlotStatus.AVAILABLE: 1.0,
    SlotStatus.LIMITED: 0.5,
    SlotStatus.FULL: 0.0,
    SlotStatus.UNAVAILABLE: 0.0,
    SlotStatus.UNKNOWN: 0.3,
}

_SIZE_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)\s*(kg|g|ml|cl|l)\b", re.IGNORECASE)
_SIZE_FACTORS = {"g": 1.0, "kg": 1000.0, "ml": 1.0, "cl": 10.0, "l": 1000.0}
_TIME_SLOT = re.compile(r"^\s*(\d{1,2}:\d{2})\s*-\s*(\d{1,2}:\d{2})\s*$")


# --- Confidence Helpers ---


def clamp_unit(value: float) -> float:
    """Clamp a value to [0, 1]. NaN becomes 0."""
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


def sample_factor(count: int, full_at: int = 10) -> float:
    """Confidence contribution of sample size, saturating at full_at."""
    if full_at <= 0:
        return 1.0
    return clamp_unit(count / full_at)


def consistency_factor(values: Sequence[float]) -> float:
    """Confidence contribution of consistency: 1 - CV/2, floored at 0.

    Uses the population standard deviation. A zero mean gives 0.
    """
    if not values:
        return 0.0
    avg = math.fsum(values) / len(values)
    if avg == 0:
        return 0.0
    variance = math.fsum((v - avg) ** 2 for v in values) / len(values)
    cv = math.sqrt(variance) / abs(avg)
    return clamp_unit(1 - cv / 2)


def recency_weight(age_days: float, decay: float = 0.98) -> float:
    """Weight of an observation that is age_days old."""
    return clamp_unit(decay ** max(age_days, 0.0))


def signal_confidence(interactions: int, min_required: int = 3) -> float:
    """Confidence in a learned signal given how often it was observed.

    Below min_required the confidence rises linearly to 0.5; above it grows
    logarithmically and is capped at 0.95.
    """
    if interactions <= 0:
        return 0.0
    if min_required <= 0 or interactions >= min_required:
        ratio = interactions / max(min_required, 1)
        return min(0.5 + math.log2(ratio) * 0.2, 0.95)
    return interactions / min_required * 0.5


# --- Delivery Slots ---


def score_day_preference(slot: DeliverySlot, preferences: SlotPreferences | None = None) -> float:
    """Score a slot's weekday against preferred and avoided days."""
    if preferences is None:
        return NEUTRAL
    day = slot.day_of_week
    if day in preferences.avoid_days:
        return 0.0
    if day in preferences.preferred_days:
        return 1.0
    return NEUTRAL


def score_time_preference(slot: DeliverySlot, preferences: SlotPreferences | None = None) -> float:
    """Score a slot's hours against the time window or morning/evening leaning."""
    if preferences is None:
        return NEUTRAL

    window = preferences.time_window
    if window is not None:
        if slot.start_time < window.earliest or slot.end_time > window.latest:
            return 0.0
        return 1.0

    if preferences.prefer_morning and slot.start_time < MORNING_ENDS:
        return 1.0
    if preferences.prefer_evening and slot.start_time >= EVENING_STARTS:
        return 1.0
    return NEUTRAL


def score_cost(slot: DeliverySlot, preferences: SlotPreferences | None = None) -> float:
    """Score a slot's delivery cost.

    Free delivery scores 1. Costs above the household maximum score 0.
    Other costs decay linearly to 0 at the maximum, or at 10 (free
    delivery preferred) / 15 (otherwise) when no maximum is set.
    Unknown cost is neutral.
    """
    if slot.free_above_threshold:
        return 1.0
    cost = slot.delivery_cost
    if cost is None or math.isnan(cost):
        return NEUTRAL
    if cost <= 0:
        return 1.0

    prefs = preferences or SlotPreferences()
    max_cost = prefs.max_delivery_cost
    if max_cost is not None and cost > max_cost:
        return 0.0

    if max_cost is None:
        max_cost = DEFAULT_MAX_COST_FREE_PREFERRED if prefs.prefer_free_delivery else DEFAULT_MAX_COST
    if max_cost <= 0:
        return 0.0
    return clamp_unit(1 - cost / max_cost)


def score_availability(slot: DeliverySlot) -> float:
    return _AVAILABILITY_SCORES.get(slot.status, _AVAILABILITY_SCORES[SlotStatus.UNKNOWN])


def score_urgency(
    slot: DeliverySlot,
    preferences: SlotPreferences | None = None,
    today: date | None = None,
) -> float:
    """Score how soon a slot is: 1 up to tomorrow, 0 at max_days_ahead.

    Args:
        slot: The delivery slot
        preferences: Supplies max_days_ahead (default 14)
        today: Reference date. Defaults to date.today()
    """
    max_days_ahead = (preferences or SlotPreferences()).max_days_ahead
    reference = today or date.today()
    days_after_tomorrow = (slot.date - reference).days - 1
    if days_after_tomorrow <= 0:
        return 1.0
    return clamp_unit(1 - days_after_tomorrow / max_days_ahead)


def score_slot(
    slot: DeliverySlot,
    preferences: SlotPreferences | None = None,
    weights: SlotWeights | None = None,
    today: date | None = None,
) -> SlotScore:
    """Score a delivery slot on every factor and combine them.

    Args:
        slot: The delivery slot
        preferences: Household slot preferences
        weights: Factor weights, summing to 1.0
        today: Reference date for urgency

    Returns:
        SlotScore with each component and the weighted overall score
    """
    w = weights or SlotWeights()
    day = score_day_preference(slot, preferences)
    time_score = score_time_preference(slot, preferences)
    cost = score_cost(slot, preferences)
    availability = score_availability(slot)
    urgency = score_urgency(slot, preferences, today)

    overall = math.fsum(
        [
            day * w.day,
            time_score * w.time,
            cost * w.cost,
            availability * w.availability,
            urgency * w.urgency,
        ]
    )
    return SlotScore(
        day_score=day,
        time_score=time_score,
        cost_score=cost,
        availability_score=availability,
        urgency_score=urgency,
        overall=clamp_unit(overall),
    )


def generate_slot_reason(score: SlotScore) -> str:
    """Describe the notable parts of a slot score in a short phrase."""
    reasons = []

    if score.day_score == 1.0:
        reasons.append("preferred day")
    elif score.day_score == 0.0:
        reasons.append("avoided day")

    if score.time_score == 1.0:
        reasons.append("ideal time")
    elif score.time_score == 0.0:
        reasons.append("outside preferred hours")

    if score.cost_score == 1.0:
        reasons.append("free delivery")
    elif score.cost_score < 0.3:
        reasons.append("expensive delivery")

    if score.availability_score == 1.0:
        reasons.append("available")
    elif score.availability_score == 0.5:
        reasons.append("limited availability")
    elif score.availability_score == 0.0:
        reasons.append("fully booked")

    if score.urgency_score == 1.0:
        reasons.append("soonest available")
    elif score.urgency_score < 0.3:
        reasons.append("far in advance")

    return ", ".join(reasons) if reasons else "neutral match"


def rank_slots(
    slots: Iterable[DeliverySlot],
    preferences: SlotPreferences | None = None,
    weights: SlotWeights | None = None,
    today: date | None = None,
) -> list[RankedSlot]:
    """Rank slots by overall score, best first.

    Slots with equal scores keep their input order. Ranks start at 1.
    """
    scored = [(slot, score_slot(slot, preferences, weights, today)) for slot in slots]
    scored = sorted(scored, key=lambda pair: pair[1].overall, reverse=True)
    return [
        RankedSlot(slot=slot, score=score, reason=generate_slot_reason(score), rank=index)
        for index, (slot, score) in enumerate(scored, start=1)
    ]


def _parse_time(value: str) -> time | None:
    try:
        return time.fromisoformat(value.zfill(5))
    except ValueError:
        return None


def slot_preferences_from_household(
    delivery: DeliveryPreferences | None,
    max_delivery_cost: float | None = None,
) -> SlotPreferences:
    """Build slot-scoring preferences from stored delivery preferences.

    The time window spans the earliest start and latest end of the
    household's preferred "HH:MM-HH:MM" slots. Malformed slots are skipped.
    """
    if delivery is None:
        return SlotPreferences(max_delivery_cost=max_delivery_cost)

    starts: list[time] = []
    ends: list[time] = []
    for slot in delivery.preferred_time_slots:
        match = _TIME_SLOT.match(slot)
        start = _parse_time(match.group(1)) if match else None
        end = _parse_time(match.group(2)) if match else None
        if start is None or end is None:
            logger.warning("Ignoring malformed preferred time slot %r", slot)
            continue
        starts.append(start)
        ends.append(end)

    return SlotPreferences(
        preferred_days=[day.index for day in delivery.preferred_days],
        avoid_days=list(WEEKEND_DAYS) if delivery.avoid_weekends else [],
        time_window=TimeWindow(earliest=min(starts), latest=max(ends)) if starts else None,
        max_delivery_cost=max_delivery_cost,
    )


# --- Substitutes ---


def score_brand_similarity(candidate_brand: str | None, original_brand: str | None) -> float:
    """Exact brand 1.0, one containing the other 0.7, different 0.3."""
    if not candidate_brand or not original_brand:
        return NEUTRAL
    a = normalize_name(candidate_brand)
    b = normalize_name(original_brand)
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.7
    return 0.3


def parse_size(size: str) -> float | None:
    """Extract a size in grams or millilitres from text like '1,5 L'."""
    match = _SIZE_PATTERN.search(size)
    if not match:
        return None
    value = float(match.group(1).replace(",", "."))
    return value * _SIZE_FACTORS[match.group(2).lower()]


def score_size_similarity(candidate_size: str | None, original_size: str | None) -> float:
    """Score how close two package sizes are."""
    if not candidate_size or not original_size:
        return NEUTRAL
    a = normalize_name(candidate_size)
    b = normalize_name(original_size)
    if a == b:
        return 1.0

    candidate_value = parse_size(a)
    original_value = parse_size(b)
    if candidate_value is not None and original_value:
        ratio = candidate_value / original_value
        if 0.9 <= ratio <= 1.1:
            return 0.9
        if 0.7 <= ratio <= 1.3:
            return 0.7
        if 0.5 <= ratio <= 1.5:
            return 0.5
        return 0.3

    if a in b or b in a:
        return 0.6
    return 0.3


def score_price_similarity(candidate_price: float | None, original_price: float | None) -> float:
    """Score a candidate's price relative to the original.

    Cheaper products score at least 0.7; dearer ones drop in steps.
    """
    if candidate_price is None or not original_price or original_price <= 0:
        return NEUTRAL
    if candidate_price == original_price:
        return 1.0
    ratio = candidate_price / original_price
    if ratio <= 1.0:
        return max(0.7, 1 - (1 - ratio) * 0.5)
    if ratio <= 1.1:
        return 0.8
    if ratio <= 1.2:
        return 0.6
    if ratio <= 1.3:
        return 0.4
    return 0.2


def score_category_match(candidate_name: str, original_name: str) -> float:
    """Score word overlap between product names as a proxy for product type."""
    original_tokens = name_tokens(original_name)
    if not original_tokens:
        return NEUTRAL
    overlap = len(original_tokens & name_tokens(candidate_name)) / len(original_tokens)
    if overlap >= 0.7:
        return 1.0
    if overlap >= 0.5:
        return 0.8
    if overlap >= 0.3:
        return 0.6
    if overlap > 0:
        return 0.4
    return 0.2


def history_adjustment(pattern: SubstitutionPattern | None) -> float:
    """Nudge a substitute's score by how the household judged it before.

    Returns a value in [-0.15, 0.15]: positive for mostly accepted pairs,
    negative for mostly rejected ones, scaled by how much history exists.
    """
    if pattern is None or pattern.sample_size == 0:
        return 0.0
    strength = sample_factor(pattern.sample_size, full_at=5)
    return (pattern.acceptance_rate - 0.5) * 2 * MAX_HISTORY_ADJUSTMENT * strength


def score_substitute(
    candidate: SubstituteCandidate,
    original: SubstituteCandidate,
    weights: SubstituteWeights | None = None,
    pattern: SubstitutionPattern | None = None,
) -> SubstituteScore:
    """Score a substitute candidate against the unavailable original.

    Args:
        candidate: Proposed substitute
        original: The product being replaced
        weights: Factor weights, summing to 1.0
        pattern: Prior history for this pair, if any

    Returns:
        SubstituteScore with each component and the overall score
    """
    w = weights or SubstituteWeights()
    brand = score_brand_similarity(candidate.brand, original.brand)
    size = score_size_similarity(candidate.size, original.size)
    price = score_price_similarity(candidate.unit_price, original.unit_price)
    category = score_category_match(candidate.name, original.name)
    adjustment = history_adjustment(pattern)

    overall = math.fsum(
        [brand * w.brand, size * w.size, price * w.price, category * w.category, adjustment]
    )
    return SubstituteScore(
        brand_similarity=brand,
        size_similarity=size,
        price_similarity=price,
        category_match=category,
        history_adjustment=adjustment,
        overall=clamp_unit(overall),
    )


def generate_substitute_reason(
    candidate: SubstituteCandidate,
    original: SubstituteCandidate,
    score: SubstituteScore,
) -> str:
    """Explain a substitute score in a short sentence list."""
    if score.overall >= 0.8:
        reasons = ["Excellent match"]
    elif score.overall >= 0.6:
        reasons = ["Good match"]
    else:
        reasons = ["Possible alternative"]

    if score.brand_similarity >= 0.9:
        reasons.append("Same brand")
    elif score.brand_similarity >= 0.7:
        reasons.append("Similar brand")

    if score.size_similarity >= 0.9:
        reasons.append("Same size")
    elif score.size_similarity >= 0.7:
        reasons.append("Similar size")

    if original.unit_price and candidate.unit_price is not None:
        difference = candidate.unit_price - original.unit_price
        if difference <= 0:
            reasons.append("Same or lower price")
        elif difference <= original.unit_price * 0.1:
            reasons.append("Slightly more expensive")

    if score.category_match >= 0.8:
        reasons.append("Very similar product")
    elif score.category_match >= 0.6:
        reasons.append("Similar product type")

    if score.history_adjustment > 0:
        reasons.append("Accepted before")
    elif score.history_adjustment < 0:
        reasons.append("Rejected before")

    return ". ".join(reasons)


def _find_pattern(
    patterns: Iterable[SubstitutionPattern], original: str, substitute: str
) -> SubstitutionPattern | None:
    for pattern in patterns:
        if (
            normalize_name(pattern.original_item.name) == original
            and normalize_name(pattern.substitute_item.name) == substitute
        ):
            return pattern
    return None


def rank_substitutes(
    candidates: Iterable[SubstituteCandidate],
    original: SubstituteCandidate,
    weights: SubstituteWeights | None = None,
    patterns: Sequence[SubstitutionPattern] = (),
) -> list[RankedSubstitute]:
    """Rank substitute candidates, best first.

    Candidates with equal scores keep their input order. Ranks start at 1.

    Args:
        candidates: Proposed substitutes
        original: The product being replaced
        weights: Factor weights
        patterns: Substitution history used to adjust scores
    """
    original_name = normalize_name(original.name)
    scored = []
    for candidate in candidates:
        pattern = _find_pattern(patterns, original_name, normalize_name(candidate.name))
        score = score_substitute(candidate, original, weights, pattern)
        price_delta = None
        if candidate.unit_price is not None and original.unit_price is not None:
            price_delta = round(candidate.unit_price - original.unit_price, 2)
        scored.append((candidate, score, price_delta))

    scored = sorted(scored, key=lambda entry: entry[1].overall, reverse=True)
    return [
        RankedSubstitute(
            candidate=candidate,
            score=score,
            reason=generate_substitute_reason(candidate, original, score),
            price_delta=price_delta,
            rank=index,
        )
        for index, (candidate, score, price_delta) in enumerate(scored, start=1)
    ]
