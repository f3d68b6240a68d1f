"""Item identity resolution and name heuristics."""

import re

from .models import ItemIdentifier

CATEGORY_MATCH_SCORE = 0.8
_MIN_TOKEN_LENGTH = 3


def normalize_name(name: str) -> str:
    """Lower-case a name and collapse runs of whitespace."""
    return re.sub(r"\s+", " ", name.strip().lower())


def _ordered_match_ratio(a: str, b: str) -> float:
    matches = 0
    a_idx = 0
    b_idx = 0
    while a_idx < len(a) and b_idx < len(b):
        if a[a_idx] == b[b_idx]:
            matches += 1
            b_idx += 1
        a_idx += 1
    return matches / max(len(a), len(b))


def string_similarity(a: str, b: str) -> float:
    """Approximate similarity of two strings in [0, 1].

    Counts characters of one string found left-to-right in the other and
    divides by the longer length. Scanning is done in both directions and the
    higher ratio kept, so the result does not depend on argument order.
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return max(_ordered_match_ratio(a, b), _ordered_match_ratio(b, a))


def calculate_item_similarity(a: ItemIdentifier, b: ItemIdentifier) -> float:
    """Mean of the identity factors present on both items.

    SKU and barcode contribute 1.0 on an exact match and 0 otherwise, names
    contribute their string similarity and a shared category contributes 0.8.
    """
    score = 0.0
    factors = 0

    if a.sku and b.sku:
        factors += 1
        if a.sku == b.sku:
            score += 1.0

    if a.barcode and b.barcode:
        factors += 1
        if a.barcode == b.barcode:
            score += 1.0

    if a.name and b.name:
        factors += 1
        score += string_similarity(a.name.lower(), b.name.lower())

    if a.category and b.category:
        factors += 1
        if a.category == b.category:
            score += CATEGORY_MATCH_SCORE

    return score / factors if factors else 0.0


def item_key(item: ItemIdentifier) -> str:
    """Grouping key for an item: its SKU, else its normalized name."""
    return item.sku or normalize_name(item.name)


def brand_token(name: str) -> str:
    """Guess a brand from a product name: its first word, lower-cased."""
    parts = name.strip().split()
    return parts[0].lower() if parts else ""


def same_brand(a: ItemIdentifier, b: ItemIdentifier) -> bool:
    return brand_token(a.name) == brand_token(b.name)


def name_tokens(name: str) -> set[str]:
    """Distinct lower-cased words of at least three characters."""
    return {token for token in name.lower().split() if len(token) >= _MIN_TOKEN_LENGTH}
