"""Tests for item identity helpers."""

import pytest

from household_memory.item_matching import (
    brand_token,
    calculate_item_similarity,
    item_key,
    name_tokens,
    normalize_name,
    same_brand,
    string_similarity,
)
from household_memory.models import ItemIdentifier


class TestStringSimilarity:
    """Tests for string_similarity."""

    def test_identical(self):
        """Identical strings score 1."""
        assert string_similarity("milk", "milk") == 1.0

    def test_empty(self):
        """An empty string scores 0."""
        assert string_similarity("", "milk") == 0.0
        assert string_similarity("milk", "") == 0.0

    def test_prefix(self):
        """In-order matches are divided by the longer length."""
        assert string_similarity("milk", "milks") == pytest.approx(0.8)

    def test_symmetric(self):
        """Argument order does not matter."""
        pairs = [("abc", "cab"), ("oat milk", "milk oat"), ("banana", "bandana")]
        for a, b in pairs:
            assert string_similarity(a, b) == string_similarity(b, a)

    def test_unrelated(self):
        """Unrelated strings score low."""
        assert string_similarity("xyz", "abc") == 0.0


class TestItemSimilarity:
    """Tests for calculate_item_similarity."""

    def test_same_sku(self):
        """Matching SKU and name give 1."""
        a = ItemIdentifier(name="Milk", sku="1")
        b = ItemIdentifier(name="milk", sku="1")
        assert calculate_item_similarity(a, b) == 1.0

    def test_mean_of_present_factors(self):
        """Only factors present on both sides count."""
        a = ItemIdentifier(name="Milk", sku="1", category="Dairy")
        b = ItemIdentifier(name="Milk", sku="2", category="Dairy")
        # sku 0, name 1, category 0.8
        assert calculate_item_similarity(a, b) == pytest.approx(1.8 / 3)

    def test_one_sided_fields_ignored(self):
        """A SKU on only one side is not a factor."""
        a = ItemIdentifier(name="Milk", sku="1")
        b = ItemIdentifier(name="Milk")
        assert calculate_item_similarity(a, b) == 1.0

    def test_different_category(self):
        """Different categories contribute 0."""
        a = ItemIdentifier(name="Milk", category="Dairy")
        b = ItemIdentifier(name="Milk", category="Drinks")
        assert calculate_item_similarity(a, b) == pytest.approx(0.5)

    def test_symmetric(self):
        """Similarity is symmetric."""
        a = ItemIdentifier(name="Leite Mimosa", barcode="560", category="Dairy")
        b = ItemIdentifier(name="Leite Agros Meio Gordo", barcode="561", category="Dairy")
        assert calculate_item_similarity(a, b) == calculate_item_similarity(b, a)


class TestNameHelpers:
    """Tests for name heuristics."""

    def test_normalize_name(self):
        """Lower-case and collapse whitespace."""
        assert normalize_name("  Oat   MILK ") == "oat milk"

    def test_item_key_prefers_sku(self):
        """SKU wins over name."""
        assert item_key(ItemIdentifier(name="Milk", sku="S1")) == "S1"
        assert item_key(ItemIdentifier(name=" Whole  Milk")) == "whole milk"

    def test_brand_token(self):
        """The first word is taken as the brand."""
        assert brand_token("Mimosa Leite 1L") == "mimosa"
        assert brand_token("   ") == ""

    def test_same_brand(self):
        """Brands are compared case-insensitively."""
        assert same_brand(ItemIdentifier(name="Mimosa Milk"), ItemIdentifier(name="mimosa Butter"))
        assert not same_brand(ItemIdentifier(name="Mimosa Milk"), ItemIdentifier(name="Agros Milk"))

    def test_name_tokens(self):
        """Short words are dropped."""
        assert name_tokens("Oat Milk 1L de") == {"oat", "milk"}
