"""Shared test fixtures for Household Memory."""

import pytest

from household_memory.cadence import CadenceStore
from household_memory.episodic_memory import EpisodicMemoryStore
from household_memory.item_signals import ItemSignalStore
from household_memory.memory import HouseholdMemory
from household_memory.models import ItemIdentifier
from household_memory.preferences import HouseholdPreferencesStore
from household_memory.substitution_history import SubstitutionHistoryStore

HOUSEHOLD = "household-1"


@pytest.fixture
def temp_data_dir(tmp_path):
    """Create a temporary data directory."""
    data_dir = tmp_path / "test_data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def item_store(temp_data_dir):
    """ItemSignalStore with temporary storage."""
    return ItemSignalStore(HOUSEHOLD, data_dir=temp_data_dir)


@pytest.fixture
def cadence_store(temp_data_dir):
    """CadenceStore with temporary storage."""
    return CadenceStore(HOUSEHOLD, data_dir=temp_data_dir)


@pytest.fixture
def substitution_store(temp_data_dir):
    """SubstitutionHistoryStore with temporary storage."""
    return SubstitutionHistoryStore(HOUSEHOLD, data_dir=temp_data_dir)


@pytest.fixture
def episodic_store(temp_data_dir):
    """EpisodicMemoryStore with temporary storage."""
    return EpisodicMemoryStore(HOUSEHOLD, data_dir=temp_data_dir)


@pytest.fixture
def preferences_store(temp_data_dir):
    """HouseholdPreferencesStore with temporary storage."""
    return HouseholdPreferencesStore(HOUSEHOLD, data_dir=temp_data_dir)


@pytest.fixture
def memory(temp_data_dir):
    """HouseholdMemory with temporary storage."""
    return HouseholdMemory(HOUSEHOLD, data_dir=temp_data_dir)


@pytest.fixture
def milk():
    return ItemIdentifier(name="Leite Mimosa 1L", sku="SKU-MILK", category="Dairy")


@pytest.fixture
def sample_orders():
    """Three orders as handed in by an order importer."""
    return [
        {
            "orderId": "order-1",
            "date": "2026-01-01T10:00:00Z",
            "items": [
                {"item": {"name": "Detergent", "category": "Cleaning"}, "quantity": 1, "price": 8.99},
                {"item": {"name": "Bananas", "category": "Fruit"}, "quantity": 6, "price": 1.2},
            ],
        },
        {
            "orderId": "order-2",
            "date": "2026-02-01T10:00:00Z",
            "items": [
                {"item": {"name": "Detergent", "category": "Cleaning"}, "quantity": 1, "price": 9.49},
                {"item": {"name": "Bananas", "category": "Fruit"}, "quantity": 5, "price": 1.25},
            ],
        },
        {
            "orderId": "order-3",
            "date": "2026-03-05T10:00:00Z",
            "items": [
                {"item": {"name": "Detergent", "category": "Cleaning"}, "quantity": 2, "price": 8.99},
            ],
        },
    ]
