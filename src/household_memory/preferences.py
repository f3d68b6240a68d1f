"""Household preferences store."""

import logging

from .data_store import BaseStore
from .item_matching import normalize_name
from .models import (
    Allergy,
    AllergySeverity,
    BrandPreference,
    BrandPreferenceLevel,
    BudgetConstraints,
    DeliveryPreferences,
    DietaryRestriction,
    HouseholdPreferences,
    QualityPreferences,
    SlotPreferences,
)
from .scoring import slot_preferences_from_household

logger = logging.getLogger(__name__)


class HouseholdPreferencesStore(BaseStore[HouseholdPreferences]):
    """Stores diet, allergy, brand, budget and delivery preferences."""

    file_name = "household-preferences.json"
    document_model = HouseholdPreferences

    # --- Read Operations ---

    def get_preferences(self) -> HouseholdPreferences:
        return self.ensure_loaded()

    def get_dietary_restrictions(self) -> list[DietaryRestriction]:
        return self.ensure_loaded().dietary_restrictions

    def get_allergies(self) -> list[Allergy]:
        return self.ensure_loaded().allergies

    def get_brand_preferences(self) -> list[BrandPreference]:
        return self.ensure_loaded().brand_preferences

    def get_brand_preference(self, brand: str) -> BrandPreference | None:
        """Get the preference recorded for a brand (case-insensitive)."""
        key = normalize_name(brand)
        for preference in self.ensure_loaded().brand_preferences:
            if normalize_name(preference.brand) == key:
                return preference
        return None

    def should_avoid_brand(self, brand: str) -> bool:
        preference = self.get_brand_preference(brand)
        return preference is not None and preference.preference == BrandPreferenceLevel.AVOID

    def is_preferred_brand(self, brand: str) -> bool:
        preference = self.get_brand_preference(brand)
        return preference is not None and preference.preference == BrandPreferenceLevel.PREFERRED

    def get_slot_preferences(self, max_delivery_cost: float | None = None) -> SlotPreferences:
        """Delivery preferences in the form slot scoring expects."""
        return slot_preferences_from_household(
            self.ensure_loaded().delivery_preferences, max_delivery_cost
        )

    # --- Write Operations ---

    def add_dietary_restriction(self, restriction: DietaryRestriction) -> None:
        document = self.ensure_loaded()
        if restriction not in document.dietary_restrictions:
            document.dietary_restrictions.append(restriction)
            self.save()

    def remove_dietary_restriction(self, restriction: DietaryRestriction) -> None:
        document = self.ensure_loaded()
        if restriction in document.dietary_restrictions:
            document.dietary_restrictions.remove(restriction)
            self.save()

    def add_allergy(self, allergy: Allergy) -> bool:
        """Add an allergy unless the allergen is already listed.

        Returns:
            True if the allergy was added
        """
        document = self.ensure_loaded()
        key = normalize_name(allergy.allergen)
        if any(normalize_name(a.allergen) == key for a in document.allergies):
            return False
        document.allergies.append(allergy)
        self.save()
        return True

    def remove_allergy(self, allergen: str) -> bool:
        document = self.ensure_loaded()
        key = normalize_name(allergen)
        remaining = [a for a in document.allergies if normalize_name(a.allergen) != key]
        if len(remaining) == len(document.allergies):
            return False
        document.allergies = remaining
        self.save()
        return True

    def update_allergy_severity(self, allergen: str, severity: AllergySeverity) -> bool:
        key = normalize_name(allergen)
        for allergy in self.ensure_loaded().allergies:
            if normalize_name(allergy.allergen) == key:
                allergy.severity = severity
                self.save()
                return True
        return False

    def set_brand_preference(
        self, brand: str, preference: BrandPreferenceLevel, reason: str | None = None
    ) -> BrandPreference:
        """Set or replace the preference for a brand."""
        document = self.ensure_loaded()
        brand_preference = BrandPreference(brand=brand, preference=preference, reason=reason)
        key = normalize_name(brand)
        for index, existing in enumerate(document.brand_preferences):
            if normalize_name(existing.brand) == key:
                document.brand_preferences[index] = brand_preference
                break
        else:
            document.brand_preferences.append(brand_preference)
        self.save()
        logger.debug("Brand '%s' set to %s", brand, preference.value)
        return brand_preference

    def remove_brand_preference(self, brand: str) -> bool:
        document = self.ensure_loaded()
        key = normalize_name(brand)
        remaining = [p for p in document.brand_preferences if normalize_name(p.brand) != key]
        if len(remaining) == len(document.brand_preferences):
            return False
        document.brand_preferences = remaining
        self.save()
        return True

    def update_budget_constraints(self, constraints: BudgetConstraints | None) -> None:
        self.ensure_loaded().budget_constraints = constraints
        self.save()

    def update_quality_preferences(self, preferences: QualityPreferences | None) -> None:
        self.ensure_loaded().quality_preferences = preferences
        self.save()

    def update_delivery_preferences(self, preferences: DeliveryPreferences | None) -> None:
        self.ensure_loaded().delivery_preferences = preferences
        self.save()

    def set_notes(self, notes: str | None) -> None:
        self.ensure_loaded().notes = notes
        self.save()
