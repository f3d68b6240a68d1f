"""Configuration management for Household Memory."""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import SlotWeights, SubstituteWeights


@dataclass
class DataConfig:
    """Data storage configuration."""

    storage_dir: Path
    household_id: str = "default"


@dataclass
class ScoringConfig:
    """Scoring weights and thresholds."""

    slot_weights: SlotWeights = field(default_factory=SlotWeights)
    substitute_weights: SubstituteWeights = field(default_factory=SubstituteWeights)
    similarity_threshold: float = 0.7
    max_delivery_cost: float | None = None


@dataclass
class CadenceConfig:
    """Restock cadence configuration."""

    restock_threshold: float = 0.8
    high_confidence: float = 0.7


@dataclass
class RetentionConfig:
    """How much history to keep and summarise."""

    keep_item_purchases: int = 50
    keep_substitution_days: int = 365
    keep_episodic_days: int = 180
    recent_item_days: int = 30
    frequent_item_limit: int = 50


@dataclass
class Config:
    """Complete application configuration."""

    data: DataConfig
    scoring: ScoringConfig
    cadence: CadenceConfig
    retention: RetentionConfig


class ConfigManager:
    """Manages application configuration from TOML files."""

    def __init__(self, config_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional explicit path to config file.
                        If not provided, searches standard locations.
        """
        self.config_path = config_path or self._find_config()
        self._config = self._load_config()

    @property
    def data(self) -> DataConfig:
        return self._config.data

    @property
    def scoring(self) -> ScoringConfig:
        return self._config.scoring

    @property
    def cadence(self) -> CadenceConfig:
        return self._config.cadence

    @property
    def retention(self) -> RetentionConfig:
        return self._config.retention

    def _find_config(self) -> Path:
        """Find config file in standard locations."""
        locations = [
            Path.cwd() / "household-memory.toml",
            Path.home() / ".config" / "household-memory" / "config.toml",
        ]

        for loc in locations:
            if loc.exists():
                return loc

        return locations[-1]

    def _load_config(self) -> Config:
        """Load configuration from TOML file."""
        if not self.config_path.exists():
            return self._default_config()

        with open(self.config_path, "rb") as f:
            data = tomllib.load(f)

        data_section = data.get("data", {})
        scoring = data.get("scoring", {})
        cadence = data.get("cadence", {})
        retention = data.get("retention", {})

        return Config(
            data=DataConfig(
                storage_dir=Path(
                    data_section.get("storage_dir", "~/.household-memory/data")
                ).expanduser(),
                household_id=data_section.get("household_id", "default"),
            ),
            scoring=ScoringConfig(
                slot_weights=SlotWeights(**scoring.get("slot_weights", {})),
                substitute_weights=SubstituteWeights(**scoring.get("substitute_weights", {})),
                similarity_threshold=scoring.get("similarity_threshold", 0.7),
                max_delivery_cost=scoring.get("max_delivery_cost"),
            ),
            cadence=CadenceConfig(
                restock_threshold=cadence.get("restock_threshold", 0.8),
                high_confidence=cadence.get("high_confidence", 0.7),
            ),
            retention=RetentionConfig(
                keep_item_purchases=retention.get("keep_item_purchases", 50),
                keep_substitution_days=retention.get("keep_substitution_days", 365),
                keep_episodic_days=retention.get("keep_episodic_days", 180),
                recent_item_days=retention.get("recent_item_days", 30),
                frequent_item_limit=retention.get("frequent_item_limit", 50),
            ),
        )

    def _default_config(self) -> Config:
        """Return default configuration."""
        return Config(
            data=DataConfig(storage_dir=Path.home() / ".household-memory" / "data"),
            scoring=ScoringConfig(),
            cadence=CadenceConfig(),
            retention=RetentionConfig(),
        )

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get config value by dot-notation path.

        Args:
            key_path: Dot-separated path like 'retention.keep_episodic_days'
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        value: Any = self._config

        for key in key_path.split("."):
            if hasattr(value, key):
                value = getattr(value, key)
            elif isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default

        return value
