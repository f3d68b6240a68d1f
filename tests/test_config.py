"""Tests for configuration management."""

from pathlib import Path

import pytest

from household_memory.config import ConfigManager


@pytest.fixture
def config_file(tmp_path):
    """Create a temporary config file."""
    config_path = tmp_path / "household-memory.toml"
    config_path.write_text("""
[data]
storage_dir = "/tmp/household-test"
household_id = "casa-silva"

[scoring]
similarity_threshold = 0.8
max_delivery_cost = 4.5

[scoring.slot_weights]
day = 0.4
time = 0.2
cost = 0.2
availability = 0.1
urgency = 0.1

[scoring.substitute_weights]
brand = 0.5
price = 0.1

[cadence]
restock_threshold = 0.9
high_confidence = 0.6

[retention]
keep_item_purchases = 20
keep_substitution_days = 90
keep_episodic_days = 30
""")
    return config_path


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_load_config_file(self, config_file):
        """Load configuration from file."""
        manager = ConfigManager(config_path=config_file)

        assert manager.data.storage_dir == Path("/tmp/household-test")
        assert manager.data.household_id == "casa-silva"

    def test_scoring_config(self, config_file):
        """Load scoring thresholds."""
        manager = ConfigManager(config_path=config_file)

        assert manager.scoring.similarity_threshold == 0.8
        assert manager.scoring.max_delivery_cost == 4.5

    def test_slot_weights(self, config_file):
        """Slot weights come from their own table."""
        manager = ConfigManager(config_path=config_file)

        weights = manager.scoring.slot_weights
        assert weights.day == 0.4
        assert weights.urgency == 0.1

    def test_partial_substitute_weights(self, config_file):
        """Unset substitute weights keep their defaults."""
        manager = ConfigManager(config_path=config_file)

        weights = manager.scoring.substitute_weights
        assert weights.brand == 0.5
        assert weights.price == 0.1
        assert weights.size == 0.2  # Default
        assert weights.category == 0.2  # Default

    def test_cadence_config(self, config_file):
        """Load cadence thresholds."""
        manager = ConfigManager(config_path=config_file)

        assert manager.cadence.restock_threshold == 0.9
        assert manager.cadence.high_confidence == 0.6

    def test_retention_config(self, config_file):
        """Load retention settings, defaulting the rest."""
        manager = ConfigManager(config_path=config_file)

        assert manager.retention.keep_item_purchases == 20
        assert manager.retention.keep_substitution_days == 90
        assert manager.retention.keep_episodic_days == 30
        assert manager.retention.recent_item_days == 30
        assert manager.retention.frequent_item_limit == 50

    def test_missing_config_uses_defaults(self, tmp_path):
        """Missing config file uses default values."""
        manager = ConfigManager(config_path=tmp_path / "nonexistent.toml")

        assert manager.data.household_id == "default"
        assert manager.data.storage_dir == Path.home() / ".household-memory" / "data"
        assert manager.scoring.similarity_threshold == 0.7
        assert manager.scoring.max_delivery_cost is None
        assert manager.scoring.slot_weights.day == 0.20
        assert manager.cadence.restock_threshold == 0.8
        assert manager.retention.keep_episodic_days == 180

    def test_get_by_path(self, config_file):
        """Get config value by dot-notation path."""
        manager = ConfigManager(config_path=config_file)

        assert manager.get("data.household_id") == "casa-silva"
        assert manager.get("retention.keep_episodic_days") == 30
        assert manager.get("scoring.slot_weights.day") == 0.4

    def test_get_with_default(self, config_file):
        """Get returns default for missing path."""
        manager = ConfigManager(config_path=config_file)

        assert manager.get("nonexistent.key", "default") == "default"
        assert manager.get("nonexistent", None) is None

    def test_get_unset_value_returns_default(self, tmp_path):
        """Values left unset fall back to the given default."""
        manager = ConfigManager(config_path=tmp_path / "nonexistent.toml")

        assert manager.get("scoring.max_delivery_cost", 10.0) == 10.0

    def test_storage_dir_expands_user(self, tmp_path):
        """A home-relative storage dir is expanded."""
        config_path = tmp_path / "partial.toml"
        config_path.write_text("""
[data]
storage_dir = "~/memory"
""")
        manager = ConfigManager(config_path=config_path)

        assert manager.data.storage_dir == Path.home() / "memory"
        assert manager.data.household_id == "default"  # Default


class TestConfigDiscovery:
    """Tests for config file discovery."""

    def test_finds_local_config(self, tmp_path, monkeypatch):
        """Finds household-memory.toml in current directory."""
        monkeypatch.chdir(tmp_path)

        config_path = tmp_path / "household-memory.toml"
        config_path.write_text("""
[data]
household_id = "local"
""")

        manager = ConfigManager()
        assert manager.data.household_id == "local"
        assert manager.config_path == config_path

    def test_prefers_explicit_path(self, tmp_path, monkeypatch):
        """Explicit path takes precedence over discovery."""
        monkeypatch.chdir(tmp_path)

        local_config = tmp_path / "household-memory.toml"
        local_config.write_text('[data]\nhousehold_id = "local"')

        explicit_config = tmp_path / "explicit.toml"
        explicit_config.write_text('[data]\nhousehold_id = "explicit"')

        manager = ConfigManager(config_path=explicit_config)
        assert manager.data.household_id == "explicit"
