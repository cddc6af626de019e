"""
Tests for configuration loading.
"""

from datetime import time

import pytest
from pydantic import ValidationError

from consultslot.config import AppConfig, AssignmentStrategy, EngineSettings, StoreSettings


class TestAppConfig:
    """Tests for AppConfig."""

    def test_defaults(self):
        config = AppConfig()

        assert config.timezone == "UTC"
        assert config.engine.slot_granularity_minutes == 15
        assert config.engine.sample_times == []
        assert config.engine.default_minimum_advance_hours == 24
        assert config.engine.assignment_strategy is AssignmentStrategy.OPTIMAL
        assert config.store.timeout_seconds > 0

    def test_load_from_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            'timezone: "Europe/Berlin"\n'
            "engine:\n"
            "  slot_granularity_minutes: 30\n"
            '  sample_times: ["15:00", "09:00", "12:00", "09:00"]\n'
            "  assignment_strategy: balanced\n"
            "store:\n"
            '  url: "https://db.example.co"\n'
            "  schema: booking\n"
            "  timeout_seconds: 2.5\n",
            encoding="utf-8",
        )

        config = AppConfig.load_from_yaml(config_file)

        assert config.timezone == "Europe/Berlin"
        assert config.engine.sample_times == [time(9, 0), time(12, 0), time(15, 0)]
        assert config.engine.assignment_strategy is AssignmentStrategy.BALANCED
        assert config.store.schema_name == "booking"
        assert config.store.rest_url() == "https://db.example.co/rest/v1"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.example.yaml"):
            AppConfig.load_from_yaml(tmp_path / "config.yaml")

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("engine: [unclosed\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid YAML"):
            AppConfig.load_from_yaml(config_file)

    def test_root_must_be_mapping(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError, match="mapping"):
            AppConfig.load_from_yaml(config_file)

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            AppConfig(timezone="Atlantis/Capital")

    def test_sample_times_on_grid(self):
        with pytest.raises(ValidationError, match="grid"):
            AppConfig(engine=EngineSettings(slot_granularity_minutes=30, sample_times=[time(9, 15)]))


class TestEngineSettings:
    """Tests for engine setting validators."""

    @pytest.mark.parametrize("granularity", [0, -15, 7, 45])
    def test_granularity_must_divide_hour(self, granularity):
        with pytest.raises(ValidationError):
            EngineSettings(slot_granularity_minutes=granularity)

    @pytest.mark.parametrize("field", ["days_ahead", "max_results"])
    def test_positive_fields(self, field):
        with pytest.raises(ValidationError):
            EngineSettings(**{field: 0})

    def test_negative_hold(self):
        with pytest.raises(ValidationError):
            EngineSettings(pending_hold_minutes=-1)


class TestStoreSettings:
    """Tests for store settings."""

    def test_timeouts_must_be_positive(self):
        with pytest.raises(ValidationError):
            StoreSettings(timeout_seconds=0)
        with pytest.raises(ValidationError):
            StoreSettings(lock_timeout_seconds=-1)

    def test_schema_by_field_name(self):
        assert StoreSettings(schema_name="booking").schema_name == "booking"
