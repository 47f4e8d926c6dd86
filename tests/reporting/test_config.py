"""
Tests for reporting configuration.

Verifies defaults, dictionary loading and validation.
NO database required.
"""

from __future__ import annotations

import pytest

from statement_modules.reporting.config import ReportingConfig


class TestReportingConfig:
    """Tests for ReportingConfig."""

    def test_defaults(self):
        config = ReportingConfig.with_defaults()
        assert config.include_comparatives is True
        assert config.include_traces is True
        assert config.cross_statement_source == "REV_EXP"
        assert config.warn_on_unlocked_rollover_source is True

    def test_custom_values(self):
        config = ReportingConfig(
            include_comparatives=False,
            include_traces=False,
            cross_statement_source="CUSTOM_REV_EXP",
        )
        assert config.include_comparatives is False
        assert config.include_traces is False
        assert config.cross_statement_source == "CUSTOM_REV_EXP"

    def test_empty_cross_statement_source_rejected(self):
        with pytest.raises(ValueError, match="cross_statement_source"):
            ReportingConfig(cross_statement_source="")

    def test_from_dict(self):
        config = ReportingConfig.from_dict({
            "include_traces": False,
            "warn_on_unlocked_rollover_source": False,
        })
        assert config.include_traces is False
        assert config.warn_on_unlocked_rollover_source is False
        assert config.include_comparatives is True

    def test_from_dict_unknown_key_rejected(self):
        with pytest.raises(TypeError):
            ReportingConfig.from_dict({"currency": "RWF"})

    def test_from_dict_logs_keys(self, captured_logs):
        ReportingConfig.from_dict({"include_traces": True})

        records = [
            r for r in captured_logs()
            if r["message"] == "reporting_config_loading_from_dict"
        ]
        assert records[0]["keys"] == ["include_traces"]
