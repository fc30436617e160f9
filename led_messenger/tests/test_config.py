"""
Tests for configuration validation and loading.
"""

import pytest

from led_messenger.config import (
    OscConfig,
    RetryPolicy,
    apply_overrides,
    config_from_dict,
    load_config,
)
from led_messenger.errors import ConfigurationError


class TestOscConfig:
    """Test OscConfig validation."""

    def test_defaults(self):
        """Defaults describe clips 1-3 on layer 3 with clear clip 4."""
        config = OscConfig()

        assert config.port == 2269
        assert config.slot_range.clear_slot == 4
        assert config.auto_clear_enabled
        assert not config.has_valid_endpoint

    def test_valid(self):
        """A configured host passes validation."""
        config = OscConfig(host="192.168.1.20")
        assert config.validate() is config

    @pytest.mark.parametrize("kwargs", [
        {"host": ""},
        {"host": "   "},
        {"host": "h", "port": 0},
        {"host": "h", "port": 70000},
        {"host": "h", "layer": 0},
        {"host": "h", "start_slot": 0},
        {"host": "h", "clip_count": 0},
        {"host": "h", "clear_slot": 2},
        {"host": "h", "text_delay": -0.1},
    ])
    def test_invalid(self, kwargs):
        """Invalid fields raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            OscConfig(**kwargs).validate()

    def test_same_endpoint_ignores_slots(self):
        """Only host and port decide whether the endpoint changed."""
        a = OscConfig(host="h", port=1, layer=3)
        assert a.same_endpoint(OscConfig(host="h", port=1, layer=5, clip_count=8))
        assert not a.same_endpoint(OscConfig(host="h", port=2))

    def test_auto_clear_disabled(self):
        """Zero or negative duration disables auto-clear."""
        assert not OscConfig(auto_clear_after=0).auto_clear_enabled
        assert not OscConfig(auto_clear_after=-1).auto_clear_enabled

    def test_apply_overrides(self):
        """None overrides are ignored."""
        config = apply_overrides(OscConfig(host="a"), host=None, port=9000, layer=None)
        assert config.host == "a"
        assert config.port == 9000


class TestLoading:
    """Test mapping and YAML loading."""

    def test_from_dict(self):
        """Sections are coerced to field types."""
        config, retry = config_from_dict({
            "osc": {"host": "10.0.0.5", "port": "7000", "text_delay": 1},
            "retry": {"retry_delay": 5},
        })

        assert config.host == "10.0.0.5"
        assert config.port == 7000
        assert config.text_delay == 1.0
        assert retry.retry_delay == 5.0
        assert retry.quick_start_delay == RetryPolicy().quick_start_delay

    def test_empty_dict(self):
        """No data yields defaults."""
        assert config_from_dict(None) == (OscConfig(), RetryPolicy())

    def test_bad_value(self):
        """Uncoercible values raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            config_from_dict({"osc": {"port": "abc"}})

    def test_bad_section(self):
        """Sections must be mappings."""
        with pytest.raises(ConfigurationError):
            config_from_dict({"osc": [1, 2]})

    def test_unknown_keys_ignored(self):
        """Unknown keys are skipped."""
        config, _ = config_from_dict({"osc": {"host": "h", "colour": "red"}})
        assert config.host == "h"

    def test_load_yaml(self, tmp_path):
        """YAML file is read with an osc section."""
        path = tmp_path / "led.yaml"
        path.write_text("osc:\n  host: 192.168.1.20\n  layer: 2\n  clip_count: 5\n")

        config, retry = load_config(path)

        assert config.host == "192.168.1.20"
        assert config.layer == 2
        assert config.slot_range.clear_slot == 6
        assert retry == RetryPolicy()

    def test_missing_file(self, tmp_path):
        """Missing file yields defaults."""
        assert load_config(tmp_path / "missing.yaml") == (OscConfig(), RetryPolicy())

    def test_invalid_yaml(self, tmp_path):
        """Broken YAML raises ConfigurationError."""
        path = tmp_path / "broken.yaml"
        path.write_text("osc: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_config(path)
