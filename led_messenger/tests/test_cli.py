"""
Tests for the command line front end.
"""

import pytest

from led_messenger.cli import EXIT_CONFIG, build_parser, main, resolve_config


class TestParser:
    """Test argument parsing and config resolution."""

    def test_send_command(self):
        """send takes one or more texts."""
        args = build_parser().parse_args(["--host", "10.0.0.2", "send", "A", "B"])

        assert args.command == "send"
        assert args.texts == ["A", "B"]

    def test_command_required(self):
        """A sub-command is mandatory."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_overrides_beat_file(self, tmp_path):
        """Command line flags override the YAML file."""
        path = tmp_path / "led.yaml"
        path.write_text("osc:\n  host: 10.0.0.1\n  port: 7000\n  layer: 2\n")
        args = build_parser().parse_args(
            ["--config", str(path), "--port", "8000", "--clip-count", "4", "clear"]
        )

        config, _ = resolve_config(args)

        assert config.host == "10.0.0.1"
        assert config.port == 8000
        assert config.layer == 2
        assert config.slot_range.clear_slot == 5

    def test_missing_host_exits_with_config_error(self, tmp_path):
        """Without a host the CLI exits before touching the network."""
        assert main(["--config", str(tmp_path / "none.yaml"), "clear"]) == EXIT_CONFIG
