"""
Tests for the tabpilot command line interface.

This module tests:
- The keys command
- Configuration errors reported before a browser is launched
"""

from unittest.mock import patch

from click.testing import CliRunner

from tabpilot.cli import main

MODEL_ENV_VARS = (
    "VISION_API_KEY",
    "PERCEPTRON_API_KEY",
    "REASONING_API_KEY",
    "OPENAI_API_KEY",
    "VISION_API_URL",
    "REASONING_API_URL",
)


class TestCLI:
    """Tests for the click commands."""

    def test_keys(self):
        """Test key names are listed one per line."""
        result = CliRunner().invoke(main, ["keys"])

        assert result.exit_code == 0
        names = result.output.splitlines()
        assert "Enter" in names
        assert "ControlOrMeta" in names

    def test_run_without_api_keys(self, monkeypatch):
        """Test a missing API key fails fast without launching a browser."""
        for name in MODEL_ENV_VARS:
            monkeypatch.delenv(name, raising=False)

        with patch("tabpilot.cli.run.BrowserEnvironment.create") as create:
            result = CliRunner().invoke(main, ["run", "find the docs"])

        assert result.exit_code == 1
        assert "API key for the vision model not found" in result.output
        create.assert_not_called()

    def test_invalid_protocol(self):
        """Test unknown decision protocols are rejected by click."""
        result = CliRunner().invoke(main, ["run", "goal", "--protocol", "xml"])

        assert result.exit_code == 2
