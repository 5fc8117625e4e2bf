"""Tests for configuration and logging setup."""

import logging

import pytest
from rich.logging import RichHandler

from vp_verifier.settings import VerifierSettings, configure_logging, interpret_as_bool


class TestVerifierSettings:
    """Tests for VerifierSettings.from_env."""

    def test_defaults(self):
        """Test that an empty environment gives the defaults."""
        settings = VerifierSettings.from_env({})
        assert settings == VerifierSettings()
        assert settings.proof_max_age == 3600
        assert settings.expiry_warning_days == 30

    def test_overrides(self):
        """Test reading every variable."""
        settings = VerifierSettings.from_env({
            "VP_VERIFIER_PROOF_MAX_AGE": "120",
            "VP_VERIFIER_EXPIRY_WARNING_DAYS": "7",
            "VP_VERIFIER_HTTP_TIMEOUT": "2.5",
            "VP_VERIFIER_VERIFY_SSL": "false",
            "VP_VERIFIER_LOG_LEVEL": "debug",
        })

        assert settings == VerifierSettings(
            proof_max_age=120,
            expiry_warning_days=7,
            http_timeout=2.5,
            verify_ssl=False,
            log_level="DEBUG",
        )

    def test_invalid_number(self):
        """Test that a bad number raises ValueError."""
        with pytest.raises(ValueError):
            VerifierSettings.from_env({"VP_VERIFIER_PROOF_MAX_AGE": "an hour"})

    @pytest.mark.parametrize(
        "value, expected",
        [("1", True), ("TRUE", True), ("yes", True), ("0", False), ("off", False), (True, True)],
    )
    def test_interpret_as_bool(self, value, expected):
        """Test boolean parsing."""
        assert interpret_as_bool(value) is expected


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_installs_rich_handler(self):
        """Test that the root logger gets a RichHandler at the given level."""
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("INFO")
            assert root.level == logging.INFO
            assert any(isinstance(h, RichHandler) for h in root.handlers)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
