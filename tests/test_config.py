from decimal import Decimal

import config


class TestSettingsProfiles:
    """Test profile selection used by the command line."""

    def test_profiles_differ_only_in_logging(self):
        development = config.get_settings_for_environment("development")
        production = config.get_settings_for_environment("production")

        assert (development.log_level, development.log_format) == ("DEBUG", "text")
        assert (production.log_level, production.log_format) == ("INFO", "json")
        assert development.max_balance == production.max_balance
        assert development.allow_redispute is production.allow_redispute is False

    def test_testing_profile_is_quiet(self):
        assert config.get_settings_for_environment("Testing").log_level == "WARNING"

    def test_unknown_environment_uses_defaults(self):
        settings = config.get_settings_for_environment("staging")

        assert type(settings) is config.Settings
        assert settings.max_balance == Decimal("100000000000000")

    def test_policy_from_environment(self, monkeypatch):
        monkeypatch.setenv("LEDGER_ALLOW_REDISPUTE", "true")
        monkeypatch.setenv("LEDGER_MAX_BALANCE", "500")

        settings = config.get_settings_for_environment("production")

        assert settings.allow_redispute is True
        assert settings.max_balance == Decimal("500")
