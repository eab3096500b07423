"""
Tests for environment-driven settings
"""

import pytest

from nshot.config.settings import load_settings, DEFAULT_MAX_PAYLOAD_BYTES
from nshot.errors import ConfigurationError


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings({})

        assert settings.db_path == "nshot.db"
        assert settings.config_path == "nshot_config.json"
        assert settings.host == "127.0.0.1"
        assert settings.port == 3030
        assert settings.max_payload_bytes == DEFAULT_MAX_PAYLOAD_BYTES == 16384
        assert settings.meter_push is False
        assert settings.purge_exhausted is False
        assert settings.admin_token is None
        assert settings.audit_max_events == 10000
        assert settings.audit_retention_days == 90

    def test_overrides(self):
        settings = load_settings({
            "NSHOT_DB_PATH": "/tmp/x.db",
            "NSHOT_PORT": "8443",
            "NSHOT_MAX_PAYLOAD_BYTES": "100",
            "NSHOT_METER_PUSH": "yes",
            "NSHOT_PURGE_EXHAUSTED": "1",
            "NSHOT_ADMIN_TOKEN": "s3cret",
            "NSHOT_DB_TIMEOUT": "2.5",
            "NSHOT_AUDIT_MAX_EVENTS": "50",
            "NSHOT_AUDIT_RETENTION_DAYS": "7",
        })

        assert settings.db_path == "/tmp/x.db"
        assert settings.port == 8443
        assert settings.max_payload_bytes == 100
        assert settings.meter_push is True
        assert settings.purge_exhausted is True
        assert settings.admin_token == "s3cret"
        assert settings.db_timeout == 2.5
        assert settings.audit_max_events == 50
        assert settings.audit_retention_days == 7

    def test_empty_admin_token_means_unset(self):
        assert load_settings({"NSHOT_ADMIN_TOKEN": ""}).admin_token is None

    @pytest.mark.parametrize("name,value", [
        ("NSHOT_PORT", "http"),
        ("NSHOT_PORT", "0"),
        ("NSHOT_MAX_PAYLOAD_BYTES", "-1"),
        ("NSHOT_METER_PUSH", "maybe"),
        ("NSHOT_DB_TIMEOUT", "0"),
        ("NSHOT_AUDIT_MAX_EVENTS", "0"),
        ("NSHOT_AUDIT_RETENTION_DAYS", "-3"),
    ])
    def test_malformed_values(self, name, value):
        with pytest.raises(ConfigurationError):
            load_settings({name: value})
