"""
License Gate Configuration Tests
Tests for environment loading and default value correctness.
"""

from dataclasses import FrozenInstanceError

import pytest

from licensing.config import DEFAULT_ADDRESS_LIST, DeviceSyncConfig, LicensingConfig

ROUTER_VARS = (
    "ROUTER_SYNC_ENABLED",
    "ROUTER_HOST",
    "ROUTER_PORT",
    "ROUTER_ADDRESS_LIST",
    "ROUTER_CONNECT_RETRIES",
    "ROUTER_RETRY_DELAY",
)


class TestDefaults:
    def test_device_defaults(self):
        cfg = DeviceSyncConfig()
        assert cfg.enabled is False
        assert cfg.port == 8728
        assert cfg.address_list == DEFAULT_ADDRESS_LIST
        assert cfg.connect_retries == 3
        assert cfg.retry_delay_seconds == 1.0

    def test_empty_address_list_falls_back(self):
        assert DeviceSyncConfig(address_list="").address_list == "LICENSED_IPS"

    def test_retries_at_least_one(self):
        assert DeviceSyncConfig(connect_retries=0).connect_retries == 1

    def test_device_config_is_immutable(self):
        cfg = DeviceSyncConfig()
        with pytest.raises(FrozenInstanceError):
            cfg.enabled = True  # type: ignore[misc]

    def test_password_not_in_repr(self):
        assert "hunter2" not in repr(DeviceSyncConfig(password="hunter2"))


class TestFromEnv:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ROUTER_SYNC_ENABLED", "true")
        monkeypatch.setenv("ROUTER_HOST", "192.0.2.1")
        monkeypatch.setenv("ROUTER_PORT", "8729")
        monkeypatch.setenv("ROUTER_ADDRESS_LIST", "CUSTOMERS")
        monkeypatch.setenv("ROUTER_RETRY_DELAY", "0")
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/licensing")
        cfg = LicensingConfig.from_env()
        assert cfg.device.enabled is True
        assert cfg.device.host == "192.0.2.1"
        assert cfg.device.port == 8729
        assert cfg.device.address_list == "CUSTOMERS"
        assert cfg.device.retry_delay_seconds == 0.0
        assert cfg.database_url == "postgresql://u:p@db/licensing"

    def test_from_env_defaults(self, monkeypatch):
        for key in ROUTER_VARS:
            monkeypatch.delenv(key, raising=False)
        cfg = LicensingConfig.from_env()
        assert cfg.device.enabled is False
        assert cfg.device.port == 8728
        assert cfg.device.address_list == "LICENSED_IPS"

    def test_bad_numbers_fall_back(self, monkeypatch):
        monkeypatch.setenv("ROUTER_PORT", "not-a-port")
        monkeypatch.setenv("ROUTER_CONNECT_RETRIES", "many")
        cfg = LicensingConfig.from_env()
        assert cfg.device.port == 8728
        assert cfg.device.connect_retries == 3

    def test_blank_address_list_env(self, monkeypatch):
        monkeypatch.setenv("ROUTER_ADDRESS_LIST", "")
        assert LicensingConfig.from_env().device.address_list == "LICENSED_IPS"

    @pytest.mark.parametrize("value", ["1", "yes", "TRUE"])
    def test_truthy_values(self, monkeypatch, value):
        monkeypatch.setenv("ROUTER_SYNC_ENABLED", value)
        assert LicensingConfig.from_env().device.enabled is True
