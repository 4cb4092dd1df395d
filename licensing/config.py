"""Licensing service configuration and router-sync settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_ADDRESS_LIST = "LICENSED_IPS"
DEFAULT_ROUTER_PORT = 8728


@dataclass(frozen=True)
class DeviceSyncConfig:
    """Connection and rule settings for the RouterOS device.

    Immutable so a single value can be shared by every reconciliation call.
    """

    enabled: bool = False
    host: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    port: int = DEFAULT_ROUTER_PORT
    interface: str = ""
    public_nat_ip: str = ""
    address_list: str = DEFAULT_ADDRESS_LIST

    # Connection policy
    connect_retries: int = 3
    retry_delay_seconds: float = 1.0  # multiplied by the attempt number
    timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if not self.address_list:
            object.__setattr__(self, "address_list", DEFAULT_ADDRESS_LIST)
        if self.connect_retries < 1:
            object.__setattr__(self, "connect_retries", 1)


@dataclass
class LicensingConfig:
    """Top-level configuration for the licensing service."""

    database_url: str = "sqlite:///licensing.db"
    log_level: str = "INFO"
    log_dir: str = ""

    device: DeviceSyncConfig = field(default_factory=DeviceSyncConfig)

    @classmethod
    def from_env(cls) -> LicensingConfig:
        """Load configuration from environment variables."""

        def _bool(key: str, default: bool = False) -> bool:
            return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

        def _int(key: str, default: int) -> int:
            try:
                return int(os.getenv(key, str(default)))
            except ValueError:
                return default

        def _float(key: str, default: float) -> float:
            try:
                return float(os.getenv(key, str(default)))
            except ValueError:
                return default

        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///licensing.db"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_dir=os.getenv("LOG_DIR", ""),
            device=DeviceSyncConfig(
                enabled=_bool("ROUTER_SYNC_ENABLED"),
                host=os.getenv("ROUTER_HOST", ""),
                username=os.getenv("ROUTER_USER", ""),
                password=os.getenv("ROUTER_PASSWORD", ""),
                port=_int("ROUTER_PORT", DEFAULT_ROUTER_PORT),
                interface=os.getenv("ROUTER_INTERFACE", ""),
                public_nat_ip=os.getenv("ROUTER_PUBLIC_NAT_IP", ""),
                address_list=os.getenv("ROUTER_ADDRESS_LIST", DEFAULT_ADDRESS_LIST),
                connect_retries=_int("ROUTER_CONNECT_RETRIES", 3),
                retry_delay_seconds=_float("ROUTER_RETRY_DELAY", 1.0),
                timeout_seconds=_float("ROUTER_TIMEOUT", 10.0),
            ),
        )
