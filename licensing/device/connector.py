"""RouterOS API session handling.

A :class:`DeviceSession` walks ``disconnected -> connecting -> connected ->
closed``. Connecting retries a bounded number of times with a linearly
growing delay; the session always ends ``closed`` whether the caller
succeeds, fails, or never got connected.

Commands use the RouterOS API sentence format: a command path followed by
words. Query words are ``?key=value`` (filter), attribute words are
``=key=value`` (set). Replies are dicts; every listed item carries an opaque
``.id`` used to target later removals.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

import librouteros
from librouteros.exceptions import LibRouterosError

from licensing.config import DeviceSyncConfig
from licensing.errors import DeviceCommandError, DeviceUnreachable

logger = logging.getLogger(__name__)

ADDRESS_LIST_PATH = "/ip/firewall/address-list"
IPV6_ADDRESS_LIST_PATH = "/ipv6/firewall/address-list"
ADDRESS_LIST_PATHS = (ADDRESS_LIST_PATH, IPV6_ADDRESS_LIST_PATH)
NAT_PATH = "/ip/firewall/nat"
ITEM_ID = ".id"


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


def filter_words(params: Mapping[str, Any]) -> list[str]:
    """``{"list": "X"}`` -> ``["?list=X"]``"""
    return [f"?{key}={value}" for key, value in params.items()]


def set_words(params: Mapping[str, Any]) -> list[str]:
    """``{"list": "X"}`` -> ``["=list=X"]``"""
    return [f"={key}={value}" for key, value in params.items()]


def address_list_path(ip_cidr: str) -> str:
    """RouterOS keeps IPv6 address lists in their own menu."""
    return IPV6_ADDRESS_LIST_PATH if ":" in ip_cidr else ADDRESS_LIST_PATH


class DeviceSession:
    """One logical connection to the router. Not reusable once closed."""

    def __init__(
        self,
        config: DeviceSyncConfig,
        connect: Callable[..., Any] = librouteros.connect,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self._connect = connect
        self._sleep = sleep
        self._api: Any = None
        self.state = SessionState.DISCONNECTED
        self.attempts = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> DeviceSession:
        if self.state is not SessionState.DISCONNECTED:
            raise DeviceCommandError("connect", f"session is {self.state.value}")

        self.state = SessionState.CONNECTING
        retries = self.config.connect_retries
        last_error: BaseException | None = None

        for attempt in range(1, retries + 1):
            self.attempts = attempt
            try:
                self._api = self._connect(
                    host=self.config.host,
                    username=self.config.username,
                    password=self.config.password,
                    port=self.config.port,
                    timeout=self.config.timeout_seconds,
                )
            except (OSError, LibRouterosError) as exc:
                last_error = exc
                logger.warning(
                    "Router connection attempt %d/%d to %s:%s failed: %s",
                    attempt,
                    retries,
                    self.config.host,
                    self.config.port,
                    exc,
                )
                if attempt < retries:
                    self._sleep(self.config.retry_delay_seconds * attempt)
                continue

            self.state = SessionState.CONNECTED
            logger.debug("Connected to router %s on attempt %d", self.config.host, attempt)
            return self

        self.state = SessionState.CLOSED
        raise DeviceUnreachable(self.config.host, retries, last_error)

    def close(self) -> None:
        if self._api is not None:
            try:
                self._api.close()
            except (OSError, LibRouterosError) as exc:
                logger.debug("Ignoring error while closing router session: %s", exc)
            self._api = None
        self.state = SessionState.CLOSED

    def __enter__(self) -> DeviceSession:
        try:
            return self.open()
        except BaseException:
            self.close()
            raise

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def run(self, command: str, *words: str) -> list[dict[str, Any]]:
        """Send one sentence and return every reply item."""
        if self.state is not SessionState.CONNECTED:
            raise DeviceCommandError(command, f"session is {self.state.value}")
        logger.debug("Router command %s %s", command, " ".join(words))
        try:
            return list(self._api.rawCmd(command, *words))
        except (OSError, LibRouterosError) as exc:
            raise DeviceCommandError(command, str(exc)) from exc

    def print(self, path: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        return self.run(f"{path}/print", *filter_words(filters or {}))

    def add(self, path: str, params: Mapping[str, Any]) -> list[dict[str, Any]]:
        return self.run(f"{path}/add", *set_words(params))

    def remove(self, path: str, item_id: str) -> None:
        self.run(f"{path}/remove", *set_words({ITEM_ID: item_id}))


class RouterOSConnector:
    """Factory for fresh, unpooled device sessions."""

    def __init__(
        self,
        config: DeviceSyncConfig,
        connect: Callable[..., Any] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.config = config
        self._connect = connect or librouteros.connect
        self._sleep = sleep or time.sleep

    def session(self) -> DeviceSession:
        """Return a new session; use it as a context manager."""
        return DeviceSession(self.config, connect=self._connect, sleep=self._sleep)
