"""Shared fixtures: in-memory database and a fake RouterOS device."""

from __future__ import annotations

from typing import Any

import pytest
from librouteros.exceptions import LibRouterosError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from licensing.config import DeviceSyncConfig
from licensing.device.connector import ADDRESS_LIST_PATH, IPV6_ADDRESS_LIST_PATH, NAT_PATH, RouterOSConnector


class FakeRouter:
    """In-memory stand-in for a RouterOS device.

    ``connect`` mimics ``librouteros.connect``: it returns a fresh API handle
    per call, and all handles share the same address-list / NAT tables.
    """

    def __init__(self, connect_failures: int = 0) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {ADDRESS_LIST_PATH: [], IPV6_ADDRESS_LIST_PATH: [], NAT_PATH: []}
        self.commands: list[tuple[str, tuple[str, ...]]] = []
        self.connect_calls: list[dict[str, Any]] = []
        self.connect_failures = connect_failures
        self.fail_commands: set[str] = set()
        self.handles: list[FakeRouterAPI] = []
        self._next_id = 1

    # librouteros.connect(host=..., username=..., ...)
    def connect(self, **kwargs: Any) -> FakeRouterAPI:
        self.connect_calls.append(kwargs)
        if self.connect_failures > 0:
            self.connect_failures -= 1
            raise ConnectionRefusedError("connection refused")
        handle = FakeRouterAPI(self)
        self.handles.append(handle)
        return handle

    @property
    def address_list(self) -> list[dict[str, Any]]:
        return self.tables[ADDRESS_LIST_PATH]

    @property
    def ipv6_address_list(self) -> list[dict[str, Any]]:
        return self.tables[IPV6_ADDRESS_LIST_PATH]

    @property
    def nat_rules(self) -> list[dict[str, Any]]:
        return self.tables[NAT_PATH]

    @property
    def mutating_commands(self) -> list[tuple[str, tuple[str, ...]]]:
        return [c for c in self.commands if c[0].endswith(("/add", "/remove"))]

    @property
    def open_handles(self) -> int:
        return sum(1 for h in self.handles if not h.closed)

    def execute(self, cmd: str, words: tuple[str, ...]) -> list[dict[str, Any]]:
        self.commands.append((cmd, words))
        if cmd in self.fail_commands:
            raise LibRouterosError(f"failure: {cmd}")

        path, _, action = cmd.rpartition("/")
        table = self.tables[path]
        if action == "print":
            filters = dict(w[1:].split("=", 1) for w in words if w.startswith("?"))
            return [dict(item) for item in table if all(str(item.get(k)) == v for k, v in filters.items())]
        params = dict(w[1:].split("=", 1) for w in words if w.startswith("="))
        if action == "add":
            item = {".id": f"*{self._next_id:X}", **params}
            self._next_id += 1
            table.append(item)
            return [{"ret": item[".id"]}]
        if action == "remove":
            before = len(table)
            table[:] = [item for item in table if item[".id"] != params[".id"]]
            if len(table) == before:
                raise LibRouterosError("no such item")
            return []
        raise LibRouterosError(f"unknown command {cmd}")


class FakeRouterAPI:
    def __init__(self, router: FakeRouter) -> None:
        self.router = router
        self.closed = False

    def rawCmd(self, cmd: str, *words: str):  # noqa: N802 - librouteros naming
        if self.closed:
            raise LibRouterosError("connection closed")
        yield from self.router.execute(cmd, words)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def session():
    """In-memory SQLAlchemy session with the licensing tables."""
    import licensing.models  # noqa: F401
    from database.models import Base

    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    s = sessionmaker(bind=engine)()
    yield s
    s.close()
    engine.dispose()


@pytest.fixture
def router() -> FakeRouter:
    return FakeRouter()


@pytest.fixture
def device_config() -> DeviceSyncConfig:
    return DeviceSyncConfig(
        enabled=True,
        host="10.0.0.1",
        username="api",
        password="secret",
        interface="ether1",
        public_nat_ip="203.0.113.1",
        address_list="LICENSED_IPS",
        connect_retries=3,
        retry_delay_seconds=0,
    )


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def connector(device_config, router, sleeps) -> RouterOSConnector:
    return RouterOSConnector(device_config, connect=router.connect, sleep=sleeps.append)
