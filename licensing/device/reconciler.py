"""Router reconciliation: mirrors allow-list rows into a RouterOS address list.

IPv4 members live under ``/ip/firewall/address-list``, IPv6 members under
``/ipv6/firewall/address-list``; both use the same list name. The src-nat
rule only covers the IPv4 list.

Each public operation opens its own session and closes it on every exit
path. Nothing about the router is cached between calls; the router's own
address list is the only copy of device state. Operations are not
serialized against each other, so callers that need a consistent
:meth:`DeviceReconciler.full_resync` must hold their own lock.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from licensing.config import DeviceSyncConfig
from licensing.device.connector import (
    ADDRESS_LIST_PATH,
    ADDRESS_LIST_PATHS,
    ITEM_ID,
    NAT_PATH,
    DeviceSession,
    RouterOSConnector,
    address_list_path,
)
from licensing.device.ownership import RULE_COMMENT, owner_comment, parse_owner_comment
from licensing.errors import DeviceCommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncEntry:
    """One desired address-list member."""

    ip_cidr: str
    license_id: int

    @classmethod
    def from_row(cls, row: Any) -> SyncEntry:
        if isinstance(row, SyncEntry):
            return row
        if isinstance(row, dict):
            return cls(ip_cidr=row["ip_cidr"], license_id=int(row["license_id"]))
        return cls(ip_cidr=row.ip_cidr, license_id=int(row.license_id))


class DeviceReconciler:
    """Keeps the router's address list and its src-nat rule in line with storage."""

    def __init__(self, config: DeviceSyncConfig, connector: RouterOSConnector | None = None) -> None:
        self.config = config
        self.connector = connector or RouterOSConnector(config)

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _disabled(self, operation: str) -> bool:
        if self.config.enabled:
            return False
        logger.debug("Router sync disabled; skipping %s", operation)
        return True

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def ensure_address_list_exists(self) -> bool:
        """Check for the configured list. Returns True if it has members.

        The router creates the list implicitly on the first add, so an empty
        result only gets logged.
        """
        if self._disabled("ensure_address_list_exists"):
            return False
        with self.connector.session() as session:
            return self._check_address_list(session)

    def ensure_forwarding_rule(self) -> bool:
        """Create the src-nat rule for the list if missing. Returns True if created."""
        if self._disabled("ensure_forwarding_rule"):
            return False
        with self.connector.session() as session:
            return self._ensure_rule(session)

    def add_entry(self, ip_cidr: str, license_id: int) -> bool:
        """Add one owned member to the list.

        Not idempotent on the router: calling twice creates two members.
        """
        if self._disabled("add_entry"):
            return False
        with self.connector.session() as session:
            self._check_address_list(session)
            self._ensure_rule(session)
            self._add(session, SyncEntry(ip_cidr, license_id))
        logger.info("Added %s (license %s) to router list %s", ip_cidr, license_id, self.config.address_list)
        return True

    def remove_entry(self, ip_cidr: str, license_id: int) -> int:
        """Remove every member matching the address and owner. Returns the count removed."""
        if self._disabled("remove_entry"):
            return 0
        with self.connector.session() as session:
            path = address_list_path(ip_cidr)
            matches = session.print(
                path,
                {
                    "list": self.config.address_list,
                    "address": ip_cidr,
                    "comment": owner_comment(license_id),
                },
            )
            for item in matches:
                session.remove(path, item[ITEM_ID])

        if matches:
            logger.info("Removed %d router entries for %s (license %s)", len(matches), ip_cidr, license_id)
        else:
            logger.info("No router entry for %s (license %s); nothing to remove", ip_cidr, license_id)
        return len(matches)

    def full_resync(self, entries: Iterable[Any]) -> dict[str, Any]:
        """Clear the list and rebuild it from the authoritative *entries*.

        Destructive: the list is empty between the remove and add phases.
        Every entry gets its own add; failed adds are collected in
        ``stats["failed"]`` and reported together once the loop is done.
        """
        stats: dict[str, Any] = {
            "enabled": self.config.enabled,
            "removed": 0,
            "foreign_removed": 0,
            "added": 0,
            "failed": [],
        }
        if self._disabled("full_resync"):
            return stats

        desired = [SyncEntry.from_row(e) for e in entries]

        with self.connector.session() as session:
            stats["rule_created"] = self._ensure_rule(session)

            for path in ADDRESS_LIST_PATHS:
                for item in session.print(path, {"list": self.config.address_list}):
                    session.remove(path, item[ITEM_ID])
                    stats["removed"] += 1
                    if parse_owner_comment(item.get("comment")) is None:
                        stats["foreign_removed"] += 1

            for entry in desired:
                try:
                    self._add(session, entry)
                except DeviceCommandError as exc:
                    logger.error("Resync could not add %s (license %s): %s", entry.ip_cidr, entry.license_id, exc)
                    stats["failed"].append({"ip_cidr": entry.ip_cidr, "license_id": entry.license_id})
                    continue
                stats["added"] += 1

        if stats["foreign_removed"]:
            logger.warning(
                "Full resync removed %d entries without a license owner tag from %s",
                stats["foreign_removed"],
                self.config.address_list,
            )
        logger.info(
            "Full resync of %s: removed=%d added=%d failed=%d",
            self.config.address_list,
            stats["removed"],
            stats["added"],
            len(stats["failed"]),
        )
        if stats["failed"]:
            failed = ", ".join(f"{f['ip_cidr']} (license {f['license_id']})" for f in stats["failed"])
            raise DeviceCommandError(
                "address-list/add",
                f"{len(stats['failed'])} of {len(desired)} entries not added: {failed}",
            )
        return stats

    def list_entries(self) -> list[dict[str, Any]]:
        """Current members of the list, IPv4 then IPv6, with their decoded owner."""
        if self._disabled("list_entries"):
            return []
        with self.connector.session() as session:
            items = [
                item
                for path in ADDRESS_LIST_PATHS
                for item in session.print(path, {"list": self.config.address_list})
            ]
        return [
            {
                "id": item.get(ITEM_ID),
                "address": item.get("address"),
                "license_id": parse_owner_comment(item.get("comment")),
            }
            for item in items
        ]

    # ------------------------------------------------------------------
    # Steps shared by the operations above
    # ------------------------------------------------------------------

    def _check_address_list(self, session: DeviceSession) -> bool:
        try:
            members = session.print(ADDRESS_LIST_PATH, {"list": self.config.address_list})
        except DeviceCommandError as exc:
            logger.error("Error checking address list %s: %s", self.config.address_list, exc)
            return False
        if not members:
            logger.info("Address list %s is empty; it will be created on first add", self.config.address_list)
        return bool(members)

    def _ensure_rule(self, session: DeviceSession) -> bool:
        rules = session.print(
            NAT_PATH,
            {
                "chain": "srcnat",
                "src-address-list": self.config.address_list,
                "out-interface": self.config.interface,
            },
        )
        if rules:
            logger.debug("src-nat rule for %s already present", self.config.address_list)
            return False

        session.add(
            NAT_PATH,
            {
                "chain": "srcnat",
                "src-address-list": self.config.address_list,
                "out-interface": self.config.interface,
                "to-addresses": self.config.public_nat_ip,
                "action": "src-nat",
                "comment": RULE_COMMENT,
            },
        )
        logger.info(
            "Created src-nat rule %s -> %s via %s",
            self.config.address_list,
            self.config.public_nat_ip,
            self.config.interface,
        )
        return True

    def _add(self, session: DeviceSession, entry: SyncEntry) -> None:
        session.add(
            address_list_path(entry.ip_cidr),
            {
                "list": self.config.address_list,
                "address": entry.ip_cidr,
                "comment": owner_comment(entry.license_id),
            },
        )
