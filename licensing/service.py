"""Allow-list mutations and their best-effort propagation to the router.

The database is authoritative. A router failure after a successful commit
is logged and swallowed so the caller's result depends on storage alone.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from licensing.device.reconciler import DeviceReconciler, SyncEntry
from licensing.errors import (
    AllowedIPNotFoundError,
    DuplicateEntryError,
    LicenseNotFoundError,
    ValidationError,
    is_duplicate_key_error,
)
from licensing.ipmatch import is_valid_ip_or_cidr
from licensing.models import AllowedIP, License

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class AllowListService:
    """Administrative operations on a license's allow-list."""

    def __init__(self, reconciler: DeviceReconciler) -> None:
        self.reconciler = reconciler

    def list_ips(self, session: Session, license_id: int) -> list[AllowedIP]:
        self._get_license(session, license_id)
        return (
            session.query(AllowedIP)
            .filter(AllowedIP.license_id == license_id)
            .order_by(AllowedIP.created_at.desc(), AllowedIP.id.desc())
            .all()
        )

    def add_ip(self, session: Session, license_id: int, ip_cidr: str | None, note: str | None = None) -> AllowedIP:
        """Insert an allow-list row, commit, then push it to the router."""
        ip_cidr = (ip_cidr or "").strip()
        if not ip_cidr:
            raise ValidationError("ip_cidr is required")
        if not is_valid_ip_or_cidr(ip_cidr):
            raise ValidationError("Invalid IP address or CIDR format")

        self._get_license(session, license_id)

        row = AllowedIP(license_id=license_id, ip_cidr=ip_cidr, note=note or None)
        session.add(row)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            if is_duplicate_key_error(exc):
                raise DuplicateEntryError("IP already added to this license") from exc
            raise

        self._sync("add", self.reconciler.add_entry, ip_cidr, license_id)
        return row

    def remove_ip(self, session: Session, license_id: int, ip_id: int) -> dict[str, Any]:
        """Delete an allow-list row, commit, then withdraw it from the router."""
        row = (
            session.query(AllowedIP)
            .filter(AllowedIP.id == ip_id, AllowedIP.license_id == license_id)
            .first()
        )
        if row is None:
            raise AllowedIPNotFoundError("IP not found")

        removed = row.to_dict()
        session.delete(row)
        session.commit()

        self._sync("remove", self.reconciler.remove_entry, removed["ip_cidr"], license_id)
        return removed

    def resync_all(self, session: Session) -> dict[str, Any]:
        """Rebuild the router list from every stored row.

        Unlike single-entry mutations, device errors propagate here: a manual
        resync exists to report whether the router converged.
        """
        rows = session.query(AllowedIP).order_by(AllowedIP.id).all()
        return self.reconciler.full_resync(SyncEntry.from_row(r) for r in rows)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _get_license(session: Session, license_id: int) -> License:
        lic = session.get(License, license_id)
        if lic is None:
            raise LicenseNotFoundError("License not found")
        return lic

    @staticmethod
    def _sync(action: str, operation, ip_cidr: str, license_id: int) -> None:
        try:
            operation(ip_cidr, license_id)
        except Exception:  # noqa: BLE001
            logger.exception("Router %s for %s (license %s) failed; database change kept", action, ip_cidr, license_id)
