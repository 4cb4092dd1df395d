"""Tests for allow-list mutations and their router side effects."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from licensing.device.reconciler import DeviceReconciler, SyncEntry
from licensing.errors import (
    AllowedIPNotFoundError,
    DeviceCommandError,
    DeviceUnreachable,
    DuplicateEntryError,
    LicenseNotFoundError,
    ValidationError,
    is_duplicate_key_error,
)
from licensing.models import AllowedIP, License
from licensing.service import AllowListService


@pytest.fixture
def lic(session):
    row = License(name="Acme", license_key="acme-key")
    session.add(row)
    session.commit()
    return row


@pytest.fixture
def reconciler():
    return MagicMock(spec=DeviceReconciler)


class TestAddIp:
    def test_add_persists_and_syncs(self, session, lic, reconciler):
        row = AllowListService(reconciler).add_ip(session, lic.id, " 203.0.113.5 ", note="office")
        assert row.id is not None
        assert row.ip_cidr == "203.0.113.5"
        assert session.query(AllowedIP).count() == 1
        reconciler.add_entry.assert_called_once_with("203.0.113.5", lic.id)

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_add_requires_ip(self, session, lic, reconciler, value):
        with pytest.raises(ValidationError, match="required"):
            AllowListService(reconciler).add_ip(session, lic.id, value)
        reconciler.add_entry.assert_not_called()

    @pytest.mark.parametrize("value", ["256.0.0.1", "10.0.0.0/33", "example.com"])
    def test_add_rejects_malformed(self, session, lic, reconciler, value):
        with pytest.raises(ValidationError, match="Invalid"):
            AllowListService(reconciler).add_ip(session, lic.id, value)
        assert session.query(AllowedIP).count() == 0

    def test_add_unknown_license(self, session, reconciler):
        with pytest.raises(LicenseNotFoundError):
            AllowListService(reconciler).add_ip(session, 999, "203.0.113.5")

    def test_duplicate_maps_to_distinct_error(self, session, lic, reconciler):
        service = AllowListService(reconciler)
        service.add_ip(session, lic.id, "203.0.113.5")
        with pytest.raises(DuplicateEntryError):
            service.add_ip(session, lic.id, "203.0.113.5")
        assert session.query(AllowedIP).count() == 1
        assert reconciler.add_entry.call_count == 1

    def test_same_ip_on_two_licenses_is_fine(self, session, lic, reconciler):
        other = License(license_key="other-key")
        session.add(other)
        session.commit()
        service = AllowListService(reconciler)
        service.add_ip(session, lic.id, "203.0.113.5")
        service.add_ip(session, other.id, "203.0.113.5")
        assert session.query(AllowedIP).count() == 2

    @pytest.mark.parametrize("exc", [DeviceUnreachable("10.0.0.1", 3), DeviceCommandError("/add", "trap"), RuntimeError("x")])
    def test_device_failure_does_not_fail_add(self, session, lic, reconciler, exc):
        reconciler.add_entry.side_effect = exc
        row = AllowListService(reconciler).add_ip(session, lic.id, "203.0.113.5")
        assert row.id is not None
        assert session.query(AllowedIP).count() == 1


class TestRemoveIp:
    def test_remove(self, session, lic, reconciler):
        service = AllowListService(reconciler)
        row = service.add_ip(session, lic.id, "198.51.100.0/24")
        removed = service.remove_ip(session, lic.id, row.id)
        assert removed["ip_cidr"] == "198.51.100.0/24"
        assert session.query(AllowedIP).count() == 0
        reconciler.remove_entry.assert_called_once_with("198.51.100.0/24", lic.id)

    def test_remove_wrong_license(self, session, lic, reconciler):
        service = AllowListService(reconciler)
        row = service.add_ip(session, lic.id, "198.51.100.0/24")
        with pytest.raises(AllowedIPNotFoundError):
            service.remove_ip(session, lic.id + 1, row.id)
        assert session.query(AllowedIP).count() == 1

    def test_device_failure_does_not_fail_remove(self, session, lic, reconciler):
        reconciler.remove_entry.side_effect = DeviceUnreachable("10.0.0.1", 3)
        service = AllowListService(reconciler)
        row = service.add_ip(session, lic.id, "198.51.100.0/24")
        service.remove_ip(session, lic.id, row.id)
        assert session.query(AllowedIP).count() == 0


class TestListAndResync:
    def test_list_ips(self, session, lic, reconciler):
        service = AllowListService(reconciler)
        service.add_ip(session, lic.id, "203.0.113.5")
        service.add_ip(session, lic.id, "198.51.100.0/24")
        assert {r.ip_cidr for r in service.list_ips(session, lic.id)} == {"203.0.113.5", "198.51.100.0/24"}

    def test_list_unknown_license(self, session, reconciler):
        with pytest.raises(LicenseNotFoundError):
            AllowListService(reconciler).list_ips(session, 42)

    def test_resync_all_passes_every_row(self, session, lic, reconciler):
        service = AllowListService(reconciler)
        service.add_ip(session, lic.id, "203.0.113.5")
        service.add_ip(session, lic.id, "198.51.100.0/24")
        reconciler.full_resync.return_value = {"added": 2}

        assert service.resync_all(session) == {"added": 2}
        (entries,), _ = reconciler.full_resync.call_args
        assert list(entries) == [SyncEntry("203.0.113.5", lic.id), SyncEntry("198.51.100.0/24", lic.id)]

    def test_resync_all_propagates_device_errors(self, session, reconciler):
        reconciler.full_resync.side_effect = DeviceUnreachable("10.0.0.1", 3)
        with pytest.raises(DeviceUnreachable):
            AllowListService(reconciler).resync_all(session)


class TestDuplicateDetection:
    def test_postgres_code(self):
        orig = Exception("duplicate key value violates unique constraint")
        orig.pgcode = "23505"
        assert is_duplicate_key_error(IntegrityError("INSERT", {}, orig)) is True

    def test_foreign_key_violation_is_not_duplicate(self):
        orig = Exception("FOREIGN KEY constraint failed")
        assert is_duplicate_key_error(IntegrityError("INSERT", {}, orig)) is False

    def test_non_integrity_error(self):
        assert is_duplicate_key_error(ValueError("unique constraint")) is False
