"""License authorization and router allow-list reconciliation.

Two halves:
- an authorization evaluator that decides whether a license key may be used
  from a given public IP, auditing every decision;
- a reconciler that mirrors each license's allow-list into a RouterOS
  address list plus the src-nat rule that uses it.

The database is authoritative. Router state is best-effort and converges
through per-entry updates or a manual full resync.
"""

from __future__ import annotations

from licensing.api import licensing_bp
from licensing.config import DeviceSyncConfig, LicensingConfig
from licensing.device import DeviceReconciler, RouterOSConnector, SyncEntry
from licensing.evaluator import AuthorizationEvaluator, Decision
from licensing.models import AllowedIP, AuthLog, AuthResult, License
from licensing.service import AllowListService

__all__ = [
    "AllowListService",
    "AllowedIP",
    "AuthLog",
    "AuthResult",
    "AuthorizationEvaluator",
    "Decision",
    "DeviceReconciler",
    "DeviceSyncConfig",
    "License",
    "LicensingConfig",
    "RouterOSConnector",
    "SyncEntry",
    "licensing_bp",
]
