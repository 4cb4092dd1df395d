"""Router integration: session handling and address-list reconciliation.

Only the RouterOS API is spoken. Every operation is a no-op while router
sync is disabled in configuration.
"""

from __future__ import annotations

from licensing.device.connector import DeviceSession, RouterOSConnector, SessionState
from licensing.device.ownership import owner_comment, parse_owner_comment
from licensing.device.reconciler import DeviceReconciler, SyncEntry

__all__ = [
    "DeviceReconciler",
    "DeviceSession",
    "RouterOSConnector",
    "SessionState",
    "SyncEntry",
    "owner_comment",
    "parse_owner_comment",
]
