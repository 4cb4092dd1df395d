"""Flask REST API for license authorization and allow-list management.

Blueprint prefix: ``/v1``

API-key roles and rate limiting are applied upstream (reverse proxy or
gateway); this blueprint assumes callers are already authenticated.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from licensing.audit import DEFAULT_PAGE_SIZE, list_decisions, summarize_decisions
from licensing.config import LicensingConfig
from licensing.device.reconciler import DeviceReconciler
from licensing.errors import (
    AllowedIPNotFoundError,
    DeviceError,
    DuplicateEntryError,
    LicenseNotFoundError,
    ValidationError,
)
from licensing.evaluator import AuthorizationEvaluator
from licensing.service import AllowListService

logger = logging.getLogger(__name__)

licensing_bp = Blueprint("licensing", __name__, url_prefix="/v1")

# ---------------------------------------------------------------------------
# Module-level singletons (lazy init)
# ---------------------------------------------------------------------------
_config: LicensingConfig | None = None
_evaluator: AuthorizationEvaluator | None = None
_reconciler: DeviceReconciler | None = None
_allow_list: AllowListService | None = None


def _get_config() -> LicensingConfig:
    global _config
    if _config is None:
        _config = LicensingConfig.from_env()
    return _config


def _get_evaluator() -> AuthorizationEvaluator:
    global _evaluator
    if _evaluator is None:
        _evaluator = AuthorizationEvaluator()
    return _evaluator


def _get_reconciler() -> DeviceReconciler:
    global _reconciler
    if _reconciler is None:
        _reconciler = DeviceReconciler(_get_config().device)
    return _reconciler


def _get_allow_list() -> AllowListService:
    global _allow_list
    if _allow_list is None:
        _allow_list = AllowListService(_get_reconciler())
    return _allow_list


def _get_db_session():
    """Get a DB session from the database manager."""
    from database import get_db_manager

    return get_db_manager().get_session()


def _str_field(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) else None


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@licensing_bp.route("/health", methods=["GET"])
def health():
    cfg = _get_config()
    return jsonify(
        {
            "status": "ok",
            "module": "licensing",
            "router_sync": cfg.device.enabled,
            "address_list": cfg.device.address_list,
        }
    )


# ===================================================================
# AUTHORIZATION
# ===================================================================
@licensing_bp.route("/auth/check", methods=["POST"])
def auth_check():
    """Decide whether ``license_key`` may be used from ``public_ip``."""
    payload = request.get_json(silent=True)
    data: dict[str, Any] = payload if isinstance(payload, dict) else {}

    decision = None
    try:
        with _get_db_session() as s:
            decision = _get_evaluator().evaluate(
                s,
                _str_field(data, "license_key"),
                _str_field(data, "public_ip"),
                _str_field(data, "machine_id"),
                raw_request=data,
            )
    except SQLAlchemyError:
        if decision is None:
            logger.exception("Auth check failed on storage")
            return jsonify({"allowed": False, "message": "Internal server error"}), 500
        # The decision stands even if closing out the transaction fails.
        logger.exception("Storage commit failed after auth decision %s", decision.reason.value)

    return jsonify(decision.to_response()), decision.http_status


# ===================================================================
# ALLOW-LIST
# ===================================================================
@licensing_bp.route("/licenses/<int:license_id>/ips", methods=["GET"])
def list_ips(license_id: int):
    try:
        with _get_db_session() as s:
            rows = _get_allow_list().list_ips(s, license_id)
            return jsonify([r.to_dict() for r in rows])
    except LicenseNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404


@licensing_bp.route("/licenses/<int:license_id>/ips", methods=["POST"])
def add_ip(license_id: int):
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "JSON object expected"}), 400

    try:
        with _get_db_session() as s:
            row = _get_allow_list().add_ip(s, license_id, _str_field(data, "ip_cidr"), _str_field(data, "note"))
            return jsonify(row.to_dict()), 201
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except LicenseNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except DuplicateEntryError as exc:
        return jsonify({"error": str(exc)}), 409
    except SQLAlchemyError:
        logger.exception("Failed to add IP to license %s", license_id)
        return jsonify({"error": "Failed to add IP"}), 500


@licensing_bp.route("/licenses/<int:license_id>/ips/<int:ip_id>", methods=["DELETE"])
def remove_ip(license_id: int, ip_id: int):
    try:
        with _get_db_session() as s:
            _get_allow_list().remove_ip(s, license_id, ip_id)
    except AllowedIPNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except SQLAlchemyError:
        logger.exception("Failed to remove IP %s from license %s", ip_id, license_id)
        return jsonify({"error": "Failed to remove IP"}), 500
    return jsonify({"message": "IP removed successfully"})


# ===================================================================
# ROUTER
# ===================================================================
@licensing_bp.route("/device/resync", methods=["POST"])
def resync_device():
    """Rebuild the router address list from storage. Run one at a time."""
    reconciler = _get_reconciler()
    if not reconciler.enabled:
        return jsonify({"synced": False, "reason": "Router sync disabled"})

    try:
        with _get_db_session() as s:
            stats = _get_allow_list().resync_all(s)
    except DeviceError as exc:
        logger.exception("Full router resync failed")
        return jsonify({"synced": False, "error": str(exc)}), 502
    return jsonify({"synced": True, **stats})


@licensing_bp.route("/device/entries", methods=["GET"])
def device_entries():
    reconciler = _get_reconciler()
    if not reconciler.enabled:
        return jsonify({"entries": [], "router_sync": False})
    try:
        entries = reconciler.list_entries()
    except DeviceError as exc:
        return jsonify({"error": str(exc)}), 502
    return jsonify({"entries": entries, "router_sync": True})


# ===================================================================
# AUDIT
# ===================================================================
@licensing_bp.route("/logs/stats", methods=["GET"])
def log_stats():
    with _get_db_session() as s:
        return jsonify(summarize_decisions(s))


@licensing_bp.route("/logs", methods=["GET"])
def list_logs():
    """Audit records, newest first. Filters: result, license_key, start_date, end_date."""
    try:
        since = _date_arg("start_date")
        until = _date_arg("end_date")
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    try:
        with _get_db_session() as s:
            return jsonify(
                list_decisions(
                    s,
                    page=request.args.get("page", 1, type=int),
                    per_page=request.args.get("perPage", DEFAULT_PAGE_SIZE, type=int),
                    result=request.args.get("result") or None,
                    license_key=request.args.get("license_key") or None,
                    since=since,
                    until=until,
                )
            )
    except SQLAlchemyError:
        logger.exception("Failed to fetch auth logs")
        return jsonify({"error": "Failed to fetch logs"}), 500


def _date_arg(name: str) -> datetime | None:
    text = request.args.get(name)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"Invalid {name}: expected an ISO 8601 date") from None
