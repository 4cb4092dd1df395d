"""Authorization audit recorder – writes to auth_logs."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from licensing.models import AuthLog, AuthResult

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


def record_decision(
    session: Session,
    *,
    license_key: str | None,
    request_ip: str | None,
    result: AuthResult | str,
    machine_id: str | None = None,
    raw_request: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> AuthLog | None:
    """Append one audit record for an evaluated request.

    The row is committed here so that persisting it cannot fail after the
    decision has been handed back. Returns the stored row, or ``None`` if the
    write failed. A failed write is rolled back and logged; it never raises.
    """
    code = result.value if isinstance(result, AuthResult) else str(result)
    entry = AuthLog(
        license_key=license_key,
        request_ip=request_ip,
        machine_identifier=machine_id or None,
        result=code,
        raw_request=dict(raw_request or {}),
        created_at=now or datetime.now(tz=timezone.utc),
    )
    try:
        session.add(entry)
        session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to record auth decision key=%s ip=%s result=%s", license_key, request_ip, code)
        session.rollback()
        return None

    logger.info("AUTH | key=%s ip=%s machine=%s result=%s", license_key, request_ip, machine_id, code)
    return entry


def summarize_decisions(
    session: Session,
    *,
    window: timedelta = timedelta(hours=24),
    now: datetime | None = None,
) -> dict[str, Any]:
    """Count audit records per result code inside *window*, plus the overall total."""
    now = now or datetime.now(tz=timezone.utc)
    since = now - window

    rows = (
        session.query(AuthLog.result, func.count(AuthLog.id))
        .filter(AuthLog.created_at >= since)
        .group_by(AuthLog.result)
        .all()
    )
    total = session.query(func.count(AuthLog.id)).scalar() or 0

    return {
        "total": int(total),
        "window_hours": window.total_seconds() / 3600,
        "by_result": {result: int(count) for result, count in rows},
    }


def list_decisions(
    session: Session,
    *,
    page: int = 1,
    per_page: int = DEFAULT_PAGE_SIZE,
    result: str | None = None,
    license_key: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> dict[str, Any]:
    """Page through audit records, newest first.

    ``page`` is 1-based and ``per_page`` is capped at :data:`MAX_PAGE_SIZE`.
    ``since`` / ``until`` bound ``created_at`` inclusively; naive values are
    taken as UTC.
    """
    page = max(page, 1)
    per_page = min(per_page, MAX_PAGE_SIZE) if per_page > 0 else DEFAULT_PAGE_SIZE

    query = session.query(AuthLog)
    if result:
        query = query.filter(AuthLog.result == result)
    if license_key:
        query = query.filter(AuthLog.license_key == license_key)
    if since is not None:
        query = query.filter(AuthLog.created_at >= _as_utc(since))
    if until is not None:
        query = query.filter(AuthLog.created_at <= _as_utc(until))

    total = query.count()
    rows = (
        query.order_by(AuthLog.created_at.desc(), AuthLog.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "logs": [row.to_dict() for row in rows],
        "pagination": {
            "page": page,
            "perPage": per_page,
            "total": total,
            "totalPages": math.ceil(total / per_page),
        },
    }


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
