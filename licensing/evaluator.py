"""Authorization evaluator: decides whether a license key may be used from an IP.

The pipeline is ordered and short-circuits on the first failing check:

1. missing ``license_key`` / ``public_ip``  -> ``invalid-request`` (no lookup, no audit)
2. unknown key                             -> ``license-not-found``
3. ``active`` is false                     -> ``license-inactive``
4. ``expires_at`` strictly in the past     -> ``license-expired``
5. empty allow-list                        -> ``no-allowed-ips``
6. no entry covers the IP                  -> ``denied``
7. otherwise                               -> ``allowed``

Every outcome after step 1 is written to the audit trail exactly once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from licensing.audit import record_decision
from licensing.ipmatch import ip_matches
from licensing.models import AllowedIP, AuthResult, License

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

MESSAGES: dict[AuthResult, str] = {
    AuthResult.ALLOWED: "OK",
    AuthResult.INVALID_REQUEST: "Missing required fields: license_key, public_ip",
    AuthResult.LICENSE_NOT_FOUND: "License not found",
    AuthResult.LICENSE_INACTIVE: "License is inactive",
    AuthResult.LICENSE_EXPIRED: "License has expired",
    AuthResult.NO_ALLOWED_IPS: "No IPs configured for this license",
    AuthResult.DENIED: "IP address not authorized for this license",
}


@dataclass(frozen=True)
class Decision:
    """Outcome of one evaluation."""

    allowed: bool
    reason: AuthResult
    message: str

    @classmethod
    def for_reason(cls, reason: AuthResult) -> Decision:
        return cls(allowed=reason is AuthResult.ALLOWED, reason=reason, message=MESSAGES[reason])

    @property
    def http_status(self) -> int:
        if self.allowed:
            return 200
        if self.reason is AuthResult.INVALID_REQUEST:
            return 400
        return 403

    def to_response(self) -> dict[str, Any]:
        return {"allowed": self.allowed, "message": self.message}


class AuthorizationEvaluator:
    """Evaluates (license key, source IP) pairs against stored licenses."""

    def evaluate(
        self,
        session: Session,
        license_key: str | None,
        public_ip: str | None,
        machine_id: str | None = None,
        *,
        raw_request: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> Decision:
        """Run the decision pipeline and record the outcome.

        Storage errors raised while reading licenses propagate to the caller.
        A failure to write the audit record is logged and does not change the
        returned decision.
        """
        if not license_key or not public_ip:
            return Decision.for_reason(AuthResult.INVALID_REQUEST)

        now = now or datetime.now(tz=timezone.utc)
        reason = self._decide(session, license_key, public_ip, now)

        if raw_request is None:
            raw_request = {"license_key": license_key, "public_ip": public_ip}
            if machine_id is not None:
                raw_request["machine_id"] = machine_id

        record_decision(
            session,
            license_key=license_key,
            request_ip=public_ip,
            machine_id=machine_id,
            result=reason,
            raw_request=raw_request,
            now=now,
        )
        return Decision.for_reason(reason)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _decide(self, session: Session, license_key: str, public_ip: str, now: datetime) -> AuthResult:
        lic = session.query(License).filter(License.license_key == license_key).first()
        if lic is None:
            return AuthResult.LICENSE_NOT_FOUND

        if not lic.active:
            return AuthResult.LICENSE_INACTIVE

        if self.is_expired(lic, now):
            return AuthResult.LICENSE_EXPIRED

        entries = [row.ip_cidr for row in session.query(AllowedIP).filter(AllowedIP.license_id == lic.id).all()]
        if not entries:
            return AuthResult.NO_ALLOWED_IPS

        if not any(ip_matches(public_ip, entry) for entry in entries):
            logger.debug("License %s: %s matched none of %d entries", lic.id, public_ip, len(entries))
            return AuthResult.DENIED

        return AuthResult.ALLOWED

    @staticmethod
    def is_expired(lic: License, now: datetime) -> bool:
        if lic.expires_at is None:
            return False
        expires_at = lic.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return expires_at < now
