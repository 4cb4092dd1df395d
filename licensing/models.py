"""ORM rows for licenses, their allow-lists, and the authorization audit trail."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database.models import Base


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class AuthResult(str, Enum):
    """Machine-readable reason attached to every authorization decision."""

    ALLOWED = "allowed"
    INVALID_REQUEST = "invalid-request"
    LICENSE_NOT_FOUND = "license-not-found"
    LICENSE_INACTIVE = "license-inactive"
    LICENSE_EXPIRED = "license-expired"
    NO_ALLOWED_IPS = "no-allowed-ips"
    DENIED = "denied"


class License(Base):
    __tablename__ = "licenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)
    license_key = Column(String(255), nullable=False, unique=True, index=True)
    active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    allowed_ips = relationship(
        "AllowedIP",
        back_populates="license",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AllowedIP.id",
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "license_key": self.license_key,
            "active": self.active,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AllowedIP(Base):
    __tablename__ = "allowed_ips"
    __table_args__ = (UniqueConstraint("license_id", "ip_cidr", name="uq_allowed_ips_license_ip"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    license_id = Column(Integer, ForeignKey("licenses.id", ondelete="CASCADE"), nullable=False, index=True)
    ip_cidr = Column(String(64), nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    license = relationship("License", back_populates="allowed_ips")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "license_id": self.license_id,
            "ip_cidr": self.ip_cidr,
            "note": self.note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AuthLog(Base):
    """Append-only record of one authorization request."""

    __tablename__ = "auth_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    license_key = Column(String(255), nullable=True, index=True)
    request_ip = Column(String(64), nullable=True)
    machine_identifier = Column(String(255), nullable=True)
    result = Column(String(32), nullable=False, index=True)
    raw_request = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "license_key": self.license_key,
            "request_ip": self.request_ip,
            "machine_identifier": self.machine_identifier,
            "result": self.result,
            "raw_request": self.raw_request,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
