"""Exception taxonomy for the licensing core."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

# PostgreSQL SQLSTATE for unique_violation
PG_UNIQUE_VIOLATION = "23505"


class LicensingError(Exception):
    """Base class for every error raised by the licensing package."""


class InvalidAddressError(LicensingError, ValueError):
    """Text is not a valid IPv4/IPv6 address or CIDR block."""


class ValidationError(LicensingError):
    """Administrative input is missing or malformed."""


class LicenseNotFoundError(LicensingError):
    pass


class AllowedIPNotFoundError(LicensingError):
    pass


class DuplicateEntryError(LicensingError):
    """The (license, ip_cidr) pair already exists in storage."""


class DeviceError(LicensingError):
    """Base class for failures talking to the router."""


class DeviceUnreachable(DeviceError):
    """Every connection attempt failed."""

    def __init__(self, host: str, attempts: int, last_error: BaseException | None = None) -> None:
        self.host = host
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Router {host or '<unset>'} unreachable after {attempts} attempt(s): {last_error}")


class DeviceCommandError(DeviceError):
    """The router rejected a command or the session broke mid-command."""

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"{command} failed: {reason}")


def is_duplicate_key_error(exc: BaseException) -> bool:
    """True when *exc* is a storage-level uniqueness violation."""
    if not isinstance(exc, IntegrityError):
        return False
    orig = exc.orig
    if getattr(orig, "pgcode", None) == PG_UNIQUE_VIOLATION:
        return True
    if getattr(orig, "sqlstate", None) == PG_UNIQUE_VIOLATION:
        return True
    return "unique constraint" in str(orig).lower()
