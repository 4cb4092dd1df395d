"""Address matching for allow-list entries.

An allow-list entry is free text: either a single address (``203.0.113.5``,
``2001:db8::1``) or a CIDR block (``198.51.100.0/24``). The presence of ``/``
is the only thing that selects the CIDR path. IPv4 and IPv6 never match each
other, and malformed input on either side is a non-match rather than an error.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Union

from licensing.errors import InvalidAddressError

logger = logging.getLogger(__name__)

Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_ADDRESS_TYPES = (ipaddress.IPv4Address, ipaddress.IPv6Address)
_MAX_PREFIX = {4: 32, 6: 128}


def parse_address(text: str) -> Address:
    """Parse a dotted-quad IPv4 or colon-form IPv6 address."""
    if not isinstance(text, str) or not text:
        raise InvalidAddressError(f"Not an IP address: {text!r}")
    try:
        return ipaddress.ip_address(text)
    except ValueError as exc:
        raise InvalidAddressError(str(exc)) from exc


def parse_cidr(text: str) -> tuple[Address, int]:
    """Split ``address/prefix`` and validate the prefix for the address family.

    Host bits are allowed (``10.1.2.3/8`` is accepted); masking happens at
    match time. The prefix must be written canonically (``/8``, not ``/08``).
    """
    if not isinstance(text, str) or "/" not in text:
        raise InvalidAddressError(f"Not a CIDR block: {text!r}")
    addr_text, _, prefix_text = text.partition("/")
    addr = parse_address(addr_text)
    if not prefix_text.isdigit() or not prefix_text.isascii():
        raise InvalidAddressError(f"Invalid prefix length in {text!r}")
    if len(prefix_text) > 1 and prefix_text.startswith("0"):
        raise InvalidAddressError(f"Leading zero in prefix length in {text!r}")
    prefix = int(prefix_text)
    if prefix > _MAX_PREFIX[addr.version]:
        raise InvalidAddressError(f"Prefix /{prefix} out of range for IPv{addr.version}")
    return addr, prefix


def ip_matches(candidate: str | Address, allowed: str) -> bool:
    """Return True if *candidate* is covered by the allow-list entry *allowed*."""
    try:
        addr = candidate if isinstance(candidate, _ADDRESS_TYPES) else parse_address(candidate)
        if "/" in allowed:
            base, prefix = parse_cidr(allowed)
            if addr.version != base.version:
                return False
            network = ipaddress.ip_network(f"{base}/{prefix}", strict=False)
            return addr in network
        exact = parse_address(allowed)
    except (InvalidAddressError, TypeError) as exc:
        logger.debug("Malformed address in match %r vs %r: %s", candidate, allowed, exc)
        return False

    if addr.version != exact.version:
        return False
    return addr == exact


def is_valid_ip_or_cidr(text: str) -> bool:
    try:
        if isinstance(text, str) and "/" in text:
            parse_cidr(text)
        else:
            parse_address(text)
    except InvalidAddressError:
        return False
    return True


def is_private_address(addr: str | Address) -> bool:
    """True for anything outside globally-routable unicast space.

    Covers loopback, link-local, RFC 1918 / ULA, multicast, shared and
    reserved blocks for both families. Unparseable input is not private.
    """
    try:
        parsed = addr if isinstance(addr, _ADDRESS_TYPES) else parse_address(addr)
    except InvalidAddressError:
        return False
    return parsed.is_multicast or not parsed.is_global
