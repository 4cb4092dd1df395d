"""Owner tags stored in the comment field of router entries.

The router has no relational schema, so the owning license is encoded in
free text. Both the add and remove paths go through these helpers.
"""

from __future__ import annotations

import re

OWNER_PREFIX = "License:"
RULE_COMMENT = "Managed by license-gate"

_OWNER_RE = re.compile(rf"^{re.escape(OWNER_PREFIX)}(\d+)$")


def owner_comment(license_id: int) -> str:
    return f"{OWNER_PREFIX}{int(license_id)}"


def parse_owner_comment(comment: str | None) -> int | None:
    """Return the license id encoded in *comment*, or ``None`` if it is not ours."""
    if not comment:
        return None
    match = _OWNER_RE.match(str(comment).strip())
    return int(match.group(1)) if match else None
