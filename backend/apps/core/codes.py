"""Branch and item codes.

Portion labels are built as ``ITEM-BRANCH-B<n>-<nn>``, so codes are limited
to letters, digits and underscores and never contain the ``-`` separator.
"""

from __future__ import annotations

import re

from apps.inventory.errors import InvalidCode

CODE_RE = re.compile(r"^[A-Z0-9_]+$")


def normalize_code(value: str) -> str:
    return value.strip().upper().replace(" ", "_")


def check_code(value: str | None, field: str = "code") -> str:
    if not value or not CODE_RE.match(value):
        raise InvalidCode(
            "Codes may only contain upper-case letters, digits and underscores.",
            {field: value or ""},
        )
    return value
