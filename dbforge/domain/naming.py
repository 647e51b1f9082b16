from __future__ import annotations

import re


# DNS-label style: lowercase, starts with a letter, 3 to 63 characters, no trailing hyphen.
_NAME_RE = re.compile(r"^[a-z][a-z0-9-]{1,61}[a-z0-9]$")


def is_valid_name(name: str) -> bool:
    # Consecutive hyphens are rejected as well; backends derive resource names from this.
    return bool(_NAME_RE.match(name)) and "--" not in name


def check_name(name: str) -> str:
    # Pydantic validator hook; raising ValueError becomes a 422 response.
    if not is_valid_name(name):
        raise ValueError(
            "name must be 3-63 lowercase letters, digits or hyphens, start with a letter, "
            "end with a letter or digit and not contain '--'"
        )
    return name
