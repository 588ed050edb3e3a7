from __future__ import annotations

import re

CONTACT_SUFFIX = "@c.us"
GROUP_SUFFIX = "@g.us"

_NON_DIGITS = re.compile(r"\D")
# Legacy group ids are "<creator>-<timestamp>"
_NON_GROUP_ID_CHARS = re.compile(r"[^\d-]")


def normalize_phone(phone: str, suffix: str = CONTACT_SUFFIX) -> str:
    """Turn a free-form phone string into the network's canonical address.

    Addresses that already carry the suffix are returned untouched, so the
    function is idempotent.
    """
    if phone.endswith(suffix):
        return phone
    return f"{_NON_DIGITS.sub('', phone)}{suffix}"


def normalize_group_id(group_id: str) -> str:
    if group_id.endswith(GROUP_SUFFIX):
        return group_id
    return f"{_NON_GROUP_ID_CHARS.sub('', group_id)}{GROUP_SUFFIX}"
