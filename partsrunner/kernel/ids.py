from __future__ import annotations

import re
import secrets
import string

from partsrunner.kernel.time import epoch_millis


_PREFIX_RE = re.compile(r"^[a-z][a-z0-9]{1,24}$")
_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 9


def _random_suffix() -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))


def new_prefixed_id(prefix: str) -> str:
    """Generate a client-side ID: `{prefix}_{epoch_ms}_{base36 suffix}`.

    The timestamp plus random suffix is the only idempotency key offline
    records carry; the server does not deduplicate on it.
    """
    if not _PREFIX_RE.fullmatch(prefix):
        raise ValueError(
            "Invalid id prefix. Expected lowercase letters/digits, 2-25 chars, "
            "starting with a letter."
        )
    return f"{prefix}_{epoch_millis()}_{_random_suffix()}"


def new_timestamp_id(prefix: str) -> str:
    """`{prefix}_{epoch_ms}` without a random suffix (tracking events)."""
    if not _PREFIX_RE.fullmatch(prefix):
        raise ValueError(f"Invalid id prefix: {prefix!r}")
    return f"{prefix}_{epoch_millis()}"


def is_prefixed_id(value: str, prefix: str) -> bool:
    """Return True if `value` starts with the `{prefix}_` convention."""
    return value.startswith(f"{prefix}_")
