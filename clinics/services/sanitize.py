from __future__ import annotations

from typing import Any

import bleach

# keys that could be used to tamper with object prototypes on JS clients
DANGEROUS_KEYS = frozenset({'__proto__', 'constructor', 'prototype'})


def sanitize_input(value: Any) -> Any:
    """Recursively strip markup from strings and drop dangerous keys."""
    if isinstance(value, str):
        return bleach.clean(value, strip=True)
    if isinstance(value, (list, tuple)):
        return [sanitize_input(v) for v in value]
    if isinstance(value, dict):
        return {k: sanitize_input(v) for k, v in value.items() if k not in DANGEROUS_KEYS}
    return value
