"""Opaque identifier generation for member and message ids."""

from __future__ import annotations

import secrets
import string
from typing import Callable

TOKEN_ALPHABET = string.ascii_lowercase + string.digits

TokenFactory = Callable[[int], str]


def random_token(length: int) -> str:
    """Return a random token of ``length`` characters over ``TOKEN_ALPHABET``.

    Examples:
        >>> len(random_token(8))
        8
    """
    if length < 1:
        raise ValueError("length must be >= 1")
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))
