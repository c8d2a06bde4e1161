from __future__ import annotations

import secrets

# 0/O and 1/I/L are left out so codes survive being read aloud or retyped.
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 6


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    """Generates a short uppercase invite code with low typo ambiguity."""
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def normalize_invite_code(raw_code: str) -> str:
    return raw_code.strip().upper()
