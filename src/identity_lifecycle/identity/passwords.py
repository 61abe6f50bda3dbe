from __future__ import annotations

import secrets

UPPER = "ABCDEFGHJKLMNPQRSTUVWXYZ"
LOWER = "abcdefghjkmnpqrstuvwxyz"
DIGITS = "23456789"
SPECIAL = "!@#$%^&*"


def generate_temporary_password(length: int = 12) -> str:
    """Random password with at least one upper, lower, digit and special character."""
    if length < 4:
        raise ValueError("length must be at least 4")
    rng = secrets.SystemRandom()
    chars = [rng.choice(UPPER), rng.choice(LOWER), rng.choice(DIGITS), rng.choice(SPECIAL)]
    pool = UPPER + LOWER + DIGITS + SPECIAL
    chars.extend(rng.choice(pool) for _ in range(length - len(chars)))
    rng.shuffle(chars)
    return "".join(chars)
