"""Random credentials for freshly created servers."""

from __future__ import annotations

import random
import secrets
import string

from clouddk_csi.core.exceptions import InvalidArgumentError

ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits

# Cloud.dk rejects root passwords that do not start with a letter.
PASSWORD_PREFIX = "p"
PASSWORD_LENGTH = 64


def random_password(length: int, *, rng: random.Random | None = None) -> str:
    """Return ``length`` characters drawn uniformly from ALPHABET.

    Pass a seeded ``random.Random`` for reproducible output; by default a
    fresh ``secrets.SystemRandom`` is used.
    """
    if length < 0:
        raise InvalidArgumentError(f"Password length must not be negative: {length}")
    source = rng if rng is not None else secrets.SystemRandom()
    return "".join(source.choice(ALPHABET) for _ in range(length))


def initial_root_password(*, rng: random.Random | None = None) -> str:
    """Single-use root password for the bootstrap session."""
    return PASSWORD_PREFIX + random_password(PASSWORD_LENGTH - len(PASSWORD_PREFIX), rng=rng)
