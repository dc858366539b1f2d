"""Reference number generation for new drafts (guarantee, payment, ...).

Format: ``{prefix}-{YYYYMMDD}-{HHMMSS}-{XXXXX}`` where XXXXX is five random
upper-case base-36 characters, e.g. ``GUA-20261019-143005-7QK2D``.

One generator instance is created per process (app.state) and injected
where needed; tests build their own with a fixed clock and RNG.
"""

import logging
import random
import string
import time
from datetime import datetime
from typing import Callable

logger = logging.getLogger(__name__)

ALPHABET = string.digits + string.ascii_uppercase
MAX_ATTEMPTS = 10


class ReferenceNumberGenerator:
    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        rng: random.Random | None = None,
    ):
        self._clock = clock
        self._rng = rng or random.SystemRandom()
        self._issued: set[str] = set()

    def _candidate(self, prefix: str) -> str:
        stamp = self._clock().strftime("%Y%m%d-%H%M%S")
        suffix = "".join(self._rng.choice(ALPHABET) for _ in range(5))
        return f"{prefix}-{stamp}-{suffix}"

    def generate(self, prefix: str = "DEV") -> str:
        """Issue an id not handed out before by this generator."""
        for _ in range(MAX_ATTEMPTS):
            candidate = self._candidate(prefix)
            if candidate not in self._issued:
                break
        else:
            # Too many collisions; fall back to a millisecond timestamp
            candidate = (
                f"{prefix}-{int(time.time() * 1000)}-"
                f"{''.join(self._rng.choice(ALPHABET) for _ in range(3))}"
            )
            logger.warning(f"Reference number collisions for {prefix}, using fallback {candidate}")
        self._issued.add(candidate)
        return candidate

    def is_unique(self, reference: str) -> bool:
        return reference not in self._issued

    def reset(self) -> None:
        self._issued.clear()

    @property
    def issued_count(self) -> int:
        return len(self._issued)
