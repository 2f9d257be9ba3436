"""Invite code selection from an invite pool.

While a pool is fresh every request gets the first entry, so downstream caches
see one stable target. Once the pool's ``Updated`` timestamp is older than the
staleness threshold, entries are drawn uniformly at random to spread traffic
across the pool until it is refreshed.

Pool entries are ``<field1>|<field2>|<code>``; only the third field is returned.
"""

import datetime
import logging
import random
from collections.abc import Callable, Sequence
from typing import Protocol

__all__ = ["LinkSelector", "RandomSource", "extract_code", "parse_updated_at", "DEFAULT_STALENESS_THRESHOLD"]

logger = logging.getLogger("invite_redirect")

DEFAULT_STALENESS_THRESHOLD = datetime.timedelta(hours=2)
ENTRY_SEPARATOR = "|"
CODE_FIELD_INDEX = 2


class RandomSource(Protocol):
    def randrange(self, stop: int) -> int: ...


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def parse_updated_at(value: str | datetime.datetime | None) -> datetime.datetime | None:
    """Parse a stored timestamp; unparseable values count as absent."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        parsed = value
    else:
        try:
            parsed = datetime.datetime.fromisoformat(str(value).strip())
        except ValueError:
            logger.warning(f"Ignoring unparseable pool timestamp: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def extract_code(entry: str) -> str | None:
    fields = str(entry).split(ENTRY_SEPARATOR)
    if len(fields) <= CODE_FIELD_INDEX:
        return None
    return fields[CODE_FIELD_INDEX] or None


class LinkSelector:
    """Picks one invite code from a pool.

    Args:
        staleness_threshold: Age after which selection becomes random.
        clock: Returns the current time as an aware datetime.
        rng: Anything with ``randrange(n)``; ``random.Random`` by default.
    """

    def __init__(
        self,
        staleness_threshold: datetime.timedelta = DEFAULT_STALENESS_THRESHOLD,
        clock: Callable[[], datetime.datetime] = _utcnow,
        rng: RandomSource | None = None,
    ):
        self._threshold = staleness_threshold
        self._clock = clock
        self._rng = rng if rng is not None else random.Random()

    @property
    def staleness_threshold(self) -> datetime.timedelta:
        return self._threshold

    def is_stale(self, updated_at: str | datetime.datetime | None) -> bool:
        updated = parse_updated_at(updated_at)
        if updated is None:
            return False
        return updated < self._clock() - self._threshold

    def select(self, invite_codes: Sequence[str], updated_at: str | datetime.datetime | None) -> str | None:
        """Return the chosen code, or None when the pool has no usable entry."""
        if not invite_codes:
            return None

        entry = invite_codes[0]
        if self.is_stale(updated_at):
            entry = invite_codes[self._rng.randrange(len(invite_codes))]
        return extract_code(entry)
