"""Random selection primitive shared by draws and redraws."""

from __future__ import annotations

import secrets
from typing import Callable, Hashable, Iterable, Optional, Protocol, Sequence, TypeVar

T = TypeVar("T")


class RandomSource(Protocol):
    """Subset of :class:`random.Random` the selector relies on."""

    def randrange(self, stop: int) -> int: ...

    def sample(self, population: Sequence[T], k: int) -> list[T]: ...


_SYSTEM_RANDOM = secrets.SystemRandom()


def default_random_source() -> RandomSource:
    """Return the OS-backed CSPRNG used when no source is injected."""
    return _SYSTEM_RANDOM


def select_random(
    candidates: Iterable[T],
    count: int,
    *,
    rng: Optional[RandomSource] = None,
    distinct_by: Optional[Callable[[T], Hashable]] = None,
) -> list[T]:
    """Pick up to ``count`` distinct candidates uniformly at random.

    Every element of ``candidates`` is one equally weighted ticket, so an
    owner holding N tickets is N times as likely to be picked as an owner
    holding one. Selection is without replacement.

    Parameters
    ----------
    candidates : Iterable[T]
        Flat ticket list to draw from.
    count : int
        Number of items wanted.
    rng : Optional[RandomSource], default: None
        Random source. Defaults to :class:`secrets.SystemRandom`; tests pass a
        seeded :class:`random.Random`.
    distinct_by : Optional[Callable[[T], Hashable]], default: None
        When given, all remaining candidates sharing the picked item's key are
        dropped after each pick, so at most one item per key is returned.

    Returns
    -------
    list[T]
        Picked items in selection order. Shorter than ``count`` when the pool
        runs out.
    """

    if count < 0:
        raise ValueError("count must be non-negative")

    source = rng or default_random_source()
    pool = list(candidates)

    if distinct_by is None:
        return source.sample(pool, min(count, len(pool)))

    selected: list[T] = []
    while pool and len(selected) < count:
        picked = pool[source.randrange(len(pool))]
        selected.append(picked)
        key = distinct_by(picked)
        pool = [item for item in pool if distinct_by(item) != key]
    return selected


__all__ = ["RandomSource", "default_random_source", "select_random"]
