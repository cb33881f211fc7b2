from __future__ import annotations

import random
import secrets
import unittest
from collections import Counter

from luckydraw.lucky_draw.selection import default_random_source, select_random


class SelectRandomTests(unittest.TestCase):
    def test_negative_count_rejected(self) -> None:
        with self.assertRaises(ValueError):
            select_random([1, 2, 3], -1)

    def test_zero_count_returns_nothing(self) -> None:
        self.assertEqual(select_random([1, 2, 3], 0, rng=random.Random(1)), [])

    def test_picks_without_replacement(self) -> None:
        picked = select_random(list(range(10)), 4, rng=random.Random(5))
        self.assertEqual(len(picked), 4)
        self.assertEqual(len(set(picked)), 4)

    def test_short_pool_returns_everything(self) -> None:
        picked = select_random(["a", "b"], 5, rng=random.Random(2))
        self.assertCountEqual(picked, ["a", "b"])

    def test_empty_pool(self) -> None:
        self.assertEqual(select_random([], 3, rng=random.Random(2)), [])

    def test_same_seed_same_result(self) -> None:
        pool = list(range(50))
        first = select_random(pool, 5, rng=random.Random(42))
        second = select_random(pool, 5, rng=random.Random(42))
        self.assertEqual(first, second)

    def test_distinct_by_returns_one_item_per_key(self) -> None:
        tickets = [("alice", 1), ("alice", 2), ("alice", 3), ("bob", 1), ("cara", 1)]
        for seed in range(20):
            picked = select_random(
                tickets, 3, rng=random.Random(seed), distinct_by=lambda t: t[0]
            )
            owners = [owner for owner, _ in picked]
            self.assertEqual(len(owners), 3)
            self.assertEqual(len(set(owners)), 3)

    def test_distinct_by_stops_when_keys_run_out(self) -> None:
        tickets = [("alice", 1), ("alice", 2), ("bob", 1)]
        picked = select_random(
            tickets, 5, rng=random.Random(3), distinct_by=lambda t: t[0]
        )
        self.assertEqual(sorted(owner for owner, _ in picked), ["alice", "bob"])

    def test_weight_follows_ticket_count(self) -> None:
        # alice holds 3 tickets, bob holds 1: alice should win ~75% of single picks
        tickets = ["alice"] * 3 + ["bob"]
        rng = random.Random(2024)
        wins = Counter(
            select_random(tickets, 1, rng=rng, distinct_by=lambda t: t)[0]
            for _ in range(4000)
        )
        rate = wins["alice"] / 4000
        self.assertAlmostEqual(rate, 0.75, delta=0.03)

    def test_default_source_is_system_random(self) -> None:
        self.assertIsInstance(default_random_source(), secrets.SystemRandom)
        picked = select_random(list(range(5)), 2)
        self.assertEqual(len(set(picked)), 2)


if __name__ == "__main__":
    unittest.main()
