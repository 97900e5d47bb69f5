"""Seeded, reproducible train/test partitioning."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from .errors import ConfigurationError, DataError
from .table import Table

_LCG_MULTIPLIER = 9301
_LCG_INCREMENT = 49297
_LCG_MODULUS = 233280


class LinearCongruentialGenerator:
    """Tiny deterministic generator so a seed maps to the same partition everywhere."""

    def __init__(self, seed: int):
        self.state = int(seed)

    def next_float(self) -> float:
        self.state = (self.state * _LCG_MULTIPLIER + _LCG_INCREMENT) % _LCG_MODULUS
        return self.state / _LCG_MODULUS

    def next_index(self, upper: int) -> int:
        """Return an integer in ``[0, upper)``."""

        return math.floor(self.next_float() * upper)


def shuffled_indices(n: int, seed: int) -> list[int]:
    """Fisher-Yates shuffle of ``range(n)`` driven by the LCG."""

    order = list(range(n))
    generator = LinearCongruentialGenerator(seed)
    for i in range(n - 1, 0, -1):
        j = generator.next_index(i + 1)
        order[i], order[j] = order[j], order[i]
    return order


@dataclass(frozen=True, slots=True)
class Split:
    train: Table
    test: Table
    train_indices: tuple[int, ...]
    test_indices: tuple[int, ...]
    test_fraction: float
    seed: int

    def summary(self) -> dict[str, Any]:
        return {
            "trainCount": len(self.train),
            "testCount": len(self.test),
            "testSize": self.test_fraction,
            "trainSize": round(1 - self.test_fraction, 10),
            "randomSeed": self.seed,
        }


def validate_test_fraction(test_fraction: float) -> float:
    try:
        fraction = float(test_fraction)
    except (TypeError, ValueError):
        raise ConfigurationError("Test fraction must be a number", code="INVALID_TEST_FRACTION") from None
    if not 0 < fraction < 1:
        raise ConfigurationError(
            "Test fraction must be between 0 and 1 (exclusive)",
            code="INVALID_TEST_FRACTION",
            details={"testFraction": fraction},
        )
    return fraction


def split_table(table: Table, test_fraction: float = 0.2, seed: int = 42) -> Split:
    """Shuffle ``table`` with ``seed`` and cut it at ``floor(n * (1 - test_fraction))``.

    Raises :class:`DataError` with code ``DEGENERATE_SPLIT`` when either side
    would be empty.
    """

    fraction = validate_test_fraction(test_fraction)
    n = len(table)
    order = shuffled_indices(n, seed)
    boundary = math.floor(n * (1 - fraction))
    train_indices, test_indices = order[:boundary], order[boundary:]
    if not train_indices or not test_indices:
        raise DataError(
            f"Splitting {n} rows with test fraction {fraction} leaves an empty "
            f"{'train' if not train_indices else 'test'} set",
            code="DEGENERATE_SPLIT",
            details={"rows": n, "testFraction": fraction, "trainCount": len(train_indices), "testCount": len(test_indices)},
        )
    return Split(
        train=table.take(train_indices),
        test=table.take(test_indices),
        train_indices=tuple(train_indices),
        test_indices=tuple(test_indices),
        test_fraction=fraction,
        seed=int(seed),
    )


__all__ = [
    "LinearCongruentialGenerator",
    "Split",
    "shuffled_indices",
    "split_table",
    "validate_test_fraction",
]
