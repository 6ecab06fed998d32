"""Fault injection: decides whether an otherwise-valid attempt is forced to fail.

Processors take a `FailureInjector` so the failure rate is configuration and
tests can script exact outcomes.
"""
from __future__ import annotations

import random
from typing import Callable

from order_pipeline.app.domain.models import Order

FailureInjector = Callable[[Order], bool]


class RandomFailureInjector:
    """Fails an attempt with a fixed probability."""

    def __init__(self, probability: float, *, rng: random.Random | None = None) -> None:
        if not 0.0 <= probability <= 1.0:
            raise ValueError("failure probability must be between 0 and 1")
        self._probability = float(probability)
        self._rng = rng or random.Random()

    @property
    def probability(self) -> float:
        return self._probability

    def __call__(self, order: Order) -> bool:
        if self._probability <= 0.0:
            return False
        return self._rng.random() < self._probability


def never_fail(order: Order) -> bool:
    return False
