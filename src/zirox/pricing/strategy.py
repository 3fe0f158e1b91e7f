"""Abstract price strategy interface.

The oracle depends only on this interface. Each deployment picks one
concrete strategy through PriceSettings.strategy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any


@dataclass
class PriceComputation:
    """Unrounded strategy output plus the inputs that produced it."""

    raw_price: float
    previous_price: Decimal
    factors: dict[str, Any] = field(default_factory=dict)
    extras: dict[str, Any] = field(default_factory=dict)


class PriceStrategy(ABC):
    """Computes a new token price from external counters."""

    name: str = ""

    @abstractmethod
    async def compute(self, now: datetime) -> PriceComputation:
        """Compute the next price for wall-clock time ``now``."""
        ...

    async def after_persist(self, computation: PriceComputation, price: Decimal, now: datetime) -> None:
        """Hook for strategy-owned state once the oracle stored the sample."""
        return None
