"""Token price formation.

Two strategies share the PriceStrategy interface: the supply/demand
formula and the GX reference walk. PriceOracle persists their output.
"""

from zirox.pricing.oracle import PriceOracle, build_strategy
from zirox.pricing.poller import PricePoller
from zirox.pricing.reference_walk import ReferenceWalkStrategy
from zirox.pricing.seeding import SeedSource, SeededUniform, SineFraction
from zirox.pricing.strategy import PriceComputation, PriceStrategy
from zirox.pricing.supply_demand import SupplyDemandStrategy

__all__ = [
    "PriceComputation",
    "PriceOracle",
    "PricePoller",
    "PriceStrategy",
    "ReferenceWalkStrategy",
    "SeedSource",
    "SeededUniform",
    "SineFraction",
    "SupplyDemandStrategy",
    "build_strategy",
]
