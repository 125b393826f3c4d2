"""Per-level representative aggregators (federal, state, county, municipal)."""

from repfinder.aggregators.county import CountyAggregator
from repfinder.aggregators.federal import FederalAggregator
from repfinder.aggregators.municipal import MunicipalAggregator
from repfinder.aggregators.state import StateAggregator

__all__ = [
    "CountyAggregator",
    "FederalAggregator",
    "MunicipalAggregator",
    "StateAggregator",
]
